"""
JSON metadata document describing the uploaded folder tree.

The document mirrors the upload directory: every folder node holds the
files stored directly in it and its child folders keyed by name. It is
read in full at the start of an operation and written back in full at the
end of a mutation.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import List, Tuple

from .exceptions import (
    FolderNotFoundError,
    MetadataCorruptError,
    MetadataWriteError,
    ValidationError,
)
from .models import FolderNode
from .utils import normalize_path

logger = logging.getLogger(__name__)

SEGMENT_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")


def validate_segment(name: str) -> str:
    """Check a single folder name"""
    if not name or not SEGMENT_PATTERN.fullmatch(name):
        raise ValidationError("Invalid folder name. Use alphanumeric, underscore, hyphen, dot.")
    if name in (".", ".."):
        raise ValidationError("Invalid folder name.")
    return name


def split_path(path: str) -> List[str]:
    """
    Split a slash-delimited folder path into validated segments.

    Surrounding slashes are ignored, so "", "/" and "a/b/" are accepted.
    Empty inner segments ("a//b") are rejected.
    """
    path = normalize_path(path or "").strip("/")
    if not path:
        return []
    return [validate_segment(segment) for segment in path.split("/")]


def join_path(*parts: str) -> str:
    """Join folder path fragments, skipping empty ones"""
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


def empty_document() -> FolderNode:
    return FolderNode()


class MetadataStore:
    """Loads and saves the metadata document and resolves folder paths"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> FolderNode:
        """
        Read the document from disk.

        A missing or blank file yields an empty document. A file that exists
        but does not parse raises MetadataCorruptError rather than being
        replaced, so existing metadata is never discarded silently.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("Metadata file %s not found, using empty document", self.path)
            return empty_document()
        except OSError as exc:
            raise MetadataCorruptError(f"Failed to read metadata file: {exc}") from exc

        if not raw.strip():
            logger.info("Metadata file %s is empty, using empty document", self.path)
            return empty_document()

        try:
            data = json.loads(raw)
            return FolderNode.from_dict(data)
        except (json.JSONDecodeError, ValueError, TypeError) as exc:
            logger.error("Metadata file %s is corrupt: %s", self.path, exc)
            raise MetadataCorruptError(f"Metadata file is corrupt: {exc}") from exc

    def save(self, document: FolderNode) -> None:
        """Replace the on-disk document atomically"""
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(document.to_dict(), fh, ensure_ascii=False, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error writing files metadata: %s", exc)
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_exc:
                logger.warning("Failed to remove temporary metadata file %s: %s", tmp_path, cleanup_exc)
            raise MetadataWriteError("Error saving file metadata.") from exc

    def initialize(self) -> FolderNode:
        """Create the document if it is missing or blank; used at startup"""
        if self.path.exists() and self.path.read_text(encoding="utf-8").strip():
            return self.load()

        logger.info("Initializing empty metadata document at %s", self.path)
        document = empty_document()
        self.save(document)
        return document

    @staticmethod
    def resolve(document: FolderNode, path: str) -> FolderNode:
        """Walk the folder mapping segment by segment"""
        current = document
        for segment in split_path(path):
            child = current.folders.get(segment)
            if child is None:
                raise FolderNotFoundError(path)
            current = child
        return current

    @staticmethod
    def resolve_parent(document: FolderNode, path: str) -> Tuple[FolderNode, str]:
        """
        Resolve the folder that contains the last segment of ``path``.

        Returns the parent node and the leaf name; the leaf itself is not
        required to exist. A single-segment path resolves to the root.
        """
        segments = split_path(path)
        if not segments:
            raise ValidationError("Folder path missing.")

        parent_path = "/".join(segments[:-1])
        try:
            parent = MetadataStore.resolve(document, parent_path)
        except FolderNotFoundError:
            raise FolderNotFoundError(path, "Folder not found in metadata.")
        return parent, segments[-1]
