"""Server-side orchestration of uploads, folders and the metadata document."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from .exceptions import (
    AlreadyExistsError,
    FileEntryNotFoundError,
    FolderNotFoundError,
    PayloadTooLargeError,
    StorageError,
    ValidationError,
)
from .fs import (
    FileSystemError,
    ensure_directory,
    folder_dir,
    prune_empty_directories,
    remove_file,
    remove_tree,
    save_upload,
    scan_tree,
)
from .metadata import MetadataStore, join_path, split_path, validate_segment
from .models import FileEntry, FolderListing, FolderNode, ReconcileReport
from .utils import generate_stored_name

logger = logging.getLogger(__name__)


class FileHost:
    """
    Keeps the upload directory and the metadata document in step.

    Every mutation runs the physical step first and the metadata step
    second. Mutations are serialized through ``self._lock``; when the
    metadata step fails the physical step is undone where possible.
    """

    def __init__(self, upload_root: Path, store: MetadataStore, max_upload_size: Optional[int] = None):
        self.upload_root = Path(upload_root).resolve()
        self.store = store
        self.max_upload_size = max_upload_size
        self._lock = asyncio.Lock()

    async def list_folder(self, path: str) -> FolderListing:
        segments = split_path(path)
        document = self.store.load()
        node = self.store.resolve(document, path)
        return FolderListing(
            path="/".join(segments),
            files=list(node.files),
            folders=sorted(node.folders),
        )

    async def upload_file(self, folder_path: str, upload_file_obj: UploadFile) -> FileEntry:
        """
        Store one uploaded file under a generated name and record it.

        The payload is written before the target folder is looked up in the
        metadata; if the folder is missing the written file is removed again.
        """
        segments = split_path(folder_path)
        folder_path = "/".join(segments)

        original_name = upload_file_obj.filename or ""
        if not original_name:
            raise ValidationError("No file selected for upload.")

        max_size = self.max_upload_size
        if max_size is not None and upload_file_obj.size is not None and upload_file_obj.size > max_size:
            raise PayloadTooLargeError(max_size)

        stored_name = generate_stored_name(original_name)
        dest_dir = folder_dir(self.upload_root, segments)
        dest_file = dest_dir / stored_name

        logger.debug(
            "Uploading file",
            extra={"path": folder_path, "original": original_name, "stored": stored_name},
        )

        created_dir = None
        try:
            created_dir = await ensure_directory(dest_dir)
            size = await save_upload(upload_file_obj, dest_file, max_size=max_size)
        except PayloadTooLargeError:
            if created_dir is not None:
                await prune_empty_directories(dest_dir, created_dir)
            raise
        except FileSystemError as e:
            logger.error(f"Error writing upload {dest_file}: {e}")
            if created_dir is not None:
                await prune_empty_directories(dest_dir, created_dir)
            raise StorageError("An unknown upload error occurred.") from e

        entry = FileEntry(originalName=original_name, storedName=stored_name, size=size)

        async with self._lock:
            try:
                document = self.store.load()
                target = self.store.resolve(document, folder_path)
                target.files.append(entry)
                self.store.save(document)
            except FolderNotFoundError:
                logger.error(f"Upload target folder not found in metadata: {folder_path or '/'}")
                await self._discard_upload(dest_file, created_dir)
                raise FolderNotFoundError(folder_path, "Target folder not found.")
            except Exception:
                await self._discard_upload(dest_file, created_dir)
                raise

        logger.info(f"Stored upload {original_name!r} as {folder_path}/{stored_name} ({size} bytes)")
        return entry

    async def _discard_upload(self, file_path: Path, created_dir: Optional[Path]) -> None:
        """Undo the physical half of a failed upload"""
        try:
            await remove_file(file_path)
            logger.info(f"Cleaned up orphaned file: {file_path}")
            if created_dir is not None:
                await prune_empty_directories(file_path.parent, created_dir)
        except FileSystemError as e:
            logger.error(f"Error cleaning up orphaned file {file_path}: {e}")

    async def create_folder(self, parent_path: str, name: str) -> str:
        """Create ``name`` under ``parent_path``; returns the new folder's path"""
        validate_segment(name)
        parent_segments = split_path(parent_path)
        parent_path = "/".join(parent_segments)
        new_path = join_path(parent_path, name)

        async with self._lock:
            document = self.store.load()
            parent = self.store.resolve(document, parent_path)

            if name in parent.folders:
                raise AlreadyExistsError("Folder already exists at this location.")

            physical = folder_dir(self.upload_root, parent_segments + [name])
            try:
                created_dir = await ensure_directory(physical)
            except FileSystemError as e:
                logger.error(f"Error creating folder {physical}: {e}")
                raise StorageError("Error creating folder.") from e

            parent.folders[name] = FolderNode()
            try:
                self.store.save(document)
            except Exception:
                if created_dir is not None:
                    await prune_empty_directories(physical, created_dir)
                raise

        logger.info(f"Created folder {new_path}")
        return new_path

    async def delete_folder(self, path: str) -> str:
        """Delete a folder and its contents; returns the parent path"""
        segments = split_path(path)
        if not segments:
            raise ValidationError("Folder path missing.")
        path = "/".join(segments)

        async with self._lock:
            document = self.store.load()
            parent, name = self.store.resolve_parent(document, path)
            if name not in parent.folders:
                raise FolderNotFoundError(path, "Folder not found in metadata.")

            physical = folder_dir(self.upload_root, segments)
            try:
                existed = await remove_tree(physical)
            except FileSystemError as e:
                logger.error(f"Error deleting physical folder {physical}: {e}")
                raise StorageError("Error deleting physical folder.") from e
            if not existed:
                logger.warning(f"Physical folder not found, removing metadata anyway: {physical}")

            del parent.folders[name]
            self.store.save(document)

        logger.info(f"Deleted folder {path}")
        return "/".join(segments[:-1])

    async def delete_file(self, folder_path: str, stored_name: str) -> FileEntry:
        if not stored_name:
            raise ValidationError("File name missing.")
        segments = split_path(folder_path)
        folder_path = "/".join(segments)

        async with self._lock:
            document = self.store.load()
            try:
                folder = self.store.resolve(document, folder_path)
            except FolderNotFoundError:
                raise FolderNotFoundError(folder_path, "Folder or file list not found.")

            index = folder.find_file(stored_name)
            if index is None:
                raise FileEntryNotFoundError(folder_path, stored_name)

            physical = folder_dir(self.upload_root, segments) / stored_name
            try:
                existed = await remove_file(physical)
            except FileSystemError as e:
                logger.error(f"Error deleting physical file {physical}: {e}")
                raise StorageError("Error deleting physical file.") from e
            if not existed:
                logger.warning(f"Physical file not found, removing metadata anyway: {physical}")

            entry = folder.files.pop(index)
            self.store.save(document)

        logger.info(f"Deleted file {folder_path}/{stored_name}")
        return entry

    async def reconcile(self, apply: bool = False) -> ReconcileReport:
        """
        Compare the upload directory with the metadata document.

        With ``apply`` the metadata is brought in line with the disk:
        orphan folders and files are adopted, entries whose physical
        counterpart is gone are dropped.
        """
        async with self._lock:
            document = self.store.load()
            physical = scan_tree(self.upload_root) if self.upload_root.is_dir() else {"": []}
            report = ReconcileReport()

            self._reconcile_node(document, "", physical, report, apply)

            if apply and not report.clean:
                self.store.save(document)
                report.applied = True

        for label, items in report.to_dict().items():
            if isinstance(items, list) and items:
                logger.warning(f"Reconcile {label}: {', '.join(items)}")
        return report

    def _reconcile_node(self, node, path, physical, report, apply):
        on_disk = set(physical.get(path, []))
        recorded = {entry.storedName for entry in node.files}

        for entry in list(node.files):
            if entry.storedName not in on_disk:
                report.missing_files.append(join_path(path, entry.storedName))
                if apply:
                    node.files.remove(entry)

        for name in sorted(on_disk - recorded):
            report.orphan_files.append(join_path(path, name))
            if apply:
                size = (self.upload_root / path / name).stat().st_size
                node.files.append(FileEntry(originalName=name, storedName=name, size=size))

        prefix = f"{path}/" if path else ""
        child_dirs = {
            key[len(prefix):] for key in physical
            if key and key.startswith(prefix) and "/" not in key[len(prefix):]
        }

        for name in sorted(set(node.folders) - child_dirs):
            report.missing_folders.append(join_path(path, name))
            if apply:
                del node.folders[name]

        for name in sorted(child_dirs):
            child_path = join_path(path, name)
            child = node.folders.get(name)
            if child is None:
                try:
                    validate_segment(name)
                except ValidationError:
                    logger.warning(f"Skipping directory with unsupported name: {child_path}")
                    continue
                report.orphan_folders.append(child_path)
                child = FolderNode()
                if apply:
                    node.folders[name] = child
            self._reconcile_node(child, child_path, physical, report, apply)
