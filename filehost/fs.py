"""
Safe filesystem operations for filehost
"""

import os
import shutil
import logging
from pathlib import Path
from typing import AsyncGenerator, Dict, List, Optional, Tuple
from urllib.parse import unquote

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from .exceptions import PayloadTooLargeError
from .models import HttpRange
from .utils import normalize_path

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

_rmtree = aiofiles.os.wrap(shutil.rmtree)


class PathTraversalError(Exception):
    """Raised when path traversal attack is detected"""
    pass


class FileSystemError(Exception):
    """Generic filesystem error"""
    pass


class RangeNotSatisfiableError(FileSystemError):
    """Requested byte range lies outside the file"""

    def __init__(self, total_size: int):
        super().__init__("Requested range not satisfiable")
        self.total_size = total_size


def safe_join(root_path: Path, rel_path: str) -> Path:
    """
    Safely join root path with relative path, preventing directory traversal

    Args:
        root_path: Root directory path
        rel_path: Relative path to join

    Returns:
        Resolved absolute path within root

    Raises:
        PathTraversalError: If path would escape root directory
    """

    rel_path = normalize_path(unquote(rel_path.strip()))

    base_path = root_path.resolve()

    parts = []
    for part in rel_path.split('/'):
        if not part or part == '.':
            # Skip empty or current-directory segments caused by // or ./
            continue
        if part == '..':
            raise PathTraversalError(f"Path traversal detected: {rel_path}")
        parts.append(part)

    full_path = base_path.joinpath(*parts) if parts else base_path

    # Resolve symlinks without requiring the target to exist
    try:
        resolved_path = full_path.resolve(strict=False)
    except OSError as e:
        raise FileSystemError(f"Failed to resolve path: {e}")

    # Ensure resolved path is within root
    try:
        resolved_path.relative_to(base_path)
    except ValueError:
        raise PathTraversalError(f"Path traversal detected: {rel_path}")

    return resolved_path


def folder_dir(upload_root: Path, segments: List[str]) -> Path:
    """Physical directory for an already validated folder path"""
    return upload_root.joinpath(*segments) if segments else upload_root


async def ensure_directory(dir_path: Path) -> Optional[Path]:
    """
    Create a directory and any missing parents.

    Returns the top-most directory created by this call, or None when the
    directory already existed.

    Raises:
        FileSystemError: If the directory cannot be created
    """
    missing = None
    probe = dir_path
    while not await aiofiles.os.path.exists(probe):
        missing = probe
        if probe.parent == probe:
            break
        probe = probe.parent

    if missing is None:
        if not await aiofiles.os.path.isdir(dir_path):
            raise FileSystemError(f"Not a directory: {dir_path}")
        return None

    try:
        await aiofiles.os.makedirs(dir_path, exist_ok=True)
        logger.info(f"Created directory: {dir_path}")
    except OSError as e:
        raise FileSystemError(f"Failed to create directory: {e}")
    return missing


async def prune_empty_directories(leaf: Path, stop_at: Path) -> None:
    """Remove ``leaf`` and its parents up to and including ``stop_at`` while empty"""
    current = leaf
    while True:
        try:
            await aiofiles.os.rmdir(current)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Stopped pruning at {current}: {e}")
            return
        if current == stop_at or current.parent == current:
            return
        current = current.parent


async def save_upload(
    upload_file: UploadFile,
    file_path: Path,
    max_size: Optional[int] = None,
) -> int:
    """
    Stream an uploaded file to disk

    Args:
        upload_file: FastAPI UploadFile object
        file_path: Destination path; must not exist yet
        max_size: Optional maximum file size in bytes

    Returns:
        Number of bytes written

    Raises:
        PayloadTooLargeError: If the payload exceeds max_size
        FileSystemError: If the file cannot be written
    """
    bytes_written = 0
    try:
        async with aiofiles.open(file_path, 'xb') as f:
            while True:
                chunk = await upload_file.read(CHUNK_SIZE)
                if not chunk:
                    break

                bytes_written += len(chunk)
                if max_size is not None and bytes_written > max_size:
                    raise PayloadTooLargeError(max_size)

                await f.write(chunk)

    except PayloadTooLargeError:
        await remove_file(file_path)
        raise

    except FileExistsError:
        raise FileSystemError(f"File already exists: {file_path.name}")

    except OSError as e:
        # Clean up partial file
        await remove_file(file_path)
        raise FileSystemError(f"Failed to save file: {e}")

    logger.info(f"Uploaded file: {file_path} ({bytes_written} bytes)")
    return bytes_written


async def remove_file(file_path: Path) -> bool:
    """
    Delete a file

    Returns:
        False when the file was already gone

    Raises:
        FileSystemError: For any other failure
    """
    try:
        await aiofiles.os.remove(file_path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise FileSystemError(f"Failed to delete file: {e}")

    logger.info(f"Deleted file: {file_path}")
    return True


async def remove_tree(dir_path: Path) -> bool:
    """
    Delete a directory and everything below it

    Returns:
        False when the directory was already gone

    Raises:
        FileSystemError: For any other failure
    """
    try:
        await _rmtree(dir_path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise FileSystemError(f"Failed to delete directory: {e}")

    logger.info(f"Deleted directory: {dir_path}")
    return True


async def open_file_for_download(
    root_path: Path,
    rel_path: str,
    http_range: Optional[HttpRange] = None
) -> Tuple[AsyncGenerator[bytes, None], int, int, int, Path]:
    """
    Open file for download with optional range support

    Args:
        root_path: Directory the public prefix maps onto
        rel_path: Relative file path
        http_range: Optional HTTP range specification

    Returns:
        (file_generator, start_pos, end_pos, total_size, file_path) tuple

    Raises:
        FileSystemError: If the file is missing or cannot be read
        RangeNotSatisfiableError: If the range lies outside the file
    """

    try:
        file_path = safe_join(root_path, rel_path)
    except PathTraversalError as e:
        raise FileSystemError(str(e))

    if not await aiofiles.os.path.isfile(file_path):
        raise FileSystemError(f"File not found: {rel_path}")

    try:
        stat = await aiofiles.os.stat(file_path)
    except OSError as e:
        raise FileSystemError(f"Failed to open file: {e}")

    total_size = stat.st_size

    if http_range:
        start, end = http_range.resolve(total_size)
        if start < 0 or start >= total_size or start > end:
            raise RangeNotSatisfiableError(total_size)
    else:
        start, end = 0, total_size - 1

    async def file_generator():
        async with aiofiles.open(file_path, 'rb') as f:
            await f.seek(start)
            remaining = end - start + 1

            while remaining > 0:
                chunk = await f.read(min(CHUNK_SIZE, remaining))
                if not chunk:
                    break

                remaining -= len(chunk)
                yield chunk

    return file_generator(), start, end, total_size, file_path


def scan_tree(upload_root: Path) -> Dict[str, List[str]]:
    """
    Map every directory below the upload root to the regular files in it.

    Keys are slash-delimited paths relative to the root ("" is the root).
    """
    tree: Dict[str, List[str]] = {}
    for dirpath, dirnames, filenames in os.walk(upload_root):
        dirnames.sort()
        rel = Path(dirpath).relative_to(upload_root).as_posix()
        key = "" if rel == "." else rel
        tree[key] = sorted(
            name for name in filenames
            if os.path.isfile(os.path.join(dirpath, name))
        )
    return tree
