"""
Tests for filesystem path safety and operations
"""

import asyncio
import io
import pytest
import tempfile
import shutil
from pathlib import Path

from starlette.datastructures import UploadFile

from filehost.exceptions import PayloadTooLargeError
from filehost.fs import (
    safe_join,
    PathTraversalError,
    FileSystemError,
    RangeNotSatisfiableError,
    ensure_directory,
    prune_empty_directories,
    remove_file,
    remove_tree,
    save_upload,
    open_file_for_download,
    scan_tree,
)
from filehost.models import HttpRange


async def _collect(generator):
    return b"".join([chunk async for chunk in generator])


class TestPathSafety:
    """Test path safety functions"""

    def setup_method(self):
        """Setup test environment"""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.root_path = self.temp_dir / "root"
        self.root_path.mkdir(parents=True)

        (self.root_path / "folder1").mkdir()
        (self.root_path / "folder1" / "subfolder").mkdir()
        (self.root_path / "folder2").mkdir()
        (self.root_path / "test.txt").write_text("test content")

    def teardown_method(self):
        """Cleanup test environment"""
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_safe_join_normal_paths(self):
        """Test safe_join with normal paths"""

        result = safe_join(self.root_path, "test.txt")
        assert result == (self.root_path / "test.txt").resolve()

        result = safe_join(self.root_path, "folder1/subfolder/file.txt")
        assert result == (self.root_path / "folder1" / "subfolder" / "file.txt").resolve()

        # Leading slash should be handled
        result = safe_join(self.root_path, "/folder1/test.txt")
        assert result == (self.root_path / "folder1" / "test.txt").resolve()

    def test_safe_join_path_traversal_attempts(self):
        """Test safe_join blocks path traversal attempts"""

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "../outside.txt")

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "folder1/../../../outside.txt")

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "folder1/./../../outside.txt")

        # URL encoded path traversal
        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "folder1%2F..%2F..%2Foutside.txt")

        # Windows separators
        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "folder1\\..\\..\\outside.txt")

    def test_safe_join_edge_cases(self):
        """Test safe_join edge cases"""

        assert safe_join(self.root_path, "") == self.root_path.resolve()
        assert safe_join(self.root_path, "/") == self.root_path.resolve()
        assert safe_join(self.root_path, ".") == self.root_path.resolve()

        result = safe_join(self.root_path, "//folder1///subfolder//file.txt")
        assert result == (self.root_path / "folder1" / "subfolder" / "file.txt").resolve()

    def test_safe_join_symlink_attacks(self):
        """Test safe_join handles symlink attacks (if supported by OS)"""

        try:
            outside_dir = self.temp_dir / "outside"
            outside_dir.mkdir()
            (outside_dir / "secret.txt").write_text("secret data")

            symlink_path = self.root_path / "symlink"
            symlink_path.symlink_to(outside_dir)
        except OSError:
            pytest.skip("Symlinks not supported on this system")

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "symlink/secret.txt")


class TestPhysicalOperations:
    """Directory creation, removal and upload streaming"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_ensure_directory_reports_topmost_created(self):
        target = self.temp_dir / "a" / "b" / "c"

        created = asyncio.run(ensure_directory(target))

        assert target.is_dir()
        assert created == self.temp_dir / "a"

        # Second call creates nothing
        assert asyncio.run(ensure_directory(target)) is None

    def test_ensure_directory_rejects_file(self):
        blocker = self.temp_dir / "file"
        blocker.write_text("x")

        with pytest.raises(FileSystemError):
            asyncio.run(ensure_directory(blocker))

    def test_prune_empty_directories_stops_at_boundary(self):
        leaf = self.temp_dir / "a" / "b"
        leaf.mkdir(parents=True)

        asyncio.run(prune_empty_directories(leaf, self.temp_dir / "a"))

        assert not (self.temp_dir / "a").exists()
        assert self.temp_dir.exists()

    def test_prune_keeps_non_empty_directories(self):
        leaf = self.temp_dir / "a" / "b"
        leaf.mkdir(parents=True)
        (self.temp_dir / "a" / "keep.txt").write_text("x")

        asyncio.run(prune_empty_directories(leaf, self.temp_dir / "a"))

        assert not leaf.exists()
        assert (self.temp_dir / "a").is_dir()

    def test_remove_file_tolerates_missing(self):
        target = self.temp_dir / "gone.txt"
        target.write_text("x")

        assert asyncio.run(remove_file(target)) is True
        assert asyncio.run(remove_file(target)) is False

    def test_remove_tree_is_recursive(self):
        (self.temp_dir / "tree" / "sub").mkdir(parents=True)
        (self.temp_dir / "tree" / "sub" / "f.bin").write_bytes(b"data")

        assert asyncio.run(remove_tree(self.temp_dir / "tree")) is True
        assert not (self.temp_dir / "tree").exists()
        assert asyncio.run(remove_tree(self.temp_dir / "tree")) is False

    def test_save_upload_writes_bytes(self):
        payload = b"hello world" * 1000
        upload = UploadFile(file=io.BytesIO(payload), filename="hello.txt")
        dest = self.temp_dir / "stored.txt"

        written = asyncio.run(save_upload(upload, dest))

        assert written == len(payload)
        assert dest.read_bytes() == payload

    def test_save_upload_enforces_ceiling(self):
        upload = UploadFile(file=io.BytesIO(b"x" * 100), filename="big.bin")
        dest = self.temp_dir / "big.bin"

        with pytest.raises(PayloadTooLargeError):
            asyncio.run(save_upload(upload, dest, max_size=10))

        assert not dest.exists()

    def test_save_upload_never_overwrites(self):
        dest = self.temp_dir / "taken.txt"
        dest.write_bytes(b"original")
        upload = UploadFile(file=io.BytesIO(b"new"), filename="taken.txt")

        with pytest.raises(FileSystemError):
            asyncio.run(save_upload(upload, dest))

        assert dest.read_bytes() == b"original"

    def test_open_file_for_download_full_and_range(self):
        (self.temp_dir / "docs").mkdir()
        (self.temp_dir / "docs" / "a.txt").write_bytes(b"0123456789")

        generator, start, end, total, path = asyncio.run(
            open_file_for_download(self.temp_dir, "docs/a.txt")
        )
        assert (start, end, total) == (0, 9, 10)
        assert asyncio.run(_collect(generator)) == b"0123456789"

        generator, start, end, total, path = asyncio.run(
            open_file_for_download(self.temp_dir, "docs/a.txt", HttpRange(start=2, end=4))
        )
        assert asyncio.run(_collect(generator)) == b"234"

    def test_open_file_for_download_errors(self):
        (self.temp_dir / "docs").mkdir()
        (self.temp_dir / "docs" / "a.txt").write_bytes(b"0123456789")

        with pytest.raises(FileSystemError):
            asyncio.run(open_file_for_download(self.temp_dir, "docs/missing.txt"))

        # Directories are not served
        with pytest.raises(FileSystemError):
            asyncio.run(open_file_for_download(self.temp_dir, "docs"))

        with pytest.raises(FileSystemError):
            asyncio.run(open_file_for_download(self.temp_dir, "../etc/passwd"))

        with pytest.raises(RangeNotSatisfiableError):
            asyncio.run(open_file_for_download(self.temp_dir, "docs/a.txt", HttpRange(start=50)))

    def test_scan_tree(self):
        (self.temp_dir / "a" / "b").mkdir(parents=True)
        (self.temp_dir / "root.txt").write_text("x")
        (self.temp_dir / "a" / "one.txt").write_text("x")

        tree = scan_tree(self.temp_dir)

        assert tree == {"": ["root.txt"], "a": ["one.txt"], "a/b": []}
