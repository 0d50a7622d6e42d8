"""
Tests for the metadata document store
"""

import json
import shutil
import tempfile
from pathlib import Path

import pytest

from filehost.exceptions import (
    FolderNotFoundError,
    MetadataCorruptError,
    MetadataWriteError,
    ValidationError,
)
from filehost.metadata import MetadataStore, join_path, split_path, validate_segment
from filehost.models import FileEntry, FolderNode


def build_document() -> FolderNode:
    reports = FolderNode(
        files=[FileEntry(originalName="q1.pdf", storedName="abc.pdf", size=10, uploadDate="2024-01-01T00:00:00.000Z")],
        folders={"2024": FolderNode()},
    )
    return FolderNode(folders={"reports": reports, "images": FolderNode()})


class TestPathSegments:
    """Folder path parsing and validation"""

    def test_split_path(self):
        assert split_path("") == []
        assert split_path("/") == []
        assert split_path("reports") == ["reports"]
        assert split_path("/reports/2024/") == ["reports", "2024"]
        assert split_path("a\\b") == ["a", "b"]

    @pytest.mark.parametrize("path", ["a//b", "../evil", "a/../b", "a/./b", "bad name", "a/b$", "evil\n", "a/evil\n"])
    def test_split_path_rejects_bad_segments(self, path):
        with pytest.raises(ValidationError):
            split_path(path)

    @pytest.mark.parametrize("name", ["", ".", "..", "../evil", "a/b", "sp ace", "ü", "evil\n", "\nlead"])
    def test_validate_segment_rejects(self, name):
        with pytest.raises(ValidationError):
            validate_segment(name)

    @pytest.mark.parametrize("name", ["dup", "v1.2", "under_score", "hy-phen", "...", ".hidden"])
    def test_validate_segment_accepts(self, name):
        assert validate_segment(name) == name

    def test_join_path(self):
        assert join_path("", "a") == "a"
        assert join_path("a/", "/b") == "a/b"
        assert join_path("", "") == ""


class TestMetadataStore:
    """Load, save and resolve"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.store = MetadataStore(self.temp_dir / "data" / "files.json")

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_load_missing_file_returns_empty_document(self):
        document = self.store.load()
        assert document.to_dict() == {"files": [], "folders": {}}

    def test_load_blank_file_returns_empty_document(self):
        self.store.path.parent.mkdir(parents=True)
        self.store.path.write_text("  \n", encoding="utf-8")

        assert self.store.load().to_dict() == {"files": [], "folders": {}}

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"files": "nope"}', '{"files": [{"size": 1}]}'])
    def test_load_corrupt_file_raises(self, content):
        self.store.path.parent.mkdir(parents=True)
        self.store.path.write_text(content, encoding="utf-8")

        with pytest.raises(MetadataCorruptError):
            self.store.load()

        # The corrupt file is left in place for inspection
        assert self.store.path.read_text(encoding="utf-8") == content

    def test_load_fills_missing_keys(self):
        self.store.path.parent.mkdir(parents=True)
        self.store.path.write_text('{"folders": {"a": {}}}', encoding="utf-8")

        document = self.store.load()

        assert document.files == []
        assert document.folders["a"].to_dict() == {"files": [], "folders": {}}

    def test_save_load_round_trip(self):
        document = build_document()

        self.store.save(document)
        loaded = self.store.load()

        assert loaded == document
        assert json.loads(self.store.path.read_text(encoding="utf-8")) == document.to_dict()
        assert not self.store.path.with_suffix(".tmp").exists()

    def test_save_failure_is_reported(self):
        # A directory where the document should be makes the replace fail
        self.store.path.mkdir(parents=True)

        with pytest.raises(MetadataWriteError):
            self.store.save(build_document())

    def test_initialize_creates_document_once(self):
        self.store.initialize()
        assert self.store.path.exists()

        self.store.save(build_document())
        assert self.store.initialize() == build_document()

    def test_resolve(self):
        document = build_document()

        assert self.store.resolve(document, "") is document
        assert self.store.resolve(document, "reports") is document.folders["reports"]
        assert self.store.resolve(document, "reports/2024") is document.folders["reports"].folders["2024"]

    def test_resolve_not_found(self):
        document = build_document()

        with pytest.raises(FolderNotFoundError):
            self.store.resolve(document, "missing")

        # No partial matching
        with pytest.raises(FolderNotFoundError):
            self.store.resolve(document, "reports/2024/q1")
        with pytest.raises(FolderNotFoundError):
            self.store.resolve(document, "report")

    def test_resolve_parent(self):
        document = build_document()

        parent, name = self.store.resolve_parent(document, "reports")
        assert parent is document
        assert name == "reports"

        parent, name = self.store.resolve_parent(document, "reports/2024")
        assert parent is document.folders["reports"]
        assert name == "2024"

        # Leaf does not need to exist
        parent, name = self.store.resolve_parent(document, "images/new")
        assert parent is document.folders["images"]
        assert name == "new"

    def test_resolve_parent_errors(self):
        document = build_document()

        with pytest.raises(ValidationError):
            self.store.resolve_parent(document, "")

        with pytest.raises(FolderNotFoundError):
            self.store.resolve_parent(document, "missing/child")


class TestFolderNode:
    def test_find_file(self):
        node = build_document().folders["reports"]

        assert node.find_file("abc.pdf") == 0
        assert node.find_file("nope") is None

    def test_file_entry_defaults(self):
        entry = FileEntry(originalName="a.txt", storedName="x.txt", size=3)

        data = entry.to_dict()
        assert data["type"] == "file"
        assert data["uploadDate"].endswith("Z")
