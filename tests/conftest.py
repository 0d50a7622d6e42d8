"""Shared fixtures"""

from __future__ import annotations

import io
import textwrap

import pytest
from starlette.datastructures import UploadFile

from filehost.file_host import FileHost
from filehost.metadata import MetadataStore


def make_upload(data: bytes, filename: str = "report.pdf") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=filename, size=len(data))


@pytest.fixture()
def upload_root(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture()
def store(tmp_path):
    return MetadataStore(tmp_path / "data" / "files.json")


@pytest.fixture()
def file_host(upload_root, store):
    return FileHost(upload_root, store, max_upload_size=1024)


@pytest.fixture()
def config_file(tmp_path):
    """Write a configuration rooted in tmp_path and return its path"""

    config = textwrap.dedent(
        """
        server:
          addr: "127.0.0.1"
          port: 18080
        session:
          secret: "test-secret"
        storage:
          uploadDir: "uploads"
          dataDir: "data"
          publicPrefix: "/f"
          maxUploadSize: "1KB"
          reconcileOnStartup: true
        logging:
          json: false
          level: "INFO"
        ui:
          brand: "Test"
          title: "Test Host"
        """
    )

    config_path = tmp_path / "filehost.yaml"
    config_path.write_text(config, encoding="utf-8")
    return config_path
