"""
Data models and constants for filehost
"""

from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path


class ResponseCode(Enum):
    """Standard response codes"""
    SUCCESS = 0
    ERROR = 1
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_ERROR = 500


@dataclass
class ApiResponse:
    """Standard API response format"""
    code: int = ResponseCode.SUCCESS.value
    msg: str = "success"
    data: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "msg": self.msg,
            "data": self.data
        }


def utc_timestamp() -> str:
    """ISO-8601 timestamp in UTC with millisecond precision"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class FileEntry:
    """A file recorded in the metadata document"""
    originalName: str
    storedName: str
    size: int
    uploadDate: str = field(default_factory=utc_timestamp)
    type: str = "file"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalName": self.originalName,
            "storedName": self.storedName,
            "size": self.size,
            "uploadDate": self.uploadDate,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileEntry":
        stored_name = data.get("storedName")
        if not isinstance(stored_name, str) or not stored_name:
            raise ValueError("file entry without storedName")
        return cls(
            originalName=str(data.get("originalName") or stored_name),
            storedName=stored_name,
            size=int(data.get("size") or 0),
            uploadDate=str(data.get("uploadDate") or ""),
            type=str(data.get("type") or "file"),
        )


@dataclass
class FolderNode:
    """
    A folder in the metadata tree.

    The node does not know its own name; it is addressed by the key under
    which its parent stores it. The document root is a FolderNode too.
    """
    files: List[FileEntry] = field(default_factory=list)
    folders: Dict[str, "FolderNode"] = field(default_factory=dict)

    def find_file(self, stored_name: str) -> Optional[int]:
        """Index of the entry with the given stored name, or None"""
        for index, entry in enumerate(self.files):
            if entry.storedName == stored_name:
                return index
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [entry.to_dict() for entry in self.files],
            "folders": {name: node.to_dict() for name, node in self.folders.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FolderNode":
        if not isinstance(data, dict):
            raise ValueError("folder node must be an object")

        files = data.get("files") or []
        folders = data.get("folders") or {}
        if not isinstance(files, list) or not isinstance(folders, dict):
            raise ValueError("folder node has malformed files/folders")

        return cls(
            files=[FileEntry.from_dict(item) for item in files],
            folders={str(name): cls.from_dict(child) for name, child in folders.items()},
        )


@dataclass
class FolderListing:
    """Contents of one folder as shown to an operator"""
    path: str
    files: List[FileEntry]
    folders: List[str]

    @property
    def breadcrumbs(self) -> List[Dict[str, str]]:
        crumbs = [{"name": "root", "path": ""}]
        parts: List[str] = []
        for segment in self.path.split("/") if self.path else []:
            parts.append(segment)
            crumbs.append({"name": segment, "path": "/".join(parts)})
        return crumbs

    @property
    def parent(self) -> Optional[str]:
        if not self.path:
            return None
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "files": [entry.to_dict() for entry in self.files],
            "folders": list(self.folders),
        }


@dataclass
class ReconcileReport:
    """Differences between the upload directory and the metadata document"""
    orphan_files: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)
    orphan_folders: List[str] = field(default_factory=list)
    missing_folders: List[str] = field(default_factory=list)
    applied: bool = False

    @property
    def clean(self) -> bool:
        return not (
            self.orphan_files or self.missing_files
            or self.orphan_folders or self.missing_folders
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orphan_files": self.orphan_files,
            "missing_files": self.missing_files,
            "orphan_folders": self.orphan_folders,
            "missing_folders": self.missing_folders,
            "applied": self.applied,
        }


@dataclass
class UserInfo:
    """Operator credential record"""
    name: str
    pass_hash: str
    is_bcrypt: bool = False


@dataclass
class ServerConfig:
    """Server configuration"""
    addr: str = "0.0.0.0"
    port: int = 3825


@dataclass
class SessionConfig:
    """Session cookie configuration"""
    secret: str = ""
    cookieName: str = "filehost_session"
    maxAge: int = 14 * 24 * 3600
    httpsOnly: bool = False


@dataclass
class StorageConfig:
    """Upload directory and metadata locations"""
    uploadDir: Path = Path("uploads")
    dataDir: Path = Path("data")
    publicPrefix: str = "/f"
    maxUploadSize: int = 900 * 1024 * 1024
    reconcileOnStartup: bool = True

    def __post_init__(self):
        if isinstance(self.uploadDir, str):
            self.uploadDir = Path(self.uploadDir)
        if isinstance(self.dataDir, str):
            self.dataDir = Path(self.dataDir)
        self.uploadDir = self.uploadDir.resolve()
        self.dataDir = self.dataDir.resolve()

        prefix = "/" + self.publicPrefix.strip("/")
        self.publicPrefix = prefix if prefix != "/" else "/f"

    @property
    def metadata_file(self) -> Path:
        return self.dataDir / "files.json"

    @property
    def users_file(self) -> Path:
        return self.dataDir / "users.json"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    json: bool = True
    file: str = ""
    level: str = "INFO"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class UiConfig:
    """UI configuration"""
    brand: str = "filehost"
    title: str = "filehost Admin"


@dataclass
class Config:
    """Main configuration container"""
    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    ui: UiConfig = field(default_factory=UiConfig)


# HTTP Range parsing result
@dataclass
class HttpRange:
    """HTTP Range header parsing result"""
    start: Optional[int] = None
    end: Optional[int] = None
    suffix_length: Optional[int] = None

    def resolve(self, content_length: int) -> tuple[int, int]:
        """Resolve range to actual start/end positions"""
        if self.suffix_length is not None:
            # bytes=-500 (last 500 bytes)
            start = max(0, content_length - self.suffix_length)
            end = content_length - 1
        else:
            start = self.start if self.start is not None else 0
            end = self.end if self.end is not None else content_length - 1

            # Clamp the end to the last byte; a start past EOF stays invalid
            end = min(end, content_length - 1)

        return start, end


# Common MIME types
MIME_TYPES = {
    '.txt': 'text/plain',
    '.html': 'text/html',
    '.css': 'text/css',
    '.js': 'application/javascript',
    '.json': 'application/json',
    '.xml': 'application/xml',
    '.pdf': 'application/pdf',
    '.zip': 'application/zip',
    '.gz': 'application/gzip',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.svg': 'image/svg+xml',
    '.ico': 'image/x-icon',
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.mp4': 'video/mp4',
    '.webm': 'video/webm',
    '.mov': 'video/quicktime',
}

# Default MIME type for unknown files
DEFAULT_MIME_TYPE = 'application/octet-stream'
