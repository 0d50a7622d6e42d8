"""
Error types raised by the file host operations
"""

from .models import ResponseCode


class FileHostError(Exception):
    """Base class for failures reported back to the operator"""

    status_code = 400
    code = ResponseCode.ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FileHostError):
    """Bad folder name, bad path or a missing required field"""
    pass


class NotFoundError(FileHostError):
    """A path segment or entry does not exist"""

    status_code = 404
    code = ResponseCode.NOT_FOUND


class FolderNotFoundError(NotFoundError):
    """A folder path does not resolve in the metadata document"""

    def __init__(self, path: str, message: str = None):
        super().__init__(message or f"Folder not found: {path or '/'}")
        self.path = path


class FileEntryNotFoundError(NotFoundError):
    """No file entry with the given stored name exists in the folder"""

    def __init__(self, folder_path: str, stored_name: str):
        super().__init__(f"File not found in metadata: {stored_name}")
        self.folder_path = folder_path
        self.stored_name = stored_name


class AlreadyExistsError(FileHostError):
    """A child folder with the same name already exists"""

    status_code = 409
    code = ResponseCode.CONFLICT


class PayloadTooLargeError(FileHostError):
    """Upload exceeds the configured byte ceiling"""

    status_code = 413
    code = ResponseCode.PAYLOAD_TOO_LARGE

    def __init__(self, max_size: int):
        super().__init__(f"File too large (max: {max_size} bytes)")
        self.max_size = max_size


class StorageError(FileHostError):
    """A physical filesystem operation failed"""

    status_code = 500
    code = ResponseCode.INTERNAL_ERROR


class MetadataWriteError(FileHostError):
    """The metadata document could not be persisted"""

    status_code = 500
    code = ResponseCode.INTERNAL_ERROR


class MetadataCorruptError(FileHostError):
    """The metadata document exists but cannot be parsed"""

    status_code = 500
    code = ResponseCode.INTERNAL_ERROR
