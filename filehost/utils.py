"""
Utility functions for filehost
"""

import mimetypes
import re
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode
import logging

from .models import HttpRange, MIME_TYPES, DEFAULT_MIME_TYPE

logger = logging.getLogger(__name__)

SIZE_UNITS = {
    "": 1,
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "M": 1024 ** 2,
    "MB": 1024 ** 2,
    "G": 1024 ** 3,
    "GB": 1024 ** 3,
    "T": 1024 ** 4,
    "TB": 1024 ** 4,
}


def get_mime_type(file_path: Path) -> str:
    """Get MIME type for file"""
    suffix = file_path.suffix.lower()

    # Check our custom MIME types first
    if suffix in MIME_TYPES:
        return MIME_TYPES[suffix]

    # Fall back to system mimetypes
    mime_type, _ = mimetypes.guess_type(str(file_path))
    return mime_type or DEFAULT_MIME_TYPE


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    size = float(size_bytes)

    while size >= 1024.0 and i < len(size_names) - 1:
        size /= 1024.0
        i += 1

    if i == 0:
        return f"{int(size)} {size_names[i]}"
    else:
        return f"{size:.1f} {size_names[i]}"


def format_timestamp(value: str, format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Format an ISO-8601 timestamp to a readable string"""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt.strftime(format_str)
    except (AttributeError, ValueError):
        return "Unknown"


def parse_size_to_bytes(value: str) -> int:
    """Parse sizes such as "900MB", "1.5G" or "1024" into bytes"""
    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*", str(value))
    if not match:
        raise ValueError(f"Invalid size: {value}")

    number, unit = match.groups()
    unit = unit.upper()
    if unit not in SIZE_UNITS:
        raise ValueError(f"Unknown size unit: {unit}")

    return int(float(number) * SIZE_UNITS[unit])


def parse_http_range(range_header: str) -> Optional[HttpRange]:
    """
    Parse HTTP Range header

    Supports:
    - bytes=start-end
    - bytes=start-
    - bytes=-suffix

    Args:
        range_header: Range header value (e.g., "bytes=0-1023")

    Returns:
        HttpRange object or None if invalid
    """
    if not range_header:
        return None

    # Must start with "bytes="
    if not range_header.startswith("bytes="):
        return None

    range_spec = range_header[6:].strip()

    # Multiple ranges are not supported, take the first one
    if ',' in range_spec:
        range_spec = range_spec.split(',')[0].strip()

    if range_spec.startswith('-'):
        # Suffix range: bytes=-500
        try:
            suffix_length = int(range_spec[1:])
        except ValueError:
            return None
        return HttpRange(suffix_length=suffix_length) if suffix_length > 0 else None

    elif range_spec.endswith('-'):
        # Start range: bytes=500-
        try:
            return HttpRange(start=int(range_spec[:-1]))
        except ValueError:
            return None

    elif '-' in range_spec:
        # Full range: bytes=0-1023
        try:
            start_str, end_str = range_spec.split('-', 1)
            start = int(start_str)
            end = int(end_str)
        except ValueError:
            return None
        if end < start:
            return None
        return HttpRange(start=start, end=end)

    return None


def normalize_path(path: str) -> str:
    """Normalize path separators for cross-platform compatibility"""
    return path.replace('\\', '/')


def get_file_extension(filename: str) -> str:
    """Extension of a client-supplied filename, case preserved"""
    return Path(normalize_path(filename).rsplit('/', 1)[-1]).suffix


def generate_stored_name(original_name: str) -> str:
    """Random token plus the original extension"""
    return f"{uuid.uuid4()}{get_file_extension(original_name)}"


def admin_redirect_url(path: str, success: Optional[str] = None, error: Optional[str] = None) -> str:
    """Admin listing URL carrying a status message"""
    query = {"path": path or ""}
    if success:
        query["success"] = success
    if error:
        query["error"] = error
    return f"/admin?{urlencode(query)}"


def create_response_headers(
    content_length: Optional[int] = None,
    content_type: str = "application/octet-stream",
    last_modified: Optional[float] = None,
    cache_control: str = "no-cache"
) -> dict:
    """Create standard response headers"""
    headers = {
        "Content-Type": content_type,
        "Cache-Control": cache_control,
        "X-Content-Type-Options": "nosniff",
    }

    if content_length is not None:
        headers["Content-Length"] = str(content_length)

    if last_modified:
        headers["Last-Modified"] = time.strftime(
            "%a, %d %b %Y %H:%M:%S GMT",
            time.gmtime(last_modified)
        )

    return headers
