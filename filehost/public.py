"""
Anonymous retrieval of uploaded files under the public prefix
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from .fs import FileSystemError, RangeNotSatisfiableError, open_file_for_download
from .utils import create_response_headers, get_mime_type, parse_http_range

logger = logging.getLogger(__name__)


def create_public_router(prefix: str) -> APIRouter:
    """Router that maps ``<prefix>/<path>`` onto the upload directory"""

    router = APIRouter(prefix=prefix, tags=["public"])

    @router.get("/{file_path:path}")
    async def serve_file(request: Request, file_path: str):
        """Raw bytes of the file at ``file_path``, with single-range support"""
        upload_root = request.app.state.config.storage.uploadDir

        range_header = request.headers.get("Range")
        http_range = parse_http_range(range_header) if range_header else None

        try:
            file_generator, start, end, total_size, physical = await open_file_for_download(
                upload_root, file_path, http_range
            )
        except RangeNotSatisfiableError as e:
            return PlainTextResponse(
                "Requested Range Not Satisfiable",
                status_code=416,
                headers={"Content-Range": f"bytes */{e.total_size}"},
            )
        except FileSystemError as e:
            logger.debug(f"Public lookup failed for {file_path!r}: {e}")
            return PlainTextResponse("Not Found", status_code=404)

        media_type = get_mime_type(physical)
        headers = create_response_headers(
            content_length=end - start + 1,
            content_type=media_type,
            last_modified=physical.stat().st_mtime,
            cache_control="public, max-age=0",
        )
        headers["Accept-Ranges"] = "bytes"

        if http_range:
            headers["Content-Range"] = f"bytes {start}-{end}/{total_size}"
            status_code = 206
        else:
            status_code = 200

        return StreamingResponse(
            file_generator,
            status_code=status_code,
            headers=headers,
            media_type=media_type,
        )

    return router


def setup_public_routes(app, prefix: str):
    """Setup public download routes"""
    app.include_router(create_public_router(prefix))
    logger.info(f"Public file routes mounted at {prefix}")
