"""
Middleware for filehost
"""

import logging
import time
from typing import Callable
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import get_current_user_optional
from .models import ApiResponse, ResponseCode

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Client address, honouring a single X-Forwarded-For hop"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "-"


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One ACCESS line per request; unhandled errors become a 500 envelope"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {e}")
            body = ApiResponse(code=ResponseCode.INTERNAL_ERROR.value, msg="Internal server error")
            response = JSONResponse(status_code=500, content=body.to_dict())

        elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        line = (
            f"ACCESS {get_client_ip(request)} {get_current_user_optional(request) or '-'} "
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms}ms"
        )
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)
        return response


def setup_middleware(app: FastAPI):
    """Setup request middleware; the session middleware is added by create_app"""
    app.add_middleware(RequestLogMiddleware)
