"""
Admin routes: login, folder listing, upload, folder and file management
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from .auth import get_current_user_optional, login, logout, require_session
from .exceptions import FileHostError
from .file_host import FileHost
from .models import ApiResponse, FolderListing, ResponseCode
from .utils import admin_redirect_url, format_file_size, format_timestamp

logger = logging.getLogger(__name__)

admin_router = APIRouter(tags=["admin"])

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.filters["filesize"] = format_file_size
templates.env.filters["timestamp"] = format_timestamp


def get_file_host(request: Request) -> FileHost:
    return request.app.state.file_host


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _page_context(request: Request, **extra) -> dict:
    config = request.app.state.config
    context = {
        "brand": config.ui.brand,
        "title": config.ui.title,
        "public_prefix": config.storage.publicPrefix,
        "max_upload_size": config.storage.maxUploadSize,
    }
    context.update(extra)
    return context


@admin_router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    """Login form"""
    if get_current_user_optional(request):
        return _redirect("/admin")
    return templates.TemplateResponse(request, "login.html", _page_context(request, error=None))


@admin_router.post("/login")
async def login_submit(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
):
    """Check credentials and open a session"""
    if not username or not password:
        return templates.TemplateResponse(
            request, "login.html",
            _page_context(request, error="Username and password required."),
            status_code=400,
        )

    try:
        user = request.app.state.credentials.authenticate(username, password)
    except (OSError, ValueError) as e:
        logger.error(f"Login error: {e}")
        return templates.TemplateResponse(
            request, "login.html",
            _page_context(request, error="An error occurred during login."),
            status_code=500,
        )

    if not user:
        return templates.TemplateResponse(
            request, "login.html",
            _page_context(request, error="Invalid username or password."),
            status_code=401,
        )

    login(request, user)
    return _redirect("/admin")


@admin_router.post("/logout")
async def logout_submit(request: Request):
    logout(request)
    return _redirect("/login")


@admin_router.get("/admin", response_class=HTMLResponse)
async def admin_page(
    request: Request,
    path: str = "",
    success: Optional[str] = None,
    error: Optional[str] = None,
    user: str = Depends(require_session),
    file_host: FileHost = Depends(get_file_host),
):
    """Listing of one folder with the management forms"""
    try:
        listing = await file_host.list_folder(path)
    except FileHostError as e:
        logger.warning(f"Admin listing failed for {path!r}: {e.message}")
        listing = FolderListing(path="", files=[], folders=[])
        error = error or e.message

    context = _page_context(
        request,
        user=user,
        listing=listing,
        success=success,
        error=error,
    )
    return templates.TemplateResponse(request, "admin.html", context)


@admin_router.get("/admin/api/list")
async def admin_list(
    path: str = "",
    user: str = Depends(require_session),
    file_host: FileHost = Depends(get_file_host),
):
    """JSON listing of one folder"""
    try:
        listing = await file_host.list_folder(path)
    except FileHostError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=ApiResponse(
                code=e.code.value,
                msg=e.message,
                data=None
            ).to_dict()
        )

    return ApiResponse(
        code=ResponseCode.SUCCESS.value,
        msg="success",
        data=listing.to_dict()
    ).to_dict()


@admin_router.post("/admin/upload")
async def upload_submit(
    path: str = Form(""),
    file: Optional[UploadFile] = File(None),
    user: str = Depends(require_session),
    file_host: FileHost = Depends(get_file_host),
):
    """Upload one file into the folder given by ``path``"""
    if file is None or not file.filename:
        return _redirect(admin_redirect_url(path, error="No file selected for upload."))

    try:
        await file_host.upload_file(path, file)
    except FileHostError as e:
        logger.error(f"Upload by {user} into {path!r} failed: {e.message}")
        return _redirect(admin_redirect_url(path, error=e.message))
    finally:
        await file.close()

    return _redirect(admin_redirect_url(path, success="File uploaded successfully!"))


@admin_router.post("/admin/create-folder")
async def create_folder_submit(
    folderName: str = Form(""),
    path: str = Form(""),
    user: str = Depends(require_session),
    file_host: FileHost = Depends(get_file_host),
):
    try:
        await file_host.create_folder(path, folderName)
    except FileHostError as e:
        logger.warning(f"Create folder {folderName!r} in {path!r} failed: {e.message}")
        return _redirect(admin_redirect_url(path, error=e.message))

    return _redirect(admin_redirect_url(path, success="Folder created successfully!"))


@admin_router.post("/admin/delete-file")
async def delete_file_submit(
    storedName: str = Form(""),
    path: str = Form(""),
    user: str = Depends(require_session),
    file_host: FileHost = Depends(get_file_host),
):
    try:
        await file_host.delete_file(path, storedName)
    except FileHostError as e:
        logger.warning(f"Delete file {storedName!r} in {path!r} failed: {e.message}")
        return _redirect(admin_redirect_url(path, error=e.message))

    return _redirect(admin_redirect_url(path, success="File deleted successfully!"))


@admin_router.post("/admin/delete-folder")
async def delete_folder_submit(
    path: str = Form(""),
    user: str = Depends(require_session),
    file_host: FileHost = Depends(get_file_host),
):
    """Delete a folder; the redirect goes to its parent"""
    trimmed = path.strip("/")
    parent = trimmed.rsplit("/", 1)[0] if "/" in trimmed else ""

    try:
        await file_host.delete_folder(path)
    except FileHostError as e:
        logger.warning(f"Delete folder {path!r} failed: {e.message}")
        return _redirect(admin_redirect_url(parent, error=e.message))

    return _redirect(admin_redirect_url(parent, success="Folder and its contents deleted successfully!"))


def setup_admin_routes(app):
    """Setup admin routes"""
    app.include_router(admin_router)
    logger.info("Admin routes setup complete")
