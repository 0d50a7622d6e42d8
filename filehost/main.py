"""
Main application factory and command line entry point for filehost
"""

import asyncio
import getpass
import json
import logging
import logging.handlers
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from . import __version__
from .admin import setup_admin_routes
from .auth import CredentialStore, LoginRequired, SessionRegistry, hash_password
from .config import load_config
from .file_host import FileHost
from .metadata import MetadataStore
from .middleware import setup_middleware
from .models import Config
from .public import setup_public_routes


logger = logging.getLogger(__name__)


def setup_logging(config: Config):
    """Setup logging configuration"""
    log_config = config.logging

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_config.level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    if log_config.json:
        formatter = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","msg":"%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_config.file:
        log_file = Path(log_config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=log_config.max_size_mb * 1024 * 1024,
            backupCount=log_config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def provision_storage(config: Config) -> MetadataStore:
    """Create the upload directory, credential file and metadata document"""
    storage = config.storage
    try:
        storage.uploadDir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Ensured upload directory exists: {storage.uploadDir}")

        storage.dataDir.mkdir(parents=True, exist_ok=True)
        if not storage.users_file.exists():
            storage.users_file.write_text("[]\n", encoding="utf-8")
            logger.warning(f"Created empty credential list: {storage.users_file}")

        store = MetadataStore(storage.metadata_file)
        store.initialize()
        return store

    except Exception as e:
        logger.error(f"Failed to provision storage: {e}")
        raise


def build_file_host(config: Config, store: MetadataStore) -> FileHost:
    return FileHost(
        config.storage.uploadDir,
        store,
        max_upload_size=config.storage.maxUploadSize,
    )


def create_app(config_path: Optional[str] = None) -> FastAPI:
    """Create FastAPI application"""

    config = load_config(config_path)
    setup_logging(config)

    store = provision_storage(config)
    file_host = build_file_host(config, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"filehost starting on {config.server.addr}:{config.server.port}")
        logger.info(f"Serving files from {config.storage.uploadDir} under {config.storage.publicPrefix}/")
        if config.storage.reconcileOnStartup:
            report = await file_host.reconcile(apply=False)
            if not report.clean:
                logger.warning("Upload directory and metadata differ; run `filehost reconcile --apply` to converge")
        yield
        logger.info("filehost shutdown complete")

    app = FastAPI(
        title=config.ui.title,
        description="Admin-gated file host",
        version=__version__,
        docs_url="/docs" if os.getenv("FILEHOST_DEBUG") else None,
        redoc_url="/redoc" if os.getenv("FILEHOST_DEBUG") else None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.file_host = file_host
    app.state.credentials = CredentialStore(config.storage.users_file)
    app.state.sessions = SessionRegistry(config.session.maxAge)

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        return RedirectResponse("/login", status_code=303)

    setup_middleware(app)

    # Added last so it wraps the access log and can expose the session to it
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.session.secret,
        session_cookie=config.session.cookieName,
        max_age=config.session.maxAge,
        https_only=config.session.httpsOnly,
        same_site="lax",
    )

    setup_admin_routes(app)
    setup_public_routes(app, config.storage.publicPrefix)

    @app.get("/")
    async def index():
        return RedirectResponse("/admin", status_code=303)

    @app.get("/healthz")
    async def health_check():
        return {"ok": True, "version": __version__}

    return app


def run_reconcile(config_path: Optional[str], apply: bool) -> int:
    config = load_config(config_path)
    setup_logging(config)
    store = provision_storage(config)
    report = asyncio.run(build_file_host(config, store).reconcile(apply=apply))
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.clean or report.applied else 1


def run_hash_password() -> int:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("Passwords do not match", file=sys.stderr)
        return 1
    print(hash_password(password))
    return 0


def main(argv=None):
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="filehost admin-gated file host")
    parser.add_argument("--config", "-c", default=None, help="Configuration file path")

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP server (default)")
    serve.add_argument("--host", default=None, help="Host to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")

    reconcile = subparsers.add_parser("reconcile", help="Compare the upload directory with the metadata")
    reconcile.add_argument("--apply", action="store_true", help="Bring the metadata in line with the disk (stop the server first)")

    subparsers.add_parser("hash-password", help="Print a bcrypt hash for users.json")

    args = parser.parse_args(argv)

    if args.config:
        os.environ["FILEHOST_CONFIG"] = args.config

    if args.command == "reconcile":
        return run_reconcile(args.config, args.apply)
    if args.command == "hash-password":
        return run_hash_password()

    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Failed to start server: {e}", file=sys.stderr)
        return 1

    host = getattr(args, "host", None) or config.server.addr
    port = getattr(args, "port", None) or config.server.port

    uvicorn.run(
        "filehost.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=getattr(args, "reload", False),
        access_log=False,  # RequestLogMiddleware handles access logging
        server_header=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
