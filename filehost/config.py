"""
Configuration loading and management for filehost
"""

import os
import secrets
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from .models import (
    Config, ServerConfig, SessionConfig, StorageConfig, LoggingConfig, UiConfig
)
from .utils import parse_size_to_bytes

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "filehost.yaml"

# Environment variables that override values from the YAML file
ENV_PORT = "FILEHOST_PORT"
ENV_SESSION_SECRET = "FILEHOST_SESSION_SECRET"
ENV_MAX_UPLOAD_SIZE = "FILEHOST_MAX_UPLOAD_SIZE"


class ConfigError(Exception):
    """Raised when configuration values cannot be used"""
    pass


class ConfigManager:
    """Configuration manager"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path).resolve()
        self.config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file and the environment"""
        data: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid configuration file {self.config_path}: {e}") from e
            logger.info(f"Configuration loaded from {self.config_path}")
        else:
            logger.warning(f"Configuration file not found: {self.config_path}, using defaults")

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        config = self._parse_config(data)
        self._apply_env_overrides(config)

        if not config.session.secret:
            logger.warning("No session secret configured; generated a random one, sessions will not survive restarts")
            config.session.secret = secrets.token_hex(32)

        self.config = config
        return config

    def _parse_config(self, data: Dict[str, Any]) -> Config:
        """Parse configuration data into Config object"""

        # Relative storage paths are anchored at the config file's directory
        base_dir = self.config_path.parent

        server_data = data.get('server', {}) or {}
        server = ServerConfig(
            addr=server_data.get('addr', '0.0.0.0'),
            port=int(server_data.get('port', 3825))
        )

        session_data = data.get('session', {}) or {}
        session = SessionConfig(
            secret=str(session_data.get('secret', '') or ''),
            cookieName=session_data.get('cookieName', 'filehost_session'),
            maxAge=int(session_data.get('maxAge', 14 * 24 * 3600)),
            httpsOnly=bool(session_data.get('httpsOnly', False))
        )

        storage_data = data.get('storage', {}) or {}
        max_upload = storage_data.get('maxUploadSize', 900 * 1024 * 1024)
        try:
            max_upload = parse_size_to_bytes(max_upload)
        except ValueError as e:
            raise ConfigError(f"Invalid storage.maxUploadSize: {e}") from e

        storage = StorageConfig(
            uploadDir=base_dir / storage_data.get('uploadDir', 'uploads'),
            dataDir=base_dir / storage_data.get('dataDir', 'data'),
            publicPrefix=storage_data.get('publicPrefix', '/f'),
            maxUploadSize=max_upload,
            reconcileOnStartup=bool(storage_data.get('reconcileOnStartup', True))
        )

        logging_data = data.get('logging', {}) or {}
        logging_config = LoggingConfig(
            json=logging_data.get('json', True),
            file=logging_data.get('file', ''),
            level=logging_data.get('level', 'INFO'),
            max_size_mb=logging_data.get('max_size_mb', 100),
            backup_count=logging_data.get('backup_count', 5)
        )

        ui_data = data.get('ui', {}) or {}
        ui = UiConfig(
            brand=ui_data.get('brand', 'filehost'),
            title=ui_data.get('title', 'filehost Admin')
        )

        return Config(
            server=server,
            session=session,
            storage=storage,
            logging=logging_config,
            ui=ui
        )

    def _apply_env_overrides(self, config: Config):
        """Apply FILEHOST_* environment variables"""
        port = os.getenv(ENV_PORT)
        if port:
            try:
                config.server.port = int(port)
            except ValueError as e:
                raise ConfigError(f"Invalid {ENV_PORT}: {port}") from e

        secret = os.getenv(ENV_SESSION_SECRET)
        if secret:
            config.session.secret = secret

        max_upload = os.getenv(ENV_MAX_UPLOAD_SIZE)
        if max_upload:
            try:
                config.storage.maxUploadSize = parse_size_to_bytes(max_upload)
            except ValueError as e:
                raise ConfigError(f"Invalid {ENV_MAX_UPLOAD_SIZE}: {e}") from e


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from file"""
    if not config_path:
        config_path = os.getenv("FILEHOST_CONFIG", DEFAULT_CONFIG_PATH)
    return ConfigManager(config_path).load_config()
