"""
Back-office settings: store location, HTTP server, logging and query
monitoring thresholds, read from config.yaml

Environment variables override file values so deployments can adjust a
single setting without editing the file.
"""

import os
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Where the SQLite store lives"""
    path: str = "data/admin_ui.db"
    url: Optional[str] = None
    echo: bool = False


@dataclass
class ApiConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])
    max_upload_size_mb: int = 10
    upload_directory: str = "uploads/documents"


@dataclass
class LoggingConfig:
    """Root logger level and line format"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class MonitoringSettings:
    """Slow query thresholds"""
    slow_query_threshold_ms: float = 1000.0
    warning_threshold_ms: float = 500.0
    enable_prometheus: bool = True


class ConfigurationError(Exception):
    """config.yaml or an override holds a value the service cannot run with"""
    pass


VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigManager:
    """Manages application configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Load settings from `config_path` (or CONFIG_PATH, or the first config.yaml found)

        Args:
            config_path: Path to config.yaml file
        """
        config_path = config_path or os.getenv("CONFIG_PATH")
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.database: DatabaseConfig = DatabaseConfig()
        self.api: ApiConfig = ApiConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.monitoring: MonitoringSettings = MonitoringSettings()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._apply_env_overrides()
            self._validate()

    def _find_config(self) -> Path:
        """config.yaml in the working directory, else next to this module"""
        search_paths = [
            Path.cwd() / "config.yaml",
            Path(__file__).parent / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Read the YAML file, then apply env overrides and validate"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_database()
        self._parse_api()
        self._parse_logging()
        self._parse_monitoring()
        self._apply_env_overrides()
        self._validate()

    def _parse_database(self) -> None:
        cfg = self._raw_config.get('database') or {}
        self.database = DatabaseConfig(
            path=cfg.get('path', self.database.path),
            url=cfg.get('url', self.database.url),
            echo=bool(cfg.get('echo', self.database.echo))
        )

    def _parse_api(self) -> None:
        cfg = self._raw_config.get('api') or {}
        self.api = ApiConfig(
            host=cfg.get('host', self.api.host),
            port=cfg.get('port', self.api.port),
            cors_origins=cfg.get('cors_origins', self.api.cors_origins),
            max_upload_size_mb=cfg.get('max_upload_size_mb', self.api.max_upload_size_mb),
            upload_directory=cfg.get('upload_directory', self.api.upload_directory)
        )

    def _parse_logging(self) -> None:
        cfg = self._raw_config.get('logging') or {}
        self.logging = LoggingConfig(
            level=str(cfg.get('level', self.logging.level)).upper(),
            format=cfg.get('format', self.logging.format)
        )

    def _parse_monitoring(self) -> None:
        cfg = self._raw_config.get('monitoring') or {}
        self.monitoring = MonitoringSettings(
            slow_query_threshold_ms=cfg.get('slow_query_threshold_ms', 1000.0),
            warning_threshold_ms=cfg.get('warning_threshold_ms', 500.0),
            enable_prometheus=cfg.get('enable_prometheus', True)
        )

    def _apply_env_overrides(self) -> None:
        """Environment variables win over the file"""
        if os.getenv("DB_PATH"):
            self.database.path = os.environ["DB_PATH"]
        if os.getenv("DATABASE_URL"):
            self.database.url = os.environ["DATABASE_URL"]
        if os.getenv("DB_ECHO"):
            self.database.echo = os.environ["DB_ECHO"].lower() == "true"
        if os.getenv("API_HOST"):
            self.api.host = os.environ["API_HOST"]
        if os.getenv("API_PORT"):
            self.api.port = os.environ["API_PORT"]
        if os.getenv("MAX_UPLOAD_SIZE_MB"):
            self.api.max_upload_size_mb = os.environ["MAX_UPLOAD_SIZE_MB"]
        if os.getenv("UPLOAD_DIR"):
            self.api.upload_directory = os.environ["UPLOAD_DIR"]
        if os.getenv("CORS_ORIGINS"):
            self.api.cors_origins = [
                origin.strip() for origin in os.environ["CORS_ORIGINS"].split(",") if origin.strip()
            ]

    def _validate(self) -> None:
        """Validate and normalize configuration values"""
        try:
            self.api.port = int(self.api.port)
            self.api.max_upload_size_mb = int(self.api.max_upload_size_mb)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"api.port and api.max_upload_size_mb must be integers: {e}")

        if not 0 < self.api.port < 65536:
            raise ConfigurationError(f"api.port out of range: {self.api.port}")
        if self.api.max_upload_size_mb <= 0:
            raise ConfigurationError("api.max_upload_size_mb must be positive")
        if self.logging.level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"logging.level must be one of {', '.join(VALID_LOG_LEVELS)}, got {self.logging.level}"
            )
        if self.monitoring.warning_threshold_ms > self.monitoring.slow_query_threshold_ms:
            raise ConfigurationError(
                "monitoring.warning_threshold_ms cannot exceed monitoring.slow_query_threshold_ms"
            )
        if isinstance(self.api.cors_origins, str):
            self.api.cors_origins = [o.strip() for o in self.api.cors_origins.split(",") if o.strip()]

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Process-wide settings; `config_path` only matters on the first call"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the process-wide settings so the next get_instance reloads"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view of every section"""
        return {
            'database': {
                'path': self.database.path,
                'url': self.database.url,
                'echo': self.database.echo
            },
            'api': {
                'host': self.api.host,
                'port': self.api.port,
                'cors_origins': list(self.api.cors_origins),
                'max_upload_size_mb': self.api.max_upload_size_mb,
                'upload_directory': self.api.upload_directory
            },
            'logging': {
                'level': self.logging.level,
                'format': self.logging.format
            },
            'monitoring': {
                'slow_query_threshold_ms': self.monitoring.slow_query_threshold_ms,
                'warning_threshold_ms': self.monitoring.warning_threshold_ms,
                'enable_prometheus': self.monitoring.enable_prometheus
            }
        }


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Shorthand for ConfigManager.get_instance"""
    return ConfigManager.get_instance(config_path)
