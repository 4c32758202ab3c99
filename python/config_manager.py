"""
Configuration for the Blacklist Registry
Typed sections read from config.yaml (PyYAML) and validated once at load.
Database credentials can still be overridden by DATABASE_URL / DB_* at connect time.
"""

import yaml
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class DatabaseConfig:
    """Record store connection (config.yaml ``database``)"""
    host: str = "localhost"
    port: int = 5432
    user: str = "registry_user"
    password: str = "registry_password"
    name: str = "blacklist_registry"


@dataclass
class LoggingConfig:
    """Root logger setup (config.yaml ``logging``)"""
    level: str = "INFO"
    file: str = "logs/registry.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class PaginationConfig:
    """Listing defaults; the hard upper bound mirrors the API contract"""
    default_limit: int = 20
    max_limit: int = 100
    suggestion_limit: int = 10
    recent_activity_limit: int = 10


@dataclass
class ApiConfig:
    """HTTP layer configuration"""
    cors_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])
    enable_docs: bool = True


@dataclass
class SecurityConfig:
    """Security event log configuration"""
    log_dir: str = "logs"
    console: bool = False


@dataclass
class MonitoringConfig:
    """Repository call thresholds in milliseconds"""
    slow_query_ms: float = 1000.0
    notice_query_ms: float = 250.0
    prometheus: bool = True


class ConfigurationError(Exception):
    """config.yaml is unreadable or holds an invalid value"""
    pass


class ConfigManager:
    """Process configuration: one dataclass per config.yaml section"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Load config.yaml, or fall back to defaults when it does not exist

        Args:
            config_path: Explicit path; searched for when omitted
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.database: DatabaseConfig = DatabaseConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.pagination: PaginationConfig = PaginationConfig()
        self.api: ApiConfig = ApiConfig()
        self.security: SecurityConfig = SecurityConfig()
        self.monitoring: MonitoringConfig = MonitoringConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning("Config file not found at %s, using defaults", self.config_path)

    def _find_config(self) -> Path:
        """First existing config.yaml beside this module or under the working directory"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Parse and validate every section; raises ConfigurationError"""
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
        self._parse_logging()
        self._parse_pagination()
        self._parse_api()
        self._parse_security()
        self._parse_monitoring()
        self._validate()

    def _parse_database(self) -> None:
        """``database`` section; missing keys keep their defaults"""
        cfg = self._raw_config.get('database', {})
        self.database = DatabaseConfig(
            host=cfg.get('host', self.database.host),
            port=cfg.get('port', self.database.port),
            user=cfg.get('user', self.database.user),
            password=cfg.get('password', self.database.password),
            name=cfg.get('name', self.database.name)
        )

    def _parse_logging(self) -> None:
        """``logging`` section; the level is upper-cased before validation"""
        cfg = self._raw_config.get('logging', {})
        self.logging = LoggingConfig(
            level=str(cfg.get('level', 'INFO')).upper(),
            file=cfg.get('file', self.logging.file),
            console=cfg.get('console', True),
            format=cfg.get('format', self.logging.format)
        )

    def _parse_pagination(self) -> None:
        """Parse pagination configuration"""
        cfg = self._raw_config.get('pagination', {})
        self.pagination = PaginationConfig(
            default_limit=cfg.get('default_limit', 20),
            max_limit=cfg.get('max_limit', 100),
            suggestion_limit=cfg.get('suggestion_limit', 10),
            recent_activity_limit=cfg.get('recent_activity_limit', 10)
        )

    def _parse_api(self) -> None:
        """Parse API configuration"""
        cfg = self._raw_config.get('api', {})
        self.api = ApiConfig(
            cors_origins=cfg.get('cors_origins', self.api.cors_origins),
            enable_docs=cfg.get('enable_docs', True)
        )

    def _parse_security(self) -> None:
        """Parse security log configuration"""
        cfg = self._raw_config.get('security', {})
        self.security = SecurityConfig(
            log_dir=cfg.get('log_dir', 'logs'),
            console=cfg.get('console', False)
        )

    def _parse_monitoring(self) -> None:
        """Parse repository call thresholds"""
        cfg = self._raw_config.get('monitoring', {})
        self.monitoring = MonitoringConfig(
            slow_query_ms=float(cfg.get('slow_query_ms', 1000.0)),
            notice_query_ms=float(cfg.get('notice_query_ms', 250.0)),
            prometheus=cfg.get('prometheus', True)
        )

    def _validate(self) -> None:
        """Validate configuration values"""
        if self.logging.level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"logging.level must be one of {', '.join(VALID_LOG_LEVELS)}, "
                f"got {self.logging.level!r}"
            )

        pagination = self.pagination
        if pagination.max_limit < 1:
            raise ConfigurationError("pagination.max_limit must be at least 1")
        if not 1 <= pagination.default_limit <= pagination.max_limit:
            raise ConfigurationError(
                f"pagination.default_limit must be between 1 and {pagination.max_limit}"
            )
        if pagination.suggestion_limit < 1 or pagination.recent_activity_limit < 1:
            raise ConfigurationError("pagination limits must be positive")

        if self.monitoring.notice_query_ms > self.monitoring.slow_query_ms:
            raise ConfigurationError("monitoring.notice_query_ms must not exceed slow_query_ms")

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Process-wide instance, created on first use"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the process-wide instance (tests)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary (password masked)"""
        sections = {
            'database': self.database,
            'logging': self.logging,
            'pagination': self.pagination,
            'api': self.api,
            'security': self.security,
            'monitoring': self.monitoring,
        }
        exported = {name: asdict(section) for name, section in sections.items()}
        exported['database']['password'] = '***'
        return exported


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Process-wide configuration"""
    return ConfigManager.get_instance(config_path)
