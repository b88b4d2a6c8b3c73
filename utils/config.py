"""Configuration management for the permit dashboard.

Provides:
- ``ImportConfig``: importer defaults (data directory, log directory, batch size)
- ``AppConfig``: API/runtime settings read from environment variables
"""

import os as _os
from pathlib import Path

DEFAULT_DB_PATH = "permit_dashboard.sqlite"
DEFAULT_DATA_DIR = "data/UniquePermitsAnalysisData"


class ImportConfig:
    """Defaults for the JSON fixture importer."""

    def __init__(self):
        self.db_path = Path(_os.getenv("APP_DB_PATH", DEFAULT_DB_PATH))
        self.data_dir = Path(_os.getenv("APP_DATA_DIR", DEFAULT_DATA_DIR))
        self.log_dir = Path("import_logs")
        self.batch_size = 500


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class AppConfig:
    """Application-level configuration loaded from environment variables.

    All env vars have sensible defaults so the application works out of the
    box without any configuration.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: permit_dashboard.sqlite)
        APP_DATA_DIR: Directory holding the JSON fixtures
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        APP_CACHE_TTL: Seconds dashboard responses stay cached (default: 300)
        RATE_LIMIT_DOWNLOAD: Max download requests per minute per IP (default: 10)
        RATE_LIMIT_DEFAULT: Max requests per minute for other endpoints (default: 120)
        TRUSTED_PROXIES: Comma-separated proxy IP addresses to trust for forwarded IPs
    """

    def __init__(self) -> None:
        self.db_path = Path(_os.getenv("APP_DB_PATH", DEFAULT_DB_PATH))
        self.data_dir = Path(_os.getenv("APP_DATA_DIR", DEFAULT_DATA_DIR))
        self.api_port = int(_os.getenv("APP_PORT", "8000"))
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*" else _split_csv(raw_origins)
        )
        self.cache_ttl = float(_os.getenv("APP_CACHE_TTL", "300"))
        self.rate_limit_download = int(_os.getenv("RATE_LIMIT_DOWNLOAD", "10"))
        self.rate_limit_default = int(_os.getenv("RATE_LIMIT_DEFAULT", "120"))
        self.trusted_proxies: set[str] = set(
            _split_csv(_os.getenv("TRUSTED_PROXIES", ""))
        )

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
