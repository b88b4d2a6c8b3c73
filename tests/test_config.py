"""
Tests for utils/config.py environment-driven settings.
"""
from pathlib import Path

from utils.config import DEFAULT_DB_PATH, AppConfig, ImportConfig

_ENV_VARS = (
    "APP_DB_PATH", "APP_DATA_DIR", "APP_PORT", "APP_HOST", "APP_LOG_FORMAT",
    "APP_CORS_ORIGINS", "APP_CACHE_TTL", "RATE_LIMIT_DOWNLOAD",
    "RATE_LIMIT_DEFAULT", "TRUSTED_PROXIES",
)


def _clear_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestAppConfig:
    def test_defaults(self, monkeypatch):
        _clear_env(monkeypatch)
        cfg = AppConfig.from_env()
        assert cfg.db_path == Path(DEFAULT_DB_PATH)
        assert cfg.api_port == 8000
        assert cfg.log_format == "text"
        assert cfg.cors_origins == ["*"]
        assert cfg.rate_limit_download == 10
        assert cfg.rate_limit_default == 120
        assert cfg.trusted_proxies == set()

    def test_env_overrides(self, monkeypatch):
        _clear_env(monkeypatch)
        monkeypatch.setenv("APP_PORT", "9100")
        monkeypatch.setenv("APP_CORS_ORIGINS", "http://a.example, http://b.example,")
        monkeypatch.setenv("TRUSTED_PROXIES", "10.0.0.1,10.0.0.2")
        monkeypatch.setenv("APP_CACHE_TTL", "30")
        cfg = AppConfig.from_env()
        assert cfg.api_port == 9100
        assert cfg.cors_origins == ["http://a.example", "http://b.example"]
        assert cfg.trusted_proxies == {"10.0.0.1", "10.0.0.2"}
        assert cfg.cache_ttl == 30.0


class TestImportConfig:
    def test_defaults(self, monkeypatch):
        _clear_env(monkeypatch)
        cfg = ImportConfig()
        assert cfg.data_dir == Path("data/UniquePermitsAnalysisData")
        assert cfg.batch_size == 500

    def test_db_path_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APP_DB_PATH", str(tmp_path / "p.sqlite"))
        assert ImportConfig().db_path == tmp_path / "p.sqlite"
