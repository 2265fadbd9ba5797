import logging
import tempfile
from pathlib import Path

from modlens.config import Settings
from modlens.logging_setup import configure_logging


class TestSettings:
    def test_defaults(self, monkeypatch):
        for var in ("MODLENS_WORK_DIR", "MODLENS_MAX_CONCURRENCY", "MODLENS_INCLUDE_CONTENT_HASHES"):
            monkeypatch.delenv(var, raising=False)
        s = Settings(_env_file=None)
        assert s.work_dir == Path(tempfile.gettempdir())
        assert s.max_concurrency == 4
        assert s.max_download_bytes == 2 * 1024**3
        assert s.include_content_hashes is False

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MODLENS_WORK_DIR", str(tmp_path))
        monkeypatch.setenv("MODLENS_MAX_CONCURRENCY", "8")
        monkeypatch.setenv("MODLENS_INCLUDE_CONTENT_HASHES", "true")
        s = Settings(_env_file=None)
        assert s.work_dir == tmp_path
        assert s.max_concurrency == 8
        assert s.include_content_hashes is True

    def test_concurrency_floor(self):
        assert Settings(_env_file=None, max_concurrency=0).max_concurrency == 1


class TestLogging:
    def test_configure_quiets_http_loggers(self):
        configure_logging(logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        configure_logging()
