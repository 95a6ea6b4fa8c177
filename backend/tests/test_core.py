"""
Core 모듈 테스트: 설정, 예외, 로깅
"""

import json
import logging
from unittest.mock import MagicMock

import pytest

from bizreg.core.config import Settings
from bizreg.core.database import _prepare_database_url, get_db
from bizreg.core.exceptions import (
    ConflictKind,
    ErrorCategory,
    SourceUnavailableError,
    StoreConflictError,
)
from bizreg.core.logging import JSONLogFormatter, RunContext


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ENRICHMENT_MAX_WORKERS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.ENRICHMENT_MAX_WORKERS == 10
        assert settings.ENRICHMENT_TASK_TIMEOUT == 30.0
        assert settings.ENRICHMENT_RUN_TIMEOUT == 300.0
        assert settings.PERSIST_BATCH_SIZE == 100
        assert settings.CORPORATE_MARKER == "법인"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ENRICHMENT_MAX_WORKERS", "4")

        assert Settings(_env_file=None).ENRICHMENT_MAX_WORKERS == 4


class TestDatabaseUrl:

    def test_sqlite_disables_thread_check(self):
        url, connect_args = _prepare_database_url("sqlite:///./x.db")

        assert url == "sqlite:///./x.db"
        assert connect_args == {"check_same_thread": False}

    def test_postgres_gets_sslmode_for_remote_hosts(self):
        url, connect_args = _prepare_database_url("postgres://u:p@db.example.com:5432/bizreg")

        assert url.startswith("postgresql://")
        assert "sslmode=require" in url
        assert "statement_timeout" in connect_args["options"]


class TestGetDb:
    """get_db 세션 수명"""

    def test_uses_given_factory_and_closes_session(self):
        session = MagicMock()
        factory = MagicMock(return_value=session)

        with get_db(factory) as db:
            assert db is session

        factory.assert_called_once_with()
        session.close.assert_called_once()

    def test_closes_session_on_error(self):
        session = MagicMock()

        with pytest.raises(RuntimeError):
            with get_db(MagicMock(return_value=session)):
                raise RuntimeError("boom")

        session.close.assert_called_once()


class TestExceptions:

    def test_to_dict(self):
        error = StoreConflictError("dup", kind=ConflictKind.DUPLICATE_KEY, key="1234567890")

        assert error.to_dict() == {
            "error": "StoreConflictError",
            "message": "dup",
            "code": "ING3001",
            "category": "store",
            "retryable": False,
            "key": "1234567890",
            "kind": "duplicate_key",
        }

    def test_source_unavailable(self):
        error = SourceUnavailableError(source="domestic")

        assert error.category == ErrorCategory.SOURCE
        assert error.retryable is True
        assert error.source == "domestic"


class TestLogging:

    def test_json_formatter_includes_run_context(self):
        run_id = RunContext.new_run("overseas")
        try:
            record = logging.LogRecord("bizreg.test", logging.INFO, __file__, 1, "[Test] 메시지", None, None)
            entry = json.loads(JSONLogFormatter().format(record))
        finally:
            RunContext.clear()

        assert entry["run_id"] == run_id
        assert entry["variant"] == "overseas"
        assert entry["component"] == "bizreg.test"
        assert entry["message"] == "[Test] 메시지"

    def test_no_run(self):
        RunContext.clear()

        assert RunContext.get_run_id() == "no-run"
