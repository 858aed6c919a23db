"""
Billing Ledger Backend — Settings Tests
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from ledger.config import Settings
from ledger.database import _engine_options


class TestSettings:

    def test_log_level_is_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(PydanticValidationError):
            Settings(log_level="verbose")

    def test_cors_origins_list(self):
        config = Settings(cors_origins="http://a.test, http://b.test,")
        assert config.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_batch_limit_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            Settings(invoice_batch_limit=0)

    def test_defaults(self):
        config = Settings(database_url="postgresql+asyncpg://u:p@db:5432/ledger")
        assert config.port == 5000
        assert config.invoice_batch_limit == 5
        assert not config.is_sqlite


class TestEngineOptions:

    def test_asyncpg_gets_timeouts_and_pool(self):
        config = Settings(
            database_url="postgresql+asyncpg://u:p@db:5432/ledger",
            db_connect_timeout=3,
            db_statement_timeout=7,
        )
        options = _engine_options(config)
        assert options["connect_args"] == {"timeout": 3, "command_timeout": 7}
        assert options["pool_size"] == config.db_pool_size

    def test_sqlite_skips_pool_sizing(self):
        options = _engine_options(Settings(database_url="sqlite+aiosqlite:///ledger.db"))
        assert "pool_size" not in options
