"""
Tests for the storage handle and settings.
"""
from typing import Any

import pytest
from pydantic import ValidationError

from payment_ledger.config import Settings
from payment_ledger.database import Database
from payment_ledger.errors import ErrorKind, StoreError


class TestDatabase:
    @pytest.mark.asyncio
    async def test_ping(self, database: Database) -> None:
        await database.ping()

    @pytest.mark.asyncio
    async def test_ping_unreachable_raises_store_error(self, tmp_path: Any) -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'ledger.db'}")

        with pytest.raises(StoreError) as exc_info:
            await database.ping()

        assert exc_info.value.kind is ErrorKind.INTERNAL
        assert exc_info.value.cause is not None
        await database.close()

    @pytest.mark.asyncio
    async def test_create_all_is_repeatable(self, database: Database) -> None:
        await database.create_all()
        await database.ping()

    @pytest.mark.unit
    def test_from_settings(self, test_settings: Settings) -> None:
        database = Database.from_settings(test_settings)

        assert database.database_url == test_settings.database_url


class TestSettings:
    @pytest.mark.unit
    def test_log_level_normalized(self, database_url: str) -> None:
        settings = Settings(database_url=database_url, log_level="debug")

        assert settings.log_level == "DEBUG"
        assert settings.gateway_decline_threshold_cents == 100_000

    @pytest.mark.unit
    def test_invalid_log_level(self, database_url: str) -> None:
        with pytest.raises(ValidationError):
            Settings(database_url=database_url, log_level="LOUD")

    @pytest.mark.unit
    def test_negative_decline_threshold(self, database_url: str) -> None:
        with pytest.raises(ValidationError):
            Settings(database_url=database_url, gateway_decline_threshold_cents=-1)
