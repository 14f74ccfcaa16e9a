"""
Pytest configuration and fixtures.

Storage tests run against a throwaway SQLite file per test through aiosqlite.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from payment_ledger.config import Settings
from payment_ledger.core import (
    PaymentMethodStore,
    PaymentOrchestrator,
    TransactionLedger,
)
from payment_ledger.database import Base, Database
from payment_ledger.integrations import MockPaymentGateway


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests without storage")
    config.addinivalue_line("markers", "race: concurrent request scenarios")
    config.addinivalue_line("markers", "integration: HTTP end-to-end tests")


@pytest.fixture
def database_url(tmp_path: Any) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Create test settings."""
    return Settings(
        database_url=database_url,
        app_name="payment-ledger-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[Database, Any]:
    """Create a fresh database with all tables."""
    db = Database(database_url)
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def store(database: Database) -> PaymentMethodStore:
    return PaymentMethodStore(database)


@pytest.fixture
def ledger(database: Database) -> TransactionLedger:
    return TransactionLedger(database)


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def orchestrator(
    store: PaymentMethodStore, ledger: TransactionLedger, gateway: MockPaymentGateway
) -> PaymentOrchestrator:
    return PaymentOrchestrator(store=store, ledger=ledger, gateway=gateway)


@pytest.fixture
def row_count(database: Database) -> Callable[[type[Base]], Awaitable[int]]:
    """Count rows of a mapped table."""

    async def count(model: type[Base]) -> int:
        async with database.session() as session:
            return await session.scalar(select(func.count()).select_from(model))

    return count


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def sample_card() -> dict[str, Any]:
    """Sample card enrollment data that expires in the future."""
    return {
        "card_number": "4111111111111111",
        "exp_month": 12,
        "exp_year": datetime.now(timezone.utc).year + 3,
        "cvv": "123",
    }
