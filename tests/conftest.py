"""Shared fixtures.

Canonical contract: request 1001, $10,000 at 12.00% nominal for 12 months,
instrumented on Wed 2025-01-15 so the first note lands on Sat 2025-02-15.
Every test gets its own SQLite file so state never leaks between tests.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from formalization.config import settings
from formalization.models.contracts import CreditContractDraft, SaleContractDraft
from formalization.models.db import Base

FIXED_NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture(autouse=True)
def _no_origination_cache(monkeypatch):
    """Keep tests off Redis."""
    monkeypatch.setattr(settings, "origination_cache_enabled", False)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'formalization.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def credit_draft() -> CreditContractDraft:
    """$10K at 12% for 12 months."""
    return CreditContractDraft(
        request_id=1001,
        contract_number="CC-2025-0001",
        approved_amount=Decimal("10000.00"),
        term_months=12,
        annual_rate=Decimal("12.00"),
    )


@pytest.fixture
def sale_draft() -> SaleContractDraft:
    return SaleContractDraft(
        request_id=1001,
        contract_number="SC-2025-0001",
        vehicle_price=Decimal("18500.00"),
    )
