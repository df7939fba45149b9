"""Service test fixtures — async DB, fake collaborators, FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use the test session factory
    - Reviewer and payment provider are in-process fakes; no network
    - app.state.services replaced for the duration of a client test

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for service tests
      (PostgreSQL-specific features not exercised here)
    - StaticPool: every session shares the one in-memory connection
    - Fakes are flat classes with call logs instead of MagicMock, so assertions
      read as domain facts (which checkout was opened, which subscription cancelled)
"""

import json
from itertools import count

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from badgeledger.config import Settings, get_settings
from badgeledger.core.case_machine import AIReviewResult
from badgeledger.core.catalog import build_catalog
from badgeledger.core.domain_types import AIVerdict
from badgeledger.core.errors import (
    AnthropicAPIError, PaymentProviderError, ValidationError,
)
from badgeledger.core.repository_protocols import CheckoutSession, ProviderEvent
from badgeledger.db.base import Base
from badgeledger.infrastructure.database import get_db, DatabaseSessionManager
import badgeledger.infrastructure.database as db_module
import badgeledger.models  # noqa: F401
from badgeledger.main import app
from badgeledger.services.container import build_services

CRON_SECRET = "test-cron-secret"
VALID_SIGNATURE = "t=1,v1=valid"


# ─── Fakes ───────────────────────────────────────────────────────

class FakeReviewer:
    """Returns a fixed verdict, or raises when `error` is set."""

    def __init__(self, result: AIReviewResult | None = None):
        self.result = result or AIReviewResult(AIVerdict.APPROVED, 95, "Documents look valid")
        self.error: Exception | None = None
        self.calls: list[tuple] = []

    async def review(self, actor_type, documents):
        self.calls.append((actor_type, documents))
        if self.error is not None:
            raise self.error
        return self.result

    def fail_with_timeout(self):
        self.error = AnthropicAPIError("Document review timed out", "timeout")


class FakePayments:
    """Records checkout and cancel requests; parses events signed with VALID_SIGNATURE."""

    def __init__(self):
        self._ids = count(1)
        self.checkouts = []
        self.cancelled: list[str] = []
        self.fail_checkout = False
        self.fail_cancel = False

    async def create_checkout(self, request):
        if self.fail_checkout:
            raise PaymentProviderError("provider down", "api_connection")
        self.checkouts.append(request)
        n = next(self._ids)
        return CheckoutSession(session_id=f"cs_test_{n}", url=f"https://pay.test/cs_test_{n}")

    async def cancel_subscription(self, subscription_ref):
        if self.fail_cancel:
            raise PaymentProviderError("provider down", "api_connection")
        self.cancelled.append(subscription_ref)

    def parse_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise ValidationError("Invalid webhook signature")
        body = json.loads(payload)
        return ProviderEvent(id=body["id"], type=body["type"], data=body["data"]["object"])


# ─── Database ────────────────────────────────────────────────────

@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


# ─── Services ────────────────────────────────────────────────────

@pytest.fixture
def catalog():
    return build_catalog()


@pytest.fixture
def reviewer():
    return FakeReviewer()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def services(catalog, reviewer, payments):
    return build_services(catalog, reviewer, payments, sweep_chunk_size=2)


# ─── HTTP client ─────────────────────────────────────────────────

@pytest.fixture
async def client(test_engine, test_session_factory, services):
    """FastAPI test client with DB, settings and services overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: Settings(cron_secret=CRON_SECRET)

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    original_services = getattr(app.state, "services", None)
    app.state.services = services

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    app.state.services = original_services
