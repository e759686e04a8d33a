"""
Pytest fixtures.

Core tests run the ticketing components against MemoryTicketingStore and an
in-process MockPay gateway. API tests run the FastAPI app over httpx's ASGI
transport against a throwaway SQLite file, with the same SQL store the
service uses in production.
"""

import os

# Must be set before boxoffice reads its settings
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./boxoffice-test.db")
os.environ.setdefault("PAYMENT_PROVIDER", "mockpay")
os.environ.setdefault("TICKET_SIGNING_KEY", "test-signing-key")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.api.deps import get_context
from boxoffice.core.config import get_settings
from boxoffice.core.security import create_access_token, hash_password
from boxoffice.db.base import Base
from boxoffice.db.session import get_db, make_engine, make_sessionmaker
from boxoffice.infrastructure.mockpay import MockPayGateway
from boxoffice.main import app
from boxoffice.models import Event, TicketType, User
from boxoffice.services.context import build_context
from boxoffice.stores import MemoryTicketingStore, SqlTicketingStore

MOCKPAY_SECRET = "test-secret"


# ---------------------------------------------------------------------------
# Core (in-memory)
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> MemoryTicketingStore:
    return MemoryTicketingStore()


@pytest.fixture
def gateway() -> MockPayGateway:
    return MockPayGateway(MOCKPAY_SECRET)


@pytest.fixture
def ctx(store: MemoryTicketingStore, gateway: MockPayGateway):
    """Fully wired components around the memory store."""
    return build_context(store, gateway=gateway)


@pytest.fixture
def event(store: MemoryTicketingStore):
    return store.add_event(starts_at=datetime.now(timezone.utc) + timedelta(days=30))


@pytest.fixture
def ticket_type(store: MemoryTicketingStore, event):
    """100.00 per ticket, 10 in stock, at most 4 per order."""
    return store.add_ticket_type(event.id, capacity_total=10, price=Decimal("100.00"), max_per_order=4)


@pytest.fixture
def paid_purchase(ctx, ticket_type):
    """Factory: start a checkout and mark its session paid. Returns the pending purchase."""

    async def _make(quantity: int = 2, buyer_id: int = 7, discount_code=None):
        started = await ctx.checkout.start_checkout(
            buyer_id=buyer_id,
            buyer_email=f"buyer{buyer_id}@example.com",
            ticket_type_id=ticket_type.id,
            quantity=quantity,
            discount_code=discount_code,
        )
        # Buyer pays on the hosted page; the callback is left to the test
        ctx.gateway.settle(started.purchase.payment_session_id, "paid")
        return started.purchase

    return _make


# ---------------------------------------------------------------------------
# API (SQLite)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    """Fresh schema per test in a temporary SQLite file."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'boxoffice.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield make_sessionmaker(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def api_gateway() -> MockPayGateway:
    return MockPayGateway(MOCKPAY_SECRET)


@pytest.fixture
def api_context(sessionmaker, api_gateway):
    return build_context(SqlTicketingStore(sessionmaker), gateway=api_gateway, settings=get_settings())


@pytest_asyncio.fixture
async def client(sessionmaker, api_context) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and test ticketing context."""

    async def override_get_db():
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_context] = lambda: api_context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _add_user(db_session: AsyncSession, email: str, role: str) -> User:
    user = User(
        email=email,
        full_name=email.split("@")[0].title(),
        hashed_password=hash_password("testpassword123"),
        role=role,
        is_guest=False,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id), 'role': user.role})}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A registered attendee."""
    return await _add_user(db_session, "test@example.com", "attendee")


@pytest_asyncio.fixture
async def organizer(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "organizer@example.com", "organizer")


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return _headers(test_user)


@pytest.fixture
def organizer_headers(organizer: User) -> dict:
    return _headers(organizer)


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession, organizer: User) -> Event:
    event = Event(
        title="Test Concert",
        description="A test event",
        starts_at=datetime.now(timezone.utc) + timedelta(days=30),
        location="Test Venue",
        organizer_id=organizer.id,
    )
    db_session.add(event)
    await db_session.commit()
    await db_session.refresh(event)
    return event


@pytest_asyncio.fixture
async def test_ticket_type(db_session: AsyncSession, test_event: Event) -> TicketType:
    """General admission: 250.00, 5 in stock."""
    ticket_type = TicketType(
        event_id=test_event.id,
        name="General",
        price=Decimal("250.00"),
        capacity_total=5,
        capacity_reserved=0,
        max_per_order=5,
        is_active=True,
        version=1,
    )
    db_session.add(ticket_type)
    await db_session.commit()
    await db_session.refresh(ticket_type)
    return ticket_type
