"""
Pytest configuration and shared fixtures for KrostyShop tests.

Provides an in-memory SQLite DB, an ASGI test client bound to it, user and
catalog factories, stubs for the exchange-rate provider and Binance Pay,
and a file-backed DB + Starlette TestClient pair for WebSocket tests.
"""
import pytest
from typing import AsyncGenerator, Generator

import httpx
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool, StaticPool
from starlette.testclient import TestClient

from main import app
from database import Base, get_db
from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"

TEST_RATE = 40.0  # VES per USDT


# ── Global State Reset ───────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolate_state(tmp_path, monkeypatch):
    """Fresh rate limiter, rate cache and upload dir for every test."""
    from middleware.rate_limit import limiter
    from services import exchange_rate_service

    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "public_base_url", "http://test")
    limiter.reset()
    exchange_rate_service.clear_cache()
    yield
    limiter.reset()
    exchange_rate_service.clear_cache()


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    ASGI test client with the in-memory database.

    Overrides the get_db dependency to use the test DB session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def live_db(tmp_path) -> Generator[Session, None, None]:
    """
    File-backed database shared by a sync seeding session and the app.

    The Starlette TestClient runs the app on its own event loop, so the
    app gets a fresh aiosqlite connection per request (NullPool) instead
    of the in-memory session bound to the test loop.
    """
    path = tmp_path / "live.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)

    async_engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    session_maker = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    with Session(sync_engine, expire_on_commit=False) as session:
        yield session

    app.dependency_overrides.clear()
    sync_engine.dispose()


@pytest.fixture
def live_client(live_db, tmp_path, monkeypatch):
    """
    Starlette TestClient with the app lifespan running, for WebSocket tests.

    HTTP calls and WebSocket sessions share one event loop, so events
    published by a request reach open sockets.
    """
    import database

    async def _no_init():
        return None

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(database, "init_db", _no_init)
    with TestClient(app) as c:
        yield c


    app.dependency_overrides.clear()


# ── Mock Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def fixed_rate(monkeypatch):
    """Exchange rate provider stub returning TEST_RATE."""
    from services import exchange_rate_service

    calls = {"count": 0, "rate": TEST_RATE}

    async def _get_rate(client=None):
        calls["count"] += 1
        return TEST_RATE

    monkeypatch.setattr(exchange_rate_service, "get_rate", _get_rate)
    return calls


@pytest.fixture
def rate_unavailable(monkeypatch):
    """Exchange rate provider stub that always fails."""
    from domain.errors import UpstreamServiceError
    from services import exchange_rate_service

    async def _get_rate(client=None):
        raise UpstreamServiceError("Exchange rate unavailable. Please try again later.")

    monkeypatch.setattr(exchange_rate_service, "get_rate", _get_rate)


@pytest.fixture
def binance_keys(monkeypatch):
    """Configure Binance Pay credentials."""
    monkeypatch.setattr(settings, "binance_api_key", "test-api-key")
    monkeypatch.setattr(settings, "binance_secret_key", "test-secret-key")
    return settings


@pytest.fixture
def binance_api(monkeypatch, binance_keys):
    """
    Route Binance Pay API calls to httpx.MockTransport.

    Captures each request; replies with a SUCCESS create-order response.
    """
    from services import binance_pay_service

    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"status": "SUCCESS", "code": "000000", "data": {"checkoutUrl": "https://pay.binance.com/checkout/x"}},
        )

    real_client = httpx.AsyncClient

    def _client(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(binance_pay_service.httpx, "AsyncClient", _client)
    return seen


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
def auth_header():
    """Factory: Authorization header carrying a fresh access token for a user."""
    from middleware.auth import issue_access_token

    def _header(user) -> dict:
        return {"Authorization": f"Bearer {issue_access_token(user_id=user.id, role=user.role)}"}

    return _header


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: create a user row with a bcrypt-hashed password."""
    from db_models import User
    from services.auth_service import hash_password

    async def _make(email: str = "buyer@example.com", role: str = "customer", password: str = "correct-horse"):
        user = User(
            email=email,
            full_name=email.split("@")[0].title(),
            password_hash=hash_password(password),
            role=role,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
async def customer(make_user):
    return await make_user("buyer@example.com")


@pytest.fixture
async def other_customer(make_user):
    return await make_user("someone@example.com")


@pytest.fixture
async def admin_user(make_user):
    return await make_user("admin@example.com", role="admin")


@pytest.fixture
def make_product(db_session: AsyncSession):
    """Factory: create a product, optionally with (name, price) variants."""
    from db_models import Product, ProductVariant

    async def _make(
        name: str = "Steam Gift Card",
        price: float = 10.0,
        category: str = "gift_cards",
        stock_status: str = "in_stock",
        variants: list[tuple[str, float]] | None = None,
    ):
        product = Product(
            name=name,
            description=f"{name} description",
            price=price,
            image_url=f"http://test/img/{name.replace(' ', '-').lower()}.png",
            category=category,
            stock_status=stock_status,
            variants=[ProductVariant(name=n, price=p) for n, p in (variants or [])],
        )
        db_session.add(product)
        await db_session.commit()
        await db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def seed_user(live_db: Session):
    """Factory: create a user in the live (file-backed) database."""
    from db_models import User
    from services.auth_service import hash_password

    def _make(email: str, role: str = "customer"):
        user = User(email=email, full_name=None, password_hash=hash_password("correct-horse"), role=role)
        live_db.add(user)
        live_db.commit()
        return user

    return _make


@pytest.fixture
def seed_order(live_db: Session):
    """Factory: a pending manual order owned by a user of the live database."""
    from db_models import Order

    def _make(user, total: float = 10.0):
        order = Order(
            user_id=user.id,
            payment_method="manual",
            status="pending",
            total=total,
            total_usdt=total,
            total_ves=total * TEST_RATE,
            exchange_rate=TEST_RATE,
        )
        live_db.add(order)
        live_db.commit()
        return order

    return _make


@pytest.fixture
def png_bytes() -> bytes:
    """A tiny payload standing in for an uploaded screenshot."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
