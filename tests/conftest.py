import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from parking_api.core.db import Base, get_db  # noqa: E402
from parking_api.core.security import create_access_token  # noqa: E402
from parking_api.main import app  # noqa: E402
from parking_api.models import Discount, Organization, ParkingLot, User, Vehicle  # noqa: E402


def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def tomorrow_at(hour: int, minute: int = 0) -> datetime:
    return (utcnow_naive() + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user_id=user.id, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def organization(db):
    org = Organization(name="Acme Parking BV")
    db.add(org)
    await db.commit()
    return org


@pytest.fixture
async def user(db, organization):
    u = User(
        username="driver",
        password_hash="!",
        role="user",
        name="Dana Driver",
        organization_id=organization.id,
        is_active=True,
    )
    db.add(u)
    await db.commit()
    return u


@pytest.fixture
async def other_user(db):
    u = User(username="someone-else", password_hash="!", role="user", name="Other", is_active=True)
    db.add(u)
    await db.commit()
    return u


@pytest.fixture
async def admin(db):
    u = User(username="admin", password_hash="!", role="admin", name="Admin", is_active=True)
    db.add(u)
    await db.commit()
    return u


@pytest.fixture
async def lot(db):
    p = ParkingLot(name="Centrum", location="Rotterdam", capacity=100, tariff=Decimal("5.00"), day_tariff=Decimal("30.00"))
    db.add(p)
    await db.commit()
    return p


@pytest.fixture
async def vehicle(db, user):
    v = Vehicle(user_id=user.id, license_plate="AB-123-C", make="Volvo", model="V40", color="blue", year=2019)
    db.add(v)
    await db.commit()
    return v


@pytest.fixture
def make_discount(db):
    async def _make(code: str = "SAVE20", **overrides) -> Discount:
        fields = dict(
            code=code,
            type="percentage",
            percentage=Decimal("20"),
            fixed_amount=None,
            valid_until=datetime.now(timezone.utc) + timedelta(days=30),
            max_usage_count=None,
            current_usage_count=0,
            is_active=True,
            created_by="tests",
        )
        fields.update(overrides)
        d = Discount(**fields)
        db.add(d)
        await db.commit()
        return d

    return _make
