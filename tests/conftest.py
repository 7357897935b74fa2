"""
Shared fixtures: file-backed SQLite per test, fakeredis, in-process ASGI client.
"""
import os

os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from decimal import Decimal

from fakeredis import aioredis as fake_aioredis
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from canteengo.core import redis_client
from canteengo.core.security import create_access_token
from canteengo.db import database
from canteengo.db.database import Base, get_db
from canteengo.main import app
from canteengo.models import Canteen, MenuItem, Order, Profile, Role, User, UserRole


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'canteengo.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis(monkeypatch):
    client = fake_aioredis.FakeRedis(decode_responses=True)
    await client.flushall()
    monkeypatch.setattr(redis_client, "_redis_client", client)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def client(session_factory, redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ─── Seed helpers ──────────────────────────────────────────────────────────────

async def make_user(session_factory, role: Role, name: str) -> str:
    async with session_factory() as session:
        user = User(email=f"{name.lower().replace(' ', '.')}@campus.edu", hashed_password="not-used")
        session.add(user)
        await session.flush()
        session.add(Profile(id=user.id, name=name, email=user.email))
        session.add(UserRole(user_id=user.id, role=role))
        await session.commit()
        return user.id


def auth_headers(user_id: str, role: Role) -> dict[str, str]:
    token = create_access_token({"sub": user_id, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


async def fetch_order(session_factory, order_id: str) -> Order:
    async with session_factory() as session:
        return await session.get(Order, order_id)


@pytest_asyncio.fixture
async def student(session_factory) -> str:
    return await make_user(session_factory, Role.STUDENT, "Asha Student")


@pytest_asyncio.fixture
async def other_student(session_factory) -> str:
    return await make_user(session_factory, Role.STUDENT, "Ravi Student")


@pytest_asyncio.fixture
async def vendor(session_factory) -> str:
    return await make_user(session_factory, Role.VENDOR, "Main Vendor")


@pytest_asyncio.fixture
async def other_vendor(session_factory) -> str:
    return await make_user(session_factory, Role.VENDOR, "Rival Vendor")


@pytest_asyncio.fixture
async def canteen(session_factory, vendor) -> dict:
    """Main Canteen with item A (50.00), item B (30.00) and an unavailable item C."""
    async with session_factory() as session:
        c = Canteen(name="Main Canteen", location="Block A", vendor_id=vendor)
        session.add(c)
        await session.flush()
        a = MenuItem(canteen_id=c.id, name="Masala Dosa", price=Decimal("50.00"))
        b = MenuItem(canteen_id=c.id, name="Filter Coffee", price=Decimal("30.00"))
        off = MenuItem(canteen_id=c.id, name="Biryani", price=Decimal("120.00"), is_available=False)
        session.add_all([a, b, off])
        await session.commit()
        return {"id": c.id, "vendor_id": vendor, "a": a.id, "b": b.id, "unavailable": off.id}


@pytest_asyncio.fixture
async def other_canteen(session_factory, other_vendor) -> dict:
    async with session_factory() as session:
        c = Canteen(name="North Canteen", location="Hostel 4", vendor_id=other_vendor)
        session.add(c)
        await session.flush()
        item = MenuItem(canteen_id=c.id, name="Samosa", price=Decimal("15.00"))
        session.add(item)
        await session.commit()
        return {"id": c.id, "vendor_id": other_vendor, "item": item.id}
