import asyncio
import os
import sys
import uuid

# Ensure the backend package (marketplace) is on sys.path for imports during tests
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Tables are created per test on a dedicated database, not at app startup
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from starlette.testclient import TestClient

from marketplace.core.database import Base, get_db
from marketplace.core.security import create_token_for_user
from marketplace.core.websocket_manager import manager
from marketplace.main import app
from marketplace.models.user import User, UserRoleEnum, UserStatusEnum
from marketplace.models import proposal, negotiation, review, ledger, notification  # noqa: F401


def make_engine(tmp_path):
    # One file per test; NullPool gives every session its own connection
    return create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 10},
    )


async def create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_users(factory) -> dict:
    """contractor, two professionals (plumbers) and a blocked professional"""
    users = {
        "contractor": User(
            user_id=str(uuid.uuid4()), name="Carla Contractor", email="carla@example.com",
            role=UserRoleEnum.contractor,
        ),
        "pro": User(
            user_id=str(uuid.uuid4()), name="Paulo Pro", email="paulo@example.com",
            role=UserRoleEnum.professional, specialty="Plumber, Electrician",
            latitude=-23.55, longitude=-46.63,
        ),
        "pro2": User(
            user_id=str(uuid.uuid4()), name="Priya Pro", email="priya@example.com",
            role=UserRoleEnum.professional, specialty="Plumber",
        ),
        "blocked": User(
            user_id=str(uuid.uuid4()), name="Bob Blocked", email="bob@example.com",
            role=UserRoleEnum.professional, status=UserStatusEnum.blocked,
        ),
    }
    async with factory() as db:
        db.add_all(users.values())
        await db.commit()
    return users


@pytest.fixture(autouse=True)
def hub():
    manager.reset()
    yield manager
    manager.reset()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = make_engine(tmp_path)
    await create_schema(engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def users(session_factory):
    return await seed_users(session_factory)


@pytest.fixture
def api(tmp_path):
    """
    TestClient wired to a fresh database. Yields (client, users).
    """
    engine = make_engine(tmp_path)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def prepare():
        await create_schema(engine)
        return await seed_users(factory)

    seeded = asyncio.run(prepare())

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client, seeded
    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_token_for_user(user)}"}


@pytest.fixture
def auth_headers():
    return auth
