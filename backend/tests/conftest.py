"""
Shared fixtures: anyio backend and an in-memory SQLite record store.
"""

import uuid
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db_session():
    from popdash.database import Base
    import popdash.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


async def _make_user(db_session, email: str):
    from popdash.models import User
    user = User(id=uuid.uuid4(), email=email, password_hash="x", full_name="Test Publisher")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def user(db_session):
    return await _make_user(db_session, "publisher@example.com")


@pytest.fixture
async def other_user(db_session):
    return await _make_user(db_session, "someone-else@example.com")
