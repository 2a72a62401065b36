from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from textbook_indents.core.auth.models import User, UserRole
from textbook_indents.core.database import get_db
from textbook_indents.core.database.base import Base
from textbook_indents.main import app
from textbook_indents.modules.students.models import Student
from textbook_indents.modules.textbooks.models import Textbook
from tests.helpers import BRANCH_ID, create_student, create_textbook, create_user

# In-memory SQLite, fresh per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create tables on a new in-memory database."""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory on a file-backed SQLite database.

    Separate sessions get separate connections, so they really race on the
    same rows (unlike the shared in-memory connection).
    """
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'textbooks.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    await file_engine.dispose()


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    """Branch admin of BRANCH_ID."""
    return await create_user(db_session, UserRole.BRANCH_ADMIN, BRANCH_ID)


@pytest.fixture
async def student(db_session: AsyncSession) -> Student:
    return await create_student(db_session)


@pytest.fixture
def make_textbook(
    db_session: AsyncSession, admin: User
) -> Callable[..., Awaitable[Textbook]]:
    """Factory creating textbooks in BRANCH_ID."""

    async def _make(**kwargs) -> Textbook:
        return await create_textbook(db_session, admin.id, **kwargs)

    return _make
