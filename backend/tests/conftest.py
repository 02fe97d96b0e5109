"""Pytest fixtures for Campus Eats backend tests."""

import os
import tempfile
import uuid

# Settings are read once on first import; point them at the test database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "campus_eats_test_uploads"))

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.auth import create_access_token
from campus_eats.database import Base, async_session, engine
from campus_eats.main import app
from campus_eats.models import Review, Store, User
from campus_eats.models.common import APPROVED, PENDING, ROLE_ADMIN, ROLE_USER
from campus_eats.services import Caller
from campus_eats.storage import LocalStorage, get_storage


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def storage(tmp_path) -> LocalStorage:
    local = LocalStorage(tmp_path / "uploads", "/api/v1/uploads")
    app.dependency_overrides[get_storage] = lambda: local
    yield local
    app.dependency_overrides.pop(get_storage, None)


@pytest_asyncio.fixture
async def client(storage):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def db():
    async with async_session() as session:
        yield session


async def _make_user(db: AsyncSession, email: str, display_name: str, role: str = ROLE_USER) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash="not-a-real-hash",
        display_name=display_name,
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def alice(db: AsyncSession) -> User:
    return await _make_user(db, "alice@campus.edu", "Alice")


@pytest_asyncio.fixture
async def bob(db: AsyncSession) -> User:
    return await _make_user(db, "bob@campus.edu", "Bob")


@pytest_asyncio.fixture
async def admin(db: AsyncSession) -> User:
    return await _make_user(db, "admin@campus.edu", "Admin", role=ROLE_ADMIN)


def caller_for(user: User) -> Caller:
    return Caller(user_id=user.id, role=user.role)


def auth_headers(user: User, **extra: str) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {create_access_token(str(user.id), user.role)}"}
    headers.update(extra)
    return headers


async def make_store(db: AsyncSession, owner: User, name: str = "Noodle Bar", address: str = "1 Campus Way",
                     status: str = APPROVED, category: str = "asian") -> Store:
    store = Store(
        name=name,
        address=address,
        category=category,
        status=status,
        created_by=owner.id,
    )
    db.add(store)
    await db.commit()
    await db.refresh(store)
    return store


async def make_review(db: AsyncSession, store: Store, author: User, rating: float = 4.0,
                      status: str = PENDING, title: str = "Tasty") -> Review:
    review = Review(
        store_id=store.id,
        author_id=author.id,
        title=title,
        content="Would eat again.",
        rating=rating,
        status=status,
    )
    db.add(review)
    await db.commit()
    await db.refresh(review)
    return review


@pytest_asyncio.fixture
async def approved_store(db: AsyncSession, admin: User) -> Store:
    return await make_store(db, admin)
