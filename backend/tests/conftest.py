"""Pytest fixtures for the minigram backend."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from api.deps import get_db
from app import create_app
from core import create_session_token
from core.config import settings
from db.session import configure_sqlite_connections
from models import User
from services import RateLimiter, set_rate_limiter
from services import storage


def _run_alembic_migrations(database_url: str) -> None:
    """Apply Alembic migrations to the given database URL."""
    backend_dir = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    alembic_cfg.attributes["configure_logger"] = False

    original_database_url = settings.database_url
    try:
        settings.database_url = database_url
        command.upgrade(alembic_cfg, "head")
    finally:
        settings.database_url = original_database_url


@pytest.fixture(scope="session")
def test_database_url(tmp_path_factory) -> str:
    """Create and migrate a file-backed SQLite database for tests."""
    db_dir = tmp_path_factory.mktemp("sqlite")
    db_path = db_dir / "backend-test.db"
    database_url = f"sqlite+aiosqlite:///{db_path}"
    _run_alembic_migrations(database_url)
    return database_url


@pytest_asyncio.fixture()
async def test_engine(test_database_url: str) -> AsyncIterator[AsyncEngine]:
    """Create an async engine bound to the migrated SQLite test database."""
    engine = create_async_engine(
        test_database_url,
        connect_args={"check_same_thread": False},
    )
    configure_sqlite_connections(engine.sync_engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture()
def app(session_maker: async_sessionmaker[AsyncSession]) -> Iterator[FastAPI]:
    """Create the FastAPI app with a test database dependency override."""
    application = create_app()

    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    yield application


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture(autouse=True)
async def clean_database(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[None]:
    """Clear tables before each test to guarantee isolation."""
    async with session_maker() as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()
    yield


@pytest_asyncio.fixture()
async def db_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a raw database session to tests."""
    async with session_maker() as session:
        yield session


@pytest.fixture()
def create_user(
    session_maker: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[User]]:
    """Factory inserting a synced user directly into the database."""

    async def _create(name: str = "Test User", external_id: str | None = None) -> User:
        user = User(
            external_id=external_id or f"user_{uuid4().hex[:12]}",
            name=name,
        )
        async with session_maker() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _create


def auth_headers(user_or_external_id: User | str) -> dict[str, str]:
    external_id = (
        user_or_external_id.external_id
        if isinstance(user_or_external_id, User)
        else user_or_external_id
    )
    return {"Authorization": f"Bearer {create_session_token(external_id)}"}


@pytest.fixture()
def headers_for() -> Callable[[User | str], dict[str, str]]:
    return auth_headers


def make_image_bytes(image_format: str = "PNG", size: tuple[int, int] = (64, 48)) -> bytes:
    image = Image.new("RGB", size, color=(0, 200, 100))
    buffer = BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture()
def image_bytes() -> Callable[..., bytes]:
    return make_image_bytes


class DummyMinio:
    """In-memory stand-in for the MinIO client."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str | None] = {}
        self.removed: list[str] = []
        self.fail_put = False
        self.fail_remove = False

    def bucket_exists(self, bucket_name: str) -> bool:
        return True

    def make_bucket(self, bucket_name: str) -> None:
        return None

    def put_object(self, bucket_name, object_name, data, length, content_type=None):
        if self.fail_put:
            raise RuntimeError("storage unavailable")
        self.objects[object_name] = data.read()
        self.content_types[object_name] = content_type

    def remove_object(self, bucket_name, object_name):
        if self.fail_remove:
            raise RuntimeError("storage unavailable")
        self.removed.append(object_name)
        self.objects.pop(object_name, None)


@pytest.fixture()
def dummy_minio(monkeypatch: pytest.MonkeyPatch) -> DummyMinio:
    """Replace the MinIO client used by the storage helpers."""
    client = DummyMinio()
    monkeypatch.setattr(storage, "get_minio_client", lambda: client)
    return client


class _InMemoryRedis:
    def __init__(self) -> None:
        self.data: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        value = self.data.get(key, 0) + 1
        self.data[key] = value
        return value

    async def expire(self, key: str, ttl: int) -> None:  # pragma: no cover - noop
        return None


@pytest.fixture(autouse=True)
def _rate_limiter_stub() -> Iterator[None]:
    limiter = RateLimiter(_InMemoryRedis(), limit=1_000, window_seconds=60)
    set_rate_limiter(limiter)
    yield
    set_rate_limiter(None)
