"""
Pytest Configuration and Fixtures
"""

import os
import tempfile

# Point settings at throwaway locations before the package is imported
_TEST_ROOT = tempfile.mkdtemp(prefix="shortsfusion-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_ROOT, 'app.db')}")
os.environ.setdefault("STATIC_ROOT", os.path.join(_TEST_ROOT, "static"))
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PUBLIC_BASE_URL", "http://test")

import pytest
from pathlib import Path
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from unittest.mock import AsyncMock, Mock

from shortsfusion.models import Base
from shortsfusion.core.providers import ProviderSet, RenderStatus
from shortsfusion.services import ledger
from shortsfusion.services.storage import UserDB
from tests.fixtures import build_script


@pytest.fixture
def test_db_path() -> Generator[str, None, None]:
    """Create temporary database file"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def test_db_engine(test_db_path: str) -> Generator:
    """Create test database engine"""
    engine = create_engine(
        f"sqlite:///{test_db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(test_session_factory) -> Generator[Session, None, None]:
    """Create test database session"""
    session = test_session_factory()
    yield session
    session.close()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for file operations"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_user(test_db_session):
    """Create a user with a ledger-backed starting balance"""

    def _make_user(tokens: int = 10, user_id: str = "user-1", email: str = None):
        UserDB.create_user(
            test_db_session,
            email=email or f"{user_id}@example.com",
            user_id=user_id,
        )
        if tokens > 0:
            ledger.credit(
                test_db_session,
                user_id,
                tokens,
                "TEST_GRANT",
                f"test-grant:{user_id}",
            )
        return UserDB.get_user(test_db_session, user_id)

    return _make_user


@pytest.fixture
def mock_queue():
    """Mock JobQueue"""
    mock = Mock()
    mock.enqueue = Mock(return_value=Mock(id="video:test:generate"))
    mock.has_pending_job = Mock(return_value=False)
    return mock


@pytest.fixture
def mock_redis():
    """Mock Redis client"""
    mock = Mock()
    mock.zremrangebyscore = Mock(return_value=0)
    mock.zcard = Mock(return_value=0)
    mock.zadd = Mock(return_value=1)
    mock.zrange = Mock(return_value=[])
    mock.expire = Mock(return_value=True)
    mock.delete = Mock(return_value=True)
    return mock


@pytest.fixture
def fake_providers():
    """Provider set whose adapters all succeed"""
    script = Mock()
    script.generate = AsyncMock(side_effect=lambda topic, duration_s, count: build_script(count))

    image = Mock()
    image.generate = AsyncMock(return_value="http://test/static/images/scene.png")

    voice = Mock()
    voice.synthesize = AsyncMock(return_value="http://test/static/audio/voice.mp3")

    render = Mock()
    render.submit = AsyncMock(return_value="render-123")
    render.poll_status = AsyncMock(
        return_value=RenderStatus(
            render_id="render-123",
            status="succeeded",
            url="https://cdn.example.com/render-123.mp4",
            thumbnail_url="https://cdn.example.com/render-123.jpg",
        )
    )

    return ProviderSet(script=script, image=image, voice=voice, render=render)


@pytest.fixture
def no_sleep():
    """Awaitable sleep that returns immediately"""
    return AsyncMock(return_value=None)
