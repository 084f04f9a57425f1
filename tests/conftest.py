import os
import tempfile

# Keep logs/artwork/database files of the test run out of the project data dir
os.environ.setdefault("TRACKVAULT_DATA_DIR", tempfile.mkdtemp(prefix="trackvault-test-"))

from pathlib import Path
from typing import Dict, Optional, Union

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Import all models to ensure Base.metadata is populated
from trackvault.core import models  # noqa
from trackvault.core.cache import SimpleCache, cache
from trackvault.core.models import Base
from trackvault.core.repository import SqlAlchemyRepository
from trackvault.core.values import ExtractionFailure, SongScanInformation
from trackvault.worker.tags import get_mtime

# ============================================================================
# TEST DATABASE CONFIGURATION
# ============================================================================
# Tests never touch the configured database: everything runs against an
# in-memory SQLite shared by all sessions through StaticPool.
# ============================================================================

TEST_DB_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = sessionmaker(bind=test_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture(scope="function")
def db_engine():
    """Create test database tables before each test, drop after."""
    # Clear cache before each test to prevent cross-test contamination
    cache.clear()

    Base.metadata.drop_all(test_engine)
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return TestSessionLocal


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Provide a test database session."""
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def repository(db_session):
    return SqlAlchemyRepository(db_session)


@pytest.fixture
def owner(repository):
    return repository.get_or_create_user("alice")


@pytest.fixture
def other_owner(repository):
    return repository.get_or_create_user("bob")


@pytest.fixture
def scan_cache():
    """A private cache so tests never share resolved entities."""
    return SimpleCache(default_ttl=60)


@pytest.fixture
def make_image():
    """Write a small real image file and return its path."""

    def _make(path: Path, fmt: str = "JPEG", color=(200, 30, 30)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (64, 64), color).save(path, format=fmt)
        return path

    return _make


@pytest.fixture
def image_bytes(tmp_path, make_image):
    return make_image(tmp_path / "_embedded.png", fmt="PNG", color=(10, 120, 10)).read_bytes()


class FakeExtractor:
    """Tag extractor returning canned tags per file name.

    Tags for a file are a dict of SongScanInformation fields, or an
    ExtractionFailure. Files without canned tags fail as empty files.
    """

    def __init__(self):
        self.tags: Dict[str, Union[dict, ExtractionFailure]] = {}
        self.calls = 0

    def set(self, path: Union[str, Path], **tags) -> None:
        self.tags[Path(path).name] = tags

    def fail(self, path: Union[str, Path], reason: str) -> None:
        self.tags[Path(path).name] = ExtractionFailure(reason)

    def extract(self, path) -> Union[SongScanInformation, ExtractionFailure]:
        self.calls += 1
        tags: Optional[Union[dict, ExtractionFailure]] = self.tags.get(Path(path).name)
        if tags is None:
            return ExtractionFailure("Empty file")
        if isinstance(tags, ExtractionFailure):
            return tags
        info = {"length": 200.0, **tags}
        return SongScanInformation(path=os.fspath(path), mtime=get_mtime(path), **info)


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def media_dir(tmp_path):
    """Empty music directory; tests drop placeholder audio files into it."""
    root = tmp_path / "music"
    root.mkdir()
    return root


@pytest.fixture
def make_audio():
    """Create a placeholder file (content is irrelevant with FakeExtractor)."""

    def _make(path: Path, mtime: Optional[int] = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00" * 16)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _make
