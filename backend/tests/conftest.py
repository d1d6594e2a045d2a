"""Pytest configuration for backend tests."""
import sys
import os
from pathlib import Path
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Tests default to a throwaway in-memory SQLite database. Point
# TEST_DATABASE_URL at a Postgres test database to run against Postgres.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")

# Settings are read at import time; make sure the app never sees a real database
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("CDN_ENABLED", "false")

from shelfwise.database import Base, get_db  # noqa: E402
from shelfwise.core.dependencies import get_cover_resolver  # noqa: E402
from shelfwise.models import Book, BookImageLink, BookRecommendation, WorkCluster, WorkClusterMember  # noqa: E402
from shelfwise.services.cover_resolver import CdnConfig, CoverUrlResolver  # noqa: E402

CDN_BASE = "https://cdn.example.com/"


@pytest.fixture(scope="session")
def engine():
    """Create the test engine and all catalog tables once per session."""
    kwargs = {"echo": False}
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    test_engine = create_engine(TEST_DATABASE_URL, **kwargs)

    if not Base.metadata.tables:
        raise RuntimeError(
            "No tables registered in Base.metadata. "
            "Did you import shelfwise.models? All model classes must be imported before create_all()."
        )

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Session:
    """
    Create a database session for each test.

    Uses a transaction that is rolled back after each test for isolation.
    Tests flush instead of committing.
    """
    connection = engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
    )
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def resolver() -> CoverUrlResolver:
    """Resolver with no CDN configured."""
    return CoverUrlResolver(CdnConfig())


@pytest.fixture
def cdn_resolver() -> CoverUrlResolver:
    return CoverUrlResolver(CdnConfig.from_values(enabled=True, base_url=CDN_BASE))


@pytest.fixture
def make_book(db: Session):
    """Factory that inserts a Book and flushes it."""
    def _make_book(title: str = "Untitled", **fields) -> Book:
        book = Book(title=title, **fields)
        db.add(book)
        db.flush()
        return book
    return _make_book


@pytest.fixture
def make_image_link(db: Session):
    def _make_image_link(book: Book, image_type: str, **fields) -> BookImageLink:
        link = BookImageLink(book_id=book.id, image_type=image_type, **fields)
        db.add(link)
        db.flush()
        return link
    return _make_image_link


@pytest.fixture
def make_cluster(db: Session):
    """Factory that groups books into a work cluster; `primary` is the canonical member."""
    def _make_cluster(members, primary=None) -> WorkCluster:
        cluster = WorkCluster(canonical_title=members[0].title, member_count=len(members))
        db.add(cluster)
        db.flush()
        for book in members:
            db.add(WorkClusterMember(
                cluster_id=cluster.id,
                book_id=book.id,
                is_primary=primary is not None and book.id == primary.id,
            ))
        db.flush()
        return cluster
    return _make_cluster


@pytest.fixture
def make_recommendation(db: Session):
    def _make_recommendation(source_book: Book, target: Book, **fields) -> BookRecommendation:
        rec = BookRecommendation(source_book_id=source_book.id, recommended_book_id=target.id, **fields)
        db.add(rec)
        db.flush()
        return rec
    return _make_recommendation


@pytest.fixture
def client(db: Session, cdn_resolver: CoverUrlResolver):
    """TestClient bound to the per-test session and a CDN-enabled resolver."""
    from fastapi.testclient import TestClient
    from shelfwise.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cover_resolver] = lambda: cdn_resolver
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
