"""Pytest configuration for backend tests."""
import sys
import os
import itertools
from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Settings are read at import time; point them at a throwaway database and keep
# the background scheduler from starting inside TestClient.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SCHEDULER_ENABLED"] = "false"

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from bookledger.database import Base

# Import the entire models module to ensure all models are registered with Base.metadata
import bookledger.models  # noqa: F401
from bookledger.models import Book, Genre, Review, ReviewStatus, Shelf, User, UserBook, UserRole

# Rows created by the factories get strictly increasing created_at values so
# "creation order" tie-breaks are deterministic.
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database for each test.

    StaticPool keeps the single connection alive across threads, which
    TestClient needs because sync endpoints run in a threadpool.
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Session:
    """Database session for each test. Services commit freely; the engine is discarded."""
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    """Monotonic fake timestamps for created_at columns."""
    ticks = itertools.count(1)
    return lambda: BASE_TIME + timedelta(seconds=next(ticks))


@pytest.fixture
def make_user(db: Session, clock):
    def _make(name="Reader", role=UserRole.USER, created_at=None, **fields) -> User:
        user = User(
            id=uuid4(),
            name=name,
            email=f"{uuid4().hex[:10]}@example.com",
            role=role,
            created_at=created_at or clock(),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_genre(db: Session, clock):
    def _make(name: str) -> Genre:
        genre = Genre(id=uuid4(), name=name, slug=name.lower().replace(" ", "-"), created_at=clock())
        db.add(genre)
        db.commit()
        db.refresh(genre)
        return genre
    return _make


@pytest.fixture
def make_book(db: Session, clock):
    """
    Create a book. Aggregates can be set directly here to stage catalog state
    for read-side engines; write paths go through the services instead.
    """
    def _make(genre: Genre, title="Book", average_rating=0.0, total_shelved=0, total_ratings=0, total_pages=300) -> Book:
        book = Book(
            id=uuid4(),
            title=title,
            author="Author",
            genre_id=genre.id,
            description=f"Description for {title}",
            total_pages=total_pages,
            average_rating=average_rating,
            total_ratings=total_ratings,
            total_shelved=total_shelved,
            created_at=clock(),
        )
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make


@pytest.fixture
def shelve(db: Session, clock):
    """Insert a ledger entry directly, bypassing library_service."""
    def _make(user: User, book: Book, shelf=Shelf.READ, finished_at=None, started_at=None) -> UserBook:
        entry = UserBook(
            id=uuid4(),
            user_id=user.id,
            book_id=book.id,
            shelf=shelf,
            finished_at=finished_at,
            started_at=started_at,
            created_at=clock(),
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry
    return _make


@pytest.fixture
def make_review(db: Session, clock):
    """Insert a review directly, bypassing review_service."""
    def _make(user: User, book: Book, rating: int, status=ReviewStatus.APPROVED) -> Review:
        review = Review(
            id=uuid4(),
            user_id=user.id,
            book_id=book.id,
            rating=rating,
            comment="Thoughts",
            status=status,
            created_at=clock(),
        )
        db.add(review)
        db.commit()
        db.refresh(review)
        return review
    return _make
