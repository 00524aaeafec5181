"""
Ledger fact store: the query surface every engine reads books, reviews, shelf
entries and activities through.

Engines never build queries themselves; they ask the store for exact-match
lookups, filtered / ordered / limited book queries, counts, a uniform random
sample, and single-statement aggregate overwrites.
"""
import logging
import random
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session, joinedload

from bookledger.core.errors import ValidationFailure
from bookledger.models import (
    Activity,
    Book,
    Genre,
    Review,
    ReviewStatus,
    Shelf,
    User,
    UserBook,
)

logger = logging.getLogger(__name__)

IdLike = Union[UUID, str]

# Fields callers may sort books by
BOOK_ORDER_FIELDS = {
    "average_rating": Book.average_rating,
    "total_shelved": Book.total_shelved,
    "total_ratings": Book.total_ratings,
    "created_at": Book.created_at,
    "title": Book.title,
}

# Rows pulled per round-trip while streaming ids for sampling
SAMPLE_STREAM_BATCH = 500


def coerce_id(value: IdLike, label: str = "id") -> UUID:
    """Accept a UUID or its string form; anything else is a ValidationFailure."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationFailure(f"Malformed {label}: {value!r}")


class LedgerStore:
    """Thin query layer over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Exact-match lookups
    # ------------------------------------------------------------------
    def get_book(self, book_id: IdLike) -> Optional[Book]:
        return self.db.get(Book, coerce_id(book_id, "book id"))

    def get_genre(self, genre_id: IdLike) -> Optional[Genre]:
        return self.db.get(Genre, coerce_id(genre_id, "genre id"))

    def get_user(self, user_id: IdLike) -> Optional[User]:
        return self.db.get(User, coerce_id(user_id, "user id"))

    def get_review(self, review_id: IdLike) -> Optional[Review]:
        return self.db.get(Review, coerce_id(review_id, "review id"))

    def get_user_book(self, entry_id: IdLike) -> Optional[UserBook]:
        return self.db.get(UserBook, coerce_id(entry_id, "library entry id"))

    def find_review(self, book_id: IdLike, user_id: IdLike) -> Optional[Review]:
        return self.db.query(Review).filter(
            Review.book_id == coerce_id(book_id, "book id"),
            Review.user_id == coerce_id(user_id, "user id"),
        ).first()

    def find_user_book(self, user_id: IdLike, book_id: IdLike) -> Optional[UserBook]:
        return self.db.query(UserBook).filter(
            UserBook.user_id == coerce_id(user_id, "user id"),
            UserBook.book_id == coerce_id(book_id, "book id"),
        ).first()

    def lock_users(self, user_ids: Sequence[UUID]) -> List[User]:
        """
        Load users for a read-modify-write, locking rows in id order.
        Locking is a no-op on backends without FOR UPDATE (sqlite).
        """
        ordered = sorted(set(user_ids))
        return (
            self.db.query(User)
            .filter(User.id.in_(ordered))
            .order_by(User.id)
            .with_for_update()
            .all()
        )

    # ------------------------------------------------------------------
    # Aggregate sources
    # ------------------------------------------------------------------
    def approved_rating_totals(self, book_id: IdLike) -> Tuple[int, int]:
        """Return (sum, count) of approved review ratings for a book."""
        total, count = self.db.query(
            func.coalesce(func.sum(Review.rating), 0),
            func.count(Review.id),
        ).filter(
            Review.book_id == coerce_id(book_id, "book id"),
            Review.status == ReviewStatus.APPROVED,
        ).one()
        return int(total or 0), int(count or 0)

    def count_shelf_entries(self, book_id: IdLike) -> int:
        return self.db.query(func.count(UserBook.id)).filter(
            UserBook.book_id == coerce_id(book_id, "book id"),
        ).scalar() or 0

    def write_book_aggregates(self, book_id: IdLike, **values) -> bool:
        """
        Overwrite derived fields on one book in a single UPDATE statement.
        Returns False when the book no longer exists.
        """
        result = self.db.execute(
            update(Book)
            .where(Book.id == coerce_id(book_id, "book id"))
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount > 0

    def all_book_ids(self) -> List[UUID]:
        return [row[0] for row in self.db.query(Book.id).order_by(Book.created_at, Book.id).all()]

    # ------------------------------------------------------------------
    # User ledger
    # ------------------------------------------------------------------
    def user_books(self, user_id: IdLike, shelf: Optional[Shelf] = None) -> List[UserBook]:
        """Ledger entries for a user (book and genre eagerly loaded), oldest first."""
        q = (
            self.db.query(UserBook)
            .options(joinedload(UserBook.book).joinedload(Book.genre))
            .filter(UserBook.user_id == coerce_id(user_id, "user id"))
        )
        if shelf is not None:
            q = q.filter(UserBook.shelf == shelf)
        return q.order_by(UserBook.created_at, UserBook.id).all()

    def user_review_ratings(self, user_id: IdLike) -> List[int]:
        rows = self.db.query(Review.rating).filter(
            Review.user_id == coerce_id(user_id, "user id"),
        ).all()
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Catalog queries
    # ------------------------------------------------------------------
    def genres_in_creation_order(self, genre_ids: Optional[Iterable[UUID]] = None) -> List[Genre]:
        q = self.db.query(Genre)
        if genre_ids is not None:
            q = q.filter(Genre.id.in_(list(genre_ids)))
        return q.order_by(Genre.created_at, Genre.id).all()

    def _filtered_books(
        self,
        genre_ids: Optional[Iterable[UUID]] = None,
        exclude_ids: Iterable[UUID] = (),
        min_rating: Optional[float] = None,
        max_rating: Optional[float] = None,
        min_shelved_exclusive: Optional[int] = None,
        search: Optional[str] = None,
    ):
        q = self.db.query(Book)
        if genre_ids is not None:
            q = q.filter(Book.genre_id.in_(list(genre_ids)))
        exclude = list(exclude_ids)
        if exclude:
            q = q.filter(Book.id.not_in(exclude))
        if min_rating is not None:
            q = q.filter(Book.average_rating >= min_rating)
        if max_rating is not None:
            q = q.filter(Book.average_rating <= max_rating)
        if min_shelved_exclusive is not None:
            q = q.filter(Book.total_shelved > min_shelved_exclusive)
        if search:
            pattern = f"%{search}%"
            q = q.filter(or_(Book.title.ilike(pattern), Book.author.ilike(pattern)))
        return q

    def find_books(
        self,
        genre_ids: Optional[Iterable[UUID]] = None,
        exclude_ids: Iterable[UUID] = (),
        min_rating: Optional[float] = None,
        min_shelved_exclusive: Optional[int] = None,
        order_by: Sequence[Tuple[str, str]] = (),
        limit: Optional[int] = None,
        offset: int = 0,
        max_rating: Optional[float] = None,
        search: Optional[str] = None,
    ) -> List[Book]:
        """
        Filtered, ordered and limited book query.

        order_by is a sequence of (field, "asc" | "desc"); creation order is always
        appended as the final tie-breaker so results are deterministic. `search`
        is a case-insensitive substring match on title or author.
        """
        q = self._filtered_books(
            genre_ids=genre_ids,
            exclude_ids=exclude_ids,
            min_rating=min_rating,
            max_rating=max_rating,
            min_shelved_exclusive=min_shelved_exclusive,
            search=search,
        ).options(joinedload(Book.genre))

        clauses = []
        for field, direction in order_by:
            column = BOOK_ORDER_FIELDS.get(field)
            if column is None:
                raise ValueError(f"Unsupported book order field: {field}")
            clauses.append(column.desc() if direction == "desc" else column.asc())
        clauses.extend([Book.created_at.asc(), Book.id.asc()])
        q = q.order_by(*clauses)

        if offset:
            q = q.offset(offset)
        if limit is not None:
            if limit <= 0:
                return []
            q = q.limit(limit)
        return q.all()

    def count_books(self, **filters) -> int:
        """Number of books matching the same filters find_books accepts."""
        return self._filtered_books(**filters).count()

    def sample_books(
        self,
        size: int,
        exclude_ids: Iterable[UUID] = (),
        rng: Optional[random.Random] = None,
    ) -> List[Book]:
        """
        Uniform random sample of `size` distinct books not in exclude_ids.

        Reservoir sampling (Algorithm R) over the streamed ids of every eligible
        book, so each eligible book is equally likely regardless of its position.
        """
        if size <= 0:
            return []
        rng = rng or random.Random()

        q = self.db.query(Book.id)
        exclude = list(exclude_ids)
        if exclude:
            q = q.filter(Book.id.not_in(exclude))
        q = q.order_by(Book.created_at, Book.id).yield_per(SAMPLE_STREAM_BATCH)

        reservoir: List[UUID] = []
        for seen, (book_id,) in enumerate(q):
            if seen < size:
                reservoir.append(book_id)
            else:
                j = rng.randint(0, seen)
                if j < size:
                    reservoir[j] = book_id

        if not reservoir:
            return []
        books = {
            b.id: b
            for b in self.db.query(Book).options(joinedload(Book.genre)).filter(Book.id.in_(reservoir)).all()
        }
        return [books[book_id] for book_id in reservoir if book_id in books]

    def count_books_in_genre(self, genre_id: IdLike) -> int:
        return self.db.query(func.count(Book.id)).filter(
            Book.genre_id == coerce_id(genre_id, "genre id"),
        ).scalar() or 0

    def approved_reviews(self, book_id: IdLike) -> List[Review]:
        """Approved reviews for a book with their authors, newest first."""
        return (
            self.db.query(Review)
            .options(joinedload(Review.user))
            .filter(
                Review.book_id == coerce_id(book_id, "book id"),
                Review.status == ReviewStatus.APPROVED,
            )
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def list_users(self) -> List[User]:
        return self.db.query(User).order_by(User.created_at.desc(), User.id).all()

    def count_user_shelf(self, user_id: IdLike, shelf: Shelf) -> int:
        return self.db.query(func.count(UserBook.id)).filter(
            UserBook.user_id == coerce_id(user_id, "user id"),
            UserBook.shelf == shelf,
        ).scalar() or 0

    def user_signup_times(self, since: datetime) -> List[datetime]:
        rows = self.db.query(User.created_at).filter(User.created_at >= since).all()
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------
    def add_activity(self, **fields) -> Activity:
        activity = Activity(**fields)
        self.db.add(activity)
        return activity

    def recent_activities(
        self,
        user_ids: Iterable[UUID],
        since: Optional[datetime] = None,
        limit: int = 20,
    ) -> List[Activity]:
        ids = list(user_ids)
        if not ids or limit <= 0:
            return []
        q = (
            self.db.query(Activity)
            .options(joinedload(Activity.user), joinedload(Activity.book))
            .filter(Activity.user_id.in_(ids))
        )
        if since is not None:
            q = q.filter(Activity.created_at >= since)
        return q.order_by(Activity.created_at.desc(), Activity.id.desc()).limit(limit).all()

    def delete_activities_before(self, cutoff: datetime) -> int:
        return self.db.query(Activity).filter(
            Activity.created_at < cutoff,
        ).delete(synchronize_session=False)
