"""
Reading statistics computed from a user's ledger and review history.

Everything here is a read: nothing is persisted and no locks are taken.
"""
import calendar
import logging
from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from bookledger.models import Book, Genre, Review, ReviewStatus, Shelf, User, UserBook
from bookledger.services.aggregate_maintainer import round_rating
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id
from bookledger.utils.timing import time_operation

logger = logging.getLogger(__name__)

UNKNOWN_GENRE = "Unknown"
NO_FAVORITE_GENRE = "None"

# Streak heuristic: a finish within the last 7 days keeps the streak alive, and
# the streak value is the number of finishes within the last 30 days.
STREAK_RECENCY_DAYS = 7
STREAK_WINDOW_DAYS = 30

ADMIN_TOP_N = 5
SIGNUP_WINDOW_MONTHS = 6


@dataclass
class ReadingGoal:
    year: int
    target: int
    progress: int


@dataclass
class ReadingStats:
    books_read_this_year: int = 0
    total_pages: int = 0
    average_rating: float = 0.0
    reading_streak: int = 0
    favorite_genre: str = NO_FAVORITE_GENRE
    genre_breakdown: Dict[str, int] = field(default_factory=dict)
    monthly_reading: List[int] = field(default_factory=lambda: [0] * 12)
    total_books_read: int = 0
    currently_reading: int = 0
    want_to_read: int = 0
    reading_goal: Optional[ReadingGoal] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _whole_days_between(later: datetime, earlier: datetime) -> int:
    return (later - earlier).days


def reading_streak(read_entries: List[UserBook], now: datetime) -> int:
    """
    Coarse streak: 0 unless the most recent finish is at most 7 whole days ago,
    otherwise the number of read entries finished at most 30 whole days ago.
    Entries without a finish date never count.

    Ages are floored to whole days (timedelta.days), so a finish 7 days and
    20 hours ago is 7 days old and still keeps the streak alive.
    """
    finished = sorted(
        (entry.finished_at for entry in read_entries if entry.finished_at is not None),
        reverse=True,
    )
    if not finished:
        return 0
    if _whole_days_between(now, finished[0]) > STREAK_RECENCY_DAYS:
        return 0
    return sum(1 for finished_at in finished if _whole_days_between(now, finished_at) <= STREAK_WINDOW_DAYS)


def favorite_genre(genre_breakdown: Dict[str, int]) -> str:
    """Highest count wins; on a tie the genre encountered first wins."""
    if not genre_breakdown:
        return NO_FAVORITE_GENRE
    return max(genre_breakdown, key=genre_breakdown.get)


def _genre_name(entry: UserBook) -> str:
    book = entry.book
    if book is None or book.genre is None or not book.genre.name:
        return UNKNOWN_GENRE
    return book.genre.name


def reading_stats(db: Session, user_id: IdLike, now: Optional[datetime] = None) -> ReadingStats:
    """Statistics for the calendar year containing `now` (default: current UTC time)."""
    now = now or datetime.utcnow()
    user_uuid = coerce_id(user_id, "user id")
    store = LedgerStore(db)

    with time_operation(f"reading_stats user={user_uuid}"):
        entries = store.user_books(user_uuid)
        read_entries = [e for e in entries if e.shelf == Shelf.READ]
        this_year = [
            e for e in read_entries
            if e.finished_at is not None and e.finished_at.year == now.year
        ]

        stats = ReadingStats()
        stats.books_read_this_year = len(this_year)
        stats.total_pages = sum((e.book.total_pages or 0) if e.book is not None else 0 for e in this_year)

        ratings = store.user_review_ratings(user_uuid)
        stats.average_rating = round_rating(sum(ratings), len(ratings))

        breakdown: Counter = Counter()
        for entry in read_entries:
            breakdown[_genre_name(entry)] += 1
        stats.genre_breakdown = dict(breakdown)
        stats.favorite_genre = favorite_genre(stats.genre_breakdown)

        for entry in this_year:
            stats.monthly_reading[entry.finished_at.month - 1] += 1

        stats.reading_streak = reading_streak(read_entries, now)
        stats.total_books_read = len(read_entries)
        stats.currently_reading = sum(1 for e in entries if e.shelf == Shelf.CURRENTLY_READING)
        stats.want_to_read = sum(1 for e in entries if e.shelf == Shelf.WANT_TO_READ)

        user = store.get_user(user_uuid)
        if user is not None:
            goal_year = user.reading_goal_year or now.year
            stats.reading_goal = ReadingGoal(
                year=goal_year,
                target=user.reading_goal_target,
                progress=sum(
                    1 for e in read_entries
                    if e.finished_at is not None and e.finished_at.year == goal_year
                ),
            )

    return stats


def months_before(moment: datetime, months: int) -> datetime:
    """Same day and time `months` calendar months earlier, clamped to the month's last day."""
    year, month_index = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def monthly_signups(signups: List[datetime]) -> List[dict]:
    """Registrations per calendar month, oldest month first. Empty months are omitted."""
    counts = Counter((t.year, t.month) for t in signups)
    return [
        {"year": year, "month": month, "count": counts[(year, month)]}
        for year, month in sorted(counts)
    ]


def admin_stats(db: Session, now: Optional[datetime] = None) -> dict:
    """Catalog-wide dashboard numbers for administrators."""
    now = now or datetime.utcnow()
    overview = {
        "total_users": db.query(func.count(User.id)).scalar() or 0,
        "total_books": db.query(func.count(Book.id)).scalar() or 0,
        "total_genres": db.query(func.count(Genre.id)).scalar() or 0,
        "total_reviews": db.query(func.count(Review.id)).scalar() or 0,
        "pending_reviews": db.query(func.count(Review.id)).filter(
            Review.status == ReviewStatus.PENDING
        ).scalar() or 0,
    }

    books_per_genre = [
        {"genre": name, "count": count}
        for name, count in (
            db.query(Genre.name, func.count(Book.id))
            .join(Book, Book.genre_id == Genre.id)
            .group_by(Genre.id, Genre.name)
            .order_by(func.count(Book.id).desc(), Genre.name)
            .all()
        )
    ]

    store = LedgerStore(db)
    top_rated = store.find_books(
        order_by=[("average_rating", "desc"), ("total_ratings", "desc")],
        limit=ADMIN_TOP_N,
    )
    most_shelved = store.find_books(order_by=[("total_shelved", "desc")], limit=ADMIN_TOP_N)

    recent_users = db.query(User).order_by(User.created_at.desc()).limit(ADMIN_TOP_N).all()
    user_roles = {
        role.value: count
        for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all()
    }

    return {
        "overview": overview,
        "books_per_genre": books_per_genre,
        "top_rated_books": top_rated,
        "most_shelved_books": most_shelved,
        "recent_users": recent_users,
        "user_roles": user_roles,
        "monthly_users": monthly_signups(
            store.user_signup_times(months_before(now, SIGNUP_WINDOW_MONTHS))
        ),
    }

