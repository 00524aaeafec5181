import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy.orm import Session

from bookledger.core.config import settings
from bookledger.models import Book, Shelf
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id
from bookledger.utils.timing import now_ms, log_elapsed

logger = logging.getLogger(__name__)


# Reason tags (stable, machine-distinguishable)
REASON_GENRE_AFFINITY = "genre affinity match"
REASON_POPULAR = "popular among readers"
REASON_HIGHLY_RATED = "highly rated"
REASON_DISCOVERY = "discovery"

MODE_PERSONALIZED = "personalized"
MODE_DISCOVERY = "discovery"

# Read-shelf size at which recommendations switch to personalized mode
PERSONALIZATION_MIN_READ = 3

# Personalized mode
TOP_GENRES = 3
DEFAULT_BASELINE_RATING = 4.0
BASELINE_TOLERANCE = 0.5
POPULAR_MIN_RATING = 4.0

# Discovery mode (10 + 8, no backfill)
HIGHLY_RATED_MIN_RATING = 4.0
HIGHLY_RATED_SIZE = 10
DISCOVERY_SAMPLE_SIZE = 8


@dataclass
class Recommendation:
    book: Book
    reason: str
    detail: str


@dataclass
class RecommendationResult:
    items: List[Recommendation] = field(default_factory=list)
    books_read: int = 0
    recommendation_mode: str = MODE_DISCOVERY

    @property
    def book_ids(self) -> List[UUID]:
        return [item.book.id for item in self.items]


def top_genre_ids(genre_counts: Counter, genre_order: List[UUID], n: int = TOP_GENRES) -> List[UUID]:
    """
    The n genres with the most read books.

    Ties keep the genre's creation order: genres are laid out in that order
    first and the sort by count is stable.
    """
    position = {genre_id: i for i, genre_id in enumerate(genre_order)}
    ordered = sorted(genre_counts, key=lambda g: position.get(g, len(position)))
    ordered.sort(key=lambda g: genre_counts[g], reverse=True)
    return ordered[:n]


def baseline_rating(ratings: List[int]) -> float:
    """The user's personal average review score, 4.0 when they have none."""
    if not ratings:
        return DEFAULT_BASELINE_RATING
    return sum(ratings) / len(ratings)


def _personalized(
    store: LedgerStore,
    user_id: UUID,
    read_entries,
    limit: int,
) -> List[Recommendation]:
    t = now_ms()
    read_ids: Set[UUID] = {entry.book_id for entry in read_entries}

    genre_counts: Counter = Counter()
    for entry in read_entries:
        if entry.book is not None:
            genre_counts[entry.book.genre_id] += 1

    genre_order = [g.id for g in store.genres_in_creation_order(genre_counts.keys())]
    favorite_genres = top_genre_ids(genre_counts, genre_order)
    baseline = baseline_rating(store.user_review_ratings(user_id))
    if settings.DEBUG:
        t = log_elapsed(t, f"user={user_id} affinity genres={len(favorite_genres)} baseline={baseline:.2f}")

    affinity_books = store.find_books(
        genre_ids=favorite_genres,
        exclude_ids=read_ids,
        min_rating=baseline - BASELINE_TOLERANCE,
        order_by=[("average_rating", "desc"), ("total_shelved", "desc")],
        limit=limit,
    )
    items = [
        Recommendation(
            book=book,
            reason=REASON_GENRE_AFFINITY,
            detail=f"Matches your preference for {book.genre.name if book.genre else 'this genre'}",
        )
        for book in affinity_books
    ]

    remaining = limit - len(items)
    if remaining > 0:
        popular_books = store.find_books(
            exclude_ids=read_ids | {book.id for book in affinity_books},
            min_rating=POPULAR_MIN_RATING,
            order_by=[("total_shelved", "desc"), ("average_rating", "desc")],
            limit=remaining,
        )
        items.extend(
            Recommendation(book=book, reason=REASON_POPULAR, detail="Popular among readers")
            for book in popular_books
        )

    if settings.DEBUG:
        log_elapsed(t, f"user={user_id} personalized pools count={len(items)}")
    return items


def _discovery(
    store: LedgerStore,
    user_id: UUID,
    read_entries,
    rng: Optional[random.Random],
) -> List[Recommendation]:
    t = now_ms()
    highly_rated = store.find_books(
        min_rating=HIGHLY_RATED_MIN_RATING,
        min_shelved_exclusive=0,
        order_by=[("average_rating", "desc"), ("total_shelved", "desc")],
        limit=HIGHLY_RATED_SIZE,
    )
    items = [
        Recommendation(book=book, reason=REASON_HIGHLY_RATED, detail="Highly rated by readers")
        for book in highly_rated
    ]

    excluded = {entry.book_id for entry in read_entries} | {book.id for book in highly_rated}
    sampled = store.sample_books(DISCOVERY_SAMPLE_SIZE, exclude_ids=excluded, rng=rng)
    items.extend(
        Recommendation(book=book, reason=REASON_DISCOVERY, detail="Discover something new")
        for book in sampled
    )

    if settings.DEBUG:
        log_elapsed(t, f"user={user_id} discovery pools count={len(items)}")
    return items


def recommend(
    db: Session,
    user_id: IdLike,
    limit: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> RecommendationResult:
    """
    Ranked recommendations for a user.

    Personalized mode (3+ books on the read shelf): books from the user's top-3
    genres rated at least baseline - 0.5, topped up to `limit` with popular books
    rated 4.0+. Discovery mode: up to 10 highly rated, shelved books plus up to 8
    uniformly sampled books the user hasn't read; `limit` does not apply.

    Read-only. A small catalog simply yields fewer results.
    """
    limit = settings.RECOMMENDATION_LIMIT if limit is None else limit
    user_uuid = coerce_id(user_id, "user id")
    store = LedgerStore(db)

    read_entries = store.user_books(user_uuid, Shelf.READ)
    books_read = len(read_entries)

    if books_read >= PERSONALIZATION_MIN_READ:
        mode = MODE_PERSONALIZED
        items = _personalized(store, user_uuid, read_entries, max(limit, 0))
    else:
        mode = MODE_DISCOVERY
        items = _discovery(store, user_uuid, read_entries, rng)

    logger.info(
        "Recommendations for user %s: mode=%s books_read=%d count=%d",
        user_uuid, mode, books_read, len(items),
    )
    return RecommendationResult(items=items, books_read=books_read, recommendation_mode=mode)
