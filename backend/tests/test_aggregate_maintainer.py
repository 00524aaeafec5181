"""Tests for book aggregate recomputation (ratings and shelf counts)."""
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from bookledger.core.config import settings
from bookledger.core.errors import TransientError
from bookledger.models import Book, Shelf
from bookledger.services import aggregate_maintainer, library_service, review_service
from bookledger.services.aggregate_maintainer import round_rating
from bookledger.services.ledger_store import LedgerStore


@pytest.fixture
def book(make_genre, make_book) -> Book:
    return make_book(make_genre("Fantasy"), title="The Long Road")


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "TRANSIENT_RETRY_BASE_DELAY_SECONDS", 0)


def _reload(db: Session, book_id) -> Book:
    db.expire_all()
    return db.get(Book, book_id)


@pytest.mark.parametrize(
    "total,count,expected",
    [
        (0, 0, 0.0),
        (12, 3, 4.0),
        (11, 3, 3.7),
        (14, 4, 3.5),
        (17, 4, 4.3),  # 4.25 rounds half-up
        (5, 1, 5.0),
    ],
)
def test_round_rating(total, count, expected):
    assert round_rating(total, count) == expected


def test_rating_aggregate_follows_moderation(db: Session, book: Book, make_user):
    """Only approved reviews count; approving and rejecting moves the average."""
    reviews = []
    for rating in (5, 3, 4):
        reviews.append(review_service.create_review(db, make_user().id, book.id, rating, "Good read"))

    refreshed = _reload(db, book.id)
    assert refreshed.total_ratings == 0
    assert refreshed.average_rating == 0.0

    for review in reviews:
        review_service.update_review_status(db, review.id, "approved")

    refreshed = _reload(db, book.id)
    assert refreshed.average_rating == 4.0
    assert refreshed.total_ratings == 3

    low = review_service.create_review(db, make_user().id, book.id, 2, "Not for me")
    review_service.update_review_status(db, low.id, "approved")
    refreshed = _reload(db, book.id)
    assert refreshed.average_rating == 3.5
    assert refreshed.total_ratings == 4

    review_service.update_review_status(db, low.id, "rejected")
    refreshed = _reload(db, book.id)
    assert refreshed.average_rating == 4.0
    assert refreshed.total_ratings == 3


def test_deleting_last_approved_review_resets_average(db: Session, book: Book, make_user):
    review = review_service.create_review(db, make_user().id, book.id, 5, "Loved it")
    review_service.update_review_status(db, review.id, "approved")
    assert _reload(db, book.id).average_rating == 5.0

    review_service.delete_review(db, review.id)
    refreshed = _reload(db, book.id)
    assert refreshed.average_rating == 0.0
    assert refreshed.total_ratings == 0


def test_shelf_count_tracks_library_entries(db: Session, book: Book, make_user):
    first = library_service.add_to_shelf(db, make_user().id, book.id, Shelf.WANT_TO_READ)
    library_service.add_to_shelf(db, make_user().id, book.id, Shelf.READ)
    assert _reload(db, book.id).total_shelved == 2

    # Moving between shelves does not change the count
    library_service.update_shelf(db, first.user_id, first.id, shelf=Shelf.CURRENTLY_READING)
    assert _reload(db, book.id).total_shelved == 2

    library_service.remove_from_shelf(db, first.user_id, first.id)
    assert _reload(db, book.id).total_shelved == 1


def test_recompute_is_idempotent(db: Session, book: Book, make_user, make_review, shelve):
    user = make_user()
    make_review(user, book, 4)
    make_review(make_user(), book, 3)
    shelve(user, book)

    first = aggregate_maintainer.recompute(db, book.id)
    second = aggregate_maintainer.recompute(db, book.id)

    assert first == second == {"average_rating": 3.5, "total_ratings": 2, "total_shelved": 1}
    refreshed = _reload(db, book.id)
    assert (refreshed.average_rating, refreshed.total_ratings, refreshed.total_shelved) == (3.5, 2, 1)


def test_recompute_repairs_drifted_values(db: Session, make_genre, make_book):
    drifted = make_book(make_genre("Drama"), average_rating=4.9, total_ratings=40, total_shelved=7)

    aggregate_maintainer.recompute(db, drifted.id)

    refreshed = _reload(db, drifted.id)
    assert (refreshed.average_rating, refreshed.total_ratings, refreshed.total_shelved) == (0.0, 0, 0)


def test_partial_recomputes_touch_only_their_fields(db: Session, book: Book, make_user, make_review, shelve):
    user = make_user()
    make_review(user, book, 2)
    shelve(user, book)

    assert aggregate_maintainer.recompute_shelf_count(db, book.id) == {"total_shelved": 1}
    refreshed = _reload(db, book.id)
    assert refreshed.total_ratings == 0

    assert aggregate_maintainer.recompute_rating_aggregate(db, book.id) == {
        "average_rating": 2.0,
        "total_ratings": 1,
    }


def test_recompute_missing_book_is_a_noop(db: Session):
    assert aggregate_maintainer.recompute(db, uuid4()) is None
    assert aggregate_maintainer.recompute_rating_aggregate(db, str(uuid4())) is None


def test_recompute_all_reconciles_every_book(db: Session, make_genre, make_book, make_user, make_review):
    genre = make_genre("History")
    books = [make_book(genre, title=f"Volume {i}", average_rating=1.0, total_shelved=9) for i in range(3)]
    make_review(make_user(), books[0], 5)

    assert aggregate_maintainer.recompute_all(db) == 3

    values = [(b.average_rating, b.total_shelved) for b in (_reload(db, book.id) for book in books)]
    assert values == [(5.0, 0), (0.0, 0), (0.0, 0)]


def _flaky_writes(monkeypatch, failures: int):
    original = LedgerStore.write_book_aggregates
    calls = {"n": 0}

    def flaky(self, book_id, **values):
        calls["n"] += 1
        if calls["n"] <= failures:
            raise OperationalError("UPDATE books", {}, Exception("database is locked"))
        return original(self, book_id, **values)

    monkeypatch.setattr(LedgerStore, "write_book_aggregates", flaky)
    return calls


def test_recompute_retries_transient_failures(db: Session, book: Book, make_user, make_review, monkeypatch, no_backoff):
    make_review(make_user(), book, 4)
    calls = _flaky_writes(monkeypatch, failures=1)

    values = aggregate_maintainer.recompute(db, book.id)

    assert calls["n"] == 2
    assert values["average_rating"] == 4.0
    assert _reload(db, book.id).total_ratings == 1


def test_recompute_gives_up_and_keeps_previous_values(db: Session, make_genre, make_book, make_user, make_review, monkeypatch, no_backoff):
    book = make_book(make_genre("Poetry"), average_rating=3.0, total_ratings=1)
    make_review(make_user(), book, 5)
    calls = _flaky_writes(monkeypatch, failures=100)

    with pytest.raises(TransientError):
        aggregate_maintainer.recompute(db, book.id)

    assert calls["n"] == settings.TRANSIENT_RETRY_ATTEMPTS
    refreshed = _reload(db, book.id)
    assert (refreshed.average_rating, refreshed.total_ratings) == (3.0, 1)


def test_mutation_survives_deferred_recompute(db: Session, book: Book, make_user, monkeypatch, no_backoff):
    """The review is saved even when its recompute keeps failing; reconcile repairs it later."""
    _flaky_writes(monkeypatch, failures=100)
    review = review_service.create_review(db, make_user().id, book.id, 5, "Great")
    assert review.id is not None

    monkeypatch.undo()
    review_service.update_review_status(db, review.id, "approved")
    assert _reload(db, book.id).total_ratings == 1
