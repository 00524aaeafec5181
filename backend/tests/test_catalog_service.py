"""Tests for catalog browsing and genre / book edits."""
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from bookledger.core.errors import ConflictError, NotFoundError, ValidationFailure
from bookledger.models import Book, Genre
from bookledger.services import catalog_service, review_service


@pytest.fixture
def shelf(make_genre, make_book):
    """A small catalog: three fantasy books and two history books."""
    fantasy, history = make_genre("Fantasy"), make_genre("History")
    books = {
        "dragons": make_book(fantasy, title="Dragons of Dawn", average_rating=4.6, total_shelved=3),
        "elves": make_book(fantasy, title="Elves Abroad", average_rating=3.2, total_shelved=12),
        "sword": make_book(fantasy, title="The Sword", average_rating=4.1, total_shelved=7),
        "rome": make_book(history, title="Rome Rising", average_rating=4.9, total_shelved=1),
        "ships": make_book(history, title="Tall Ships", average_rating=2.5, total_shelved=20),
    }
    return fantasy, history, books


def _titles(page):
    return [b.title for b in page["books"]]


def test_browse_defaults_to_newest_first(db: Session, shelf):
    page = catalog_service.browse_books(db)

    assert _titles(page) == ["Tall Ships", "Rome Rising", "The Sword", "Elves Abroad", "Dragons of Dawn"]
    assert (page["count"], page["total"], page["total_pages"], page["current_page"]) == (5, 5, 1, 1)


def test_browse_search_matches_title_or_author_case_insensitively(db: Session, shelf):
    assert _titles(catalog_service.browse_books(db, search="SHIPS")) == ["Tall Ships"]
    # Every fixture book shares the same author
    assert catalog_service.browse_books(db, search="auth")["total"] == 5


def test_browse_filters_by_genre_list_and_rating_range(db: Session, shelf):
    fantasy, history, _ = shelf

    page = catalog_service.browse_books(db, genre=str(fantasy.id), min_rating=4.0, sort="rating")
    assert _titles(page) == ["Dragons of Dawn", "The Sword"]

    both = catalog_service.browse_books(db, genre=f"{fantasy.id},{history.id}", max_rating=3.5, sort="shelved")
    assert _titles(both) == ["Tall Ships", "Elves Abroad"]

    with pytest.raises(ValidationFailure):
        catalog_service.browse_books(db, genre="fantasy")


def test_browse_paginates(db: Session, shelf):
    first = catalog_service.browse_books(db, sort="shelved", page=1, limit=2)
    second = catalog_service.browse_books(db, sort="shelved", page=2, limit=2)
    last = catalog_service.browse_books(db, sort="shelved", page=3, limit=2)

    assert _titles(first) == ["Tall Ships", "Elves Abroad"]
    assert _titles(second) == ["The Sword", "Dragons of Dawn"]
    assert _titles(last) == ["Rome Rising"]
    assert first["total"] == 5
    assert first["total_pages"] == 3
    assert catalog_service.browse_books(db, page=4, limit=2)["books"] == []

    with pytest.raises(ValidationFailure):
        catalog_service.browse_books(db, page=0)


def test_update_book_ignores_derived_fields(db: Session, shelf):
    book = shelf[2]["sword"]

    updated = catalog_service.update_book(
        db,
        book.id,
        {"title": "The Sword, Revised", "total_pages": 410, "average_rating": 1.0, "total_ratings": 99, "total_shelved": 0},
    )

    assert updated.title == "The Sword, Revised"
    assert updated.total_pages == 410
    db.expire_all()
    stored = db.get(Book, book.id)
    assert (stored.average_rating, stored.total_ratings, stored.total_shelved) == (4.1, 0, 7)


def test_update_book_validates_changes(db: Session, shelf):
    _, history, books = shelf
    catalog_service.update_book(db, books["rome"].id, {"isbn": "978-0-00-000001-1"})

    with pytest.raises(ConflictError):
        catalog_service.update_book(db, books["ships"].id, {"isbn": "978-0-00-000001-1"})
    with pytest.raises(NotFoundError):
        catalog_service.update_book(db, books["ships"].id, {"genre_id": uuid4()})
    with pytest.raises(ValidationFailure):
        catalog_service.update_book(db, books["ships"].id, {"title": "  "})
    with pytest.raises(ValidationFailure):
        catalog_service.update_book(db, books["ships"].id, {"total_pages": -1})
    with pytest.raises(ValidationFailure):
        catalog_service.update_book(db, books["ships"].id, {"id": uuid4()})
    with pytest.raises(NotFoundError):
        catalog_service.update_book(db, uuid4(), {"title": "Ghost"})

    moved = catalog_service.update_book(db, books["dragons"].id, {"genre_id": str(history.id)})
    assert moved.genre_id == history.id


def test_book_detail_lists_only_approved_reviews(db: Session, shelf, make_user):
    book = shelf[2]["rome"]
    approved = review_service.create_review(db, make_user(name="Livia").id, book.id, 5, "Vivid")
    review_service.create_review(db, make_user().id, book.id, 1, "Dull")
    review_service.update_review_status(db, approved.id, "approved")

    detail = catalog_service.get_book_detail(db, book.id)

    assert detail["book"].id == book.id
    assert [(r.id, r.user.name) for r in detail["reviews"]] == [(approved.id, "Livia")]


def test_update_genre_rederives_slug(db: Session, make_genre):
    genre = make_genre("Science Fiction")
    make_genre("Horror")

    updated = catalog_service.update_genre(db, genre.id, name="Speculative  Fiction", description="Futures")
    assert (updated.name, updated.slug, updated.description) == ("Speculative  Fiction", "speculative-fiction", "Futures")

    with pytest.raises(ConflictError):
        catalog_service.update_genre(db, genre.id, name="Horror")
    with pytest.raises(NotFoundError):
        catalog_service.update_genre(db, uuid4(), name="Anything")

    # Keeping the same name is not a conflict
    assert catalog_service.update_genre(db, genre.id, name="Speculative  Fiction").slug == "speculative-fiction"


def test_delete_genre_refuses_while_books_use_it(db: Session, make_genre, make_book):
    used, empty = make_genre("Used"), make_genre("Empty")
    make_book(used)

    with pytest.raises(ValidationFailure):
        catalog_service.delete_genre(db, used.id)

    catalog_service.delete_genre(db, empty.id)
    assert db.get(Genre, empty.id) is None
    with pytest.raises(NotFoundError):
        catalog_service.delete_genre(db, empty.id)
