"""Genre and book catalog management."""
import logging
import math
import re
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookledger.core.errors import ConflictError, NotFoundError, ValidationFailure
from bookledger.models import Book, Genre
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12

BROWSE_SORTS = {
    "rating": [("average_rating", "desc")],
    "shelved": [("total_shelved", "desc")],
    "newest": [("created_at", "desc")],
}

# Written only by the aggregate maintainer
DERIVED_BOOK_FIELDS = frozenset({"average_rating", "total_ratings", "total_shelved"})

EDITABLE_BOOK_FIELDS = frozenset({
    "title",
    "author",
    "genre_id",
    "description",
    "cover_image",
    "total_pages",
    "publication_year",
    "isbn",
})


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def create_genre(db: Session, name: str, description: Optional[str] = None) -> Genre:
    if not name or not name.strip():
        raise ValidationFailure("Genre name is required")
    name = name.strip()

    if db.query(Genre).filter(Genre.name == name).first():
        raise ConflictError(f"Genre '{name}' already exists")

    genre = Genre(name=name, slug=slugify(name), description=description)
    db.add(genre)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Genre '{name}' already exists")
    db.refresh(genre)
    logger.info("Genre created: %s (%s)", genre.name, genre.slug)
    return genre


def list_genres(db: Session) -> List[Genre]:
    return db.query(Genre).order_by(Genre.name).all()


def get_genre(db: Session, genre_id: IdLike) -> dict:
    """Genre plus the number of books filed under it."""
    store = LedgerStore(db)
    genre = store.get_genre(genre_id)
    if not genre:
        raise NotFoundError("Genre not found")
    return {"genre": genre, "books_count": store.count_books_in_genre(genre.id)}


def update_genre(
    db: Session,
    genre_id: IdLike,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Genre:
    """Rename and/or redescribe a genre. A new name re-derives the slug."""
    store = LedgerStore(db)
    genre = store.get_genre(genre_id)
    if not genre:
        raise NotFoundError("Genre not found")

    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationFailure("Genre name is required")
        if name != genre.name:
            if db.query(Genre).filter(Genre.name == name, Genre.id != genre.id).first():
                raise ConflictError(f"Genre '{name}' already exists")
            genre.name = name
            genre.slug = slugify(name)
    if description is not None:
        genre.description = description

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Genre '{name}' already exists")
    db.refresh(genre)
    logger.info("Genre updated: %s (%s)", genre.name, genre.slug)
    return genre


def delete_genre(db: Session, genre_id: IdLike) -> None:
    """Delete a genre that no book is filed under."""
    store = LedgerStore(db)
    genre = store.get_genre(genre_id)
    if not genre:
        raise NotFoundError("Genre not found")

    books_count = store.count_books_in_genre(genre.id)
    if books_count > 0:
        raise ValidationFailure(f"Cannot delete genre. {books_count} books are using this genre.")

    db.delete(genre)
    db.commit()
    logger.info("Genre deleted: %s", genre_id)


def create_book(
    db: Session,
    title: str,
    author: str,
    genre_id: IdLike,
    description: str,
    cover_image: Optional[str] = None,
    total_pages: int = 0,
    publication_year: Optional[int] = None,
    isbn: Optional[str] = None,
) -> Book:
    """
    Add a book to the catalog. Derived fields always start at zero; only the
    aggregate maintainer writes them afterwards.
    """
    if total_pages is None or total_pages < 0:
        raise ValidationFailure("total_pages must be a non-negative integer")

    store = LedgerStore(db)
    genre = store.get_genre(genre_id)
    if not genre:
        raise NotFoundError("Genre not found")

    isbn = isbn.strip() if isbn else None
    if isbn and db.query(Book).filter(Book.isbn == isbn).first():
        raise ConflictError(f"A book with ISBN {isbn} already exists")

    book = Book(
        title=title,
        author=author,
        genre_id=genre.id,
        description=description,
        cover_image=cover_image,
        total_pages=total_pages,
        publication_year=publication_year,
        isbn=isbn,
        average_rating=0.0,
        total_ratings=0,
        total_shelved=0,
    )
    db.add(book)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"A book with ISBN {isbn} already exists")
    db.refresh(book)
    logger.info("Book created: book_id=%s, title=%s", book.id, book.title)
    return book


def get_book(db: Session, book_id: IdLike) -> Book:
    book = LedgerStore(db).get_book(book_id)
    if not book:
        raise NotFoundError("Book not found")
    return book


def _parse_genre_filter(genre: Optional[str]) -> Optional[List[UUID]]:
    if not genre:
        return None
    return [coerce_id(part.strip(), "genre id") for part in genre.split(",") if part.strip()]


def browse_books(
    db: Session,
    search: Optional[str] = None,
    genre: Optional[str] = None,
    min_rating: Optional[float] = None,
    max_rating: Optional[float] = None,
    sort: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """
    One page of the catalog.

    `genre` is a comma-separated list of genre ids. `sort` is one of rating,
    shelved or newest; anything else falls back to newest.
    """
    if page < 1 or limit < 1:
        raise ValidationFailure("page and limit must be positive integers")

    filters = {
        "genre_ids": _parse_genre_filter(genre),
        "min_rating": min_rating,
        "max_rating": max_rating,
        "search": search.strip() if search else None,
    }
    store = LedgerStore(db)
    books = store.find_books(
        order_by=BROWSE_SORTS.get(sort, BROWSE_SORTS["newest"]),
        limit=limit,
        offset=(page - 1) * limit,
        **filters,
    )
    total = store.count_books(**filters)
    return {
        "count": len(books),
        "total": total,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "books": books,
    }


def get_book_detail(db: Session, book_id: IdLike) -> dict:
    """A book together with its approved reviews."""
    book = get_book(db, book_id)
    return {"book": book, "reviews": LedgerStore(db).approved_reviews(book.id)}


def update_book(db: Session, book_id: IdLike, changes: Dict[str, Any]) -> Book:
    """
    Apply catalog edits to a book.

    average_rating, total_ratings and total_shelved are dropped from `changes`:
    they follow the book's reviews and shelf entries and nothing else.
    """
    store = LedgerStore(db)
    book = store.get_book(book_id)
    if not book:
        raise NotFoundError("Book not found")

    ignored = DERIVED_BOOK_FIELDS.intersection(changes)
    if ignored:
        logger.info("Ignoring derived fields on book update: book_id=%s, fields=%s", book.id, sorted(ignored))
    changes = {k: v for k, v in changes.items() if k not in DERIVED_BOOK_FIELDS}

    unknown = set(changes) - EDITABLE_BOOK_FIELDS
    if unknown:
        raise ValidationFailure(f"Unknown book fields: {', '.join(sorted(unknown))}")

    for field in ("title", "author", "description"):
        if field in changes and (changes[field] is None or not str(changes[field]).strip()):
            raise ValidationFailure(f"{field} is required")
    if "total_pages" in changes and (changes["total_pages"] is None or changes["total_pages"] < 0):
        raise ValidationFailure("total_pages must be a non-negative integer")

    if "genre_id" in changes:
        genre = store.get_genre(changes["genre_id"])
        if not genre:
            raise NotFoundError("Genre not found")
        changes["genre_id"] = genre.id

    if changes.get("isbn"):
        changes["isbn"] = changes["isbn"].strip()
        duplicate = db.query(Book).filter(Book.isbn == changes["isbn"], Book.id != book.id).first()
        if duplicate:
            raise ConflictError(f"A book with ISBN {changes['isbn']} already exists")

    for field, value in changes.items():
        setattr(book, field, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"A book with ISBN {changes.get('isbn')} already exists")
    db.refresh(book)
    logger.info("Book updated: book_id=%s, fields=%s", book.id, sorted(changes))
    return book
