"""
Shelf (reading ledger) mutations.

add / update / remove commit the entry, append the matching activity, and then
explicitly recompute the book's shelving count.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookledger.core.errors import ConflictError, NotFoundError, ValidationFailure
from bookledger.models import ActivityType, Book, Shelf, UserBook
from bookledger.services.aggregate_maintainer import recompute_after_mutation
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 500


def parse_shelf(value) -> Shelf:
    if isinstance(value, Shelf):
        return value
    try:
        return Shelf(value)
    except ValueError:
        valid = ", ".join(s.value for s in Shelf)
        raise ValidationFailure(f"Invalid shelf. Must be one of: {valid}")


def _validate_pages(pages_read) -> int:
    if isinstance(pages_read, bool) or not isinstance(pages_read, int) or pages_read < 0:
        raise ValidationFailure("pages_read must be a non-negative integer")
    return pages_read


def progress_percentage(pages_read: int, total_pages: Optional[int]) -> float:
    """Percentage of the book read, capped at 100. 0 when the page count is unknown."""
    if not total_pages:
        return 0.0
    return min(pages_read / total_pages * 100, 100.0)


def _mark_finished(entry: UserBook, book: Book, now: datetime) -> None:
    entry.finished_at = now
    entry.pages_read = book.total_pages or 0
    entry.percentage = 100.0


def add_to_shelf(
    db: Session,
    user_id: IdLike,
    book_id: IdLike,
    shelf,
    pages_read: int = 0,
    now: Optional[datetime] = None,
) -> UserBook:
    """
    Put a book on one of the user's shelves.

    Raises:
        ValidationFailure: malformed shelf or negative pages
        NotFoundError: book does not exist
        ConflictError: the book is already in the user's library
    """
    shelf = parse_shelf(shelf)
    pages_read = _validate_pages(pages_read)
    now = now or datetime.utcnow()

    store = LedgerStore(db)
    user_uuid = coerce_id(user_id, "user id")
    book = store.get_book(book_id)
    if not book:
        raise NotFoundError("Book not found")

    if store.find_user_book(user_uuid, book.id):
        raise ConflictError("Book already in your library. Update instead.")

    entry = UserBook(
        user_id=user_uuid,
        book_id=book.id,
        shelf=shelf,
        pages_read=pages_read,
        percentage=progress_percentage(pages_read, book.total_pages),
        started_at=now if shelf == Shelf.CURRENTLY_READING else None,
    )
    if shelf == Shelf.READ:
        _mark_finished(entry, book, now)
    db.add(entry)
    store.add_activity(
        user_id=user_uuid,
        type=ActivityType.ADDED_TO_SHELF,
        book_id=book.id,
        shelf=shelf,
        created_at=now,
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Duplicate shelf entry (race condition): user_id=%s, book_id=%s", user_uuid, book.id)
        raise ConflictError("Book already in your library. Update instead.")
    db.refresh(entry)

    logger.info("Shelf entry added: entry_id=%s, book_id=%s, shelf=%s", entry.id, book.id, shelf.value)
    recompute_after_mutation(db, book.id)
    return entry


def _owned_entry(store: LedgerStore, user_id: IdLike, entry_id: IdLike) -> UserBook:
    entry = store.get_user_book(entry_id)
    # Entries of other users are reported as missing
    if not entry or entry.user_id != coerce_id(user_id, "user id"):
        raise NotFoundError("Book not found in your library")
    return entry


def update_shelf(
    db: Session,
    user_id: IdLike,
    entry_id: IdLike,
    shelf=None,
    pages_read: Optional[int] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> UserBook:
    """
    Move an entry between shelves and/or record progress and notes.

    Moving to currentlyReading stamps started_at the first time only; moving to
    read stamps finished_at and fills progress. Timestamps are never cleared.
    """
    new_shelf = parse_shelf(shelf) if shelf is not None else None
    if pages_read is not None:
        pages_read = _validate_pages(pages_read)
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationFailure(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")
    now = now or datetime.utcnow()

    store = LedgerStore(db)
    entry = _owned_entry(store, user_id, entry_id)
    book = entry.book

    if new_shelf is not None:
        entry.shelf = new_shelf
        if new_shelf == Shelf.CURRENTLY_READING and entry.started_at is None:
            entry.started_at = now
            store.add_activity(
                user_id=entry.user_id,
                type=ActivityType.STARTED_READING,
                book_id=entry.book_id,
                created_at=now,
            )
        if new_shelf == Shelf.READ:
            _mark_finished(entry, book, now)
            store.add_activity(
                user_id=entry.user_id,
                type=ActivityType.FINISHED_BOOK,
                book_id=entry.book_id,
                created_at=now,
            )

    if pages_read is not None:
        entry.pages_read = pages_read
        if book.total_pages:
            entry.percentage = progress_percentage(pages_read, book.total_pages)

    if notes is not None:
        entry.notes = notes

    db.commit()
    db.refresh(entry)

    logger.info("Shelf entry updated: entry_id=%s, shelf=%s", entry.id, entry.shelf.value)
    recompute_after_mutation(db, entry.book_id)
    return entry


def remove_from_shelf(db: Session, user_id: IdLike, entry_id: IdLike) -> None:
    store = LedgerStore(db)
    entry = _owned_entry(store, user_id, entry_id)
    book_id = entry.book_id
    db.delete(entry)
    db.commit()

    logger.info("Shelf entry removed: entry_id=%s, book_id=%s", entry_id, book_id)
    recompute_after_mutation(db, book_id)


def get_library(db: Session, user_id: IdLike, shelf=None) -> Dict[str, object]:
    """The user's entries grouped by shelf, newest first, with per-shelf counts."""
    store = LedgerStore(db)
    entries = store.user_books(user_id, parse_shelf(shelf) if shelf is not None else None)
    entries.reverse()

    library: Dict[str, List[UserBook]] = {s.value: [] for s in Shelf}
    for entry in entries:
        library[entry.shelf.value].append(entry)

    counts = {name: len(items) for name, items in library.items()}
    counts["total"] = len(entries)
    return {"library": library, "stats": counts}
