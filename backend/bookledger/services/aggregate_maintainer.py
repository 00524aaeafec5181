"""
Keeps a book's derived fields (average_rating, total_ratings, total_shelved)
equal to what its reviews and shelf entries say.

Every recompute reads the source facts and overwrites the derived fields; nothing
is ever incremented. That makes recomputes idempotent and lets concurrent or
repeated calls for the same book converge on the same values.

Mutation sites (review_service, library_service) call recompute() explicitly after
committing the fact. The scheduled reconcile job calls recompute_all() to repair
any book whose recompute failed.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from sqlalchemy.orm import Session

from bookledger.core.errors import TransientError
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id
from bookledger.utils.retry import run_unit_with_retries

logger = logging.getLogger(__name__)


def round_rating(total: int, count: int) -> float:
    """Mean of `count` integer ratings summing to `total`, rounded half-up to 0.1."""
    if count <= 0:
        return 0.0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _rating_values(store: LedgerStore, book_id) -> Dict[str, float]:
    total, count = store.approved_rating_totals(book_id)
    return {"average_rating": round_rating(total, count), "total_ratings": count}


def _shelf_values(store: LedgerStore, book_id) -> Dict[str, int]:
    return {"total_shelved": store.count_shelf_entries(book_id)}


def _apply(db: Session, book_id: IdLike, *, ratings: bool, shelves: bool, label: str) -> Optional[dict]:
    book_uuid = coerce_id(book_id, "book id")
    store = LedgerStore(db)

    def unit():
        values = {}
        if ratings:
            values.update(_rating_values(store, book_uuid))
        if shelves:
            values.update(_shelf_values(store, book_uuid))
        if not store.write_book_aggregates(book_uuid, **values):
            logger.debug("%s skipped: book %s no longer exists", label, book_uuid)
            return None
        return values

    values = run_unit_with_retries(db, unit, label=f"{label} book={book_uuid}")
    if values is not None:
        logger.debug("%s book=%s -> %s", label, book_uuid, values)
    return values


def recompute_rating_aggregate(db: Session, book_id: IdLike) -> Optional[dict]:
    """
    Recompute average_rating / total_ratings from approved reviews.

    Returns the written values, or None when the book does not exist (no-op).
    Raises TransientError if the store stayed unavailable; the book keeps its
    previous values in that case.
    """
    return _apply(db, book_id, ratings=True, shelves=False, label="recompute_rating_aggregate")


def recompute_shelf_count(db: Session, book_id: IdLike) -> Optional[dict]:
    """Recompute total_shelved from the live count of ledger entries."""
    return _apply(db, book_id, ratings=False, shelves=True, label="recompute_shelf_count")


def recompute(db: Session, book_id: IdLike) -> Optional[dict]:
    """Recompute every derived field of one book in a single transaction."""
    return _apply(db, book_id, ratings=True, shelves=True, label="recompute")


def recompute_after_mutation(db: Session, book_id: IdLike) -> None:
    """
    Called by mutation services once their own change is committed.

    The mutation itself has already succeeded, so a recompute that is still
    failing after retries is logged and left for the reconcile job rather than
    failing the caller.
    """
    try:
        recompute(db, book_id)
    except TransientError as e:
        logger.warning(
            "Aggregate recompute deferred to reconcile job: book_id=%s, error=%s",
            book_id,
            e.detail,
        )


def recompute_all(db: Session) -> int:
    """Reconcile every book. Returns the number of books recomputed."""
    store = LedgerStore(db)
    book_ids = store.all_book_ids()
    recomputed = 0
    failed = 0
    for book_id in book_ids:
        try:
            if recompute(db, book_id) is not None:
                recomputed += 1
        except TransientError:
            failed += 1
    if failed:
        logger.warning("Aggregate reconcile finished with %d failures out of %d books", failed, len(book_ids))
    else:
        logger.info("Aggregate reconcile recomputed %d books", recomputed)
    return recomputed
