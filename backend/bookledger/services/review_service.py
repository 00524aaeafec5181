"""
Review lifecycle: create, moderate, delete.

Every mutation commits first and then explicitly recomputes the referenced
book's rating aggregate.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from bookledger.core.errors import ConflictError, NotFoundError, ValidationFailure
from bookledger.models import ActivityType, Review, ReviewStatus
from bookledger.services.aggregate_maintainer import recompute_after_mutation
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


def _validate_rating(rating) -> int:
    # bool is an int subclass; True is not a rating
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationFailure("Rating must be an integer between 1 and 5")
    if rating < 1 or rating > 5:
        raise ValidationFailure("Rating must be an integer between 1 and 5")
    return rating


def _validate_comment(comment: Optional[str]) -> str:
    if comment is None or not comment.strip():
        raise ValidationFailure("Review comment is required")
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationFailure(f"Review cannot exceed {MAX_COMMENT_LENGTH} characters")
    return comment


def parse_review_status(value) -> ReviewStatus:
    if isinstance(value, ReviewStatus):
        return value
    try:
        return ReviewStatus(value)
    except ValueError:
        raise ValidationFailure("Invalid status value")


def create_review(
    db: Session,
    user_id: IdLike,
    book_id: IdLike,
    rating: int,
    comment: str,
) -> Review:
    """
    Create a pending review for (book, user).

    Raises:
        ValidationFailure: rating outside 1-5 or missing / oversized comment
        NotFoundError: book does not exist
        ConflictError: the user already reviewed this book
    """
    rating = _validate_rating(rating)
    comment = _validate_comment(comment)

    store = LedgerStore(db)
    user_uuid = coerce_id(user_id, "user id")
    book = store.get_book(book_id)
    if not book:
        raise NotFoundError("Book not found")

    if store.find_review(book.id, user_uuid):
        raise ConflictError("You have already reviewed this book")

    review = Review(
        book_id=book.id,
        user_id=user_uuid,
        rating=rating,
        comment=comment,
        status=ReviewStatus.PENDING,
    )
    db.add(review)
    store.add_activity(
        user_id=user_uuid,
        type=ActivityType.RATED_BOOK,
        book_id=book.id,
        rating=rating,
    )
    try:
        db.commit()
    except IntegrityError:
        # Another request inserted the same (book, user) review between check and insert
        db.rollback()
        logger.info("Duplicate review (race condition): user_id=%s, book_id=%s", user_uuid, book.id)
        raise ConflictError("You have already reviewed this book")
    db.refresh(review)

    logger.info("Review created: review_id=%s, book_id=%s, user_id=%s", review.id, book.id, user_uuid)
    recompute_after_mutation(db, book.id)
    return review


def update_review_status(db: Session, review_id: IdLike, status) -> Review:
    """Moderate a review (approve / reject / back to pending)."""
    new_status = parse_review_status(status)
    store = LedgerStore(db)
    review = store.get_review(review_id)
    if not review:
        raise NotFoundError("Review not found")

    previous = review.status
    review.status = new_status
    db.commit()
    db.refresh(review)

    logger.info("Review %s status %s -> %s", review.id, previous.value, new_status.value)
    recompute_after_mutation(db, review.book_id)
    return review


def delete_review(db: Session, review_id: IdLike) -> None:
    store = LedgerStore(db)
    review = store.get_review(review_id)
    if not review:
        raise NotFoundError("Review not found")

    book_id = review.book_id
    db.delete(review)
    db.commit()

    logger.info("Review deleted: review_id=%s, book_id=%s", review_id, book_id)
    recompute_after_mutation(db, book_id)


def list_reviews(
    db: Session,
    status=None,
    book_id: Optional[IdLike] = None,
) -> List[Review]:
    """Moderation queue: all reviews, optionally filtered, newest first."""
    q = db.query(Review).options(joinedload(Review.user), joinedload(Review.book))
    if status is not None:
        q = q.filter(Review.status == parse_review_status(status))
    if book_id is not None:
        q = q.filter(Review.book_id == coerce_id(book_id, "book id"))
    return q.order_by(Review.created_at.desc(), Review.id.desc()).all()


def list_book_reviews(db: Session, book_id: IdLike) -> List[Review]:
    """Approved reviews for a book, newest first."""
    return list_reviews(db, status=ReviewStatus.APPROVED, book_id=book_id)


def list_user_reviews(db: Session, user_id: IdLike) -> List[Review]:
    return (
        db.query(Review)
        .options(joinedload(Review.book))
        .filter(Review.user_id == coerce_id(user_id, "user id"))
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
