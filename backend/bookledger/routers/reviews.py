from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bookledger.core.auth import get_current_user, require_admin
from bookledger.database import get_db
from bookledger.models import User
from bookledger.schemas.review import ReviewCreate, ReviewResponse, ReviewStatusUpdate
from bookledger.services import review_service

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    payload: ReviewCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Submit a review. It stays pending until a moderator approves it."""
    return review_service.create_review(
        db,
        user_id=user.id,
        book_id=payload.book_id,
        rating=payload.rating,
        comment=payload.comment,
    )


@router.get("", response_model=List[ReviewResponse])
def get_reviews(
    status_filter: Optional[str] = Query(None, alias="status"),
    book_id: Optional[UUID] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return review_service.list_reviews(db, status=status_filter, book_id=book_id)


@router.get("/my-reviews", response_model=List[ReviewResponse])
def get_my_reviews(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return review_service.list_user_reviews(db, user.id)


@router.get("/book/{book_id}", response_model=List[ReviewResponse])
def get_book_reviews(
    book_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return review_service.list_book_reviews(db, book_id)


@router.put("/{review_id}/status", response_model=ReviewResponse)
def update_review_status(
    review_id: UUID,
    payload: ReviewStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return review_service.update_review_status(db, review_id, payload.status)


@router.delete("/{review_id}")
def delete_review(
    review_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    review_service.delete_review(db, review_id)
    return {"ok": True}
