from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID
from bookledger.models import ReviewStatus
from bookledger.schemas.book import BookSummary


class ReviewCreate(BaseModel):
    book_id: UUID
    # Range is checked by the review service so every caller gets the same error
    rating: int
    comment: str


class ReviewStatusUpdate(BaseModel):
    status: str


class ReviewResponse(BaseModel):
    id: UUID
    book_id: UUID
    user_id: UUID
    rating: int
    comment: str
    status: ReviewStatus
    created_at: datetime
    book: Optional[BookSummary] = None

    class Config:
        from_attributes = True
