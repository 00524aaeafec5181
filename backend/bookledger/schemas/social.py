from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID
from bookledger.models import ActivityType, Shelf


class ActivityUser(BaseModel):
    id: UUID
    name: str
    photo: Optional[str]

    class Config:
        from_attributes = True


class ActivityBook(BaseModel):
    id: UUID
    title: str
    author: str
    cover_image: Optional[str]

    class Config:
        from_attributes = True


class ActivityResponse(BaseModel):
    id: UUID
    type: ActivityType
    shelf: Optional[Shelf]
    rating: Optional[int]
    created_at: datetime
    user: ActivityUser
    book: ActivityBook

    class Config:
        from_attributes = True


class ReadingGoalUpdate(BaseModel):
    target_books: Optional[int] = None
    year: Optional[int] = None


class ReadingGoalResult(BaseModel):
    year: int
    target_books: int
