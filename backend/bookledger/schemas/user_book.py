from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from bookledger.models import Shelf
from bookledger.schemas.book import BookSummary


class ShelfAdd(BaseModel):
    book_id: UUID
    shelf: str
    pages_read: int = 0


class ShelfUpdate(BaseModel):
    shelf: Optional[str] = None
    pages_read: Optional[int] = None
    notes: Optional[str] = None


class UserBookResponse(BaseModel):
    id: UUID
    user_id: UUID
    book_id: UUID
    shelf: Shelf
    pages_read: int
    percentage: float
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    notes: Optional[str]
    created_at: datetime
    book: Optional[BookSummary] = None

    class Config:
        from_attributes = True


class LibraryShelves(BaseModel):
    wantToRead: List[UserBookResponse]
    currentlyReading: List[UserBookResponse]
    read: List[UserBookResponse]


class LibraryStats(BaseModel):
    wantToRead: int
    currentlyReading: int
    read: int
    total: int


class LibraryResponse(BaseModel):
    library: LibraryShelves
    stats: LibraryStats
