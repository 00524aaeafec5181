from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from uuid import UUID


class GenreCreate(BaseModel):
    name: str
    description: Optional[str] = None


class GenreResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    description: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class GenreDetailResponse(GenreResponse):
    books_count: int


class BookCreate(BaseModel):
    title: str
    author: str
    genre_id: UUID
    description: str
    cover_image: Optional[str] = None
    total_pages: int = 0
    publication_year: Optional[int] = None
    isbn: Optional[str] = None


class BookSummary(BaseModel):
    id: UUID
    title: str
    author: str
    cover_image: Optional[str]
    average_rating: float
    total_ratings: int
    total_shelved: int

    class Config:
        from_attributes = True


class BookResponse(BookSummary):
    genre_id: UUID
    genre: Optional[GenreResponse] = None
    description: str
    total_pages: int
    publication_year: Optional[int]
    isbn: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class GenreUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class BookUpdate(BaseModel):
    # Rating and shelving counters are not editable here
    title: Optional[str] = None
    author: Optional[str] = None
    genre_id: Optional[UUID] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    total_pages: Optional[int] = None
    publication_year: Optional[int] = None
    isbn: Optional[str] = None


class BookPage(BaseModel):
    count: int
    total: int
    total_pages: int
    current_page: int
    books: List[BookResponse]


class Reviewer(BaseModel):
    id: UUID
    name: str
    photo: Optional[str]

    class Config:
        from_attributes = True


class BookReview(BaseModel):
    id: UUID
    rating: int
    comment: str
    created_at: datetime
    user: Reviewer

    class Config:
        from_attributes = True


class BookDetailResponse(BookResponse):
    reviews: List[BookReview]
