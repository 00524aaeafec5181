from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import datetime
from uuid import UUID
from bookledger.models import UserRole
from bookledger.schemas.book import BookSummary


class ReadingGoalResponse(BaseModel):
    year: int
    target: int
    progress: int


class ReadingStatsResponse(BaseModel):
    books_read_this_year: int
    total_pages: int
    average_rating: float
    reading_streak: int
    favorite_genre: str
    genre_breakdown: Dict[str, int]
    monthly_reading: List[int]
    total_books_read: int
    currently_reading: int
    want_to_read: int
    reading_goal: Optional[ReadingGoalResponse] = None


class AdminOverview(BaseModel):
    total_users: int
    total_books: int
    total_genres: int
    total_reviews: int
    pending_reviews: int


class GenreCount(BaseModel):
    genre: str
    count: int


class RecentUser(BaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class MonthlyCount(BaseModel):
    year: int
    month: int
    count: int


class AdminStatsResponse(BaseModel):
    overview: AdminOverview
    books_per_genre: List[GenreCount]
    top_rated_books: List[BookSummary]
    most_shelved_books: List[BookSummary]
    recent_users: List[RecentUser]
    user_roles: Dict[str, int]
    monthly_users: List[MonthlyCount]
