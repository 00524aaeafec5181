from pydantic import BaseModel
from typing import List, Literal
from bookledger.schemas.book import BookSummary


class RecommendationItem(BaseModel):
    book: BookSummary
    reason: Literal["genre affinity match", "popular among readers", "highly rated", "discovery"]
    detail: str  # Human-readable explanation shown next to the book


class RecommendationUserStats(BaseModel):
    books_read: int
    recommendation_mode: Literal["personalized", "discovery"]


class RecommendationsResponse(BaseModel):
    count: int
    recommendations: List[RecommendationItem]
    user_stats: RecommendationUserStats
