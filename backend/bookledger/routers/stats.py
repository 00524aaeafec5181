from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bookledger.core.auth import get_current_user, require_admin
from bookledger.core.config import settings
from bookledger.database import get_db
from bookledger.models import User
from bookledger.schemas.book import BookSummary
from bookledger.schemas.recommendation import (
    RecommendationItem,
    RecommendationsResponse,
    RecommendationUserStats,
)
from bookledger.schemas.stats import AdminStatsResponse, ReadingStatsResponse
from bookledger.services import recommendation_engine, stats_engine


router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/recommendations", response_model=RecommendationsResponse)
def get_recommendations(
    limit: int = Query(settings.RECOMMENDATION_LIMIT, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = recommendation_engine.recommend(db, user.id, limit=limit)
    items = [
        RecommendationItem(
            book=BookSummary.model_validate(item.book),
            reason=item.reason,
            detail=item.detail,
        )
        for item in result.items
    ]
    return RecommendationsResponse(
        count=len(items),
        recommendations=items,
        user_stats=RecommendationUserStats(
            books_read=result.books_read,
            recommendation_mode=result.recommendation_mode,
        ),
    )


@router.get("/reading", response_model=ReadingStatsResponse)
def get_reading_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return stats_engine.reading_stats(db, user.id).to_dict()


@router.get("/admin", response_model=AdminStatsResponse)
def get_admin_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return stats_engine.admin_stats(db)
