from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bookledger.core.auth import get_current_user, require_admin
from bookledger.core.config import settings
from bookledger.database import get_db
from bookledger.models import User
from bookledger.schemas.social import ActivityResponse, ReadingGoalResult, ReadingGoalUpdate
from bookledger.schemas.user import UserProfileResponse, UserRoleUpdate, UserSummary
from bookledger.services import social_graph, user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/activity-feed", response_model=List[ActivityResponse])
def get_activity_feed(
    limit: int = Query(settings.ACTIVITY_FEED_LIMIT, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return social_graph.activity_feed(db, user.id, limit=limit)


@router.put("/reading-goal", response_model=ReadingGoalResult)
def update_reading_goal(
    payload: ReadingGoalUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = social_graph.update_reading_goal(
        db, user.id, target_books=payload.target_books, year=payload.year,
    )
    return ReadingGoalResult(year=updated.reading_goal_year, target_books=updated.reading_goal_target)


@router.post("/{user_id}/follow")
def follow_user(
    user_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    social_graph.follow(db, user.id, user_id)
    return {"ok": True}


@router.delete("/{user_id}/follow")
def unfollow_user(
    user_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    social_graph.unfollow(db, user.id, user_id)
    return {"ok": True}


@router.get("", response_model=List[UserSummary])
def list_users(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_service.list_users(db)


@router.get("/{user_id}", response_model=UserProfileResponse)
def get_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = user_service.get_user_profile(db, user_id)
    user = result["user"]
    return UserProfileResponse(
        **UserSummary.model_validate(user).model_dump(),
        reading_goal_year=user.reading_goal_year,
        reading_goal_target=user.reading_goal_target,
        stats=result["stats"],
    )


@router.put("/{user_id}/role", response_model=UserSummary)
def update_user_role(
    user_id: UUID,
    payload: UserRoleUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_service.update_user_role(db, user_id, payload.role)
