from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID
from bookledger.models import UserRole


class UserSummary(BaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole
    photo: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class UserProfileStats(BaseModel):
    books_read: int
    books_reading: int
    followers: int
    following: int


class UserProfileResponse(UserSummary):
    reading_goal_year: Optional[int]
    reading_goal_target: int
    stats: UserProfileStats


class UserRoleUpdate(BaseModel):
    role: str
