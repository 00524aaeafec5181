"""
Follow graph and activity feed.

Each follow edge is stored twice: on the follower's `following` list and on the
target's `followers` list. Both sides are written in one transaction, so a
failure rolls back both; transient failures retry the whole unit.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from bookledger.core.config import settings
from bookledger.core.errors import ConflictError, NotFoundError, ValidationFailure
from bookledger.models import Activity, User
from bookledger.services.ledger_store import IdLike, LedgerStore, coerce_id
from bookledger.utils.retry import run_unit_with_retries

logger = logging.getLogger(__name__)

DEFAULT_READING_GOAL = 12


def _load_pair(store: LedgerStore, follower_id, targetee_id) -> Tuple[User, User]:
    users = {u.id: u for u in store.lock_users([follower_id, targetee_id])}
    follower = users.get(follower_id)
    targetee = users.get(targetee_id)
    if follower is None or targetee is None:
        raise NotFoundError("User not found")
    return follower, targetee


def follow(db: Session, follower_id: IdLike, targetee_id: IdLike) -> None:
    """
    Add the follower -> targetee edge on both users.

    Raises:
        ConflictError: self-follow, or the edge already exists on both users
        NotFoundError: either user does not exist
        TransientError: the store stayed unavailable; neither side was written
    """
    follower_uuid = coerce_id(follower_id, "user id")
    targetee_uuid = coerce_id(targetee_id, "user id")
    if follower_uuid == targetee_uuid:
        raise ConflictError("You cannot follow yourself")

    store = LedgerStore(db)

    def unit():
        follower, targetee = _load_pair(store, follower_uuid, targetee_uuid)
        has_following = str(targetee_uuid) in (follower.following or [])
        has_follower = str(follower_uuid) in (targetee.followers or [])
        if has_following and has_follower:
            raise ConflictError("Already following this user")

        # A half-written edge is completed instead of rejected.
        # Reassign rather than append so the JSON columns are flagged dirty.
        if not has_following:
            follower.following = [*(follower.following or []), str(targetee_uuid)]
        if not has_follower:
            targetee.followers = [*(targetee.followers or []), str(follower_uuid)]

    run_unit_with_retries(db, unit, label=f"follow {follower_uuid}->{targetee_uuid}")
    logger.info("User %s now follows %s", follower_uuid, targetee_uuid)


def unfollow(db: Session, follower_id: IdLike, targetee_id: IdLike) -> None:
    """Remove the edge from both users. Removing a missing edge is a no-op."""
    follower_uuid = coerce_id(follower_id, "user id")
    targetee_uuid = coerce_id(targetee_id, "user id")
    if follower_uuid == targetee_uuid:
        return

    store = LedgerStore(db)

    def unit():
        follower, targetee = _load_pair(store, follower_uuid, targetee_uuid)
        following = [uid for uid in (follower.following or []) if uid != str(targetee_uuid)]
        followers = [uid for uid in (targetee.followers or []) if uid != str(follower_uuid)]
        if following != (follower.following or []):
            follower.following = following
        if followers != (targetee.followers or []):
            targetee.followers = followers

    run_unit_with_retries(db, unit, label=f"unfollow {follower_uuid}->{targetee_uuid}")
    logger.info("User %s unfollowed %s", follower_uuid, targetee_uuid)


def activity_feed(
    db: Session,
    user_id: IdLike,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Activity]:
    """Most recent unexpired activities of the users `user_id` follows, newest first."""
    limit = settings.ACTIVITY_FEED_LIMIT if limit is None else limit
    now = now or datetime.utcnow()
    store = LedgerStore(db)
    user = store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")

    following = [coerce_id(uid, "user id") for uid in (user.following or [])]
    since = now - timedelta(days=settings.ACTIVITY_RETENTION_DAYS)
    return store.recent_activities(following, since=since, limit=limit)


def expire_activities(db: Session, now: Optional[datetime] = None) -> int:
    """Delete activities older than the retention window. Returns rows removed."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=settings.ACTIVITY_RETENTION_DAYS)
    store = LedgerStore(db)
    removed = run_unit_with_retries(
        db,
        lambda: store.delete_activities_before(cutoff),
        label="expire_activities",
    )
    logger.info("Expired %d activities older than %s", removed, cutoff.isoformat())
    return removed


def update_reading_goal(
    db: Session,
    user_id: IdLike,
    target_books: Optional[int] = None,
    year: Optional[int] = None,
) -> User:
    if target_books is not None and target_books <= 0:
        raise ValidationFailure("target_books must be a positive integer")

    store = LedgerStore(db)
    user = store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")

    user.reading_goal_year = year or datetime.utcnow().year
    user.reading_goal_target = target_books or DEFAULT_READING_GOAL
    db.commit()
    db.refresh(user)
    return user
