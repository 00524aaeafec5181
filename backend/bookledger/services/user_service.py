"""User administration: listing, profiles with reading counts, role changes."""
import logging
from typing import List

from sqlalchemy.orm import Session

from bookledger.core.errors import NotFoundError, ValidationFailure
from bookledger.models import Shelf, User, UserRole
from bookledger.services.ledger_store import IdLike, LedgerStore

logger = logging.getLogger(__name__)


def parse_role(value) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationFailure('Invalid role. Must be "user" or "admin"')


def list_users(db: Session) -> List[User]:
    """All users, newest first."""
    return LedgerStore(db).list_users()


def get_user_profile(db: Session, user_id: IdLike) -> dict:
    """
    A user plus their reading and social counts:
    books_read, books_reading, followers, following.
    """
    store = LedgerStore(db)
    user = store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")

    stats = {
        "books_read": store.count_user_shelf(user.id, Shelf.READ),
        "books_reading": store.count_user_shelf(user.id, Shelf.CURRENTLY_READING),
        "followers": len(user.followers or []),
        "following": len(user.following or []),
    }
    return {"user": user, "stats": stats}


def update_user_role(db: Session, user_id: IdLike, role) -> User:
    new_role = parse_role(role)
    store = LedgerStore(db)
    user = store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")

    previous = user.role
    user.role = new_role
    db.commit()
    db.refresh(user)
    logger.info("User %s role %s -> %s", user.id, previous.value, new_role.value)
    return user
