from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bookledger.core.auth import get_current_user
from bookledger.database import get_db
from bookledger.models import User
from bookledger.schemas.user_book import LibraryResponse, ShelfAdd, ShelfUpdate, UserBookResponse
from bookledger.services import library_service

router = APIRouter(prefix="/library", tags=["library"])


@router.get("", response_model=LibraryResponse)
def get_my_library(
    shelf: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the current user's library grouped by shelf."""
    return library_service.get_library(db, user.id, shelf=shelf)


@router.post("", response_model=UserBookResponse, status_code=status.HTTP_201_CREATED)
def add_to_shelf(
    payload: ShelfAdd,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return library_service.add_to_shelf(
        db,
        user_id=user.id,
        book_id=payload.book_id,
        shelf=payload.shelf,
        pages_read=payload.pages_read,
    )


@router.put("/{entry_id}", response_model=UserBookResponse)
def update_shelf(
    entry_id: UUID,
    payload: ShelfUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return library_service.update_shelf(
        db,
        user_id=user.id,
        entry_id=entry_id,
        shelf=payload.shelf,
        pages_read=payload.pages_read,
        notes=payload.notes,
    )


@router.delete("/{entry_id}")
def remove_from_shelf(
    entry_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    library_service.remove_from_shelf(db, user_id=user.id, entry_id=entry_id)
    return {"ok": True}
