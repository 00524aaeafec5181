from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bookledger.core.auth import get_current_user, require_admin
from bookledger.database import get_db
from bookledger.models import User
from bookledger.schemas.book import (
    BookCreate,
    BookDetailResponse,
    BookPage,
    BookResponse,
    BookReview,
    BookUpdate,
    GenreCreate,
    GenreDetailResponse,
    GenreResponse,
    GenreUpdate,
)
from bookledger.services import catalog_service

router = APIRouter(tags=["catalog"])


@router.get("/genres", response_model=List[GenreResponse])
def list_genres(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog_service.list_genres(db)


@router.get("/genres/{genre_id}", response_model=GenreDetailResponse)
def get_genre(
    genre_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = catalog_service.get_genre(db, genre_id)
    return GenreDetailResponse(
        **GenreResponse.model_validate(result["genre"]).model_dump(),
        books_count=result["books_count"],
    )


@router.post("/genres", response_model=GenreResponse, status_code=status.HTTP_201_CREATED)
def create_genre(
    payload: GenreCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return catalog_service.create_genre(db, name=payload.name, description=payload.description)


@router.put("/genres/{genre_id}", response_model=GenreResponse)
def update_genre(
    genre_id: UUID,
    payload: GenreUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return catalog_service.update_genre(db, genre_id, name=payload.name, description=payload.description)


@router.delete("/genres/{genre_id}")
def delete_genre(
    genre_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    catalog_service.delete_genre(db, genre_id)
    return {"ok": True}


@router.get("/books", response_model=BookPage)
def browse_books(
    search: Optional[str] = None,
    genre: Optional[str] = Query(None, description="Comma-separated genre ids"),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5),
    max_rating: Optional[float] = Query(None, alias="maxRating", ge=0, le=5),
    sort: Optional[str] = Query(None, description="rating | shelved | newest"),
    page: int = Query(1, ge=1),
    limit: int = Query(catalog_service.DEFAULT_PAGE_SIZE, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return catalog_service.browse_books(
        db,
        search=search,
        genre=genre,
        min_rating=min_rating,
        max_rating=max_rating,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.post("/books", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return catalog_service.create_book(db, **payload.model_dump())


@router.get("/books/{book_id}", response_model=BookDetailResponse)
def get_book(
    book_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Book with its approved reviews."""
    result = catalog_service.get_book_detail(db, book_id)
    return BookDetailResponse(
        **BookResponse.model_validate(result["book"]).model_dump(),
        reviews=[BookReview.model_validate(review) for review in result["reviews"]],
    )


@router.put("/books/{book_id}", response_model=BookResponse)
def update_book(
    book_id: UUID,
    payload: BookUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return catalog_service.update_book(db, book_id, payload.model_dump(exclude_unset=True))
