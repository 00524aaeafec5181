from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Enum as SQLEnum, JSON, Float, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
import sqlalchemy as sa
from bookledger.database import Base


class Shelf(str, enum.Enum):
    WANT_TO_READ = "wantToRead"
    CURRENTLY_READING = "currentlyReading"
    READ = "read"


class ReviewStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ActivityType(str, enum.Enum):
    ADDED_TO_SHELF = "added-to-shelf"
    STARTED_READING = "started-reading"
    FINISHED_BOOK = "finished-book"
    RATED_BOOK = "rated-book"


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


def _enum_column(enum_cls, name):
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda enum: [e.value for e in enum],
    )


# Shared by user_books and activities so the enum type is created once
SHELF_TYPE = _enum_column(Shelf, "shelf")


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(_enum_column(UserRole, "userrole"), nullable=False, default=UserRole.USER)
    photo = Column(String, nullable=True)
    reading_goal_year = Column(Integer, nullable=True)
    reading_goal_target = Column(Integer, nullable=False, default=12)
    # Each edge is stored on both users; kept in sync by services.social_graph
    followers = Column(JSON, nullable=False, default=list)
    following = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    reviews = relationship("Review", back_populates="user")
    user_books = relationship("UserBook", back_populates="user")


class Genre(Base):
    __tablename__ = "genres"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(50), unique=True, nullable=False)
    slug = Column(String(60), unique=True, nullable=False)
    description = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    books = relationship("Book", back_populates="genre")


class Book(Base):
    __tablename__ = "books"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(200), nullable=False)
    author = Column(String(100), nullable=False)
    genre_id = Column(Uuid(as_uuid=True), ForeignKey("genres.id"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    cover_image = Column(String, nullable=True)
    total_pages = Column(Integer, nullable=False, default=0)
    publication_year = Column(Integer, nullable=True)
    isbn = Column(String, unique=True, nullable=True)
    # Derived: written only by services.aggregate_maintainer
    average_rating = Column(Float, nullable=False, default=0.0, index=True)
    total_ratings = Column(Integer, nullable=False, default=0)
    total_shelved = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    genre = relationship("Genre", back_populates="books")
    reviews = relationship("Review", back_populates="book")
    user_books = relationship("UserBook", back_populates="book")


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    book_id = Column(Uuid(as_uuid=True), ForeignKey("books.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)
    status = Column(_enum_column(ReviewStatus, "reviewstatus"), nullable=False, default=ReviewStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    book = relationship("Book", back_populates="reviews")
    user = relationship("User", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("book_id", "user_id", name="uq_review_book_user"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating_range"),
    )


class UserBook(Base):
    """
    One user's relationship to one book (the reading ledger).
    Shelf transitions stamp started_at / finished_at; neither is ever cleared.
    """
    __tablename__ = "user_books"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Uuid(as_uuid=True), ForeignKey("books.id"), nullable=False, index=True)
    shelf = Column(SHELF_TYPE, nullable=False)
    pages_read = Column(Integer, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0.0)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="user_books")
    book = relationship("Book", back_populates="user_books")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_user_book_user_book"),
    )


class Activity(Base):
    """
    Append-only activity record. Rows older than ACTIVITY_RETENTION_DAYS are hidden
    from the feed and removed by the scheduled sweep.
    """
    __tablename__ = "activities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    type = Column(_enum_column(ActivityType, "activitytype"), nullable=False)
    book_id = Column(Uuid(as_uuid=True), ForeignKey("books.id"), nullable=False)
    shelf = Column(SHELF_TYPE, nullable=True)
    rating = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("User")
    book = relationship("Book")

    __table_args__ = (
        sa.Index("idx_activities_user_created", "user_id", "created_at"),
    )
