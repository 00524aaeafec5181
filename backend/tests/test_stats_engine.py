"""Tests for reading statistics and the admin dashboard numbers."""
from datetime import datetime, timedelta
from types import SimpleNamespace

from sqlalchemy.orm import Session

from bookledger.models import ReviewStatus, Shelf, UserRole
from bookledger.services import stats_engine
from bookledger.services.stats_engine import favorite_genre, months_before, monthly_signups, reading_streak

NOW = datetime(2024, 6, 15, 18, 0)


def _finished(*days_ago):
    return [SimpleNamespace(finished_at=NOW - timedelta(days=d)) for d in days_ago]


def test_reading_streak_counts_finishes_in_window():
    assert reading_streak(_finished(1, 10, 30, 31), NOW) == 3


def test_reading_streak_resets_after_a_quiet_week():
    assert reading_streak(_finished(8, 9, 10), NOW) == 0
    # 7 days and some hours still counts as 7 whole days
    assert reading_streak([SimpleNamespace(finished_at=NOW - timedelta(days=7, hours=20))], NOW) == 1


def test_reading_streak_ignores_entries_without_finish_date():
    entries = [SimpleNamespace(finished_at=None)] + _finished(2)
    assert reading_streak(entries, NOW) == 1
    assert reading_streak([SimpleNamespace(finished_at=None)], NOW) == 0
    assert reading_streak([], NOW) == 0


def test_favorite_genre_first_maximum_wins():
    assert favorite_genre({"Drama": 2, "Poetry": 3, "Satire": 3}) == "Poetry"
    assert favorite_genre({}) == "None"


def test_reading_stats(db: Session, make_user, make_genre, make_book, shelve, make_review):
    user = make_user()
    fantasy = make_genre("Fantasy")
    scifi = make_genre("Sci-Fi")

    june = make_book(fantasy, title="June read", total_pages=300)
    february = make_book(fantasy, title="February read", total_pages=200)
    last_year = make_book(scifi, title="Last year", total_pages=100)
    shelve(user, june, finished_at=datetime(2024, 6, 10))
    shelve(user, february, finished_at=datetime(2024, 2, 1))
    shelve(user, last_year, finished_at=datetime(2023, 12, 20))
    shelve(user, make_book(scifi, title="In progress"), shelf=Shelf.CURRENTLY_READING)
    shelve(user, make_book(scifi, title="Someday"), shelf=Shelf.WANT_TO_READ)
    shelve(user, make_book(scifi, title="Maybe"), shelf=Shelf.WANT_TO_READ)
    make_review(user, june, 5)
    make_review(user, february, 4, status=ReviewStatus.PENDING)

    stats = stats_engine.reading_stats(db, user.id, now=NOW)

    assert stats.books_read_this_year == 2
    assert stats.total_pages == 500
    assert stats.average_rating == 4.5
    assert stats.reading_streak == 1
    assert stats.genre_breakdown == {"Fantasy": 2, "Sci-Fi": 1}
    assert stats.favorite_genre == "Fantasy"
    assert stats.monthly_reading == [0, 1, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0]
    assert stats.total_books_read == 3
    assert stats.currently_reading == 1
    assert stats.want_to_read == 2
    assert stats.reading_goal.year == 2024
    assert stats.reading_goal.target == 12
    assert stats.reading_goal.progress == 2


def test_reading_stats_for_new_user(db: Session, make_user):
    user = make_user()

    stats = stats_engine.reading_stats(db, user.id, now=NOW).to_dict()

    assert stats["books_read_this_year"] == 0
    assert stats["average_rating"] == 0.0
    assert stats["favorite_genre"] == "None"
    assert stats["genre_breakdown"] == {}
    assert stats["monthly_reading"] == [0] * 12
    assert stats["reading_goal"] == {"year": 2024, "target": 12, "progress": 0}


def test_admin_stats(db: Session, make_user, make_genre, make_book, make_review):
    make_user(role=UserRole.ADMIN, name="Admin")
    reader = make_user(name="Reader")
    fiction = make_genre("Fiction")
    essays = make_genre("Essays")
    make_genre("Empty")
    top = make_book(fiction, title="Top", average_rating=4.9, total_shelved=2)
    make_book(fiction, title="Shelved", average_rating=3.0, total_shelved=30)
    make_book(essays, title="Plain")
    make_review(reader, top, 5)
    make_review(reader, make_book(essays, title="Pending"), 2, status=ReviewStatus.PENDING)

    stats = stats_engine.admin_stats(db)

    assert stats["overview"] == {
        "total_users": 2,
        "total_books": 4,
        "total_genres": 3,
        "total_reviews": 2,
        "pending_reviews": 1,
    }
    assert stats["books_per_genre"] == [{"genre": "Essays", "count": 2}, {"genre": "Fiction", "count": 2}]
    assert stats["top_rated_books"][0].title == "Top"
    assert stats["most_shelved_books"][0].title == "Shelved"
    assert [u.name for u in stats["recent_users"]] == ["Reader", "Admin"]
    assert stats["user_roles"] == {"admin": 1, "user": 1}


def test_months_before_clamps_to_month_end():
    assert months_before(datetime(2024, 6, 15, 18, 0), 6) == datetime(2023, 12, 15, 18, 0)
    assert months_before(datetime(2024, 8, 31), 6) == datetime(2024, 2, 29)
    assert months_before(datetime(2024, 3, 10), 3) == datetime(2023, 12, 10)


def test_monthly_signups_groups_by_calendar_month():
    signups = [datetime(2024, 5, 2), datetime(2023, 12, 30), datetime(2024, 5, 20), datetime(2024, 1, 1)]
    assert monthly_signups(signups) == [
        {"year": 2023, "month": 12, "count": 1},
        {"year": 2024, "month": 1, "count": 1},
        {"year": 2024, "month": 5, "count": 2},
    ]


def test_admin_stats_monthly_users_covers_last_six_months(db: Session, make_user):
    make_user(created_at=datetime(2023, 12, 1))  # before the window
    make_user(created_at=datetime(2024, 1, 5))
    make_user(created_at=datetime(2024, 6, 1))
    make_user(created_at=datetime(2024, 6, 14))

    stats = stats_engine.admin_stats(db, now=NOW)

    assert stats["monthly_users"] == [
        {"year": 2024, "month": 1, "count": 1},
        {"year": 2024, "month": 6, "count": 2},
    ]
