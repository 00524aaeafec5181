"""
Background scheduler for periodic maintenance.

Uses APScheduler to run two jobs in the background:
- activity sweep: deletes feed activities past the retention window
- aggregate reconcile: recomputes every book's derived counters, repairing any
  recompute that was skipped because the store was unavailable at write time
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session
from bookledger.core.config import settings
from bookledger.database import SessionLocal
from bookledger.services.aggregate_maintainer import recompute_all
from bookledger.services.social_graph import expire_activities

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def expire_activities_job():
    """Scheduled job that drops activities older than ACTIVITY_RETENTION_DAYS."""
    logger.info("Running activity sweep job")

    db: Session = SessionLocal()
    try:
        removed = expire_activities(db)
        logger.info(f"Activity sweep job completed: removed={removed}")
    except Exception as e:
        logger.exception(f"Activity sweep job failed: {e}")
    finally:
        db.close()


def reconcile_aggregates_job():
    """Scheduled job that recomputes the derived counters of every book."""
    logger.info("Running aggregate reconcile job")

    db: Session = SessionLocal()
    try:
        count = recompute_all(db)
        logger.info(f"Aggregate reconcile job completed: books={count}")
    except Exception as e:
        logger.exception(f"Aggregate reconcile job failed: {e}")
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler with all configured jobs.
    Call this from the FastAPI startup event.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return

    logger.info("Starting background scheduler")
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        expire_activities_job,
        trigger=IntervalTrigger(minutes=settings.ACTIVITY_SWEEP_MINUTES),
        id='expire_activities',
        name='Delete expired feed activities',
        replace_existing=True
    )

    scheduler.add_job(
        reconcile_aggregates_job,
        trigger=IntervalTrigger(minutes=settings.AGGREGATE_RECONCILE_MINUTES),
        id='reconcile_aggregates',
        name='Recompute book aggregates',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started with activity sweep and aggregate reconcile jobs")


def stop_scheduler():
    """
    Stop the background scheduler.
    Call this from the FastAPI shutdown event.
    """
    global scheduler

    if scheduler is not None:
        logger.info("Stopping background scheduler")
        scheduler.shutdown()
        scheduler = None
