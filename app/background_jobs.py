"""
Background job scheduler for periodic tasks.
Uses APScheduler to pre-generate last month's review for every active user,
so the review page opens on a cache hit.
"""
import asyncio
import os
import logging
from datetime import timedelta
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.ai_summary import get_summary_generator
from app.database import SessionLocal
from app.models import User
from app.services.errors import GenerationFailed, NoData, StoreUnavailable
from app.services.monthly_review import get_or_generate_monthly_summary
from app.services.record_store import SqlRecordStore
from app.time_utils import today_local

logger = logging.getLogger(__name__)


class BackgroundJobScheduler:
    """Manages background jobs for the application."""

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self.prewarm_enabled = os.getenv('REVIEW_PREWARM_ENABLED', 'false').lower() == 'true'

    def start(self):
        """Start the background job scheduler."""
        if not self.scheduler.running:
            if self.prewarm_enabled:
                # Shortly after midnight on the 1st, once last month is complete
                self.scheduler.add_job(
                    func=prewarm_monthly_reviews_job,
                    trigger=CronTrigger(day=1, hour=0, minute=30),
                    id='review_prewarm_job',
                    name='Generate last month reviews',
                    replace_existing=True
                )
                logger.info("Review prewarm job scheduled for the 1st of each month")

            self.scheduler.start()
            logger.info("Background job scheduler started")

    def stop(self):
        """Stop the background job scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Background job scheduler stopped")

    def run_prewarm_now(self):
        """Manually trigger the review prewarm job."""
        return prewarm_monthly_reviews_job()


def previous_month(today=None):
    """(year, month) of the month before `today`."""
    today = today or today_local()
    last_of_previous = today.replace(day=1) - timedelta(days=1)
    return last_of_previous.year, last_of_previous.month


def prewarm_monthly_reviews_job(session_factory=None, store=None, generator=None, today=None) -> dict:
    """
    Background job to generate last month's review for each active user.
    Users with no entries are skipped; failures are logged per user.
    """
    year, month = previous_month(today)
    logger.info(f"Starting review prewarm job for {year}-{month:02d}...")

    session_factory = session_factory or SessionLocal
    store = store or SqlRecordStore(session_factory)
    generator = generator or get_summary_generator()
    stats = {"generated": 0, "cached": 0, "skipped": 0, "errors": []}

    db = session_factory()
    try:
        user_ids = [u.id for u in db.query(User).filter(User.is_active.is_(True)).all()]
    finally:
        db.close()

    for user_id in user_ids:
        try:
            review = asyncio.run(
                get_or_generate_monthly_summary(store, generator, user_id, year, month)
            )
        except NoData:
            stats["skipped"] += 1
            continue
        except (GenerationFailed, StoreUnavailable) as e:
            logger.error(f"Review prewarm failed for user {user_id}: {e}")
            stats["errors"].append(f"user {user_id}: {e}")
            continue

        if review.cached:
            stats["cached"] += 1
        else:
            stats["generated"] += 1

    logger.info(f"Review prewarm completed: {stats}")
    return stats


# Global scheduler instance
scheduler = BackgroundJobScheduler()
