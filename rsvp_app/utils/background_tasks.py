import schedule
import time
import logging
import threading
from datetime import datetime
from typing import Optional
from ..services.notification_service import (
    NotificationScheduler,
    get_notification_scheduler,
)
from .constants import AppConstants

# Configure logging for background tasks
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class BackgroundTaskScheduler:
    def __init__(self, notifier: Optional[NotificationScheduler] = None):
        self.notifier = notifier
        self.running = False
        self.jobs = schedule.Scheduler()
        self.last_check_time = None
        self.last_check_status = "Not started"

    def schedule_housekeeping(self):
        """Prune expired host rate-limit entries every minute"""
        self.jobs.every(AppConstants.NOTIFICATION_PRUNE_INTERVAL_SECONDS).seconds.do(
            self._run_housekeeping
        )

        logger.info("📅 Notification housekeeping scheduled every minute")

    def _run_housekeeping(self):
        self.last_check_time = datetime.utcnow()

        try:
            notifier = self.notifier or get_notification_scheduler()
            pruned = notifier.prune_expired()
            logger.debug(f"Pruned {pruned} host rate-limit entries")
            self.last_check_status = "Success"
        except Exception as e:
            logger.error(f"❌ Notification housekeeping failed: {str(e)}")
            self.last_check_status = f"Error: {str(e)}"

    def start_scheduler(self):
        """Start the background task scheduler"""

        self.running = True
        logger.info("🚀 Starting background task scheduler...")

        self.schedule_housekeeping()

        while self.running:
            try:
                self.jobs.run_pending()
                time.sleep(1)
            except Exception as e:
                logger.error(f"Scheduler error: {str(e)}")
                time.sleep(1)  # Continue running even if there's an error

    def stop_scheduler(self):
        """Stop the background task scheduler"""

        self.running = False
        self.jobs.clear()
        logger.info("⏹️ Background task scheduler stopped")

    def run_immediate_check(self):
        """Run housekeeping immediately (for testing)"""
        self._run_housekeeping()

    def get_status(self):
        """Get current scheduler status"""
        return {
            "running": self.running,
            "scheduled_jobs_count": len(self.jobs.jobs),
            "last_check_time": (
                self.last_check_time.isoformat() if self.last_check_time else None
            ),
            "last_check_status": self.last_check_status,
            "job_details": [
                {
                    "job": str(job.job_func.__name__),
                    "next_run": job.next_run.isoformat() if job.next_run else None,
                    "interval": str(job.interval),
                    "unit": job.unit,
                }
                for job in self.jobs.jobs
            ],
        }


scheduler = BackgroundTaskScheduler()


def start_background_tasks():
    """Start background tasks (call this when starting the app)"""

    def run_scheduler():
        try:
            scheduler.start_scheduler()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {str(e)}")

    # Run scheduler in separate thread
    scheduler_thread = threading.Thread(target=run_scheduler, daemon=True)
    scheduler_thread.start()

    logger.info("✅ Background tasks started in separate thread")


def stop_background_tasks():
    """Stop background tasks and drop pending notifications"""
    scheduler.stop_scheduler()
    get_notification_scheduler().cancel_all()
