"""
Background task scheduler for the schedule lifecycle
Closes elapsed schedules, activates due pending ones and generates the
daily payments, each job inside its own application context
"""

import logging
import schedule
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def run_lifecycle_sweep() -> Dict[str, int]:
    """
    Close elapsed schedules then activate pending ones whose start day has
    arrived. Needs an application context.
    """
    from services import ScheduleService

    service = ScheduleService()
    closed = service.close_elapsed_schedules()
    activated = service.activate_pending_schedules()

    stats = {
        'completed': len(closed['completed']),
        'canceled': len(closed['canceled']),
        'activated': len(activated),
    }
    logger.info(f"Schedule lifecycle sweep: {stats}")
    return stats


def run_payment_generation() -> Dict[str, int]:
    """Generate the daily payments of running schedules. Needs an application context."""
    from services import PaymentService

    created = PaymentService().generate_for_active_schedules()
    return {'payments_created': created}


class BackgroundTaskScheduler:
    """Runs the lifecycle jobs on a daemon thread"""

    def __init__(self, app=None, sweep_minutes: int = 60, payments_at: str = "00:01"):
        self.app = app
        self.sweep_minutes = sweep_minutes
        self.payments_at = payments_at
        self.scheduler = schedule.Scheduler()
        self.running = False
        self.scheduler_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def init_app(self, app):
        self.app = app
        self.sweep_minutes = int(app.config.get('LIFECYCLE_SWEEP_MINUTES', self.sweep_minutes))
        app.extensions['background_tasks'] = self

    def register_jobs(self):
        self.scheduler.clear()
        self.scheduler.every(self.sweep_minutes).minutes.do(self._safe_run, run_lifecycle_sweep)
        self.scheduler.every().day.at(self.payments_at).do(self._safe_run, run_payment_generation)

    def start_scheduler(self):
        """Start the background task scheduler"""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting background task scheduler")
        self.register_jobs()
        self._stop_event.clear()
        self.running = True
        self.scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
        self.scheduler_thread.start()
        logger.info("Background task scheduler started successfully")

    def stop_scheduler(self):
        """Stop the background task scheduler"""
        if not self.running:
            return

        logger.info("Stopping background task scheduler")
        self.running = False
        self._stop_event.set()
        self.scheduler.clear()

        if self.scheduler_thread:
            self.scheduler_thread.join(timeout=30)

        logger.info("Background task scheduler stopped")

    def _run_scheduler(self):
        while self.running:
            self.scheduler.run_pending()
            self._stop_event.wait(60)  # Check every minute

    def _safe_run(self, job):
        """Run a job inside an application context, logging instead of raising"""
        try:
            with self.app.app_context():
                return job()
        except Exception as e:
            logger.error(f"Background job {job.__name__} failed: {str(e)}", exc_info=True)
            return None


def init_background_tasks(app) -> BackgroundTaskScheduler:
    """Create and start the scheduler - call this from app startup"""
    scheduler = BackgroundTaskScheduler()
    scheduler.init_app(app)
    scheduler.start_scheduler()
    return scheduler


def cleanup_background_tasks(app):
    """Stop the scheduler - call this on app shutdown"""
    scheduler = app.extensions.get('background_tasks')
    if scheduler:
        scheduler.stop_scheduler()
