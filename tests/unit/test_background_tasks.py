"""
Unit tests for the background lifecycle jobs
"""

from datetime import timedelta

from models import ScheduleStatus, Payment
from utils.background_tasks import (BackgroundTaskScheduler, run_lifecycle_sweep,
                                    run_payment_generation, cleanup_background_tasks)
from tests.factories import ScheduleFactory


class TestJobs:
    """Test the job functions run by the scheduler"""

    def test_lifecycle_sweep(self, db_session, today):
        expired = ScheduleFactory(schedule_date=today - timedelta(days=4), end_date=today - timedelta(days=1),
                                  status=ScheduleStatus.ASSIGNED)
        due = ScheduleFactory(schedule_date=today, status=ScheduleStatus.PENDING)

        stats = run_lifecycle_sweep()

        assert stats == {'completed': 1, 'canceled': 0, 'activated': 1}
        assert expired.status == ScheduleStatus.COMPLETED
        assert due.status == ScheduleStatus.ASSIGNED

    def test_payment_generation(self, db_session, today):
        schedule = ScheduleFactory(schedule_date=today - timedelta(days=1), status=ScheduleStatus.ASSIGNED)

        assert run_payment_generation() == {'payments_created': 2}
        assert Payment.query.filter_by(schedule_id=schedule.id).count() == 2


class TestBackgroundTaskScheduler:
    """Test scheduler wiring without starting its thread"""

    def test_init_app_reads_interval(self, app):
        app.config['LIFECYCLE_SWEEP_MINUTES'] = 15
        scheduler = BackgroundTaskScheduler()
        scheduler.init_app(app)

        assert scheduler.sweep_minutes == 15
        assert app.extensions['background_tasks'] is scheduler

    def test_register_jobs(self, app):
        scheduler = BackgroundTaskScheduler(app, sweep_minutes=30, payments_at="00:05")
        scheduler.register_jobs()
        scheduler.register_jobs()

        assert len(scheduler.scheduler.get_jobs()) == 2

    def test_safe_run_swallows_job_errors(self, app):
        def failing_job():
            raise RuntimeError('database unavailable')

        scheduler = BackgroundTaskScheduler(app)
        assert scheduler._safe_run(failing_job) is None

    def test_safe_run_returns_job_result(self, app):
        scheduler = BackgroundTaskScheduler(app)
        assert scheduler._safe_run(lambda: 42) == 42

    def test_cleanup_without_scheduler(self, app):
        cleanup_background_tasks(app)
        assert 'background_tasks' not in app.extensions
