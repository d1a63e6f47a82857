"""
Unit tests for database models
"""

from datetime import date

from models import ScheduleStatus, UserStatus
from tests.factories import UserFactory, DriverFactory, ScheduleFactory, MaintenanceFactory


class TestUserModel:
    """Test User model functionality"""

    def test_password_hashing(self, db_session):
        user = UserFactory()
        user.set_password('correct horse')
        assert user.check_password('correct horse')
        assert not user.check_password('wrong')

    def test_inactive_user(self, db_session):
        assert UserFactory(status=UserStatus.INACTIVE).is_active is False

    def test_full_name_falls_back_to_username(self, db_session):
        user = UserFactory(username='solo', first_name=None, last_name=None)
        assert user.full_name == 'solo'


class TestScheduleModel:
    """Test Schedule model functionality"""

    def test_to_dict(self, db_session):
        driver = DriverFactory(first_name='Awa', last_name='Kone')
        schedule = ScheduleFactory(driver=driver, schedule_date=date(2024, 1, 1), end_date=None,
                                   status=ScheduleStatus.PENDING)

        data = schedule.to_dict()
        assert data['driver'] == {'id': driver.id, 'name': 'Awa Kone'}
        assert data['start_date'] == '2024-01-01'
        assert data['end_date'] is None
        assert data['status'] == 'pending'
        assert schedule.is_active is True

    def test_period_labels(self, db_session):
        schedule = ScheduleFactory(schedule_date=date(2024, 1, 1), end_date=date(2024, 1, 10))
        maintenance = MaintenanceFactory(maintenance_date=date(2024, 3, 1), completion_date=None)
        assert schedule.period_label() == '2024-01-01 to 2024-01-10'
        assert maintenance.period_label() == '2024-03-01 to open'

    def test_driver_in_service(self, db_session):
        assert DriverFactory().in_service is True
        assert DriverFactory(departure_date=date(2024, 5, 1)).in_service is False
