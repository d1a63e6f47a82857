"""
Unit tests for the schedule service
"""

import pytest
from datetime import timedelta

from models import (Schedule, ScheduleStatus, Payment, AuditLog, VehicleStatus)
from services import ScheduleService, ConflictError, ValidationError, NotFoundError
from services.vehicle_service import link_driver_vehicle
from tests.factories import DriverFactory, VehicleFactory, ScheduleFactory, MaintenanceFactory


def days(n):
    return timedelta(days=n)


@pytest.fixture
def service():
    return ScheduleService()


@pytest.fixture
def driver(db_session):
    return DriverFactory(first_name='Awa', last_name='Kone')


@pytest.fixture
def vehicle(db_session):
    return VehicleFactory(license_plate='AA-100-BB')


def payload(driver, vehicle, start, end=None, **extra):
    data = {
        'driver_id': driver.id,
        'vehicle_id': vehicle.id,
        'start_date': start.isoformat(),
        'end_date': end.isoformat() if end else None,
    }
    data.update(extra)
    return data


class TestCreateSchedule:
    """Test schedule creation"""

    def test_schedule_starting_today_is_assigned(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today))

        assert schedule.status == ScheduleStatus.ASSIGNED
        assert driver.current_vehicle_id == vehicle.id
        assert vehicle.current_driver_id == driver.id
        payments = Payment.query.filter_by(schedule_id=schedule.id).all()
        assert [payment.payment_date for payment in payments] == [today]
        assert AuditLog.query.filter_by(action='schedule_create', entity_id=schedule.id).count() == 1

    def test_future_schedule_waits_as_pending(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(3), today + days(5)))

        assert schedule.status == ScheduleStatus.PENDING
        assert driver.current_vehicle_id is None
        assert Payment.query.filter_by(schedule_id=schedule.id).count() == 0

    def test_driver_conflict(self, service, driver, vehicle, today):
        existing = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(10)))
        other_vehicle = VehicleFactory()

        with pytest.raises(ConflictError) as exc_info:
            service.create_schedule(payload(driver, other_vehicle, today + days(5), today + days(20)))

        error = exc_info.value
        assert error.code == 'SCHEDULE_CONFLICT'
        assert error.status_code == 409
        assert error.conflict.id == existing.id
        assert 'Awa Kone' in error.message
        assert error.to_dict()['conflict']['id'] == existing.id
        assert Schedule.query.count() == 1

    def test_vehicle_conflict(self, service, driver, vehicle, today):
        service.create_schedule(payload(driver, vehicle, today + days(1), today + days(10)))
        other_driver = DriverFactory()

        with pytest.raises(ConflictError) as exc_info:
            service.create_schedule(payload(other_driver, vehicle, today + days(10), today + days(12)))

        assert 'AA-100-BB' in exc_info.value.message
        assert exc_info.value.code == 'SCHEDULE_CONFLICT'

    def test_adjacent_period_is_accepted(self, service, driver, vehicle, today):
        service.create_schedule(payload(driver, vehicle, today + days(1), today + days(10)))
        schedule = service.create_schedule(payload(driver, vehicle, today + days(11), today + days(15)))
        assert schedule.id is not None

    def test_open_maintenance_blocks_vehicle(self, service, driver, vehicle, today):
        MaintenanceFactory(vehicle=vehicle, maintenance_date=today + days(2), completion_date=None)

        with pytest.raises(ConflictError) as exc_info:
            service.create_schedule(payload(driver, vehicle, today + days(10), today + days(12)))

        assert exc_info.value.code == 'MAINTENANCE_CONFLICT'

    def test_inverted_period_rejected(self, service, driver, vehicle, today):
        with pytest.raises(ValidationError) as exc_info:
            service.create_schedule(payload(driver, vehicle, today + days(5), today + days(1)))
        assert exc_info.value.code == 'INVALID_PERIOD'

    def test_missing_start_rejected(self, service, driver, vehicle):
        with pytest.raises(ValidationError) as exc_info:
            service.create_schedule({'driver_id': driver.id, 'vehicle_id': vehicle.id})
        assert exc_info.value.code == 'MISSING_FIELD'

    def test_unknown_driver(self, service, vehicle, today):
        with pytest.raises(NotFoundError) as exc_info:
            service.create_schedule({'driver_id': 999, 'vehicle_id': vehicle.id,
                                     'start_date': today.isoformat()})
        assert exc_info.value.code == 'DRIVER_NOT_FOUND'

    def test_inactive_vehicle_rejected(self, service, driver, today):
        vehicle = VehicleFactory(status=VehicleStatus.INACTIVE)
        with pytest.raises(ValidationError) as exc_info:
            service.create_schedule(payload(driver, vehicle, today))
        assert exc_info.value.code == 'VEHICLE_UNAVAILABLE'

    def test_departed_driver_rejected(self, service, vehicle, today):
        driver = DriverFactory(departure_date=today - days(1))
        with pytest.raises(ValidationError) as exc_info:
            service.create_schedule(payload(driver, vehicle, today))
        assert exc_info.value.code == 'DRIVER_UNAVAILABLE'

    def test_expired_schedules_of_driver_completed_first(self, service, driver, vehicle, today):
        expired = ScheduleFactory(driver=driver, vehicle=vehicle, schedule_date=today - days(5),
                                  end_date=today - days(2), status=ScheduleStatus.ASSIGNED)

        service.create_schedule(payload(driver, VehicleFactory(), today))

        assert expired.status == ScheduleStatus.COMPLETED

    def test_completion_kept_when_new_schedule_conflicts(self, service, driver, vehicle, today, db_session):
        expired = ScheduleFactory(driver=driver, vehicle=vehicle, schedule_date=today - days(5),
                                  end_date=today - days(2), status=ScheduleStatus.ASSIGNED)
        busy_vehicle = VehicleFactory()
        ScheduleFactory(vehicle=busy_vehicle, schedule_date=today - days(1), status=ScheduleStatus.ASSIGNED)

        with pytest.raises(ConflictError):
            service.create_schedule(payload(driver, busy_vehicle, today))

        db_session.expire_all()
        assert db_session.get(Schedule, expired.id).status == ScheduleStatus.COMPLETED
        assert Payment.query.filter_by(schedule_id=expired.id).count() == 4


class TestUpdateSchedule:
    """Test schedule edits"""

    def test_extending_does_not_conflict_with_itself(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(5)))

        updated = service.update_schedule(schedule.id, {'end_date': (today + days(7)).isoformat()})

        assert updated.end_date == today + days(7)
        assert updated.status == ScheduleStatus.PENDING

    def test_moving_into_another_schedule_conflicts(self, service, driver, vehicle, today):
        first = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(7)))
        second = service.create_schedule(payload(driver, VehicleFactory(), today + days(10), today + days(12)))

        with pytest.raises(ConflictError) as exc_info:
            service.update_schedule(second.id, {'start_date': (today + days(4)).isoformat()})

        assert exc_info.value.conflict.id == first.id
        assert second.schedule_date == today + days(10)

    def test_clearing_end_date_makes_schedule_open_ended(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(5)))
        updated = service.update_schedule(schedule.id, {'end_date': None})
        assert updated.end_date is None

    def test_notes_only_change_skips_conflict_check(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(5)))
        updated = service.update_schedule(schedule.id, {'notes': 'Night shift'})
        assert updated.notes == 'Night shift'

    def test_switching_vehicle_moves_link(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today))
        other_vehicle = VehicleFactory()

        service.update_schedule(schedule.id, {'vehicle_id': other_vehicle.id})

        assert driver.current_vehicle_id == other_vehicle.id
        assert vehicle.current_driver_id is None
        assert other_vehicle.current_driver_id == driver.id


class TestChangeStatus:
    """Test schedule status transitions"""

    def test_completing_open_ended_future_schedule_stamps_start(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(3)))

        service.change_status(schedule.id, 'completed')

        assert schedule.status == ScheduleStatus.COMPLETED
        assert schedule.end_date == today + days(3)

    def test_canceling_running_schedule_stamps_today_and_unlinks(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today - days(2)))

        service.change_status(schedule.id, 'canceled')

        assert schedule.end_date == today
        assert driver.current_vehicle_id is None
        assert vehicle.current_driver_id is None

    def test_reopening_into_taken_period_conflicts(self, service, driver, vehicle, today):
        canceled = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(3)))
        service.change_status(canceled.id, 'canceled')
        service.create_schedule(payload(driver, vehicle, today + days(2), today + days(4)))

        with pytest.raises(ConflictError):
            service.change_status(canceled.id, 'pending')
        assert canceled.status == ScheduleStatus.CANCELED

    def test_driver_holds_one_assigned_schedule(self, service, driver, vehicle, today):
        service.create_schedule(payload(driver, vehicle, today, today))
        later = service.create_schedule(payload(driver, VehicleFactory(), today + days(1), today + days(2)))

        with pytest.raises(ConflictError) as exc_info:
            service.change_status(later.id, 'assigned')
        assert exc_info.value.code == 'DRIVER_ALREADY_ASSIGNED'

    def test_same_status_is_a_no_op(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(1)))
        service.change_status(schedule.id, 'pending')
        assert AuditLog.query.filter_by(action='schedule_status_change').count() == 0

    def test_unknown_status_rejected(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today + days(1)))
        with pytest.raises(ValidationError):
            service.change_status(schedule.id, 'archived')


class TestLifecycleSweep:
    """Test expiry completion and pending activation"""

    def test_expired_schedule_completed(self, service, today, db_session):
        schedule = ScheduleFactory(schedule_date=today - days(5), end_date=today - days(2),
                                   status=ScheduleStatus.ASSIGNED)
        link_driver_vehicle(schedule.driver, schedule.vehicle)
        db_session.commit()

        completed = service.close_elapsed_schedules()['completed']

        assert [s.id for s in completed] == [schedule.id]
        assert schedule.status == ScheduleStatus.COMPLETED
        assert schedule.driver.current_vehicle_id is None
        assert Payment.query.filter_by(schedule_id=schedule.id).count() == 4

    def test_single_shift_ends_on_start_day(self, service, today, db_session):
        schedule = ScheduleFactory(schedule_date=today - days(3), end_date=None, shift_end='18:00',
                                   status=ScheduleStatus.ASSIGNED)

        service.close_elapsed_schedules()

        assert schedule.status == ScheduleStatus.COMPLETED
        assert schedule.end_date == today - days(3)

    def test_open_ended_schedule_keeps_running(self, service, today, db_session):
        schedule = ScheduleFactory(schedule_date=today - days(3), end_date=None,
                                   status=ScheduleStatus.ASSIGNED)

        assert service.close_elapsed_schedules() == {'completed': [], 'canceled': []}
        assert schedule.status == ScheduleStatus.ASSIGNED

    def test_schedule_ending_today_is_not_expired(self, service, today, db_session):
        schedule = ScheduleFactory(schedule_date=today - days(3), end_date=today,
                                   status=ScheduleStatus.ASSIGNED)
        service.close_elapsed_schedules()
        assert schedule.status == ScheduleStatus.ASSIGNED

    def test_due_pending_schedule_activated(self, service, today, db_session):
        schedule = ScheduleFactory(schedule_date=today - days(1), status=ScheduleStatus.PENDING)

        activated = service.activate_pending_schedules()

        assert [s.id for s in activated] == [schedule.id]
        assert schedule.status == ScheduleStatus.ASSIGNED
        assert schedule.driver.current_vehicle_id == schedule.vehicle_id

    def test_pending_schedule_of_departed_driver_stays_pending(self, service, today, db_session):
        driver = DriverFactory(departure_date=today - days(10))
        schedule = ScheduleFactory(driver=driver, schedule_date=today, status=ScheduleStatus.PENDING)

        assert service.activate_pending_schedules() == []
        assert schedule.status == ScheduleStatus.PENDING

    def test_pending_schedule_waits_for_drivers_assignment(self, service, today, db_session):
        driver = DriverFactory()
        ScheduleFactory(driver=driver, schedule_date=today - days(2), end_date=today,
                        status=ScheduleStatus.ASSIGNED)
        waiting = ScheduleFactory(driver=driver, schedule_date=today, status=ScheduleStatus.PENDING)

        service.activate_pending_schedules()

        assert waiting.status == ScheduleStatus.PENDING

    def test_elapsed_pending_schedule_canceled(self, service, today, db_session):
        schedule = ScheduleFactory(schedule_date=today - days(5), end_date=today - days(3),
                                   status=ScheduleStatus.PENDING)

        closed = service.close_elapsed_schedules()
        activated = service.activate_pending_schedules()

        assert [s.id for s in closed['canceled']] == [schedule.id]
        assert activated == []
        assert schedule.status == ScheduleStatus.CANCELED
        assert 'ended before assignment' in schedule.notes
        assert AuditLog.query.filter_by(action='schedule_autocancel', entity_id=schedule.id).count() == 1

    def test_canceled_pending_schedule_frees_its_period(self, service, vehicle, today, db_session):
        ScheduleFactory(vehicle=vehicle, schedule_date=today - days(5), end_date=today - days(3),
                        status=ScheduleStatus.PENDING)
        service.close_elapsed_schedules()

        conflicts = service.check_conflicts({
            'vehicle_id': vehicle.id,
            'start_date': (today - days(4)).isoformat(),
            'end_date': (today - days(4)).isoformat(),
        })
        assert conflicts['has_conflict'] is False


class TestScheduleQueries:
    """Test schedule lookups"""

    def test_current_and_future(self, service, today, db_session):
        current = ScheduleFactory(schedule_date=today - days(1), end_date=today + days(1))
        future = ScheduleFactory(schedule_date=today + days(2), status=ScheduleStatus.PENDING)
        ScheduleFactory(schedule_date=today - days(9), end_date=today - days(8),
                        status=ScheduleStatus.COMPLETED)

        assert [s.id for s in service.get_current_schedules()] == [current.id]
        assert [s.id for s in service.get_future_schedules()] == [future.id]

    def test_by_period_requires_ordered_bounds(self, service, today):
        with pytest.raises(ValidationError):
            service.get_schedules_by_period(today.isoformat(), (today - days(1)).isoformat())

    def test_check_conflicts_dry_run(self, service, driver, vehicle, today):
        existing = service.create_schedule(payload(driver, vehicle, today + days(1), today + days(4)))

        result = service.check_conflicts({
            'driver_id': driver.id,
            'vehicle_id': vehicle.id,
            'start_date': (today + days(4)).isoformat(),
        })
        assert result['has_conflict'] is True
        assert result['driver_conflict']['id'] == existing.id
        assert result['maintenance_conflicts'] == []

        result = service.check_conflicts({
            'driver_id': driver.id,
            'start_date': (today + days(1)).isoformat(),
            'end_date': (today + days(4)).isoformat(),
            'exclude_id': existing.id,
        })
        assert result['has_conflict'] is False

    def test_delete_removes_payments_and_link(self, service, driver, vehicle, today):
        schedule = service.create_schedule(payload(driver, vehicle, today))
        schedule_id = schedule.id

        service.delete_schedule(schedule_id)

        assert Schedule.query.count() == 0
        assert Payment.query.filter_by(schedule_id=schedule_id).count() == 0
        assert driver.current_vehicle_id is None
