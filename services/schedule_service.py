"""
Schedule Service

Assignment of a driver to a vehicle over a period of days. Handles creation
and edits with overlap detection, status transitions and the driver/vehicle
link kept while a schedule is assigned.

The lifecycle sweep closes schedules whose period is over (assigned ones are
completed, pending ones that never started are canceled) before activating
the pending schedules that are due.
"""

from typing import Optional, Dict, Any, List
from datetime import date
import logging
from sqlalchemy import and_, or_
from models import (db, Schedule, ScheduleStatus, Driver, Vehicle, VehicleStatus, Payment,
                    PaymentStatus, ACTIVE_SCHEDULE_STATUSES)
from timezone_utils import get_local_today
from utils.scheduling import (check_schedule_conflicts, find_maintenance_conflicts,
                              schedules_covering)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .errors import NotFoundError, ValidationError, ConflictError
from .validation import parse_date, parse_enum, parse_id, parse_shift_time, validate_period
from .driver_service import get_driver_or_404
from .vehicle_service import get_vehicle_or_404, link_driver_vehicle, unlink_driver_vehicle
from .payment_service import generate_daily_payments

logger = logging.getLogger(__name__)


def get_schedule_or_404(schedule_id: int) -> Schedule:
    schedule = db.session.get(Schedule, schedule_id)
    if not schedule:
        raise NotFoundError("Schedule not found", code='SCHEDULE_NOT_FOUND')
    return schedule


def ensure_no_conflicts(driver: Driver, vehicle: Vehicle, start_date: date,
                        end_date: Optional[date], exclude_id: Optional[int] = None):
    """
    Raise ConflictError when the period collides with another active schedule
    of the driver or vehicle, or with an open maintenance window of the vehicle.
    """
    conflicts = check_schedule_conflicts(driver.id, vehicle.id, start_date, end_date,
                                         exclude_id=exclude_id)

    driver_conflict = conflicts['driver_conflict']
    if driver_conflict is not None:
        raise ConflictError(
            f"Driver {driver.full_name} already has a schedule from {driver_conflict.period_label()}",
            conflict=driver_conflict
        )

    vehicle_conflict = conflicts['vehicle_conflict']
    if vehicle_conflict is not None:
        raise ConflictError(
            f"Vehicle {vehicle.license_plate} is already scheduled from {vehicle_conflict.period_label()}",
            conflict=vehicle_conflict
        )

    maintenances = find_maintenance_conflicts(vehicle.id, start_date, end_date)
    if maintenances:
        raise ConflictError(
            f"Vehicle {vehicle.license_plate} is under maintenance from {maintenances[0].period_label()}",
            conflict=maintenances[0],
            code='MAINTENANCE_CONFLICT'
        )


def find_other_assigned(driver_id: int, exclude_id: Optional[int] = None) -> Optional[Schedule]:
    query = Schedule.query.filter(Schedule.driver_id == driver_id,
                                  Schedule.status == ScheduleStatus.ASSIGNED)
    if exclude_id is not None:
        query = query.filter(Schedule.id != exclude_id)
    return query.first()


def initial_status(driver_id: int, start_date: date, exclude_id: Optional[int] = None) -> ScheduleStatus:
    """
    Future schedules wait as pending. A schedule starting today or earlier is
    assigned unless the driver already holds an assigned one.
    """
    if start_date > get_local_today():
        return ScheduleStatus.PENDING
    if find_other_assigned(driver_id, exclude_id=exclude_id):
        return ScheduleStatus.PENDING
    return ScheduleStatus.ASSIGNED


def is_expired(schedule: Schedule, today: date) -> bool:
    """
    A schedule is over when its end date has passed, or when it has
    no end date but a shift end on a past day. Open-ended schedules without a
    shift end run until someone closes them.
    """
    if schedule.end_date is not None:
        return schedule.end_date < today
    return schedule.shift_end is not None and schedule.schedule_date < today


def complete_expired(driver_id: Optional[int] = None, performed_by: Optional[int] = None) -> List[Schedule]:
    """Complete expired assigned schedules inside the caller's transaction."""
    today = get_local_today()
    query = Schedule.query.filter(
        Schedule.status == ScheduleStatus.ASSIGNED,
        Schedule.schedule_date < today,
        or_(Schedule.end_date < today,
            and_(Schedule.end_date.is_(None), Schedule.shift_end.isnot(None)))
    )
    if driver_id is not None:
        query = query.filter(Schedule.driver_id == driver_id)

    completed = []
    for schedule in query.all():
        if not is_expired(schedule, today):
            continue
        schedule.status = ScheduleStatus.COMPLETED
        if schedule.end_date is None:
            # Single shift, it ended on its start day
            schedule.end_date = schedule.schedule_date
        unlink_driver_vehicle(schedule.driver, schedule.vehicle)
        generate_daily_payments(schedule)
        AuditService.log_action(
            action='schedule_autocomplete',
            module='schedules',
            entity_id=schedule.id,
            old_values={'status': ScheduleStatus.ASSIGNED.value},
            new_values={'status': ScheduleStatus.COMPLETED.value},
            user_id=performed_by,
            description=f"Schedule {schedule.id} completed after {schedule.end_date.isoformat()}"
        )
        completed.append(schedule)

    if completed:
        logger.info(f"Completed {len(completed)} expired schedule(s)"
                    + (f" for driver {driver_id}" if driver_id is not None else ""))
    return completed


def cancel_schedule(schedule: Schedule, reason: str, performed_by: Optional[int] = None):
    """Cancel an active schedule inside the caller's transaction, releasing its driver and vehicle."""
    old_status = schedule.status
    if schedule.end_date is None:
        schedule.end_date = max(get_local_today(), schedule.schedule_date)
    schedule.status = ScheduleStatus.CANCELED
    schedule.notes = f"{schedule.notes}\n{reason}" if schedule.notes else reason
    if old_status == ScheduleStatus.ASSIGNED:
        unlink_driver_vehicle(schedule.driver, schedule.vehicle)

    AuditService.log_action(
        action='schedule_autocancel',
        module='schedules',
        entity_id=schedule.id,
        old_values={'status': old_status.value},
        new_values={'status': ScheduleStatus.CANCELED.value},
        user_id=performed_by,
        description=reason
    )


def cancel_elapsed_pending(driver_id: Optional[int] = None,
                           performed_by: Optional[int] = None) -> List[Schedule]:
    """
    Cancel pending schedules whose whole period passed without them being
    assigned. Runs inside the caller's transaction.
    """
    today = get_local_today()
    query = Schedule.query.filter(
        Schedule.status == ScheduleStatus.PENDING,
        Schedule.schedule_date < today,
        or_(Schedule.end_date < today,
            and_(Schedule.end_date.is_(None), Schedule.shift_end.isnot(None)))
    )
    if driver_id is not None:
        query = query.filter(Schedule.driver_id == driver_id)

    canceled = []
    for schedule in query.all():
        if not is_expired(schedule, today):
            continue
        if schedule.end_date is None:
            schedule.end_date = schedule.schedule_date
        cancel_schedule(schedule, f"Canceled: period {schedule.period_label()} ended before assignment",
                        performed_by=performed_by)
        canceled.append(schedule)

    if canceled:
        logger.info(f"Canceled {len(canceled)} elapsed pending schedule(s)")
    return canceled


class ScheduleService:
    """Service class for schedule operations"""

    def __init__(self):
        self.audit_service = AuditService()

    # Queries

    def list_schedules(self) -> List[Schedule]:
        return Schedule.query.order_by(Schedule.schedule_date, Schedule.id).all()

    def get_schedule(self, schedule_id: int) -> Schedule:
        return get_schedule_or_404(schedule_id)

    def get_current_schedules(self) -> List[Schedule]:
        """Assigned schedules covering today."""
        today = get_local_today()
        return Schedule.query.filter(
            Schedule.status == ScheduleStatus.ASSIGNED,
            Schedule.schedule_date <= today,
            or_(Schedule.end_date.is_(None), Schedule.end_date >= today)
        ).order_by(Schedule.schedule_date, Schedule.id).all()

    def get_future_schedules(self) -> List[Schedule]:
        """Pending or assigned schedules starting after today."""
        return Schedule.query.filter(
            Schedule.status.in_(ACTIVE_SCHEDULE_STATUSES),
            Schedule.schedule_date > get_local_today()
        ).order_by(Schedule.schedule_date, Schedule.id).all()

    def get_driver_schedules(self, driver_id: int) -> List[Schedule]:
        get_driver_or_404(driver_id)
        return Schedule.query.filter_by(driver_id=driver_id) \
                             .order_by(Schedule.schedule_date, Schedule.id).all()

    def get_vehicle_schedules(self, vehicle_id: int) -> List[Schedule]:
        get_vehicle_or_404(vehicle_id)
        return Schedule.query.filter_by(vehicle_id=vehicle_id) \
                             .order_by(Schedule.schedule_date, Schedule.id).all()

    def get_schedules_by_date(self, day: Any) -> List[Schedule]:
        """Schedules of any status covering the given day."""
        day = parse_date(day, 'date', required=True)
        return schedules_covering(day, day)

    def get_schedules_by_period(self, start: Any, end: Any) -> List[Schedule]:
        """Schedules of any status overlapping [start, end]."""
        start_date = parse_date(start, 'start', required=True)
        end_date = parse_date(end, 'end', required=True)
        validate_period(start_date, end_date, 'end')
        return schedules_covering(start_date, end_date)

    def check_conflicts(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dry run of the overlap checks for a candidate schedule.

        Args:
            data: driver_id and/or vehicle_id, start_date, optional end_date
                and exclude_id (the schedule being edited)

        Returns:
            dict with has_conflict, driver_conflict, vehicle_conflict and
            maintenance_conflicts, records serialized
        """
        driver_id = parse_id(data.get('driver_id'), 'driver_id')
        vehicle_id = parse_id(data.get('vehicle_id'), 'vehicle_id')
        if driver_id is None and vehicle_id is None:
            raise ValidationError("driver_id or vehicle_id is required", code='MISSING_FIELD')
        start_date = parse_date(data.get('start_date'), 'start_date', required=True)
        end_date = parse_date(data.get('end_date'), 'end_date')
        validate_period(start_date, end_date)
        exclude_id = parse_id(data.get('exclude_id'), 'exclude_id')

        conflicts = check_schedule_conflicts(driver_id, vehicle_id, start_date, end_date,
                                             exclude_id=exclude_id)
        maintenances = find_maintenance_conflicts(vehicle_id, start_date, end_date) \
            if vehicle_id is not None else []

        return {
            'has_conflict': bool(conflicts['driver_conflict'] or conflicts['vehicle_conflict'] or maintenances),
            'driver_conflict': conflicts['driver_conflict'].to_dict() if conflicts['driver_conflict'] else None,
            'vehicle_conflict': conflicts['vehicle_conflict'].to_dict() if conflicts['vehicle_conflict'] else None,
            'maintenance_conflicts': [maintenance.to_dict() for maintenance in maintenances],
        }

    # Mutations

    def create_schedule(self, data: Dict[str, Any], performed_by: Optional[int] = None) -> Schedule:
        """
        Create a schedule assigning a driver to a vehicle.

        The driver's elapsed schedules are closed first and stay closed even
        when the new schedule is then rejected.

        Args:
            data: driver_id, vehicle_id and start_date are required; end_date
                (None for open-ended), shift_start, shift_end and notes optional
            performed_by: ID of user creating the schedule

        Returns:
            The created Schedule, assigned or pending

        Raises:
            ConflictError: the driver or vehicle is already booked, or the
                vehicle is under maintenance, during the period
        """
        driver_id = parse_id(data.get('driver_id'), 'driver_id', required=True)
        self.close_elapsed_schedules(driver_id=driver_id, performed_by=performed_by)
        return self._insert_schedule(data, performed_by)

    @TransactionHelper.with_transaction
    def _insert_schedule(self, data: Dict[str, Any], performed_by: Optional[int]) -> Schedule:
        driver = get_driver_or_404(parse_id(data.get('driver_id'), 'driver_id', required=True))
        vehicle = get_vehicle_or_404(parse_id(data.get('vehicle_id'), 'vehicle_id', required=True))
        start_date = parse_date(data.get('start_date'), 'start_date', required=True)
        end_date = parse_date(data.get('end_date'), 'end_date')
        validate_period(start_date, end_date)

        self._ensure_driver_available(driver)
        self._ensure_vehicle_available(vehicle)

        ensure_no_conflicts(driver, vehicle, start_date, end_date)

        schedule = Schedule()
        schedule.driver_id = driver.id
        schedule.vehicle_id = vehicle.id
        schedule.schedule_date = start_date
        schedule.end_date = end_date
        schedule.shift_start = parse_shift_time(data.get('shift_start'), 'shift_start')
        schedule.shift_end = parse_shift_time(data.get('shift_end'), 'shift_end')
        schedule.notes = data.get('notes')
        schedule.status = initial_status(driver.id, start_date)

        db.session.add(schedule)
        db.session.flush()

        if schedule.status == ScheduleStatus.ASSIGNED:
            link_driver_vehicle(driver, vehicle)
        generate_daily_payments(schedule)

        self.audit_service.log_action(
            action='schedule_create',
            module='schedules',
            entity_id=schedule.id,
            new_values=schedule.to_dict(),
            user_id=performed_by,
            description=f"Schedule for {driver.full_name} on {vehicle.license_plate} "
                        f"from {schedule.period_label()}"
        )
        logger.info(f"Schedule {schedule.id} created for driver {driver.id} / vehicle {vehicle.id} "
                    f"({schedule.status.value})")
        return schedule

    @TransactionHelper.with_transaction
    def update_schedule(self, schedule_id: int, data: Dict[str, Any],
                        performed_by: Optional[int] = None) -> Schedule:
        """
        Edit a schedule.

        Only keys present in ``data`` change; ``end_date: None`` makes the
        schedule open-ended. The overlap check runs again, ignoring the
        schedule itself, whenever the driver, vehicle or period changes.
        """
        schedule = get_schedule_or_404(schedule_id)
        old_values = schedule.to_dict()
        old_status = schedule.status
        old_driver, old_vehicle = schedule.driver, schedule.vehicle
        old_period = (schedule.schedule_date, schedule.end_date)

        driver = schedule.driver
        if 'driver_id' in data:
            driver = get_driver_or_404(parse_id(data['driver_id'], 'driver_id', required=True))
        vehicle = schedule.vehicle
        if 'vehicle_id' in data:
            vehicle = get_vehicle_or_404(parse_id(data['vehicle_id'], 'vehicle_id', required=True))

        start_date = schedule.schedule_date
        if 'start_date' in data:
            start_date = parse_date(data['start_date'], 'start_date', required=True)
        end_date = schedule.end_date
        if 'end_date' in data:
            end_date = parse_date(data['end_date'], 'end_date')
        validate_period(start_date, end_date)

        status = parse_enum(ScheduleStatus, data.get('status'), 'status')
        if status is None:
            status = old_status
            if start_date != schedule.schedule_date and old_status in ACTIVE_SCHEDULE_STATUSES:
                status = initial_status(driver.id, start_date, exclude_id=schedule.id)

        resource_changed = driver.id != old_driver.id or vehicle.id != old_vehicle.id
        period_changed = (start_date, end_date) != old_period
        reactivated = old_status not in ACTIVE_SCHEDULE_STATUSES

        if status in ACTIVE_SCHEDULE_STATUSES:
            if driver.id != old_driver.id or reactivated:
                self._ensure_driver_available(driver)
            if vehicle.id != old_vehicle.id or reactivated:
                self._ensure_vehicle_available(vehicle)
            if resource_changed or period_changed or reactivated:
                ensure_no_conflicts(driver, vehicle, start_date, end_date, exclude_id=schedule.id)
            if status == ScheduleStatus.ASSIGNED and \
                    (old_status != ScheduleStatus.ASSIGNED or driver.id != old_driver.id):
                self._ensure_single_assignment(driver, schedule.id)
        elif end_date is None:
            end_date = max(get_local_today(), start_date)

        schedule.driver = driver
        schedule.vehicle = vehicle
        schedule.schedule_date = start_date
        schedule.end_date = end_date
        if 'shift_start' in data:
            schedule.shift_start = parse_shift_time(data['shift_start'], 'shift_start')
        if 'shift_end' in data:
            schedule.shift_end = parse_shift_time(data['shift_end'], 'shift_end')
        if 'notes' in data:
            schedule.notes = data['notes']
        schedule.status = status

        if old_status == ScheduleStatus.ASSIGNED:
            unlink_driver_vehicle(old_driver, old_vehicle)
        if status == ScheduleStatus.ASSIGNED:
            link_driver_vehicle(driver, vehicle)

        if (start_date, end_date) != old_period:
            self._drop_pending_payments_outside(schedule)
            generate_daily_payments(schedule)

        self.audit_service.log_action(
            action='schedule_update',
            module='schedules',
            entity_id=schedule.id,
            old_values=old_values,
            new_values=schedule.to_dict(),
            user_id=performed_by
        )
        logger.info(f"Schedule {schedule.id} updated ({old_status.value} -> {status.value})")
        return schedule

    @TransactionHelper.with_transaction
    def change_status(self, schedule_id: int, status: Any, performed_by: Optional[int] = None) -> Schedule:
        """
        Move a schedule to another status.

        Args:
            schedule_id: ID of schedule
            status: 'pending', 'assigned', 'completed' or 'canceled'
            performed_by: ID of user making the change

        Returns:
            The updated Schedule

        Raises:
            ConflictError: assigning a driver who already holds another
                assigned schedule, or reopening a schedule whose period is
                now taken
        """
        schedule = get_schedule_or_404(schedule_id)
        new_status = parse_enum(ScheduleStatus, status, 'status', required=True)
        old_status = schedule.status
        if new_status == old_status:
            return schedule

        if new_status in ACTIVE_SCHEDULE_STATUSES and old_status not in ACTIVE_SCHEDULE_STATUSES:
            self._ensure_driver_available(schedule.driver)
            self._ensure_vehicle_available(schedule.vehicle)
            ensure_no_conflicts(schedule.driver, schedule.vehicle, schedule.schedule_date,
                                schedule.end_date, exclude_id=schedule.id)

        if new_status == ScheduleStatus.ASSIGNED:
            self._ensure_single_assignment(schedule.driver, schedule.id)

        if new_status in (ScheduleStatus.COMPLETED, ScheduleStatus.CANCELED) and schedule.end_date is None:
            schedule.end_date = max(get_local_today(), schedule.schedule_date)

        schedule.status = new_status

        if old_status == ScheduleStatus.ASSIGNED:
            unlink_driver_vehicle(schedule.driver, schedule.vehicle)
        if new_status == ScheduleStatus.ASSIGNED:
            link_driver_vehicle(schedule.driver, schedule.vehicle)
        if new_status == ScheduleStatus.COMPLETED:
            generate_daily_payments(schedule)

        self.audit_service.log_action(
            action='schedule_status_change',
            module='schedules',
            entity_id=schedule.id,
            old_values={'status': old_status.value},
            new_values={'status': new_status.value},
            user_id=performed_by,
            description=f"Schedule {schedule.id} status {old_status.value} -> {new_status.value}"
        )
        logger.info(f"Schedule {schedule.id} status {old_status.value} -> {new_status.value}")
        return schedule

    @TransactionHelper.with_transaction
    def delete_schedule(self, schedule_id: int, performed_by: Optional[int] = None) -> bool:
        """Delete a schedule and its payments, releasing the driver and vehicle."""
        schedule = get_schedule_or_404(schedule_id)
        old_values = schedule.to_dict()

        if schedule.status == ScheduleStatus.ASSIGNED:
            unlink_driver_vehicle(schedule.driver, schedule.vehicle)

        db.session.delete(schedule)

        self.audit_service.log_action(
            action='schedule_delete',
            module='schedules',
            entity_id=schedule_id,
            old_values=old_values,
            user_id=performed_by
        )
        logger.info(f"Schedule {schedule_id} deleted")
        return True

    @TransactionHelper.with_transaction
    def close_elapsed_schedules(self, driver_id: Optional[int] = None,
                                performed_by: Optional[int] = None) -> Dict[str, List[Schedule]]:
        """
        Complete expired assigned schedules and cancel elapsed pending ones
        in one transaction.

        Args:
            driver_id: Restrict the sweep to one driver
            performed_by: ID of user triggering the sweep, None for the job

        Returns:
            dict with the ``completed`` and ``canceled`` schedules
        """
        return {
            'completed': complete_expired(driver_id=driver_id, performed_by=performed_by),
            'canceled': cancel_elapsed_pending(driver_id=driver_id, performed_by=performed_by),
        }

    @TransactionHelper.with_transaction
    def activate_pending_schedules(self) -> List[Schedule]:
        """
        Assign pending schedules whose start date has arrived.

        A schedule stays pending while its driver holds another assigned
        schedule, the driver has left or the vehicle is not active.
        """
        today = get_local_today()
        due = Schedule.query.filter(
            Schedule.status == ScheduleStatus.PENDING,
            Schedule.schedule_date <= today,
            or_(Schedule.end_date.is_(None), Schedule.end_date >= today)
        ).order_by(Schedule.schedule_date, Schedule.id).all()

        activated = []
        for schedule in due:
            if not schedule.driver.in_service or schedule.vehicle.status != VehicleStatus.ACTIVE:
                continue
            if find_other_assigned(schedule.driver_id, exclude_id=schedule.id):
                continue
            schedule.status = ScheduleStatus.ASSIGNED
            link_driver_vehicle(schedule.driver, schedule.vehicle)
            db.session.flush()
            AuditService.log_action(
                action='schedule_autoactivate',
                module='schedules',
                entity_id=schedule.id,
                old_values={'status': ScheduleStatus.PENDING.value},
                new_values={'status': ScheduleStatus.ASSIGNED.value}
            )
            activated.append(schedule)

        if activated:
            logger.info(f"Activated {len(activated)} pending schedule(s)")
        return activated

    # Checks

    def _ensure_driver_available(self, driver: Driver):
        if not driver.in_service:
            raise ValidationError(f"Driver {driver.full_name} is no longer in service",
                                  code='DRIVER_UNAVAILABLE')

    def _ensure_vehicle_available(self, vehicle: Vehicle):
        if vehicle.status != VehicleStatus.ACTIVE:
            raise ValidationError(f"Vehicle {vehicle.license_plate} is not available "
                                  f"({vehicle.status.value})", code='VEHICLE_UNAVAILABLE')

    def _ensure_single_assignment(self, driver: Driver, schedule_id: int):
        other = find_other_assigned(driver.id, exclude_id=schedule_id)
        if other is not None:
            raise ConflictError(
                f"Driver {driver.full_name} already holds an assigned schedule from {other.period_label()}",
                conflict=other,
                code='DRIVER_ALREADY_ASSIGNED'
            )

    def _drop_pending_payments_outside(self, schedule: Schedule):
        """Remove untouched generated payments that fell out of the period."""
        query = Payment.query.filter(
            Payment.schedule_id == schedule.id,
            Payment.status == PaymentStatus.PENDING,
            Payment.amount == 0
        )
        outside = Payment.payment_date < schedule.schedule_date
        if schedule.end_date is not None:
            outside = or_(outside, Payment.payment_date > schedule.end_date)
        for payment in query.filter(outside).all():
            schedule.payments.remove(payment)
