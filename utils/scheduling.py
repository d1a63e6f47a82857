"""
Date-range overlap checks for schedules and maintenance windows.

A period is a pair of calendar days ``(start, end)`` where ``end`` may be
``None`` for an open-ended period. Both bounds are inclusive: two periods
overlap when they share at least one day, so ``[1 Jan, 10 Jan]`` and
``[11 Jan, 15 Jan]`` do not overlap while ``[1 Jan, 10 Jan]`` and
``[10 Jan, 15 Jan]`` do. The same rule is used for every query below.

Nothing here locks rows: a check followed by an insert in two concurrent
requests can still produce overlapping records.
"""

import logging
from datetime import date, timedelta
from typing import Optional, List, Dict

from sqlalchemy import and_, or_

from models import Schedule, Maintenance, ACTIVE_SCHEDULE_STATUSES

logger = logging.getLogger(__name__)


def ranges_overlap(start_a: date, end_a: Optional[date],
                   start_b: date, end_b: Optional[date]) -> bool:
    """
    Check whether two inclusive day ranges intersect.

    A missing end is unbounded on that side only, so an open-ended range
    intersects every range that reaches its start day.
    """
    if start_a is None or start_b is None:
        raise ValueError("Both ranges need a start date")
    if end_a is not None and end_a < start_a:
        raise ValueError(f"Range ends before it starts: {start_a} > {end_a}")
    if end_b is not None and end_b < start_b:
        raise ValueError(f"Range ends before it starts: {start_b} > {end_b}")

    a_reaches_b = end_a is None or start_b <= end_a
    b_reaches_a = end_b is None or start_a <= end_b
    return a_reaches_b and b_reaches_a


def overlap_criteria(start_column, end_column, start_date: date, end_date: Optional[date]):
    """
    Translate ``ranges_overlap`` into a SQL expression.

    ``start_column``/``end_column`` are the stored period, ``start_date``/
    ``end_date`` the candidate one. A NULL ``end_column`` is treated as
    unbounded.
    """
    stored_reaches_candidate = or_(end_column.is_(None), end_column >= start_date)
    if end_date is None:
        return stored_reaches_candidate
    return and_(start_column <= end_date, stored_reaches_candidate)


def _validate_candidate(start_date, end_date):
    if start_date is None:
        raise ValueError("A start date is required to check for conflicts")
    if end_date is not None and end_date < start_date:
        raise ValueError(f"End date {end_date} is before start date {start_date}")


def find_schedule_conflicts(start_date: date, end_date: Optional[date] = None,
                            driver_id: Optional[int] = None, vehicle_id: Optional[int] = None,
                            exclude_id: Optional[int] = None) -> List[Schedule]:
    """
    Find active schedules of a driver and/or vehicle that overlap a period.

    Args:
        start_date: First day of the candidate period
        end_date: Last day of the candidate period, None for open-ended
        driver_id: Match schedules of this driver
        vehicle_id: Match schedules of this vehicle
        exclude_id: Schedule being edited, never reported against itself

    Returns:
        Overlapping pending/assigned schedules ordered by start date.
        Completed and canceled schedules are never returned.
    """
    _validate_candidate(start_date, end_date)

    resource_filters = []
    if driver_id is not None:
        resource_filters.append(Schedule.driver_id == driver_id)
    if vehicle_id is not None:
        resource_filters.append(Schedule.vehicle_id == vehicle_id)
    if not resource_filters:
        return []

    query = Schedule.query.filter(
        or_(*resource_filters),
        Schedule.status.in_(ACTIVE_SCHEDULE_STATUSES),
        overlap_criteria(Schedule.schedule_date, Schedule.end_date, start_date, end_date)
    )
    if exclude_id is not None:
        query = query.filter(Schedule.id != exclude_id)

    return query.order_by(Schedule.schedule_date, Schedule.id).all()


def check_schedule_conflicts(driver_id: Optional[int], vehicle_id: Optional[int],
                             start_date: date, end_date: Optional[date] = None,
                             exclude_id: Optional[int] = None) -> Dict[str, Optional[Schedule]]:
    """
    Check a driver and a vehicle for overlapping schedules within a period.

    Returns:
        dict with the first ``driver_conflict`` and ``vehicle_conflict``
        found, either may be None
    """
    conflicts = {
        'driver_conflict': None,
        'vehicle_conflict': None
    }

    if driver_id is not None:
        driver_conflicts = find_schedule_conflicts(start_date, end_date, driver_id=driver_id,
                                                   exclude_id=exclude_id)
        conflicts['driver_conflict'] = driver_conflicts[0] if driver_conflicts else None

    if vehicle_id is not None:
        vehicle_conflicts = find_schedule_conflicts(start_date, end_date, vehicle_id=vehicle_id,
                                                    exclude_id=exclude_id)
        conflicts['vehicle_conflict'] = vehicle_conflicts[0] if vehicle_conflicts else None

    if conflicts['driver_conflict'] or conflicts['vehicle_conflict']:
        logger.info(f"Schedule conflict for driver {driver_id} / vehicle {vehicle_id} "
                    f"between {start_date} and {end_date or 'open end'}")

    return conflicts


def find_maintenance_conflicts(vehicle_id: int, start_date: date, end_date: Optional[date] = None,
                               exclude_id: Optional[int] = None) -> List[Maintenance]:
    """
    Find uncompleted maintenance windows of a vehicle overlapping a period.

    A maintenance without completion date that started on or before the
    candidate start is still blocking the vehicle and is always reported.
    """
    _validate_candidate(start_date, end_date)

    still_open = and_(
        Maintenance.completion_date.is_(None),
        Maintenance.maintenance_date <= start_date
    )
    query = Maintenance.query.filter(
        Maintenance.vehicle_id == vehicle_id,
        Maintenance.completed == False,  # noqa: E712
        or_(
            still_open,
            overlap_criteria(Maintenance.maintenance_date, Maintenance.completion_date,
                             start_date, end_date)
        )
    )
    if exclude_id is not None:
        query = query.filter(Maintenance.id != exclude_id)

    conflicts = query.order_by(Maintenance.maintenance_date, Maintenance.id).all()
    if conflicts:
        logger.info(f"Vehicle {vehicle_id} has {len(conflicts)} maintenance window(s) "
                    f"overlapping {start_date} to {end_date or 'open end'}")
    return conflicts


def schedules_covering(start_date: date, end_date: Optional[date] = None) -> List[Schedule]:
    """All schedules, whatever their status, overlapping a period."""
    _validate_candidate(start_date, end_date)
    return Schedule.query.filter(
        overlap_criteria(Schedule.schedule_date, Schedule.end_date, start_date, end_date or start_date)
    ).order_by(Schedule.schedule_date, Schedule.id).all()


def maintenances_covering(start_date: date, end_date: date) -> List[Maintenance]:
    """All maintenance windows, completed or not, overlapping a period."""
    _validate_candidate(start_date, end_date)
    return Maintenance.query.filter(
        overlap_criteria(Maintenance.maintenance_date, Maintenance.completion_date, start_date, end_date)
    ).order_by(Maintenance.maintenance_date, Maintenance.id).all()


def maintenance_window_end(maintenance_date: date, completion_date: Optional[date] = None,
                           duration: Optional[int] = None) -> Optional[date]:
    """
    Last day a maintenance window keeps its vehicle busy.

    The completion date when known, otherwise ``duration`` days counted from
    the maintenance date inclusive. None when neither is set.
    """
    if completion_date is not None:
        return completion_date
    if duration:
        return maintenance_date + timedelta(days=duration - 1)
    return None


def find_schedules_in_maintenance_window(vehicle_id: int, maintenance_date: date,
                                         window_end: Optional[date] = None) -> List[Schedule]:
    """Pending or assigned schedules of a vehicle overlapping a maintenance window."""
    return find_schedule_conflicts(maintenance_date, window_end, vehicle_id=vehicle_id)
