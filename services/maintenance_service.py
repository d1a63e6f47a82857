"""
Maintenance Service

Maintenance windows of the fleet. A window blocks its vehicle from being
scheduled until it is completed, and the vehicle's status follows its open
windows: ``maintenance`` while one has started, back to ``active`` once none
remains.
"""

from typing import Optional, Dict, Any, List
import logging
from models import (db, Maintenance, MaintenanceType, MaintenanceNature, Schedule, Vehicle,
                    VehicleStatus)
from timezone_utils import get_local_today
from utils.scheduling import (find_maintenance_conflicts, find_schedules_in_maintenance_window,
                              maintenance_window_end, maintenances_covering)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .errors import NotFoundError, ValidationError, ConflictError
from .validation import parse_amount, parse_date, parse_enum, parse_id, validate_period
from .vehicle_service import get_vehicle_or_404
from .schedule_service import cancel_schedule

logger = logging.getLogger(__name__)


def get_maintenance_or_404(maintenance_id: int) -> Maintenance:
    maintenance = db.session.get(Maintenance, maintenance_id)
    if not maintenance:
        raise NotFoundError("Maintenance not found", code='MAINTENANCE_NOT_FOUND')
    return maintenance


def sync_vehicle_status(vehicle: Vehicle):
    """Put the vehicle in maintenance while an uncompleted window has started."""
    if vehicle.status == VehicleStatus.INACTIVE:
        return
    in_progress = Maintenance.query.filter(
        Maintenance.vehicle_id == vehicle.id,
        Maintenance.completed == False,  # noqa: E712
        Maintenance.maintenance_date <= get_local_today()
    ).first()
    if in_progress is not None:
        vehicle.status = VehicleStatus.MAINTENANCE
    elif vehicle.status == VehicleStatus.MAINTENANCE:
        vehicle.status = VehicleStatus.ACTIVE
        logger.info(f"Vehicle {vehicle.license_plate} back in service")


def _parse_duration(value):
    if value is None or value == '':
        return None
    try:
        duration = int(value)
    except (TypeError, ValueError):
        raise ValidationError("duration must be a whole number of days", code='INVALID_VALUE')
    if duration <= 0:
        raise ValidationError("duration must be positive", code='INVALID_VALUE')
    return duration


def _window_end(maintenance: Maintenance):
    return maintenance_window_end(maintenance.maintenance_date, maintenance.completion_date,
                                  maintenance.duration)


class MaintenanceService:
    """Service class for maintenance operations"""

    def __init__(self):
        self.audit_service = AuditService()

    def list_maintenances(self) -> List[Maintenance]:
        return Maintenance.query.order_by(Maintenance.maintenance_date.desc(), Maintenance.id.desc()).all()

    def get_maintenance(self, maintenance_id: int) -> Maintenance:
        return get_maintenance_or_404(maintenance_id)

    def get_vehicle_maintenances(self, vehicle_id: int) -> List[Maintenance]:
        get_vehicle_or_404(vehicle_id)
        return Maintenance.query.filter_by(vehicle_id=vehicle_id) \
                                .order_by(Maintenance.maintenance_date.desc()).all()

    def get_maintenances_by_type(self, maintenance_type: str) -> List[Maintenance]:
        kind = parse_enum(MaintenanceType, maintenance_type, 'maintenance_type', required=True)
        return Maintenance.query.filter_by(maintenance_type=kind) \
                                .order_by(Maintenance.maintenance_date.desc()).all()

    def get_maintenances_by_period(self, start: Any, end: Any) -> List[Maintenance]:
        start_date = parse_date(start, 'start', required=True)
        end_date = parse_date(end, 'end', required=True)
        validate_period(start_date, end_date, 'end')
        return maintenances_covering(start_date, end_date)

    def check_conflicts(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dry run of the maintenance overlap check.

        Args:
            data: vehicle_id, start_date, optional end_date, duration and
                exclude_id

        Returns:
            dict with has_conflict, the serialized conflicting windows and
            the schedules the window would cancel
        """
        vehicle_id = parse_id(data.get('vehicle_id'), 'vehicle_id', required=True)
        start_date = parse_date(data.get('start_date'), 'start_date', required=True)
        end_date = parse_date(data.get('end_date'), 'end_date')
        validate_period(start_date, end_date)
        exclude_id = parse_id(data.get('exclude_id'), 'exclude_id')
        window_end = maintenance_window_end(start_date, end_date, _parse_duration(data.get('duration')))

        conflicts = find_maintenance_conflicts(vehicle_id, start_date, end_date, exclude_id=exclude_id)
        schedules = find_schedules_in_maintenance_window(vehicle_id, start_date, window_end)
        return {
            'has_conflict': bool(conflicts or schedules),
            'conflicts': [maintenance.to_dict() for maintenance in conflicts],
            'schedule_conflicts': [schedule.to_dict() for schedule in schedules],
        }

    def get_schedule_conflicts(self, maintenance_id: int) -> List[Schedule]:
        """Pending or assigned schedules of the vehicle falling inside a maintenance window."""
        maintenance = get_maintenance_or_404(maintenance_id)
        if maintenance.completed:
            return []
        return find_schedules_in_maintenance_window(maintenance.vehicle_id, maintenance.maintenance_date,
                                                    _window_end(maintenance))

    @TransactionHelper.with_transaction
    def resolve_schedule_conflicts(self, maintenance_id: int,
                                   performed_by: Optional[int] = None) -> List[Schedule]:
        """
        Cancel the schedules a maintenance window collides with.

        Assigned schedules release their driver and vehicle. Returns the
        canceled schedules.
        """
        maintenance = get_maintenance_or_404(maintenance_id)
        if maintenance.completed:
            return []
        schedules = find_schedules_in_maintenance_window(maintenance.vehicle_id, maintenance.maintenance_date,
                                                         _window_end(maintenance))
        self._cancel_for_maintenance(maintenance, schedules, performed_by)
        return schedules

    @TransactionHelper.with_transaction
    def check_status_consistency(self, performed_by: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Realign vehicle statuses with their maintenance windows.

        A vehicle in maintenance without a started uncompleted window goes
        back to active; an active vehicle with one goes to maintenance.

        Returns:
            One entry per corrected vehicle
        """
        corrections = []
        vehicles = Vehicle.query.filter(
            Vehicle.status.in_([VehicleStatus.ACTIVE, VehicleStatus.MAINTENANCE])
        ).order_by(Vehicle.id).all()
        for vehicle in vehicles:
            old_status = vehicle.status
            sync_vehicle_status(vehicle)
            if vehicle.status == old_status:
                continue
            corrections.append({
                'vehicle_id': vehicle.id,
                'license_plate': vehicle.license_plate,
                'old_status': old_status.value,
                'new_status': vehicle.status.value,
            })
            self.audit_service.log_action(
                action='vehicle_status_sync',
                module='vehicles',
                entity_id=vehicle.id,
                old_values={'status': old_status.value},
                new_values={'status': vehicle.status.value},
                user_id=performed_by
            )

        if corrections:
            logger.warning(f"Corrected the status of {len(corrections)} vehicle(s)")
        return corrections

    @TransactionHelper.with_transaction
    def create_maintenance(self, data: Dict[str, Any], performed_by: Optional[int] = None) -> Maintenance:
        """
        Open a maintenance window on a vehicle.

        Args:
            data: vehicle_id, maintenance_type and maintenance_nature are
                required; maintenance_date defaults to today; completion_date,
                completed, cost, duration, description, technician_name and
                notes are optional. cancel_conflicting_schedules cancels the
                vehicle's schedules inside the window instead of refusing it.
            performed_by: ID of user creating the maintenance

        Returns:
            The created Maintenance

        Raises:
            ConflictError: the vehicle already has an uncompleted maintenance
                of the same type, one overlapping the window, or a pending or
                assigned schedule inside it
        """
        vehicle = get_vehicle_or_404(parse_id(data.get('vehicle_id'), 'vehicle_id', required=True))
        maintenance_type = parse_enum(MaintenanceType, data.get('maintenance_type'),
                                      'maintenance_type', required=True)
        nature = parse_enum(MaintenanceNature, data.get('maintenance_nature'),
                            'maintenance_nature', required=True)
        maintenance_date = parse_date(data.get('maintenance_date'), 'maintenance_date') or get_local_today()
        completion_date = parse_date(data.get('completion_date'), 'completion_date')
        validate_period(maintenance_date, completion_date, 'completion_date')
        completed = bool(data.get('completed', False))
        if completed and completion_date is None:
            completion_date = max(get_local_today(), maintenance_date)

        duration = _parse_duration(data.get('duration'))
        displaced = []
        if not completed:
            self._ensure_no_conflicts(vehicle, maintenance_type, maintenance_date, completion_date)
            displaced = self._displaced_schedules(
                vehicle, maintenance_date, maintenance_window_end(maintenance_date, completion_date, duration),
                bool(data.get('cancel_conflicting_schedules', False)))

        maintenance = Maintenance()
        maintenance.vehicle_id = vehicle.id
        maintenance.maintenance_type = maintenance_type
        maintenance.maintenance_nature = nature
        maintenance.maintenance_date = maintenance_date
        maintenance.completion_date = completion_date
        maintenance.completed = completed
        maintenance.cost = parse_amount(data.get('cost'), 'cost', 0.0)
        maintenance.duration = duration
        maintenance.description = data.get('description')
        maintenance.technician_name = data.get('technician_name')
        maintenance.notes = data.get('notes')

        db.session.add(maintenance)
        db.session.flush()
        self._cancel_for_maintenance(maintenance, displaced, performed_by)
        sync_vehicle_status(vehicle)

        self.audit_service.log_action(
            action='maintenance_create',
            module='maintenances',
            entity_id=maintenance.id,
            new_values=maintenance.to_dict(),
            user_id=performed_by,
            description=f"{maintenance_type.value} on {vehicle.license_plate} from {maintenance.period_label()}"
        )
        logger.info(f"Maintenance {maintenance.id} created for vehicle {vehicle.license_plate}")
        return maintenance

    @TransactionHelper.with_transaction
    def update_maintenance(self, maintenance_id: int, data: Dict[str, Any],
                           performed_by: Optional[int] = None) -> Maintenance:
        """
        Edit a maintenance window.

        Setting ``completed`` without a completion date stamps today. Marking
        an uncompleted window again re-runs the overlap checks.
        """
        maintenance = get_maintenance_or_404(maintenance_id)
        old_values = maintenance.to_dict()
        old_vehicle = maintenance.vehicle

        vehicle = old_vehicle
        if 'vehicle_id' in data:
            vehicle = get_vehicle_or_404(parse_id(data['vehicle_id'], 'vehicle_id', required=True))
        maintenance_type = maintenance.maintenance_type
        if 'maintenance_type' in data:
            maintenance_type = parse_enum(MaintenanceType, data['maintenance_type'],
                                          'maintenance_type', required=True)
        maintenance_date = maintenance.maintenance_date
        if 'maintenance_date' in data:
            maintenance_date = parse_date(data['maintenance_date'], 'maintenance_date', required=True)
        completion_date = maintenance.completion_date
        if 'completion_date' in data:
            completion_date = parse_date(data['completion_date'], 'completion_date')
        completed = bool(data['completed']) if 'completed' in data else maintenance.completed
        duration = _parse_duration(data['duration']) if 'duration' in data else maintenance.duration

        if completed and completion_date is None:
            completion_date = max(get_local_today(), maintenance_date)
        validate_period(maintenance_date, completion_date, 'completion_date')

        window_changed = (vehicle.id != old_vehicle.id
                          or maintenance_type != maintenance.maintenance_type
                          or maintenance_date != maintenance.maintenance_date
                          or completion_date != maintenance.completion_date
                          or duration != maintenance.duration)
        displaced = []
        if not completed and (window_changed or maintenance.completed):
            self._ensure_no_conflicts(vehicle, maintenance_type, maintenance_date, completion_date,
                                      exclude_id=maintenance.id)
            displaced = self._displaced_schedules(
                vehicle, maintenance_date, maintenance_window_end(maintenance_date, completion_date, duration),
                bool(data.get('cancel_conflicting_schedules', False)))

        maintenance.vehicle = vehicle
        maintenance.maintenance_type = maintenance_type
        maintenance.maintenance_date = maintenance_date
        maintenance.completion_date = completion_date
        maintenance.completed = completed
        if 'maintenance_nature' in data:
            maintenance.maintenance_nature = parse_enum(MaintenanceNature, data['maintenance_nature'],
                                                        'maintenance_nature', required=True)
        if 'cost' in data:
            maintenance.cost = parse_amount(data['cost'], 'cost', 0.0)
        maintenance.duration = duration
        for field in ('description', 'technician_name', 'notes'):
            if field in data:
                setattr(maintenance, field, data[field])

        db.session.flush()
        self._cancel_for_maintenance(maintenance, displaced, performed_by)
        sync_vehicle_status(vehicle)
        if old_vehicle.id != vehicle.id:
            sync_vehicle_status(old_vehicle)

        self.audit_service.log_action(
            action='maintenance_update',
            module='maintenances',
            entity_id=maintenance.id,
            old_values=old_values,
            new_values=maintenance.to_dict(),
            user_id=performed_by
        )
        return maintenance

    @TransactionHelper.with_transaction
    def complete_maintenance(self, maintenance_id: int, data: Optional[Dict[str, Any]] = None,
                             performed_by: Optional[int] = None) -> Maintenance:
        """
        Close a maintenance window.

        Args:
            maintenance_id: ID of maintenance
            data: optional completion_date (defaults to today), cost, notes
                and technician_name
            performed_by: ID of user completing the maintenance

        Returns:
            The completed Maintenance
        """
        data = data or {}
        maintenance = get_maintenance_or_404(maintenance_id)
        if maintenance.completed:
            raise ValidationError("Maintenance is already completed", code='ALREADY_COMPLETED')

        completion_date = parse_date(data.get('completion_date'), 'completion_date') \
            or max(get_local_today(), maintenance.maintenance_date)
        validate_period(maintenance.maintenance_date, completion_date, 'completion_date')

        maintenance.completed = True
        maintenance.completion_date = completion_date
        if 'cost' in data:
            maintenance.cost = parse_amount(data['cost'], 'cost', maintenance.cost)
        if data.get('notes'):
            maintenance.notes = data['notes']
        if data.get('technician_name'):
            maintenance.technician_name = data['technician_name']

        db.session.flush()
        sync_vehicle_status(maintenance.vehicle)

        self.audit_service.log_action(
            action='maintenance_complete',
            module='maintenances',
            entity_id=maintenance.id,
            old_values={'completed': False},
            new_values={'completed': True, 'completion_date': completion_date.isoformat()},
            user_id=performed_by
        )
        logger.info(f"Maintenance {maintenance.id} completed on {completion_date}")
        return maintenance

    @TransactionHelper.with_transaction
    def delete_maintenance(self, maintenance_id: int, performed_by: Optional[int] = None) -> bool:
        maintenance = get_maintenance_or_404(maintenance_id)
        vehicle = maintenance.vehicle
        old_values = maintenance.to_dict()

        db.session.delete(maintenance)
        db.session.flush()
        sync_vehicle_status(vehicle)

        self.audit_service.log_action(
            action='maintenance_delete',
            module='maintenances',
            entity_id=maintenance_id,
            old_values=old_values,
            user_id=performed_by
        )
        return True

    def _ensure_no_conflicts(self, vehicle: Vehicle, maintenance_type: MaintenanceType,
                             start_date, end_date, exclude_id: Optional[int] = None):
        duplicate_query = Maintenance.query.filter(
            Maintenance.vehicle_id == vehicle.id,
            Maintenance.maintenance_type == maintenance_type,
            Maintenance.completed == False  # noqa: E712
        )
        if exclude_id is not None:
            duplicate_query = duplicate_query.filter(Maintenance.id != exclude_id)
        duplicate = duplicate_query.first()
        if duplicate is not None:
            raise ConflictError(
                f"Vehicle {vehicle.license_plate} already has an open {maintenance_type.value} maintenance",
                conflict=duplicate,
                code='DUPLICATE_MAINTENANCE'
            )

        conflicts = find_maintenance_conflicts(vehicle.id, start_date, end_date, exclude_id=exclude_id)
        if conflicts:
            raise ConflictError(
                f"Vehicle {vehicle.license_plate} is already in maintenance from {conflicts[0].period_label()}",
                conflict=conflicts[0],
                code='MAINTENANCE_CONFLICT'
            )

    def _displaced_schedules(self, vehicle: Vehicle, start_date, window_end,
                             cancel_conflicting: bool) -> List[Schedule]:
        schedules = find_schedules_in_maintenance_window(vehicle.id, start_date, window_end)
        if schedules and not cancel_conflicting:
            raise ConflictError(
                f"Vehicle {vehicle.license_plate} is scheduled from {schedules[0].period_label()}",
                conflict=schedules[0],
                code='SCHEDULE_CONFLICT'
            )
        return schedules

    def _cancel_for_maintenance(self, maintenance: Maintenance, schedules: List[Schedule],
                                performed_by: Optional[int]):
        for schedule in schedules:
            cancel_schedule(schedule, f"Canceled for maintenance {maintenance.id} "
                                      f"({maintenance.period_label()})", performed_by=performed_by)
        if schedules:
            logger.info(f"Maintenance {maintenance.id} canceled {len(schedules)} schedule(s) "
                        f"of vehicle {maintenance.vehicle_id}")
