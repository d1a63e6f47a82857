"""
Vehicle Service

Handles the vehicle registry, vehicle status changes and the current
driver/vehicle link kept on both records while a schedule is assigned.
"""

from typing import Optional, Dict, Any, List
import logging
from models import db, Vehicle, VehicleStatus, VehicleType, Driver, Schedule, ScheduleStatus
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .errors import NotFoundError, ValidationError
from .validation import parse_date, parse_enum, parse_amount, parse_id

logger = logging.getLogger(__name__)


def link_driver_vehicle(driver: Driver, vehicle: Vehicle):
    """Point driver and vehicle at each other, releasing their previous partners."""
    previous_vehicle = driver.current_vehicle
    if previous_vehicle is not None and previous_vehicle.id != vehicle.id \
            and previous_vehicle.current_driver_id == driver.id:
        previous_vehicle.current_driver_id = None

    previous_driver = vehicle.current_driver
    if previous_driver is not None and previous_driver.id != driver.id \
            and previous_driver.current_vehicle_id == vehicle.id:
        previous_driver.current_vehicle_id = None

    driver.current_vehicle_id = vehicle.id
    vehicle.current_driver_id = driver.id
    logger.debug(f"Linked driver {driver.id} with vehicle {vehicle.id}")


def unlink_driver_vehicle(driver: Optional[Driver], vehicle: Optional[Vehicle]):
    """Clear the links only where they still point at each other."""
    if driver is not None and vehicle is not None:
        if driver.current_vehicle_id == vehicle.id:
            driver.current_vehicle_id = None
        if vehicle.current_driver_id == driver.id:
            vehicle.current_driver_id = None
        logger.debug(f"Unlinked driver {driver.id} from vehicle {vehicle.id}")


def get_vehicle_or_404(vehicle_id: int) -> Vehicle:
    vehicle = db.session.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFoundError("Vehicle not found", code='VEHICLE_NOT_FOUND')
    return vehicle


class VehicleService:
    """Service class for vehicle management operations"""

    def __init__(self):
        self.audit_service = AuditService()

    def list_vehicles(self, status: Optional[str] = None) -> List[Vehicle]:
        """
        Get vehicles ordered by license plate.

        Args:
            status: Only vehicles in this status ('active', 'inactive', 'maintenance')
        """
        query = Vehicle.query
        vehicle_status = parse_enum(VehicleStatus, status, 'status')
        if vehicle_status:
            query = query.filter(Vehicle.status == vehicle_status)
        return query.order_by(Vehicle.license_plate).all()

    def get_vehicle(self, vehicle_id: int) -> Vehicle:
        return get_vehicle_or_404(vehicle_id)

    @TransactionHelper.with_transaction
    def create_vehicle(self, data: Dict[str, Any], performed_by: Optional[int] = None) -> Vehicle:
        """
        Register a new vehicle.

        Args:
            data: license_plate, brand, model, registration_date and
                service_entry_date are required; type, status,
                daily_income_target and notes are optional
            performed_by: ID of user creating the vehicle

        Returns:
            The created Vehicle
        """
        for field in ('license_plate', 'brand', 'model'):
            if not data.get(field):
                raise ValidationError(f"{field} is required", code='MISSING_FIELD')

        license_plate = data['license_plate'].strip().upper()
        if Vehicle.query.filter_by(license_plate=license_plate).first():
            raise ValidationError(f"A vehicle with plate {license_plate} already exists",
                                  code='DUPLICATE_PLATE')

        vehicle = Vehicle()
        vehicle.license_plate = license_plate
        vehicle.brand = data['brand']
        vehicle.model = data['model']
        vehicle.vehicle_type = parse_enum(VehicleType, data.get('type'), 'type') or VehicleType.TAXI
        vehicle.registration_date = parse_date(data.get('registration_date'), 'registration_date', required=True)
        vehicle.service_entry_date = parse_date(data.get('service_entry_date'), 'service_entry_date', required=True)
        vehicle.status = parse_enum(VehicleStatus, data.get('status'), 'status') or VehicleStatus.ACTIVE
        vehicle.daily_income_target = parse_amount(data.get('daily_income_target'), 'daily_income_target', 0.0)
        vehicle.notes = data.get('notes')

        db.session.add(vehicle)
        db.session.flush()

        self.audit_service.log_action(
            action='vehicle_create',
            module='vehicles',
            entity_id=vehicle.id,
            new_values=vehicle.to_dict(),
            user_id=performed_by,
            description=f"Vehicle {vehicle.display_name} registered"
        )
        logger.info(f"Vehicle {vehicle.license_plate} created (ID: {vehicle.id})")
        return vehicle

    @TransactionHelper.with_transaction
    def update_vehicle(self, vehicle_id: int, data: Dict[str, Any],
                       performed_by: Optional[int] = None) -> Vehicle:
        vehicle = get_vehicle_or_404(vehicle_id)
        old_values = vehicle.to_dict()

        if data.get('license_plate'):
            license_plate = data['license_plate'].strip().upper()
            duplicate = Vehicle.query.filter(Vehicle.license_plate == license_plate,
                                             Vehicle.id != vehicle.id).first()
            if duplicate:
                raise ValidationError(f"A vehicle with plate {license_plate} already exists",
                                      code='DUPLICATE_PLATE')
            vehicle.license_plate = license_plate

        for field in ('brand', 'model', 'notes'):
            if field in data:
                setattr(vehicle, field, data[field])
        if 'type' in data:
            vehicle.vehicle_type = parse_enum(VehicleType, data['type'], 'type', required=True)
        if 'registration_date' in data:
            vehicle.registration_date = parse_date(data['registration_date'], 'registration_date', required=True)
        if 'service_entry_date' in data:
            vehicle.service_entry_date = parse_date(data['service_entry_date'], 'service_entry_date', required=True)
        if 'daily_income_target' in data:
            vehicle.daily_income_target = parse_amount(data['daily_income_target'], 'daily_income_target', 0.0)
        if 'status' in data:
            self._apply_status(vehicle, parse_enum(VehicleStatus, data['status'], 'status', required=True))

        self.audit_service.log_action(
            action='vehicle_update',
            module='vehicles',
            entity_id=vehicle.id,
            old_values=old_values,
            new_values=vehicle.to_dict(),
            user_id=performed_by
        )
        return vehicle

    @TransactionHelper.with_transaction
    def change_status(self, vehicle_id: int, status: str, performed_by: Optional[int] = None) -> Vehicle:
        """
        Change a vehicle's status.

        A vehicle holding an assigned schedule cannot be taken out of service.
        """
        vehicle = get_vehicle_or_404(vehicle_id)
        old_status = vehicle.status
        self._apply_status(vehicle, parse_enum(VehicleStatus, status, 'status', required=True))

        self.audit_service.log_action(
            action='vehicle_status_change',
            module='vehicles',
            entity_id=vehicle.id,
            old_values={'status': old_status.value},
            new_values={'status': vehicle.status.value},
            user_id=performed_by
        )
        logger.info(f"Vehicle {vehicle.license_plate} status {old_status.value} -> {vehicle.status.value}")
        return vehicle

    def _apply_status(self, vehicle: Vehicle, status: VehicleStatus):
        if status == VehicleStatus.INACTIVE and vehicle.status != VehicleStatus.INACTIVE:
            assigned = Schedule.query.filter_by(vehicle_id=vehicle.id, status=ScheduleStatus.ASSIGNED).first()
            if assigned:
                raise ValidationError("Vehicle has an assigned schedule and cannot be deactivated",
                                      code='VEHICLE_IN_USE')
        vehicle.status = status

    @TransactionHelper.with_transaction
    def update_driver_vehicle_relationship(self, driver_id: int, vehicle_id: int, assign: bool = True,
                                           performed_by: Optional[int] = None) -> Dict[str, Any]:
        """
        Assign a vehicle to a driver, or release the pair.

        Args:
            driver_id: ID of driver
            vehicle_id: ID of vehicle
            assign: True to link the pair, False to release it
            performed_by: ID of user making the change

        Returns:
            dict with the updated driver and vehicle
        """
        driver = db.session.get(Driver, parse_id(driver_id, 'driver_id', required=True))
        if not driver:
            raise NotFoundError("Driver not found", code='DRIVER_NOT_FOUND')
        vehicle = get_vehicle_or_404(vehicle_id)

        if assign:
            if not driver.in_service:
                raise ValidationError("Driver is no longer in service", code='DRIVER_UNAVAILABLE')
            if vehicle.status != VehicleStatus.ACTIVE:
                raise ValidationError("Vehicle is not active", code='VEHICLE_UNAVAILABLE')
            link_driver_vehicle(driver, vehicle)
        else:
            unlink_driver_vehicle(driver, vehicle)

        self.audit_service.log_action(
            action='vehicle_assign' if assign else 'vehicle_release',
            module='vehicles',
            entity_id=vehicle.id,
            new_values={'driver_id': driver.id, 'assigned': assign},
            user_id=performed_by
        )
        return {'driver': driver.to_dict(), 'vehicle': vehicle.to_dict()}
