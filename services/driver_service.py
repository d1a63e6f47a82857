"""
Driver Service

Handles driver records: hiring, profile changes and departure from the
company. Schedules check ``Driver.in_service`` before assigning anyone.
"""

from typing import Optional, Dict, Any, List
import logging
from models import db, Driver, User, Schedule, ScheduleStatus
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .errors import NotFoundError, ValidationError
from .validation import parse_date, parse_id

logger = logging.getLogger(__name__)


def get_driver_or_404(driver_id: int) -> Driver:
    driver = db.session.get(Driver, driver_id)
    if not driver:
        raise NotFoundError("Driver not found", code='DRIVER_NOT_FOUND')
    return driver


class DriverService:
    """Service class for driver management operations"""

    def __init__(self):
        self.audit_service = AuditService()

    def list_drivers(self, in_service_only: bool = False) -> List[Driver]:
        query = Driver.query
        if in_service_only:
            query = query.filter(Driver.departure_date.is_(None))
        return query.order_by(Driver.last_name, Driver.first_name).all()

    def get_driver(self, driver_id: int) -> Driver:
        return get_driver_or_404(driver_id)

    @TransactionHelper.with_transaction
    def create_driver(self, data: Dict[str, Any], performed_by: Optional[int] = None) -> Driver:
        """
        Create a driver record.

        Args:
            data: first_name, last_name, phone_number, license_number and
                hire_date are required; user_id links an existing account
            performed_by: ID of user creating the driver

        Returns:
            The created Driver
        """
        for field in ('first_name', 'last_name', 'phone_number', 'license_number'):
            if not data.get(field):
                raise ValidationError(f"{field} is required", code='MISSING_FIELD')

        license_number = data['license_number'].strip()
        if Driver.query.filter_by(license_number=license_number).first():
            raise ValidationError("A driver with this license number already exists",
                                  code='DUPLICATE_LICENSE')

        driver = Driver()
        driver.first_name = data['first_name'].strip()
        driver.last_name = data['last_name'].strip()
        driver.phone_number = data['phone_number'].strip()
        driver.license_number = license_number
        driver.hire_date = parse_date(data.get('hire_date'), 'hire_date', required=True)
        driver.departure_date = parse_date(data.get('departure_date'), 'departure_date')
        driver.user_id = self._resolve_user(data.get('user_id'))

        db.session.add(driver)
        db.session.flush()

        self.audit_service.log_action(
            action='driver_create',
            module='drivers',
            entity_id=driver.id,
            new_values=driver.to_dict(),
            user_id=performed_by,
            description=f"Driver {driver.full_name} created"
        )
        logger.info(f"Driver {driver.full_name} created (ID: {driver.id})")
        return driver

    @TransactionHelper.with_transaction
    def update_driver(self, driver_id: int, data: Dict[str, Any],
                      performed_by: Optional[int] = None) -> Driver:
        driver = get_driver_or_404(driver_id)
        old_values = driver.to_dict()

        if data.get('license_number'):
            license_number = data['license_number'].strip()
            duplicate = Driver.query.filter(Driver.license_number == license_number,
                                            Driver.id != driver.id).first()
            if duplicate:
                raise ValidationError("A driver with this license number already exists",
                                      code='DUPLICATE_LICENSE')
            driver.license_number = license_number

        for field in ('first_name', 'last_name', 'phone_number'):
            if data.get(field):
                setattr(driver, field, data[field].strip())
        if 'hire_date' in data:
            driver.hire_date = parse_date(data['hire_date'], 'hire_date', required=True)
        if 'user_id' in data:
            driver.user_id = self._resolve_user(data['user_id'], driver_id=driver.id)

        self.audit_service.log_action(
            action='driver_update',
            module='drivers',
            entity_id=driver.id,
            old_values=old_values,
            new_values=driver.to_dict(),
            user_id=performed_by
        )
        return driver

    @TransactionHelper.with_transaction
    def record_departure(self, driver_id: int, departure_date: Any,
                         performed_by: Optional[int] = None) -> Driver:
        """
        Mark a driver as having left the company.

        Refused while the driver still holds an assigned schedule.
        """
        driver = get_driver_or_404(driver_id)
        departure = parse_date(departure_date, 'departure_date', required=True)
        if departure < driver.hire_date:
            raise ValidationError("departure_date cannot be before the hire date", code='INVALID_PERIOD')

        assigned = Schedule.query.filter_by(driver_id=driver.id, status=ScheduleStatus.ASSIGNED).first()
        if assigned:
            raise ValidationError("Driver still has an assigned schedule", code='DRIVER_IN_SERVICE')

        driver.departure_date = departure

        self.audit_service.log_action(
            action='driver_departure',
            module='drivers',
            entity_id=driver.id,
            new_values={'departure_date': departure.isoformat()},
            user_id=performed_by,
            description=f"Driver {driver.full_name} left on {departure.isoformat()}"
        )
        logger.info(f"Driver {driver.full_name} (ID: {driver.id}) departure recorded")
        return driver

    def _resolve_user(self, user_id: Any, driver_id: Optional[int] = None) -> Optional[int]:
        user_id = parse_id(user_id, 'user_id')
        if user_id is None:
            return None
        if not db.session.get(User, user_id):
            raise NotFoundError("User not found", code='USER_NOT_FOUND')
        taken = Driver.query.filter(Driver.user_id == user_id, Driver.id != driver_id).first()
        if taken:
            raise ValidationError("This user is already linked to another driver", code='USER_ALREADY_LINKED')
        return user_id
