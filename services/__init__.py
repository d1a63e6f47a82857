"""
Service Layer Architecture

Business logic used by the route blueprints, the CLI and the background
jobs. Services provide:

1. **Transaction Management**: Atomic operations with proper rollback
2. **Business Rules**: Overlap checks, status transitions, vehicle status sync
3. **Audit Trail**: Every mutation is recorded in the history log
4. **Error Handling**: Failures raised as ServiceError subclasses

Services Architecture:
- **ScheduleService**: Driver/vehicle assignments, conflicts, lifecycle sweep
- **MaintenanceService**: Maintenance windows and vehicle availability
- **DriverService**: Driver records and departures
- **VehicleService**: Vehicle registry, status, driver/vehicle link
- **PaymentService**: Daily payments of schedules
- **UserService**: Accounts, roles and passwords
- **AuditService**: Centralized audit logging
"""

from .errors import ServiceError, ValidationError, NotFoundError, ConflictError
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .driver_service import DriverService
from .vehicle_service import VehicleService
from .payment_service import PaymentService
from .schedule_service import ScheduleService
from .maintenance_service import MaintenanceService
from .user_service import UserService

__all__ = [
    'ServiceError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'TransactionHelper',
    'AuditService',
    'DriverService',
    'VehicleService',
    'PaymentService',
    'ScheduleService',
    'MaintenanceService',
    'UserService'
]
