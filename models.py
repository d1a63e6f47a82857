import json
import uuid
from enum import Enum
from app import db
from sqlalchemy import Index, CheckConstraint
from werkzeug.security import generate_password_hash, check_password_hash
from timezone_utils import get_local_time_naive, get_local_today

# Enums for better data integrity
class UserRole(Enum):
    DRIVER = 'driver'
    MANAGER = 'manager'
    ADMIN = 'admin'

class UserStatus(Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'

class VehicleType(Enum):
    TAXI = 'taxi'
    MOTO = 'moto'

class VehicleStatus(Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    MAINTENANCE = 'maintenance'

class ScheduleStatus(Enum):
    PENDING = 'pending'
    ASSIGNED = 'assigned'
    COMPLETED = 'completed'
    CANCELED = 'canceled'

# Statuses that still hold the driver and vehicle for their period
ACTIVE_SCHEDULE_STATUSES = (ScheduleStatus.PENDING, ScheduleStatus.ASSIGNED)

class MaintenanceType(Enum):
    OIL_CHANGE = 'oil_change'
    TIRE_REPLACEMENT = 'tire_replacement'
    ENGINE = 'engine'
    OTHER = 'other'

class MaintenanceNature(Enum):
    PREVENTIVE = 'preventive'
    CORRECTIVE = 'corrective'

class PaymentType(Enum):
    CASH = 'cash'
    MOBILE_MONEY = 'mobile_money'

class PaymentStatus(Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    REJECTED = 'rejected'


def _iso(value):
    if value is None:
        return None
    return value.isoformat()


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.DRIVER, index=True)
    status = db.Column(db.Enum(UserStatus), nullable=False, default=UserStatus.ACTIVE, index=True)

    first_name = db.Column(db.String(50))
    last_name = db.Column(db.String(50))

    last_login = db.Column(db.DateTime)
    login_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    @property
    def full_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username

    @property
    def is_active(self):
        return self.status == UserStatus.ACTIVE

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'name': self.full_name,
            'role': self.role.value,
            'status': self.status.value,
        }

    def __repr__(self):
        return f'<User {self.username}>'


class Driver(db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True)

    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False, index=True)
    phone_number = db.Column(db.String(20), nullable=False)
    license_number = db.Column(db.String(50), unique=True, nullable=False, index=True)

    hire_date = db.Column(db.Date, nullable=False)
    departure_date = db.Column(db.Date)  # Set once the driver leaves the company

    current_vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'))

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    # Relationships
    user = db.relationship('User', backref=db.backref('driver_profile', uselist=False))
    current_vehicle = db.relationship('Vehicle', foreign_keys=[current_vehicle_id])

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def in_service(self):
        return self.departure_date is None

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'name': self.full_name,
            'phone_number': self.phone_number,
            'license_number': self.license_number,
            'hire_date': _iso(self.hire_date),
            'departure_date': _iso(self.departure_date),
            'current_vehicle_id': self.current_vehicle_id,
            'user_id': self.user_id,
        }

    def __repr__(self):
        return f'<Driver {self.full_name}>'


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    vehicle_type = db.Column(db.Enum(VehicleType), nullable=False, default=VehicleType.TAXI)
    license_plate = db.Column(db.String(20), unique=True, nullable=False, index=True)
    brand = db.Column(db.String(50), nullable=False)
    model = db.Column(db.String(100), nullable=False)

    registration_date = db.Column(db.Date, nullable=False)
    service_entry_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.Enum(VehicleStatus), nullable=False, default=VehicleStatus.ACTIVE, index=True)
    current_driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id', use_alter=True,
                                                            name='fk_vehicle_current_driver'))
    daily_income_target = db.Column(db.Float, default=0.0)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    current_driver = db.relationship('Driver', foreign_keys=[current_driver_id], post_update=True)

    @property
    def display_name(self):
        return f"{self.brand} {self.model} ({self.license_plate})"

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.vehicle_type.value,
            'license_plate': self.license_plate,
            'brand': self.brand,
            'model': self.model,
            'registration_date': _iso(self.registration_date),
            'service_entry_date': _iso(self.service_entry_date),
            'status': self.status.value,
            'current_driver_id': self.current_driver_id,
            'daily_income_target': self.daily_income_target,
            'notes': self.notes,
        }

    def __repr__(self):
        return f'<Vehicle {self.license_plate}>'


class Schedule(db.Model):
    __tablename__ = 'schedules'

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False, index=True)

    # Assignment period, end_date NULL means open-ended
    schedule_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, index=True)
    shift_start = db.Column(db.String(5))  # "HH:MM"
    shift_end = db.Column(db.String(5))

    status = db.Column(db.Enum(ScheduleStatus), nullable=False, default=ScheduleStatus.ASSIGNED, index=True)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    # Relationships
    driver = db.relationship('Driver', backref=db.backref('schedules', lazy='dynamic'))
    vehicle = db.relationship('Vehicle', backref=db.backref('schedules', lazy='dynamic'))
    payments = db.relationship('Payment', backref='schedule', lazy=True, cascade='all, delete-orphan')

    __table_args__ = (
        Index('idx_schedule_driver_date', 'driver_id', 'schedule_date'),
        Index('idx_schedule_vehicle_date', 'vehicle_id', 'schedule_date'),
        CheckConstraint('end_date IS NULL OR end_date >= schedule_date', name='ck_schedule_period'),
    )

    @property
    def is_active(self):
        return self.status in ACTIVE_SCHEDULE_STATUSES

    def period_label(self):
        end = self.end_date.isoformat() if self.end_date else 'ongoing'
        return f"{self.schedule_date.isoformat()} to {end}"

    def to_dict(self):
        return {
            'id': self.id,
            'driver': {
                'id': self.driver_id,
                'name': self.driver.full_name if self.driver else None,
            },
            'vehicle': {
                'id': self.vehicle_id,
                'license_plate': self.vehicle.license_plate if self.vehicle else None,
                'brand': self.vehicle.brand if self.vehicle else None,
                'model': self.vehicle.model if self.vehicle else None,
            },
            'start_date': _iso(self.schedule_date),
            'end_date': _iso(self.end_date),
            'shift_start': self.shift_start,
            'shift_end': self.shift_end,
            'status': self.status.value,
            'notes': self.notes,
        }

    def __repr__(self):
        return f'<Schedule {self.id} driver={self.driver_id} vehicle={self.vehicle_id}>'


class Maintenance(db.Model):
    __tablename__ = 'maintenances'

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False, index=True)

    maintenance_type = db.Column(db.Enum(MaintenanceType), nullable=False)
    maintenance_nature = db.Column(db.Enum(MaintenanceNature), nullable=False, default=MaintenanceNature.PREVENTIVE)
    cost = db.Column(db.Float, nullable=False, default=0.0)
    duration = db.Column(db.Integer)  # days

    # Window, completion_date NULL means still open
    maintenance_date = db.Column(db.Date, nullable=False, index=True)
    completion_date = db.Column(db.Date)
    completed = db.Column(db.Boolean, nullable=False, default=False, index=True)

    description = db.Column(db.Text)
    technician_name = db.Column(db.String(100))
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    vehicle = db.relationship('Vehicle', backref=db.backref('maintenances', lazy='dynamic'))

    __table_args__ = (
        CheckConstraint('completion_date IS NULL OR completion_date >= maintenance_date',
                        name='ck_maintenance_period'),
    )

    def period_label(self):
        end = self.completion_date.isoformat() if self.completion_date else 'open'
        return f"{self.maintenance_date.isoformat()} to {end}"

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle': {
                'id': self.vehicle_id,
                'license_plate': self.vehicle.license_plate if self.vehicle else None,
            },
            'maintenance_type': self.maintenance_type.value,
            'maintenance_nature': self.maintenance_nature.value,
            'cost': self.cost,
            'duration': self.duration,
            'maintenance_date': _iso(self.maintenance_date),
            'completion_date': _iso(self.completion_date),
            'completed': self.completed,
            'description': self.description,
            'technician_name': self.technician_name,
            'notes': self.notes,
        }

    def __repr__(self):
        return f'<Maintenance {self.id} vehicle={self.vehicle_id}>'


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('schedules.id'), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False, default=0.0)
    payment_date = db.Column(db.Date, nullable=False, default=get_local_today)
    payment_type = db.Column(db.Enum(PaymentType), nullable=False, default=PaymentType.CASH)
    status = db.Column(db.Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    is_meeting_target = db.Column(db.Boolean, default=False)
    comments = db.Column(db.Text, default='')

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    __table_args__ = (
        Index('idx_payment_schedule_date', 'schedule_id', 'payment_date'),
        CheckConstraint('amount >= 0', name='ck_payment_amount'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'schedule_id': self.schedule_id,
            'amount': self.amount,
            'payment_date': _iso(self.payment_date),
            'payment_type': self.payment_type.value,
            'status': self.status.value,
            'is_meeting_target': self.is_meeting_target,
            'comments': self.comments,
        }

    def __repr__(self):
        return f'<Payment {self.id} schedule={self.schedule_id} {self.payment_date}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)  # NULL for system jobs

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    module = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.Integer, index=True)

    # Change tracking
    old_values = db.Column(db.Text)  # JSON
    new_values = db.Column(db.Text)  # JSON
    description = db.Column(db.Text)

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    user = db.relationship('User', backref='audit_logs')

    def get_new_values(self):
        return json.loads(self.new_values) if self.new_values else {}

    def get_old_values(self):
        return json.loads(self.old_values) if self.old_values else {}

    def __repr__(self):
        return f'<AuditLog {self.action} {self.module}:{self.entity_id}>'


class RevokedToken(db.Model):
    __tablename__ = 'revoked_tokens'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    revoked_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)

    @classmethod
    def is_revoked(cls, jti):
        return db.session.query(cls.id).filter_by(jti=jti).first() is not None
