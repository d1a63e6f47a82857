"""
Factory classes for test data generation
"""

from datetime import date

import factory
from factory import Faker
from werkzeug.security import generate_password_hash

from app import db
from models import (User, UserRole, UserStatus, Driver, Vehicle, VehicleType, VehicleStatus,
                    Schedule, ScheduleStatus, Maintenance, MaintenanceType, MaintenanceNature,
                    Payment, PaymentStatus, PaymentType)
from timezone_utils import get_local_today

TEST_PASSWORD = 'password123'


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"


class UserFactory(BaseFactory):
    class Meta:
        model = User

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@test.com")
    password_hash = factory.LazyFunction(lambda: generate_password_hash(TEST_PASSWORD))
    role = UserRole.DRIVER
    status = UserStatus.ACTIVE
    first_name = Faker('first_name')
    last_name = Faker('last_name')


class DriverFactory(BaseFactory):
    class Meta:
        model = Driver

    first_name = Faker('first_name')
    last_name = Faker('last_name')
    phone_number = factory.Sequence(lambda n: f"+2250700{n:06d}")
    license_number = factory.Sequence(lambda n: f"LIC{n:06d}")
    hire_date = date(2020, 1, 1)


class VehicleFactory(BaseFactory):
    class Meta:
        model = Vehicle

    vehicle_type = VehicleType.TAXI
    license_plate = factory.Sequence(lambda n: f"AB-{n:03d}-CD")
    brand = 'Toyota'
    model = 'Corolla'
    registration_date = date(2019, 6, 1)
    service_entry_date = date(2019, 7, 1)
    status = VehicleStatus.ACTIVE
    daily_income_target = 20000.0


class ScheduleFactory(BaseFactory):
    class Meta:
        model = Schedule

    driver = factory.SubFactory(DriverFactory)
    vehicle = factory.SubFactory(VehicleFactory)
    schedule_date = factory.LazyFunction(get_local_today)
    end_date = None
    status = ScheduleStatus.ASSIGNED


class MaintenanceFactory(BaseFactory):
    class Meta:
        model = Maintenance

    vehicle = factory.SubFactory(VehicleFactory)
    maintenance_type = MaintenanceType.OIL_CHANGE
    maintenance_nature = MaintenanceNature.PREVENTIVE
    cost = 0.0
    maintenance_date = factory.LazyFunction(get_local_today)
    completion_date = None
    completed = False


class PaymentFactory(BaseFactory):
    class Meta:
        model = Payment

    schedule = factory.SubFactory(ScheduleFactory)
    amount = 0.0
    payment_date = factory.LazyFunction(get_local_today)
    payment_type = PaymentType.CASH
    status = PaymentStatus.PENDING
