"""
Test configuration and fixtures for FleetDesk
"""

import os
import pytest

# Set test environment before importing app
os.environ.update({
    'SESSION_SECRET': 'test_secret_key_for_testing_only',
    'JWT_SECRET_KEY': 'test_jwt_secret_for_testing_only',
    'DATABASE_URL': 'sqlite:///:memory:',
    'APP_TIMEZONE': 'UTC',
    'ENABLE_BACKGROUND_TASKS': 'false',
})

from flask_jwt_extended import create_access_token

from app import create_app, db
from models import UserRole
from timezone_utils import get_local_today
from tests.factories import UserFactory


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing"""
    yield db.session
    db.session.rollback()


@pytest.fixture
def today():
    return get_local_today()


@pytest.fixture
def admin_user(db_session):
    return UserFactory(username='admin', email='admin@test.com', role=UserRole.ADMIN)


@pytest.fixture
def manager_user(db_session):
    return UserFactory(username='manager', email='manager@test.com', role=UserRole.MANAGER)


@pytest.fixture
def driver_user(db_session):
    return UserFactory(username='driveruser', email='driver@test.com', role=UserRole.DRIVER)


def token_for(user):
    return create_access_token(
        identity=user.username,
        additional_claims={'user_id': user.id, 'role': user.role.value}
    )


def bearer(user):
    return {'Authorization': f'Bearer {token_for(user)}'}


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)


@pytest.fixture
def manager_headers(manager_user):
    return bearer(manager_user)


@pytest.fixture
def driver_headers(driver_user):
    return bearer(driver_user)
