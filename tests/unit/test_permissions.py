"""
Unit tests for the role hierarchy
"""

import pytest

from models import UserRole
from utils.permissions import coerce_role, satisfies, visible_links


class TestRoleHierarchy:
    """Test role ordering driver < manager < admin"""

    @pytest.mark.parametrize('required,actual,expected', [
        (UserRole.DRIVER, UserRole.DRIVER, True),
        (UserRole.DRIVER, UserRole.ADMIN, True),
        (UserRole.MANAGER, UserRole.DRIVER, False),
        (UserRole.MANAGER, UserRole.MANAGER, True),
        (UserRole.ADMIN, UserRole.MANAGER, False),
        (UserRole.ADMIN, UserRole.ADMIN, True),
    ])
    def test_satisfies(self, required, actual, expected):
        assert satisfies(required, actual) is expected

    def test_accepts_values_and_names(self):
        assert satisfies('manager', 'ADMIN') is True
        assert coerce_role('Driver') == UserRole.DRIVER

    def test_missing_role_is_denied(self):
        assert satisfies(UserRole.DRIVER, None) is False

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            coerce_role('owner')


class TestNavigation:
    """Test sidebar filtering by role"""

    def test_driver_sees_own_pages_only(self):
        keys = [link['key'] for link in visible_links(UserRole.DRIVER)]
        assert keys == ['dashboard', 'schedules']

    def test_manager_does_not_see_user_admin(self):
        keys = [link['key'] for link in visible_links('manager')]
        assert 'users' not in keys
        assert 'maintenances' in keys

    def test_admin_sees_everything(self):
        links = visible_links(UserRole.ADMIN)
        assert links[-1] == {'key': 'users', 'label': 'Users', 'path': '/users'}
        assert len(links) == 8
