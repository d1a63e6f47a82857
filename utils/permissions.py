"""
Role hierarchy and role-based access helpers.

Roles are ordered driver < manager < admin. A user may access anything that
requires their own role or a lower one.
"""

from functools import wraps
from typing import Union, Optional, List, Dict

from flask import jsonify, g
from flask_jwt_extended import verify_jwt_in_request, get_jwt

from models import UserRole

ROLE_RANK = {
    UserRole.DRIVER: 1,
    UserRole.MANAGER: 2,
    UserRole.ADMIN: 3,
}

RoleLike = Union[UserRole, str]


def coerce_role(role: Optional[RoleLike]) -> Optional[UserRole]:
    """Accept a UserRole, its value ('admin') or its name ('ADMIN')."""
    if role is None or isinstance(role, UserRole):
        return role
    try:
        return UserRole(role.lower())
    except (ValueError, AttributeError):
        raise ValueError(f"Unknown role: {role!r}")


def satisfies(required: RoleLike, actual: Optional[RoleLike]) -> bool:
    """True when ``actual`` is at least as privileged as ``required``."""
    required_role = coerce_role(required)
    actual_role = coerce_role(actual)
    if actual_role is None:
        return False
    return ROLE_RANK[actual_role] >= ROLE_RANK[required_role]


def role_required(required: RoleLike):
    """
    Decorator for JWT protected endpoints restricted to a minimum role.

    Usage:
        @schedule_bp.route('/schedules', methods=['POST'])
        @role_required(UserRole.MANAGER)
        def create_schedule():
            ...
    """
    required_role = coerce_role(required)

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            claims = get_jwt()
            g.current_user_id = claims.get('user_id')
            try:
                allowed = satisfies(required_role, claims.get('role'))
            except ValueError:
                allowed = False
            if not allowed:
                return jsonify({
                    'success': False,
                    'error': 'ACCESS_DENIED',
                    'message': f'{required_role.value.capitalize()} access required'
                }), 403
            return func(*args, **kwargs)
        return wrapper
    return decorator


# Sidebar entries and the lowest role allowed to see each of them
NAVIGATION_LINKS = [
    {'key': 'dashboard', 'label': 'Dashboard', 'path': '/', 'role': UserRole.DRIVER},
    {'key': 'drivers', 'label': 'Drivers', 'path': '/drivers', 'role': UserRole.MANAGER},
    {'key': 'vehicles', 'label': 'Vehicles', 'path': '/vehicles', 'role': UserRole.MANAGER},
    {'key': 'schedules', 'label': 'Schedules', 'path': '/schedules', 'role': UserRole.DRIVER},
    {'key': 'payments', 'label': 'Payments', 'path': '/payments', 'role': UserRole.MANAGER},
    {'key': 'maintenances', 'label': 'Maintenance', 'path': '/maintenances', 'role': UserRole.MANAGER},
    {'key': 'history', 'label': 'History', 'path': '/history', 'role': UserRole.MANAGER},
    {'key': 'users', 'label': 'Users', 'path': '/users', 'role': UserRole.ADMIN},
]


def visible_links(role: Optional[RoleLike]) -> List[Dict[str, str]]:
    """Navigation entries a role is allowed to see, in display order."""
    return [
        {'key': link['key'], 'label': link['label'], 'path': link['path']}
        for link in NAVIGATION_LINKS
        if satisfies(link['role'], role)
    ]


def current_user_id() -> Optional[int]:
    """ID of the user behind the verified token of the current request."""
    return get_jwt().get('user_id')
