"""
User Service

Application accounts: creation, role changes and password resets. Used by
the admin endpoints and by the command line tools.
"""

from typing import Optional, Dict, Any, List
import logging
from models import db, User, UserRole, UserStatus
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _parse_role(role) -> UserRole:
    from utils.permissions import coerce_role

    if role is None or role == '':
        raise ValidationError("role is required", code='MISSING_FIELD')
    try:
        return coerce_role(role)
    except ValueError as e:
        raise ValidationError(str(e), code='INVALID_ROLE')


def _check_password(password: str):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters",
                              code='WEAK_PASSWORD')


class UserService:
    """Service class for user account operations"""

    def __init__(self):
        self.audit_service = AuditService()

    def list_users(self) -> List[User]:
        return User.query.order_by(User.username).all()

    def get_user(self, user_id: int) -> User:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", code='USER_NOT_FOUND')
        return user

    def find_by_login(self, login_name: str) -> Optional[User]:
        """Look a user up by username or email."""
        return User.query.filter(
            (User.username == login_name) | (User.email == login_name.lower())
        ).first()

    @TransactionHelper.with_transaction
    def create_user(self, data: Dict[str, Any], performed_by: Optional[int] = None) -> User:
        """
        Create an active account.

        Args:
            data: username, email and password are required; role defaults
                to driver; first_name and last_name optional
            performed_by: ID of admin creating the account

        Returns:
            The created User
        """
        for field in ('username', 'email', 'password'):
            if not data.get(field):
                raise ValidationError(f"{field} is required", code='MISSING_FIELD')
        _check_password(data['password'])

        username = data['username'].strip()
        email = data['email'].strip().lower()
        if User.query.filter((User.username == username) | (User.email == email)).first():
            raise ValidationError("Username or email already in use", code='DUPLICATE_USER')

        user = User()
        user.username = username
        user.email = email
        user.set_password(data['password'])
        user.role = _parse_role(data.get('role') or UserRole.DRIVER)
        user.status = UserStatus.ACTIVE
        user.first_name = data.get('first_name')
        user.last_name = data.get('last_name')
        db.session.add(user)
        db.session.flush()

        self.audit_service.log_action(
            action='user_create',
            module='users',
            entity_id=user.id,
            new_values=user.to_dict(),
            user_id=performed_by
        )
        logger.info(f"User {user.username} created with role {user.role.value}")
        return user

    @TransactionHelper.with_transaction
    def change_role(self, user_id: int, role, performed_by: Optional[int] = None) -> User:
        user = self.get_user(user_id)
        new_role = _parse_role(role)
        old_role = user.role
        user.role = new_role

        self.audit_service.log_action(
            action='user_role_change',
            module='users',
            entity_id=user.id,
            old_values={'role': old_role.value},
            new_values={'role': new_role.value},
            user_id=performed_by
        )
        logger.info(f"User {user.username} role {old_role.value} -> {new_role.value}")
        return user

    @TransactionHelper.with_transaction
    def reset_password(self, user_id: int, password: str, performed_by: Optional[int] = None) -> User:
        user = self.get_user(user_id)
        _check_password(password)
        user.set_password(password)

        self.audit_service.log_action(
            action='user_password_reset',
            module='users',
            entity_id=user.id,
            user_id=performed_by
        )
        logger.info(f"Password reset for user {user.username}")
        return user

    @TransactionHelper.with_transaction
    def record_login(self, user: User) -> User:
        from timezone_utils import get_local_time_naive

        user.last_login = get_local_time_naive()
        user.login_count = (user.login_count or 0) + 1
        self.audit_service.log_action(action='login', module='auth', entity_id=user.id, user_id=user.id)
        return user
