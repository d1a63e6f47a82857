"""
Service Errors

Exceptions raised by the service layer. Each carries a stable error code and
the HTTP status the JSON API answers with, so route handlers never need to
map business failures by hand.
"""

from typing import Optional, Dict, Any


class ServiceError(Exception):
    """Base class for business rule failures"""

    code = 'SERVICE_ERROR'
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'error': self.code,
            'message': self.message
        }


class ValidationError(ServiceError):
    code = 'VALIDATION_ERROR'
    status_code = 400


class NotFoundError(ServiceError):
    code = 'NOT_FOUND'
    status_code = 404


class ConflictError(ServiceError):
    """
    A schedule or maintenance window collides with an existing active record.

    ``conflict`` is the colliding record (anything with ``to_dict``); its
    serialized form is attached to the error payload.
    """

    code = 'SCHEDULE_CONFLICT'
    status_code = 409

    def __init__(self, message: str, conflict=None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.conflict = conflict

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload['conflict'] = self.conflict.to_dict() if self.conflict is not None else None
        return payload
