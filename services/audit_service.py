"""
Audit Service

History trail of business operations: who created, edited, completed or
deleted a schedule, maintenance, payment, driver or vehicle, with the values
before and after the change.
"""

from typing import Optional, Dict, Any, List
import logging
import json
from flask import request, has_request_context
from models import db, AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service class for centralized audit logging"""

    @staticmethod
    def log_action(action: str,
                   module: Optional[str] = None,
                   entity_id: Optional[int] = None,
                   new_values: Optional[Dict[str, Any]] = None,
                   old_values: Optional[Dict[str, Any]] = None,
                   user_id: Optional[int] = None,
                   description: Optional[str] = None) -> AuditLog:
        """
        Add an audit entry to the current session.

        Args:
            action: Action performed (e.g., 'schedule_create', 'maintenance_complete')
            module: Area of the application (e.g., 'schedules', 'maintenances')
            entity_id: ID of the affected entity
            new_values: State after the change
            old_values: State before the change
            user_id: ID of user performing the action, None for system jobs
            description: Human readable summary

        Returns:
            The pending AuditLog, committed with the surrounding transaction
        """
        audit = AuditLog()
        audit.user_id = user_id
        audit.action = action
        audit.module = module
        audit.entity_id = entity_id
        audit.new_values = json.dumps(new_values, default=str) if new_values else None
        audit.old_values = json.dumps(old_values, default=str) if old_values else None
        audit.description = description

        if has_request_context():
            audit.ip_address = request.remote_addr
            audit.user_agent = request.headers.get('User-Agent', '')[:500]

        # Committed by the caller's transaction
        db.session.add(audit)
        logger.debug(f"Audit logged: {action} on {module}:{entity_id} by user {user_id}")
        return audit

    @staticmethod
    def get_entity_history(module: str, entity_id: int, limit: int = 50) -> List[AuditLog]:
        """
        Get audit history for a specific entity.

        Args:
            module: Area of the entity (e.g., 'schedules')
            entity_id: ID of entity
            limit: Maximum number of records to return

        Returns:
            List of AuditLog records, newest first
        """
        return AuditLog.query.filter_by(module=module, entity_id=entity_id) \
                             .order_by(AuditLog.created_at.desc(), AuditLog.id.desc()) \
                             .limit(limit).all()

    @staticmethod
    def get_recent_activities(limit: int = 20, module: Optional[str] = None) -> List[AuditLog]:
        """Get recent system-wide activities, optionally for one module."""
        query = AuditLog.query
        if module:
            query = query.filter_by(module=module)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
