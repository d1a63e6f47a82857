"""
Security utilities for sanitizing history entries before they are displayed
"""
import re
import json
from typing import Dict, Any, Union


class AuditDataSanitizer:
    """Handles sanitization of audit log data to protect sensitive information"""

    # Sensitive field patterns to redact
    SENSITIVE_PATTERNS = [
        r'password',
        r'secret',
        r'token',
        r'authorization',
        r'credential',
        r'hash'
    ]

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    # Starts at a number boundary and never at an ISO date (2024-01-31)
    PHONE_PATTERN = re.compile(r'(?<![\w.:+-])(?!\d{4}-\d{2}-\d{2}(?!\d))\+?\d[\d\s.-]{7,}\d')

    @classmethod
    def sanitize_json_data(cls, data: Union[str, Dict, None]) -> Dict[str, Any]:
        """
        Sanitize JSON data by redacting sensitive fields
        """
        if not data:
            return {}

        try:
            if isinstance(data, str):
                data = json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return {"error": "Invalid JSON data"}

        if not isinstance(data, dict):
            return {}

        sanitized = {}
        for key, value in data.items():
            if cls._is_sensitive_field(key):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, str):
                sanitized[key] = cls._sanitize_string_value(value)
            elif isinstance(value, dict):
                sanitized[key] = cls.sanitize_json_data(value)
            else:
                sanitized[key] = value
        return sanitized

    @classmethod
    def _is_sensitive_field(cls, field_name: str) -> bool:
        field_lower = field_name.lower()
        return any(pattern in field_lower for pattern in cls.SENSITIVE_PATTERNS)

    @classmethod
    def _sanitize_string_value(cls, value: str) -> str:
        """Mask emails and phone numbers"""
        value = cls.EMAIL_PATTERN.sub(lambda m: cls._mask_email(m.group()), value)
        value = cls.PHONE_PATTERN.sub(lambda m: cls._mask_phone(m.group()), value)
        return value

    @classmethod
    def _mask_email(cls, email: str) -> str:
        local, _, domain = email.partition('@')
        if len(local) <= 2:
            masked_local = '*' * len(local)
        else:
            masked_local = local[0] + '*' * (len(local) - 2) + local[-1]
        return f"{masked_local}@{domain}"

    @classmethod
    def _mask_phone(cls, phone: str) -> str:
        digits = re.sub(r'\D', '', phone)
        if len(digits) >= 4:
            return f"***-***-{digits[-4:]}"
        return "*" * len(phone)

    @classmethod
    def mask_ip_address(cls, ip_address: str) -> str:
        """Partially mask IP address for privacy"""
        if not ip_address:
            return ip_address

        if '.' in ip_address:
            parts = ip_address.split('.')
            if len(parts) == 4:
                return f"{parts[0]}.{parts[1]}.xxx.xxx"

        if ':' in ip_address:
            parts = ip_address.split(':')
            if len(parts) >= 4:
                return f"{parts[0]}:{parts[1]}:xxxx:xxxx"

        return ip_address


def get_sanitized_audit_data(audit_log) -> Dict[str, Any]:
    """
    Serialize a history entry with sensitive values masked
    """
    sanitizer = AuditDataSanitizer()

    return {
        'id': audit_log.id,
        'action': audit_log.action,
        'module': audit_log.module,
        'entity_id': audit_log.entity_id,
        'performed_by': audit_log.user.full_name if audit_log.user else 'system',
        'description': audit_log.description,
        'old_values': sanitizer.sanitize_json_data(audit_log.old_values),
        'new_values': sanitizer.sanitize_json_data(audit_log.new_values),
        'masked_ip': sanitizer.mask_ip_address(audit_log.ip_address or ""),
        'created_at': audit_log.created_at.isoformat() if audit_log.created_at else None,
    }
