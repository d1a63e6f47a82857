"""
Startup configuration validation
Reports missing or weak settings before the application starts serving
"""
import os
import logging
from typing import Dict, List, Tuple, Any

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass


def validate_flask_config() -> Tuple[bool, List[str]]:
    """
    Validate secrets and debug settings.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    session_secret = os.getenv('SESSION_SECRET')
    if not session_secret:
        issues.append("Missing SESSION_SECRET environment variable")
    elif len(session_secret) < 32:
        issues.append("SESSION_SECRET should be at least 32 characters for security")

    jwt_secret = os.getenv('JWT_SECRET_KEY')
    if jwt_secret and len(jwt_secret) < 32:
        issues.append("JWT_SECRET_KEY should be at least 32 characters for security")

    debug_mode = os.getenv('DEBUG', 'False').lower()
    if debug_mode in ('true', '1', 'yes'):
        issues.append("DEBUG mode is enabled - should be disabled in production")

    return len(issues) == 0, issues


def validate_database_config() -> Tuple[bool, List[str]]:
    """
    Validate the database URL.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []
    database_url = os.getenv('DATABASE_URL', '')

    if not database_url:
        issues.append("DATABASE_URL not set - using local SQLite database")
    elif database_url.startswith('sqlite') and os.getenv('FLASK_ENV') == 'production':
        issues.append("SQLite database configured in production")

    return len(issues) == 0, issues


def validate_schedule_config() -> Tuple[bool, List[str]]:
    """
    Validate the timezone and token verification settings.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    import pytz

    issues = []
    timezone_name = os.getenv('APP_TIMEZONE', 'UTC')
    if timezone_name not in pytz.all_timezones_set:
        issues.append(f"APP_TIMEZONE '{timezone_name}' is not a known timezone")

    ttl = os.getenv('TOKEN_VERIFY_TTL', '10')
    try:
        if float(ttl) <= 0:
            issues.append("TOKEN_VERIFY_TTL must be positive")
    except ValueError:
        issues.append(f"TOKEN_VERIFY_TTL '{ttl}' is not a number")

    return len(issues) == 0, issues


def check_production_readiness() -> Dict[str, Any]:
    """
    Run every validation and log the outcome.

    Returns:
        dict: Status information including issues

    Raises:
        ConfigValidationError: a setting the application cannot start without
            is invalid
    """
    debug_mode = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

    flask_valid, flask_issues = validate_flask_config()
    database_valid, database_issues = validate_database_config()
    schedule_valid, schedule_issues = validate_schedule_config()

    if not schedule_valid:
        raise ConfigValidationError('; '.join(schedule_issues))

    all_issues = flask_issues + database_issues
    result = {
        'production_ready': bool(not all_issues and not debug_mode),
        'debug_mode': debug_mode,
        'database_configured': database_valid,
        'issues': all_issues,
    }

    if result['production_ready']:
        logger.info("CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"CONFIG: Production readiness check FAILED - Issues: {len(all_issues)}")
        for issue in all_issues:
            logger.warning(f"CONFIG: Issue - {issue}")

    return result
