import os
from datetime import datetime, date
import pytz


def get_app_timezone():
    """Timezone used to decide what "today" means for schedules"""
    return pytz.timezone(os.environ.get('APP_TIMEZONE', 'UTC'))


def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return datetime.now(get_app_timezone()).replace(tzinfo=None)


def get_local_today() -> date:
    return get_local_time_naive().date()
