from datetime import datetime, date
import pytz
from circulation.config import settings

LIBRARY_TZ = pytz.timezone(settings.library_timezone)

def now_local() -> datetime:
    """Get current datetime in the library's timezone."""
    return datetime.now(LIBRARY_TZ)

def today_local() -> date:
    """Calendar date at the library, used for due dates and overdue days."""
    return now_local().date()
