import os
from datetime import datetime, timezone
from typing import Optional

import pytz
from dotenv import load_dotenv

load_dotenv()

# Timezone in which "today" and the local transfer hour are evaluated
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "UTC")


def business_tz():
    return pytz.timezone(BUSINESS_TIMEZONE)


def as_utc(dt: Optional[datetime] = None) -> datetime:
    """Aware UTC datetime. Naive inputs are taken to already be UTC."""
    if dt is None:
        return datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db_time(dt: Optional[datetime] = None) -> datetime:
    """Naive UTC, the form stored in DateTime columns."""
    return as_utc(dt).replace(tzinfo=None)


def local_hour(dt: Optional[datetime] = None) -> int:
    return as_utc(dt).astimezone(business_tz()).hour


def start_of_business_day(dt: Optional[datetime] = None) -> datetime:
    tz = business_tz()
    local = as_utc(dt).astimezone(tz)
    midnight = tz.localize(datetime(local.year, local.month, local.day))
    return midnight.astimezone(pytz.utc).replace(tzinfo=None)
