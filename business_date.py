"""
Business date policy for the Stock Order Bot
Turns are attributed to the previous day until the cutoff hour
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import Config

DATE_FORMAT = "%Y/%m/%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def local_now(now: Optional[datetime] = None, utc_offset_hours: int = None) -> datetime:
    """
    Convert a moment to the fixed local offset

    Args:
        now: Aware datetime (naive values are taken as UTC, defaults to now)
        utc_offset_hours: Fixed offset of the shop's local time

    Returns:
        Aware datetime in the local offset
    """
    if utc_offset_hours is None:
        utc_offset_hours = Config.UTC_OFFSET_HOURS
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone(timedelta(hours=utc_offset_hours)))


def business_date(now: Optional[datetime] = None, cutoff_hour: int = None,
                  utc_offset_hours: int = None) -> str:
    """
    Compute the business date a conversation turn applies to

    Args:
        now: Moment of the turn (defaults to now)
        cutoff_hour: Local hour before which the previous day is used
        utc_offset_hours: Fixed offset of the shop's local time

    Returns:
        Date string such as '2024/05/01'
    """
    if cutoff_hour is None:
        cutoff_hour = Config.CUTOFF_HOUR
    local = local_now(now, utc_offset_hours)
    if local.hour < cutoff_hour:
        local = local - timedelta(days=1)
    return local.strftime(DATE_FORMAT)


def local_timestamp(now: Optional[datetime] = None, utc_offset_hours: int = None) -> str:
    """Format a moment as a local timestamp for the audit log"""
    return local_now(now, utc_offset_hours).strftime(TIMESTAMP_FORMAT)
