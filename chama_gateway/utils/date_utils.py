"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone

# Kenya does not observe DST
EAT = timezone(timedelta(hours=3), name="EAT")


def now_eat() -> datetime:
    return datetime.now(EAT)


def month_label(moment: datetime) -> str:
    """Contribution period label, e.g. 'October 2026'"""
    return moment.astimezone(EAT).strftime("%B %Y")


def gateway_timestamp(moment: datetime) -> str:
    """Daraja timestamp format YYYYMMDDHHMMSS in East Africa Time"""
    return moment.astimezone(EAT).strftime("%Y%m%d%H%M%S")
