"""Medication schedule time helpers.

Reminder times are stored as 12-hour strings ("08:00 am") in the configured local
timezone, which is what the users type and what the reminder job compares against.
"""

import re
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from saarthi.config import get_settings

_TIME_RE = re.compile(r"(\d+):(\d+)\s*([ap]m)")

FREQUENCY_TIMES_PER_DAY = {
    "daily": 1,
    "once daily": 1,
    "once a day": 1,
    "twice daily": 2,
    "daily twice": 2,
    "twice a day": 2,
    "thrice daily": 3,
    "three times daily": 3,
    "daily thrice": 3,
    "three times a day": 3,
    "four times daily": 4,
    "four times a day": 4,
    "every 6 hours": 4,
    "6 hourly": 4,
}


def local_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def standardize_time_format(time_string: str) -> str:
    """Normalize user-entered times to "HH:MM am/pm"."""
    if not time_string:
        return ""

    standardized = time_string.lower().replace(".", ":")
    standardized = re.sub(r"\s+", " ", standardized)
    standardized = re.sub(r"(\d+):(\d+)\s*([ap])[:\s]*m:*", r"\1:\2 \3m", standardized)
    standardized = standardized.strip()

    match = _TIME_RE.search(standardized)
    if match:
        hours, minutes, period = match.groups()
        standardized = f"{hours.zfill(2)}:{minutes.zfill(2)} {period}"
    return standardized


def is_valid_time(time_string: str) -> bool:
    """True for a 12-hour clock time such as "8:30 am" or "08.30PM"."""
    match = re.fullmatch(r"(\d{2}):(\d{2}) ([ap]m)", standardize_time_format(time_string))
    if not match:
        return False
    return 1 <= int(match.group(1)) <= 12 and int(match.group(2)) < 60


def current_local_time_string(now: datetime | None = None) -> str:
    """Current time in the configured timezone, in the stored reminder format."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(local_tz()).strftime("%I:%M %p").lower()


def times_per_day(frequency: str) -> int:
    frequency = (frequency or "").strip().lower()
    if frequency in FREQUENCY_TIMES_PER_DAY:
        return FREQUENCY_TIMES_PER_DAY[frequency]
    match = re.search(r"(\d+)\s*times", frequency)
    if match and int(match.group(1)) > 0:
        return int(match.group(1))
    return 1


def generate_reminder_times(base_time: str, frequency: str) -> list[str]:
    """Spread N reminders evenly over 24 hours starting from base_time."""
    base = standardize_time_format(base_time)
    reminder_times = [base]

    match = _TIME_RE.search(base)
    if not match:
        return reminder_times

    hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3)
    if period == "pm" and hour < 12:
        hour += 12
    elif period == "am" and hour == 12:
        hour = 0

    count = times_per_day(frequency)
    if count == 1:
        return reminder_times

    start = hour * 60 + minute
    step = (24 * 60) / count
    for i in range(1, count):
        total = int(start + i * step) % (24 * 60)
        h, m = divmod(total, 60)
        new_period = "pm" if h >= 12 else "am"
        h12 = h % 12 or 12
        reminder_times.append(f"{h12:02d}:{m:02d} {new_period}")

    return reminder_times


def calculate_end_date(duration: str | int | None, start: datetime | None = None) -> datetime | None:
    """End date for a duration in days; None for "ongoing" or unparseable input."""
    if duration is None:
        return None
    text = str(duration).strip().lower()
    if not text or text == "ongoing":
        return None
    match = re.match(r"\d+", text)
    if not match:
        return None
    start = start or datetime.now(timezone.utc)
    return start + timedelta(days=int(match.group(0)))


def parse_duration_days(duration: str) -> int | None:
    match = re.match(r"\d+", (duration or "").strip())
    return int(match.group(0)) if match else None


def format_date(value: datetime) -> str:
    """Format as "25 Jan 2025"."""
    return value.strftime("%d %b %Y")
