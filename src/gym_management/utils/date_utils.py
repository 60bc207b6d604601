"""
Date arithmetic for memberships, bookings and class recurrences.

All functions take and return timezone-aware datetimes. Naive inputs are treated as UTC. Wall-clock
values that come from the gym's local time (VNPay pay dates, class recurrence times) are interpreted
in `GYM_TIMEZONE` and converted to UTC.
"""

import calendar
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

GYM_TIMEZONE = ZoneInfo("Asia/Ho_Chi_Minh")
ONE_DAY = timedelta(days=1)
BOOKING_CANCEL_CUTOFF = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def count_remaining_days(end_date: Optional[datetime], now: Optional[datetime] = None) -> int:
    """
    Whole days left until `end_date`, rounded up.

    Returns 0 when `end_date` is missing or at/before `now`; otherwise
    `ceil((end_date - now) / 1 day)`.
    """
    if end_date is None:
        return 0
    now = ensure_aware(now or utc_now())
    diff = ensure_aware(end_date) - now
    if diff <= timedelta(0):
        return 0
    return math.ceil(diff / ONE_DAY)


def calculate_end_date(start_date: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the length of the target month (Jan 31 + 1 = Feb 28/29)."""
    if months < 0:
        raise ValueError("months must be non-negative")
    month_index = start_date.month - 1 + months
    year = start_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return start_date.replace(year=year, month=month, day=day)


def calculate_discounted_price(price: int, discount: float) -> Dict[str, int]:
    """
    Apply a percentage discount.

    Raises:
        ValueError: If the discount is outside 0..100 or the price is negative.
    """
    if price < 0:
        raise ValueError("price must be non-negative")
    if discount < 0 or discount > 100:
        raise ValueError("discount must be between 0 and 100")
    discount_amount = round(price * discount / 100)
    return {"final_price": price - discount_amount, "discount_amount": discount_amount}


def parse_vnpay_pay_date(value: str) -> datetime:
    """Parse VNPay's `yyyyMMddHHmmss` pay date (GMT+7) into an aware UTC datetime."""
    if not value or len(value) != 14 or not value.isdigit():
        raise ValueError(f"Invalid vnp_PayDate format: {value!r}")
    local = datetime.strptime(value, "%Y%m%d%H%M%S").replace(tzinfo=GYM_TIMEZONE)
    return local.astimezone(timezone.utc)


def format_vnpay_date(value: datetime) -> str:
    return ensure_aware(value).astimezone(GYM_TIMEZONE).strftime("%Y%m%d%H%M%S")


def can_cancel_booking_at(start_time: datetime, now: Optional[datetime] = None) -> bool:
    """A booking may be cancelled only while more than an hour remains before it starts."""
    now = ensure_aware(now or utc_now())
    return ensure_aware(start_time) - now > BOOKING_CANCEL_CUTOFF


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap: back-to-back windows do not overlap."""
    return ensure_aware(start_a) < ensure_aware(end_b) and ensure_aware(end_a) > ensure_aware(start_b)


def _local_datetime(day: date, clock: Mapping[str, Any], tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(int(clock["hour"]), int(clock.get("minute", 0))), tzinfo=tz)


def generate_class_sessions(
    gym_class: Mapping[str, Any],
    now: Optional[datetime] = None,
    tz: ZoneInfo = GYM_TIMEZONE,
) -> List[Dict[str, Any]]:
    """
    Expand a class's weekly recurrence into concrete sessions.

    Each recurrence rule has `day_of_week` (Monday is 0), `start_time`/`end_time` as
    `{hour, minute}` in the gym's local time, and an optional `room_id`. Sessions are produced for
    every matching day between the class start and end dates (inclusive); only sessions starting
    after `now` are kept. Returned dicts carry everything but `_id`.
    """
    now = ensure_aware(now or utc_now())
    first_day = ensure_aware(gym_class["start_date"]).astimezone(tz).date()
    last_day = ensure_aware(gym_class["end_date"]).astimezone(tz).date()
    rules = gym_class.get("recurrence") or []

    sessions = []
    day = first_day
    while day <= last_day:
        for rule in rules:
            if rule["day_of_week"] != day.weekday():
                continue
            start = _local_datetime(day, rule["start_time"], tz)
            end = _local_datetime(day, rule["end_time"], tz)
            if end <= start or start <= now:
                continue
            sessions.append(
                {
                    "class_id": gym_class["_id"],
                    "room_id": rule.get("room_id"),
                    "start_time": start.astimezone(timezone.utc),
                    "end_time": end.astimezone(timezone.utc),
                    "hours": (end - start) / timedelta(hours=1),
                    "title": gym_class.get("name", ""),
                    "trainers": list(gym_class.get("trainers") or []),
                    "users": [],
                    "destroyed": False,
                }
            )
        day += ONE_DAY
    sessions.sort(key=lambda s: s["start_time"])
    return sessions


def day_bounds(value: datetime, tz: ZoneInfo = GYM_TIMEZONE) -> tuple:
    """Start (inclusive) and end (exclusive) of the local calendar day containing `value`, in UTC."""
    local_day = ensure_aware(value).astimezone(tz).date()
    start = datetime.combine(local_day, time(0), tzinfo=tz)
    return start.astimezone(timezone.utc), (start + ONE_DAY).astimezone(timezone.utc)
