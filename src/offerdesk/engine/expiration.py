"""Offer expiration: date + free-text time → instant, and countdown text.

Expiration is advisory. Nothing here raises on bad input; unparsable dates
yield no instant and a missing instant renders as "—".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from offerdesk.config import get_settings
from offerdesk.models import Offer, utcnow

PLACEHOLDER = "—"

# "5:00 p.m.", "5:00pm", "17:00", "12:30 AM"
_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(?:([ap])\.?\s*m\.?)?\s*$", re.IGNORECASE)

END_OF_DAY = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class Countdown:
    text: str
    expired: bool


def _resolve_tz(tz: tzinfo | str | None) -> tzinfo:
    if isinstance(tz, tzinfo):
        return tz
    name = tz or get_settings().timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def _coerce_date(value) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_time_of_day(text: str | None) -> time | None:
    """Parse "H:MM" with optional am/pm. None if absent or unparsable."""
    if not text:
        return None
    m = _TIME_RE.match(text)
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    meridiem = (m.group(3) or "").lower()
    if meridiem == "p" and hour < 12:
        hour += 12
    elif meridiem == "a" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def expiration_instant(exp_date, exp_time: str | None = None,
                       tz: tzinfo | str | None = None) -> datetime | None:
    """Combine an expiration date and time text into an aware instant.

    Without a usable time the offer runs to 23:59:59.999 on that date.
    """
    d = _coerce_date(exp_date)
    if d is None:
        return None
    t = parse_time_of_day(exp_time) or END_OF_DAY
    return datetime.combine(d, t, tzinfo=_resolve_tz(tz))


def offer_expiry(offer: Offer, tz: tzinfo | str | None = None) -> datetime | None:
    return expiration_instant(offer.offer_expiration_date, offer.offer_expiration_time, tz)


def is_offer_expired(offer: Offer, now: datetime | None = None,
                     tz: tzinfo | str | None = None) -> bool:
    expiry = offer_expiry(offer, tz)
    if expiry is None:
        return False
    return _aware(now or utcnow()) >= expiry


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def format_countdown(expiry: datetime | None, now: datetime | None = None) -> Countdown:
    if not isinstance(expiry, datetime):
        return Countdown(text=PLACEHOLDER, expired=False)
    now = _aware(now or utcnow())
    remaining = _aware(expiry) - now
    if remaining.total_seconds() <= 0:
        return Countdown(text="Expired", expired=True)

    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days >= 1:
        return Countdown(text=f"{days}d {hours}h {minutes}m", expired=False)
    if hours >= 1:
        return Countdown(text=f"{hours}h {minutes}m", expired=False)
    if minutes >= 1:
        return Countdown(text=f"{minutes}m", expired=False)
    return Countdown(text="< 1 min", expired=False)
