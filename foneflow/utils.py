import html
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

import bleach


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize a user-supplied string before it is stored.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Undoes the entity escaping bleach applies, so "A&B" stays "A&B"
    - Trims whitespace
    """
    if value is None:
        return ""
    # remove NULL bytes
    val = value.replace("\x00", "")
    # strip tags
    val = bleach.clean(val, tags=[], strip=True)
    return html.unescape(val).strip()


# Business rule: money is stored rounded to 2 decimals

def round_amount(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_instant(value: Any) -> datetime:
    """Collapse any supported time representation into a naive UTC datetime.

    Accepts datetimes (aware ones are converted to UTC), plain dates
    (midnight), ISO-8601 strings, epoch seconds and hosted-store timestamp
    mappings of the form ``{"seconds": ..., "nanoseconds": ...}``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        raise ValueError(f"unsupported time value: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, dict) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1_000_000_000
        return to_instant(seconds)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_instant(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"invalid datetime: {value!r}") from None
    raise ValueError(f"unsupported time value: {value!r}")
