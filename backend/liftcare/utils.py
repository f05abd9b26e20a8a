from __future__ import annotations

import datetime as dt
import math
import secrets
import string
from typing import List

PASSWORD_ALPHABET = string.ascii_letters + string.digits


def generate_random_password(length: int = 10) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def round_minutes(delta: dt.timedelta) -> int:
    """Whole minutes in ``delta``, halves rounded towards positive infinity."""
    return math.floor(delta.total_seconds() / 60 + 0.5)


def minutes_to_hours(minutes: int) -> float:
    return round(minutes / 60, 2)


def wrap_text(text: str, width: int) -> List[str]:
    words = text.split()
    if not words:
        return [""]
    lines: List[str] = []
    current = words[0]
    for word in words[1:]:
        tentative = f"{current} {word}"
        if len(tentative) > width:
            lines.append(current)
            current = word
        else:
            current = tentative
    lines.append(current)
    return lines


def week_start(day: dt.date) -> dt.date:
    # weeks start on Sunday
    return day - dt.timedelta(days=(day.weekday() + 1) % 7)
