"""Wall-clock source for reservation deadlines.

Services take any zero-argument callable returning an aware UTC datetime,
so tests can substitute a controllable clock.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
