"""
Clocks used by the Humanmark client.

Two clocks, never mixed:
- wall-clock milliseconds, compared against token expiry (claims are in
  seconds, so always multiply by 1000 first)
- monotonic seconds, for retry budgets that must not jump with NTP
"""

from __future__ import annotations
import datetime as _dt
import time


def now_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


def monotonic() -> float:
    return time.monotonic()


def epoch_to_iso(seconds: int) -> str:
    """Render an epoch-seconds claim as ISO-8601 UTC with a Z suffix."""
    moment = _dt.datetime.fromtimestamp(seconds, tz=_dt.timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def now_iso() -> str:
    return epoch_to_iso(int(time.time()))
