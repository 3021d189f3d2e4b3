"""
Timestamp utilities:
- millisecond epoch timestamps (proof request signing)
- monotonic seconds (session timers)
"""

from __future__ import annotations
import time


def now_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def monotonic_s() -> float:
    """
    Monotonic seconds counter.
    Used for failure timeouts so wall-clock jumps do not shorten them.
    """
    return time.monotonic()
