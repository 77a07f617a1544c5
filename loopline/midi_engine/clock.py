"""High-precision clock and wait helpers shared by the timeline and renderer."""

import platform
import threading
import time
from typing import Optional

from ..logging_config import get_logger

logger = get_logger(__name__)

NS_PER_MS = 1_000_000
NS_PER_SECOND = 1_000_000_000

# Use high-precision timer based on platform
if platform.system() == "Windows":
    _now = time.perf_counter_ns
    logger.debug("Using Windows high-precision timer (time.perf_counter_ns)")
else:  # Linux, macOS and others
    _now = time.monotonic_ns
    logger.debug("Using monotonic high-precision timer (time.monotonic_ns)")


def now_ns() -> int:
    """Current moment in nanoseconds; all engine timestamps use this clock."""
    return _now()


def ms_to_ns(ms: float) -> int:
    return int(round(ms * NS_PER_MS))


def wait_until(target_ns: int, interrupt: Optional[threading.Event] = None) -> bool:
    """High precision wait with an adaptive strategy.

    Long waits block on ``interrupt`` (when given) so that shutdown can cut
    them short; the final stretch is slept in shrinking chunks.

    Returns:
        False if the wait was interrupted, True once target_ns has passed
    """
    while True:
        remaining_ns = target_ns - now_ns()
        if remaining_ns <= 0:
            return True
        if interrupt is not None and interrupt.is_set():
            return False

        if remaining_ns > 10_000_000:  # More than 10ms remaining
            chunk = (remaining_ns - 5_000_000) / NS_PER_SECOND
            if interrupt is not None:
                if interrupt.wait(chunk):
                    return False
            else:
                time.sleep(chunk)
        elif remaining_ns > 1_000_000:  # 1-10ms remaining
            time.sleep(0.0005)
        elif remaining_ns > 100_000:  # 100us-1ms remaining
            time.sleep(0.00005)
        # else: busy wait for final <100us


def sleep_ns(duration_ns: int, interrupt: Optional[threading.Event] = None) -> bool:
    """Sleep for duration_ns using wait_until."""
    return wait_until(now_ns() + duration_ns, interrupt)
