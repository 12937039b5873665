from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]


def epoch_now() -> int:
    """Current time in whole epoch seconds."""
    return int(time.time())
