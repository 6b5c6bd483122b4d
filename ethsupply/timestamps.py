"""Wall-clock helpers."""

import time


def get_timestamp() -> int:
    """Seconds since the Unix epoch."""
    return int(time.time())