import time
from datetime import datetime, timezone


def utc_timestamp(when=None):
    # RFC3339, second precision, always UTC
    when = when or datetime.now(timezone.utc)
    return when.strftime("%Y-%m-%dT%H:%M:%SZ")


def elapsed_ms(started):
    # started is a time.perf_counter() reading
    return round((time.perf_counter() - started) * 1000, 3)
