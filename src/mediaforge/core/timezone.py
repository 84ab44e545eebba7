"""UTC timezone enforcement and timestamp helper.

Sets the TZ environment variable to UTC so database sessions and log
timestamps agree, and provides the naive-UTC ``utcnow`` used for every
persisted timestamp.
"""

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (columns are timezone-less)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
