"""
Timestamp helpers shared by the models.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current time, used as the Python-side column default."""
    return datetime.now(timezone.utc)
