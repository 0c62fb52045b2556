"""
SQLAlchemy Type Decorators.

Provides timezone-normalised timestamps for every dialect.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    SQLAlchemy type that always stores and returns aware UTC datetimes.

    Usage in models:
        valued_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)

    Backends without native timezone support (SQLite) return naive values;
    those are re-tagged as UTC on the way out, so comparisons in Python
    never mix naive and aware datetimes.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self, **kwargs):
        super().__init__(timezone=True, **kwargs)

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        """Convert to UTC before storing."""
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        """Tag naive values as UTC when reading."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
