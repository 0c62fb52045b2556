"""
Scope model.

A scope is the tenant boundary (a household): every entity, preference,
claim and ledger row belongs to exactly one scope.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class Scope(Base):
    """Tenant with an optional parameter overlay in ``config``."""

    __tablename__ = "scopes"

    # External platform identifier (e.g. workspace id)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Overrides for ScopeParameters, e.g. {"claim_min_votes": 3}
    config: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
    )
