from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from spendlens.core.models import Base, Timestamped, UUIDPrimaryKey


class InsightsState(UUIDPrimaryKey, Timestamped, Base):
    """Last analysis snapshot plus the bookkeeping the scheduler decides from. One row per name."""

    __tablename__ = "insights_state"

    name: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    snapshot_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_record_count: Mapped[int] = mapped_column(Integer, default=0)
