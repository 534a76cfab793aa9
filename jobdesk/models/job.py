"""Schedulable job definition model."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from jobdesk.core.datetime_utils import utc_now
from jobdesk.models.base import Base, TimestampMixin


class ScheduledJob(Base, TimestampMixin):
    """Durable definition of a named, cron-scheduled job."""

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    table_name: Mapped[str] = mapped_column(String(100), default="")
    schedule: Mapped[str] = mapped_column(String(100))
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        state = "enabled" if self.is_enabled else "disabled"
        return f"<ScheduledJob {self.name} '{self.schedule}' {state}>"
