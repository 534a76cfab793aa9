"""Job execution history model."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from jobdesk.models.base import Base, TimestampMixin


class JobStatus(str, enum.Enum):
    """Execution status of a single run."""

    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class JobLog(Base, TimestampMixin):
    """Records each execution attempt of a scheduled job."""

    __tablename__ = "job_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    job_id: Mapped[str] = mapped_column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"))
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            values_callable=lambda e: [x.value for x in e],
            name="jobstatus",
        ),
        default=JobStatus.RUNNING,
    )
    start_time: Mapped[datetime]
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # milliseconds
    records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<JobLog {self.job_id} {self.status.value} start={self.start_time}>"


# Latest-per-job lookups and history listing
Index("ix_job_logs_job_id_start_time", JobLog.job_id, JobLog.start_time.desc())
Index("ix_job_logs_start_time", JobLog.start_time)

# At most one unterminated run per job
Index(
    "uq_job_logs_running_job",
    JobLog.job_id,
    unique=True,
    postgresql_where=text("status = 'RUNNING'"),
    sqlite_where=text("status = 'RUNNING'"),
)
