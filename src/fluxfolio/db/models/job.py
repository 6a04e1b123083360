"""Job table."""

from sqlalchemy import JSON, Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fluxfolio.db.base import Base, TimestampMixin


class JobRow(Base, TimestampMixin):
    __tablename__ = "jobs"

    job_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(128), ForeignKey("users.user_id"), nullable=True, index=True)
    # JSON-encoded array of {name, status, message?}
    steps: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    external_run_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    return_value: Mapped[dict | list | str | None] = mapped_column(JSON, nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
