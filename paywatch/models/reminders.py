from __future__ import annotations

from datetime import date

from sqlalchemy import Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from paywatch.models.base import Base, CreatedAtMixin


class ReminderLog(CreatedAtMixin, Base):
    __tablename__ = "reminder_log"
    __table_args__ = (
        UniqueConstraint("payment_id", "bucket_date", name="uq_reminder_log_payment_bucket"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    payment_id: Mapped[str] = mapped_column(ForeignKey("payments.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    bucket_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="sent")
    delivery_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
