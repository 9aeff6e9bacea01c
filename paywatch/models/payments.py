from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paywatch.models.base import Base, CreatedAtMixin, new_uuid
from paywatch.models.companies import Company


class Payment(CreatedAtMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("payment_delay IS NULL OR payment_delay >= 0", name="ck_payments_delay_non_negative"),
        CheckConstraint("payment_amount IS NULL OR payment_amount >= 0", name="ck_payments_amount_non_negative"),
        Index("ix_payments_receiving_date", "receiving_date"),
        Index("ix_payments_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    agreement_day: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_delay: Mapped[int | None] = mapped_column(Integer, nullable=True)
    receiving_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    company_id: Mapped[str | None] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"), nullable=True
    )

    company: Mapped[Company | None] = relationship()

    @property
    def owner_user_id(self) -> str | None:
        # The company owner wins over the row's own user_id when both exist.
        if self.company is not None and self.company.user_id:
            return self.company.user_id
        return self.user_id or None
