from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload

from paywatch.models import Payment
from paywatch.services.companies_service import get_company_profile
from paywatch.services.due_dates import receiving_date_for


class PaymentValidationError(ValueError):
    pass


class PaymentNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class PaymentInput:
    company_name: str
    agreement_day: date
    payment_delay: int
    payment_amount: Decimal


def _validate(data: PaymentInput) -> None:
    if not data.company_name.strip():
        raise PaymentValidationError("company_name is required")
    if data.payment_delay < 0:
        raise PaymentValidationError("payment_delay must be non-negative")
    if data.payment_amount < 0:
        raise PaymentValidationError("payment_amount must be non-negative")


def list_payments(session: Session, *, user_id: str) -> list[Payment]:
    stmt = (
        select(Payment)
        .options(joinedload(Payment.company))
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(session.scalars(stmt).unique().all())


def get_payment(session: Session, *, user_id: str, payment_id: str) -> Payment:
    payment = session.scalars(
        select(Payment).where(Payment.id == payment_id, Payment.user_id == user_id)
    ).first()
    if payment is None:
        raise PaymentNotFoundError(f"Payment {payment_id} not found")
    return payment


def create_payment(session: Session, *, user_id: str, data: PaymentInput) -> Payment:
    _validate(data)
    company = get_company_profile(session, user_id=user_id)
    payment = Payment(
        user_id=user_id,
        company_name=data.company_name.strip(),
        agreement_day=data.agreement_day,
        payment_delay=data.payment_delay,
        receiving_date=receiving_date_for(data.agreement_day, data.payment_delay),
        payment_amount=data.payment_amount,
        company_id=None if company is None else company.id,
    )
    session.add(payment)
    session.commit()
    session.refresh(payment)
    return payment


def update_payment(session: Session, *, user_id: str, payment_id: str, data: PaymentInput) -> Payment:
    _validate(data)
    payment = get_payment(session, user_id=user_id, payment_id=payment_id)
    payment.company_name = data.company_name.strip()
    payment.agreement_day = data.agreement_day
    payment.payment_delay = data.payment_delay
    payment.receiving_date = receiving_date_for(data.agreement_day, data.payment_delay)
    payment.payment_amount = data.payment_amount
    session.commit()
    session.refresh(payment)
    return payment


def delete_payment(session: Session, *, user_id: str, payment_id: str) -> None:
    payment = get_payment(session, user_id=user_id, payment_id=payment_id)
    session.delete(payment)
    session.commit()


def delete_payments(session: Session, *, user_id: str, payment_ids: list[str]) -> int:
    if not payment_ids:
        return 0
    result = session.execute(
        delete(Payment).where(Payment.user_id == user_id, Payment.id.in_(payment_ids))
    )
    session.commit()
    return int(result.rowcount or 0)
