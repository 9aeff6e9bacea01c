from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from paywatch.models.payments import Payment
from paywatch.services.due_dates import is_due_today, legacy_due_date, normalize_iso_date


@dataclass(frozen=True)
class PaymentDiagnostic:
    id: str
    company_name: str
    amount: Decimal | None
    agreement_day_db: date | None
    agreement_day_num_for_calc: int | None
    payment_delay: int
    actual_receiving_date: date | None
    is_due_today_actual: bool
    calculated_due_date: date | None
    is_due_today_calculated: bool
    diverges: bool
    company_id: str | None
    company_user_id: str | None
    owner_user_id: str | None


def _payment_key(payment: Payment) -> object:
    return payment.id if payment.id is not None else id(payment)


def select_due_today(payments: Iterable[Payment], today: date) -> list[Payment]:
    selected: list[Payment] = []
    seen: set[object] = set()
    for payment in payments:
        key = _payment_key(payment)
        if key in seen:
            continue
        seen.add(key)
        if is_due_today(payment.receiving_date, today):
            selected.append(payment)
    return selected


def select_legacy_due_today(payments: Iterable[Payment], today: date) -> list[Payment]:
    """Payments the agreement_day + payment_delay recomputation considers due.

    Only used for parity reporting, never for dispatch.
    """
    selected: list[Payment] = []
    seen: set[object] = set()
    for payment in payments:
        key = _payment_key(payment)
        if key in seen:
            continue
        seen.add(key)
        if legacy_due_date(normalize_iso_date(payment.agreement_day), payment.payment_delay, today) == today:
            selected.append(payment)
    return selected


def diagnose_payment(payment: Payment, today: date) -> PaymentDiagnostic:
    agreement = normalize_iso_date(payment.agreement_day)
    receiving = normalize_iso_date(payment.receiving_date)
    delay = max(payment.payment_delay or 0, 0)
    calculated = legacy_due_date(agreement, delay, today)
    company = payment.company
    return PaymentDiagnostic(
        id=str(payment.id),
        company_name=payment.company_name,
        amount=None if payment.payment_amount is None else Decimal(str(payment.payment_amount)),
        agreement_day_db=agreement,
        agreement_day_num_for_calc=None if agreement is None else agreement.day,
        payment_delay=delay,
        actual_receiving_date=receiving,
        is_due_today_actual=is_due_today(receiving, today),
        calculated_due_date=calculated,
        is_due_today_calculated=calculated == today,
        diverges=receiving is not None and calculated is not None and receiving != calculated,
        company_id=None if company is None else company.id,
        company_user_id=None if company is None else company.user_id,
        owner_user_id=payment.owner_user_id,
    )


def diagnose_payments(payments: Iterable[Payment], today: date) -> list[PaymentDiagnostic]:
    return [diagnose_payment(payment, today) for payment in payments]


def count_divergent(diagnostics: Iterable[PaymentDiagnostic]) -> int:
    return sum(1 for row in diagnostics if row.diverges)
