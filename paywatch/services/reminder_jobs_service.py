from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from paywatch.config import Settings
from paywatch.models import Payment, ReminderLog
from paywatch.services.due_selection import (
    count_divergent,
    diagnose_payments,
    select_due_today,
    select_legacy_due_today,
)
from paywatch.services.email_service import EmailDeliveryError, EmailMessage, EmailSender
from paywatch.services.identity_service import IdentityDirectory, IdentityLookupError
from paywatch.services.reminder_email import render_reminder
from paywatch.services.user_aggregation import aggregate_due_payments, resolve_emails

logger = logging.getLogger(__name__)


class ReminderRunError(RuntimeError):
    pass


@dataclass(frozen=True)
class ReminderDeliveryResult:
    user_id: str
    email: str
    payment_count: int
    success: bool
    result: dict[str, object] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "userId": self.user_id,
            "email": self.email,
            "paymentCount": self.payment_count,
            "success": self.success,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ReminderRunResult:
    run_date: date
    fetched_count: int
    due_count: int
    legacy_due_count: int
    divergent_count: int
    user_group_count: int
    unresolved_payment_count: int
    already_reminded_count: int
    results: list[ReminderDeliveryResult] = field(default_factory=list)

    @property
    def emails_sent(self) -> int:
        return sum(1 for row in self.results if row.success)

    @property
    def emails_failed(self) -> int:
        return sum(1 for row in self.results if not row.success)

    @property
    def message(self) -> str:
        if self.due_count == 0:
            return "No payments due today"
        return f"Processed {self.due_count} due payments for {self.user_group_count} users"

    def to_response(self) -> dict[str, object]:
        return {
            "success": True,
            "message": self.message,
            "count": self.due_count,
            "emailsSent": self.emails_sent,
            "emailsFailed": self.emails_failed,
            "results": [row.to_dict() for row in self.results],
            "runDate": self.run_date.isoformat(),
            "fetched": self.fetched_count,
            "dueToday": self.due_count,
            "dueTodayCalculated": self.legacy_due_count,
            "divergent": self.divergent_count,
            "userGroups": self.user_group_count,
            "unresolvedPayments": self.unresolved_payment_count,
            "alreadyReminded": self.already_reminded_count,
        }


def fetch_candidate_payments(session: Session, *, today: date) -> list[Payment]:
    stmt = (
        select(Payment)
        .options(joinedload(Payment.company))
        .where(Payment.receiving_date.is_not(None), Payment.receiving_date >= today)
        .order_by(Payment.receiving_date.asc(), Payment.created_at.asc(), Payment.id.asc())
    )
    return list(session.scalars(stmt).unique().all())


def already_reminded_payment_ids(session: Session, *, payment_ids: Iterable[str], bucket_date: date) -> set[str]:
    ids = list(payment_ids)
    if not ids:
        return set()
    rows = session.scalars(
        select(ReminderLog.payment_id).where(
            ReminderLog.bucket_date == bucket_date,
            ReminderLog.status == "sent",
            ReminderLog.payment_id.in_(ids),
        )
    ).all()
    return set(rows)


def record_reminders_sent(
    session: Session,
    *,
    payments: list[Payment],
    user_id: str,
    email: str,
    bucket_date: date,
    delivery_id: str | None = None,
) -> int:
    recorded = 0
    for payment in payments:
        session.add(
            ReminderLog(
                payment_id=payment.id,
                user_id=user_id,
                email=email,
                bucket_date=bucket_date,
                status="sent",
                delivery_id=delivery_id,
            )
        )
        try:
            session.commit()
            recorded += 1
        except IntegrityError:
            # Forced re-send; the first row for this bucket is kept.
            session.rollback()
    return recorded


def _dispatch_group(
    session: Session,
    *,
    user_id: str,
    email: str,
    payments: list[Payment],
    sender: EmailSender,
    from_email: str,
    today: date,
    sent_at: datetime,
) -> ReminderDeliveryResult:
    rendered = render_reminder(payments, sent_at=sent_at)
    message = EmailMessage(
        from_address=from_email,
        to=email,
        subject=rendered.subject,
        html=rendered.html,
        text=rendered.text,
    )
    try:
        sent = sender.send(message)
    except EmailDeliveryError as exc:
        logger.error(
            "Failed to send payment reminder",
            extra={"user_id": user_id, "payment_count": len(payments), "error": str(exc)},
        )
        return ReminderDeliveryResult(
            user_id=user_id,
            email=email,
            payment_count=len(payments),
            success=False,
            error=str(exc),
        )

    try:
        record_reminders_sent(
            session,
            payments=payments,
            user_id=user_id,
            email=email,
            bucket_date=today,
            delivery_id=sent.message_id,
        )
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "Payment reminder sent but not recorded in reminder log",
            extra={"user_id": user_id, "payment_count": len(payments)},
        )
    logger.info(
        "Payment reminder sent",
        extra={"user_id": user_id, "payment_count": len(payments), "total": str(rendered.total_amount)},
    )
    return ReminderDeliveryResult(
        user_id=user_id,
        email=email,
        payment_count=len(payments),
        success=True,
        result=sent.raw,
    )


def run_payment_reminders(
    session: Session,
    *,
    today: date,
    directory: IdentityDirectory,
    sender: EmailSender,
    from_email: str,
    now: datetime | None = None,
    force: bool = False,
) -> ReminderRunResult:
    logger.info("Checking for payments due", extra={"run_date": today.isoformat(), "force": force})
    try:
        payments = fetch_candidate_payments(session, today=today)
    except SQLAlchemyError as exc:
        raise ReminderRunError(f"Failed to fetch payments: {exc}") from exc

    due_payments = select_due_today(payments, today)
    legacy_due = select_legacy_due_today(payments, today)
    divergent = count_divergent(diagnose_payments(due_payments, today))
    if divergent:
        logger.info(
            "Stored receiving dates diverge from agreement-day calculation",
            extra={"divergent_count": divergent},
        )

    if not due_payments:
        return ReminderRunResult(
            run_date=today,
            fetched_count=len(payments),
            due_count=0,
            legacy_due_count=len(legacy_due),
            divergent_count=divergent,
            user_group_count=0,
            unresolved_payment_count=0,
            already_reminded_count=0,
        )

    try:
        aggregation = aggregate_due_payments(due_payments, directory)
    except IdentityLookupError as exc:
        raise ReminderRunError(f"Failed to resolve user emails: {exc}") from exc

    if aggregation.unresolved_count:
        logger.warning(
            "Due payments without a resolvable owner email",
            extra={"unresolved_count": aggregation.unresolved_count},
        )

    reminded: set[str] = set()
    if not force:
        reminded = already_reminded_payment_ids(
            session,
            payment_ids=[p.id for group in aggregation.groups.values() for p in group],
            bucket_date=today,
        )

    sent_at = now or datetime.now(timezone.utc)
    results: list[ReminderDeliveryResult] = []
    for user_id, user_payments in aggregation.groups.items():
        pending = [p for p in user_payments if p.id not in reminded]
        if not pending:
            logger.info("Reminder already sent today", extra={"user_id": user_id})
            continue
        results.append(
            _dispatch_group(
                session,
                user_id=user_id,
                email=aggregation.emails[user_id],
                payments=pending,
                sender=sender,
                from_email=from_email,
                today=today,
                sent_at=sent_at,
            )
        )

    result = ReminderRunResult(
        run_date=today,
        fetched_count=len(payments),
        due_count=len(due_payments),
        legacy_due_count=len(legacy_due),
        divergent_count=divergent,
        user_group_count=len(aggregation.groups),
        unresolved_payment_count=aggregation.unresolved_count,
        already_reminded_count=len(reminded),
        results=results,
    )
    logger.info(
        "Payment reminder run completed",
        extra={
            "due_count": result.due_count,
            "emails_sent": result.emails_sent,
            "emails_failed": result.emails_failed,
        },
    )
    return result


def _serialize_diagnostic(row) -> dict[str, object]:
    return {
        "id": row.id,
        "company_name": row.company_name,
        "amount": None if row.amount is None else str(row.amount),
        "agreement_day_db": None if row.agreement_day_db is None else row.agreement_day_db.isoformat(),
        "agreement_day_num_for_calc": row.agreement_day_num_for_calc,
        "payment_delay": row.payment_delay,
        "actual_receiving_date": None if row.actual_receiving_date is None else row.actual_receiving_date.isoformat(),
        "is_due_today_actual": row.is_due_today_actual,
        "calculated_due_date": None if row.calculated_due_date is None else row.calculated_due_date.isoformat(),
        "is_due_today_calculated": row.is_due_today_calculated,
        "diverges": row.diverges,
        "company_id": row.company_id,
        "company_user_id": row.company_user_id,
        "owner_user_id": row.owner_user_id,
    }


def build_debug_report(
    session: Session,
    *,
    today: date,
    directory: IdentityDirectory,
    settings: Settings,
    now: datetime | None = None,
) -> dict[str, object]:
    run_at = now or datetime.now(timezone.utc)
    try:
        payments = fetch_candidate_payments(session, today=today)
    except SQLAlchemyError as exc:
        raise ReminderRunError(f"Failed to fetch payments: {exc}") from exc

    diagnostics = diagnose_payments(payments, today)
    due_actual = [row for row in diagnostics if row.is_due_today_actual]
    due_calculated = [row for row in diagnostics if row.is_due_today_calculated]

    user_emails: dict[str, str] = {}
    owner_ids = {row.owner_user_id for row in due_actual if row.owner_user_id}
    if owner_ids:
        try:
            user_emails = resolve_emails(owner_ids, directory)
        except IdentityLookupError:
            logger.exception("Error fetching users for debug report")

    return {
        "success": True,
        "debug_info": {
            "run_timestamp": run_at.isoformat(),
            "current_date_iso": today.isoformat(),
            "timezone": settings.timezone,
            "total_payments_fetched": len(payments),
            "payments_due_today_actual": len(due_actual),
            "payments_due_today_calculated": len(due_calculated),
            "divergent_payments": count_divergent(diagnostics),
            "user_emails_found": len(user_emails),
        },
        "all_fetched_payments_with_debug_info": [_serialize_diagnostic(row) for row in diagnostics],
        "payments_actually_due_today": [_serialize_diagnostic(row) for row in due_actual],
        "payments_calculated_due_today": [_serialize_diagnostic(row) for row in due_calculated],
        "user_emails_map": user_emails,
        "environment_check": settings.environment_check(),
    }
