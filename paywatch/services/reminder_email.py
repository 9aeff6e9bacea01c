from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from html import escape

from paywatch.models.payments import Payment
from paywatch.services.due_dates import normalize_iso_date, ordinal_suffix


CENTS = Decimal("0.01")
UNKNOWN_COMPANY = "Unknown Company"


@dataclass(frozen=True)
class RenderedReminder:
    subject: str
    html: str
    text: str
    total_amount: Decimal


def round_money(amount: Decimal | int | float | str | None) -> Decimal:
    if amount is None:
        return Decimal("0.00")
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal | int | float | str | None) -> str:
    return f"${round_money(amount):.2f}"


def total_amount(payments: list[Payment]) -> Decimal:
    # Sum at full precision, round once.
    raw = sum((Decimal(str(p.payment_amount)) for p in payments if p.payment_amount is not None), start=Decimal("0"))
    return round_money(raw)


def _company_label(payment: Payment) -> str:
    if payment.company is not None and payment.company.name:
        return payment.company.name
    return payment.company_name or UNKNOWN_COMPANY


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def build_subject(payments: list[Payment], total: Decimal) -> str:
    label = "Payment" if len(payments) == 1 else f"{len(payments)} Payments"
    return f"💰 {label} Due Today - {format_money(total)}"


def _detail_lines(payment: Payment) -> list[tuple[str, str]]:
    agreement = normalize_iso_date(payment.agreement_day)
    due = normalize_iso_date(payment.receiving_date)
    delay = payment.payment_delay or 0
    rows = [("Due Date", due.isoformat() if due else "n/a")]
    if agreement is not None:
        rows.append(("Agreement Day", f"{agreement.day}{ordinal_suffix(agreement.day)} of each month"))
    if delay > 0:
        rows.append(("Payment Delay", f"{delay} {_plural(delay, 'day')}"))
    return rows


def _render_payment_html(payment: Payment) -> str:
    details = "".join(
        f"<div><strong>{escape(label)}:</strong> {escape(value)}</div>" for label, value in _detail_lines(payment)
    )
    return (
        '<div style="border: 1px solid #e0e0e0; border-radius: 8px; padding: 15px; '
        'margin-bottom: 15px; background: #fafafa;">'
        f'<div style="font-weight: bold; font-size: 18px; color: #2c3e50;">{escape(_company_label(payment))}</div>'
        f'<div style="font-size: 24px; font-weight: bold; color: #dc3545;">'
        f"{escape(format_money(payment.payment_amount))}</div>"
        f'<div style="color: #666; font-size: 14px;">{details}</div>'
        "</div>"
    )


def render_reminder(payments: list[Payment], *, sent_at: datetime) -> RenderedReminder:
    if not payments:
        raise ValueError("Cannot render a reminder without payments")

    count = len(payments)
    total = total_amount(payments)
    noun = _plural(count, "payment")
    sent_label = f"{sent_at.date().isoformat()} at {sent_at.strftime('%H:%M:%S')}"

    html = (
        "<!DOCTYPE html>"
        '<html><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0"></head>'
        '<body style="font-family: -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif; '
        'color: #333; background-color: #f5f5f5;">'
        '<div style="max-width: 600px; margin: 0 auto; background: white;">'
        '<div style="background: #667eea; color: white; padding: 30px 20px; text-align: center;">'
        f"<h1>🔔 {'Payment' if count == 1 else 'Payments'} Due Today</h1>"
        f"<p>You have {count} {noun} due today</p>"
        "</div>"
        '<div style="padding: 30px 20px;">'
        '<div style="text-align: center;">'
        f'<div style="font-size: 32px; font-weight: bold; color: #dc3545;">{escape(format_money(total))}</div>'
        f"<div>Total amount due from {count} {noun}</div>"
        "</div>"
        "<h2>Payment Details</h2>"
        f"{''.join(_render_payment_html(payment) for payment in payments)}"
        "</div>"
        '<div style="padding: 20px; text-align: center; font-size: 14px; color: #666;">'
        "<p><strong>Important:</strong> This is an automated reminder from your payment tracking system.</p>"
        "<p>Please ensure these payments are processed today to avoid any delays.</p>"
        f'<p style="font-size: 12px; color: #999;">Sent on {escape(sent_label)}</p>'
        "</div></div></body></html>"
    )

    text_lines = [
        f"You have {count} {noun} due today.",
        f"Total: {format_money(total)}",
        "",
    ]
    for payment in payments:
        text_lines.append(f"- {_company_label(payment)}: {format_money(payment.payment_amount)}")
        text_lines.extend(f"  {label}: {value}" for label, value in _detail_lines(payment))
    text_lines.extend(["", f"Sent on {sent_label}"])

    return RenderedReminder(
        subject=build_subject(payments, total),
        html=html,
        text="\n".join(text_lines),
        total_amount=total,
    )
