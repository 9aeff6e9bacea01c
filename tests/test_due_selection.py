from __future__ import annotations

from datetime import date
from decimal import Decimal

from paywatch.models import Company, Payment
from paywatch.services.due_selection import (
    count_divergent,
    diagnose_payment,
    diagnose_payments,
    select_due_today,
    select_legacy_due_today,
)


TODAY = date(2025, 2, 2)


def _payment(payment_id: str, receiving_date: date | None, **overrides) -> Payment:
    values = {
        "id": payment_id,
        "user_id": "user-1",
        "company_name": f"Company {payment_id}",
        "agreement_day": date(2025, 1, 20),
        "payment_delay": 0,
        "receiving_date": receiving_date,
        "payment_amount": Decimal("10.00"),
    }
    values.update(overrides)
    return Payment(**values)


def test_selects_only_payments_received_today() -> None:
    payments = [
        _payment("p1", date(2025, 2, 2)),
        _payment("p2", date(2025, 2, 3)),
        _payment("p3", None),
        _payment("p4", date(2025, 2, 2)),
        _payment("p5", date(2025, 2, 1)),
    ]
    assert [p.id for p in select_due_today(payments, TODAY)] == ["p1", "p4"]


def test_same_payment_is_selected_once() -> None:
    due = _payment("p1", date(2025, 2, 2))
    duplicate_row = _payment("p1", date(2025, 2, 2))
    selected = select_due_today([due, due, duplicate_row], TODAY)
    assert selected == [due]


def test_selection_is_repeatable_and_does_not_mutate_input() -> None:
    payments = [_payment("p1", date(2025, 2, 2)), _payment("p2", None), _payment("p3", date(2025, 2, 2))]
    snapshot = [(p.id, p.receiving_date) for p in payments]

    first = select_due_today(payments, TODAY)
    second = select_due_today(payments, TODAY)

    assert first == second
    assert [(p.id, p.receiving_date) for p in payments] == snapshot


def test_legacy_selection_recomputes_from_agreement_day() -> None:
    # 2025-01-31 + 2 days stored as 2025-02-02; the agreement-day recomputation
    # for February lands on 2025-03-05 instead.
    stored = _payment("p1", date(2025, 2, 2), agreement_day=date(2025, 1, 31), payment_delay=2)
    legacy_only = _payment("p2", date(2025, 3, 2), agreement_day=date(2025, 1, 2), payment_delay=0)

    assert select_due_today([stored, legacy_only], TODAY) == [stored]
    assert select_legacy_due_today([stored, legacy_only], TODAY) == [legacy_only]


def test_diagnostics_flag_divergence_without_changing_selection() -> None:
    stored = _payment(
        "p1",
        date(2025, 2, 2),
        agreement_day=date(2025, 1, 31),
        payment_delay=2,
        company=Company(id="c1", user_id="owner-1", name="Acme"),
    )
    agreeing = _payment("p2", date(2025, 2, 10), agreement_day=date(2025, 1, 10), payment_delay=0)

    row = diagnose_payment(stored, TODAY)
    assert row.is_due_today_actual is True
    assert row.is_due_today_calculated is False
    assert row.calculated_due_date == date(2025, 3, 5)
    assert row.agreement_day_num_for_calc == 31
    assert row.diverges is True
    assert row.company_id == "c1"
    assert row.company_user_id == "owner-1"
    assert row.owner_user_id == "owner-1"

    diagnostics = diagnose_payments([stored, agreeing], TODAY)
    assert count_divergent(diagnostics) == 1
    assert diagnostics[1].company_id is None
    assert select_due_today([stored, agreeing], TODAY) == [stored]


def test_missing_dates_never_diverge() -> None:
    row = diagnose_payment(_payment("p1", None, agreement_day=None, payment_delay=None), TODAY)
    assert row.diverges is False
    assert row.calculated_due_date is None
    assert row.payment_delay == 0
