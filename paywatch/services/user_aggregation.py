from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from paywatch.models.payments import Payment
from paywatch.services.identity_service import IdentityDirectory


@dataclass(frozen=True)
class UserAggregation:
    groups: dict[str, list[Payment]]
    emails: dict[str, str]
    unresolved_payments: list[Payment] = field(default_factory=list)

    @property
    def unresolved_count(self) -> int:
        return len(self.unresolved_payments)


def group_by_user(due_payments: Iterable[Payment]) -> tuple[dict[str, list[Payment]], list[Payment]]:
    """Group payments by owner; payments without any owner come back separately."""
    groups: dict[str, list[Payment]] = {}
    ownerless: list[Payment] = []
    for payment in due_payments:
        owner = payment.owner_user_id
        if not owner:
            ownerless.append(payment)
            continue
        groups.setdefault(owner, []).append(payment)
    return groups, ownerless


def resolve_emails(user_ids: Iterable[str], directory: IdentityDirectory) -> dict[str, str]:
    wanted = set(user_ids)
    if not wanted:
        return {}
    emails: dict[str, str] = {}
    for identity in directory.list_identities():
        if identity.id in wanted and identity.email:
            emails[identity.id] = identity.email
    return emails


def aggregate_due_payments(due_payments: Iterable[Payment], directory: IdentityDirectory) -> UserAggregation:
    groups, unresolved = group_by_user(due_payments)
    emails = resolve_emails(groups.keys(), directory)

    resolved_groups: dict[str, list[Payment]] = {}
    for user_id, payments in groups.items():
        if user_id in emails:
            resolved_groups[user_id] = payments
        else:
            unresolved.extend(payments)
    return UserAggregation(groups=resolved_groups, emails=emails, unresolved_payments=unresolved)
