from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paywatch.models import Company


class CompanyValidationError(ValueError):
    pass


def create_company(session: Session, *, user_id: str, name: str) -> Company:
    owner = user_id.strip()
    company_name = name.strip()
    if not owner:
        raise CompanyValidationError("user_id is required")
    if not company_name:
        raise CompanyValidationError("Company name is required")

    company = Company(user_id=owner, name=company_name)
    session.add(company)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise CompanyValidationError(f"A company already exists for user {owner}") from exc
    session.refresh(company)
    return company


def get_company_profile(session: Session, *, user_id: str) -> Company | None:
    return session.scalars(select(Company).where(Company.user_id == user_id)).first()
