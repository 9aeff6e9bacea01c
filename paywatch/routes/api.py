from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paywatch.config import Settings
from paywatch.db import get_db_session
from paywatch.models import Company, Payment
from paywatch.services.companies_service import CompanyValidationError, create_company, get_company_profile
from paywatch.services.due_dates import now_in_zone
from paywatch.services.email_service import EmailSender, ResendEmailSender
from paywatch.services.identity_service import IdentityDirectory, SupabaseIdentityDirectory
from paywatch.services.payments_service import (
    PaymentInput,
    PaymentNotFoundError,
    PaymentValidationError,
    create_payment,
    delete_payment,
    delete_payments,
    list_payments,
    update_payment,
)
from paywatch.services.reminder_jobs_service import ReminderRunError, build_debug_report, run_payment_reminders

logger = logging.getLogger(__name__)

api_router = APIRouter(tags=["api"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_identity_directory(settings: Settings = Depends(get_app_settings)) -> IdentityDirectory:
    return SupabaseIdentityDirectory(
        base_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout_seconds=settings.identity_timeout_seconds,
    )


def get_email_sender(settings: Settings = Depends(get_app_settings)) -> EmailSender:
    return ResendEmailSender(api_key=settings.resend_api_key, timeout_seconds=settings.email_timeout_seconds)


def get_current_user_id(x_user_id: str = Header(min_length=1, max_length=64)) -> str:
    return x_user_id.strip()


class CompanyCreateRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)


class CompanyResponse(BaseModel):
    id: str
    user_id: str
    name: str
    created_at: datetime

    @classmethod
    def from_model(cls, company: Company) -> "CompanyResponse":
        return cls(id=company.id, user_id=company.user_id, name=company.name, created_at=company.created_at)


class PaymentRequest(BaseModel):
    company_name: str = Field(min_length=1, max_length=255)
    agreement_day: date
    payment_delay: int = Field(ge=0, le=3650)
    payment_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)

    def to_input(self) -> PaymentInput:
        return PaymentInput(
            company_name=self.company_name,
            agreement_day=self.agreement_day,
            payment_delay=self.payment_delay,
            payment_amount=self.payment_amount,
        )


class PaymentResponse(BaseModel):
    id: str
    user_id: str
    company_name: str
    agreement_day: date | None
    payment_delay: int | None
    receiving_date: date | None
    payment_amount: Decimal | None
    created_at: datetime
    company_id: str | None

    @classmethod
    def from_model(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            user_id=payment.user_id,
            company_name=payment.company_name,
            agreement_day=payment.agreement_day,
            payment_delay=payment.payment_delay,
            receiving_date=payment.receiving_date,
            payment_amount=None if payment.payment_amount is None else Decimal(str(payment.payment_amount)),
            created_at=payment.created_at,
            company_id=payment.company_id,
        )


class BatchDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


def _cors_json(content: dict[str, object], status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


def _preflight() -> Response:
    return Response(content="", status_code=200, headers=CORS_HEADERS)


async def reminders_validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    response = await request_validation_exception_handler(request, exc)
    if request.url.path.startswith("/api/reminders/"):
        response.headers.update(CORS_HEADERS)
    return response


@api_router.get("/health")
def health_check(db: Session = Depends(get_db_session)) -> dict[str, str]:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="database unavailable") from exc
    return {"status": "ok"}


@api_router.api_route("/ping", methods=["GET", "POST"])
def ping(request: Request) -> JSONResponse:
    return _cors_json(
        {
            "message": "Hello from PayWatch!",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": request.method,
        }
    )


@api_router.post("/companies", response_model=CompanyResponse, status_code=201)
def companies_create(payload: CompanyCreateRequest, db: Session = Depends(get_db_session)) -> CompanyResponse:
    try:
        company = create_company(db, user_id=payload.user_id, name=payload.name)
    except CompanyValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CompanyResponse.from_model(company)


@api_router.get("/companies/me", response_model=CompanyResponse)
def companies_me(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> CompanyResponse:
    company = get_company_profile(db, user_id=user_id)
    if company is None:
        raise HTTPException(status_code=404, detail="Company profile not found")
    return CompanyResponse.from_model(company)


@api_router.get("/payments", response_model=list[PaymentResponse])
def payments_list(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> list[PaymentResponse]:
    return [PaymentResponse.from_model(payment) for payment in list_payments(db, user_id=user_id)]


@api_router.post("/payments", response_model=PaymentResponse, status_code=201)
def payments_create(
    payload: PaymentRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> PaymentResponse:
    try:
        payment = create_payment(db, user_id=user_id, data=payload.to_input())
    except PaymentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return PaymentResponse.from_model(payment)


@api_router.put("/payments/{payment_id}", response_model=PaymentResponse)
def payments_update(
    payment_id: str,
    payload: PaymentRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> PaymentResponse:
    try:
        payment = update_payment(db, user_id=user_id, payment_id=payment_id, data=payload.to_input())
    except PaymentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PaymentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return PaymentResponse.from_model(payment)


@api_router.delete("/payments/{payment_id}", status_code=204)
def payments_delete(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> Response:
    try:
        delete_payment(db, user_id=user_id, payment_id=payment_id)
    except PaymentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@api_router.post("/payments/delete")
def payments_delete_batch(
    payload: BatchDeleteRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> dict[str, int]:
    return {"deleted": delete_payments(db, user_id=user_id, payment_ids=payload.ids)}


@api_router.api_route("/reminders/send", methods=["GET", "POST", "OPTIONS"])
def send_payment_reminders_api(
    request: Request,
    today: date | None = Query(default=None),
    force: bool = Query(default=False),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    directory: IdentityDirectory = Depends(get_identity_directory),
    sender: EmailSender = Depends(get_email_sender),
) -> Response:
    if request.method == "OPTIONS":
        return _preflight()
    now = now_in_zone(settings.timezone)
    try:
        result = run_payment_reminders(
            db,
            today=today or now.date(),
            directory=directory,
            sender=sender,
            from_email=settings.from_email,
            now=now,
            force=force,
        )
    except ReminderRunError as exc:
        logger.exception("Error in send-payment-reminders run")
        return _cors_json({"success": False, "error": str(exc)}, status_code=500)
    return _cors_json(result.to_response())


@api_router.api_route("/reminders/debug", methods=["GET", "POST", "OPTIONS"])
def debug_payment_reminders_api(
    request: Request,
    today: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    directory: IdentityDirectory = Depends(get_identity_directory),
) -> Response:
    if request.method == "OPTIONS":
        return _preflight()
    now = now_in_zone(settings.timezone)
    try:
        report = build_debug_report(
            db,
            today=today or now.date(),
            directory=directory,
            settings=settings,
            now=now,
        )
    except ReminderRunError as exc:
        logger.exception("Error in debug-payment-reminders run")
        return _cors_json({"success": False, "error": str(exc)}, status_code=500)
    return _cors_json(report)
