from __future__ import annotations

import http.client
import json
from dataclasses import dataclass
from typing import Protocol
from urllib import error, request


RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


@dataclass(frozen=True)
class EmailMessage:
    from_address: str
    to: str
    subject: str
    html: str
    text: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {"from": self.from_address, "to": self.to, "subject": self.subject, "html": self.html}
        if self.text:
            payload["text"] = self.text
        return payload


@dataclass(frozen=True)
class EmailSendResult:
    ok: bool
    message_id: str | None
    raw: dict[str, object]


class EmailSender(Protocol):
    def send(self, message: EmailMessage) -> EmailSendResult: ...


def send_resend_email(
    *,
    api_key: str | None,
    message: EmailMessage,
    endpoint: str = RESEND_API_URL,
    timeout_seconds: float = 10.0,
) -> EmailSendResult:
    key = (api_key or "").strip()
    if not key:
        raise EmailDeliveryError("RESEND_API_KEY is not configured.")
    if not message.to.strip():
        raise EmailDeliveryError("Recipient address is required.")

    req = request.Request(
        endpoint,
        data=json.dumps(message.to_payload()).encode("utf-8"),
        headers={
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        },
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout_seconds) as response:  # noqa: S310
            data = json.loads(response.read().decode("utf-8") or "{}")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        retryable = exc.code == 429 or 500 <= exc.code <= 599
        raise EmailDeliveryError(
            f"Email service error: {exc.code} - {body}",
            retryable=retryable,
            status_code=exc.code,
        ) from exc
    except error.URLError as exc:
        raise EmailDeliveryError(f"Email delivery failed: {exc.reason}", retryable=True) from exc
    except json.JSONDecodeError as exc:
        raise EmailDeliveryError("Email service returned invalid JSON.", retryable=True) from exc
    except (http.client.HTTPException, OSError) as exc:
        raise EmailDeliveryError(f"Email delivery failed: {exc!r}", retryable=True) from exc

    if not isinstance(data, dict):
        raise EmailDeliveryError("Email service returned an unexpected payload.")
    message_id = data.get("id")
    return EmailSendResult(ok=True, message_id=message_id if isinstance(message_id, str) else None, raw=data)


class ResendEmailSender:
    def __init__(self, *, api_key: str | None, timeout_seconds: float = 10.0):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def send(self, message: EmailMessage) -> EmailSendResult:
        return send_resend_email(api_key=self.api_key, message=message, timeout_seconds=self.timeout_seconds)
