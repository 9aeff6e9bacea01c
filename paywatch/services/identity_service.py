from __future__ import annotations

import http.client
import json
import logging
from dataclasses import dataclass
from typing import Protocol
from urllib import error, parse, request

logger = logging.getLogger(__name__)

IDENTITY_PAGE_SIZE = 1000
IDENTITY_MAX_PAGES = 100


class IdentityLookupError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


@dataclass(frozen=True)
class Identity:
    id: str
    email: str | None


class IdentityDirectory(Protocol):
    def list_identities(self) -> list[Identity]: ...


def _parse_users(data: object) -> list[Identity]:
    if isinstance(data, dict):
        users = data.get("users")
    else:
        users = data
    if not isinstance(users, list):
        raise IdentityLookupError("Identity API returned an unexpected payload.")
    identities: list[Identity] = []
    for user in users:
        if not isinstance(user, dict) or not user.get("id"):
            continue
        email = str(user.get("email") or "").strip()
        identities.append(Identity(id=str(user["id"]), email=email or None))
    return identities


class SupabaseIdentityDirectory:
    """Bulk identity listing through the Supabase Auth admin API."""

    def __init__(
        self,
        *,
        base_url: str | None,
        service_role_key: str | None,
        timeout_seconds: float = 10.0,
        page_size: int = IDENTITY_PAGE_SIZE,
    ):
        self.base_url = (base_url or "").strip().rstrip("/")
        self.service_role_key = (service_role_key or "").strip()
        self.timeout_seconds = timeout_seconds
        self.page_size = page_size

    def _fetch_page(self, page: int) -> list[Identity]:
        query = parse.urlencode({"page": page, "per_page": self.page_size})
        req = request.Request(
            f"{self.base_url}/auth/v1/admin/users?{query}",
            headers={
                "apikey": self.service_role_key,
                "Authorization": f"Bearer {self.service_role_key}",
                "Accept": "application/json",
            },
            method="GET",
        )
        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:  # noqa: S310
                data = json.loads(response.read().decode("utf-8"))
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            retryable = exc.code == 429 or 500 <= exc.code <= 599
            raise IdentityLookupError(f"Identity API HTTP {exc.code}: {body}", retryable=retryable) from exc
        except error.URLError as exc:
            raise IdentityLookupError(f"Identity lookup failed: {exc.reason}", retryable=True) from exc
        except json.JSONDecodeError as exc:
            raise IdentityLookupError("Identity API returned invalid JSON.", retryable=True) from exc
        except (http.client.HTTPException, OSError) as exc:
            raise IdentityLookupError(f"Identity lookup failed: {exc!r}", retryable=True) from exc
        return _parse_users(data)

    def list_identities(self) -> list[Identity]:
        if not self.base_url:
            raise IdentityLookupError("SUPABASE_URL is not configured.")
        if not self.service_role_key:
            raise IdentityLookupError("SUPABASE_SERVICE_ROLE_KEY is not configured.")

        identities: list[Identity] = []
        for page in range(1, IDENTITY_MAX_PAGES + 1):
            batch = self._fetch_page(page)
            identities.extend(batch)
            if len(batch) < self.page_size:
                break
        else:
            logger.warning(
                "Identity listing stopped at page limit; later users are not resolved",
                extra={"max_pages": IDENTITY_MAX_PAGES, "identity_count": len(identities)},
            )
        return identities
