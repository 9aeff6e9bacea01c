from __future__ import annotations

from fastapi.testclient import TestClient

from paywatch.config import Settings
from paywatch.main import create_app
from paywatch.models.base import Base
from paywatch.routes.api import get_email_sender, get_identity_directory
from paywatch.services.identity_service import Identity
from tests.fakes import FakeDirectory, FakeSender


def _make_app(
    tmp_path,
    *,
    directory: FakeDirectory,
    sender: FakeSender | None = None,
    create_tables: bool = True,
):
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        timezone="UTC",
        supabase_url="https://project.supabase.co",
        supabase_service_role_key="service-key",
        resend_api_key="re_key",
        from_email="reminders@example.com",
        email_timeout_seconds=5.0,
        identity_timeout_seconds=5.0,
        app_host="127.0.0.1",
        app_port=8000,
        sqlite_busy_timeout_ms=1000,
        from_email_configured=True,
    )
    app = create_app(settings)
    if create_tables:
        Base.metadata.create_all(app.state.engine)
    app.dependency_overrides[get_identity_directory] = lambda: directory
    if sender is not None:
        app.dependency_overrides[get_email_sender] = lambda: sender
    return app


def test_payment_crud_and_reminder_run(tmp_path) -> None:
    directory = FakeDirectory([Identity(id="u1", email="owner@example.com")])
    sender = FakeSender()
    app = _make_app(tmp_path, directory=directory, sender=sender)
    headers = {"X-User-Id": "u1"}

    with TestClient(app) as client:
        assert client.get("/api/health").json() == {"status": "ok"}

        company = client.post("/api/companies", json={"user_id": "u1", "name": "Acme"})
        assert company.status_code == 201
        company_id = company.json()["id"]
        assert client.get("/api/companies/me", headers=headers).json()["name"] == "Acme"
        assert client.get("/api/companies/me", headers={"X-User-Id": "nobody"}).status_code == 404

        created = client.post(
            "/api/payments",
            headers=headers,
            json={
                "company_name": "Northwind",
                "agreement_day": "2025-01-31",
                "payment_delay": 2,
                "payment_amount": "250.50",
            },
        )
        assert created.status_code == 201
        payment = created.json()
        assert payment["receiving_date"] == "2025-02-02"
        assert payment["company_id"] == company_id
        assert payment["user_id"] == "u1"

        extra = client.post(
            "/api/payments",
            headers=headers,
            json={
                "company_name": "Contoso",
                "agreement_day": "2025-02-01",
                "payment_delay": 0,
                "payment_amount": "10.00",
            },
        ).json()

        listed = client.get("/api/payments", headers=headers)
        assert listed.status_code == 200
        assert {row["id"] for row in listed.json()} == {payment["id"], extra["id"]}
        assert client.get("/api/payments", headers={"X-User-Id": "u2"}).json() == []

        updated = client.put(
            f"/api/payments/{extra['id']}",
            headers=headers,
            json={
                "company_name": "Contoso",
                "agreement_day": "2025-01-28",
                "payment_delay": 5,
                "payment_amount": "12.25",
            },
        )
        assert updated.status_code == 200
        assert updated.json()["receiving_date"] == "2025-02-02"

        run = client.post("/api/reminders/send", params={"today": "2025-02-02"})
        assert run.status_code == 200
        assert run.headers["access-control-allow-origin"] == "*"
        body = run.json()
        assert body["success"] is True
        assert body["emailsSent"] == 1
        assert body["emailsFailed"] == 0
        assert body["message"] == "Processed 2 due payments for 1 users"
        assert body["results"][0]["paymentCount"] == 2
        assert sender.sent[0].subject == "💰 2 Payments Due Today - $262.75"

        rerun = client.get("/api/reminders/send", params={"today": "2025-02-02"}).json()
        assert rerun["emailsSent"] == 0
        assert rerun["alreadyReminded"] == 2

        forced = client.get("/api/reminders/send", params={"today": "2025-02-02", "force": "true"}).json()
        assert forced["emailsSent"] == 1

        assert client.delete(f"/api/payments/{extra['id']}", headers=headers).status_code == 204
        assert client.delete(f"/api/payments/{extra['id']}", headers=headers).status_code == 404
        batch = client.post("/api/payments/delete", headers=headers, json={"ids": [payment["id"]]})
        assert batch.json() == {"deleted": 1}
        assert client.get("/api/payments", headers=headers).json() == []


def test_payment_requests_are_validated(tmp_path) -> None:
    app = _make_app(tmp_path, directory=FakeDirectory())
    with TestClient(app) as client:
        missing_user = client.get("/api/payments")
        assert missing_user.status_code == 422

        negative = client.post(
            "/api/payments",
            headers={"X-User-Id": "u1"},
            json={
                "company_name": "Northwind",
                "agreement_day": "2025-01-31",
                "payment_delay": -1,
                "payment_amount": "10.00",
            },
        )
        assert negative.status_code == 422

        missing = client.put(
            "/api/payments/does-not-exist",
            headers={"X-User-Id": "u1"},
            json={
                "company_name": "Northwind",
                "agreement_day": "2025-01-31",
                "payment_delay": 1,
                "payment_amount": "10.00",
            },
        )
        assert missing.status_code == 404


def test_reminder_preflight_and_fatal_failure(tmp_path) -> None:
    directory = FakeDirectory(error="Identity API HTTP 500: down")
    sender = FakeSender()
    app = _make_app(tmp_path, directory=directory, sender=sender)
    headers = {"X-User-Id": "u1"}

    with TestClient(app) as client:
        preflight = client.options("/api/reminders/send")
        assert preflight.status_code == 200
        assert preflight.text == ""
        assert preflight.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

        client.post(
            "/api/payments",
            headers=headers,
            json={
                "company_name": "Northwind",
                "agreement_day": "2025-02-02",
                "payment_delay": 0,
                "payment_amount": "5.00",
            },
        )

        failed = client.post("/api/reminders/send", params={"today": "2025-02-02"})
        assert failed.status_code == 500
        assert failed.json() == {
            "success": False,
            "error": "Failed to resolve user emails: Identity API HTTP 500: down",
        }
        assert sender.attempts == []

        quiet = client.post("/api/reminders/send", params={"today": "2025-03-01"})
        assert quiet.status_code == 200
        assert quiet.json()["message"] == "No payments due today"

        debug = client.get("/api/reminders/debug", params={"today": "2025-02-02"})
        assert debug.status_code == 200
        payload = debug.json()
        assert payload["debug_info"]["payments_due_today_actual"] == 1
        assert payload["user_emails_map"] == {}
        assert payload["environment_check"]["has_resend_key"] is True
        assert client.options("/api/reminders/debug").status_code == 200


def test_ping_and_request_id(tmp_path) -> None:
    app = _make_app(tmp_path, directory=FakeDirectory())
    with TestClient(app) as client:
        response = client.get("/api/ping", headers={"X-Request-ID": "req-42"})
        assert response.status_code == 200
        assert response.json()["method"] == "GET"
        assert response.json()["message"] == "Hello from PayWatch!"
        assert response.headers["x-request-id"] == "req-42"


def test_reminder_run_reports_database_failure_as_json(tmp_path) -> None:
    sender = FakeSender()
    app = _make_app(tmp_path, directory=FakeDirectory(), sender=sender, create_tables=False)

    with TestClient(app) as client:
        for path in ("/api/reminders/send", "/api/reminders/debug"):
            response = client.post(path, params={"today": "2025-02-02"})
            assert response.status_code == 500
            assert response.headers["access-control-allow-origin"] == "*"
            body = response.json()
            assert body["success"] is False
            assert body["error"].startswith("Failed to fetch payments")

    assert sender.attempts == []


def test_reminder_query_validation_keeps_cors_headers(tmp_path) -> None:
    app = _make_app(tmp_path, directory=FakeDirectory(), sender=FakeSender())

    with TestClient(app) as client:
        bad_date = client.get("/api/reminders/send", params={"today": "not-a-date"})
        assert bad_date.status_code == 422
        assert bad_date.headers["access-control-allow-origin"] == "*"
        assert bad_date.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

        bad_force = client.post("/api/reminders/send", params={"force": "maybe"})
        assert bad_force.status_code == 422
        assert bad_force.headers["access-control-allow-origin"] == "*"

        payments = client.get("/api/payments")
        assert payments.status_code == 422
        assert "access-control-allow-origin" not in payments.headers


def test_reminder_run_timestamp_uses_configured_zone(tmp_path) -> None:
    app = _make_app(tmp_path, directory=FakeDirectory())

    with TestClient(app) as client:
        info = client.get("/api/reminders/debug", params={"today": "2025-02-02"}).json()["debug_info"]

    assert info["run_timestamp"].endswith("+00:00")
    assert info["timezone"] == "UTC"


def test_generated_request_id_is_returned(tmp_path) -> None:
    app = _make_app(tmp_path, directory=FakeDirectory())
    with TestClient(app) as client:
        response = client.get("/api/health")
    request_id = response.headers["x-request-id"]
    assert len(request_id) == 12
    int(request_id, 16)
