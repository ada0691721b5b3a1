"""HTTP surface tests driven through ``fastapi.testclient.TestClient``."""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import VERIFIED_ID, FakeAuthProvider, FakeCatalog, FakeProfileStore, remote_session
from support_plus import developer_routes, routes
from support_plus.clients import OtpClient
from support_plus.config import Settings
from support_plus.errors import ProfileApiError
from support_plus.main import app as main_app
from support_plus.services import AppServices
from support_plus.storage import MemoryStorage


def _otp_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/otp/request":
        return httpx.Response(200, json={"requestId": "req-1", "mock": True, "mockCode": "0000"})
    return httpx.Response(200, json={"success": True, "phone": "+79123456789", "supabaseUserId": VERIFIED_ID})


def _build_services(auth: FakeAuthProvider | None = None, profiles: FakeProfileStore | None = None) -> AppServices:
    return AppServices(
        Settings(),
        storage=MemoryStorage(),
        auth=auth or FakeAuthProvider(),
        profiles=profiles or FakeProfileStore(),
        catalog=FakeCatalog(),
        otp=OtpClient("https://otp.example.com", client=httpx.AsyncClient(transport=httpx.MockTransport(_otp_handler))),
    )


def _build_app(services: AppServices) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await services.init()
        yield
        await services.aclose()

    app = FastAPI(lifespan=lifespan)
    app.include_router(routes.router)
    app.include_router(developer_routes.router)
    app.dependency_overrides[routes.get_services] = lambda: services
    return app


def test_healthz() -> None:
    client = TestClient(main_app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_anonymous_identity_and_empty_catalog() -> None:
    with TestClient(_build_app(_build_services())) as client:
        identity = client.get("/api/identity").json()
        catalog = client.get("/api/catalog").json()

    assert identity["state"] == "anonymous"
    assert identity["identity"] == {"kind": "none"}
    assert identity["profile"] is None
    assert catalog["identity_id"] is None
    assert catalog["benefits"] == []


def test_manual_identity_refresh_and_catalog_flow() -> None:
    with TestClient(_build_app(_build_services())) as client:
        manual = client.post("/api/identity/manual", json={"id": VERIFIED_ID, "email": "user@example.com"})
        assert manual.status_code == 200
        assert manual.json()["accepted"] is True

        refreshed = client.post("/api/identity/refresh")
        assert refreshed.status_code == 200
        assert refreshed.json()["state"] == "ready"
        assert refreshed.json()["profile"]["auth_user_id"] == VERIFIED_ID

        catalog = client.post("/api/catalog/refresh").json()
        assert catalog["refreshed"] is True
        assert catalog["identity_id"] == VERIFIED_ID
        assert [benefit["id"] for benefit in catalog["benefits"]] == ["b-1"]

        hidden = client.post("/api/catalog/hidden/b-1").json()
        assert hidden == {"hidden_benefit_ids": ["b-1"]}

        partitions = client.get("/api/developer/partitions").json()
        assert partitions == {"active_identity_id": VERIFIED_ID, "partition_ids": [VERIFIED_ID]}


def test_manual_identity_rejected_with_remote_session() -> None:
    services = _build_services(auth=FakeAuthProvider(remote_session(VERIFIED_ID)))
    with TestClient(_build_app(services)) as client:
        response = client.post("/api/identity/manual", json={"id": "sms:+1234567890"})

    payload = response.json()
    assert response.status_code == 200
    assert payload["accepted"] is False
    assert payload["snapshot"]["identity"]["kind"] == "remote"


def test_refresh_failure_maps_to_bad_gateway() -> None:
    profiles = FakeProfileStore()
    profiles.error = ProfileApiError("down", status_code=503)
    with TestClient(_build_app(_build_services(profiles=profiles))) as client:
        client.post("/api/identity/manual", json={"id": VERIFIED_ID})
        response = client.post("/api/identity/refresh")
        identity = client.get("/api/identity").json()

    assert response.status_code == 502
    assert response.json()["detail"] == "Не удалось загрузить профиль. Попробуйте снова."
    assert identity["state"] == "profile_error"


def test_profile_update_requires_loaded_profile() -> None:
    with TestClient(_build_app(_build_services())) as client:
        response = client.put("/api/profile", json={"name": "Анна"})

    assert response.status_code == 404


def test_profile_update_and_delete() -> None:
    profiles = FakeProfileStore()
    services = _build_services(auth=FakeAuthProvider(remote_session(VERIFIED_ID)), profiles=profiles)
    with TestClient(_build_app(services)) as client:
        client.post("/api/identity/refresh")
        updated = client.put("/api/profile", json={"region": "region-5"})
        deleted = client.delete("/api/profile")
        identity = client.get("/api/identity").json()

    assert updated.status_code == 200
    assert updated.json()["region"] == "region-5"
    assert deleted.status_code == 204
    assert profiles.deleted == [VERIFIED_ID]
    assert identity["state"] == "anonymous"


def test_reset_returns_anonymous_snapshot() -> None:
    services = _build_services(auth=FakeAuthProvider(remote_session(VERIFIED_ID)))
    with TestClient(_build_app(services)) as client:
        response = client.post("/api/identity/reset")

    assert response.status_code == 200
    assert response.json()["state"] == "anonymous"


def test_otp_request_and_verify() -> None:
    with TestClient(_build_app(_build_services())) as client:
        bad = client.post("/api/otp/request", json={"recipient": "abc", "channel": "sms"})
        sent = client.post("/api/otp/request", json={"recipient": "8 912 345 67 89", "channel": "sms"})
        verified = client.post(
            "/api/otp/verify",
            json={"recipient": "+79123456789", "channel": "sms", "code": "0000", "request_id": "req-1"},
        )

    assert bad.status_code == 400
    assert sent.json() == {"normalized_recipient": "+79123456789", "request_id": "req-1", "mock_code": "0000"}
    assert verified.status_code == 200
    assert verified.json()["state"] == "ready"
    assert verified.json()["identity"]["id"] == VERIFIED_ID
