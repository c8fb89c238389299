from __future__ import annotations

from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import LogSettings
from conftest import build_settings


def test_preserves_incoming_request_id_header(make_client):
    incoming_id = "test-request-id-123"
    resp = make_client().get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(make_client):
    resp = make_client().get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_header_name_is_configurable(store, clock):
    app_settings = build_settings()
    app_settings.log = LogSettings(level="WARNING", request_id_header="X-Correlation-ID")

    with TestClient(create_app(app_settings, counter_store=store, clock=clock)) as client:
        resp = client.get("/health", headers={"X-Correlation-ID": "corr-1"})

    assert resp.headers.get("X-Correlation-ID") == "corr-1"
    assert "X-Request-ID" not in resp.headers
