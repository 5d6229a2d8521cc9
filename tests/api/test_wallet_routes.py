from __future__ import annotations

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from stampwallet.api.deps import get_registry, get_stamp_generator
from stampwallet.main import create_app
from stampwallet.services.pass_generator import PassGenerator
from stampwallet.services.registry import DeviceUpdateRegistry
from stampwallet.services.strip_generator import StampImageGenerator
from tests.fakes import FakeIconLibrary

TOKEN = "s" * 32
PASS_TYPE = "pass.com.example.stamps"
AUTH = {"Authorization": f"ApplePass {TOKEN}"}


@pytest.fixture
def client(fake_db, clock) -> TestClient:
    stamp_generator = StampImageGenerator(icon_library=FakeIconLibrary())
    registry = DeviceUpdateRegistry(
        pass_generator=PassGenerator(
            team_id="TEAM123",
            pass_type_id=PASS_TYPE,
            base_url="https://api.example.com",
            stamp_generator=stamp_generator,
            signer=lambda manifest: b"signature",
        ),
        clock=clock,
    )
    app = create_app()
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_stamp_generator] = lambda: stamp_generator
    return TestClient(app)


def _add_pass(fake_db, pass_id: str = "pass-1", status: str = "active", update_tag: int = 7) -> None:
    fake_db.tables.setdefault("wallet_passes", []).append({
        "id": pass_id,
        "offer_id": "offer-1",
        "status": status,
        "earned_count": 4,
        "required_count": 10,
        "authentication_token": TOKEN,
        "update_tag": update_tag,
        "scheduled_expiration_at": None,
        "last_updated_at": "2026-03-01T12:00:00.000000+00:00",
    })


def _registration_url(device_id: str = "device-1", pass_id: str = "pass-1") -> str:
    return f"/wallet/v1/devices/{device_id}/registrations/{PASS_TYPE}/{pass_id}"


def test_register_returns_201_then_200(client, fake_db) -> None:
    _add_pass(fake_db)

    first = client.post(_registration_url(), json={"pushToken": "push-1"}, headers=AUTH)
    second = client.post(_registration_url(), json={"pushToken": "push-2"}, headers=AUTH)

    assert first.status_code == 201
    assert second.status_code == 200
    assert fake_db.rows("device_registrations")[0]["push_token"] == "push-2"


def test_auth_failures_do_not_reveal_pass_existence(client, fake_db) -> None:
    _add_pass(fake_db)
    bad_auth = {"Authorization": "ApplePass wrong-token"}

    wrong_token = client.post(_registration_url(), json={"pushToken": "p"}, headers=bad_auth)
    unknown_pass = client.post(_registration_url(pass_id="nope"), json={"pushToken": "p"}, headers=AUTH)
    no_header = client.post(_registration_url(), json={"pushToken": "p"})

    assert wrong_token.status_code == unknown_pass.status_code == 401
    assert wrong_token.json() == unknown_pass.json()
    assert no_header.status_code == 401


def test_unregister_keeps_pass(client, fake_db) -> None:
    _add_pass(fake_db)
    client.post(_registration_url(), json={"pushToken": "push-1"}, headers=AUTH)

    response = client.delete(_registration_url(), headers=AUTH)

    assert response.status_code == 200
    assert fake_db.rows("device_registrations") == []
    assert len(fake_db.rows("wallet_passes")) == 1


def test_serial_numbers_for_device(client, fake_db) -> None:
    _add_pass(fake_db, update_tag=7)
    client.post(_registration_url(), json={"pushToken": "push-1"}, headers=AUTH)
    url = f"/wallet/v1/devices/device-1/registrations/{PASS_TYPE}"

    changed = client.get(url, params={"passesUpdatedSince": "3"})
    current = client.get(url, params={"passesUpdatedSince": "7"})
    unknown = client.get(f"/wallet/v1/devices/device-9/registrations/{PASS_TYPE}")

    assert changed.status_code == 200
    assert changed.json() == {"serialNumbers": ["pass-1"], "lastUpdated": "7"}
    assert current.status_code == 204
    assert unknown.status_code == 204


def test_latest_pass_with_etag(client, fake_db) -> None:
    _add_pass(fake_db)
    url = f"/wallet/v1/passes/{PASS_TYPE}/pass-1"

    response = client.get(url, headers=AUTH)
    etag = response.headers["ETag"]
    not_modified = client.get(url, headers={**AUTH, "If-None-Match": etag})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/vnd.apple.pkpass"
    assert etag.startswith('"') and len(etag) == 34
    assert "Last-Modified" in response.headers
    assert not_modified.status_code == 304


def test_latest_pass_rejects_bad_token(client, fake_db) -> None:
    _add_pass(fake_db)

    response = client.get(f"/wallet/v1/passes/{PASS_TYPE}/pass-1", headers={"Authorization": "ApplePass nope"})

    assert response.status_code == 401


def test_wallet_logs_are_accepted(client) -> None:
    response = client.post("/wallet/v1/log", json={"logs": ["Pass download failed"]})

    assert response.status_code == 200


def test_hero_image_renders_with_content_etag(client, fake_db) -> None:
    _add_pass(fake_db)

    response = client.get("/passes/pass-1/hero.png")
    etag = response.headers["ETag"]
    cached = client.get("/passes/pass-1/hero.png", headers={"If-None-Match": etag})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(response.content)).size == (1032, 336)
    assert cached.status_code == 304


def test_hero_image_for_missing_or_deleted_pass(client, fake_db) -> None:
    _add_pass(fake_db, pass_id="pass-gone", status="deleted")

    assert client.get("/passes/pass-missing/hero.png").status_code == 404
    assert client.get("/passes/pass-gone/hero.png").status_code == 404
