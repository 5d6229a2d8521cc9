from __future__ import annotations

import io
import json
import zipfile

from stampwallet.services.pass_generator import (
    PassGenerator,
    compute_manifest_etag,
    etag_matches,
)
from stampwallet.services.strip_generator import StampImageGenerator
from tests.fakes import FakeIconLibrary


def _wallet_pass(**overrides) -> dict:
    wallet_pass = {
        "id": "pass-1",
        "offer_id": "offer-1",
        "status": "active",
        "earned_count": 3,
        "required_count": 10,
        "authentication_token": "a" * 32,
        "update_tag": 1,
        "scheduled_expiration_at": None,
        "last_updated_at": "2026-03-01T12:00:00.000000+00:00",
    }
    wallet_pass.update(overrides)
    return wallet_pass


def _generator() -> PassGenerator:
    return PassGenerator(
        team_id="TEAM123",
        pass_type_id="pass.com.example.stamps",
        base_url="https://api.example.com/",
        stamp_generator=StampImageGenerator(icon_library=FakeIconLibrary()),
        signer=lambda manifest: b"signed:" + manifest[:8],
        organization_name="Bean There",
    )


def test_manifest_etag_is_order_independent_and_quoted() -> None:
    first = compute_manifest_etag({"pass.json": "aa", "icon.png": "bb"})
    second = compute_manifest_etag({"icon.png": "bb", "pass.json": "aa"})

    assert first == second
    assert first.startswith('"') and first.endswith('"')
    assert len(first) == 34


def test_manifest_etag_changes_with_content() -> None:
    assert compute_manifest_etag({"pass.json": "aa"}) != compute_manifest_etag({"pass.json": "ab"})


def test_etag_matching() -> None:
    etag = '"abc"'

    assert etag_matches('"abc"', etag)
    assert etag_matches('W/"abc"', etag)
    assert etag_matches('"zzz", "abc"', etag)
    assert etag_matches("*", etag)
    assert not etag_matches('"zzz"', etag)
    assert not etag_matches(None, etag)


def test_pass_json_points_devices_at_web_service() -> None:
    pass_json = _generator().create_pass_json(_wallet_pass())

    assert pass_json["serialNumber"] == "pass-1"
    assert pass_json["webServiceURL"] == "https://api.example.com/wallet"
    assert pass_json["organizationName"] == "Bean There"
    assert pass_json["storeCard"]["headerFields"][0]["value"] == "3 / 10"
    assert "voided" not in pass_json


def test_expired_pass_is_voided_with_expiration_date() -> None:
    pass_json = _generator().create_pass_json(
        _wallet_pass(status="expired", scheduled_expiration_at="2026-03-31T12:00:00.000000+00:00")
    )

    assert pass_json["voided"] is True
    assert pass_json["expirationDate"] == "2026-03-31T12:00:00+00:00"


def test_generic_design_uses_thumbnail() -> None:
    files = _generator().create_files(_wallet_pass(), {"pass_style": "generic"})

    assert "generic" in json.loads(files["pass.json"])
    assert {"thumbnail.png", "thumbnail@2x.png", "icon.png", "icon@2x.png"} <= set(files)


def test_null_counts_still_build_a_pass() -> None:
    files = _generator().create_files(_wallet_pass(earned_count=None, required_count=None))

    header = json.loads(files["pass.json"])["storeCard"]["headerFields"][0]
    assert header["value"] == "0 / 1"
    assert {"strip.png", "strip@2x.png"} <= set(files)


def test_generate_pass_builds_signed_archive() -> None:
    package = _generator().generate_pass(_wallet_pass(), {"reward_description": "Free coffee"})

    archive = zipfile.ZipFile(io.BytesIO(package.data))
    names = set(archive.namelist())
    manifest = json.loads(archive.read("manifest.json"))

    assert {"pass.json", "manifest.json", "signature", "strip.png", "strip@2x.png"} <= names
    assert set(manifest) == names - {"manifest.json", "signature"}
    assert archive.read("signature").startswith(b"signed:")
    assert package.etag == compute_manifest_etag(manifest)
    assert package.last_modified.year == 2026


def test_etag_is_stable_for_unchanged_pass_and_moves_with_progress() -> None:
    generator = _generator()

    first = generator.generate_pass(_wallet_pass())
    again = generator.generate_pass(_wallet_pass())
    progressed = generator.generate_pass(_wallet_pass(earned_count=4))

    assert first.etag == again.etag
    assert first.etag != progressed.etag
