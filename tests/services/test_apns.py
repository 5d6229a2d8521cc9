from __future__ import annotations

from types import SimpleNamespace

import pytest

from stampwallet.services.apns import APNsClient


class FakeAPNs:
    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.requests = []

    async def send_notification(self, request):
        self.requests.append(request)
        response = self.responses[request.device_token]
        if isinstance(response, Exception):
            raise response
        return response


def _client(monkeypatch, responses: dict) -> tuple[APNsClient, FakeAPNs]:
    client = APNsClient(cert_path="/tmp/cert.pem", pass_type_id="pass.com.example.stamps")
    fake = FakeAPNs(responses)
    monkeypatch.setattr(client, "_get_client", lambda: fake)
    return client, fake


@pytest.mark.asyncio
async def test_notify_all_reports_each_token(monkeypatch) -> None:
    client, fake = _client(monkeypatch, {
        "ok": SimpleNamespace(is_successful=True, status="200", description=None),
        "gone": SimpleNamespace(is_successful=False, status="410", description="Unregistered"),
        "busy": SimpleNamespace(is_successful=False, status="429", description="TooManyRequests"),
        "boom": ConnectionError("connection reset"),
    })

    report = await client.notify_all(["ok", "gone", "busy", "boom"])

    assert report.delivered == 1
    assert report.failed == 3
    assert report.invalid_tokens == ["gone"]
    outcomes = {outcome.push_token: outcome for outcome in report.outcomes}
    assert outcomes["busy"].failure_reason == "TooManyRequests"
    assert outcomes["boom"].failure_reason == "connection reset"
    assert not outcomes["boom"].token_invalid


@pytest.mark.asyncio
async def test_pushes_have_empty_payload_and_pass_topic(monkeypatch) -> None:
    client, fake = _client(monkeypatch, {
        "ok": SimpleNamespace(is_successful=True, status="200", description=None),
    })

    await client.notify("ok")

    request = fake.requests[0]
    assert request.message == {}
    assert request.apns_topic == "pass.com.example.stamps"


@pytest.mark.asyncio
async def test_bad_device_token_is_invalid(monkeypatch) -> None:
    client, _ = _client(monkeypatch, {
        "bad": SimpleNamespace(is_successful=False, status="400", description="BadDeviceToken"),
    })

    outcome = await client.notify("bad")

    assert outcome.token_invalid is True
    assert outcome.delivered is False


@pytest.mark.asyncio
async def test_no_tokens_sends_nothing(monkeypatch) -> None:
    client, fake = _client(monkeypatch, {})

    report = await client.notify_all([])

    assert (report.delivered, report.failed) == (0, 0)
    assert fake.requests == []
