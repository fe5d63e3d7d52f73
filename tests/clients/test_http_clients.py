from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from boardrelay import (
    AuthFailureError,
    BrokerUnavailableError,
    Connection,
    ContentGenerationError,
    Destination,
    InMemoryCredentialProvider,
    OAuthTokenRefresher,
)
from boardrelay.clients import HttpContentGenerator, HttpImportBroker, HttpResponse


def run_async(coro):
    return asyncio.run(coro)


class _FakeTransport:
    def __init__(self, response: HttpResponse) -> None:
        self._response = response
        self.calls: list[dict] = []

    async def request(self, method, url, *, headers=None, json_body=None, timeout_s=30.0):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "json": json_body, "timeout": timeout_s}
        )
        return self._response


def _response(status: int, body) -> HttpResponse:
    return HttpResponse(status=status, body=json.dumps(body).encode("utf-8"))


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_http_response_json_tolerates_empty_and_invalid_bodies():
    assert HttpResponse(status=204).json() == {}
    assert HttpResponse(status=200, body=b"not json").json() == {}
    assert HttpResponse(status=200, headers={"x-a": "1"}).header("X-A") == "1"
    assert HttpResponse(status=302).ok is False


def test_generator_posts_request_with_bearer_key():
    async def scenario() -> None:
        transport = _FakeTransport(_response(200, {"success": True, "content": {"items": []}}))
        generator = HttpContentGenerator(
            "https://fn.example/generate", api_key="secret", transport=transport
        )

        body = await generator.generate({"prompt": "p"})

        assert body["success"] is True
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["headers"] == {"Authorization": "Bearer secret"}
        assert call["json"] == {"prompt": "p"}
        assert call["timeout"] == 60.0

    run_async(scenario())


def test_generator_http_error_raises_content_generation_error():
    async def scenario() -> None:
        transport = _FakeTransport(_response(500, {"error": "model overloaded"}))
        generator = HttpContentGenerator("https://fn.example/generate", transport=transport)

        with pytest.raises(ContentGenerationError, match="model overloaded"):
            await generator.generate({"prompt": "p"})

    run_async(scenario())


def test_broker_parses_import_ticket():
    async def scenario() -> None:
        transport = _FakeTransport(
            _response(
                200,
                {
                    "importUrl": "https://broker.example/import/abc",
                    "expiresAt": "2026-01-01T12:15:00+00:00",
                    "deliveryId": "imp-1",
                },
            )
        )
        broker = HttpImportBroker("https://fn.example/orchestrate", transport=transport)

        ticket = await broker.create_import(
            {
                "destination": "figma",
                "target_id": "file-1",
                "prompt": "make it",
                "tailored_output": {"items": []},
            }
        )

        assert ticket.import_url == "https://broker.example/import/abc"
        assert ticket.expires_at == NOW + timedelta(minutes=15)
        assert ticket.delivery_id == "imp-1"
        assert transport.calls[0]["json"] == {
            "destination": "figma",
            "targetId": "file-1",
            "prompt": "make it",
            "tailoredOutput": {"items": []},
        }

    run_async(scenario())


@pytest.mark.parametrize(
    "response",
    [
        HttpResponse(status=503, body=b'{"error": "down"}'),
        HttpResponse(status=200, body=b'{"importUrl": ""}'),
    ],
)
def test_broker_failures_raise_broker_unavailable(response):
    async def scenario() -> None:
        broker = HttpImportBroker("https://fn.example/orchestrate", transport=_FakeTransport(response))
        with pytest.raises(BrokerUnavailableError):
            await broker.create_import({"destination": "figjam", "target_id": "f"})

    run_async(scenario())


def test_credentials_return_unexpired_token_without_refresh():
    async def scenario() -> None:
        provider = InMemoryCredentialProvider(
            [Connection(Destination.MIRO, "live-token", expires_at=NOW + timedelta(hours=1))],
            clock=lambda: NOW,
        )
        assert await provider.get_valid_access_token(Destination.MIRO) == "live-token"

    run_async(scenario())


def test_credentials_refresh_tokens_inside_the_margin():
    async def scenario() -> None:
        transport = _FakeTransport(
            _response(200, {"access_token": "fresh", "refresh_token": "r2", "expires_in": 3600})
        )
        refresher = OAuthTokenRefresher(
            "https://api.miro.com/v1/oauth/token",
            client_id="cid",
            client_secret="csecret",
            transport=transport,
            clock=lambda: NOW,
        )
        provider = InMemoryCredentialProvider(
            [
                Connection(
                    Destination.MIRO,
                    "stale",
                    refresh_token="r1",
                    expires_at=NOW + timedelta(minutes=2),
                )
            ],
            refresher=refresher,
            clock=lambda: NOW,
        )

        assert await provider.get_valid_access_token(Destination.MIRO) == "fresh"
        stored = await provider.get_connection(Destination.MIRO)
        assert stored is not None
        assert stored.refresh_token == "r2"
        assert stored.expires_at == NOW + timedelta(hours=1)
        assert "grant_type=refresh_token" in transport.calls[0]["url"]
        assert "refresh_token=r1" in transport.calls[0]["url"]

    run_async(scenario())


def test_credentials_fail_without_connection_or_refresh_path():
    async def scenario() -> None:
        provider = InMemoryCredentialProvider(
            [Connection(Destination.MIRO, "old", expires_at=NOW - timedelta(minutes=1))],
            clock=lambda: NOW,
        )
        with pytest.raises(AuthFailureError, match="cannot be refreshed"):
            await provider.get_valid_access_token(Destination.MIRO)
        with pytest.raises(AuthFailureError, match="No figjam connection found"):
            await provider.get_valid_access_token(Destination.FIGJAM)

        assert await provider.revoke_connection(Destination.MIRO) is True
        assert await provider.get_connection(Destination.MIRO) is None

    run_async(scenario())
