"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Minimal JSON-over-HTTP transport shared by the destination, generator and
broker clients.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import TransientFailureError


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """
    Raw HTTP response.

    Attributes:
        status: HTTP status code.
        headers: Response headers with lower-cased names.
        body: Undecoded response body.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        """Decode the body as JSON; empty or undecodable bodies yield ``{}``."""
        if not self.body:
            return {}
        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return {}


class HttpTransport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        timeout_s: float = 30.0,
    ) -> HttpResponse:
        """Send one request. Non-2xx statuses are returned, not raised."""
        ...


class UrllibTransport:
    """``urllib``-based transport; blocking I/O runs in a worker thread."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        timeout_s: float = 30.0,
    ) -> HttpResponse:
        data = None
        if json_body is not None and method in ("POST", "PUT", "PATCH"):
            data = json.dumps(json_body).encode("utf-8")
        req = urllib.request.Request(
            url,
            data=data,
            method=method,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                **(headers or {}),
            },
        )
        return await asyncio.to_thread(self._send, req, timeout_s)

    def _send(self, req: urllib.request.Request, timeout_s: float) -> HttpResponse:
        try:
            with urllib.request.urlopen(req, timeout=timeout_s) as resp:  # noqa: S310
                return HttpResponse(
                    status=resp.status,
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    body=resp.read(),
                )
        except urllib.error.HTTPError as e:
            body = b""
            try:
                body = e.read()
            except Exception:  # noqa: BLE001
                body = b""
            headers = {k.lower(): v for k, v in (e.headers or {}).items()}
            return HttpResponse(status=e.code, headers=headers, body=body)
        except urllib.error.URLError as e:
            raise TransientFailureError(f"Network error calling {req.full_url}: {e.reason}") from e
        except TimeoutError as e:
            raise TransientFailureError(f"Timed out calling {req.full_url}") from e
