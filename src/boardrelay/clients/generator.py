"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

HTTP client for the remote destination content generator.
"""

from __future__ import annotations

from typing import Any

from ..errors import ContentGenerationError
from .transport import HttpTransport, UrllibTransport


class HttpContentGenerator:
    """Posts generation requests to a remote function endpoint."""

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        transport: HttpTransport | None = None,
        timeout_s: float = 60.0,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._transport = transport or UrllibTransport()
        self._timeout_s = timeout_s

    async def generate(self, request: dict[str, Any]) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        response = await self._transport.request(
            "POST",
            self._url,
            headers=headers,
            json_body=request,
            timeout_s=self._timeout_s,
        )
        body = response.json()
        if not response.ok:
            message = body.get("error") if isinstance(body, dict) else None
            raise ContentGenerationError(
                f"Function call failed: HTTP {response.status} {message or ''}".rstrip()
            )
        if not isinstance(body, dict):
            raise ContentGenerationError("Malformed generator response: expected a JSON object")
        return body
