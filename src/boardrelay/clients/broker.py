"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

HTTP client for the ephemeral import broker.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..contracts import ImportTicket
from ..errors import BrokerUnavailableError
from .transport import HttpTransport, UrllibTransport


class _ImportResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    import_url: str = Field(alias="importUrl", min_length=1)
    expires_at: datetime = Field(alias="expiresAt")
    delivery_id: str | None = Field(default=None, alias="deliveryId")


class HttpImportBroker:
    """Stages ephemeral imports through a remote broker function."""

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        transport: HttpTransport | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._transport = transport or UrllibTransport()
        self._timeout_s = timeout_s

    async def create_import(self, request: dict[str, Any]) -> ImportTicket:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        response = await self._transport.request(
            "POST",
            self._url,
            headers=headers,
            json_body={
                "destination": request.get("destination"),
                "targetId": request.get("target_id"),
                "prompt": request.get("prompt"),
                "tailoredOutput": request.get("tailored_output"),
            },
            timeout_s=self._timeout_s,
        )
        body = response.json()
        if not response.ok:
            message = body.get("error") if isinstance(body, dict) else None
            raise BrokerUnavailableError(
                f"Failed to create ephemeral import: HTTP {response.status} {message or ''}".rstrip()
            )
        try:
            parsed = _ImportResponse.model_validate(body)
        except ValidationError as exc:
            raise BrokerUnavailableError(f"Malformed broker response: {exc}") from exc
        return ImportTicket(
            import_url=parsed.import_url,
            expires_at=parsed.expires_at,
            delivery_id=parsed.delivery_id,
        )
