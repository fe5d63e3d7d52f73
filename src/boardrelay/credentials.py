"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Credential provider with access-token refresh.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timedelta

from .clients.transport import HttpTransport, UrllibTransport
from .contracts import Connection
from .errors import AuthFailureError
from .types import Destination, utc_now

logger = logging.getLogger("boardrelay.credentials")

TokenRefresher = Callable[[Connection], Awaitable[Connection]]


class OAuthTokenRefresher:
    """Exchange a refresh token at an OAuth token endpoint."""

    def __init__(
        self,
        token_url: str,
        *,
        client_id: str,
        client_secret: str,
        transport: HttpTransport | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._transport = transport or UrllibTransport()
        self._clock = clock

    async def __call__(self, connection: Connection) -> Connection:
        query = urllib.parse.urlencode(
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": connection.refresh_token or "",
            }
        )
        response = await self._transport.request("POST", f"{self._token_url}?{query}")
        if not response.ok:
            raise AuthFailureError(f"Token refresh failed: {response.status}")
        body = response.json()
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise AuthFailureError("Token refresh failed: no access token returned")
        expires_in = body.get("expires_in")
        return replace(
            connection,
            access_token=access_token,
            refresh_token=body.get("refresh_token") or connection.refresh_token,
            expires_at=(
                self._clock() + timedelta(seconds=float(expires_in)) if expires_in else None
            ),
        )


class InMemoryCredentialProvider:
    """
    Holds one connection per destination and refreshes tokens on demand.

    Tokens expiring within ``refresh_margin_s`` are treated as expired.
    """

    def __init__(
        self,
        connections: list[Connection] | None = None,
        *,
        refresher: TokenRefresher | None = None,
        refresh_margin_s: float = 300.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._connections: dict[Destination, Connection] = {
            c.destination: c for c in connections or []
        }
        self._refresher = refresher
        self._refresh_margin = timedelta(seconds=refresh_margin_s)
        self._clock = clock
        self._lock = asyncio.Lock()

    async def store_connection(self, connection: Connection) -> None:
        async with self._lock:
            self._connections[connection.destination] = connection

    async def revoke_connection(self, destination: Destination) -> bool:
        async with self._lock:
            return self._connections.pop(destination, None) is not None

    async def get_connection(self, destination: Destination) -> Connection | None:
        async with self._lock:
            return self._connections.get(destination)

    def is_token_expired(self, connection: Connection) -> bool:
        if connection.expires_at is None:
            return False
        return connection.expires_at - self._clock() < self._refresh_margin

    async def get_valid_access_token(self, destination: Destination) -> str:
        async with self._lock:
            connection = self._connections.get(destination)
            if connection is None:
                raise AuthFailureError(f"No {destination.value} connection found")
            if not self.is_token_expired(connection):
                return connection.access_token
            if self._refresher is None or not connection.refresh_token:
                raise AuthFailureError(
                    f"Authentication failed: {destination.value} token expired and cannot be refreshed"
                )
            try:
                refreshed = await self._refresher(connection)
            except AuthFailureError:
                raise
            except Exception as exc:
                raise AuthFailureError(f"Failed to refresh token: {exc}") from exc
            self._connections[destination] = refreshed
            logger.info("Refreshed %s access token", destination.value)
            return refreshed.access_token
