"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Rate-limited batch client for the Miro REST API.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace
from typing import Any

from ..errors import AuthFailureError, DestinationApiError
from ..types import (
    BatchResult,
    BoardAccess,
    DeliveryItem,
    FailedItem,
    ItemStyle,
    ItemType,
    Position,
    RateLimitState,
    Size,
)
from .transport import HttpResponse, HttpTransport, UrllibTransport

logger = logging.getLogger("boardrelay.clients.board")

DEFAULT_API_BASE_URL = "https://api.miro.com/v2"
DEFAULT_APP_HOST = "miro.com"
OWNERS_AND_ADMINS_POLICY = "board_owners_and_admins"

_HEX_COLOR = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
_BOARD_URL = re.compile(r"miro\.com/app/board/([^/?#]+)")

SleepFn = Callable[[float], Awaitable[None]]
ItemProgressFn = Callable[[int, int], Awaitable[None] | None]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _hex_color(value: str | None) -> str | None:
    if value and _HEX_COLOR.match(value):
        return value
    return None


def sanitize_board_id(board_id: str) -> str:
    """Normalize a raw board id or full board URL to the bare id."""
    if not board_id or not isinstance(board_id, str):
        raise ValueError("Board ID is required and must be a string")
    match = _BOARD_URL.search(board_id)
    clean = match.group(1) if match else board_id.strip().replace("/", "")
    if len(clean) < 3:
        raise ValueError("Invalid board ID format")
    return clean


def sanitize_item(item: DeliveryItem) -> DeliveryItem:
    """Clamp text, coordinates, geometry and style into API-accepted ranges."""
    font_size = item.style.font_size
    return replace(
        item,
        text=(item.text or "")[:5000],
        position=Position(
            x=_clamp(float(item.position.x), -100000, 100000),
            y=_clamp(float(item.position.y), -100000, 100000),
        ),
        size=Size(
            width=_clamp(float(item.size.width), 10, 2000),
            height=_clamp(float(item.size.height), 10, 2000),
        ),
        style=ItemStyle(
            fill_color=_hex_color(item.style.fill_color),
            color=_hex_color(item.style.color),
            font_size=int(_clamp(font_size, 8, 72)) if font_size else None,
        ),
    )


class BoardApiClient:
    """
    Miro board client with client-side rate-limit throttling.

    Rate-limit headroom is refreshed from ``X-RateLimit-*`` response headers
    after every response. Before every request, when remaining headroom is at
    or below ``rate_limit_floor`` the client sleeps until the tracked reset
    time. This is best-effort, not a guarantee.
    """

    def __init__(
        self,
        access_token: str,
        *,
        transport: HttpTransport | None = None,
        base_url: str = DEFAULT_API_BASE_URL,
        app_host: str = DEFAULT_APP_HOST,
        rate_limit_floor: int = 5,
        item_delay_s: float = 0.1,
        timeout_s: float = 30.0,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._access_token = access_token
        self._transport = transport or UrllibTransport()
        self._base_url = base_url.rstrip("/")
        self._app_host = app_host
        self._rate_limit_floor = rate_limit_floor
        self._item_delay_s = item_delay_s
        self._timeout_s = timeout_s
        self._sleep = sleep
        self._clock = clock
        self._rate_limit = RateLimitState()

    # -- boards -------------------------------------------------------------

    async def get_board(self, board_id: str) -> dict[str, Any]:
        clean = sanitize_board_id(board_id)
        try:
            return await self._request("GET", f"/boards/{clean}")
        except DestinationApiError as exc:
            raise exc.with_context(f"Failed to get board {clean}") from exc

    async def get_boards(self, limit: int = 20) -> dict[str, Any]:
        try:
            response = await self._request("GET", f"/boards?limit={limit}")
        except DestinationApiError as exc:
            raise exc.with_context("Failed to get boards") from exc
        return {"data": response.get("data") or [], "total": response.get("total") or 0}

    async def validate_board_access(self, board_id: str) -> BoardAccess:
        """
        Check read access and derive write capability from the board policy.

        A board whose collaboration tools are restricted to owners and admins
        is treated as read-only for the current actor. Rate limits and server
        errors are re-raised so the caller can retry them.
        """
        try:
            clean = sanitize_board_id(board_id)
        except ValueError as exc:
            return BoardAccess(can_read=False, can_write=False, errors=(str(exc),))

        try:
            board = await self.get_board(clean)
        except DestinationApiError as exc:
            if exc.retryable:
                raise
            return BoardAccess(can_read=False, can_write=False, errors=(self._access_message(clean, exc),))

        policy = (board.get("policy") or {}).get("permissionsPolicy") or {}
        collaboration = policy.get("collaborationToolsStartAccess")
        can_write = collaboration != OWNERS_AND_ADMINS_POLICY
        errors: tuple[str, ...] = ()
        if not can_write:
            errors = (f"Board \"{clean}\" only allows owners and admins to add content.",)
        return BoardAccess(
            can_read=True,
            can_write=can_write,
            board_name=str(board.get("name") or ""),
            errors=errors,
        )

    @staticmethod
    def _access_message(board_id: str, exc: DestinationApiError) -> str:
        if exc.status == 404:
            return (
                f"Miro board \"{board_id}\" not found. Please check the board ID "
                "and ensure you have access to this board."
            )
        if exc.status == 403:
            return (
                f"You don't have permission to edit board \"{board_id}\". "
                "Please ask the board owner to grant you edit access."
            )
        if exc.status == 401:
            return "Your Miro access token has expired. Please reconnect your Miro account."
        return f"Unable to access Miro board: {exc.message or 'Unknown error'}"

    def get_board_embed_url(
        self,
        board_id: str,
        *,
        embed_mode: str = "live_embed",
        autoplay: bool = True,
    ) -> str:
        clean = sanitize_board_id(board_id)
        return f"https://{self._app_host}/app/{embed_mode}/{clean}?autoplay={'true' if autoplay else 'false'}"

    def get_board_view_url(self, board_id: str) -> str:
        return f"https://{self._app_host}/app/board/{sanitize_board_id(board_id)}/"

    async def test_connection(self) -> tuple[bool, str | None]:
        """Return ``(is_valid, error)`` for the current access token."""
        try:
            await self._request("GET", "/boards?limit=1")
        except DestinationApiError as exc:
            if exc.status == 401:
                return False, "Invalid access token. Please check your Miro access token."
            return False, f"Connection test failed: {exc.message}"
        return True, None

    # -- items --------------------------------------------------------------

    async def create_sticky_note(self, board_id: str, item: DeliveryItem) -> dict[str, Any]:
        clean = sanitize_board_id(board_id)
        item = sanitize_item(item)
        content = item.text.strip()
        if not content:
            raise ValueError("Sticky note content cannot be empty")
        body = {
            "data": {"content": content, "shape": "square"},
            "style": {
                "fillColor": item.style.fill_color or "#fff9b1",
                "textAlign": "center",
                "textAlignVertical": "middle",
            },
            "position": {"x": item.position.x, "y": item.position.y, "origin": "center"},
            "geometry": {"width": item.size.width, "height": item.size.height},
        }
        try:
            return await self._request("POST", f"/boards/{clean}/sticky_notes", body)
        except DestinationApiError as exc:
            raise exc.with_context(f"Failed to create sticky note: {content[:30]}...") from exc

    async def create_text(self, board_id: str, item: DeliveryItem) -> dict[str, Any]:
        clean = sanitize_board_id(board_id)
        item = sanitize_item(item)
        content = item.text.strip()
        if not content:
            raise ValueError("Text content cannot be empty")
        body = {
            "data": {"content": content},
            "style": {
                "color": item.style.color or "#1a1a1a",
                "fillColor": "transparent",
                "fontFamily": "arial",
                "fontSize": item.style.font_size or 14,
                "textAlign": "left",
            },
            "position": {"x": item.position.x, "y": item.position.y, "origin": "center"},
            "geometry": {"width": item.size.width, "height": item.size.height},
        }
        try:
            return await self._request("POST", f"/boards/{clean}/texts", body)
        except DestinationApiError as exc:
            raise exc.with_context(f"Failed to create text: {content[:30]}...") from exc

    async def create_shape(self, board_id: str, item: DeliveryItem) -> dict[str, Any]:
        clean = sanitize_board_id(board_id)
        item = sanitize_item(item)
        body = {
            "data": {"content": item.text, "shape": "rectangle"},
            "style": {
                "fillColor": item.style.fill_color or "#f0f0f0",
                "borderColor": "#333333",
                "borderWidth": 2,
                "textAlign": "center",
                "textAlignVertical": "middle",
            },
            "position": {"x": item.position.x, "y": item.position.y, "origin": "center"},
            "geometry": {"width": item.size.width, "height": item.size.height},
        }
        try:
            return await self._request("POST", f"/boards/{clean}/shapes", body)
        except DestinationApiError as exc:
            raise exc.with_context(f"Failed to create shape: {item.text[:30]}...") from exc

    async def create_item(self, board_id: str, item: DeliveryItem) -> dict[str, Any]:
        match item.type:
            case ItemType.TEXT:
                return await self.create_text(board_id, item)
            case ItemType.SHAPE:
                return await self.create_shape(board_id, item)
            case _:
                return await self.create_sticky_note(board_id, item)

    async def create_items(
        self,
        board_id: str,
        items: Sequence[DeliveryItem],
        *,
        on_item: ItemProgressFn | None = None,
    ) -> BatchResult:
        """
        Create items one at a time in insertion order.

        Per-item failures are recorded and the batch continues. Authentication
        failures abort the remaining batch with ``AuthFailureError``. Failed
        items are not retried here.
        """
        result = BatchResult()
        total = len(items)
        for index, item in enumerate(items):
            if index > 0:
                await self._sleep(self._item_delay_s)
            try:
                result.success.append(await self.create_item(board_id, item))
            except Exception as exc:
                result.failed.append(FailedItem(item=item, error=str(exc)))
                if _is_auth_failure(exc):
                    logger.error(
                        "Authentication failure on item %s, aborting %d remaining item(s)",
                        item.id,
                        total - index - 1,
                    )
                    raise AuthFailureError("Authentication failed - stopping batch creation") from exc
                logger.warning("Failed to create item %s: %s", item.id, exc)
            if on_item is not None:
                outcome = on_item(len(result.success), total)
                if inspect.isawaitable(outcome):
                    await outcome
        return result

    # -- rate limiting ------------------------------------------------------

    def get_rate_limit_status(self) -> RateLimitState:
        return replace(self._rate_limit)

    def update_access_token(self, access_token: str) -> None:
        self._access_token = access_token

    async def _throttle(self) -> None:
        if self._rate_limit.remaining > self._rate_limit_floor:
            return
        wait_s = max(0.0, self._rate_limit.reset_epoch - self._clock())
        if wait_s > 0:
            logger.warning("Rate limit approaching, waiting %.1fs", wait_s)
            await self._sleep(wait_s)

    def _update_rate_limit(self, response: HttpResponse) -> None:
        remaining = _int_header(response, "x-ratelimit-remaining")
        reset = _int_header(response, "x-ratelimit-reset")
        limit = _int_header(response, "x-ratelimit-limit")
        if remaining is not None:
            self._rate_limit.remaining = remaining
        if reset is not None:
            self._rate_limit.reset_epoch = float(reset)
        if limit is not None:
            self._rate_limit.limit = limit

    async def _request(self, method: str, endpoint: str, body: Any = None) -> dict[str, Any]:
        await self._throttle()
        response = await self._transport.request(
            method,
            f"{self._base_url}{endpoint}",
            headers={"Authorization": f"Bearer {self._access_token}"},
            json_body=body,
            timeout_s=self._timeout_s,
        )
        self._update_rate_limit(response)
        payload = response.json()
        if not response.ok:
            detail = payload if isinstance(payload, dict) else {}
            raise DestinationApiError(
                status=response.status,
                code=str(detail.get("code") or "API_ERROR"),
                message=str(detail.get("message") or f"HTTP {response.status}"),
                context=detail,
            )
        return payload if isinstance(payload, dict) else {"data": payload}


def _int_header(response: HttpResponse, name: str) -> int | None:
    raw = response.header(name)
    if raw is None:
        return None
    try:
        return int(float(raw))
    except ValueError:
        return None


def _is_auth_failure(exc: Exception) -> bool:
    if isinstance(exc, AuthFailureError):
        return True
    if isinstance(exc, DestinationApiError):
        return exc.is_auth_failure
    msg = str(exc)
    return "401" in msg or "403" in msg
