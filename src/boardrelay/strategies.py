"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Destination delivery strategies and the router that picks one per target.
"""

from __future__ import annotations

import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Protocol, assert_never

from .clients.board import BoardApiClient
from .contracts import CredentialProvider, ImportBroker
from .errors import AuthFailureError, TransientFailureError
from .types import (
    DeliveryPayload,
    DeliveryProgress,
    DeliveryResult,
    DeliveryStage,
    DeliveryTarget,
    Destination,
    DirectApi,
    EphemeralImport,
    destination_kind,
    utc_now,
)

logger = logging.getLogger("boardrelay.strategies")

ProgressFn = Callable[[DeliveryProgress], Awaitable[None] | None]
BoardClientFactory = Callable[[str], BoardApiClient]

DEFAULT_DEMO_IMPORT_HOST = "framepromptly.demo"
DEMO_IMPORT_TTL = timedelta(hours=24)


class DeliveryStrategy(Protocol):
    async def deliver(
        self,
        result: DeliveryResult,
        target: DeliveryTarget,
        payload: DeliveryPayload,
        on_progress: ProgressFn | None = None,
    ) -> DeliveryResult:
        """Write the payload to the target and finalize ``result``."""
        ...


async def _notify(on_progress: ProgressFn | None, event: DeliveryProgress) -> None:
    if on_progress is None:
        return
    outcome = on_progress(event)
    if inspect.isawaitable(outcome):
        await outcome


class DirectApiStrategy:
    """
    Writes items straight onto a board through its REST API.

    Partial failure is reported through warnings. A batch in which every item
    failed raises a retryable ``TransientFailureError``.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        client_factory: BoardClientFactory | None = None,
        embed_mode: str = "live_embed",
        autoplay: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._credentials = credentials
        self._client_factory = client_factory or BoardApiClient
        self._embed_mode = embed_mode
        self._autoplay = autoplay
        self._clock = clock

    async def deliver(
        self,
        result: DeliveryResult,
        target: DeliveryTarget,
        payload: DeliveryPayload,
        on_progress: ProgressFn | None = None,
    ) -> DeliveryResult:
        started = self._clock()
        destination = payload.destination
        board_id = str(target.target_id)

        connection = await self._credentials.get_connection(destination)
        if connection is None:
            raise AuthFailureError(f"No active {destination.label} connection found")
        access_token = await self._credentials.get_valid_access_token(destination)
        client = self._client_factory(access_token)

        access = await client.validate_board_access(board_id)
        if not access.can_write:
            raise AuthFailureError(
                f"Cannot write to {destination.label} board: {', '.join(access.errors)}"
            )

        total = payload.item_count
        reported = 0

        async def on_item(created: int, total_items: int) -> None:
            nonlocal reported
            if created == reported:
                return
            reported = created
            await _notify(
                on_progress,
                DeliveryProgress(
                    stage=DeliveryStage.DELIVERING,
                    progress=min(90, 70 + int(20 * created / max(total_items, 1))),
                    message=f"Created {created} of {total_items} items...",
                ),
            )

        batch = await client.create_items(board_id, payload.items, on_item=on_item)
        delivered = len(batch.success)
        if total and not delivered:
            raise TransientFailureError(
                f"Failed to create any of {total} items on {destination.label} board"
            )

        result.embed_url = client.get_board_embed_url(
            board_id, embed_mode=self._embed_mode, autoplay=self._autoplay
        )
        if batch.failed:
            result.add_warning(f"Failed to create {len(batch.failed)} items")
        result.metadata.update(
            {
                "processing_time_s": round(self._clock() - started, 3),
                "batch_results": batch.summary,
            }
        )
        result.mark_success(delivered)
        logger.info(
            "Delivered %d/%d items to %s board %s",
            delivered,
            total,
            destination.value,
            board_id,
        )
        return result


class EphemeralImportStrategy:
    """
    Stages a time-limited import link through the broker.

    When the broker is unavailable a demo link is returned instead so the
    delivery still completes; the result is flagged ``metadata.fallback``.
    """

    def __init__(
        self,
        broker: ImportBroker | None,
        *,
        demo_host: str = DEFAULT_DEMO_IMPORT_HOST,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._broker = broker
        self._demo_host = demo_host
        self._clock = clock

    async def deliver(
        self,
        result: DeliveryResult,
        target: DeliveryTarget,
        payload: DeliveryPayload,
        on_progress: ProgressFn | None = None,
    ) -> DeliveryResult:
        _ = on_progress
        started = time.monotonic()
        try:
            if self._broker is None:
                raise RuntimeError("no import broker configured")
            ticket = await self._broker.create_import(
                {
                    "destination": payload.destination.value,
                    "target_id": target.target_id,
                    "prompt": payload.source_prompt,
                    "tailored_output": payload.as_dict(),
                }
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ephemeral import failed, using fallback demo URL: %s", exc)
            import_id = f"demo-{uuid.uuid4().hex[:12]}"
            result.import_url = f"https://{self._demo_host}/import/{import_id}"
            result.expires_at = self._clock() + DEMO_IMPORT_TTL
            result.metadata.update(
                {
                    "processing_time_s": round(time.monotonic() - started, 3),
                    "import_id": import_id,
                    "fallback": True,
                    "note": "Demo URL - ephemeral import service unavailable",
                }
            )
        else:
            result.import_url = ticket.import_url
            result.expires_at = ticket.expires_at
            result.metadata.update(
                {
                    "processing_time_s": round(time.monotonic() - started, 3),
                    "import_id": ticket.delivery_id,
                }
            )
        result.mark_success(payload.item_count)
        return result


class StrategyRouter:
    """Resolve the delivery strategy for a destination kind."""

    def __init__(self, *, direct: DeliveryStrategy, ephemeral: DeliveryStrategy) -> None:
        self._direct = direct
        self._ephemeral = ephemeral

    def for_destination(self, destination: Destination) -> DeliveryStrategy:
        kind = destination_kind(destination)
        match kind:
            case DirectApi():
                return self._direct
            case EphemeralImport():
                return self._ephemeral
            case _:
                assert_never(kind)

    def for_target(self, target: DeliveryTarget) -> DeliveryStrategy:
        if not isinstance(target.destination, Destination):
            raise ValueError(f"Unsupported destination: {target.destination}")
        return self.for_destination(target.destination)
