"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cooperative cancellation tokens and the active-delivery registry.
"""

from __future__ import annotations

import asyncio

from .errors import DeliveryCancelledError


class CancellationToken:
    """
    One-shot cancellation signal owned by a single delivery.

    Cancellation is cooperative: holders poll ``raise_if_cancelled`` at stage
    and attempt boundaries. Work already awaiting I/O is not interrupted.
    """

    __slots__ = ("_event", "reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DeliveryCancelledError()

    async def wait(self) -> None:
        await self._event.wait()


class DeliveryRegistry:
    """
    Delivery id -> token map for in-flight deliveries.

    Entries are inserted when a delivery starts and removed in its cleanup
    block. This is the only state shared between concurrent deliveries.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}

    def register(self, delivery_id: str) -> CancellationToken:
        if delivery_id in self._tokens:
            raise ValueError(f"Delivery '{delivery_id}' is already registered")
        token = CancellationToken()
        self._tokens[delivery_id] = token
        return token

    def unregister(self, delivery_id: str) -> CancellationToken | None:
        return self._tokens.pop(delivery_id, None)

    def cancel(self, delivery_id: str, reason: str | None = None) -> bool:
        token = self._tokens.pop(delivery_id, None)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def get(self, delivery_id: str) -> CancellationToken | None:
        return self._tokens.get(delivery_id)

    def active_ids(self) -> list[str]:
        return list(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, delivery_id: object) -> bool:
        return delivery_id in self._tokens
