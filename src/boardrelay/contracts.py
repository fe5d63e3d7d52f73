"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Contracts for the collaborators the delivery pipeline consumes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from .errors import NotFoundError
from .types import (
    DeliveryPayload,
    Destination,
    PayloadValidation,
    TailoredContent,
)


@dataclass(frozen=True, slots=True)
class PromptContext:
    """Framework, stage and tool names the prompt was authored under."""

    framework: str | None = None
    stage: str | None = None
    tool: str | None = None


@dataclass(frozen=True, slots=True)
class PromptRecord:
    """
    Prompt as seen by the delivery pipeline.

    Attributes:
        id: Prompt id.
        content: Prompt text.
        variables: Template variables the prompt was rendered with.
        context: Authoring context.
        output: Previously generated structured output, if any. Reused when
            ``output["content"]["items"]`` is a non-empty list.
    """

    id: str
    content: str
    variables: dict[str, Any] = field(default_factory=dict)
    context: PromptContext = field(default_factory=PromptContext)
    output: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Connection:
    """Stored OAuth connection to a destination."""

    destination: Destination
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    account_id: str | None = None


@dataclass(frozen=True, slots=True)
class ImportTicket:
    """Staged ephemeral import returned by the broker."""

    import_url: str
    expires_at: datetime
    delivery_id: str | None = None


class PromptStore(Protocol):
    async def get(self, prompt_id: str) -> PromptRecord:
        """Return the prompt or raise ``NotFoundError``."""
        ...


class CredentialProvider(Protocol):
    async def get_connection(self, destination: Destination) -> Connection | None:
        """Return the active connection for a destination, if any."""
        ...

    async def get_valid_access_token(self, destination: Destination) -> str:
        """Return a non-expired access token, refreshing when needed."""
        ...


class ContentGenerator(Protocol):
    async def generate(self, request: dict[str, Any]) -> dict[str, Any]:
        """
        Generate destination-specific content.

        ``request`` holds ``prompt``, ``destination``, ``context`` and
        ``variables``. The response is ``{"success": True, "content": ...,
        "metadata": {...}}`` or ``{"success": False, "error": ...}``.
        """
        ...


class PayloadNormalizer(Protocol):
    async def generate_delivery_payload(
        self, tailored: TailoredContent, target_id: str, source_prompt: str
    ) -> DeliveryPayload: ...

    async def optimize_payload_for_destination(
        self, payload: DeliveryPayload
    ) -> DeliveryPayload: ...

    async def validate_delivery_payload(
        self, payload: DeliveryPayload
    ) -> PayloadValidation: ...


class ImportBroker(Protocol):
    async def create_import(self, request: dict[str, Any]) -> ImportTicket:
        """Stage an import for ``{destination, target_id, prompt, tailored_output}``."""
        ...


class ResultSink(Protocol):
    async def upsert(self, record: dict[str, Any]) -> None:
        """Insert or replace the delivery record keyed by ``record["id"]``."""
        ...


ActorProvider = Callable[[], Awaitable[str | None] | str | None]


class InMemoryPromptStore:
    """Prompt store backed by a dict; used for embedding and tests."""

    def __init__(self, prompts: list[PromptRecord] | None = None) -> None:
        self._prompts: dict[str, PromptRecord] = {p.id: p for p in prompts or []}
        self._lock = asyncio.Lock()

    async def put(self, prompt: PromptRecord) -> None:
        async with self._lock:
            self._prompts[prompt.id] = prompt

    async def get(self, prompt_id: str) -> PromptRecord:
        async with self._lock:
            prompt = self._prompts.get(prompt_id)
        if prompt is None:
            raise NotFoundError(f"Prompt {prompt_id} not found")
        return prompt
