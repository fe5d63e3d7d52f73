"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Delivery pipeline orchestrator.

Runs one delivery through six strictly sequential stages:

1. initializing: fetch the prompt and validate the target
2. tailoring: reuse stored output or generate destination content
3. generating: normalize tailored content into a delivery payload
4. validating: optimize and validate the payload
5. delivering: hand the payload to the destination strategy
6. completing: persist the result (best-effort)

Cancellation is checked before every stage and every retry attempt.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar, cast

from .cancellation import CancellationToken, DeliveryRegistry
from .contracts import (
    ActorProvider,
    ContentGenerator,
    CredentialProvider,
    ImportBroker,
    PayloadNormalizer,
    PromptRecord,
    PromptStore,
    ResultSink,
)
from .errors import (
    DeliveryCancelledError,
    InvalidTargetError,
    ValidationFailedError,
)
from .metrics import DeliveryMetrics, NoOpDeliveryMetrics
from .payloads import DefaultPayloadNormalizer
from .retry import SleepFn, call_with_retry
from .sinks import persist_result
from .strategies import (
    DirectApiStrategy,
    EphemeralImportStrategy,
    ProgressFn,
    StrategyRouter,
)
from .tailoring import tailor_for_destination
from .types import (
    DeliveryOptions,
    DeliveryPayload,
    DeliveryProgress,
    DeliveryResult,
    DeliveryStage,
    DeliveryTarget,
    Destination,
    DirectApi,
    TailoredContent,
    destination_kind,
)

T = TypeVar("T")

logger = logging.getLogger("boardrelay.pipeline")


class DeliveryPipeline:
    """
    Orchestrates deliveries from a stored prompt to a collaboration surface.

    Each pipeline owns a ``DeliveryRegistry`` of in-flight deliveries so they
    can be listed and cancelled. Any number of deliveries may run
    concurrently on one event loop; they share only the registry.
    """

    def __init__(
        self,
        *,
        prompt_store: PromptStore,
        credentials: CredentialProvider,
        generator: ContentGenerator | None = None,
        normalizer: PayloadNormalizer | None = None,
        broker: ImportBroker | None = None,
        router: StrategyRouter | None = None,
        sink: ResultSink | None = None,
        actor_provider: ActorProvider | None = None,
        metrics: DeliveryMetrics | None = None,
        registry: DeliveryRegistry | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._prompts = prompt_store
        self._credentials = credentials
        self._generator = generator
        self._normalizer = normalizer or DefaultPayloadNormalizer()
        self._router = router or StrategyRouter(
            direct=DirectApiStrategy(credentials),
            ephemeral=EphemeralImportStrategy(broker),
        )
        self._sink = sink
        self._actor_provider = actor_provider
        self._metrics = metrics or NoOpDeliveryMetrics()
        self._registry = registry or DeliveryRegistry()
        self._sleep = sleep

    @property
    def registry(self) -> DeliveryRegistry:
        return self._registry

    async def execute_delivery(
        self,
        prompt_id: str,
        target: DeliveryTarget,
        options: DeliveryOptions | None = None,
        on_progress: ProgressFn | None = None,
        *,
        actor_id: str | None = None,
    ) -> DeliveryResult:
        """
        Run the full pipeline for one prompt and target.

        ``actor_id`` overrides the configured actor provider when persisting
        the result.

        Raises:
            NotFoundError: The prompt does not exist.
            InvalidTargetError: The target failed validation.
            ValidationFailedError: The payload failed validation.
            AuthFailureError: Destination credentials are missing or rejected.
            DeliveryCancelledError: The delivery was cancelled.
            RetryExhaustedError: A retryable stage kept failing.
        """
        opts = options or DeliveryOptions()
        delivery_id = f"delivery-{uuid.uuid4().hex}"
        token = self._registry.register(delivery_id)
        destination = _destination_tag(target)
        self._metrics.incr("deliveries_started_total", tags={"destination": destination})
        logger.info("Starting delivery %s to %s", delivery_id[:17], destination)

        try:
            result = await self._run_stages(
                delivery_id, prompt_id, target, opts, on_progress, token, actor_id
            )
        except Exception as exc:
            if isinstance(exc, DeliveryCancelledError):
                self._metrics.incr("deliveries_cancelled_total", tags={"destination": destination})
                logger.info("Delivery %s cancelled", delivery_id[:17])
            else:
                self._metrics.incr("deliveries_failed_total", tags={"destination": destination})
                logger.error("Delivery %s failed: %s", delivery_id[:17], exc)
            await self._emit(
                on_progress,
                DeliveryProgress(
                    stage=DeliveryStage.ERROR,
                    progress=0,
                    message=str(exc) or "Delivery failed",
                    details={"delivery_id": delivery_id, "error_type": type(exc).__name__},
                ),
            )
            raise
        finally:
            self._registry.unregister(delivery_id)

        self._metrics.incr("deliveries_succeeded_total", tags={"destination": destination})
        return result

    def cancel_delivery(self, delivery_id: str) -> bool:
        """Signal cancellation; True only when the delivery was still active."""
        cancelled = self._registry.cancel(delivery_id, reason="cancelled by caller")
        if cancelled:
            logger.info("Cancellation requested for delivery %s", delivery_id[:17])
        return cancelled

    def get_active_deliveries(self) -> list[str]:
        return self._registry.active_ids()

    # -- stages -------------------------------------------------------------

    async def _run_stages(
        self,
        delivery_id: str,
        prompt_id: str,
        target: DeliveryTarget,
        opts: DeliveryOptions,
        on_progress: ProgressFn | None,
        token: CancellationToken,
        actor_id: str | None,
    ) -> DeliveryResult:
        # 1. initializing
        token.raise_if_cancelled()
        await self._emit(
            on_progress,
            DeliveryProgress(DeliveryStage.INITIALIZING, 5, "Initializing delivery pipeline..."),
        )
        prompt = await self._prompts.get(prompt_id)
        await self.validate_target(target)
        destination = cast(Destination, target.destination)
        target_id = str(target.target_id)

        # 2. tailoring
        token.raise_if_cancelled()
        await self._emit(
            on_progress,
            DeliveryProgress(
                DeliveryStage.TAILORING, 15, f"Tailoring content for {destination.value}..."
            ),
        )
        tailored = await self._retry(
            lambda: tailor_for_destination(prompt, destination, self._generator),
            opts,
            token,
            label="tailoring",
        )
        if tailored.is_fallback:
            self._metrics.incr("tailoring_fallbacks_total", tags={"destination": destination.value})

        # 3. generating
        token.raise_if_cancelled()
        await self._emit(
            on_progress,
            DeliveryProgress(DeliveryStage.GENERATING, 35, "Generating delivery payload..."),
        )
        payload = await self._retry(
            lambda: self._generate_payload(tailored, target_id, prompt),
            opts,
            token,
            label="payload generation",
        )

        # 4. validating
        token.raise_if_cancelled()
        payload = await self._validate(payload, opts, on_progress)

        # 5. delivering
        token.raise_if_cancelled()
        await self._emit(
            on_progress,
            DeliveryProgress(DeliveryStage.DELIVERING, 70, f"Delivering to {destination.value}..."),
        )
        strategy = self._router.for_destination(destination)
        result = await call_with_retry(
            lambda: strategy.deliver(
                DeliveryResult.start(delivery_id, target, payload),
                target,
                payload,
                lambda event: self._emit(on_progress, event),
            ),
            max_retries=opts.max_retries,
            base_delay_s=opts.retry_delay_s * 2,
            token=token,
            sleep=self._sleep,
            label="delivery",
        )
        if result.metadata.get("fallback"):
            self._metrics.incr("import_fallbacks_total", tags={"destination": destination.value})

        # 6. completing
        token.raise_if_cancelled()
        await self._emit(
            on_progress,
            DeliveryProgress(DeliveryStage.COMPLETING, 95, "Completing delivery..."),
        )
        await persist_result(self._sink, result, actor_id or await self._resolve_actor())
        await self._emit(
            on_progress,
            DeliveryProgress(DeliveryStage.COMPLETING, 100, "Delivery completed successfully!"),
        )
        logger.info(
            "Delivery %s completed: %d/%d items",
            delivery_id[:17],
            result.delivered_items,
            result.total_items,
        )
        return result

    async def validate_target(self, target: DeliveryTarget) -> None:
        """Collect every target violation and raise them together."""
        violations: list[str] = []
        destination = target.destination
        if not destination:
            violations.append("Destination is required")
        elif not isinstance(destination, Destination):
            violations.append(f"Unsupported destination: {destination}")
        if not target.target_id or not str(target.target_id).strip():
            violations.append("Target ID is required")

        if isinstance(destination, Destination) and target.target_id:
            if isinstance(destination_kind(destination), DirectApi):
                connection = await self._credentials.get_connection(destination)
                if connection is None:
                    violations.append(f"{destination.label} connection required")

        if violations:
            raise InvalidTargetError(violations)

    async def _generate_payload(
        self, tailored: TailoredContent, target_id: str, prompt: PromptRecord
    ) -> DeliveryPayload:
        return await self._normalizer.generate_delivery_payload(tailored, target_id, prompt.content)

    async def _validate(
        self,
        payload: DeliveryPayload,
        opts: DeliveryOptions,
        on_progress: ProgressFn | None,
    ) -> DeliveryPayload:
        if opts.optimize_payload:
            await self._emit(
                on_progress,
                DeliveryProgress(DeliveryStage.VALIDATING, 50, "Optimizing payload for destination..."),
            )
            payload = await self._normalizer.optimize_payload_for_destination(payload)

        if opts.validate_before_delivery:
            validation = await self._normalizer.validate_delivery_payload(payload)
            for warning in validation.warnings:
                logger.debug("Payload %s warning: %s", payload.id, warning)
            if not validation.is_valid:
                raise ValidationFailedError(list(validation.errors))
        return payload

    async def _retry(
        self,
        operation: Callable[[], Awaitable[T]],
        opts: DeliveryOptions,
        token: CancellationToken,
        *,
        label: str,
    ) -> T:
        return await call_with_retry(
            operation,
            max_retries=opts.max_retries,
            base_delay_s=opts.retry_delay_s,
            token=token,
            sleep=self._sleep,
            label=label,
        )

    # -- callbacks ----------------------------------------------------------

    async def _emit(self, on_progress: ProgressFn | None, event: DeliveryProgress) -> None:
        if on_progress is None:
            return
        try:
            outcome = on_progress(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:  # noqa: BLE001
            logger.exception("Progress callback failed at stage %s", event.stage.value)

    async def _resolve_actor(self) -> str | None:
        if self._actor_provider is None:
            return None
        try:
            actor = self._actor_provider()
            if inspect.isawaitable(actor):
                actor = await actor
        except Exception:  # noqa: BLE001
            logger.exception("Actor lookup failed, result will not be persisted")
            return None
        return actor or None


def _destination_tag(target: DeliveryTarget) -> str:
    destination = target.destination
    if isinstance(destination, Destination):
        return destination.value
    return str(destination or "unknown")

