"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Delivery orchestration for AI-generated workshop content.

Takes a stored prompt, tailors its content for a collaboration surface
(Miro, FigJam or Figma), normalizes it into a delivery payload and either
writes it straight onto a board or stages a time-limited import link.

Quick start::

    from boardrelay import (
        DeliveryPipeline,
        DeliveryTarget,
        InMemoryCredentialProvider,
        InMemoryPromptStore,
    )

    pipeline = DeliveryPipeline(
        prompt_store=InMemoryPromptStore([prompt]),
        credentials=InMemoryCredentialProvider([miro_connection]),
    )
    result = await pipeline.execute_delivery(
        prompt.id,
        DeliveryTarget(destination="miro", target_id="uXjVOabc123="),
    )
    print(result.embed_url)
"""

from .cancellation import CancellationToken, DeliveryRegistry
from .contracts import (
    Connection,
    ImportTicket,
    InMemoryPromptStore,
    PromptContext,
    PromptRecord,
)
from .credentials import InMemoryCredentialProvider, OAuthTokenRefresher
from .errors import (
    AuthFailureError,
    BrokerUnavailableError,
    ContentGenerationError,
    DeliveryCancelledError,
    DeliveryError,
    DestinationApiError,
    InvalidTargetError,
    NotFoundError,
    RetryExhaustedError,
    TransientFailureError,
    ValidationFailedError,
)
from .factory import (
    create_metrics_from_env,
    create_pipeline_from_env,
    create_result_sink_from_env,
)
from .metrics import DeliveryMetrics, NoOpDeliveryMetrics, PrometheusDeliveryMetrics
from .payloads import DefaultPayloadNormalizer
from .pipeline import DeliveryPipeline
from .retry import call_with_retry, is_retryable
from .settings import DeliverySettings
from .sinks import InMemoryResultSink, NullResultSink, RedisResultSink, persist_result
from .strategies import (
    DeliveryStrategy,
    DirectApiStrategy,
    EphemeralImportStrategy,
    StrategyRouter,
)
from .types import (
    DeliveryItem,
    DeliveryOptions,
    DeliveryPayload,
    DeliveryProgress,
    DeliveryResult,
    DeliveryStage,
    DeliveryStatus,
    DeliveryTarget,
    Destination,
    DirectApi,
    EphemeralImport,
    ItemType,
    destination_kind,
)

__all__ = [
    "DeliveryPipeline",
    "DeliveryTarget",
    "DeliveryOptions",
    "DeliveryResult",
    "DeliveryStatus",
    "DeliveryProgress",
    "DeliveryStage",
    "DeliveryPayload",
    "DeliveryItem",
    "ItemType",
    "Destination",
    "DirectApi",
    "EphemeralImport",
    "destination_kind",
    "CancellationToken",
    "DeliveryRegistry",
    "PromptRecord",
    "PromptContext",
    "Connection",
    "ImportTicket",
    "InMemoryPromptStore",
    "InMemoryCredentialProvider",
    "OAuthTokenRefresher",
    "DefaultPayloadNormalizer",
    "DeliveryStrategy",
    "DirectApiStrategy",
    "EphemeralImportStrategy",
    "StrategyRouter",
    "InMemoryResultSink",
    "NullResultSink",
    "RedisResultSink",
    "persist_result",
    "DeliveryMetrics",
    "NoOpDeliveryMetrics",
    "PrometheusDeliveryMetrics",
    "DeliverySettings",
    "create_result_sink_from_env",
    "create_metrics_from_env",
    "create_pipeline_from_env",
    "call_with_retry",
    "is_retryable",
    "DeliveryError",
    "NotFoundError",
    "InvalidTargetError",
    "ValidationFailedError",
    "AuthFailureError",
    "TransientFailureError",
    "DeliveryCancelledError",
    "RetryExhaustedError",
    "ContentGenerationError",
    "BrokerUnavailableError",
    "DestinationApiError",
]


# Lazy import for the HTTP service host
def __getattr__(name: str):
    """Lazily expose the FastAPI service host, which needs the `server` extra."""
    if name == "DeliveryServiceHost":
        from .server import DeliveryServiceHost

        return DeliveryServiceHost
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
