"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting delivery backends from environment variables.
"""

from __future__ import annotations

import os
from typing import Any

from .clients.board import BoardApiClient
from .clients.broker import HttpImportBroker
from .clients.generator import HttpContentGenerator
from .clients.transport import HttpTransport, UrllibTransport
from .contracts import ActorProvider, CredentialProvider, PromptStore, ResultSink
from .metrics import DeliveryMetrics, NoOpDeliveryMetrics, PrometheusDeliveryMetrics
from .pipeline import DeliveryPipeline
from .settings import DeliverySettings
from .sinks import InMemoryResultSink, NullResultSink, RedisResultSink
from .strategies import DirectApiStrategy, EphemeralImportStrategy, StrategyRouter


def _env_first(*names: str, default: str | None = None) -> str | None:
    """
    Return the first non-empty environment variable in `names`.

    Args:
        *names: Environment variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def create_result_sink_from_env(*, redis_client: Any | None = None) -> ResultSink:
    """
    Create a result sink from `BOARDRELAY_SINK_*` environment variables.

    Backends:
    - `inmemory` (default)
    - `null`
    - `redis`

    Redis resolution:
    - Uses the provided `redis_client` when supplied.
    - Otherwise builds a client from `BOARDRELAY_REDIS_URL` (or `REDIS_URL`),
      defaulting to a local server.
    """
    backend = (_env_first("BOARDRELAY_SINK_BACKEND", default="inmemory") or "inmemory").lower()

    if backend in ("mem", "memory", "inmemory", "in_memory"):
        return InMemoryResultSink()

    if backend in ("null", "none", "disabled"):
        return NullResultSink()

    if backend in ("redis",):
        prefix = _env_first("BOARDRELAY_REDIS_PREFIX", default="boardrelay") or "boardrelay"

        client = redis_client
        if client is None:
            try:
                import redis.asyncio as redis
            except ModuleNotFoundError as exc:  # pragma: no cover
                raise RuntimeError(
                    "Redis sink backend requires `redis` to be installed."
                ) from exc

            url = _env_first(
                "BOARDRELAY_REDIS_URL", "REDIS_URL", default="redis://localhost:6379/0"
            )
            client = redis.Redis.from_url(url)

        return RedisResultSink(client, prefix=prefix)

    raise ValueError(f"Unknown BOARDRELAY_SINK_BACKEND: {backend}")


def create_metrics_from_env() -> DeliveryMetrics:
    """
    Create a metrics adapter from `BOARDRELAY_METRICS_BACKEND`.

    Backends: `noop` (default) and `prometheus`.
    """
    backend = (_env_first("BOARDRELAY_METRICS_BACKEND", default="noop") or "noop").lower()

    if backend in ("noop", "none", "disabled"):
        return NoOpDeliveryMetrics()

    if backend in ("prometheus", "prom"):
        namespace = _env_first("BOARDRELAY_METRICS_NAMESPACE", default="boardrelay") or "boardrelay"
        return PrometheusDeliveryMetrics(namespace=namespace)

    raise ValueError(f"Unknown BOARDRELAY_METRICS_BACKEND: {backend}")


def create_pipeline_from_env(
    *,
    prompt_store: PromptStore,
    credentials: CredentialProvider,
    actor_provider: ActorProvider | None = None,
    redis_client: Any | None = None,
    transport: HttpTransport | None = None,
    settings: DeliverySettings | None = None,
) -> DeliveryPipeline:
    """
    Wire a `DeliveryPipeline` from `BOARDRELAY_*` environment variables.

    The content generator and import broker are only attached when their
    URLs are configured; without them the pipeline uses fallback content and
    demo import links.
    """
    cfg = settings or DeliverySettings.from_env()
    http = transport or UrllibTransport()

    generator = None
    if cfg.generator_url:
        generator = HttpContentGenerator(
            cfg.generator_url,
            api_key=cfg.service_api_key,
            transport=http,
            timeout_s=max(cfg.request_timeout_s, 60.0),
        )

    broker = None
    if cfg.broker_url:
        broker = HttpImportBroker(
            cfg.broker_url,
            api_key=cfg.service_api_key,
            transport=http,
            timeout_s=cfg.request_timeout_s,
        )

    def board_client(access_token: str) -> BoardApiClient:
        return BoardApiClient(
            access_token,
            transport=http,
            base_url=cfg.board_api_base_url,
            app_host=cfg.board_app_host,
            rate_limit_floor=cfg.rate_limit_floor,
            item_delay_s=cfg.item_delay_s,
            timeout_s=cfg.request_timeout_s,
        )

    router = StrategyRouter(
        direct=DirectApiStrategy(
            credentials, client_factory=board_client, embed_mode=cfg.embed_mode
        ),
        ephemeral=EphemeralImportStrategy(broker, demo_host=cfg.demo_import_host),
    )
    return DeliveryPipeline(
        prompt_store=prompt_store,
        credentials=credentials,
        generator=generator,
        router=router,
        sink=create_result_sink_from_env(redis_client=redis_client),
        actor_provider=actor_provider,
        metrics=create_metrics_from_env(),
    )
