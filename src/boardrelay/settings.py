"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Delivery settings and explicit environment loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .types import DeliveryOptions


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class DeliverySettings:
    """Explicit settings used by the pipeline, clients and sinks."""

    max_retries: int = 3
    retry_delay_s: float = 1.0
    optimize_payload: bool = True
    validate_before_delivery: bool = True

    board_api_base_url: str = "https://api.miro.com/v2"
    board_app_host: str = "miro.com"
    embed_mode: str = "live_embed"
    request_timeout_s: float = 30.0
    rate_limit_floor: int = 5
    item_delay_s: float = 0.1

    generator_url: str | None = None
    broker_url: str | None = None
    service_api_key: str | None = None
    demo_import_host: str = "framepromptly.demo"

    @staticmethod
    def from_env() -> "DeliverySettings":
        """Load settings from environment variables."""
        return DeliverySettings(
            max_retries=int(os.getenv("BOARDRELAY_MAX_RETRIES", "3")),
            retry_delay_s=float(os.getenv("BOARDRELAY_RETRY_DELAY_S", "1.0")),
            optimize_payload=_env_bool("BOARDRELAY_OPTIMIZE_PAYLOAD", True),
            validate_before_delivery=_env_bool("BOARDRELAY_VALIDATE_BEFORE_DELIVERY", True),
            board_api_base_url=os.getenv("BOARDRELAY_BOARD_API_BASE_URL", "https://api.miro.com/v2"),
            board_app_host=os.getenv("BOARDRELAY_BOARD_APP_HOST", "miro.com"),
            embed_mode=os.getenv("BOARDRELAY_EMBED_MODE", "live_embed"),
            request_timeout_s=float(os.getenv("BOARDRELAY_REQUEST_TIMEOUT_S", "30")),
            rate_limit_floor=int(os.getenv("BOARDRELAY_RATE_LIMIT_FLOOR", "5")),
            item_delay_s=float(os.getenv("BOARDRELAY_ITEM_DELAY_S", "0.1")),
            generator_url=os.getenv("BOARDRELAY_GENERATOR_URL"),
            broker_url=os.getenv("BOARDRELAY_BROKER_URL"),
            service_api_key=os.getenv("BOARDRELAY_SERVICE_API_KEY"),
            demo_import_host=os.getenv("BOARDRELAY_DEMO_IMPORT_HOST", "framepromptly.demo"),
        )

    def to_options(self) -> DeliveryOptions:
        """Per-delivery defaults derived from these settings."""
        return DeliveryOptions(
            max_retries=self.max_retries,
            retry_delay_s=self.retry_delay_s,
            optimize_payload=self.optimize_payload,
            validate_before_delivery=self.validate_before_delivery,
        )
