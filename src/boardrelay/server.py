"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

FastAPI service host exposing the delivery pipeline over HTTP.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    AuthFailureError,
    DeliveryCancelledError,
    DeliveryError,
    InvalidTargetError,
    NotFoundError,
    ValidationFailedError,
)
from .pipeline import DeliveryPipeline
from .types import DeliveryOptions, DeliveryTarget


class DeliveryServiceHostError(RuntimeError):
    """Raised for invalid delivery service host setup."""


class DeliveryOptionsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delay_s: float = Field(default=1.0, ge=0.0)
    optimize_payload: bool = True
    validate_before_delivery: bool = True

    def to_options(self) -> DeliveryOptions:
        return DeliveryOptions(
            max_retries=self.max_retries,
            retry_delay_s=self.retry_delay_s,
            optimize_payload=self.optimize_payload,
            validate_before_delivery=self.validate_before_delivery,
        )


class DeliveryRequestModel(BaseModel):
    """Body of ``POST /deliveries``."""

    model_config = ConfigDict(extra="forbid")

    prompt_id: str = Field(min_length=1)
    destination: str | None = None
    target_id: str | None = None
    options: DeliveryOptionsModel | None = None


def error_status(exc: DeliveryError) -> int:
    """HTTP status for a delivery failure."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (InvalidTargetError, ValidationFailedError)):
        return 422
    if isinstance(exc, AuthFailureError):
        return 401
    if isinstance(exc, DeliveryCancelledError):
        return 409
    return 502


class DeliveryServiceHost:
    """Expose delivery operations via FastAPI endpoints."""

    def __init__(
        self,
        pipeline: DeliveryPipeline,
        *,
        service_name: str = "boardrelay",
        default_options: DeliveryOptions | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.service_name = service_name
        self.default_options = default_options or DeliveryOptions()

    def create_app(self):
        """Create and return FastAPI app exposing delivery endpoints."""
        try:
            from fastapi import FastAPI, Header, HTTPException
        except Exception as exc:  # pragma: no cover - optional runtime path
            raise DeliveryServiceHostError(
                "FastAPI is required to host delivery service endpoints"
            ) from exc

        app = FastAPI(title=self.service_name)

        @app.post("/deliveries")
        async def create_delivery(
            body: DeliveryRequestModel,
            x_actor_id: str | None = Header(default=None),
        ) -> dict[str, Any]:
            options = body.options.to_options() if body.options else self.default_options
            try:
                result = await self.pipeline.execute_delivery(
                    body.prompt_id,
                    DeliveryTarget(destination=body.destination, target_id=body.target_id),
                    options,
                    actor_id=x_actor_id,
                )
            except DeliveryError as exc:
                raise HTTPException(status_code=error_status(exc), detail=str(exc)) from exc
            return result.to_record(x_actor_id)

        @app.delete("/deliveries/{delivery_id}")
        async def cancel_delivery(delivery_id: str) -> dict[str, Any]:
            if not self.pipeline.cancel_delivery(delivery_id):
                raise HTTPException(
                    status_code=404,
                    detail=f"Delivery {delivery_id} is not active",
                )
            return {"delivery_id": delivery_id, "cancelled": True}

        @app.get("/deliveries/active")
        async def active_deliveries() -> dict[str, Any]:
            return {"deliveries": self.pipeline.get_active_deliveries()}

        return app
