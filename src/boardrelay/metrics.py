"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for delivery pipeline instrumentation.

Every pipeline counter is labelled with the target ``destination``
(``miro``, ``figjam`` or ``figma``).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

COUNTER_DOCUMENTATION: dict[str, str] = {
    "deliveries_started_total": "Deliveries accepted by the pipeline",
    "deliveries_succeeded_total": "Deliveries that reached the completing stage",
    "deliveries_failed_total": "Deliveries aborted by an unrecovered error",
    "deliveries_cancelled_total": "Deliveries stopped by a cancellation request",
    "tailoring_fallbacks_total": "Tailoring stages that fell back to a fixed template",
    "import_fallbacks_total": "Ephemeral imports that fell back to a demo link",
}


class DeliveryMetrics(Protocol):
    """Minimal metrics interface for delivery instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpDeliveryMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


class PrometheusDeliveryMetrics:
    """
    Prometheus-backed delivery metrics adapter.

    Requires `prometheus_client` package.
    """

    def __init__(self, *, namespace: str = "boardrelay", registry: object | None = None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusDeliveryMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._Counter = Counter
        self._namespace = namespace
        self._registry = registry if registry is not None else REGISTRY
        self._counters: dict[str, object] = {}

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        label_names = tuple(sorted((tags or {}).keys()))
        key = f"{name}|{','.join(label_names)}"
        counter = self._counters.get(key)
        if counter is None:
            counter = self._Counter(
                name=name,
                documentation=COUNTER_DOCUMENTATION.get(name, f"Delivery counter {name}"),
                namespace=self._namespace,
                labelnames=label_names,
                registry=self._registry,
            )
            self._counters[key] = counter

        if label_names:
            label_values = [str((tags or {})[label]) for label in label_names]
            counter.labels(*label_values).inc(value)  # type: ignore[attr-defined]
        else:
            counter.inc(value)  # type: ignore[attr-defined]
