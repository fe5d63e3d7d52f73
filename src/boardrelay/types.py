"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Data model shared by the pipeline, strategies, clients and sinks.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeAlias, assert_never

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Destination(str, Enum):
    """Collaboration surfaces content can be delivered to."""

    MIRO = "miro"
    FIGJAM = "figjam"
    FIGMA = "figma"

    @property
    def label(self) -> str:
        """Display name understood by the AI content generator."""
        return _DESTINATION_LABELS[self]


_DESTINATION_LABELS = {
    Destination.MIRO: "Miro",
    Destination.FIGJAM: "FigJam",
    Destination.FIGMA: "Figma",
}


# ---------------------------------------------------------------------------
# Destination kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DirectApi:
    """Destination written to directly through its REST API."""

    destination: Destination


@dataclass(frozen=True, slots=True)
class EphemeralImport:
    """Destination reached through a broker-staged, time-limited import link."""

    destination: Destination


DestinationKind: TypeAlias = DirectApi | EphemeralImport


def destination_kind(destination: Destination) -> DestinationKind:
    """Map a destination onto its delivery capability."""
    match destination:
        case Destination.MIRO:
            return DirectApi(destination)
        case Destination.FIGJAM | Destination.FIGMA:
            return EphemeralImport(destination)
        case _:
            assert_never(destination)


# ---------------------------------------------------------------------------
# Targets and items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeliveryTarget:
    """
    Where a delivery goes.

    Attributes:
        destination: Destination surface. Known strings are coerced to
            ``Destination``; anything else is kept so target validation can
            report it.
        target_id: Board id (Miro) or file id (FigJam/Figma).
    """

    destination: Destination | str | None
    target_id: str | None

    def __post_init__(self) -> None:
        value = self.destination
        if isinstance(value, str) and not isinstance(value, Destination):
            try:
                object.__setattr__(self, "destination", Destination(value.strip().lower()))
            except ValueError:
                pass


class ItemType(str, Enum):
    STICKY = "sticky"
    TEXT = "text"
    SHAPE = "shape"


@dataclass(frozen=True, slots=True)
class ItemStyle:
    fill_color: str | None = None
    color: str | None = None
    font_size: int | None = None


@dataclass(frozen=True, slots=True)
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True, slots=True)
class Size:
    width: float = 180.0
    height: float = 120.0


@dataclass(frozen=True, slots=True)
class DeliveryItem:
    """
    Atomic visual object placed on a destination surface.

    Attributes:
        id: Stable item id within the payload.
        type: Abstract item type mapped to a destination creation call.
        text: Visible text content.
        style: Colours and font size.
        position: Centre point on the board.
        size: Geometry.
        cluster_id: Optional logical grouping.
        metadata: Destination-specific extras (for example Figma microcopy).
    """

    id: str
    type: ItemType
    text: str = ""
    style: ItemStyle = field(default_factory=ItemStyle)
    position: Position = field(default_factory=Position)
    size: Size = field(default_factory=Size)
    cluster_id: str | None = None
    metadata: dict[str, JSONValue] = field(default_factory=dict)

    def evolve(self, **changes: Any) -> DeliveryItem:
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class DeliveryPayload:
    """Normalized, destination-agnostic item list produced once per delivery."""

    id: str
    destination: Destination
    target_id: str
    items: tuple[DeliveryItem, ...]
    summary: str
    source_prompt: str
    layout_hints: dict[str, JSONValue] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def with_items(self, items: tuple[DeliveryItem, ...], *, summary: str) -> DeliveryPayload:
        """Return an optimized variant that keeps the payload id."""
        return replace(self, items=tuple(items), summary=summary)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "destination": self.destination.value,
            "target_id": self.target_id,
            "summary": self.summary,
            "source_prompt": self.source_prompt,
            "layout_hints": dict(self.layout_hints),
            "items": [_item_as_dict(item) for item in self.items],
        }


def _item_as_dict(item: DeliveryItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "type": item.type.value,
        "text": item.text,
        "style": {
            "fill_color": item.style.fill_color,
            "color": item.style.color,
            "font_size": item.style.font_size,
        },
        "position": {"x": item.position.x, "y": item.position.y},
        "size": {"width": item.size.width, "height": item.size.height},
        "cluster_id": item.cluster_id,
        "metadata": dict(item.metadata),
    }


# ---------------------------------------------------------------------------
# Results and progress
# ---------------------------------------------------------------------------


class DeliveryStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class DeliveryResult:
    """
    Outcome of one delivery.

    Created at the delivering stage with ``status=processing`` and updated in
    place by the destination strategy until it is finalized and persisted.
    ``0 <= delivered_items <= total_items`` holds at all times.
    """

    id: str
    destination: Destination
    target_id: str
    payload_id: str
    total_items: int
    status: DeliveryStatus = DeliveryStatus.PROCESSING
    delivered_items: int = 0
    embed_url: str | None = None
    import_url: str | None = None
    expires_at: datetime | None = None
    warnings: list[str] | None = None
    error: str | None = None
    metadata: dict[str, JSONValue] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self._check_counts(self.delivered_items)

    @classmethod
    def start(cls, delivery_id: str, target: DeliveryTarget, payload: DeliveryPayload) -> DeliveryResult:
        return cls(
            id=delivery_id,
            destination=payload.destination,
            target_id=str(target.target_id),
            payload_id=payload.id,
            total_items=payload.item_count,
        )

    def _check_counts(self, delivered: int) -> None:
        if not 0 <= delivered <= self.total_items:
            raise ValueError(
                f"delivered_items must be within 0..{self.total_items}, got {delivered}"
            )

    def mark_success(self, delivered_items: int) -> None:
        self._check_counts(delivered_items)
        self.delivered_items = delivered_items
        self.status = DeliveryStatus.SUCCESS
        self.touch()

    def add_warning(self, message: str) -> None:
        if self.warnings is None:
            self.warnings = []
        self.warnings.append(message)

    def touch(self) -> None:
        self.updated_at = utc_now()

    def elapsed_s(self) -> float:
        return max(0.0, (utc_now() - self.created_at).total_seconds())

    def to_record(self, actor_id: str | None = None) -> dict[str, Any]:
        """Flatten into the persisted delivery record keyed by ``id``."""
        return {
            "id": self.id,
            "user_id": actor_id,
            "destination": self.destination.value,
            "target_id": self.target_id,
            "payload_id": self.payload_id,
            "status": self.status.value,
            "delivered_items": self.delivered_items,
            "total_items": self.total_items,
            "embed_url": self.embed_url,
            "import_url": self.import_url,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "error": self.error,
            "warnings": list(self.warnings) if self.warnings else None,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class DeliveryStage(str, Enum):
    INITIALIZING = "initializing"
    TAILORING = "tailoring"
    GENERATING = "generating"
    VALIDATING = "validating"
    DELIVERING = "delivering"
    COMPLETING = "completing"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class DeliveryProgress:
    """Ephemeral progress event; percentages are UI hints."""

    stage: DeliveryStage
    progress: int
    message: str
    details: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class DeliveryOptions:
    """
    Per-delivery pipeline options.

    Attributes:
        max_retries: Extra attempts after the first for retryable stages.
        retry_delay_s: Base backoff delay; the delivering stage doubles it.
        optimize_payload: Run the destination optimizer before delivery.
        validate_before_delivery: Reject structurally invalid payloads.
    """

    max_retries: int = 3
    retry_delay_s: float = 1.0
    optimize_payload: bool = True
    validate_before_delivery: bool = True


@dataclass(slots=True)
class RateLimitState:
    """Rate-limit headroom observed from destination response headers."""

    remaining: int = 100
    reset_epoch: float = 0.0
    limit: int = 100


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TailoredContent:
    """Destination-shaped structured content produced by the tailoring stage."""

    destination: Destination
    content: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)
    summary: str = ""

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.get("fallback"))


@dataclass(frozen=True, slots=True)
class FailedItem:
    item: DeliveryItem
    error: str


@dataclass(slots=True)
class BatchResult:
    """Outcome of sequential item creation on a board."""

    success: list[dict[str, Any]] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.success) + len(self.failed),
            "successful": len(self.success),
            "failed": len(self.failed),
        }


@dataclass(frozen=True, slots=True)
class BoardAccess:
    can_read: bool
    can_write: bool
    board_name: str = ""
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PayloadValidation:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
