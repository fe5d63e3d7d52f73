"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Default payload normalizer: tailored content -> delivery payload, plus the
destination optimizers and structural validation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from .types import (
    DeliveryItem,
    DeliveryPayload,
    Destination,
    ItemStyle,
    ItemType,
    PayloadValidation,
    Position,
    Size,
    TailoredContent,
)

logger = logging.getLogger("boardrelay.payloads")

_FIGJAM_COLORS = {
    "idea": "#FFE066",
    "hmw": "#FF6B66",
    "insight": "#66D9FF",
    "action": "#66FF66",
    "question": "#FF9B66",
}

_FIGJAM_DEMO_ITEMS: list[dict[str, Any]] = [
    {"id": "demo-1", "type": "sticky", "text": "Sample Insight: User needs better navigation", "category": "insight"},
    {"id": "demo-2", "type": "sticky", "text": "How might we improve user onboarding?", "category": "hmw"},
    {"id": "demo-3", "type": "sticky", "text": "Idea: Add interactive tutorial", "category": "idea"},
    {"id": "demo-4", "type": "sticky", "text": "Action: Prototype new flow", "category": "action"},
    {"id": "demo-5", "type": "sticky", "text": "Question: What metrics should we track?", "category": "question"},
]

# (max text length, max width, max height, max items)
_BOARD_LIMITS = {
    Destination.MIRO: (80, 200.0, 150.0, 50),
    Destination.FIGJAM: (100, 180.0, 120.0, 40),
}
_FIGMA_MIN_SIZE = (200.0, 120.0)
_FIGMA_MAX_ITEMS = 20


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _summary(content: dict[str, Any] | None, count: int) -> str:
    if content and content.get("summary"):
        return f"{content['summary']} ({count} items)"
    return f"Generated {count} items for delivery"


class DefaultPayloadNormalizer:
    """Payload normalizer used when no external one is configured."""

    async def generate_delivery_payload(
        self,
        tailored: TailoredContent,
        target_id: str,
        source_prompt: str,
    ) -> DeliveryPayload:
        items = self.normalize_items(tailored)
        payload = DeliveryPayload(
            id=f"payload-{uuid.uuid4().hex}",
            destination=tailored.destination,
            target_id=target_id,
            items=tuple(items),
            summary=_summary(tailored.content, len(items)),
            source_prompt=source_prompt,
            layout_hints=self.layout_hints(tailored),
        )
        logger.debug(
            "Generated payload %s for %s with %d items",
            payload.id,
            payload.destination.value,
            payload.item_count,
        )
        return payload

    def normalize_items(self, tailored: TailoredContent) -> list[DeliveryItem]:
        match tailored.destination:
            case Destination.MIRO:
                return self._normalize_miro(tailored.content)
            case Destination.FIGJAM:
                return self._normalize_figjam(tailored.content)
            case Destination.FIGMA:
                return self._normalize_figma(tailored.content)
        return []

    def _normalize_miro(self, content: dict[str, Any]) -> list[DeliveryItem]:
        out: list[DeliveryItem] = []
        for index, raw in enumerate(content.get("items") or []):
            if not isinstance(raw, dict):
                continue
            position = raw.get("position") if isinstance(raw.get("position"), dict) else {}
            size = raw.get("size") if isinstance(raw.get("size"), dict) else {}
            theme = raw.get("theme")
            out.append(
                DeliveryItem(
                    id=str(raw.get("id") or f"miro-item-{index}"),
                    type=_miro_type(raw.get("type")),
                    text=str(raw.get("text") or ""),
                    style=ItemStyle(
                        fill_color=theme if isinstance(theme, str) and theme.startswith("#") else "#FFE066",
                        font_size=14,
                    ),
                    position=Position(
                        x=_number(position.get("x"), (index % 4) * 200 + 100),
                        y=_number(position.get("y"), (index // 4) * 150 + 100),
                    ),
                    size=Size(
                        width=_number(size.get("width"), 180),
                        height=_number(size.get("height"), 120),
                    ),
                    cluster_id=raw.get("cluster"),
                )
            )
        return out

    def _normalize_figjam(self, content: dict[str, Any]) -> list[DeliveryItem]:
        raw_items = _first_item_list(content)
        if not raw_items:
            logger.warning("FigJam content has no usable items, using demo items")
            raw_items = list(_FIGJAM_DEMO_ITEMS)

        out: list[DeliveryItem] = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                continue
            category = raw.get("category") or raw.get("type") or "default"
            text = raw.get("text") or raw.get("content") or raw.get("description") or f"Item {index + 1}"
            out.append(
                DeliveryItem(
                    id=str(raw.get("id") or f"figjam-item-{index}"),
                    type=_figjam_type(raw.get("type") or "sticky"),
                    text=str(text),
                    style=ItemStyle(fill_color=_FIGJAM_COLORS.get(str(category), "#E6E6E6"), font_size=12),
                    position=Position(x=(index % 5) * 180 + 50, y=(index // 5) * 140 + 50),
                    size=Size(width=160, height=100),
                    cluster_id=raw.get("category") or raw.get("cluster") or raw.get("group"),
                )
            )
        return out

    def _normalize_figma(self, content: dict[str, Any]) -> list[DeliveryItem]:
        out: list[DeliveryItem] = []
        for index, block in enumerate(content.get("uiBlocks") or []):
            if not isinstance(block, dict):
                continue
            sizing = block.get("sizing") if isinstance(block.get("sizing"), dict) else {}
            out.append(
                DeliveryItem(
                    id=str(block.get("id") or f"figma-block-{index}"),
                    type=ItemType.SHAPE,
                    text=str(block.get("title") or ""),
                    style=ItemStyle(fill_color="#FFFFFF", font_size=16),
                    position=Position(x=(index % 3) * 300 + 100, y=(index // 3) * 200 + 100),
                    size=Size(
                        width=_number(sizing.get("preferredWidth"), 280),
                        height=_number(sizing.get("preferredHeight"), 180),
                    ),
                    metadata={
                        "description": block.get("description"),
                        "copy": block.get("copy"),
                        "priority": block.get("priority"),
                    },
                )
            )
        return out

    def layout_hints(self, tailored: TailoredContent) -> dict[str, Any]:
        layout = tailored.content.get("layout")
        layout = layout if isinstance(layout, dict) else {}
        match tailored.destination:
            case Destination.MIRO:
                return {
                    "columns": layout.get("columns") or 4,
                    "spacing": layout.get("spacing") or 20,
                    "max_items": 50,
                    "arrangement": "clusters",
                }
            case Destination.FIGJAM:
                return {"columns": 5, "spacing": 20, "max_items": 40, "arrangement": "flow"}
            case Destination.FIGMA:
                return {
                    "columns": layout.get("columns") or 3,
                    "spacing": layout.get("spacing") or 40,
                    "max_items": 20,
                    "arrangement": "grid",
                }
        return {}

    async def optimize_payload_for_destination(self, payload: DeliveryPayload) -> DeliveryPayload:
        items = list(payload.items)
        if payload.destination in _BOARD_LIMITS:
            max_text, max_w, max_h, max_items = _BOARD_LIMITS[payload.destination]
            items = [
                item.evolve(
                    text=truncate_text(item.text, max_text),
                    size=Size(width=min(item.size.width, max_w), height=min(item.size.height, max_h)),
                )
                for item in items[:max_items]
            ]
        elif payload.destination is Destination.FIGMA:
            min_w, min_h = _FIGMA_MIN_SIZE
            items = [
                item.evolve(size=Size(width=max(item.size.width, min_w), height=max(item.size.height, min_h)))
                for item in items[:_FIGMA_MAX_ITEMS]
            ]
        return payload.with_items(tuple(items), summary=_summary(None, len(items)))

    async def validate_delivery_payload(self, payload: DeliveryPayload) -> PayloadValidation:
        errors: list[str] = []
        warnings: list[str] = []

        if not payload.items:
            errors.append("Payload contains no items")
        if not payload.target_id:
            errors.append("Payload target ID is required")

        seen: set[str] = set()
        for index, item in enumerate(payload.items):
            if item.id in seen:
                errors.append(f"Item {index}: duplicate id '{item.id}'")
            seen.add(item.id)
            if item.type in (ItemType.STICKY, ItemType.TEXT) and not item.text.strip():
                errors.append(f"Item {index}: text is required")
            if item.size.width <= 0 or item.size.height <= 0:
                errors.append(f"Item {index}: size must be positive")

        match payload.destination:
            case Destination.MIRO:
                if len(payload.items) > 50:
                    warnings.append("Large number of items may impact Miro board performance")
                for index, item in enumerate(payload.items):
                    if len(item.text) > 96:
                        warnings.append(f"Item {index}: Text exceeds Miro sticky note recommended length")
            case Destination.FIGJAM:
                if len(payload.items) > 40:
                    warnings.append("Large number of items may clutter workshop interface")
                if not any(item.type is ItemType.TEXT for item in payload.items):
                    warnings.append("No facilitation instructions found - consider adding guidance text")
            case Destination.FIGMA:
                if len(payload.items) > 20:
                    warnings.append("Too many UI blocks may overwhelm the design system")
                for index, item in enumerate(payload.items):
                    if not item.metadata.get("copy"):
                        warnings.append(f"Item {index}: Missing microcopy - important for UI components")

        return PayloadValidation(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


def _miro_type(value: Any) -> ItemType:
    match value:
        case "shape":
            return ItemType.SHAPE
        case "text":
            return ItemType.TEXT
        case _:
            return ItemType.STICKY


def _figjam_type(value: Any) -> ItemType:
    match value:
        case "text" | "instruction":
            return ItemType.TEXT
        case _:
            return ItemType.STICKY


def _first_item_list(content: dict[str, Any]) -> list[Any]:
    for key in ("items", "stickies", "notes", "elements"):
        value = content.get(key)
        if isinstance(value, list) and value:
            return value
    for value in content.values():
        if isinstance(value, list) and value:
            return value
    return []
