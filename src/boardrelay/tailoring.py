"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Destination tailoring: reuse stored output, ask the AI generator, or fall back
to deterministic destination templates.
"""

from __future__ import annotations

import logging
from typing import Any, assert_never

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .contracts import ContentGenerator, PromptRecord
from .errors import ContentGenerationError
from .types import Destination, TailoredContent, utc_now

logger = logging.getLogger("boardrelay.tailoring")


class GeneratedContentResponse(BaseModel):
    """Envelope returned by the remote content generator."""

    model_config = ConfigDict(extra="allow")

    success: bool
    content: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


def existing_output(prompt: PromptRecord, destination: Destination) -> TailoredContent | None:
    """Return the prompt's stored output when it already has populated items."""
    output = prompt.output
    if not isinstance(output, dict):
        return None
    content = output.get("content")
    if not isinstance(content, dict):
        return None
    items = content.get("items")
    if not isinstance(items, list) or not items:
        return None
    return TailoredContent(
        destination=destination,
        content=content,
        metadata=dict(output.get("metadata") or {}),
        summary=str(output.get("summary") or "Generated content for delivery"),
    )


def build_generation_request(prompt: PromptRecord, destination: Destination) -> dict[str, Any]:
    return {
        "prompt": prompt.content,
        "destination": destination.label,
        "context": {
            "framework": prompt.context.framework or "Unknown",
            "stage": prompt.context.stage or "Unknown",
            "tool": prompt.context.tool or "Unknown",
        },
        "variables": dict(prompt.variables),
    }


async def generate_with_ai(
    generator: ContentGenerator,
    prompt: PromptRecord,
    destination: Destination,
) -> TailoredContent:
    """Call the generator; raise ``ContentGenerationError`` on any unusable answer."""
    try:
        raw = await generator.generate(build_generation_request(prompt, destination))
    except ContentGenerationError:
        raise
    except Exception as exc:
        raise ContentGenerationError(f"Function call failed: {exc}") from exc

    try:
        response = GeneratedContentResponse.model_validate(raw)
    except ValidationError as exc:
        raise ContentGenerationError(f"Malformed generator response: {exc}") from exc

    if not response.success:
        raise ContentGenerationError(f"AI generation failed: {response.error or 'Unknown error'}")
    if not response.content:
        raise ContentGenerationError("AI generation returned no content")

    item_count = response.metadata.get("itemCount") or item_count_of(response.content)
    return TailoredContent(
        destination=destination,
        content=response.content,
        metadata={
            "generated_at": response.metadata.get("generatedAt"),
            "model": response.metadata.get("model"),
            "item_count": item_count,
        },
        summary=f"AI-generated {destination.value} content with {item_count} items",
    )


async def tailor_for_destination(
    prompt: PromptRecord,
    destination: Destination,
    generator: ContentGenerator | None,
) -> TailoredContent:
    """
    Produce destination-shaped content for a prompt. Never raises for AI
    unavailability: generator failures yield deterministic fallback content
    flagged with ``metadata["fallback"] = True``.
    """
    reused = existing_output(prompt, destination)
    if reused is not None:
        logger.debug("Reusing stored output for prompt %s", prompt.id)
        return reused

    if generator is not None:
        try:
            return await generate_with_ai(generator, prompt, destination)
        except ContentGenerationError as exc:
            logger.warning(
                "AI content generation failed for prompt %s, using fallback content: %s",
                prompt.id,
                exc,
            )

    content = fallback_content(destination, prompt)
    return TailoredContent(
        destination=destination,
        content=content,
        metadata={
            "generated_at": utc_now().isoformat(),
            "fallback": True,
            "item_count": item_count_of(content),
        },
        summary=f"Fallback {destination.value} content (AI generation unavailable)",
    )


def item_count_of(content: dict[str, Any]) -> int:
    if isinstance(content.get("items"), list):
        return len(content["items"])
    if isinstance(content.get("uiBlocks"), list):
        return len(content["uiBlocks"])
    return 0


# ---------------------------------------------------------------------------
# Fallback templates
# ---------------------------------------------------------------------------


def fallback_content(destination: Destination, prompt: PromptRecord) -> dict[str, Any]:
    """Fixed per-destination template populated with framework/stage/tool names."""
    framework = prompt.context.framework or "Design Process"
    stage = prompt.context.stage or "Research"
    tool = prompt.context.tool or "Analysis"

    match destination:
        case Destination.MIRO:
            return _miro_fallback(framework, stage, tool)
        case Destination.FIGJAM:
            return _figjam_fallback(framework, stage, tool)
        case Destination.FIGMA:
            return _figma_fallback(framework, stage, tool)
        case _:
            assert_never(destination)


def _miro_fallback(framework: str, stage: str, tool: str) -> dict[str, Any]:
    return {
        "boardSummary": f"{framework} - {stage} board for {tool}",
        "items": [
            {"id": "item-1", "type": "sticky_note", "text": f"{tool} insight 1", "theme": "#fff9b1", "cluster": "insights", "position": {"row": 0, "column": 0}},
            {"id": "item-2", "type": "sticky_note", "text": f"{tool} insight 2", "theme": "#a6ccf5", "cluster": "insights", "position": {"row": 0, "column": 1}},
            {"id": "item-3", "type": "sticky_note", "text": f"{tool} action item", "theme": "#d5f692", "cluster": "actions", "position": {"row": 1, "column": 0}},
            {"id": "item-4", "type": "text", "text": f"{stage} Stage Instructions", "theme": "#ffffff", "cluster": "instructions", "position": {"row": 0, "column": 2}},
            {"id": "item-5", "type": "sticky_note", "text": f"Key finding from {tool}", "theme": "#ffcc99", "cluster": "findings", "position": {"row": 1, "column": 1}},
        ],
        "clusters": [
            {"name": "insights", "description": "Key insights discovered", "itemIds": ["item-1", "item-2"]},
            {"name": "actions", "description": "Next steps to take", "itemIds": ["item-3"]},
            {"name": "findings", "description": "Research findings", "itemIds": ["item-5"]},
        ],
        "layout": {"columns": 3, "spacing": 20, "readingInstructions": "Review insights, then actions"},
    }


def _figjam_fallback(framework: str, stage: str, tool: str) -> dict[str, Any]:
    return {
        "workshopTitle": f"{framework}: {stage} Workshop",
        "items": [
            {"id": "item-1", "type": "sticky", "text": f"How might we improve {tool}?", "category": "hmw", "cluster": "questions"},
            {"id": "item-2", "type": "sticky", "text": f"{tool} opportunity", "category": "idea", "cluster": "opportunities"},
            {"id": "item-3", "type": "sticky", "text": f"User needs {tool} solution", "category": "insight", "cluster": "needs"},
            {"id": "item-4", "type": "sticky", "text": f"Test {tool} approach", "category": "action", "cluster": "next-steps"},
            {"id": "item-5", "type": "sticky", "text": f"What if we enhance {tool}?", "category": "question", "cluster": "questions"},
        ],
        "facilitationScript": [
            {"step": 1, "instruction": "Review the problem context", "duration": "5 minutes", "materials": ["sticky notes", "markers"]},
            {"step": 2, "instruction": "Generate ideas silently", "duration": "10 minutes", "materials": ["sticky notes"]},
            {"step": 3, "instruction": "Share and cluster ideas", "duration": "15 minutes", "materials": ["board space"]},
        ],
        "clusters": [
            {"name": "questions", "criteria": "Open questions and HMWs", "itemIds": ["item-1", "item-5"]},
            {"name": "needs", "criteria": "User needs and insights", "itemIds": ["item-3"]},
            {"name": "next-steps", "criteria": "Actions to take", "itemIds": ["item-4"]},
        ],
        "assumptions": [
            f"{tool} is important for users",
            f"{stage} stage needs attention",
            "Team has necessary resources",
        ],
    }


def _figma_fallback(framework: str, stage: str, tool: str) -> dict[str, Any]:
    return {
        "designSystem": f"{framework} UI Design System",
        "uiBlocks": [
            {
                "id": "block-1",
                "title": f"{tool} Header",
                "type": "Hero",
                "description": f"Main header for {tool} interface",
                "copy": {"heading": f"{tool} Dashboard", "subheading": f"{stage} insights", "cta": "Get Started"},
                "sizing": {"preferredWidth": 800, "preferredHeight": 300, "padding": 24, "spacing": 16},
                "priority": 1,
            },
            {
                "id": "block-2",
                "title": f"{tool} Card",
                "type": "Card",
                "description": f"Content card for {tool} data",
                "copy": {"heading": "Insight Card", "body": f"{tool} analysis results", "cta": "View Details"},
                "sizing": {"preferredWidth": 300, "preferredHeight": 200, "padding": 16, "spacing": 12},
                "priority": 2,
            },
            {
                "id": "block-3",
                "title": "Navigation",
                "type": "Navigation",
                "description": "Main navigation component",
                "copy": {"heading": "Menu", "labels": [stage, tool, "Settings"]},
                "sizing": {"preferredWidth": 1200, "preferredHeight": 60, "padding": 12, "spacing": 24},
                "priority": 3,
            },
        ],
        "layout": {"columns": 2, "spacing": 32, "ordering": ["block-1", "block-2", "block-3"]},
        "contentStyle": {
            "tone": "Professional and clear",
            "readingLevel": "Intermediate",
            "accessibility": {
                "contrastRequirements": "WCAG AA compliant",
                "labelClarity": ["Use clear, descriptive labels", "Avoid jargon"],
                "altTextGuidelines": "Describe function and content",
            },
        },
    }
