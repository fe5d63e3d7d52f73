from __future__ import annotations

import asyncio

from boardrelay import DefaultPayloadNormalizer, DeliveryItem, Destination, ItemType
from boardrelay.payloads import truncate_text
from boardrelay.types import DeliveryPayload, Size, TailoredContent


def run_async(coro):
    return asyncio.run(coro)


def _payload(destination: Destination, items: list[DeliveryItem], target_id: str = "t-1") -> DeliveryPayload:
    return DeliveryPayload(
        id="payload-1",
        destination=destination,
        target_id=target_id,
        items=tuple(items),
        summary="s",
        source_prompt="prompt",
    )


def test_miro_items_are_laid_out_on_a_four_column_grid():
    async def scenario() -> None:
        tailored = TailoredContent(
            destination=Destination.MIRO,
            content={
                "summary": "Board",
                "items": [
                    {"id": f"m{n}", "type": "sticky_note", "text": f"note {n}", "theme": "#a6ccf5"}
                    for n in range(5)
                ]
                + [{"id": "h", "type": "text", "text": "Heading"}],
            },
        )

        payload = await DefaultPayloadNormalizer().generate_delivery_payload(tailored, "board-1", "src")

        assert payload.id.startswith("payload-")
        assert payload.item_count == 6
        assert payload.summary == "Board (6 items)"
        assert payload.source_prompt == "src"
        first, fifth, heading = payload.items[0], payload.items[4], payload.items[5]
        assert (first.position.x, first.position.y) == (100, 100)
        assert (fifth.position.x, fifth.position.y) == (100, 250)
        assert first.style.fill_color == "#a6ccf5"
        assert heading.type is ItemType.TEXT
        assert payload.layout_hints["arrangement"] == "clusters"

    run_async(scenario())


def test_figjam_finds_items_under_alternate_keys_and_colours_by_category():
    async def scenario() -> None:
        tailored = TailoredContent(
            destination=Destination.FIGJAM,
            content={"stickies": [{"content": "HMW help?", "category": "hmw"}, {"text": "Plain"}]},
        )

        payload = await DefaultPayloadNormalizer().generate_delivery_payload(tailored, "file-1", "src")

        assert [item.text for item in payload.items] == ["HMW help?", "Plain"]
        assert payload.items[0].style.fill_color == "#FF6B66"
        assert payload.items[1].style.fill_color == "#E6E6E6"
        assert (payload.items[1].size.width, payload.items[1].size.height) == (160, 100)

    run_async(scenario())


def test_figjam_without_items_uses_demo_items():
    async def scenario() -> None:
        tailored = TailoredContent(destination=Destination.FIGJAM, content={"title": "nothing"})
        payload = await DefaultPayloadNormalizer().generate_delivery_payload(tailored, "file-1", "src")
        assert payload.item_count == 5
        assert payload.items[0].id == "demo-1"

    run_async(scenario())


def test_figma_blocks_become_shapes_with_microcopy_metadata():
    async def scenario() -> None:
        tailored = TailoredContent(
            destination=Destination.FIGMA,
            content={
                "uiBlocks": [
                    {
                        "id": "b1",
                        "title": "Hero",
                        "copy": {"heading": "Hi"},
                        "sizing": {"preferredWidth": 800, "preferredHeight": 300},
                        "priority": 1,
                    }
                ]
            },
        )

        payload = await DefaultPayloadNormalizer().generate_delivery_payload(tailored, "file-1", "src")

        block = payload.items[0]
        assert block.type is ItemType.SHAPE
        assert (block.size.width, block.size.height) == (800, 300)
        assert block.metadata["copy"] == {"heading": "Hi"}

    run_async(scenario())


def test_optimizer_truncates_miro_text_and_caps_items():
    async def scenario() -> None:
        items = [
            DeliveryItem(id=f"i{n}", type=ItemType.STICKY, text="x" * 120, size=Size(400, 400))
            for n in range(60)
        ]
        original = _payload(Destination.MIRO, items)

        optimized = await DefaultPayloadNormalizer().optimize_payload_for_destination(original)

        assert optimized.id == original.id
        assert optimized.item_count == 50
        assert len(optimized.items[0].text) == 80
        assert optimized.items[0].text.endswith("...")
        assert (optimized.items[0].size.width, optimized.items[0].size.height) == (200, 150)
        assert optimized.summary == "Generated 50 items for delivery"

    run_async(scenario())


def test_optimizer_enforces_figma_minimum_size():
    async def scenario() -> None:
        items = [DeliveryItem(id="a", type=ItemType.SHAPE, text="t", size=Size(100, 50))]
        optimized = await DefaultPayloadNormalizer().optimize_payload_for_destination(
            _payload(Destination.FIGMA, items)
        )
        assert (optimized.items[0].size.width, optimized.items[0].size.height) == (200, 120)

    run_async(scenario())


def test_validation_collects_structural_errors():
    async def scenario() -> None:
        items = [
            DeliveryItem(id="a", type=ItemType.STICKY, text="ok"),
            DeliveryItem(id="a", type=ItemType.TEXT, text="  "),
        ]

        result = await DefaultPayloadNormalizer().validate_delivery_payload(
            _payload(Destination.MIRO, items, target_id="")
        )

        assert result.is_valid is False
        assert "Payload target ID is required" in result.errors
        assert "Item 1: duplicate id 'a'" in result.errors
        assert "Item 1: text is required" in result.errors

    run_async(scenario())


def test_validation_of_empty_payload_fails():
    async def scenario() -> None:
        result = await DefaultPayloadNormalizer().validate_delivery_payload(
            _payload(Destination.FIGJAM, [])
        )
        assert result.errors == ("Payload contains no items",)

    run_async(scenario())


def test_figma_validation_warns_on_missing_microcopy():
    async def scenario() -> None:
        items = [DeliveryItem(id="a", type=ItemType.SHAPE, text="Card")]
        result = await DefaultPayloadNormalizer().validate_delivery_payload(
            _payload(Destination.FIGMA, items)
        )
        assert result.is_valid is True
        assert result.warnings == ("Item 0: Missing microcopy - important for UI components",)

    run_async(scenario())


def test_truncate_text():
    assert truncate_text("short", 10) == "short"
    assert truncate_text("abcdefghijk", 8) == "abcde..."
