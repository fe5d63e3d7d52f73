from __future__ import annotations

import asyncio
import json

import pytest

from boardrelay import (
    DeliveryOptions,
    DeliveryPipeline,
    DeliveryResult,
    DeliverySettings,
    DeliveryTarget,
    Destination,
    InMemoryCredentialProvider,
    InMemoryPromptStore,
    InMemoryResultSink,
    NoOpDeliveryMetrics,
    NotFoundError,
    NullResultSink,
    PrometheusDeliveryMetrics,
    RedisResultSink,
    create_metrics_from_env,
    create_pipeline_from_env,
    create_result_sink_from_env,
    persist_result,
)


def run_async(coro):
    return asyncio.run(coro)


class _FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def set(self, key, value):
        self.values[key] = value

    async def get(self, key):
        raw = self.values.get(key)
        return raw.encode("utf-8") if raw is not None else None


def _result() -> DeliveryResult:
    result = DeliveryResult(
        id="delivery-1",
        destination=Destination.MIRO,
        target_id="board-1",
        payload_id="payload-1",
        total_items=2,
    )
    result.mark_success(2)
    return result


def test_persist_result_writes_flat_record():
    async def scenario() -> None:
        sink = InMemoryResultSink()
        assert await persist_result(sink, _result(), "user-7") is True

        record = await sink.get("delivery-1")
        assert record is not None
        assert record["user_id"] == "user-7"
        assert record["destination"] == "miro"
        assert record["status"] == "success"
        assert record["delivered_items"] == 2
        assert record["warnings"] is None

    run_async(scenario())


def test_persist_result_skips_without_actor_and_swallows_failures():
    class _Broken:
        async def upsert(self, record):
            raise RuntimeError("write failed")

    async def scenario() -> None:
        sink = InMemoryResultSink()
        assert await persist_result(sink, _result(), None) is False
        assert await sink.list_records() == []
        assert await persist_result(None, _result(), "user-7") is False
        assert await persist_result(_Broken(), _result(), "user-7") is False

    run_async(scenario())


def test_redis_sink_stores_json_per_delivery():
    async def scenario() -> None:
        redis = _FakeRedis()
        sink = RedisResultSink(redis, prefix="tests")

        await sink.upsert(_result().to_record("user-7"))

        stored = json.loads(redis.values["tests:deliveries:delivery-1"])
        assert stored["status"] == "success"
        assert (await sink.get("delivery-1"))["user_id"] == "user-7"
        assert await sink.get("missing") is None

    run_async(scenario())


def test_null_sink_accepts_records():
    run_async(NullResultSink().upsert({"id": "x"}))


def test_delivery_result_rejects_out_of_range_counts():
    result = _result()
    with pytest.raises(ValueError):
        result.mark_success(3)


def test_sink_factory_defaults_to_in_memory(monkeypatch):
    monkeypatch.delenv("BOARDRELAY_SINK_BACKEND", raising=False)
    assert isinstance(create_result_sink_from_env(), InMemoryResultSink)


def test_sink_factory_null_backend(monkeypatch):
    monkeypatch.setenv("BOARDRELAY_SINK_BACKEND", "null")
    assert isinstance(create_result_sink_from_env(), NullResultSink)


def test_sink_factory_redis_with_injected_client(monkeypatch):
    monkeypatch.setenv("BOARDRELAY_SINK_BACKEND", "redis")
    monkeypatch.setenv("BOARDRELAY_REDIS_PREFIX", "tests:relay")
    injected = _FakeRedis()

    sink = create_result_sink_from_env(redis_client=injected)

    assert isinstance(sink, RedisResultSink)
    assert sink._redis is injected  # noqa: SLF001
    assert sink._prefix == "tests:relay"  # noqa: SLF001


def test_sink_factory_invalid_backend_raises(monkeypatch):
    monkeypatch.setenv("BOARDRELAY_SINK_BACKEND", "bad-backend")
    with pytest.raises(ValueError, match="Unknown BOARDRELAY_SINK_BACKEND"):
        create_result_sink_from_env()


def test_metrics_factory(monkeypatch):
    monkeypatch.delenv("BOARDRELAY_METRICS_BACKEND", raising=False)
    assert isinstance(create_metrics_from_env(), NoOpDeliveryMetrics)

    monkeypatch.setenv("BOARDRELAY_METRICS_BACKEND", "statsd")
    with pytest.raises(ValueError, match="Unknown BOARDRELAY_METRICS_BACKEND"):
        create_metrics_from_env()


def test_prometheus_metrics_counts_with_labels():
    prometheus_client = pytest.importorskip("prometheus_client")
    registry = prometheus_client.CollectorRegistry()
    metrics = PrometheusDeliveryMetrics(namespace="tests", registry=registry)

    metrics.incr("deliveries_started_total", tags={"destination": "miro"})
    metrics.incr("deliveries_started_total", 2, tags={"destination": "miro"})

    value = registry.get_sample_value(
        "tests_deliveries_started_total", {"destination": "miro"}
    )
    assert value == 3.0

    (family,) = [m for m in registry.collect() if m.name == "tests_deliveries_started"]
    assert family.documentation == "Deliveries accepted by the pipeline"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("BOARDRELAY_MAX_RETRIES", "5")
    monkeypatch.setenv("BOARDRELAY_RETRY_DELAY_S", "0.25")
    monkeypatch.setenv("BOARDRELAY_OPTIMIZE_PAYLOAD", "false")
    monkeypatch.setenv("BOARDRELAY_BROKER_URL", "https://fn.example/orchestrate")
    monkeypatch.delenv("BOARDRELAY_VALIDATE_BEFORE_DELIVERY", raising=False)

    settings = DeliverySettings.from_env()

    assert settings.broker_url == "https://fn.example/orchestrate"
    assert settings.board_app_host == "miro.com"
    assert settings.to_options() == DeliveryOptions(
        max_retries=5,
        retry_delay_s=0.25,
        optimize_payload=False,
        validate_before_delivery=True,
    )


def test_pipeline_factory_wires_a_pipeline(monkeypatch):
    monkeypatch.delenv("BOARDRELAY_SINK_BACKEND", raising=False)
    monkeypatch.delenv("BOARDRELAY_METRICS_BACKEND", raising=False)

    pipeline = create_pipeline_from_env(
        prompt_store=InMemoryPromptStore(),
        credentials=InMemoryCredentialProvider(),
        settings=DeliverySettings(broker_url=None, generator_url=None),
    )

    assert isinstance(pipeline, DeliveryPipeline)
    assert pipeline.get_active_deliveries() == []

    async def scenario() -> None:
        with pytest.raises(NotFoundError, match="Prompt missing not found"):
            await pipeline.execute_delivery("missing", DeliveryTarget("figma", "file-1"))

    run_async(scenario())
