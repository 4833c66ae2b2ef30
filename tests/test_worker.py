"""arq worker wiring for the periodic recompute and ingestion jobs."""
import pytest

from trustsignal.clock import VirtualClock
from trustsignal.compute.cache import build_cache
from trustsignal.compute.pipeline import build_pipeline
from trustsignal.config import Settings
from trustsignal.errors import EntityNotFound
from trustsignal.models import CanonicalEvent, Entity, EntityKind, EventType
from trustsignal.workers import worker_settings
from trustsignal.workers.worker_settings import WorkerSettings


class _StubConnector:
    def __init__(self, events):
        self.events = events
        self.calls = []

    async def fetch_events_for_entity(self, entity, limit=None, **filters):
        self.calls.append(entity.name)
        return self.events


def _pipeline(store, scoring_config, clock):
    return build_pipeline(
        settings=Settings(), clock=clock, store=store,
        config=scoring_config, cache=build_cache("", clock=clock),
    )


def test_cron_schedule():
    recompute, ingest = WorkerSettings.cron_jobs

    assert recompute.coroutine is worker_settings.recompute_incremental
    assert recompute.hour == {0, 6, 12, 18}
    assert recompute.minute == {0}
    assert recompute.unique is True

    assert ingest.coroutine is worker_settings.ingest_all
    assert ingest.hour == {5, 11, 17, 23}
    assert ingest.minute == {30}
    assert ingest.unique is True


def test_ingest_entity_is_an_on_demand_job():
    assert worker_settings.ingest_entity in WorkerSettings.functions


@pytest.mark.asyncio
async def test_jobs_use_the_context_pipeline(store, scoring_config):
    clock = VirtualClock()
    store.add_entity(Entity(kind=EntityKind.COMPANY, id="acme", name="Acme Corp"))
    ctx = {"pipeline": _pipeline(store, scoring_config, clock)}

    first = await worker_settings.recompute_incremental(ctx)
    second = await worker_settings.recompute_incremental(ctx)
    score = await worker_settings.compute_entity(ctx, "company", "acme")

    assert first["companiesUpdated"] == 1
    assert second["companiesUpdated"] == 0
    assert score["entityRef"] == {"kind": "company", "id": "acme"}

    await worker_settings.shutdown(ctx)


@pytest.mark.asyncio
async def test_ingest_entity_feeds_the_next_incremental_pass(store, scoring_config):
    clock = VirtualClock()
    store.add_entity(Entity(kind=EntityKind.COMPANY, id="acme", name="Acme Corp"))
    pipeline = _pipeline(store, scoring_config, clock)
    stub = _StubConnector([
        CanonicalEvent(id="cfpb_1", source="cfpb", type=EventType.COMPLAINT,
                       severity=0.7, title="Billing dispute", parsed_at=clock.now()),
    ])
    pipeline.ingestor.connectors = {"cfpb": stub}
    ctx = {"pipeline": pipeline}

    await worker_settings.recompute_incremental(ctx)
    clock.advance(60)
    report = await worker_settings.ingest_entity(ctx, "company", "acme")
    after = await worker_settings.recompute_incremental(ctx)

    assert report == {"entityId": "acme", "eventsAdded": 1, "perProvider": {"cfpb": 1}, "errors": {}}
    assert stub.calls == ["Acme Corp"]
    assert after["companiesUpdated"] == 1

    await worker_settings.shutdown(ctx)


@pytest.mark.asyncio
async def test_ingest_entity_unknown_entity(store, scoring_config):
    clock = VirtualClock()
    pipeline = _pipeline(store, scoring_config, clock)
    pipeline.ingestor.connectors = {"cfpb": _StubConnector([])}

    with pytest.raises(EntityNotFound):
        await worker_settings.ingest_entity({"pipeline": pipeline}, "product", "nope")

    await pipeline.shutdown()


@pytest.mark.asyncio
async def test_ingest_all_sweeps_products_and_companies(store, scoring_config, product, company):
    clock = VirtualClock()
    store.add_entity(product)
    store.add_entity(company)
    pipeline = _pipeline(store, scoring_config, clock)
    stub = _StubConnector([])
    pipeline.ingestor.connectors = {"gdelt": stub}
    ctx = {"pipeline": pipeline}

    summary = await worker_settings.ingest_all(ctx)

    assert summary == {"entities": 2, "eventsAdded": 0, "errors": {}}
    assert stub.calls == [product.name, company.name]

    await worker_settings.shutdown(ctx)
