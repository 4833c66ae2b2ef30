"""Recompute scheduler: staleness, passes, concurrency guard, drift, CLI."""
import asyncio

import pytest

from trustsignal.compute import refresh
from trustsignal.compute.persistence import InMemoryScoreStore
from trustsignal.compute.refresh import ALREADY_RUNNING, RecomputeReport, RecomputeScheduler
from trustsignal.errors import EntityNotFound, StoreUnavailable
from trustsignal.models import Entity, EntityKind, EventType


def _products(store, *ids):
    entities = [Entity(kind=EntityKind.PRODUCT, id=i, name=f"Product {i}") for i in ids]
    for e in entities:
        store.add_entity(e)
    return entities


# ── Staleness ──

def test_find_stale_merges_new_evidence_and_never_scored(store, scheduler, clock, make_event, company):
    p1, p2 = _products(store, "P1", "P2")
    store.add_entity(company)
    store.add_events(p1.ref, [make_event(EventType.RECALL, 0.4)], clock.now())
    store.add_events(p2.ref, [make_event(EventType.RECALL, 0.4)], clock.now())
    scheduler.recompute_entity(p1)
    scheduler.recompute_entity(p2)

    clock.advance(60)
    store.add_events(p1.ref, [make_event(EventType.COMPLAINT, 0.7)], clock.now())

    stale = scheduler.find_stale()

    assert [e.id for e in stale[EntityKind.PRODUCT]] == ["P1"]
    assert [e.id for e in stale[EntityKind.COMPANY]] == [company.id]


def test_events_outside_lookback_are_not_stale(store, engine, clock, make_event):
    (p1,) = _products(store, "P1")
    scheduler = RecomputeScheduler(store, engine, clock=clock, lookback_hours=1)
    store.add_events(p1.ref, [make_event(EventType.RECALL, 0.4)], clock.now())
    clock.advance(60)
    scheduler.recompute_entity(p1)
    # Older than the score and older than the lookback window.
    store.add_events(p1.ref, [make_event(EventType.RECALL, 0.4)], clock.now().replace(year=2020))
    clock.advance(2 * 3600)

    assert scheduler.find_stale()[EntityKind.PRODUCT] == []


# ── Passes ──

@pytest.mark.asyncio
async def test_incremental_updates_only_stale_entities(store, scheduler, clock, make_event, company):
    p1, p2 = _products(store, "P1", "P2")
    store.add_entity(company)
    first = await scheduler.incremental()
    assert (first.products_updated, first.companies_updated) == (2, 1)

    clock.advance(60)
    store.add_events(p2.ref, [make_event(EventType.COMPLAINT, 0.5)], clock.now())
    second = await scheduler.incremental()

    assert (second.products_updated, second.companies_updated) == (1, 0)
    assert second.ok
    assert second.note is None
    assert len(store.score_history(p2.ref)) == 2
    assert len(store.score_history(p1.ref)) == 1


@pytest.mark.asyncio
async def test_full_pass_rescores_everything(store, scheduler, company):
    _products(store, "P1", "P2", "P3")
    store.add_entity(company)

    report = await scheduler.full()

    assert report.mode == "full"
    assert report.products_updated == 3
    assert report.companies_updated == 1
    assert report.finished_at >= report.started_at


@pytest.mark.asyncio
async def test_overlapping_passes_are_rejected(store, scheduler):
    _products(store, "P1", "P2")

    a, b = await asyncio.gather(scheduler.incremental(), scheduler.incremental())

    reports = sorted([a, b], key=lambda r: r.note or "")
    worked, skipped = reports
    assert worked.note is None
    assert worked.products_updated == 2
    assert skipped.note == ALREADY_RUNNING
    assert skipped.updated == 0
    assert not scheduler.running


@pytest.mark.asyncio
async def test_guard_released_after_pass(store, scheduler):
    _products(store, "P1")

    await scheduler.full()
    report = await scheduler.full()

    assert report.note is None
    assert report.products_updated == 1


@pytest.mark.asyncio
async def test_pause_between_entities_uses_clock(store, engine, clock):
    _products(store, "P1", "P2")
    scheduler = RecomputeScheduler(store, engine, clock=clock, pause_seconds=0.5)

    await scheduler.full()

    assert clock.sleeps.count(0.5) == 2


class _FlakyStore(InMemoryScoreStore):
    def __init__(self, failing_id, error):
        super().__init__()
        self.failing_id = failing_id
        self.error = error

    def events_for(self, ref):
        if ref.id == self.failing_id:
            raise self.error
        return super().events_for(ref)


@pytest.mark.asyncio
async def test_entity_errors_are_collected_not_fatal(engine, clock):
    store = _FlakyStore("BAD", RuntimeError("corrupt event"))
    _products(store, "BAD", "GOOD")
    scheduler = RecomputeScheduler(store, engine, clock=clock)

    report = await scheduler.full()

    assert report.products_updated == 1
    assert len(report.errors) == 1
    assert "BAD" in report.errors[0]
    assert not report.ok


@pytest.mark.asyncio
async def test_store_outage_halts_the_pass(engine, clock):
    store = _FlakyStore("P1", StoreUnavailable("neo4j down"))
    _products(store, "P1", "P2")
    scheduler = RecomputeScheduler(store, engine, clock=clock)

    with pytest.raises(StoreUnavailable):
        await scheduler.full()
    assert not scheduler.running


# ── Drift ──

@pytest.mark.asyncio
async def test_large_swings_are_reported_as_drift(store, scheduler, clock, make_event):
    p1, p2 = _products(store, "P1", "P2")
    await scheduler.incremental()

    clock.advance(60)
    store.add_events(p1.ref, [make_event(EventType.RECALL, 1.0) for _ in range(5)], clock.now())
    store.add_events(p2.ref, [make_event(EventType.COMPLAINT, 0.5)], clock.now())
    report = await scheduler.incremental()

    assert [d.entity_id for d in report.drift] == ["P1"]
    notice = report.drift[0]
    assert notice.previous == pytest.approx(50.0)
    assert notice.delta == pytest.approx(-12.5)
    assert report.to_dict()["drift"][0]["entityId"] == "P1"


# ── On demand ──

def test_compute_on_demand_persists(store, scheduler, product):
    store.add_entity(product)

    score = scheduler.compute_on_demand(EntityKind.PRODUCT, product.id)

    assert store.latest_score(product.ref) == score


def test_compute_on_demand_unknown_entity(scheduler):
    with pytest.raises(EntityNotFound):
        scheduler.compute_on_demand(EntityKind.COMPANY, "nobody")


# ── CLI ──

def test_cli_usage_errors_exit_2(capsys):
    assert refresh.main([]) == 2
    assert refresh.main(["sometimes"]) == 2
    assert "Usage" in capsys.readouterr().out


def test_cli_exit_code_reflects_pass_errors(monkeypatch):
    async def clean(mode):
        return RecomputeReport(mode=mode)

    async def dirty(mode):
        return RecomputeReport(mode=mode, errors=["product P1: boom"])

    monkeypatch.setattr(refresh, "run_pass", clean)
    assert refresh.main(["incremental"]) == 0

    monkeypatch.setattr(refresh, "run_pass", dirty)
    assert refresh.main(["full"]) == 1


def test_cli_ingest_collects_then_recomputes(monkeypatch, store, scoring_config, company, make_event):
    from trustsignal.clock import VirtualClock
    from trustsignal.compute import pipeline as pipeline_module
    from trustsignal.compute.cache import build_cache
    from trustsignal.config import Settings

    store.add_entity(company)
    calls = []

    class _Connector:
        async def fetch_events_for_entity(self, entity, limit=None, **filters):
            calls.append(entity.name)
            return [make_event(EventType.NEWS, 0.3)]

    real_build = pipeline_module.build_pipeline

    def build(*args, **kwargs):
        clock = VirtualClock()
        pipeline = real_build(settings=Settings(), clock=clock, store=store,
                              config=scoring_config, cache=build_cache("", clock=clock))
        pipeline.ingestor.connectors = {"gdelt": _Connector()}
        return pipeline

    monkeypatch.setattr(pipeline_module, "build_pipeline", build)

    assert refresh.main(["ingest"]) == 0
    assert calls == [company.name]
    assert len(store.events_for(company.ref)) == 1
    assert store.latest_score(company.ref) is not None
