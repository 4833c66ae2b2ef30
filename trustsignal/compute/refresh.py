"""
TrustSignal — Recompute Scheduler
Keeps every entity's latest Score reasonably fresh.

Modes:
    incremental — stale entities only
    full        — every known entity

An entity is stale when it has events created inside the lookback window
that are newer than its latest Score, or when it has never been scored.
Products and companies are resolved independently.

One pass at a time per scheduler instance: an overlapping call returns
immediately with an "already running" note and zero updates.

After a pass, each updated entity's two most recent Scores are compared
and swings larger than the drift threshold are logged as notifications.

Run manually:
    python -m trustsignal.compute.refresh incremental
    python -m trustsignal.compute.refresh full
    python -m trustsignal.compute.refresh ingest      # collect evidence, then incremental
    python -m trustsignal.compute.refresh periodic    # arq worker, every 6 hours
"""
import asyncio
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import structlog

from trustsignal.clock import Clock
from trustsignal.errors import ConcurrencyGuardSkip, EntityNotFound, StoreUnavailable
from trustsignal.models import Entity, EntityKind, EntityRef, Score
from trustsignal.compute.persistence import ScoreStore
from trustsignal.trust.engine import TrustScoreEngine

logger = structlog.get_logger()

ALREADY_RUNNING = "already running"


@dataclass
class DriftNotice:
    kind: str
    entity_id: str
    previous: float
    current: float
    delta: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "entityId": self.entity_id,
            "previous": self.previous,
            "current": self.current,
            "delta": self.delta,
        }


@dataclass
class RecomputeReport:
    mode: str
    products_updated: int = 0
    companies_updated: int = 0
    errors: List[str] = field(default_factory=list)
    drift: List[DriftNotice] = field(default_factory=list)
    note: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def updated(self) -> int:
        return self.products_updated + self.companies_updated

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "productsUpdated": self.products_updated,
            "companiesUpdated": self.companies_updated,
            "errors": list(self.errors),
            "drift": [d.to_dict() for d in self.drift],
            "note": self.note,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


class RecomputeScheduler:

    def __init__(
        self,
        store: ScoreStore,
        engine: TrustScoreEngine,
        clock: Optional[Clock] = None,
        lookback_hours: float = 24,
        drift_threshold: float = 10.0,
        pause_seconds: float = 0.0,
    ):
        self.store = store
        self.engine = engine
        self.clock = clock or Clock()
        self.lookback = timedelta(hours=lookback_hours)
        self.drift_threshold = drift_threshold
        self.pause_seconds = pause_seconds
        self._guard = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._guard.locked()

    # ── Staleness ─────────────────────────────────

    def find_stale(self) -> Dict[EntityKind, List[Entity]]:
        cutoff = self.clock.now() - self.lookback
        stale: Dict[EntityKind, List[Entity]] = {}

        for kind in (EntityKind.PRODUCT, EntityKind.COMPANY):
            ids = set()
            for entity_id, newest_event in self.store.entities_with_events_since(kind, cutoff):
                latest = self.store.latest_score(EntityRef(kind=kind, id=entity_id))
                if latest is None or newest_event > latest.created_at:
                    ids.add(entity_id)
            ids.update(self.store.entities_without_scores(kind))

            entities = []
            for entity_id in sorted(ids):
                entity = self.store.get_entity(kind, entity_id)
                if entity is not None:
                    entities.append(entity)
            stale[kind] = entities

        logger.info("stale_entities_found",
                    products=len(stale[EntityKind.PRODUCT]),
                    companies=len(stale[EntityKind.COMPANY]),
                    lookback_hours=self.lookback.total_seconds() / 3600)
        return stale

    def _all_entities(self) -> Dict[EntityKind, List[Entity]]:
        return {
            kind: sorted(self.store.list_entities(kind), key=lambda e: e.id)
            for kind in (EntityKind.PRODUCT, EntityKind.COMPANY)
        }

    # ── Passes ────────────────────────────────────

    async def incremental(self) -> RecomputeReport:
        return await self._guarded("incremental", self.find_stale)

    async def full(self) -> RecomputeReport:
        return await self._guarded("full", self._all_entities)

    async def _guarded(self, mode: str, select: Callable[[], Dict[EntityKind, List[Entity]]]) -> RecomputeReport:
        try:
            return await self._run(mode, select)
        except ConcurrencyGuardSkip:
            logger.warning("recompute_skipped", mode=mode, reason=ALREADY_RUNNING)
            now = self.clock.now()
            return RecomputeReport(mode=mode, note=ALREADY_RUNNING, started_at=now, finished_at=now)

    async def _run(self, mode: str, select: Callable[[], Dict[EntityKind, List[Entity]]]) -> RecomputeReport:
        if self._guard.locked():
            raise ConcurrencyGuardSkip(mode)

        async with self._guard:
            report = RecomputeReport(mode=mode, started_at=self.clock.now())
            logger.info("recompute_started", mode=mode)
            # Yield once so overlapping callers observe the guard.
            await self.clock.sleep(0)

            updated: List[EntityRef] = []
            for kind, entities in select().items():
                for entity in entities:
                    try:
                        self.recompute_entity(entity)
                    except StoreUnavailable:
                        raise
                    except Exception as e:
                        report.errors.append(f"{kind.value} {entity.id}: {e}")
                        logger.error("recompute_entity_failed",
                                     kind=kind.value, entity_id=entity.id, error=str(e))
                    else:
                        updated.append(entity.ref)
                        if kind == EntityKind.PRODUCT:
                            report.products_updated += 1
                        else:
                            report.companies_updated += 1

                    await self.clock.sleep(self.pause_seconds)

            report.drift = self.detect_drift(updated)
            report.finished_at = self.clock.now()
            logger.info("recompute_finished",
                        mode=mode,
                        products_updated=report.products_updated,
                        companies_updated=report.companies_updated,
                        errors=len(report.errors),
                        drift=len(report.drift))
            return report

    # ── Per-entity work ───────────────────────────

    def recompute_entity(self, entity: Entity) -> Score:
        events = self.store.events_for(entity.ref)
        score = self.engine.compute(entity, events, now=self.clock.now())
        self.store.save_score(score)
        logger.info("score_refreshed",
                    kind=entity.kind.value,
                    entity_id=entity.id,
                    score=round(score.score, 2),
                    grade=score.grade,
                    confidence=round(score.confidence, 3))
        return score

    def compute_on_demand(self, kind: EntityKind, entity_id: str) -> Score:
        """Score one entity now, outside the guard. Blocks until the Score is persisted."""
        entity = self.store.get_entity(kind, entity_id)
        if entity is None:
            raise EntityNotFound(kind.value, entity_id)
        return self.recompute_entity(entity)

    # ── Drift ─────────────────────────────────────

    def detect_drift(self, refs: List[EntityRef]) -> List[DriftNotice]:
        notices = []
        for ref in refs:
            history = self.store.score_history(ref, limit=2)
            if len(history) < 2:
                continue
            current, previous = history[0].score, history[1].score
            delta = current - previous
            if abs(delta) > self.drift_threshold:
                notice = DriftNotice(ref.kind.value, ref.id, previous, current, delta)
                notices.append(notice)
                logger.warning("score_drift_detected",
                               kind=ref.kind.value,
                               entity_id=ref.id,
                               previous=round(previous, 2),
                               current=round(current, 2),
                               delta=round(delta, 2),
                               threshold=self.drift_threshold)
        return notices


# ── CLI Entry Point ───────────────────────────────

USAGE = "Usage: python -m trustsignal.compute.refresh [full|incremental|ingest|periodic]"


async def run_pass(mode: str) -> RecomputeReport:
    """`ingest` collects fresh evidence for every known entity, then runs an incremental pass."""
    from trustsignal.compute.pipeline import build_pipeline

    pipeline = build_pipeline()
    try:
        if mode == "full":
            return await pipeline.scheduler.full()
        if mode == "ingest":
            await pipeline.ingestor.collect_all()
        return await pipeline.scheduler.incremental()
    finally:
        await pipeline.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    from trustsignal.log_config import configure_logging

    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1 or argv[0] not in ("full", "incremental", "ingest", "periodic"):
        print(USAGE)
        return 2

    configure_logging()
    cmd = argv[0]
    if cmd == "periodic":
        from arq import run_worker
        from trustsignal.workers.worker_settings import WorkerSettings
        run_worker(WorkerSettings)
        return 0

    report = asyncio.run(run_pass(cmd))
    print(f"{report.mode}: {report.products_updated} products, "
          f"{report.companies_updated} companies updated, {len(report.errors)} errors")
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
