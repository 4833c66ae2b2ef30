"""
TrustSignal — Evidence Ingestor

Fans one entity out to every connector concurrently, appends the resulting
Canonical Events to the store and synchronously deletes the entity's cache
key. A provider that exhausts its retries is reported, never fatal for the
others.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog

from trustsignal.clock import Clock
from trustsignal.compute.cache import ResponseCache
from trustsignal.compute.persistence import ScoreStore
from trustsignal.connectors.base import SourceConnector
from trustsignal.errors import EntityNotFound
from trustsignal.models import CanonicalEvent, Entity, EntityDescriptor, EntityKind, EntityRef

logger = structlog.get_logger()


@dataclass
class IngestReport:
    entity_id: str
    events_added: int = 0
    per_provider: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entityId": self.entity_id,
            "eventsAdded": self.events_added,
            "perProvider": dict(self.per_provider),
            "errors": dict(self.errors),
        }


class EvidenceIngestor:

    def __init__(
        self,
        store: ScoreStore,
        cache: ResponseCache,
        connectors: Optional[Dict[str, SourceConnector]] = None,
        clock: Optional[Clock] = None,
        limit_per_provider: int = 25,
    ):
        self.store = store
        self.cache = cache
        self.connectors = connectors or {}
        self.clock = clock or Clock()
        self.limit_per_provider = limit_per_provider

    def ingest_events(self, ref: EntityRef, events: Sequence[CanonicalEvent]) -> List[CanonicalEvent]:
        """Append events for one entity and invalidate its cached payload."""
        if not events:
            return []
        stored = self.store.add_events(ref, events, self.clock.now())
        self.cache.invalidate(ref.kind.value, ref.id)
        logger.info("events_ingested", kind=ref.kind.value, entity_id=ref.id, count=len(stored))
        return stored

    async def collect(self, entity: Entity) -> IngestReport:
        descriptor = EntityDescriptor.from_entity(entity)
        names = list(self.connectors)
        results = await asyncio.gather(
            *(self.connectors[n].fetch_events_for_entity(descriptor, self.limit_per_provider) for n in names),
            return_exceptions=True,
        )

        report = IngestReport(entity_id=entity.id)
        collected: List[CanonicalEvent] = []
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                report.errors[name] = str(result)
                logger.warning("provider_collection_failed",
                               provider=name, entity_id=entity.id, error=str(result))
                continue
            if isinstance(result, BaseException):
                raise result
            report.per_provider[name] = len(result)
            collected.extend(result)

        report.events_added = len(self.ingest_events(entity.ref, collected))
        return report

    async def collect_for(self, kind: EntityKind, entity_id: str) -> IngestReport:
        entity = self.store.get_entity(kind, entity_id)
        if entity is None:
            raise EntityNotFound(kind.value, entity_id)
        return await self.collect(entity)

    async def collect_all(self) -> List[IngestReport]:
        """One entity at a time; the connectors' own limiters pace the providers."""
        reports = []
        for kind in (EntityKind.PRODUCT, EntityKind.COMPANY):
            for entity in self.store.list_entities(kind):
                reports.append(await self.collect(entity))
        logger.info("ingest_sweep_finished",
                    entities=len(reports),
                    events_added=sum(r.events_added for r in reports),
                    provider_errors=sum(len(r.errors) for r in reports))
        return reports

    def register(self, entity: Entity) -> Entity:
        self.store.add_entity(entity)
        logger.info("entity_registered", kind=entity.kind.value, entity_id=entity.id)
        return entity
