"""
TrustSignal — Trust Payload Service

Builds the externally served trust payload for a product or company:

    Request → Cache Check → [Latest Score | compute on demand] → Payload → Cache → Response

Distinguishable outcomes:
    EntityNotFound     the entity is unknown
    ScoreUnavailable   the entity exists but no Score could be produced
    low confidence     a normal payload; conveyed through `confidence`
"""
from typing import Any, Dict, List, Optional

import structlog

from trustsignal.clock import Clock
from trustsignal.compute.cache import ResponseCache
from trustsignal.compute.persistence import ScoreStore
from trustsignal.compute.refresh import RecomputeScheduler
from trustsignal.errors import EntityNotFound, ScoreUnavailable, StoreUnavailable
from trustsignal.models import CanonicalEvent, Entity, EntityKind, EntityRef, Score
from trustsignal.trust.config import DiagnosticsConfig
from trustsignal.trust.diagnostics import shrinkage_diagnostics
from trustsignal.trust.engine import POLICY_AND_WARRANTY

logger = structlog.get_logger()

TOP_EVIDENCE = 3


def _evidence_item(event: CanonicalEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "source": event.source,
        "type": event.type.value,
        "severity": event.severity,
        "title": event.title,
        "rawUrl": event.raw_url,
        "parsedAt": event.parsed_at.isoformat(),
    }


class TrustService:

    def __init__(
        self,
        store: ScoreStore,
        scheduler: RecomputeScheduler,
        cache: ResponseCache,
        clock: Optional[Clock] = None,
        include_diagnostics: bool = False,
        diagnostics_config: Optional[DiagnosticsConfig] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.cache = cache
        self.clock = clock or Clock()
        self.include_diagnostics = include_diagnostics
        self.diagnostics_config = diagnostics_config or DiagnosticsConfig()

    def get_trust(self, kind: str, identifier: str) -> Dict[str, Any]:
        entity_kind = EntityKind(kind)
        return self.cache.get_or_compute(
            entity_kind.value, identifier, lambda: self._compute(entity_kind, identifier)
        )

    def _compute(self, kind: EntityKind, identifier: str) -> Dict[str, Any]:
        entity = self.store.get_entity(kind, identifier)
        if entity is None:
            raise EntityNotFound(kind.value, identifier)

        score = self.store.latest_score(entity.ref)
        if score is None:
            logger.info("score_compute_on_miss", kind=kind.value, entity_id=identifier)
            try:
                score = self.scheduler.compute_on_demand(kind, identifier)
            except (EntityNotFound, StoreUnavailable):
                raise
            except Exception as e:
                logger.error("score_compute_failed", kind=kind.value, entity_id=identifier, error=str(e))
                raise ScoreUnavailable(kind.value, identifier, str(e)) from e

        return self.build_payload(entity, score)

    def build_payload(self, entity: Entity, score: Score) -> Dict[str, Any]:
        events = self.store.events_for(entity.ref)
        top = sorted(events, key=lambda e: e.severity, reverse=True)[:TOP_EVIDENCE]
        policy = score.metric(POLICY_AND_WARRANTY)

        payload: Dict[str, Any] = {
            "kind": entity.kind.value,
            "id": entity.id,
            "name": entity.name,
            "category": entity.category,
            "score": score.score,
            "grade": score.grade,
            "confidence": score.confidence,
            "policyScore": policy.normalized if policy and policy.has_evidence else None,
            "breakdown": [b.model_dump(by_alias=True, mode="json") for b in score.breakdown],
            "evidence": [_evidence_item(e) for e in top],
            "evidenceCount": len(events),
            "configVersion": score.config_version,
            "lastUpdated": score.created_at.isoformat(),
            "computedAt": self.clock.now().isoformat(),
            "cached": False,
        }
        if entity.kind == EntityKind.PRODUCT:
            payload["sku"] = entity.id
            payload["companyScore"] = self._company_score(entity.company_id)
        else:
            payload["companyId"] = entity.id

        if self.include_diagnostics:
            payload["diagnostics"] = shrinkage_diagnostics(score.breakdown, self.diagnostics_config).to_dict()
        return payload

    def _company_score(self, company_id: Optional[str]) -> Optional[float]:
        if not company_id:
            return None
        latest = self.store.latest_score(EntityRef(kind=EntityKind.COMPANY, id=company_id))
        return latest.score if latest else None

    def history(self, kind: str, identifier: str, limit: int = 30) -> List[Dict[str, Any]]:
        entity_kind = EntityKind(kind)
        if self.store.get_entity(entity_kind, identifier) is None:
            raise EntityNotFound(entity_kind.value, identifier)
        ref = EntityRef(kind=entity_kind, id=identifier)
        return [s.to_json() for s in self.store.score_history(ref, limit=limit)]
