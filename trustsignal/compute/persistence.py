"""
TrustSignal — Score Store

Entities, their Canonical Events and their Score history. Events and Scores
are append-only; the current Score is the one with the latest createdAt.

Two implementations behind the same interface:
    InMemoryScoreStore   process-local, used in development and tests
    Neo4jScoreStore      the production store

Neo4j schema:
    (:TrustEntity {kind, entity_id, name, category, company_id})
    (:Event {event_id, source, type, severity, ..., details_json, created_at})
    (:ScoreRecord {score_id, score, grade, confidence, breakdown, config_version, created_at})

    (:TrustEntity)-[:HAS_EVENT]->(:Event)
    (:TrustEntity)-[:HAS_SCORE]->(:ScoreRecord)       # latest
    (:TrustEntity)-[:SCORE_HISTORY]->(:ScoreRecord)   # all past scores

Any store failure raises StoreUnavailable. Callers do not recover from it.
"""
import json
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from neo4j.exceptions import DriverError, Neo4jError

from trustsignal.errors import StoreUnavailable
from trustsignal.models import (
    CanonicalEvent,
    Entity,
    EntityKind,
    EntityRef,
    Score,
)

logger = structlog.get_logger()


class ScoreStore:
    """Interface shared by every store."""

    def add_entity(self, entity: Entity) -> None:
        raise NotImplementedError

    def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        raise NotImplementedError

    def list_entities(self, kind: EntityKind) -> List[Entity]:
        raise NotImplementedError

    def add_events(self, ref: EntityRef, events: Sequence[CanonicalEvent], created_at: datetime) -> List[CanonicalEvent]:
        """Attach events to an entity, stamping entityRef and createdAt. Returns the stored events."""
        raise NotImplementedError

    def events_for(self, ref: EntityRef) -> List[CanonicalEvent]:
        raise NotImplementedError

    def save_score(self, score: Score) -> None:
        raise NotImplementedError

    def latest_score(self, ref: EntityRef) -> Optional[Score]:
        raise NotImplementedError

    def score_history(self, ref: EntityRef, limit: int = 30) -> List[Score]:
        """Newest first."""
        raise NotImplementedError

    def entities_with_events_since(self, kind: EntityKind, cutoff: datetime) -> List[Tuple[str, datetime]]:
        """(entity id, newest event createdAt) for entities with events created at or after `cutoff`."""
        raise NotImplementedError

    def entities_without_scores(self, kind: EntityKind) -> List[str]:
        raise NotImplementedError

    def close(self) -> None:
        pass


def _stamp(ref: EntityRef, events: Sequence[CanonicalEvent], created_at: datetime) -> List[CanonicalEvent]:
    return [e.model_copy(update={"entity_ref": ref, "created_at": created_at}) for e in events]


# ── In-memory ─────────────────────────────────────

class InMemoryScoreStore(ScoreStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._entities: Dict[EntityRef, Entity] = {}
        self._events: Dict[EntityRef, List[CanonicalEvent]] = defaultdict(list)
        self._scores: Dict[EntityRef, List[Score]] = defaultdict(list)

    def add_entity(self, entity: Entity) -> None:
        with self._lock:
            self._entities[entity.ref] = entity

    def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        with self._lock:
            return self._entities.get(EntityRef(kind=kind, id=entity_id))

    def list_entities(self, kind: EntityKind) -> List[Entity]:
        with self._lock:
            return [e for ref, e in self._entities.items() if ref.kind == kind]

    def add_events(self, ref: EntityRef, events: Sequence[CanonicalEvent], created_at: datetime) -> List[CanonicalEvent]:
        stored = _stamp(ref, events, created_at)
        with self._lock:
            if ref not in self._entities:
                raise KeyError(f"unknown entity {ref.kind.value}:{ref.id}")
            self._events[ref].extend(stored)
        return stored

    def events_for(self, ref: EntityRef) -> List[CanonicalEvent]:
        with self._lock:
            return list(self._events.get(ref, ()))

    def save_score(self, score: Score) -> None:
        with self._lock:
            history = self._scores[score.entity_ref]
            if any(s.id == score.id for s in history):
                return
            history.append(score)
        logger.info("score_persisted", entity_id=score.entity_ref.id, score_id=score.id)

    def latest_score(self, ref: EntityRef) -> Optional[Score]:
        with self._lock:
            history = self._scores.get(ref)
            return max(history, key=lambda s: s.created_at) if history else None

    def score_history(self, ref: EntityRef, limit: int = 30) -> List[Score]:
        with self._lock:
            history = sorted(self._scores.get(ref, ()), key=lambda s: s.created_at, reverse=True)
        return history[:limit]

    def entities_with_events_since(self, kind: EntityKind, cutoff: datetime) -> List[Tuple[str, datetime]]:
        out = []
        with self._lock:
            for ref, events in self._events.items():
                if ref.kind != kind:
                    continue
                recent = [e.ingested_at for e in events if e.ingested_at >= cutoff]
                if recent:
                    out.append((ref.id, max(recent)))
        return out

    def entities_without_scores(self, kind: EntityKind) -> List[str]:
        with self._lock:
            return [ref.id for ref in self._entities if ref.kind == kind and not self._scores.get(ref)]


# ── Neo4j ─────────────────────────────────────────

def _iso(dt: datetime) -> str:
    return dt.isoformat()


def _event_from_record(node: dict) -> CanonicalEvent:
    return CanonicalEvent(
        id=node["event_id"],
        source=node["source"],
        type=node["type"],
        severity=node["severity"],
        title=node["title"],
        description=node.get("description"),
        details_json=json.loads(node.get("details_json") or "{}"),
        raw_url=node.get("raw_url"),
        raw_ref=node.get("raw_ref"),
        parsed_at=datetime.fromisoformat(node["parsed_at"]),
        created_at=datetime.fromisoformat(node["created_at"]) if node.get("created_at") else None,
        entity_ref=EntityRef(kind=node["entity_kind"], id=node["entity_id"]),
        robots_disallowed=node.get("robots_disallowed"),
    )


def _score_from_record(node: dict) -> Score:
    return Score(
        id=node["score_id"],
        entity_ref=EntityRef(kind=node["entity_kind"], id=node["entity_id"]),
        score=node["score"],
        grade=node["grade"],
        confidence=node["confidence"],
        breakdown=json.loads(node["breakdown"]),
        config_version=node["config_version"],
        created_at=datetime.fromisoformat(node["created_at"]),
    )


class Neo4jScoreStore(ScoreStore):
    """
    Persists entities, events and scores to Neo4j.
    Unlike a cache, the store never degrades silently.
    """

    def __init__(self, session_factory: Optional[Callable] = None):
        if session_factory is None:
            from trustsignal.db.neo4j import get_session
            session_factory = get_session
        self._session = session_factory

    def _run(self, query: str, **params) -> List[dict]:
        try:
            with self._session() as session:
                result = session.run(query, **params)
                return [record.data() for record in result]
        except (Neo4jError, DriverError) as e:
            logger.error("score_store_unavailable", error=str(e), query=query.strip()[:60])
            raise StoreUnavailable(str(e)) from e

    def init_schema(self) -> None:
        from trustsignal.db.neo4j import init_schema
        try:
            init_schema(self._session)
        except (Neo4jError, DriverError) as e:
            raise StoreUnavailable(str(e)) from e

    def close(self) -> None:
        from trustsignal.db.neo4j import close
        close()

    def add_entity(self, entity: Entity) -> None:
        self._run("""
            MERGE (e:TrustEntity {kind: $kind, entity_id: $entity_id})
            SET e.name = $name, e.category = $category, e.company_id = $company_id
        """, kind=entity.kind.value, entity_id=entity.id, name=entity.name,
             category=entity.category, company_id=entity.company_id)

    def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        rows = self._run("""
            MATCH (e:TrustEntity {kind: $kind, entity_id: $entity_id})
            RETURN e {.*} AS entity
        """, kind=kind.value, entity_id=entity_id)
        return _entity_from_record(rows[0]["entity"]) if rows else None

    def list_entities(self, kind: EntityKind) -> List[Entity]:
        rows = self._run("""
            MATCH (e:TrustEntity {kind: $kind})
            RETURN e {.*} AS entity
            ORDER BY e.entity_id
        """, kind=kind.value)
        return [_entity_from_record(r["entity"]) for r in rows]

    def add_events(self, ref: EntityRef, events: Sequence[CanonicalEvent], created_at: datetime) -> List[CanonicalEvent]:
        stored = _stamp(ref, events, created_at)
        if not stored:
            return stored
        payload = [
            {
                "event_id": e.id,
                "source": e.source,
                "type": e.type.value,
                "severity": e.severity,
                "title": e.title,
                "description": e.description,
                "details_json": json.dumps(e.details_json, default=str),
                "raw_url": e.raw_url,
                "raw_ref": e.raw_ref,
                "parsed_at": _iso(e.parsed_at),
                "created_at": _iso(created_at),
                "robots_disallowed": e.robots_disallowed,
            }
            for e in stored
        ]
        rows = self._run("""
            MATCH (e:TrustEntity {kind: $kind, entity_id: $entity_id})
            UNWIND $events AS ev
            CREATE (x:Event)
            SET x = ev, x.entity_kind = $kind, x.entity_id = $entity_id
            CREATE (e)-[:HAS_EVENT]->(x)
            RETURN count(x) AS created
        """, kind=ref.kind.value, entity_id=ref.id, events=payload)
        if not rows or rows[0]["created"] == 0:
            raise KeyError(f"unknown entity {ref.kind.value}:{ref.id}")
        return stored

    def events_for(self, ref: EntityRef) -> List[CanonicalEvent]:
        rows = self._run("""
            MATCH (:TrustEntity {kind: $kind, entity_id: $entity_id})-[:HAS_EVENT]->(x:Event)
            RETURN x {.*} AS event
            ORDER BY x.created_at, x.event_id
        """, kind=ref.kind.value, entity_id=ref.id)
        return [_event_from_record(r["event"]) for r in rows]

    def save_score(self, score: Score) -> None:
        self._run("""
            MATCH (e:TrustEntity {kind: $kind, entity_id: $entity_id})
            MERGE (s:ScoreRecord {score_id: $score_id})
            ON CREATE SET
                s.entity_kind = $kind,
                s.entity_id = $entity_id,
                s.score = $score,
                s.grade = $grade,
                s.confidence = $confidence,
                s.breakdown = $breakdown,
                s.config_version = $config_version,
                s.created_at = $created_at

            // Link: latest score
            WITH e, s
            OPTIONAL MATCH (e)-[old:HAS_SCORE]->(:ScoreRecord)
            DELETE old
            MERGE (e)-[:HAS_SCORE]->(s)

            // Link: score history
            MERGE (e)-[:SCORE_HISTORY]->(s)
        """,
            kind=score.entity_ref.kind.value,
            entity_id=score.entity_ref.id,
            score_id=score.id,
            score=score.score,
            grade=score.grade,
            confidence=score.confidence,
            breakdown=json.dumps([b.model_dump(by_alias=True, mode="json") for b in score.breakdown]),
            config_version=score.config_version,
            created_at=_iso(score.created_at),
        )
        logger.info("score_persisted", entity_id=score.entity_ref.id, score_id=score.id)

    def latest_score(self, ref: EntityRef) -> Optional[Score]:
        history = self.score_history(ref, limit=1)
        return history[0] if history else None

    def score_history(self, ref: EntityRef, limit: int = 30) -> List[Score]:
        rows = self._run("""
            MATCH (:TrustEntity {kind: $kind, entity_id: $entity_id})-[:SCORE_HISTORY]->(s:ScoreRecord)
            RETURN s {.*} AS score
            ORDER BY s.created_at DESC
            LIMIT $limit
        """, kind=ref.kind.value, entity_id=ref.id, limit=limit)
        return [_score_from_record(r["score"]) for r in rows]

    def entities_with_events_since(self, kind: EntityKind, cutoff: datetime) -> List[Tuple[str, datetime]]:
        rows = self._run("""
            MATCH (e:TrustEntity {kind: $kind})-[:HAS_EVENT]->(x:Event)
            WHERE x.created_at >= $cutoff
            RETURN e.entity_id AS entity_id, max(x.created_at) AS newest
        """, kind=kind.value, cutoff=_iso(cutoff))
        return [(r["entity_id"], datetime.fromisoformat(r["newest"])) for r in rows]

    def entities_without_scores(self, kind: EntityKind) -> List[str]:
        rows = self._run("""
            MATCH (e:TrustEntity {kind: $kind})
            WHERE NOT (e)-[:SCORE_HISTORY]->(:ScoreRecord)
            RETURN e.entity_id AS entity_id
            ORDER BY entity_id
        """, kind=kind.value)
        return [r["entity_id"] for r in rows]


def _entity_from_record(node: dict) -> Entity:
    return Entity(
        kind=node["kind"],
        id=node["entity_id"],
        name=node.get("name") or node["entity_id"],
        category=node.get("category"),
        company_id=node.get("company_id"),
    )
