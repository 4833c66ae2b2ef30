"""
TrustSignal — Trust Score Engine
Weighted Metric Aggregation Model

Pure function of (entity, events, optional policy facts, config) → Score.

Seven metric buckets:
    recallsAndSafety        ← recall, advisory events
    complaintsAndDisputes   ← complaint events
    policyAndWarranty       ← policy sub-score (see trust/policy.py)
    reviews                 ← review events, inverted (1 - severity)
    companyReputation       ← court, news events
    priceTransparency       ← no routed events yet
    platformTrust           ← no routed events yet
Dataset events are retained as evidence but never scored.

Per bucket:   raw = Σ severity            (or the configured no-evidence raw)
              normalized = clamp(range/polarity/scale(raw · severityFactor))
Final score:  Σ normalized·w / Σ w over exactly the weight vector's metrics
Confidence:   min(1, evidence / minimumEvidence), averaged with the policy
              parser's confidence when one was supplied.

The engine never raises on sparse input. An unresolvable weight vector or
normalization range degrades to the neutral score with zero confidence.
"""
from __future__ import annotations

import math
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

import structlog

from trustsignal.errors import ComputeError
from trustsignal.models import (
    BreakdownEntry,
    CanonicalEvent,
    Entity,
    EventType,
    PolicyFacts,
    Score,
    typed_details,
)
from trustsignal.trust.config import GradeThresholds, ScoringConfig
from trustsignal.trust.policy import dampen, policy_subscore

logger = structlog.get_logger()


# ── Metric buckets ────────────────────────────────

RECALLS_AND_SAFETY = "recallsAndSafety"
COMPLAINTS_AND_DISPUTES = "complaintsAndDisputes"
POLICY_AND_WARRANTY = "policyAndWarranty"
REVIEWS = "reviews"
COMPANY_REPUTATION = "companyReputation"
PRICE_TRANSPARENCY = "priceTransparency"
PLATFORM_TRUST = "platformTrust"

METRICS = (
    RECALLS_AND_SAFETY,
    COMPLAINTS_AND_DISPUTES,
    POLICY_AND_WARRANTY,
    REVIEWS,
    COMPANY_REPUTATION,
    PRICE_TRANSPARENCY,
    PLATFORM_TRUST,
)

EVENT_ROUTES: Dict[EventType, str] = {
    EventType.RECALL: RECALLS_AND_SAFETY,
    EventType.ADVISORY: RECALLS_AND_SAFETY,
    EventType.COMPLAINT: COMPLAINTS_AND_DISPUTES,
    EventType.POLICY: POLICY_AND_WARRANTY,
    EventType.REVIEW: REVIEWS,
    EventType.COURT: COMPANY_REPUTATION,
    EventType.NEWS: COMPANY_REPUTATION,
}


class Grade:
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


def grade_for(score: float, thresholds: GradeThresholds) -> str:
    if score >= thresholds.A:
        return Grade.A
    if score >= thresholds.B:
        return Grade.B
    if score >= thresholds.C:
        return Grade.C
    if score >= thresholds.D:
        return Grade.D
    return Grade.F


@dataclass
class Bucket:
    raw: float = 0.0
    evidence_ids: List[str] = field(default_factory=list)
    has_evidence: bool = False


def score_id(entity: Entity, version: str, events: List[CanonicalEvent], created_at: datetime) -> str:
    """Same entity, config version, evidence and timestamp → same id."""
    material = "|".join([
        entity.kind.value,
        entity.id,
        version,
        created_at.isoformat(),
        ",".join(sorted(e.id for e in events)),
    ])
    return f"score_{hashlib.sha256(material.encode()).hexdigest()[:16]}"


def _as_facts(policy: Union[PolicyFacts, dict, None]) -> Optional[PolicyFacts]:
    if policy is None or isinstance(policy, PolicyFacts):
        return policy
    return PolicyFacts.model_validate(policy)


# ── Engine ────────────────────────────────────────

class TrustScoreEngine:

    def __init__(self, config: ScoringConfig):
        self.config = config

    @property
    def version(self) -> str:
        return self.config.version

    # Step 1 + 2: routing and raw accumulation

    def route(self, events: Iterable[CanonicalEvent], facts: Optional[PolicyFacts] = None) -> Dict[str, Bucket]:
        buckets = {metric: Bucket() for metric in METRICS}

        for event in events:
            metric = EVENT_ROUTES.get(event.type)
            if metric is None:
                continue
            bucket = buckets[metric]
            bucket.evidence_ids.append(event.id)
            if metric == POLICY_AND_WARRANTY:
                continue

            bucket.has_evidence = True
            if metric == REVIEWS:
                bucket.raw += 1.0 - event.severity
            else:
                bucket.raw += event.severity

        if facts is not None:
            defaults = self.config.missing_data_defaults
            bucket = buckets[POLICY_AND_WARRANTY]
            bucket.raw = dampen(
                policy_subscore(facts),
                facts.policy_confidence,
                defaults.policy_confidence_dampener,
                defaults.default_confidence,
            )
            bucket.has_evidence = True
        return buckets

    # Step 3: normalization

    def normalize(self, metric: str, raw: float) -> float:
        norm = self.config.metric_normalization.get(metric)
        if norm is None:
            raise ComputeError(f"no normalization range for metric {metric}")

        value = raw * norm.severity_factor
        if norm.scale == "log":
            value = math.log10(max(1.0, value))

        span = norm.max - norm.min
        if norm.type == "direct":
            normalized = (value - norm.min) / span * 100
        else:
            normalized = (norm.max - value) / span * 100
        return min(100.0, max(0.0, normalized))

    # Step 5: confidence

    def confidence(self, evidence_count: int, policy_confidence: Optional[float] = None) -> float:
        minimum = self.config.missing_data_defaults.minimum_evidence
        evidence_conf = min(1.0, evidence_count / minimum)
        if policy_confidence is None:
            return evidence_conf
        return (evidence_conf + policy_confidence) / 2

    def grade(self, score: float) -> str:
        return grade_for(score, self.config.grade_thresholds)

    # Full pipeline

    def compute(
        self,
        entity: Entity,
        events: Iterable[CanonicalEvent],
        policy: Union[PolicyFacts, dict, None] = None,
        now: Optional[datetime] = None,
    ) -> Score:
        events = list(events)
        facts = _as_facts(policy) or self.policy_facts(events)
        weights = self.config.weights_for(entity.category)
        created_at = now or datetime.now(timezone.utc)

        try:
            breakdown = self._breakdown(weights, self.route(events, facts))
            total_weight = sum(e.weight for e in breakdown)
            score = min(100.0, max(0.0, sum(e.weighted for e in breakdown) / total_weight))
            confidence = self.confidence(len(events), facts.policy_confidence if facts else None)
        except ComputeError as e:
            logger.warning("score_compute_degraded",
                           entity_id=entity.id,
                           kind=entity.kind.value,
                           error=str(e))
            neutral = self.config.missing_data_defaults.neutral_score
            breakdown = [
                BreakdownEntry(metric=m, raw=0.0, normalized=neutral, weight=w, weighted=neutral * w)
                for m, w in weights.items()
            ]
            score, confidence = neutral, 0.0

        return Score(
            id=score_id(entity, self.version, events, created_at),
            entity_ref=entity.ref,
            score=score,
            grade=self.grade(score),
            confidence=confidence,
            breakdown=tuple(breakdown),
            config_version=self.version,
            created_at=created_at,
        )

    def _breakdown(self, weights: Dict[str, float], buckets: Dict[str, Bucket]) -> List[BreakdownEntry]:
        if not weights or sum(weights.values()) <= 0:
            raise ComputeError("weight vector is empty or sums to zero")

        no_evidence = self.config.missing_data_defaults.no_evidence_raw
        entries = []
        for metric, weight in weights.items():
            bucket = buckets.get(metric) or Bucket()
            raw = bucket.raw if bucket.has_evidence else no_evidence.get(metric, 0.0)
            normalized = self.normalize(metric, raw)
            entries.append(BreakdownEntry(
                metric=metric,
                raw=raw,
                normalized=normalized,
                weight=weight,
                weighted=normalized * weight,
                evidence_ids=tuple(bucket.evidence_ids),
                has_evidence=bucket.has_evidence,
            ))
        return entries

    @staticmethod
    def policy_facts(events: List[CanonicalEvent]) -> Optional[PolicyFacts]:
        """Facts of the most recently parsed policy event, if any parse."""
        newest = None
        for event in events:
            if event.type != EventType.POLICY:
                continue
            facts = typed_details(event)
            if isinstance(facts, PolicyFacts) and (newest is None or event.parsed_at >= newest[0].parsed_at):
                newest = (event, facts)
        return newest[1] if newest else None
