"""
TrustSignal — Shrinkage Diagnostics

A second, independent view of a Score: the weighted mean over buckets that
actually had evidence, shrunk toward a prior by the weight of the buckets
that did not.

    w_i         weights normalized to sum to 1
    used        Σ w_i over buckets with evidence        (= coverage)
    alpha       Σ w_i over missing buckets   ("missingSum")
                or a fixed constant          ("fixed")
    score       (Σ w_i·v_i + alpha·prior) / (used + alpha)
    confidence  used / (used + alpha)

This confidence is not the evidence-count confidence stored on the Score;
the two are reported side by side and never merged.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from trustsignal.models import BreakdownEntry
from trustsignal.trust.config import DiagnosticsConfig


@dataclass
class Signal:
    metric: str
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {"metric": self.metric, "weight": self.weight}


@dataclass
class Diagnostics:
    score: float
    confidence: float
    coverage: float
    alpha: float
    prior: float
    low_confidence: bool
    used_signals: List[Signal] = field(default_factory=list)
    missing_signals: List[Signal] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "confidence": self.confidence,
            "coverage": self.coverage,
            "alpha": self.alpha,
            "prior": self.prior,
            "lowConfidence": self.low_confidence,
            "usedSignals": [s.to_dict() for s in self.used_signals],
            "missingSignals": [s.to_dict() for s in self.missing_signals],
        }


def shrinkage_diagnostics(breakdown: Iterable[BreakdownEntry], config: DiagnosticsConfig) -> Diagnostics:
    """A bucket counts as used when its raw value came from evidence (events or policy facts)."""
    entries = list(breakdown)
    total = sum(e.weight for e in entries)

    used: List[Signal] = []
    missing: List[Signal] = []
    numerator = 0.0
    for e in entries:
        w = e.weight / total if total > 0 else 0.0
        if e.has_evidence:
            used.append(Signal(e.metric, w))
            numerator += w * e.normalized
        else:
            missing.append(Signal(e.metric, w))

    used_weight = sum(s.weight for s in used)
    if config.alpha_strategy == "fixed":
        alpha = config.alpha_fixed
    else:
        alpha = sum(s.weight for s in missing)

    denominator = used_weight + alpha
    if denominator > 0:
        score = (numerator + alpha * config.prior) / denominator
        confidence = used_weight / denominator
    else:
        score, confidence = config.prior, 0.0

    return Diagnostics(
        score=score,
        confidence=confidence,
        coverage=used_weight,
        alpha=alpha,
        prior=config.prior,
        low_confidence=used_weight < config.min_coverage_warn,
        used_signals=used,
        missing_signals=missing,
    )
