"""
TrustSignal — Policy & Warranty Sub-score

Deterministic points on top of a neutral base of 50:

    warranty length          + min(20, months / 3)
    coverage                 parts +10, labor +10, electronics +5, battery +5
    transferable             +10 if yes, -5 if explicitly no
    registration             +5 if not required, +3 if the window exceeds 30 days
    refund window            + min(10, days / 3)
    arbitration clause       -10

Clamped to [0, 100], then pulled toward neutral in proportion to how little
the parser trusted its own reading of the policy text.
"""
from typing import Optional

from trustsignal.models import PolicyFacts

NEUTRAL = 50.0


def policy_subscore(facts: PolicyFacts) -> float:
    score = NEUTRAL

    if facts.warranty_length_months:
        score += min(20.0, facts.warranty_length_months / 3)

    coverage = facts.coverage
    if coverage.parts:
        score += 10
    if coverage.labor:
        score += 10
    if coverage.electronics:
        score += 5
    if coverage.battery:
        score += 5

    if facts.transferable is True:
        score += 10
    elif facts.transferable is False:
        score -= 5

    if facts.registration_required is False:
        score += 5
    if facts.registration_window_days and facts.registration_window_days > 30:
        score += 3

    if facts.refund_window_days:
        score += min(10.0, facts.refund_window_days / 3)

    if facts.arbitration_clause:
        score -= 10

    return min(100.0, max(0.0, score))


def dampen(score: float, confidence: Optional[float], dampener: float, default_confidence: float) -> float:
    """
    Pull `score` toward neutral: a fully confident parse keeps the whole
    deviation, a zero-confidence parse keeps `dampener` of it.
    """
    conf = default_confidence if confidence is None else confidence
    keep = dampener + (1.0 - dampener) * conf
    return NEUTRAL + (score - NEUTRAL) * keep
