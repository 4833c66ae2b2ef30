"""Trust Score Engine: routing, normalization, weighting, confidence, grading."""
import json

import pytest
from pydantic import ValidationError

from trustsignal.errors import ConfigError
from trustsignal.models import CanonicalEvent, Entity, EntityKind, EventType, PolicyFacts
from trustsignal.trust.config import GradeThresholds, load_scoring_config
from trustsignal.trust.engine import (
    COMPLAINTS_AND_DISPUTES,
    METRICS,
    POLICY_AND_WARRANTY,
    RECALLS_AND_SAFETY,
    REVIEWS,
    TrustScoreEngine,
    grade_for,
)
from trustsignal.trust.policy import dampen, policy_subscore


def _score_identity(score):
    weights = sum(b.weight for b in score.breakdown)
    return sum(b.weighted for b in score.breakdown) / weights


# ── Worked scenario ──

def test_three_complaints_against_three_bucket_weights(config_with, make_event, clock):
    config = config_with(defaultWeights={
        "complaintsAndDisputes": 0.3,
        "recallsAndSafety": 0.5,
        "policyAndWarranty": 0.2,
    })
    engine = TrustScoreEngine(config)
    entity = Entity(kind=EntityKind.PRODUCT, id="SKU-9", name="Widget")
    events = [make_event(EventType.COMPLAINT, s) for s in (0.9, 0.2, 0.5)]

    score = engine.compute(entity, events, now=clock.now())

    by_metric = {b.metric: b for b in score.breakdown}
    assert set(by_metric) == {COMPLAINTS_AND_DISPUTES, RECALLS_AND_SAFETY, POLICY_AND_WARRANTY}
    assert by_metric[COMPLAINTS_AND_DISPUTES].raw == pytest.approx(1.6)
    assert by_metric[COMPLAINTS_AND_DISPUTES].normalized == pytest.approx(84.0)
    assert by_metric[RECALLS_AND_SAFETY].raw == 2.5
    assert by_metric[POLICY_AND_WARRANTY].raw == 50
    assert score.score == pytest.approx(0.3 * 84.0 + 0.5 * 50.0 + 0.2 * 50.0)
    assert score.grade == "C"
    assert score.confidence == pytest.approx(0.6)
    assert set(by_metric[COMPLAINTS_AND_DISPUTES].evidence_ids) == {e.id for e in events}


# ── Properties ──

def test_score_is_weighted_mean_of_breakdown(engine, product, make_event, clock):
    events = [
        make_event(EventType.RECALL, 0.8),
        make_event(EventType.ADVISORY, 0.4),
        make_event(EventType.COMPLAINT, 0.6),
        make_event(EventType.NEWS, 0.3),
        make_event(EventType.COURT, 0.9),
        make_event(EventType.REVIEW, 0.2),
        make_event(EventType.DATASET, 0.7),
    ]

    score = engine.compute(product, events, now=clock.now())

    assert score.score == pytest.approx(_score_identity(score))
    assert [b.metric for b in score.breakdown] == list(engine.config.weights_for(product.category))


def test_routing_and_review_inversion(engine, company, make_event, clock):
    dataset = make_event(EventType.DATASET, 0.9)
    review = make_event(EventType.REVIEW, 0.9)
    recall = make_event(EventType.RECALL, 0.5)
    advisory = make_event(EventType.ADVISORY, 0.25)

    score = engine.compute(company, [dataset, review, recall, advisory], now=clock.now())

    assert score.metric(REVIEWS).raw == pytest.approx(0.1)
    assert score.metric(RECALLS_AND_SAFETY).raw == pytest.approx(0.75)
    assert all(dataset.id not in b.evidence_ids for b in score.breakdown)


def test_compute_is_deterministic(engine, product, make_event, clock):
    events = [make_event(EventType.RECALL, 0.7), make_event(EventType.COMPLAINT, 0.3)]
    facts = {"warrantyLengthMonths": 12, "policyConfidence": 0.8}

    first = engine.compute(product, events, policy=facts, now=clock.now())
    second = engine.compute(product, list(reversed(events)), policy=facts, now=clock.now())

    assert first.model_dump_json() == second.model_dump_json()


def test_grade_is_monotonic(scoring_config):
    order = "FDCBA"
    ranks = [order.index(grade_for(s / 2, scoring_config.grade_thresholds)) for s in range(0, 201)]

    assert ranks == sorted(ranks)
    assert grade_for(85, scoring_config.grade_thresholds) == "A"
    assert grade_for(84.99, scoring_config.grade_thresholds) == "B"
    assert grade_for(39.9, scoring_config.grade_thresholds) == "F"


def test_confidence_is_monotonic_and_saturates(engine):
    plain = [engine.confidence(n) for n in range(12)]
    with_policy = [engine.confidence(n, 0.4) for n in range(12)]

    assert plain == sorted(plain)
    assert with_policy == sorted(with_policy)
    assert plain[0] == 0.0
    assert plain[5] == 1.0
    assert plain[11] == 1.0
    assert with_policy[11] == pytest.approx(0.7)


def test_no_evidence_yields_minimal_deterministic_score(engine, product, clock):
    score = engine.compute(product, [], now=clock.now())

    assert score.score == pytest.approx(50.0)
    assert score.confidence == 0.0
    assert score.grade == "D"
    assert all(not b.evidence_ids for b in score.breakdown)


def test_vertical_override_selects_weights(scoring_config):
    assert scoring_config.weights_for("Financial Services") == scoring_config.vertical_overrides["financial_services"]
    assert scoring_config.weights_for("unknown") == scoring_config.default_weights
    assert scoring_config.weights_for(None) == scoring_config.default_weights


def test_severity_factor_rescales_raw(config_with, raw_config, make_event, clock):
    normalization = json.loads(json.dumps(raw_config["metricNormalization"]))
    normalization["recallsAndSafety"]["severityFactor"] = 2.0
    engine = TrustScoreEngine(config_with(metricNormalization=normalization))
    entity = Entity(kind=EntityKind.PRODUCT, id="SKU-2", name="Widget")

    score = engine.compute(entity, [make_event(EventType.RECALL, 1.0)], now=clock.now())

    # raw 1.0 scaled to 2.0 on an inverse 0..5 range
    assert score.metric(RECALLS_AND_SAFETY).normalized == pytest.approx(60.0)


# ── Policy sub-score ──

def test_policy_subscore_points():
    facts = PolicyFacts(
        warranty_length_months=24,
        coverage={"parts": True, "labor": True},
        transferable=True,
        arbitration_clause=True,
    )

    assert policy_subscore(facts) == pytest.approx(50 + 8 + 20 + 10 - 10)


def test_policy_subscore_is_clamped():
    facts = PolicyFacts(
        warranty_length_months=120,
        coverage={"parts": True, "labor": True, "electronics": True, "battery": True},
        transferable=True,
        registration_required=False,
        registration_window_days=60,
        refund_window_days=90,
    )
    assert policy_subscore(facts) == 100.0

    harsh = PolicyFacts(transferable=False, arbitration_clause=True)
    assert policy_subscore(harsh) == pytest.approx(35.0)


def test_dampening_pulls_toward_neutral():
    assert dampen(78, 1.0, 0.5, 0.3) == pytest.approx(78)
    assert dampen(78, 0.0, 0.5, 0.3) == pytest.approx(64)
    assert dampen(78, None, 0.5, 0.3) == pytest.approx(50 + 28 * 0.65)


def test_explicit_policy_facts_feed_policy_bucket(engine, product, clock):
    facts = {
        "warrantyLengthMonths": 24,
        "coverage": {"parts": True, "labor": True},
        "transferable": True,
        "arbitrationClause": True,
        "policyConfidence": 1.0,
    }

    score = engine.compute(product, [], policy=facts, now=clock.now())

    assert score.metric(POLICY_AND_WARRANTY).raw == pytest.approx(78)
    assert score.confidence == pytest.approx(0.5)


def test_newest_policy_event_supplies_facts(engine, product, make_event, clock):
    old = make_event(EventType.POLICY, 0.5, details_json={"parsed": {"warrantyLengthMonths": 3, "policyConfidence": 1.0}})
    clock.advance(60)
    new = make_event(EventType.POLICY, 0.5, details_json={"parsed": {"warrantyLengthMonths": 30, "policyConfidence": 1.0}})

    score = engine.compute(product, [new, old], now=clock.now())

    policy = score.metric(POLICY_AND_WARRANTY)
    assert policy.raw == pytest.approx(60)
    assert set(policy.evidence_ids) == {old.id, new.id}


# ── Degradation ──

def test_metric_without_normalization_degrades_to_neutral(config_with, product, clock):
    engine = TrustScoreEngine(config_with(defaultWeights={"unheardOf": 1.0}, verticalOverrides={}))

    score = engine.compute(product, [], now=clock.now())

    assert score.score == 50
    assert score.confidence == 0.0
    assert [b.metric for b in score.breakdown] == ["unheardOf"]
    assert score.breakdown[0].normalized == 50


def test_zero_sum_weights_degrade_to_neutral(config_with, product, make_event, clock):
    engine = TrustScoreEngine(config_with(defaultWeights={"recallsAndSafety": 0.0}, verticalOverrides={}))

    score = engine.compute(product, [make_event(EventType.RECALL, 1.0)], now=clock.now())

    assert score.score == 50
    assert score.confidence == 0.0


# ── Models & config ──

def test_event_severity_is_validated(clock):
    with pytest.raises(ValidationError):
        CanonicalEvent(source="x", type=EventType.RECALL, severity=1.2, title="t", parsed_at=clock.now())


def test_event_json_uses_camel_case(make_event):
    data = make_event(EventType.NEWS, 0.4, raw_url="https://e.x/1").to_json()

    assert data["rawUrl"] == "https://e.x/1"
    assert "detailsJson" in data
    assert "parsedAt" in data


def test_config_errors_are_config_errors(tmp_path, raw_config):
    with pytest.raises(ConfigError):
        load_scoring_config(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigError):
        load_scoring_config(str(broken))

    bad = dict(raw_config, gradeThresholds={"A": 40, "B": 70, "C": 55, "D": 85})
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(bad))
    with pytest.raises(ConfigError):
        load_scoring_config(str(path))


def test_out_of_range_severity_mapping_is_rejected(config_with):
    with pytest.raises(ConfigError):
        config_with(severityMapping={"cfpb": {"In progress": 3}})


def test_default_config_covers_every_metric(scoring_config):
    assert set(scoring_config.metric_normalization) == set(METRICS)
    assert isinstance(scoring_config.grade_thresholds, GradeThresholds)
    assert scoring_config.version == "1.0.0"
