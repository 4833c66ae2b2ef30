"""Shared fixtures: virtual clock, default scoring config, in-memory store."""
import json

import pytest

from trustsignal.clock import VirtualClock
from trustsignal.compute.cache import build_cache
from trustsignal.compute.persistence import InMemoryScoreStore
from trustsignal.compute.refresh import RecomputeScheduler
from trustsignal.compute.service import TrustService
from trustsignal.models import CanonicalEvent, Entity, EntityKind, EventType
from trustsignal.trust.config import DEFAULT_CONFIG_PATH, load_scoring_config, parse_scoring_config
from trustsignal.trust.engine import TrustScoreEngine


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def scoring_config():
    return load_scoring_config()


@pytest.fixture
def raw_config():
    """The default config document as a mutable dict."""
    return json.loads(DEFAULT_CONFIG_PATH.read_text(encoding="utf-8"))


@pytest.fixture
def config_with(raw_config):
    def _build(**overrides):
        data = dict(raw_config)
        data.update(overrides)
        return parse_scoring_config(data)
    return _build


@pytest.fixture
def engine(scoring_config):
    return TrustScoreEngine(scoring_config)


@pytest.fixture
def store():
    return InMemoryScoreStore()


@pytest.fixture
def product():
    return Entity(kind=EntityKind.PRODUCT, id="SKU-1", name="Acme Cordless Drill", category="tools", company_id="acme")


@pytest.fixture
def company():
    return Entity(kind=EntityKind.COMPANY, id="acme", name="Acme Corp")


@pytest.fixture
def make_event(clock):
    counter = {"n": 0}

    def _make(etype=EventType.COMPLAINT, severity=0.5, source="test", **kwargs):
        counter["n"] += 1
        kwargs.setdefault("id", f"evt_{counter['n']:04d}")
        kwargs.setdefault("title", f"{etype.value} {counter['n']}")
        kwargs.setdefault("parsed_at", clock.now())
        return CanonicalEvent(source=source, type=etype, severity=severity, **kwargs)

    return _make


@pytest.fixture
def scheduler(store, engine, clock):
    return RecomputeScheduler(store, engine, clock=clock)


@pytest.fixture
def cache(clock):
    return build_cache("", ttl=3600, clock=clock)


@pytest.fixture
def service(store, scheduler, cache, clock, scoring_config):
    return TrustService(store, scheduler, cache, clock=clock, diagnostics_config=scoring_config.diagnostics)
