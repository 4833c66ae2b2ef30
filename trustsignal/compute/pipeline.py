"""
TrustSignal — Compute Pipeline

Wires one explicit instance of every component from Settings:

    Connectors → Ingestor → Store → Engine (via Scheduler) → Cache → Service

Nothing here is a module-level singleton; the API process, the recompute CLI
and the arq worker each build their own pipeline and shut it down.
"""
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
import structlog

from trustsignal.clock import Clock
from trustsignal.compute.cache import ResponseCache, build_cache
from trustsignal.compute.ingest import EvidenceIngestor
from trustsignal.compute.persistence import InMemoryScoreStore, Neo4jScoreStore, ScoreStore
from trustsignal.compute.refresh import RecomputeScheduler
from trustsignal.compute.service import TrustService
from trustsignal.config import Settings, get_settings
from trustsignal.connectors import build_connectors
from trustsignal.connectors.base import DEFAULT_USER_AGENT, SourceConnector
from trustsignal.trust.config import ScoringConfig, get_scoring_config
from trustsignal.trust.engine import TrustScoreEngine

logger = structlog.get_logger()

# Timeout for all provider calls made through the shared client
_TIMEOUT = httpx.Timeout(15.0, connect=5.0)


@dataclass
class Pipeline:
    settings: Settings
    clock: Clock
    config: ScoringConfig
    engine: TrustScoreEngine
    store: ScoreStore
    cache: ResponseCache
    scheduler: RecomputeScheduler
    connectors: Dict[str, SourceConnector]
    ingestor: EvidenceIngestor
    service: TrustService
    client: Optional[httpx.AsyncClient] = None

    async def shutdown(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        self.cache.close()
        self.store.close()
        logger.info("pipeline_stopped")


def build_store(settings: Settings) -> ScoreStore:
    if settings.STORE_BACKEND == "neo4j":
        store = Neo4jScoreStore()
        store.init_schema()
        return store
    return InMemoryScoreStore()


def build_pipeline(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    store: Optional[ScoreStore] = None,
    config: Optional[ScoringConfig] = None,
    cache: Optional[ResponseCache] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Pipeline:
    """ConfigError and StoreUnavailable raised here are fatal for the caller."""
    settings = settings or get_settings()
    clock = clock or Clock()
    config = config or get_scoring_config()
    engine = TrustScoreEngine(config)
    store = store or build_store(settings)
    cache = cache or build_cache(settings.REDIS_URL, ttl=settings.CACHE_TTL_SECONDS, clock=clock)

    client = client or httpx.AsyncClient(
        timeout=_TIMEOUT,
        follow_redirects=True,
        headers={"User-Agent": settings.HTTP_USER_AGENT or DEFAULT_USER_AGENT, "Accept": "application/json"},
    )
    connectors = build_connectors(settings, client=client, clock=clock, severity_mapping=config.severity_mapping)

    scheduler = RecomputeScheduler(
        store,
        engine,
        clock=clock,
        lookback_hours=settings.RECOMPUTE_LOOKBACK_HOURS,
        drift_threshold=settings.DRIFT_THRESHOLD,
        pause_seconds=settings.RECOMPUTE_PAUSE_SECONDS,
    )
    service = TrustService(
        store,
        scheduler,
        cache,
        clock=clock,
        include_diagnostics=settings.TRUST_INCLUDE_DIAGNOSTICS,
        diagnostics_config=config.diagnostics,
    )
    ingestor = EvidenceIngestor(store, cache, connectors, clock=clock)

    logger.info("pipeline_initialized",
                store=type(store).__name__,
                cache=type(cache.backend).__name__,
                connectors=sorted(connectors),
                config_version=config.version)
    return Pipeline(
        settings=settings,
        clock=clock,
        config=config,
        engine=engine,
        store=store,
        cache=cache,
        scheduler=scheduler,
        connectors=connectors,
        ingestor=ingestor,
        service=service,
        client=client,
    )
