"""
TrustSignal — Worker Settings

arq worker for the persistent periodic mode of the recompute scheduler:
    1. recompute_incremental as a cron job (every 6 hours, on the hour)
    2. ingest_all as a cron job (every 6 hours, half an hour before each pass)
    3. recompute_full, compute_entity and ingest_entity as on-demand jobs

Start with:
    arq trustsignal.workers.worker_settings.WorkerSettings
or:
    python -m trustsignal.compute.refresh periodic
"""
from typing import Any, Dict

from arq import cron
from arq.connections import RedisSettings
import structlog

from trustsignal.compute.pipeline import build_pipeline
from trustsignal.config import get_settings
from trustsignal.log_config import configure_logging
from trustsignal.models import EntityKind

logger = structlog.get_logger()

settings = get_settings()

REDIS_SETTINGS = RedisSettings.from_dsn(settings.REDIS_URL or "redis://localhost:6379/0")


async def startup(ctx: Dict[str, Any]) -> None:
    configure_logging()
    ctx["pipeline"] = build_pipeline()
    logger.info("worker_started")


async def shutdown(ctx: Dict[str, Any]) -> None:
    pipeline = ctx.get("pipeline")
    if pipeline is not None:
        await pipeline.shutdown()
    logger.info("worker_stopped")


async def recompute_incremental(ctx: Dict[str, Any]) -> Dict[str, Any]:
    report = await ctx["pipeline"].scheduler.incremental()
    return report.to_dict()


async def recompute_full(ctx: Dict[str, Any]) -> Dict[str, Any]:
    report = await ctx["pipeline"].scheduler.full()
    return report.to_dict()


async def compute_entity(ctx: Dict[str, Any], kind: str, entity_id: str) -> Dict[str, Any]:
    score = ctx["pipeline"].scheduler.compute_on_demand(EntityKind(kind), entity_id)
    return score.to_json()


async def ingest_entity(ctx: Dict[str, Any], kind: str, entity_id: str) -> Dict[str, Any]:
    report = await ctx["pipeline"].ingestor.collect_for(EntityKind(kind), entity_id)
    return report.to_dict()


async def ingest_all(ctx: Dict[str, Any]) -> Dict[str, Any]:
    reports = await ctx["pipeline"].ingestor.collect_all()
    return {
        "entities": len(reports),
        "eventsAdded": sum(r.events_added for r in reports),
        "errors": {r.entity_id: r.errors for r in reports if r.errors},
    }


class WorkerSettings:
    """arq worker configuration."""

    functions = [
        recompute_full,
        compute_entity,
        ingest_entity,
    ]

    cron_jobs = [
        cron(
            recompute_incremental,
            hour={0, 6, 12, 18},
            minute={0},
            unique=True,  # no overlapping passes
        ),
        cron(
            ingest_all,
            hour={5, 11, 17, 23},
            minute={30},
            unique=True,
        ),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = REDIS_SETTINGS
    max_jobs = 4
    job_timeout = 3600
