"""
TrustSignal — Neo4j Connection

One driver per process, opened lazily on first use and verified before it is
handed out. Schema statements cover the three node labels the score store
writes: TrustEntity, Event and ScoreRecord.
"""
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from neo4j import Driver, GraphDatabase, Session
import structlog

from trustsignal.config import Settings, get_settings

logger = structlog.get_logger()

_driver: Optional[Driver] = None


def get_driver(settings: Optional[Settings] = None) -> Driver:
    global _driver
    if _driver is None:
        settings = settings or get_settings()
        driver = GraphDatabase.driver(
            settings.NEO4J_URI,
            auth=(settings.NEO4J_USER, settings.NEO4J_PASSWORD),
            connection_timeout=5,
            max_connection_pool_size=20,
        )
        # Fails fast with ServiceUnavailable / AuthError
        driver.verify_connectivity()
        _driver = driver
        logger.info("neo4j_connected", uri=settings.NEO4J_URI)
    return _driver


@contextmanager
def get_session() -> Iterator[Session]:
    with get_driver().session() as session:
        yield session


SCHEMA = [
    # (kind, id) is the identity: a SKU and a company id may collide.
    "CREATE CONSTRAINT IF NOT EXISTS FOR (e:TrustEntity) REQUIRE (e.kind, e.entity_id) IS UNIQUE",
    "CREATE CONSTRAINT IF NOT EXISTS FOR (ev:Event) REQUIRE ev.event_id IS UNIQUE",
    "CREATE CONSTRAINT IF NOT EXISTS FOR (s:ScoreRecord) REQUIRE s.score_id IS UNIQUE",
    "CREATE INDEX IF NOT EXISTS FOR (e:TrustEntity) ON (e.category)",
    "CREATE INDEX IF NOT EXISTS FOR (ev:Event) ON (ev.created_at)",
    "CREATE INDEX IF NOT EXISTS FOR (s:ScoreRecord) ON (s.created_at)",
]


def init_schema(session_factory: Callable = get_session) -> None:
    """Idempotent; every statement uses IF NOT EXISTS."""
    with session_factory() as session:
        for statement in SCHEMA:
            session.run(statement)
    logger.info("schema_initialized", statements=len(SCHEMA))


def close() -> None:
    global _driver
    if _driver is not None:
        _driver.close()
        _driver = None
        logger.info("neo4j_disconnected")
