"""
TrustSignal — Connector Registry

One connector instance per provider, built explicitly by the caller.
"""
from typing import Dict, Mapping, Optional

import httpx

from trustsignal.clock import Clock
from trustsignal.config import Settings, get_settings
from trustsignal.connectors.archive import RawArchive
from trustsignal.connectors.base import SourceConnector
from trustsignal.connectors.cfpb import CFPBConnector
from trustsignal.connectors.courtlistener import CourtListenerConnector
from trustsignal.connectors.cpsc import CPSCConnector
from trustsignal.connectors.datagov import DataGovConnector
from trustsignal.connectors.ftc import FTCConnector
from trustsignal.connectors.gdelt import GDELTConnector
from trustsignal.connectors.nhtsa import NHTSAConnector
from trustsignal.connectors.openfda import OpenFDAConnector
from trustsignal.connectors.retry import RetryPolicy

CONNECTOR_CLASSES = {
    cls.provider: cls
    for cls in (
        CFPBConnector,
        NHTSAConnector,
        GDELTConnector,
        CourtListenerConnector,
        OpenFDAConnector,
        DataGovConnector,
        CPSCConnector,
        FTCConnector,
    )
}

_API_KEYS = {
    "courtlistener": "COURTLISTENER_API_KEY",
    "openfda": "OPENFDA_API_KEY",
    "datagov": "DATAGOV_API_KEY",
}


def build_connectors(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    clock: Optional[Clock] = None,
    archive: Optional[RawArchive] = None,
    severity_mapping: Optional[Mapping[str, Mapping[str, float]]] = None,
) -> Dict[str, SourceConnector]:
    settings = settings or get_settings()
    clock = clock or Clock()
    archive = archive or RawArchive(settings.RAW_ARCHIVE_DIR, clock=clock)
    severity_mapping = severity_mapping or {}

    connectors: Dict[str, SourceConnector] = {}
    for name, cls in CONNECTOR_CLASSES.items():
        connectors[name] = cls(
            client=client,
            clock=clock,
            archive=archive,
            retry=RetryPolicy(
                max_attempts=settings.CONNECTOR_MAX_ATTEMPTS,
                base_delay=settings.CONNECTOR_BASE_DELAY,
                clock=clock,
            ),
            api_key=getattr(settings, _API_KEYS[name], "") if name in _API_KEYS else "",
            user_agent=settings.HTTP_USER_AGENT,
            severity_overrides=severity_mapping.get(name),
            max_wait_seconds=settings.RATE_LIMIT_MAX_WAIT,
        )
    return connectors


__all__ = [
    "SourceConnector",
    "CFPBConnector",
    "NHTSAConnector",
    "GDELTConnector",
    "CourtListenerConnector",
    "OpenFDAConnector",
    "DataGovConnector",
    "CPSCConnector",
    "FTCConnector",
    "build_connectors",
    "CONNECTOR_CLASSES",
]
