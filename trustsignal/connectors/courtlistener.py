"""
TrustSignal — CourtListener (Free Law Project)

Endpoint: https://www.courtlistener.com/api/rest/v4/search/
Token required (COURTLISTENER_API_KEY). 5000 requests / hour.
Searches opinions (type=o) and RECAP dockets (type=r), 100 per page max.

Severity (keywords anywhere in the case record, first match wins):
    criminal, felony                          0.9
    penalty, fine, damages                    0.8
    injunction, restraining order             0.7
    recall, warning letter                    0.8
    settlement, consent decree                0.6
    complaint, lawsuit                        0.5
    appeal, motion                            0.4
    anything else                             0.5
"""
import json
import re
from typing import Any, Dict, List, Optional, Tuple

import structlog

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.connectors.rate_limit import HOUR
from trustsignal.models import CanonicalEvent, EventType

logger = structlog.get_logger()

BASE_URL = "https://www.courtlistener.com/api/rest/v4"
SITE_URL = "https://www.courtlistener.com"

_SEVERITY_TABLE: Tuple[Tuple[re.Pattern, float], ...] = tuple(
    (re.compile(pattern), severity) for pattern, severity in (
        (r"\b(criminal|felony)\b", 0.9),
        (r"\b(penalty|penalties|fines?|damages)\b", 0.8),
        (r"\b(injunction|restraining order)\b", 0.7),
        (r"\b(recall|warning letter)\b", 0.8),
        (r"\b(settlement|consent decree)\b", 0.6),
        (r"\b(complaint|lawsuit)\b", 0.5),
        (r"\b(appeal|motion)\b", 0.4),
    )
)


class CourtListenerConnector(SourceConnector):
    provider = "courtlistener"
    hard_cap = 100
    rate_budget = 5000
    rate_window = HOUR
    neutral_severity = 0.5
    entity_keywords = {
        "company": ("lawsuit", "fraud", "injunction", "penalty", "settlement"),
        "product": ("recall", "defect", "liability", "injury"),
    }

    def _record_text(self, record: Record) -> str:
        return json.dumps(record, default=str).lower()

    def native_severity(self, record: Record) -> float:
        text = self._record_text(record)
        for pattern, severity in _SEVERITY_TABLE:
            if pattern.search(text):
                return severity
        return self.neutral_severity

    def severity_text(self, record: Record) -> str:
        return self._record_text(record)

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        if not self.api_key:
            logger.warning("courtlistener_token_missing", query=query[:80])
            return []

        headers = {"Authorization": f"Token {self.api_key}"}
        search_type = filters.get("search_type", "both")
        pairs: List[Tuple[Record, Optional[CanonicalEvent]]] = []

        if search_type in ("opinions", "both"):
            data = await self._get_json_or_none(
                f"{BASE_URL}/search/",
                params={"q": query, "type": "o", "order_by": "score desc", "page_size": min(limit, self.hard_cap)},
                headers=headers,
            )
            for r in _results(data):
                pairs.append((r, self._normalize(r, "opinion")))

        if search_type in ("dockets", "both"):
            data = await self._get_json_or_none(
                f"{BASE_URL}/search/",
                params={"q": query, "type": "r", "order_by": "score desc", "page_size": min(limit, self.hard_cap)},
                headers=headers,
            )
            for r in _results(data):
                pairs.append((r, self._normalize(r, "docket")))

        return pairs

    def _normalize(self, record: Record, record_type: str) -> Optional[CanonicalEvent]:
        case_name = record.get("caseName") or record.get("case_name") or "Unknown Case"
        court = record.get("court") or record.get("court_citation_string") or "Unknown Court"
        filed = record.get("dateFiled") or record.get("date_filed")
        path = record.get("absolute_url") or record.get("docket_absolute_url")
        record_id = record.get("id") or record.get("cluster_id") or record.get("docket_id")
        if path:
            url = f"{SITE_URL}{path}"
        elif record_id:
            url = f"{SITE_URL}/{'opinion' if record_type == 'opinion' else 'docket'}/{record_id}/"
        else:
            url = None

        snippet = record.get("snippet")
        if not snippet and isinstance(record.get("opinions"), list) and record["opinions"]:
            snippet = record["opinions"][0].get("snippet")
        description = snippet or f"{'Legal opinion' if record_type == 'opinion' else 'Docket'} filed on {filed or 'unknown date'}"

        return self._event(
            record,
            EventType.COURT,
            title=f"{case_name} - {court}",
            description=description,
            details={
                "case_name": case_name,
                "court": court,
                "docket_number": record.get("docketNumber") or record.get("docket_number"),
                "date_filed": filed,
                "status": record.get("status") or record.get("precedential_status"),
                "nature_of_suit": record.get("suitNature"),
                "cause": record.get("cause"),
                "record_type": record_type,
            },
            raw_url=url,
            raw_ref=str(record_id) if record_id else None,
        )


def _results(data: Any) -> List[Record]:
    if not isinstance(data, dict):
        return []
    return [r for r in data.get("results") or [] if isinstance(r, dict)]
