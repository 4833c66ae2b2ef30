"""
TrustSignal — CFPB Consumer Complaint Database

Endpoint: https://www.consumerfinance.gov/data-research/consumer-complaints/search/api/v1/
Free, no API key. 30 requests / minute, 100 complaints per request.

Severity (first match wins):
    company_response "In progress"           0.9
    consumer disputed                        0.8
    "Closed without relief"                  0.8
    untimely response                        0.7
    "Closed with explanation"                0.5
    "Closed with non-monetary relief"        0.4
    "Closed with monetary relief" / relief   0.3
    anything else                            0.6
"""
from typing import Any, Dict, List, Optional, Tuple

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.connectors.query import parse_query
from trustsignal.connectors.redaction import NARRATIVE_MAX, mask_postal_code, truncate
from trustsignal.models import CanonicalEvent, EntityDescriptor, EventType

BASE_URL = "https://www.consumerfinance.gov/data-research/consumer-complaints/search/api/v1/"
DETAIL_URL = "https://www.consumerfinance.gov/data-research/consumer-complaints/search/detail/{id}"


def _yes(value: Any) -> bool:
    return str(value or "").strip().lower() in ("yes", "true", "1")


class CFPBConnector(SourceConnector):
    provider = "cfpb"
    hard_cap = 100
    rate_budget = 30
    neutral_severity = 0.6
    entity_keywords: Dict[str, tuple] = {"company": (), "product": ()}

    def native_severity(self, record: Record) -> float:
        response = str(record.get("company_response") or "")
        if response == "In progress":
            return 0.9
        if _yes(record.get("consumer_disputed")):
            return 0.8
        if "Closed without relief" in response:
            return 0.8
        if str(record.get("timely") or "").strip().lower() == "no":
            return 0.7
        if "Closed with explanation" in response:
            return 0.5
        if "Closed with non-monetary relief" in response:
            return 0.4
        if "Closed with monetary relief" in response or "Closed with relief" in response:
            return 0.3
        return self.neutral_severity

    def severity_text(self, record: Record) -> str:
        return str(record.get("company_response") or "")

    async def fetch_events_for_entity(self, entity: EntityDescriptor, limit: Optional[int] = None, **filters: Any) -> List[CanonicalEvent]:
        # The complaint database is already a risk signal; filter by company instead of adding keywords.
        # Products get no company filter, not even one inferred from the name.
        filters.setdefault("company", entity.name if entity.type == "company" else None)
        return await self.search_by_text(entity.name, limit, **filters)

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        parsed = parse_query(query)
        params: Dict[str, Any] = {
            "size": min(limit, self.hard_cap),
            "format": "json",
            "no_aggs": "true",
            "sort": "created_date_desc",
            "search_term": query,
        }
        company = filters["company"] if "company" in filters else parsed.company
        product = filters.get("product") or (parsed.product if parsed.category == "financial_services" else None)
        if company:
            params["company"] = company
        if product:
            params["product"] = product
        if filters.get("date_from"):
            params["date_received_min"] = filters["date_from"]
        if filters.get("date_to"):
            params["date_received_max"] = filters["date_to"]

        data = await self._get_json(BASE_URL, params=params)
        return [(record, self._normalize(record)) for record in _hits(data)]

    def _normalize(self, hit: Record) -> Optional[CanonicalEvent]:
        c = hit.get("_source", hit)
        complaint_id = str(c.get("complaint_id") or "")
        if not complaint_id:
            return None

        narrative = c.get("complaint_what_happened") or c.get("consumer_complaint_narrative")
        title = f"{c.get('company') or 'Unknown'} - {c.get('product') or 'Financial Service'}: {c.get('issue') or 'Consumer Complaint'}"
        description = narrative or f"{c.get('company_response') or 'Complaint filed'} - {c.get('sub_issue') or c.get('issue') or ''}"
        details = {
            "complaint_id": complaint_id,
            "product": c.get("product"),
            "sub_product": c.get("sub_product"),
            "issue": c.get("issue"),
            "company": c.get("company"),
            "company_response": c.get("company_response"),
            "timely": (str(c.get("timely") or "").strip().lower() == "yes") if c.get("timely") else None,
            "consumer_disputed": _yes(c.get("consumer_disputed")) if c.get("consumer_disputed") not in (None, "N/A") else None,
            "state": c.get("state"),
            "zip_code": mask_postal_code(c.get("zip_code")),
            "narrative": truncate(narrative, NARRATIVE_MAX),
            "date_received": c.get("date_received"),
        }
        return self._event(
            c,
            EventType.COMPLAINT,
            title=title,
            description=description,
            details=details,
            raw_url=DETAIL_URL.format(id=complaint_id),
            raw_ref=complaint_id,
        )


def _hits(data: Any) -> List[Record]:
    if isinstance(data, list):
        return [h for h in data if isinstance(h, dict)]
    if isinstance(data, dict):
        hits = data.get("hits")
        if isinstance(hits, dict):
            return [h for h in hits.get("hits") or [] if isinstance(h, dict)]
        if isinstance(hits, list):
            return [h for h in hits if isinstance(h, dict)]
    return []
