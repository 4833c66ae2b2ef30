"""
TrustSignal — CPSC Consumer Product Recalls

Endpoint: https://www.saferproducts.gov/RestWebServices/Recall?format=json
Free, no API key. 30 requests / minute.

Products are looked up by product name, companies by manufacturer. The
service answers with either a bare list or `{"recalls": [...]}`.

Severity (hazard names, title and description, first match wins):
    death, fatal                     1.0
    choking, poison, strangulation   0.9
    fire, burn                       0.8
    shock, electrocution             0.75
    injury, laceration, fall, tip    0.6
    anything else                    0.5
"""
from typing import Any, Dict, List, Optional, Tuple

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.models import CanonicalEvent, EntityDescriptor, EventType

BASE_URL = "https://www.saferproducts.gov/RestWebServices/Recall"
RECALL_URL = "https://www.cpsc.gov/Recalls/{number}"

_SEVERITY = (
    (("death", "fatal"), 1.0),
    (("chok", "poison", "strangulat"), 0.9),
    (("fire", "burn"), 0.8),
    (("shock", "electrocut"), 0.75),
    (("injur", "laceration", "fall", "tip-over", "tip over"), 0.6),
)


def _names(items: Any, key: str = "Name") -> List[str]:
    if not isinstance(items, list):
        return []
    return [str(i.get(key)) for i in items if isinstance(i, dict) and i.get(key)]


class CPSCConnector(SourceConnector):
    provider = "cpsc"
    hard_cap = 100
    rate_budget = 30
    neutral_severity = 0.5

    def severity_text(self, record: Record) -> str:
        hazards = " ".join(_names(record.get("Hazards")))
        return f"{hazards} {record.get('Title') or ''} {record.get('Description') or ''}"

    def native_severity(self, record: Record) -> float:
        text = self.severity_text(record).lower()
        for keywords, severity in _SEVERITY:
            if any(k in text for k in keywords):
                return severity
        return self.neutral_severity

    async def fetch_events_for_entity(self, entity: EntityDescriptor, limit: Optional[int] = None, **filters: Any) -> List[CanonicalEvent]:
        if entity.type == "company":
            filters.setdefault("manufacturer", entity.name)
        return await self.search_by_text(entity.name, limit, **filters)

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        params: Dict[str, Any] = {"format": "json"}
        if filters.get("manufacturer"):
            params["Manufacturer"] = filters["manufacturer"]
        else:
            params["ProductName"] = query

        data = await self._get_json(BASE_URL, params=params)
        if isinstance(data, dict):
            data = data.get("recalls") or []
        if not isinstance(data, list):
            return []
        return [(r, self._normalize(r)) for r in data if isinstance(r, dict)]

    def _normalize(self, recall: Record) -> Optional[CanonicalEvent]:
        number = str(recall.get("RecallNumber") or "")
        recall_id = str(recall.get("RecallID") or "")
        if not number and not recall_id:
            return None

        manufacturers = _names(recall.get("Manufacturers"))
        title = recall.get("Title") or "Product recall"
        if manufacturers:
            title = f"{manufacturers[0]} - {title}"

        products = [
            {"name": p.get("Name"), "type": p.get("Type"), "model": p.get("Model"), "upc": p.get("UPC")}
            for p in recall.get("Products") or [] if isinstance(p, dict)
        ]
        return self._event(
            recall,
            EventType.RECALL,
            title=title,
            description=recall.get("Description"),
            details={
                "recall_number": number or None,
                "recall_id": recall_id or None,
                "recall_date": recall.get("RecallDate"),
                "manufacturers": manufacturers,
                "products": products,
                "hazards": _names(recall.get("Hazards")),
                "remedy_options": _names(recall.get("RemedyOptions") or recall.get("Remedies"), "Option"),
                "images": _names(recall.get("Images"), "URL"),
            },
            raw_url=recall.get("URL") or (RECALL_URL.format(number=number) if number else None),
            raw_ref=number or recall_id,
        )
