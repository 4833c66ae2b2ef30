"""
TrustSignal — NHTSA Vehicle Recalls

Endpoint: https://api.nhtsa.gov/recalls/recallsByVehicle?make=&model=&modelYear=
Free, no API key. 60 requests / minute.

The API needs at least a make, so free text without a recognizable make
resolves to an empty batch. Companies are looked up by manufacturer.

Severity (consequence / component text, first match wins):
    death, injury             1.0
    crash, accident           0.9
    fire, burn                0.8
    brake, steering           0.7
    airbag, seatbelt          0.7
    fail                      0.6
    electrical, engine        0.5
    anything else             0.4
"""
from typing import Any, Dict, List, Optional, Tuple

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.connectors.query import parse_query
from trustsignal.models import CanonicalEvent, EntityDescriptor, EventType

BASE_URL = "https://api.nhtsa.gov"
RECALL_URL = "https://www.nhtsa.gov/recalls?nhtsaId={campaign}"


class NHTSAConnector(SourceConnector):
    provider = "nhtsa"
    hard_cap = 100
    rate_budget = 60
    neutral_severity = 0.4

    def native_severity(self, record: Record) -> float:
        consequence = str(record.get("Consequence") or "").lower()
        component = str(record.get("Component") or "").lower()
        both = f"{consequence} {component}"

        if "death" in consequence or "injury" in consequence:
            return 1.0
        if "crash" in consequence or "accident" in consequence:
            return 0.9
        if "fire" in consequence or "burn" in consequence:
            return 0.8
        if "brake" in both or "steering" in both:
            return 0.7
        if "airbag" in both or "air bag" in both or "seatbelt" in both or "seat belt" in both:
            return 0.7
        if "fail" in consequence:
            return 0.6
        if "electrical" in component or "engine" in component:
            return 0.5
        return self.neutral_severity

    def severity_text(self, record: Record) -> str:
        return f"{record.get('Consequence') or ''} {record.get('Component') or ''}"

    async def fetch_events_for_entity(self, entity: EntityDescriptor, limit: Optional[int] = None, **filters: Any) -> List[CanonicalEvent]:
        if entity.type == "company":
            filters.setdefault("manufacturer", entity.name)
        return await self.search_by_text(entity.name, limit, **filters)

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        if filters.get("manufacturer"):
            data = await self._get_json(
                f"{BASE_URL}/recalls/recallsByManufacturer",
                params={"manufacturer": filters["manufacturer"]},
            )
        else:
            parsed = parse_query(query)
            make = filters.get("make") or parsed.make
            if not make:
                return []
            params: Dict[str, Any] = {"make": make}
            model = filters.get("model") or parsed.model
            year = filters.get("model_year") or parsed.year
            if model:
                params["model"] = model
            if year:
                params["modelYear"] = str(year)
            data = await self._get_json(f"{BASE_URL}/recalls/recallsByVehicle", params=params)

        results = data.get("results") or [] if isinstance(data, dict) else []
        return [(r, self._normalize(r)) for r in results if isinstance(r, dict)]

    def _normalize(self, recall: Record) -> Optional[CanonicalEvent]:
        campaign = str(recall.get("NHTSACampaignNumber") or "")
        if not campaign:
            return None
        title = f"{recall.get('Make') or ''} {recall.get('Model') or ''} {recall.get('ModelYear') or ''} - {recall.get('Component') or 'Recall'}"
        return self._event(
            recall,
            EventType.RECALL,
            title=" ".join(title.split()),
            description=recall.get("Summary"),
            details={
                "campaign_number": campaign,
                "manufacturer": recall.get("Manufacturer"),
                "make": recall.get("Make"),
                "model": recall.get("Model"),
                "model_year": str(recall.get("ModelYear") or "") or None,
                "component": recall.get("Component"),
                "consequence": recall.get("Consequence"),
                "remedy": recall.get("Remedy"),
                "report_received_date": recall.get("ReportReceivedDate"),
            },
            raw_url=RECALL_URL.format(campaign=campaign),
            raw_ref=campaign,
        )
