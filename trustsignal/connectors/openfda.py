"""
TrustSignal — openFDA

Endpoint: https://api.fda.gov
Optional API key (OPENFDA_API_KEY). 240 requests / minute, 100 results per request.

Four searches, filtered by `data_source` (drug | device | both) and
`event_type` (recall | adverse_event | both):
    /drug/enforcement.json     drug recalls          → recall
    /device/recall.json        device recalls        → recall
    /drug/event.json           FAERS adverse events  → advisory
    /device/event.json         MAUDE adverse events  → advisory

A 404 from one endpoint means "no matches there"; the others still run.

Entity lookups search the bare name as an exact phrase: products against the
product fields, companies (`match="firm"`) against manufacturer / recalling
firm fields.

Recall severity by classification:
    Class I 1.0, Class II 0.7, Class III 0.4, unclassified 0.6
Adverse event severity by outcome:
    serious flag / death                     1.0
    life threatening, hospitalization        0.9
    disabling, disability                    0.8
    serious                                  0.7
    anything else                            0.5
"""
import json
from typing import Any, Dict, List, Optional, Tuple

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.models import CanonicalEvent, EntityDescriptor, EventType

BASE_URL = "https://api.fda.gov"

# (source, endpoint kind) → searched field, by match mode
_FIELDS = {
    "product": {
        ("drug", "event"): "patient.drug.medicinalproduct",
        ("device", "event"): "device.brand_name",
        ("drug", "recall"): "product_description",
        ("device", "recall"): "product_description",
    },
    "firm": {
        ("drug", "event"): "patient.drug.openfda.manufacturer_name",
        ("device", "event"): "device.manufacturer_d_name",
        ("drug", "recall"): "recalling_firm",
        ("device", "recall"): "recalling_firm",
    },
}

_RECALL_PAGE = {
    "drug": "https://www.fda.gov/safety/recalls-market-withdrawals-safety-alerts",
    "device": "https://www.fda.gov/medical-devices/medical-device-recalls",
}
_EVENT_PAGE = {
    "drug": "https://open.fda.gov/data/faers/",
    "device": "https://open.fda.gov/data/maude/",
}


def recall_class_severity(classification: str) -> float:
    c = (classification or "").lower()
    # Order matters: "class iii" contains "class ii" contains "class i".
    if "class iii" in c:
        return 0.4
    if "class ii" in c:
        return 0.7
    if "class i" in c:
        return 1.0
    return 0.6


def adverse_event_severity(serious: Any, outcomes_text: str) -> float:
    text = outcomes_text.lower()
    if str(serious) == "1" or "death" in text:
        return 1.0
    if "life threatening" in text or "hospitalization" in text:
        return 0.9
    if "disabling" in text or "disability" in text:
        return 0.8
    if "serious" in text:
        return 0.7
    return 0.5


class OpenFDAConnector(SourceConnector):
    provider = "openfda"
    hard_cap = 100
    rate_budget = 240
    neutral_severity = 0.6

    def severity_text(self, record: Record) -> str:
        return str(record.get("reason_for_recall") or record.get("product_description") or "")

    async def fetch_events_for_entity(self, entity: EntityDescriptor, limit: Optional[int] = None, **filters: Any) -> List[CanonicalEvent]:
        # Field searches are exact phrases; risk keywords would never match.
        filters.setdefault("match", "firm" if entity.type == "company" else "product")
        return await self.search_by_text(entity.name, limit, **filters)

    def _params(self, search: str, limit: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"search": search, "limit": min(limit, self.hard_cap)}
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        data_source = filters.get("data_source", "both")
        event_type = filters.get("event_type", "both")
        phrase = query.replace('"', "")
        fields = _FIELDS.get(filters.get("match", "product"), _FIELDS["product"])
        pairs: List[Tuple[Record, Optional[CanonicalEvent]]] = []

        for source in ("drug", "device"):
            if data_source not in (source, "both"):
                continue
            if event_type in ("adverse_event", "both"):
                field = fields[(source, "event")]
                data = await self._get_json_or_none(
                    f"{BASE_URL}/{source}/event.json", params=self._params(f'{field}:"{phrase}"', limit)
                )
                for r in _results(data):
                    pairs.append((r, self._adverse_event(r, source)))
            if event_type in ("recall", "both"):
                path = "drug/enforcement.json" if source == "drug" else "device/recall.json"
                data = await self._get_json_or_none(
                    f"{BASE_URL}/{path}", params=self._params(f'{fields[(source, "recall")]}:"{phrase}"', limit)
                )
                for r in _results(data):
                    pairs.append((r, self._recall(r, source)))
        return pairs

    def _recall(self, recall: Record, source: str) -> Optional[CanonicalEvent]:
        number = recall.get("recall_number") or recall.get("res_event_number") or recall.get("product_res_number")
        classification = recall.get("classification") or "Unknown"
        reason = recall.get("reason_for_recall") or "No reason specified"
        firm = recall.get("recalling_firm") or "Unknown firm"
        return self._event(
            recall,
            EventType.RECALL,
            title=f"{source.title()} recall: {firm}",
            description=f"{reason[:200]}. Class: {classification}",
            details={
                "recall_number": number,
                "classification": classification,
                "recalling_firm": firm,
                "product_description": recall.get("product_description"),
                "reason_for_recall": reason,
                "status": recall.get("status"),
                "category": source,
                "recall_initiation_date": recall.get("recall_initiation_date"),
            },
            raw_url=_RECALL_PAGE[source],
            raw_ref=str(number) if number else None,
            severity=recall_class_severity(classification),
        )

    def _adverse_event(self, event: Record, source: str) -> Optional[CanonicalEvent]:
        report_id = event.get("safetyreportid") or event.get("report_number") or event.get("mdr_report_key")
        if source == "drug":
            patient = event.get("patient") or {}
            outcomes = [r.get("reactionmeddrapt", "") for r in patient.get("reaction") or [] if isinstance(r, dict)]
            products = [d.get("medicinalproduct", "") for d in patient.get("drug") or [] if isinstance(d, dict)]
            serious = event.get("serious")
        else:
            outcomes = [event["event_type"]] if event.get("event_type") else []
            for p in event.get("patient") or []:
                if isinstance(p, dict):
                    outcomes.extend(p.get("sequence_number_outcome") or [])
            products = [d.get("brand_name", "") for d in event.get("device") or [] if isinstance(d, dict)]
            serious = None

        outcomes = [str(o) for o in outcomes if o]
        products = [str(p) for p in products if p]
        outcomes_text = json.dumps(outcomes)
        return self._event(
            event,
            EventType.ADVISORY,
            title=f"{source.title()} adverse event: {', '.join(products[:3]) or 'unnamed product'}",
            description=f"Reported outcomes: {', '.join(outcomes[:5]) or 'not specified'}",
            details={
                "report_id": str(report_id) if report_id else None,
                "serious": str(serious) == "1" if serious is not None else None,
                "outcomes": outcomes,
                "products": products,
                "category": source,
            },
            raw_url=_EVENT_PAGE[source],
            raw_ref=str(report_id) if report_id else None,
            severity=adverse_event_severity(serious, outcomes_text),
        )


def _results(data: Any) -> List[Record]:
    if not isinstance(data, dict):
        return []
    return [r for r in data.get("results") or [] if isinstance(r, dict)]
