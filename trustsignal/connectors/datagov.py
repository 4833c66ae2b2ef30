"""
TrustSignal — Data.gov Catalog (CKAN)

Endpoint: https://catalog.data.gov/api/3/action/package_search
1000 requests / hour with DATAGOV_API_KEY, 30 / hour on DEMO_KEY.
Up to 1000 rows per request.

Event type from dataset metadata: "recall" → recall,
warning / alert / advisory → advisory, everything else → dataset.

Severity (title, notes and tags, first match wins):
    recall                       0.9
    warning, alert               0.8
    advisory, safety             0.7
    violation, enforcement       0.8
    defect, hazard               0.7
    inspection, compliance       0.5
    anything else                0.4
"""
from typing import Any, Dict, List, Optional, Tuple

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.connectors.rate_limit import HOUR
from trustsignal.models import CanonicalEvent, EventType

BASE_URL = "https://catalog.data.gov/api/3"
DATASET_URL = "https://catalog.data.gov/dataset/{name}"
DEMO_KEY = "DEMO_KEY"

_SEVERITY_TABLE: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("recall",), 0.9),
    (("warning", "alert"), 0.8),
    (("advisory", "safety"), 0.7),
    (("violation", "enforcement"), 0.8),
    (("defect", "hazard"), 0.7),
    (("inspection", "compliance"), 0.5),
)

_CATEGORY_TERMS = {
    "recall": "(recall OR recalls)",
    "safety": "(safety OR hazard OR defect)",
    "enforcement": "(enforcement OR violation OR penalty)",
    "advisory": "(advisory OR warning OR alert)",
}


def _tags(dataset: Record) -> List[str]:
    out = []
    for t in dataset.get("tags") or []:
        if isinstance(t, dict):
            out.append(str(t.get("name") or t.get("display_name") or ""))
        elif isinstance(t, str):
            out.append(t)
    return [t for t in out if t]


def _combined(dataset: Record) -> str:
    return f"{dataset.get('title') or ''} {dataset.get('notes') or ''} {' '.join(_tags(dataset))}".lower()


def dataset_event_type(dataset: Record) -> EventType:
    text = _combined(dataset)
    if "recall" in text:
        return EventType.RECALL
    if "warning" in text or "alert" in text or "advisory" in text:
        return EventType.ADVISORY
    return EventType.DATASET


class DataGovConnector(SourceConnector):
    provider = "datagov"
    hard_cap = 1000
    rate_window = HOUR
    neutral_severity = 0.4
    entity_keywords = {
        "company": ("recall", "enforcement", "violation", "safety"),
        "product": ("recall", "safety", "defect", "hazard"),
    }

    def budget(self) -> int:
        return 1000 if self.api_key and self.api_key != DEMO_KEY else 30

    def native_severity(self, record: Record) -> float:
        text = _combined(record)
        for words, severity in _SEVERITY_TABLE:
            if any(w in text for w in words):
                return severity
        return self.neutral_severity

    def severity_text(self, record: Record) -> str:
        return _combined(record)

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        q = query
        category = filters.get("category")
        if category in _CATEGORY_TERMS:
            q = f"{query} {_CATEGORY_TERMS[category]}"
        params: Dict[str, Any] = {"q": q, "rows": min(limit, self.hard_cap), "start": 0}
        if filters.get("organization"):
            params["fq"] = f"organization:{filters['organization']}"
        params["api_key"] = self.api_key or DEMO_KEY

        data = await self._get_json(
            f"{BASE_URL}/action/package_search",
            params=params,
            headers={"X-Api-Key": self.api_key or DEMO_KEY},
        )
        result = data.get("result") if isinstance(data, dict) else None
        datasets = result.get("results") or [] if isinstance(result, dict) else []
        return [(d, self._normalize(d)) for d in datasets if isinstance(d, dict)]

    def _normalize(self, dataset: Record) -> Optional[CanonicalEvent]:
        dataset_id = dataset.get("id")
        name = dataset.get("name") or dataset_id
        if not name:
            return None
        org = dataset.get("organization") or {}
        organization = org.get("title") or org.get("name") if isinstance(org, dict) else None
        organization = organization or "Unknown Agency"
        title = dataset.get("title") or "Untitled Dataset"
        return self._event(
            dataset,
            dataset_event_type(dataset),
            title=f"{organization}: {title}",
            description=dataset.get("notes") or "No description available",
            details={
                "dataset_id": dataset_id,
                "name": dataset.get("name"),
                "organization": organization,
                "tags": _tags(dataset),
                "modified": dataset.get("metadata_modified"),
                "license": dataset.get("license_title") or dataset.get("license_id"),
                "resources": len(dataset.get("resources") or []),
            },
            raw_url=DATASET_URL.format(name=name),
            raw_ref=str(dataset_id or name),
        )
