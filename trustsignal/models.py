"""
TrustSignal — Domain Models

Canonical Events are the common currency between connectors and scoring.
Scores are immutable snapshots; history is append-only.

JSON field names are camelCase (the published API contract); Python
attributes are snake_case. Always dump with `by_alias=True`.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


# ── Enums ─────────────────────────────────────────

class EntityKind(str, Enum):
    PRODUCT = "product"
    COMPANY = "company"


class EventType(str, Enum):
    RECALL    = "recall"
    COMPLAINT = "complaint"
    NEWS      = "news"
    COURT     = "court"
    POLICY    = "policy"
    REVIEW    = "review"
    DATASET   = "dataset"
    ADVISORY  = "advisory"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


# ── Entities ──────────────────────────────────────

class EntityRef(_Frozen):
    kind: EntityKind
    id: str


class Entity(_Frozen):
    """A product (id = SKU) or a company. `category` selects the weight profile."""
    kind: EntityKind
    id: str
    name: str
    category: Optional[str] = None
    company_id: Optional[str] = None

    @property
    def ref(self) -> EntityRef:
        return EntityRef(kind=self.kind, id=self.id)


class EntityDescriptor(BaseModel):
    """What connectors need to look an entity up: `{type, name}`."""
    type: Literal["company", "product"]
    name: str

    @classmethod
    def from_entity(cls, entity: Entity) -> "EntityDescriptor":
        return cls(type=entity.kind.value, name=entity.name)


# ── Canonical Event ───────────────────────────────

def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class CanonicalEvent(_Frozen):
    id: str = Field(default_factory=lambda: _new_id("evt"))
    source: str
    type: EventType
    severity: float = Field(ge=0.0, le=1.0)
    title: str
    description: Optional[str] = None
    details_json: Dict[str, Any] = Field(default_factory=dict)
    raw_url: Optional[str] = None
    raw_ref: Optional[str] = None
    parsed_at: datetime
    created_at: Optional[datetime] = None
    entity_ref: Optional[EntityRef] = None
    robots_disallowed: Optional[bool] = None

    @property
    def ingested_at(self) -> datetime:
        return self.created_at or self.parsed_at

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ── Score ─────────────────────────────────────────

class BreakdownEntry(_Frozen):
    metric: str
    raw: float
    normalized: float
    weight: float
    weighted: float
    evidence_ids: Tuple[str, ...] = ()
    # True when routed events or parsed policy facts set `raw`; False means the no-evidence default.
    has_evidence: bool = False


class Score(_Frozen):
    id: str
    entity_ref: EntityRef
    score: float = Field(ge=0.0, le=100.0)
    grade: str
    confidence: float = Field(ge=0.0, le=1.0)
    breakdown: Tuple[BreakdownEntry, ...]
    config_version: str
    created_at: datetime

    def metric(self, name: str) -> Optional[BreakdownEntry]:
        for entry in self.breakdown:
            if entry.metric == name:
                return entry
        return None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ── Typed details ─────────────────────────────────
# detailsJson stays an opaque dict on the event. Internal logic resolves it
# through this registry when the (source, type) shape is known.

class _Details(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class PolicyCoverage(_Details):
    parts: Optional[bool] = None
    labor: Optional[bool] = None
    electronics: Optional[bool] = None
    battery: Optional[bool] = None


class PolicyFacts(_Details):
    """Structured warranty/return-policy facts produced by the policy parser."""
    warranty_length_months: Optional[float] = None
    coverage: PolicyCoverage = Field(default_factory=PolicyCoverage)
    transferable: Optional[bool] = None
    registration_required: Optional[bool] = None
    registration_window_days: Optional[float] = None
    exclusions: List[str] = Field(default_factory=list)
    repair_sla_days: Optional[float] = None
    refund_window_days: Optional[float] = None
    arbitration_clause: Optional[bool] = None
    policy_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class CfpbComplaintDetails(_Details):
    complaint_id: Optional[str] = None
    product: Optional[str] = None
    sub_product: Optional[str] = None
    issue: Optional[str] = None
    company: Optional[str] = None
    company_response: Optional[str] = None
    timely: Optional[bool] = None
    consumer_disputed: Optional[bool] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    narrative: Optional[str] = None


class NhtsaRecallDetails(_Details):
    campaign_number: Optional[str] = None
    manufacturer: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    model_year: Optional[str] = None
    component: Optional[str] = None
    consequence: Optional[str] = None
    remedy: Optional[str] = None


class GdeltNewsDetails(_Details):
    url: Optional[str] = None
    domain: Optional[str] = None
    language: Optional[str] = None
    source_country: Optional[str] = None
    tone: Optional[float] = None
    social_shares: Optional[int] = None


class CourtCaseDetails(_Details):
    case_name: Optional[str] = None
    court: Optional[str] = None
    docket_number: Optional[str] = None
    date_filed: Optional[str] = None
    status: Optional[str] = None
    record_type: Optional[str] = None


class FdaRecallDetails(_Details):
    recall_number: Optional[str] = None
    classification: Optional[str] = None
    recalling_firm: Optional[str] = None
    product_description: Optional[str] = None
    reason_for_recall: Optional[str] = None
    status: Optional[str] = None
    category: Optional[str] = None


class FdaAdverseEventDetails(_Details):
    report_id: Optional[str] = None
    serious: Optional[bool] = None
    outcomes: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)


class DatasetDetails(_Details):
    dataset_id: Optional[str] = None
    organization: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    modified: Optional[str] = None


_ANY_SOURCE = "*"

DETAILS_MODELS: Dict[Tuple[str, str], Type[_Details]] = {
    ("cfpb", EventType.COMPLAINT.value): CfpbComplaintDetails,
    ("nhtsa", EventType.RECALL.value): NhtsaRecallDetails,
    ("gdelt", EventType.NEWS.value): GdeltNewsDetails,
    ("courtlistener", EventType.COURT.value): CourtCaseDetails,
    ("openfda", EventType.RECALL.value): FdaRecallDetails,
    ("openfda", EventType.ADVISORY.value): FdaAdverseEventDetails,
    ("datagov", EventType.DATASET.value): DatasetDetails,
    ("datagov", EventType.RECALL.value): DatasetDetails,
    ("datagov", EventType.ADVISORY.value): DatasetDetails,
    (_ANY_SOURCE, EventType.POLICY.value): PolicyFacts,
}


def typed_details(event: CanonicalEvent) -> Union[_Details, Dict[str, Any]]:
    """Resolve an event's detailsJson to its typed model, or the raw dict."""
    etype = event.type.value
    model = DETAILS_MODELS.get((event.source, etype)) or DETAILS_MODELS.get((_ANY_SOURCE, etype))
    if model is None:
        return event.details_json

    payload = event.details_json
    if model is PolicyFacts and isinstance(payload.get("parsed"), dict):
        payload = payload["parsed"]
    try:
        return model.model_validate(payload)
    except ValidationError:
        return event.details_json
