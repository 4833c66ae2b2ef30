"""
TrustSignal — Trust API

Public endpoints:
    GET  /v1/trust/health                      - Health check
    GET  /v1/trust/product/{sku}               - Trust payload for a product
    GET  /v1/trust/company/{company_id}        - Trust payload for a company
    GET  /v1/trust/{kind}/{identifier}/history - Score history, newest first

Errors:
    404 entity_not_found     the entity is unknown
    503 score_unavailable    the entity exists but no score could be computed
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
import structlog

from trustsignal.compute.service import TrustService
from trustsignal.errors import EntityNotFound, ScoreUnavailable
from trustsignal.models import EntityKind

logger = structlog.get_logger()


# =============================================
# RESPONSE MODELS
# =============================================

class BreakdownItem(BaseModel):
    metric: str
    raw: float
    normalized: float
    weight: float
    weighted: float
    evidenceIds: List[str]
    hasEvidence: bool = False


class EvidenceItem(BaseModel):
    id: str
    source: str
    type: str
    severity: float
    title: str
    rawUrl: Optional[str] = None
    parsedAt: str


class TrustPayloadResponse(BaseModel):
    """Served trust payload. `cached` is true when it came from the response cache."""
    kind: str
    id: str
    sku: Optional[str] = None
    companyId: Optional[str] = None
    name: str
    category: Optional[str] = None
    score: float
    grade: str
    confidence: float
    policyScore: Optional[float] = None
    companyScore: Optional[float] = None
    breakdown: List[BreakdownItem]
    evidence: List[EvidenceItem]
    evidenceCount: int
    configVersion: str
    lastUpdated: str
    computedAt: str
    cached: bool
    diagnostics: Optional[Dict[str, Any]] = None


# =============================================
# DEPENDENCIES
# =============================================

def get_service(request: Request) -> TrustService:
    return request.app.state.pipeline.service


def _serve(service: TrustService, kind: EntityKind, identifier: str) -> Dict[str, Any]:
    try:
        return service.get_trust(kind.value, identifier)
    except EntityNotFound:
        raise HTTPException(
            status_code=404,
            detail={"error": "entity_not_found", "kind": kind.value, "id": identifier},
        )
    except ScoreUnavailable as e:
        logger.warning("score_unavailable", kind=kind.value, entity_id=identifier, reason=e.reason)
        raise HTTPException(
            status_code=503,
            detail={"error": "score_unavailable", "kind": kind.value, "id": identifier},
        )


# =============================================
# ROUTES
# =============================================

trust_router = APIRouter(prefix="/v1/trust", tags=["trust"])


@trust_router.get("/health")
async def trust_health():
    return {
        "status": "healthy",
        "service": "trustsignal-trust-api",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@trust_router.get("/product/{sku}", response_model=TrustPayloadResponse, response_model_exclude_none=True)
def product_trust(sku: str, service: TrustService = Depends(get_service)):
    return _serve(service, EntityKind.PRODUCT, sku)


@trust_router.get("/company/{company_id}", response_model=TrustPayloadResponse, response_model_exclude_none=True)
def company_trust(company_id: str, service: TrustService = Depends(get_service)):
    return _serve(service, EntityKind.COMPANY, company_id)


@trust_router.get("/{kind}/{identifier}/history")
def score_history(
    kind: EntityKind,
    identifier: str,
    limit: int = Query(default=30, ge=1, le=365),
    service: TrustService = Depends(get_service),
):
    try:
        history = service.history(kind.value, identifier, limit=limit)
    except EntityNotFound:
        raise HTTPException(
            status_code=404,
            detail={"error": "entity_not_found", "kind": kind.value, "id": identifier},
        )
    return {"kind": kind.value, "id": identifier, "scores": history, "count": len(history)}
