"""
TrustSignal — Internal Admin API

Operator endpoints, authenticated with the X-Admin-Key header:
    POST /v1/admin/trust/entities                      - Register a product or company
    POST /v1/admin/trust/{kind}/{identifier}/ingest    - Collect evidence for one entity now
"""
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel
import structlog

from trustsignal.compute.ingest import EvidenceIngestor
from trustsignal.errors import EntityNotFound
from trustsignal.models import Entity, EntityKind

logger = structlog.get_logger()


class RegisterEntityRequest(BaseModel):
    kind: EntityKind
    id: str
    name: str
    category: Optional[str] = None
    companyId: Optional[str] = None


def require_admin_key(
    request: Request,
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
) -> None:
    expected = request.app.state.pipeline.settings.TRUST_ADMIN_KEY
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        logger.warning("admin_key_rejected", path=request.url.path)
        raise HTTPException(status_code=403, detail="Forbidden. Provide X-Admin-Key header.")


def get_ingestor(request: Request) -> EvidenceIngestor:
    return request.app.state.pipeline.ingestor


admin_router = APIRouter(
    prefix="/v1/admin/trust",
    tags=["admin-trust"],
    dependencies=[Depends(require_admin_key)],
)


@admin_router.post("/entities", status_code=201)
def register_entity(body: RegisterEntityRequest, ingestor: EvidenceIngestor = Depends(get_ingestor)):
    entity = ingestor.register(Entity(
        kind=body.kind,
        id=body.id,
        name=body.name,
        category=body.category,
        company_id=body.companyId,
    ))
    return entity.model_dump(by_alias=True, mode="json")


@admin_router.post("/{kind}/{identifier}/ingest")
async def ingest_entity(
    kind: EntityKind,
    identifier: str,
    ingestor: EvidenceIngestor = Depends(get_ingestor),
) -> Dict[str, Any]:
    try:
        report = await ingestor.collect_for(kind, identifier)
    except EntityNotFound:
        raise HTTPException(
            status_code=404,
            detail={"error": "entity_not_found", "kind": kind.value, "id": identifier},
        )
    return report.to_dict()
