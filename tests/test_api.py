"""HTTP surface: trust payload routes, error mapping, history."""
import pytest
from fastapi.testclient import TestClient

from trustsignal.clock import VirtualClock
from trustsignal.compute.cache import build_cache
from trustsignal.compute.persistence import InMemoryScoreStore
from trustsignal.compute.pipeline import build_pipeline
from trustsignal.config import Settings
from trustsignal.main import create_app
from trustsignal.models import CanonicalEvent, Entity, EntityKind, EventType


@pytest.fixture
def pipeline(scoring_config):
    clock = VirtualClock()
    store = InMemoryScoreStore()
    store.add_entity(Entity(kind=EntityKind.COMPANY, id="acme", name="Acme Corp"))
    store.add_entity(Entity(kind=EntityKind.PRODUCT, id="SKU-1", name="Acme Drill", company_id="acme"))
    store.add_events(
        Entity(kind=EntityKind.PRODUCT, id="SKU-1", name="Acme Drill").ref,
        [CanonicalEvent(source="cpsc", type=EventType.RECALL, severity=0.8,
                        title="Drill battery overheating", parsed_at=clock.now())],
        clock.now(),
    )
    return build_pipeline(
        settings=Settings(),
        clock=clock,
        store=store,
        config=scoring_config,
        cache=build_cache("", clock=clock),
    )


@pytest.fixture
def client(pipeline):
    with TestClient(create_app(pipeline)) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert "X-Request-Id" in r.headers

    assert client.get("/v1/trust/health").json()["service"] == "trustsignal-trust-api"


def test_product_payload_then_cache_hit(client):
    first = client.get("/v1/trust/product/SKU-1")
    second = client.get("/v1/trust/product/SKU-1")

    assert first.status_code == 200
    body = first.json()
    assert body["sku"] == "SKU-1"
    assert body["cached"] is False
    assert body["evidenceCount"] == 1
    assert body["evidence"][0]["title"] == "Drill battery overheating"
    assert "evidenceIds" in body["breakdown"][0]
    assert 0 <= body["score"] <= 100
    assert second.json()["cached"] is True
    assert second.json()["computedAt"] == body["computedAt"]


def test_company_payload(client):
    r = client.get("/v1/trust/company/acme")

    assert r.status_code == 200
    assert r.json()["companyId"] == "acme"
    assert r.json()["confidence"] == 0.0
    assert "sku" not in r.json()


def test_unknown_entity_is_404(client):
    r = client.get("/v1/trust/product/NOPE")

    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "entity_not_found"
    assert r.json()["detail"]["id"] == "NOPE"


class _BrokenScheduler:
    def compute_on_demand(self, kind, entity_id):
        raise RuntimeError("engine exploded")


def test_unscorable_entity_is_503(client, pipeline):
    pipeline.service.scheduler = _BrokenScheduler()

    r = client.get("/v1/trust/company/acme")

    assert r.status_code == 503
    assert r.json()["detail"]["error"] == "score_unavailable"


def test_history(client, pipeline):
    assert client.get("/v1/trust/product/SKU-1/history").json()["count"] == 0

    client.get("/v1/trust/product/SKU-1")
    pipeline.clock.advance(3600)
    pipeline.scheduler.compute_on_demand(EntityKind.PRODUCT, "SKU-1")

    body = client.get("/v1/trust/product/SKU-1/history", params={"limit": 5}).json()
    assert body["count"] == 2
    assert body["scores"][0]["createdAt"] > body["scores"][1]["createdAt"]

    assert client.get("/v1/trust/company/ghost/history").status_code == 404
    assert client.get("/v1/trust/planet/earth/history").status_code == 422


# ── Admin ──

class _OneEventConnector:
    async def fetch_events_for_entity(self, entity, limit=None, **filters):
        return [CanonicalEvent(id="cfpb_42", source="cfpb", type=EventType.COMPLAINT, severity=0.6,
                               title=f"Complaint about {entity.name}", parsed_at=VirtualClock().now())]


def _admin(pipeline):
    return {"X-Admin-Key": pipeline.settings.TRUST_ADMIN_KEY}


def test_admin_routes_require_the_admin_key(client):
    assert client.post("/v1/admin/trust/company/acme/ingest").status_code == 403
    r = client.post("/v1/admin/trust/company/acme/ingest", headers={"X-Admin-Key": "wrong"})
    assert r.status_code == 403
    assert r.json()["detail"] == "Forbidden. Provide X-Admin-Key header."


def test_admin_register_then_ingest_invalidates_cached_payload(client, pipeline):
    pipeline.ingestor.connectors = {"cfpb": _OneEventConnector()}

    r = client.post(
        "/v1/admin/trust/entities",
        json={"kind": "company", "id": "globex", "name": "Globex Inc"},
        headers=_admin(pipeline),
    )
    assert r.status_code == 201
    assert r.json()["name"] == "Globex Inc"

    before = client.get("/v1/trust/company/globex").json()
    assert before["evidenceCount"] == 0

    r = client.post("/v1/admin/trust/company/globex/ingest", headers=_admin(pipeline))
    assert r.status_code == 200
    assert r.json() == {"entityId": "globex", "eventsAdded": 1, "perProvider": {"cfpb": 1}, "errors": {}}

    after = client.get("/v1/trust/company/globex").json()
    assert after["cached"] is False
    assert after["evidence"][0]["title"] == "Complaint about Globex Inc"


def test_admin_ingest_unknown_entity_is_404(client, pipeline):
    r = client.post("/v1/admin/trust/product/NOPE/ingest", headers=_admin(pipeline))
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "entity_not_found"
