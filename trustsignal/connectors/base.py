"""
TrustSignal — Source Connector Base

Every connector fetches raw records from one public provider and returns
Canonical Events. No scoring logic here. Just verifiable records with a
severity in [0, 1].

Pipeline for one `search_by_text` call:

    parse query → provider request(s)       (rate limited, retried)
                → normalize each record     (severity table, redaction)
                → archive raw batch         (best effort)
                → sort by severity desc, truncate to min(limit, hard cap)

Status handling:
    404             → ProviderNotFound        → []
    429 / 5xx / net → TransientProviderError  → retried, then propagated
    other 4xx       → PermanentProviderError  → [] with a logged cause
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
import structlog

from trustsignal.clock import Clock
from trustsignal.connectors.archive import RawArchive
from trustsignal.connectors.rate_limit import WindowRateLimiter, MINUTE
from trustsignal.connectors.redaction import truncate
from trustsignal.connectors.retry import RetryPolicy
from trustsignal.errors import (
    PermanentProviderError,
    ProviderNotFound,
    TransientProviderError,
)
from trustsignal.models import CanonicalEvent, EntityDescriptor, EventType

logger = structlog.get_logger()

# Timeout for all provider calls
_TIMEOUT = httpx.Timeout(15.0, connect=5.0)
DEFAULT_USER_AGENT = "TrustSignal/1.0 (+https://trustsignal.dev/bot)"

Record = Dict[str, Any]


def clamp_severity(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def keyword_severity(text: str, table: Optional[Mapping[str, float]]) -> Optional[float]:
    """First keyword of `table` found in `text` (case-insensitive), in table order."""
    if not table or not text:
        return None
    lower = text.lower()
    for keyword, severity in table.items():
        if keyword.lower() in lower:
            return severity
    return None


class SourceConnector:
    """Subclasses set the provider constants and implement `_search`."""

    provider: str = ""
    hard_cap: int = 100
    default_limit: int = 25
    rate_budget: int = 30
    rate_window: float = MINUTE
    neutral_severity: float = 0.5
    entity_keywords: Dict[str, Sequence[str]] = {
        "company": ("recall", "lawsuit", "investigation", "fraud"),
        "product": ("recall", "defect", "safety", "hazard"),
    }

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        archive: Optional[RawArchive] = None,
        retry: Optional[RetryPolicy] = None,
        limiter: Optional[WindowRateLimiter] = None,
        api_key: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        severity_overrides: Optional[Mapping[str, float]] = None,
        max_wait_seconds: float = 60.0,
    ):
        self.clock = clock or Clock()
        self.api_key = api_key
        self.user_agent = user_agent
        self.archive = archive or RawArchive(None, clock=self.clock)
        self.retry = retry or RetryPolicy(clock=self.clock)
        self.limiter = limiter or WindowRateLimiter(
            self.budget(), self.rate_window,
            clock=self.clock, max_wait_seconds=max_wait_seconds, name=self.provider,
        )
        self.severity_overrides = dict(severity_overrides or {})
        self._client = client
        self._owns_client = client is None

    def budget(self) -> int:
        return self.rate_budget

    # ── Public contract ───────────────────────────

    def effective_limit(self, limit: Optional[int]) -> int:
        limit = self.default_limit if limit is None else limit
        return max(0, min(limit, self.hard_cap))

    async def search_by_text(self, query: str, limit: Optional[int] = None, **filters: Any) -> List[CanonicalEvent]:
        limit = self.effective_limit(limit)
        if not query or not query.strip() or limit == 0:
            return []

        try:
            pairs = await self._search(query.strip(), limit, filters)
        except ProviderNotFound:
            logger.debug("provider_not_found", provider=self.provider, query=query[:80])
            return []
        except PermanentProviderError as e:
            logger.warning("provider_request_rejected",
                           provider=self.provider,
                           query=query[:80],
                           status=e.status_code,
                           error=str(e))
            return []

        records = [record for record, _ in pairs]
        events = [event for _, event in pairs if event is not None]
        if records:
            await self.archive.write_async(self.provider, query, records)

        events.sort(key=lambda e: e.severity, reverse=True)
        logger.info("connector_batch",
                    provider=self.provider,
                    query=query[:80],
                    records=len(records),
                    returned=min(len(events), limit))
        return events[:limit]

    async def fetch_events_for_entity(
        self, entity: EntityDescriptor, limit: Optional[int] = None, **filters: Any
    ) -> List[CanonicalEvent]:
        return await self.search_by_text(self.entity_query(entity), limit, **filters)

    def entity_query(self, entity: EntityDescriptor) -> str:
        keywords = self.entity_keywords.get(entity.type, ())
        if not keywords:
            return entity.name
        return f'"{entity.name}" ({" OR ".join(keywords)})'

    # ── Provider hooks ────────────────────────────

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        """Return (raw record, normalized event) pairs. Events may be None for unusable records."""
        raise NotImplementedError

    def severity_text(self, record: Record) -> str:
        """Text scanned against configured keyword overrides."""
        return ""

    def native_severity(self, record: Record) -> float:
        return self.neutral_severity

    def severity_for(self, record: Record, native: Optional[float] = None) -> float:
        """Configured keyword overrides win over the provider's native table."""
        override = keyword_severity(self.severity_text(record), self.severity_overrides)
        if override is not None:
            return clamp_severity(override)
        return clamp_severity(self.native_severity(record) if native is None else native)

    # ── HTTP ──────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=_TIMEOUT,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            )
        return self._client

    def _classify(self, resp: httpx.Response) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status == 404:
            raise ProviderNotFound(self.provider, "not found", status)
        if status == 429 or status >= 500:
            raise TransientProviderError(self.provider, f"HTTP {status}", status)
        raise PermanentProviderError(self.provider, f"HTTP {status}: {resp.text[:200]}", status)

    async def _get(self, url: str, parse: Callable[[httpx.Response], Any],
                   params: Optional[Dict[str, Any]] = None,
                   headers: Optional[Dict[str, str]] = None) -> Any:
        async def attempt():
            await self.limiter.acquire()
            client = self._get_client()
            try:
                resp = await client.get(url, params=params, headers=headers)
            except httpx.TransportError as e:
                raise TransientProviderError(self.provider, f"network error: {e}") from e
            self._classify(resp)
            return parse(resp)

        return await self.retry.run(attempt, provider=self.provider)

    def _parse_json(self, resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise PermanentProviderError(self.provider, "malformed response body", resp.status_code) from e

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                        headers: Optional[Dict[str, str]] = None) -> Any:
        return await self._get(url, self._parse_json, params=params, headers=headers)

    async def _get_text(self, url: str, params: Optional[Dict[str, Any]] = None,
                        headers: Optional[Dict[str, str]] = None) -> str:
        return await self._get(url, lambda resp: resp.text, params=params, headers=headers)

    async def _get_json_or_none(self, url: str, params: Optional[Dict[str, Any]] = None,
                                headers: Optional[Dict[str, str]] = None) -> Any:
        """Like `_get_json`, but a 404 on one of several endpoints just means no matches there."""
        try:
            return await self._get_json(url, params=params, headers=headers)
        except ProviderNotFound:
            logger.debug("provider_endpoint_empty", provider=self.provider, url=url)
            return None

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── Event construction ────────────────────────

    def _event(
        self,
        record: Record,
        etype: EventType,
        title: str,
        description: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        raw_url: Optional[str] = None,
        raw_ref: Optional[str] = None,
        severity: Optional[float] = None,
    ) -> CanonicalEvent:
        return CanonicalEvent(
            source=self.provider,
            type=etype,
            severity=self.severity_for(record, severity),
            title=truncate(title, 200) or self.provider,
            description=truncate(description),
            details_json=details or {},
            raw_url=raw_url,
            raw_ref=raw_ref,
            parsed_at=self.clock.now(),
        )
