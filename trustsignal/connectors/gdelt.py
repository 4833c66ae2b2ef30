"""
TrustSignal — GDELT DOC 2.0 News

Endpoint: https://api.gdeltproject.org/api/v2/doc/doc (mode=ArtList)
Free, no API key. 30 requests / minute, 250 articles per request.

Severity from article tone (negative news is a trust risk):
    tone <= -10    1.0
    tone <= -5     0.8
    tone <  -2     0.6
    tone <   2     0.4
    tone <   5     0.3
    otherwise      0.2
plus a social-engagement boost: +0.1 above 100 shares, +0.05 above 10.
"""
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.models import CanonicalEvent, EventType

BASE_URL = "https://api.gdeltproject.org/api/v2/doc/doc"


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def tone_severity(tone: float) -> float:
    if tone <= -10:
        return 1.0
    if tone <= -5:
        return 0.8
    if tone < -2:
        return 0.6
    if tone < 2:
        return 0.4
    if tone < 5:
        return 0.3
    return 0.2


def social_boost(shares: int) -> float:
    if shares > 100:
        return 0.1
    if shares > 10:
        return 0.05
    return 0.0


class GDELTConnector(SourceConnector):
    provider = "gdelt"
    hard_cap = 250
    rate_budget = 30
    neutral_severity = 0.4
    entity_keywords = {
        "company": ("recall", "lawsuit", "investigation", "fraud", "liability", "scandal", "controversy"),
        "product": ("recall", "defect", "safety", "complaint", "hazard", "warning"),
    }

    def native_severity(self, record: Record) -> float:
        tone = _float(record.get("tone"))
        shares = _int(record.get("socialshares", record.get("social_shares")))
        return min(1.0, tone_severity(tone) + social_boost(shares))

    def severity_text(self, record: Record) -> str:
        return str(record.get("title") or "")

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        search = query
        if filters.get("min_tone") is not None:
            search += f" tone>{filters['min_tone']}"
        if filters.get("max_tone") is not None:
            search += f" tone<{filters['max_tone']}"
        params = {
            "query": search,
            "mode": "ArtList",
            "format": "json",
            "maxrecords": min(limit, self.hard_cap),
            "timespan": filters.get("timespan", "3months"),
            "sort": filters.get("sort", "HybridRel"),
        }
        data = await self._get_json(BASE_URL, params=params)
        articles = data.get("articles") or [] if isinstance(data, dict) else []
        return [(a, self._normalize(a)) for a in articles if isinstance(a, dict)]

    def _normalize(self, article: Record) -> Optional[CanonicalEvent]:
        url = article.get("url")
        if not url:
            return None
        domain = article.get("domain") or urlparse(url).netloc
        tone = _float(article.get("tone"))
        return self._event(
            article,
            EventType.NEWS,
            title=article.get("title") or f"News from {domain}",
            description=f"News article from {domain} (tone: {tone:.1f})",
            details={
                "url": url,
                "domain": domain,
                "language": article.get("language"),
                "source_country": article.get("sourcecountry"),
                "seen_date": article.get("seendate"),
                "tone": tone,
                "social_shares": _int(article.get("socialshares", article.get("social_shares"))),
            },
            raw_url=url,
            raw_ref=url,
        )
