"""
TrustSignal — FTC Press Releases

RSS feeds, no API key. 30 requests / minute:
    all                  https://www.ftc.gov/feeds/press-release.xml
    consumer-protection  https://www.ftc.gov/feeds/press-release-consumer-protection.xml
    competition          https://www.ftc.gov/feeds/press-release-competition.xml

The feeds have no search parameter, so items are matched locally: the query
must appear in the title or description (case-insensitive). A feed that is not
well-formed XML yields an empty batch.

Releases are enforcement actions against a company and become `court` events.

Severity (title + description, first match wins):
    enforcement action, law enforcement   0.9
    settlement ... million                0.9
    penalty, fine, deceptive, fraud       0.85
    lawsuit, complaint, violation         0.8
    banned, prohibited                    0.75
    consumer alert, warning               0.7
    investigation                         0.65
    order, require                        0.6
    guidance, statement                   0.4
    report, study                         0.3
    testify, speech                       0.2
    anything else                         0.5
"""
import re
from typing import Any, Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

import structlog

from trustsignal.connectors.base import Record, SourceConnector
from trustsignal.errors import PermanentProviderError
from trustsignal.models import CanonicalEvent, EntityDescriptor, EventType

logger = structlog.get_logger()

FEEDS = {
    "all": "https://www.ftc.gov/feeds/press-release.xml",
    "consumer-protection": "https://www.ftc.gov/feeds/press-release-consumer-protection.xml",
    "competition": "https://www.ftc.gov/feeds/press-release-competition.xml",
}

_TAGS = re.compile(r"<[^>]+>")

_SEVERITY = (
    (("enforcement action", "law enforcement"), 0.9),
    (("penalty", "fine", "deceptive", "fraud"), 0.85),
    (("lawsuit", "complaint", "violation"), 0.8),
    (("banned", "prohibited"), 0.75),
    (("consumer alert", "warning"), 0.7),
    (("investigation",), 0.65),
    (("order", "require"), 0.6),
    (("guidance", "statement"), 0.4),
    (("report", "study"), 0.3),
    (("testify", "speech"), 0.2),
)


def _text(item: ET.Element, tag: str) -> str:
    elem = item.find(tag)
    if elem is None or elem.text is None:
        return ""
    return elem.text.strip()


def parse_feed(xml: str) -> List[Record]:
    """RSS <item> elements as flat dicts; [] for malformed XML."""
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        logger.warning("ftc_feed_unparseable", error=str(e))
        return []
    items = []
    for item in root.findall(".//item"):
        items.append({
            "title": _text(item, "title"),
            "description": _TAGS.sub("", _text(item, "description")).strip(),
            "link": _text(item, "link"),
            "pubDate": _text(item, "pubDate"),
            "guid": _text(item, "guid"),
        })
    return items


class FTCConnector(SourceConnector):
    provider = "ftc"
    hard_cap = 50
    default_limit = 20
    rate_budget = 30
    neutral_severity = 0.5

    def severity_text(self, record: Record) -> str:
        return f"{record.get('title') or ''} {record.get('description') or ''}"

    def native_severity(self, record: Record) -> float:
        text = self.severity_text(record).lower()
        if "settlement" in text and "million" in text:
            return 0.9
        for keywords, severity in _SEVERITY:
            if any(k in text for k in keywords):
                return severity
        return self.neutral_severity

    async def fetch_events_for_entity(self, entity: EntityDescriptor, limit: Optional[int] = None, **filters: Any) -> List[CanonicalEvent]:
        return await self.search_by_text(entity.name, limit, **filters)

    async def _search(self, query: str, limit: int, filters: Dict[str, Any]) -> List[Tuple[Record, Optional[CanonicalEvent]]]:
        category = filters.get("category") or "all"
        if category not in FEEDS:
            raise PermanentProviderError(self.provider, f"unknown feed category {category!r}")

        xml = await self._get_text(FEEDS[category], headers={"Accept": "application/rss+xml, application/xml"})
        needle = query.lower()
        matches = [
            item for item in parse_feed(xml)
            if needle in item["title"].lower() or needle in item["description"].lower()
        ]
        return [(item, self._normalize(item, category)) for item in matches]

    def _normalize(self, item: Record, category: str) -> Optional[CanonicalEvent]:
        link = item.get("link") or None
        ref = item.get("guid") or link
        if not item.get("title") and not ref:
            return None
        return self._event(
            item,
            EventType.COURT,
            title=item.get("title") or "FTC press release",
            description=item.get("description"),
            details={
                "action": "enforcement",
                "category": category,
                "published_at": item.get("pubDate") or None,
                "guid": item.get("guid") or None,
            },
            raw_url=link,
            raw_ref=ref,
        )
