"""
TrustSignal — Raw Archive

Every non-empty provider batch is written verbatim to

    {root}/{provider}/{provider}-{identifier}-{timestamp_ms}.json

Best effort: a failed write is logged and never reaches the caller.
Connectors call `write_async`, which runs the file I/O on a worker thread.
"""
import asyncio
import json
import re
from pathlib import Path
from typing import Any, Optional

import structlog

from trustsignal.clock import Clock

logger = structlog.get_logger()

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def archive_filename(provider: str, identifier: str, timestamp_ms: int) -> str:
    ident = _UNSAFE.sub("_", identifier.strip())[:80].strip("_") or "batch"
    return f"{provider}-{ident}-{timestamp_ms}.json"


class RawArchive:

    def __init__(self, root: Optional[str], clock: Optional[Clock] = None):
        self.root = Path(root) if root else None
        self._clock = clock or Clock()

    @property
    def enabled(self) -> bool:
        return self.root is not None

    def write(self, provider: str, identifier: str, payload: Any) -> Optional[str]:
        """Returns the archive reference (relative path) or None."""
        if self.root is None or not payload:
            return None

        timestamp_ms = int(self._clock.now().timestamp() * 1000)
        name = archive_filename(provider, identifier, timestamp_ms)
        try:
            directory = self.root / provider
            directory.mkdir(parents=True, exist_ok=True)
            (directory / name).write_text(json.dumps(payload, default=str, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            logger.warning("raw_archive_failed", provider=provider, file=name, error=str(e))
            return None

        logger.debug("raw_archived", provider=provider, file=name)
        return f"{provider}/{name}"

    async def write_async(self, provider: str, identifier: str, payload: Any) -> Optional[str]:
        if self.root is None or not payload:
            return None
        return await asyncio.to_thread(self.write, provider, identifier, payload)
