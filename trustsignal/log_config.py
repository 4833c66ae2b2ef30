"""
TrustSignal — Logging

structlog setup shared by the API process, the recompute CLI and the worker.
"""
import logging

import structlog

from trustsignal.config import get_settings


def configure_logging(fmt: str = None, level: str = None) -> None:
    settings = get_settings()
    fmt = fmt or settings.LOG_FORMAT
    level_no = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
    )
