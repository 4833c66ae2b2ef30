"""
TrustSignal — Error Taxonomy

Provider errors are handled inside the connectors (retried or degraded to an
empty batch). Only ConfigError and StoreUnavailable are allowed to reach the
top of a process.
"""
from typing import Optional


class TrustSignalError(Exception):
    """Base class for every error raised by this package."""


# ── Provider errors ───────────────────────────────

class ProviderError(TrustSignalError):
    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """429, 5xx or network failure. Retried, propagated once retries run out."""


class PermanentProviderError(ProviderError):
    """Any other 4xx or a malformed query. Degrades to an empty batch."""


class ProviderNotFound(ProviderError):
    """404 from the provider. Degrades to an empty batch."""


# ── Scoring errors ────────────────────────────────

class ConfigError(TrustSignalError):
    """Scoring configuration is missing or invalid. Fatal at startup."""


class ComputeError(TrustSignalError):
    """The engine could not resolve weights or a normalization range."""


# ── Scheduler / serving errors ────────────────────

class ConcurrencyGuardSkip(TrustSignalError):
    """A recompute pass was requested while another one is active."""


class StoreUnavailable(TrustSignalError):
    """The score store could not be reached. Fatal for the calling process."""


class EntityNotFound(TrustSignalError):
    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ScoreUnavailable(TrustSignalError):
    def __init__(self, kind: str, identifier: str, reason: str = ""):
        super().__init__(f"no score available for {kind} {identifier}: {reason}".rstrip(": "))
        self.kind = kind
        self.identifier = identifier
        self.reason = reason
