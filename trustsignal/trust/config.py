"""
TrustSignal — Scoring Configuration

A versioned JSON document, loaded once at process start and never
hot-reloaded. Anything missing or malformed raises ConfigError, which is
fatal for the calling process.
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from trustsignal.errors import ConfigError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path(__file__).with_name("trust_config.json")


class _ConfigModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")


class MetricNormalization(_ConfigModel):
    type: Literal["direct", "inverse"]
    min: float
    max: float
    scale: Literal["linear", "log"] = "linear"
    # Connectors emit severities in [0, 1]; the factor rescales a bucket's
    # summed severity into the units of [min, max].
    severity_factor: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _range(self):
        if self.max == self.min:
            raise ValueError("normalization range is empty (min == max)")
        return self


class GradeThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    A: float
    B: float
    C: float
    D: float

    @model_validator(mode="after")
    def _monotonic(self):
        if not (self.A >= self.B >= self.C >= self.D):
            raise ValueError("grade thresholds must satisfy A >= B >= C >= D")
        return self


class MissingDataDefaults(_ConfigModel):
    use_proxy_when_missing: bool = True
    policy_confidence_dampener: float = Field(default=0.5, ge=0.0, le=1.0)
    minimum_evidence: int = Field(default=5, ge=1)
    default_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    neutral_score: float = Field(default=50.0, ge=0.0, le=100.0)
    no_evidence_raw: Dict[str, float] = Field(default_factory=dict)


class DiagnosticsConfig(_ConfigModel):
    prior: float = Field(default=50.0, ge=0.0, le=100.0)
    alpha_strategy: Literal["missingSum", "fixed"] = "missingSum"
    alpha_fixed: float = Field(default=0.3, ge=0.0)
    min_coverage_warn: float = Field(default=0.4, ge=0.0, le=1.0)


class ScoringConfig(_ConfigModel):
    version: str
    default_weights: Dict[str, float]
    vertical_overrides: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    metric_normalization: Dict[str, MetricNormalization]
    severity_mapping: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    grade_thresholds: GradeThresholds
    missing_data_defaults: MissingDataDefaults = Field(default_factory=MissingDataDefaults)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)

    @field_validator("default_weights")
    @classmethod
    def _default_weights(cls, v: Dict[str, float]):
        if not v:
            raise ValueError("defaultWeights must not be empty")
        return _non_negative(v)

    @field_validator("vertical_overrides")
    @classmethod
    def _overrides(cls, v: Dict[str, Dict[str, float]]):
        return {vertical: _non_negative(weights) for vertical, weights in v.items()}

    @field_validator("severity_mapping")
    @classmethod
    def _severities(cls, v: Dict[str, Dict[str, float]]):
        for provider, table in v.items():
            for keyword, severity in table.items():
                if not 0.0 <= severity <= 1.0:
                    raise ValueError(f"severityMapping.{provider}.{keyword} must be in [0, 1]")
        return v

    def weights_for(self, category: Optional[str]) -> Dict[str, float]:
        """Vertical override for the category if one exists, else the defaults."""
        if category:
            for key in (category, category.strip().lower().replace(" ", "_").replace("-", "_")):
                if key in self.vertical_overrides:
                    return self.vertical_overrides[key]
        return self.default_weights


def _non_negative(weights: Dict[str, float]) -> Dict[str, float]:
    for metric, w in weights.items():
        if w < 0:
            raise ValueError(f"weight for {metric} must be non-negative")
    return weights


def parse_scoring_config(data: dict) -> ScoringConfig:
    try:
        return ScoringConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid scoring config: {e}") from e


def load_scoring_config(path: Optional[str] = None) -> ScoringConfig:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"scoring config not found: {config_path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"scoring config unreadable: {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"scoring config must be a JSON object: {config_path}")
    config = parse_scoring_config(data)
    logger.info("scoring_config_loaded", path=str(config_path), version=config.version)
    return config


@lru_cache()
def get_scoring_config() -> ScoringConfig:
    from trustsignal.config import get_settings
    return load_scoring_config(get_settings().TRUST_CONFIG_PATH)
