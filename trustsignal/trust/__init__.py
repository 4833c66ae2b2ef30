"""
TrustSignal — Trust Package
Re-exports for convenience.
"""
from trustsignal.trust.config import ScoringConfig, get_scoring_config, load_scoring_config
from trustsignal.trust.diagnostics import Diagnostics, shrinkage_diagnostics
from trustsignal.trust.engine import METRICS, TrustScoreEngine, grade_for
from trustsignal.trust.policy import policy_subscore
