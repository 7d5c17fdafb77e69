"""Reporting module: CTR model, cost of inaction, fingerprints and SERP reports."""

from serp_intel.modules.reporting.ctr_model import (
    DEFAULT_CTR_BY_RANK,
    DEFAULT_CTR_MODEL,
    CTRModel,
    ctr_for_rank,
)
from serp_intel.modules.reporting.report_engine import (
    DEFAULT_REPORT_CONFIG,
    ReportConfig,
    action_for_rank,
    build_report,
    calculate_cost_of_inaction,
    fingerprint,
)

__all__ = [
    "DEFAULT_CTR_BY_RANK",
    "DEFAULT_CTR_MODEL",
    "CTRModel",
    "ctr_for_rank",
    "DEFAULT_REPORT_CONFIG",
    "ReportConfig",
    "action_for_rank",
    "build_report",
    "calculate_cost_of_inaction",
    "fingerprint",
]
