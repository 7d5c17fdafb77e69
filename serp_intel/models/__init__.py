"""Data model: SQLAlchemy tables (imported so Base.metadata is populated) and SERP dataclasses."""

from serp_intel.models.ranking import (
    AnalysisRun,
    RankingRecord,
)
from serp_intel.models.serp import (
    ActionItem,
    CompetitorResult,
    CostOfInactionMetrics,
    KeywordInput,
    KeywordRankingResult,
    Movers,
    PipelineResult,
    RankingDelta,
    RankingSnapshot,
    RankingSummary,
    ReportAssumptions,
    ReportMetrics,
    SerpReport,
    SerpReportItem,
)

__all__ = [
    "AnalysisRun",
    "RankingRecord",
    "ActionItem",
    "CompetitorResult",
    "CostOfInactionMetrics",
    "KeywordInput",
    "KeywordRankingResult",
    "Movers",
    "PipelineResult",
    "RankingDelta",
    "RankingSnapshot",
    "RankingSummary",
    "ReportAssumptions",
    "ReportMetrics",
    "SerpReport",
    "SerpReportItem",
]
