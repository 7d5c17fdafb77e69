"""In-memory SERP data model: snapshots, deltas, summaries and reports.

Everything except :class:`RankingSnapshot` is derived data, rebuilt on
every pipeline run and never mutated after construction.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

STATUS_IMPROVED = "improved"
STATUS_DECLINED = "declined"
STATUS_STABLE = "stable"
STATUS_NEW_RANKING = "new_ranking"
STATUS_LOST_RANKING = "lost_ranking"
STATUS_UNCHANGED = "unchanged"

RANKING_STATUSES = (
    STATUS_IMPROVED,
    STATUS_DECLINED,
    STATUS_STABLE,
    STATUS_NEW_RANKING,
    STATUS_LOST_RANKING,
    STATUS_UNCHANGED,
)

SERVICE_NAME = "serp_intel"


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class KeywordInput:
    """A tracked keyword as supplied by the caller."""
    keyword: str
    volume: Optional[float] = None
    target_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeywordInput":
        return cls(
            keyword=str(data["keyword"]),
            volume=_optional_float(data.get("volume")),
            target_url=data.get("target_url") or data.get("targetUrl") or None,
        )


@dataclass(frozen=True)
class RankingSnapshot:
    """One keyword's observed position at a point in time.

    ``position`` is None when the target domain was not found within the
    provider's result depth.
    """
    keyword: str
    position: Optional[int] = None
    url: Optional[str] = None
    volume: Optional[float] = None

    @property
    def is_ranking(self) -> bool:
        return self.position is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RankingSnapshot":
        return cls(
            keyword=str(data["keyword"]),
            position=_optional_int(data.get("position")),
            url=data.get("url") or None,
            volume=_optional_float(data.get("volume")),
        )


@dataclass(frozen=True)
class CompetitorResult:
    """A non-target organic result seen while resolving a keyword."""
    domain: str
    url: str
    title: str
    position: int


@dataclass(frozen=True)
class KeywordRankingResult:
    """Fetcher output for one keyword."""
    keyword: str
    position: Optional[int] = None
    url: Optional[str] = None
    competitors: list[CompetitorResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_snapshot(self, volume: Optional[float] = None) -> RankingSnapshot:
        return RankingSnapshot(
            keyword=self.keyword,
            position=self.position,
            url=self.url,
            volume=volume,
        )


@dataclass(frozen=True)
class RankingDelta:
    """Movement of one keyword between the previous and current snapshot.

    ``delta`` is ``previous_position - current_position`` (positive means the
    keyword moved toward rank 1) and is only set when both positions exist.
    """
    keyword: str
    current_position: Optional[int]
    previous_position: Optional[int]
    delta: Optional[int]
    status: str
    url: Optional[str] = None
    volume: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Movers:
    top_gainers: list[RankingDelta] = field(default_factory=list)
    top_losers: list[RankingDelta] = field(default_factory=list)
    new_rankings: list[RankingDelta] = field(default_factory=list)
    lost_rankings: list[RankingDelta] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RankingSummary:
    """Aggregate counts over one snapshot set and its deltas."""
    tracked_keywords: int = 0
    ranking_keywords: int = 0
    top3: int = 0
    top10: int = 0
    top20: int = 0
    not_ranking: int = 0
    avg_position: Optional[float] = None
    visibility_score: float = 0.0
    improved: int = 0
    declined: int = 0
    stable: int = 0
    new_rankings: int = 0
    lost_rankings: int = 0
    unchanged: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CostOfInactionMetrics:
    impressions_available: int = 0
    clicks_available: int = 0
    leads_available: int = 0
    page_one_opportunities: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReportAssumptions:
    """Economic assumptions behind the cost-of-inaction estimate.

    Attributes:
        capture_factor: Share of clicks left after ads and SERP features (0-1).
        lead_conversion_rate: Share of clicks that become leads (0-1).
        target_position: Aspirational rank used as the comparison baseline.
    """
    capture_factor: float = 0.65
    lead_conversion_rate: float = 0.025
    target_position: int = 3

    def __post_init__(self) -> None:
        if not 0.0 <= self.capture_factor <= 1.0:
            raise ValueError(f"capture_factor must be within 0-1, got {self.capture_factor!r}")
        if not 0.0 <= self.lead_conversion_rate <= 1.0:
            raise ValueError(
                f"lead_conversion_rate must be within 0-1, got {self.lead_conversion_rate!r}"
            )
        if self.target_position < 1:
            raise ValueError(f"target_position must be >= 1, got {self.target_position!r}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ReportAssumptions":
        data = data or {}
        defaults = cls()
        return cls(
            capture_factor=float(data.get("capture_factor", defaults.capture_factor)),
            lead_conversion_rate=float(
                data.get("lead_conversion_rate", defaults.lead_conversion_rate)
            ),
            target_position=int(data.get("target_position", defaults.target_position)),
        )


@dataclass(frozen=True)
class SerpReportItem:
    """A current win or big gap, keyed by a stable fingerprint."""
    keyword: str
    volume: float
    rank: Optional[int]
    url: Optional[str]
    fingerprint: str
    status: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ActionItem:
    """A recommended next step for a moderately ranked keyword."""
    page: str
    keyword: str
    rank: Optional[int]
    volume: float
    action: str
    fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReportMetrics(CostOfInactionMetrics):
    keywords_tracked: int = 0
    ranking_top20: int = 0
    not_ranked: int = 0


@dataclass(frozen=True)
class SerpReport:
    domain: str
    generated_at: str
    metrics: ReportMetrics
    current_wins: list[SerpReportItem]
    big_gaps: list[SerpReportItem]
    what_to_do_next: list[ActionItem]
    assumptions: ReportAssumptions

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PipelineResult:
    """Consolidated outcome of one domain run.

    A failed precondition leaves every derived field empty; only ``ok``,
    ``error`` and ``keywords_tracked`` are meaningful then.
    """
    ok: bool
    domain: str
    duration_ms: int = 0
    keywords_tracked: int = 0
    error: Optional[str] = None
    message: Optional[str] = None
    summary: Optional[RankingSummary] = None
    movers: Optional[Movers] = None
    report: Optional[SerpReport] = None
    rankings: list[RankingSnapshot] = field(default_factory=list)
    fetch_failures: int = 0
    service: str = SERVICE_NAME

    def to_dict(
        self,
        movers_limit: int = 10,
        wins_limit: int = 20,
        gaps_limit: int = 20,
        actions_limit: int = 15,
    ) -> dict[str, Any]:
        """Flatten into the result shape consumed by the persistence caller."""
        data: dict[str, Any] = {
            "ok": self.ok,
            "service": self.service,
            "domain": self.domain,
            "keywords_tracked": self.keywords_tracked,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.message is not None:
            data["message"] = self.message
        if self.summary is None or self.report is None:
            return data

        summary = self.summary
        metrics = self.report.metrics
        movers = self.movers or Movers()
        data.update({
            "duration_ms": self.duration_ms,
            "keywords_ranking": summary.ranking_keywords,
            "keywords_top3": summary.top3,
            "keywords_top10": summary.top10,
            "keywords_top20": summary.top20,
            "avg_position": summary.avg_position,
            "visibility_score": summary.visibility_score,
            "improved": summary.improved,
            "declined": summary.declined,
            "new_rankings": summary.new_rankings,
            "lost_rankings": summary.lost_rankings,
            "fetch_failures": self.fetch_failures,
            "top_gainers": [d.to_dict() for d in movers.top_gainers[:movers_limit]],
            "top_losers": [d.to_dict() for d in movers.top_losers[:movers_limit]],
            "impressions_available": metrics.impressions_available,
            "clicks_available": metrics.clicks_available,
            "leads_available": metrics.leads_available,
            "page_one_opportunities": metrics.page_one_opportunities,
            "current_wins": [i.to_dict() for i in self.report.current_wins[:wins_limit]],
            "big_gaps": [i.to_dict() for i in self.report.big_gaps[:gaps_limit]],
            "what_to_do_next": [
                i.to_dict() for i in self.report.what_to_do_next[:actions_limit]
            ],
            "rankings": [r.to_dict() for r in self.rankings],
        })
        return data
