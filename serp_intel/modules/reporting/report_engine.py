"""SERP report engine: cost-of-inaction estimate, fingerprints and action report.

Builds the three report sections (current wins, big gaps, what to do next)
from a ranking snapshot set. Every item carries a fingerprint derived from
its content so downstream deduplication recognises a recommendation it has
already queued, across runs.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from serp_intel.models.serp import (
    ActionItem,
    CostOfInactionMetrics,
    RankingDelta,
    RankingSnapshot,
    RankingSummary,
    ReportAssumptions,
    ReportMetrics,
    SerpReport,
    SerpReportItem,
)
from serp_intel.modules.reporting.ctr_model import DEFAULT_CTR_MODEL, CTRModel
from serp_intel.utils.helpers import keyword_key, round_half_up

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 16
DEFAULT_PAGE = "/"

ITEM_WIN = "win"
ITEM_GAP = "gap"
ITEM_ACTION = "action"

NEAR_PAGE_ONE_ACTION = (
    "Rank #{rank}: Optimize title/meta; add internal links; "
    "expand content by 200-400 words."
)
DEEP_CONTENT_ACTION = (
    "Rank #{rank}: Create dedicated landing page or significantly expand existing content."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReportConfig:
    """Thresholds, caps and wording used when assembling a report.

    Attributes:
        ctr_model: CTR lookup used by the cost-of-inaction estimate.
        strong_rank: Keywords at or above this rank add no opportunity.
        page_one_max_rank: Last rank counted as page one.
        win_max_rank: Last rank listed under current wins.
        big_gap_min_volume: Volume a non page-one keyword must exceed to be a gap.
        big_gap_limit: Maximum number of big gaps.
        action_min_rank / action_max_rank: Rank window for next actions.
        action_limit: Maximum number of next actions.
        action_tier_boundary: Ranks up to here get the on-page action,
            deeper ranks get the content-depth action.
    """
    ctr_model: CTRModel = field(default_factory=lambda: DEFAULT_CTR_MODEL)
    strong_rank: int = 3
    page_one_max_rank: int = 10
    win_max_rank: int = 10
    big_gap_min_volume: float = 100
    big_gap_limit: int = 20
    action_min_rank: int = 4
    action_max_rank: int = 20
    action_limit: int = 15
    action_tier_boundary: int = 10
    near_page_one_action: str = NEAR_PAGE_ONE_ACTION
    deep_content_action: str = DEEP_CONTENT_ACTION

    def __post_init__(self) -> None:
        for name in ("big_gap_limit", "action_limit", "big_gap_min_volume"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.action_min_rank > self.action_max_rank:
            raise ValueError("action_min_rank must not exceed action_max_rank")

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ReportConfig":
        """Build from the ``report`` settings section."""
        data = data or {}
        defaults = cls()
        kwargs: dict[str, Any] = {"ctr_model": CTRModel.from_dict(data)}
        for name in (
            "strong_rank", "page_one_max_rank", "win_max_rank", "big_gap_limit",
            "action_min_rank", "action_max_rank", "action_limit", "action_tier_boundary",
        ):
            kwargs[name] = int(data.get(name, getattr(defaults, name)))
        kwargs["big_gap_min_volume"] = float(
            data.get("big_gap_min_volume", defaults.big_gap_min_volume)
        )
        for name in ("near_page_one_action", "deep_content_action"):
            if data.get(name):
                kwargs[name] = str(data[name])
        return cls(**kwargs)


DEFAULT_REPORT_CONFIG = ReportConfig()


def fingerprint(domain: str, page: str, item_type: str, action_text: str) -> str:
    """Stable 16-hex-char identifier for a recommendation.

    The four fields are lower-cased and pipe-joined (the action text is also
    trimmed) before hashing with SHA-1, so re-running an analysis yields the
    same identifier for the same recommendation. Changing the normalisation
    invalidates every fingerprint stored downstream.
    """
    normalized = "|".join((
        domain.lower(),
        page.lower(),
        item_type.lower(),
        action_text.lower().strip(),
    ))
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def calculate_cost_of_inaction(
    rankings: list[RankingSnapshot],
    assumptions: Optional[ReportAssumptions] = None,
    config: ReportConfig = DEFAULT_REPORT_CONFIG,
) -> CostOfInactionMetrics:
    """Estimate impressions, clicks and leads forgone below the target rank.

    Only keywords with a known, non-zero volume that sit below
    ``config.strong_rank`` (or do not rank) contribute. For each, the click
    gap is the difference between modelled clicks at the target position and
    at the current rank, both discounted by the capture factor.
    """
    assumptions = assumptions or ReportAssumptions()
    ctr = config.ctr_model.ctr_for_rank
    target_ctr = ctr(assumptions.target_position)

    impressions = 0.0
    clicks = 0.0
    page_one_opportunities = 0

    for snap in rankings:
        volume = snap.volume or 0
        if volume <= 0:
            continue
        if snap.position is not None and snap.position <= config.strong_rank:
            continue

        current_clicks = volume * ctr(snap.position) * assumptions.capture_factor
        target_clicks = volume * target_ctr * assumptions.capture_factor
        if target_clicks > current_clicks:
            impressions += volume * assumptions.capture_factor
            clicks += target_clicks - current_clicks

        if snap.position is None or snap.position > config.page_one_max_rank:
            page_one_opportunities += 1

    return CostOfInactionMetrics(
        impressions_available=int(round_half_up(impressions)),
        clicks_available=int(round_half_up(clicks)),
        leads_available=int(round_half_up(clicks * assumptions.lead_conversion_rate)),
        page_one_opportunities=page_one_opportunities,
    )


def action_for_rank(rank: int, config: ReportConfig = DEFAULT_REPORT_CONFIG) -> str:
    """Action text for a keyword; the template depends on its rank tier."""
    template = (
        config.near_page_one_action
        if rank <= config.action_tier_boundary
        else config.deep_content_action
    )
    return template.format(rank=rank)


def _rank_sort_key(snap: RankingSnapshot) -> int:
    return snap.position if snap.position is not None else 99


def build_report(
    domain: str,
    rankings: list[RankingSnapshot],
    summary: RankingSummary,
    deltas: list[RankingDelta],
    assumptions: Optional[ReportAssumptions] = None,
    config: ReportConfig = DEFAULT_REPORT_CONFIG,
    generated_at: Optional[datetime] = None,
) -> SerpReport:
    """Assemble the cost-of-inaction metrics and the three report sections."""
    assumptions = assumptions or ReportAssumptions()
    coi = calculate_cost_of_inaction(rankings, assumptions, config)
    status_by_kw = {keyword_key(d.keyword): d.status for d in deltas}

    def _item(snap: RankingSnapshot, item_type: str) -> SerpReportItem:
        page = snap.url or DEFAULT_PAGE
        return SerpReportItem(
            keyword=snap.keyword,
            volume=snap.volume or 0,
            rank=snap.position,
            url=snap.url,
            fingerprint=fingerprint(domain, page, item_type, snap.keyword),
            status=status_by_kw.get(keyword_key(snap.keyword)),
        )

    wins = sorted(
        (r for r in rankings if r.position is not None and r.position <= config.win_max_rank),
        key=_rank_sort_key,
    )
    current_wins = [_item(r, ITEM_WIN) for r in wins]

    gaps = sorted(
        (
            r for r in rankings
            if (r.position is None or r.position > config.page_one_max_rank)
            and (r.volume or 0) > config.big_gap_min_volume
        ),
        key=lambda r: r.volume or 0,
        reverse=True,
    )
    big_gaps = [_item(r, ITEM_GAP) for r in gaps[:config.big_gap_limit]]

    actionable = sorted(
        (
            r for r in rankings
            if r.position is not None
            and config.action_min_rank <= r.position <= config.action_max_rank
        ),
        key=_rank_sort_key,
    )
    what_to_do_next = []
    for r in actionable[:config.action_limit]:
        page = r.url or DEFAULT_PAGE
        what_to_do_next.append(ActionItem(
            page=page,
            keyword=r.keyword,
            rank=r.position,
            volume=r.volume or 0,
            action=action_for_rank(r.position, config),
            fingerprint=fingerprint(domain, page, ITEM_ACTION, r.keyword),
        ))

    metrics = ReportMetrics(
        impressions_available=coi.impressions_available,
        clicks_available=coi.clicks_available,
        leads_available=coi.leads_available,
        page_one_opportunities=coi.page_one_opportunities,
        keywords_tracked=summary.tracked_keywords,
        ranking_top20=summary.top20,
        not_ranked=summary.not_ranking,
    )
    logger.info(
        "Report for %r: %d wins, %d gaps, %d actions, %d clicks available",
        domain, len(current_wins), len(big_gaps), len(what_to_do_next),
        metrics.clicks_available,
    )
    return SerpReport(
        domain=domain,
        generated_at=(generated_at or _utcnow()).isoformat(),
        metrics=metrics,
        current_wins=current_wins,
        big_gaps=big_gaps,
        what_to_do_next=what_to_do_next,
        assumptions=assumptions,
    )
