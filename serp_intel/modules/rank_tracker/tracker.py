"""Rank tracker: snapshot diffing, movers detection and ranking summaries.

All functions here are pure: they never raise for absent positions and
return identical output for identical input.
"""

import logging
from typing import Optional

from serp_intel.models.serp import (
    STATUS_DECLINED,
    STATUS_IMPROVED,
    STATUS_LOST_RANKING,
    STATUS_NEW_RANKING,
    STATUS_STABLE,
    STATUS_UNCHANGED,
    Movers,
    RankingDelta,
    RankingSnapshot,
    RankingSummary,
)
from serp_intel.utils.helpers import keyword_key, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_MOVER_LIMIT = 25


def classify(
    current_position: Optional[int],
    previous_position: Optional[int],
) -> tuple[Optional[int], str]:
    """Return ``(delta, status)`` for one keyword's pair of positions."""
    if current_position is not None and previous_position is not None:
        delta = previous_position - current_position  # positive = improved
        if delta > 0:
            return delta, STATUS_IMPROVED
        if delta < 0:
            return delta, STATUS_DECLINED
        return 0, STATUS_STABLE
    if current_position is not None:
        return None, STATUS_NEW_RANKING
    if previous_position is not None:
        return None, STATUS_LOST_RANKING
    return None, STATUS_UNCHANGED


def compute_deltas(
    current: list[RankingSnapshot],
    previous: list[RankingSnapshot],
) -> list[RankingDelta]:
    """Compare current snapshots with the previous set, keyword by keyword.

    Keywords are matched case-insensitively. A keyword missing from the
    previous set is treated as previously not ranking.
    """
    prev_map: dict[str, RankingSnapshot] = {}
    for snap in previous:
        prev_map[keyword_key(snap.keyword)] = snap

    deltas: list[RankingDelta] = []
    for cur in current:
        prev = prev_map.get(keyword_key(cur.keyword))
        prev_pos = prev.position if prev is not None else None
        delta, status = classify(cur.position, prev_pos)
        deltas.append(RankingDelta(
            keyword=cur.keyword,
            current_position=cur.position,
            previous_position=prev_pos,
            delta=delta,
            status=status,
            url=cur.url,
            volume=cur.volume,
        ))
    return deltas


def detect_movers(
    deltas: list[RankingDelta],
    limit: int = DEFAULT_MOVER_LIMIT,
) -> Movers:
    """Pick the biggest gainers and losers plus new and lost rankings.

    New and lost rankings have no numeric magnitude, so they are listed
    separately instead of being merged into the gainers/losers.
    """
    if limit < 0:
        raise ValueError("limit must be >= 0")
    with_delta = [d for d in deltas if d.delta is not None]

    gainers = sorted(
        (d for d in with_delta if d.delta > 0), key=lambda d: d.delta, reverse=True
    )
    losers = sorted((d for d in with_delta if d.delta < 0), key=lambda d: d.delta)
    new_rankings = [d for d in deltas if d.status == STATUS_NEW_RANKING]
    lost_rankings = [d for d in deltas if d.status == STATUS_LOST_RANKING]

    return Movers(
        top_gainers=gainers[:limit],
        top_losers=losers[:limit],
        new_rankings=new_rankings[:limit],
        lost_rankings=lost_rankings[:limit],
    )


def visibility_score(current: list[RankingSnapshot]) -> float:
    """Position-weighted visibility, 0-100.

    Position 1 earns 10 points, 2 earns 9, ... 10 earns 1, anything else 0,
    normalised against every tracked keyword sitting at position 1.
    """
    if not current:
        return 0.0
    earned = 0
    for snap in current:
        if snap.position is not None and 1 <= snap.position <= 10:
            earned += 11 - snap.position
    score = earned / (len(current) * 10) * 100
    return round(min(score, 100.0), 1)


def summarize(
    current: list[RankingSnapshot],
    deltas: list[RankingDelta],
) -> RankingSummary:
    """Aggregate the current ranking state and its transition counts."""
    positions = [s.position for s in current if s.position is not None]
    avg_pos = round_half_up(sum(positions) / len(positions), 1) if positions else None

    counts = {}
    for d in deltas:
        counts[d.status] = counts.get(d.status, 0) + 1

    summary = RankingSummary(
        tracked_keywords=len(current),
        ranking_keywords=len(positions),
        top3=sum(1 for p in positions if p <= 3),
        top10=sum(1 for p in positions if p <= 10),
        top20=sum(1 for p in positions if p <= 20),
        not_ranking=len(current) - len(positions),
        avg_position=avg_pos,
        visibility_score=visibility_score(current),
        improved=counts.get(STATUS_IMPROVED, 0),
        declined=counts.get(STATUS_DECLINED, 0),
        stable=counts.get(STATUS_STABLE, 0),
        new_rankings=counts.get(STATUS_NEW_RANKING, 0),
        lost_rankings=counts.get(STATUS_LOST_RANKING, 0),
        unchanged=counts.get(STATUS_UNCHANGED, 0),
    )
    logger.debug(
        "Summary: %d/%d ranking, avg=%s", summary.ranking_keywords,
        summary.tracked_keywords, summary.avg_position,
    )
    return summary
