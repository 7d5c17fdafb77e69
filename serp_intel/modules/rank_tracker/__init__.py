"""Rank Tracker module: live ranking fetches, snapshot diffing, and movers."""

from serp_intel.modules.rank_tracker.fetcher import RankingFetcher, match_target
from serp_intel.modules.rank_tracker.tracker import (
    classify,
    compute_deltas,
    detect_movers,
    summarize,
    visibility_score,
)

__all__ = [
    "RankingFetcher",
    "match_target",
    "classify",
    "compute_deltas",
    "detect_movers",
    "summarize",
    "visibility_score",
]
