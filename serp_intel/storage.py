"""Snapshot store: persists analysis runs so the next run has a baseline."""

import logging
from typing import Any, Optional

from sqlalchemy import desc

from serp_intel.database import get_session
from serp_intel.models.ranking import AnalysisRun, RankingRecord
from serp_intel.models.serp import PipelineResult, RankingSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Read and write analysis runs through the global SQLAlchemy session.

    Usage::

        store = SnapshotStore()
        previous = store.load_previous_snapshots("example.com")
        run_id = store.save_result(result, result_dict)
    """

    def save_result(
        self,
        result: PipelineResult,
        result_dict: Optional[dict[str, Any]] = None,
        location: Optional[str] = None,
    ) -> int:
        """Persist a run and, when it succeeded, every ranking snapshot."""
        with get_session() as session:
            run = AnalysisRun(
                domain=result.domain,
                ok=result.ok,
                location=location,
                duration_ms=result.duration_ms,
                keywords_tracked=result.keywords_tracked,
                keywords_ranking=result.summary.ranking_keywords if result.summary else 0,
                summary_json=result.summary.to_dict() if result.summary else None,
                result_json=result_dict if result_dict is not None else result.to_dict(),
            )
            if result.ok:
                for snap in result.rankings:
                    run.rankings.append(RankingRecord(
                        domain=result.domain,
                        keyword=snap.keyword,
                        position=snap.position,
                        url_ranked=snap.url,
                        volume=snap.volume,
                    ))
            session.add(run)
            session.flush()
            run_id = run.id
        logger.info(
            "Saved analysis run %d for %r (%d rankings)",
            run_id, result.domain, len(result.rankings) if result.ok else 0,
        )
        return run_id

    def load_previous_snapshots(self, domain: str) -> list[RankingSnapshot]:
        """Rankings of the latest successful run with data, or an empty list."""
        with get_session() as session:
            run = (
                session.query(AnalysisRun)
                .filter(
                    AnalysisRun.domain == domain,
                    AnalysisRun.ok.is_(True),
                    AnalysisRun.keywords_tracked > 0,
                )
                .order_by(desc(AnalysisRun.created_at), desc(AnalysisRun.id))
                .first()
            )
            if run is None:
                logger.info("No previous snapshots for %r", domain)
                return []
            records = (
                session.query(RankingRecord)
                .filter(RankingRecord.run_id == run.id)
                .order_by(RankingRecord.id.asc())
                .all()
            )
            snapshots = [
                RankingSnapshot(
                    keyword=r.keyword,
                    position=r.position,
                    url=r.url_ranked,
                    volume=r.volume,
                )
                for r in records
            ]
        logger.info("Loaded %d previous snapshots for %r", len(snapshots), domain)
        return snapshots

    def list_runs(self, domain: str, limit: int = 10) -> list[dict[str, Any]]:
        """Most recent runs for a domain, newest first."""
        with get_session() as session:
            rows = (
                session.query(AnalysisRun)
                .filter(AnalysisRun.domain == domain)
                .order_by(desc(AnalysisRun.created_at), desc(AnalysisRun.id))
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": row.id,
                    "domain": row.domain,
                    "ok": row.ok,
                    "location": row.location,
                    "duration_ms": row.duration_ms,
                    "keywords_tracked": row.keywords_tracked,
                    "keywords_ranking": row.keywords_ranking,
                    "created_at": row.created_at.isoformat() if row.created_at else None,
                }
                for row in rows
            ]

    def get_run(self, run_id: int) -> Optional[dict[str, Any]]:
        """Stored flattened result of one run."""
        with get_session() as session:
            run = session.get(AnalysisRun, run_id)
            if run is None:
                return None
            return dict(run.result_json or {})
