"""Stored analysis runs and ranking snapshots (SQLAlchemy models)."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from serp_intel.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisRun(Base):
    """One pipeline run for a domain, with its flattened result."""

    __tablename__ = "analysis_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    ok: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    keywords_tracked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    keywords_ranking: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    result_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, index=True
    )

    rankings: Mapped[list["RankingRecord"]] = relationship(
        "RankingRecord", back_populates="run", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<AnalysisRun id={self.id} domain={self.domain!r} "
            f"ok={self.ok} kws={self.keywords_tracked}>"
        )


class RankingRecord(Base):
    """A keyword's position captured by one analysis run."""

    __tablename__ = "ranking_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("analysis_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    keyword: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    url_ranked: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    volume: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    run: Mapped["AnalysisRun"] = relationship("AnalysisRun", back_populates="rankings")

    def __repr__(self) -> str:
        return (
            f"<RankingRecord id={self.id} kw={self.keyword!r} "
            f"domain={self.domain!r} pos={self.position}>"
        )
