"""Workflow engine connecting fetcher, tracker and report engine into one run."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from serp_intel.integrations.serp_api import (
    DEFAULT_LOCATION,
    DEFAULT_RESULT_DEPTH,
    DEFAULT_TIMEOUT,
    SerpApiClient,
)
from serp_intel.models.serp import (
    KeywordInput,
    PipelineResult,
    RankingSnapshot,
    ReportAssumptions,
)
from serp_intel.modules.rank_tracker.fetcher import (
    DEFAULT_MIN_INTERVAL,
    ProgressCallback,
    RankingFetcher,
)
from serp_intel.modules.rank_tracker.tracker import (
    DEFAULT_MOVER_LIMIT,
    compute_deltas,
    detect_movers,
    summarize,
)
from serp_intel.modules.reporting.report_engine import ReportConfig, build_report
from serp_intel.utils.helpers import extract_domain, keyword_key
from serp_intel.utils.rate_limiter import RequestPacer

logger = logging.getLogger(__name__)

PIPELINE_NAME = "serp_intel"
NOT_CONFIGURED_ERROR = "SERPAPI_API_KEY not configured"
NO_KEYWORDS_MESSAGE = "No keywords configured for this domain"


def _unique_keywords(keywords: list[KeywordInput], domain: str) -> list[KeywordInput]:
    """Drop case/whitespace duplicates, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[KeywordInput] = []
    for kw in keywords:
        key = keyword_key(kw.keyword)
        if key in seen:
            logger.warning("Duplicate keyword %r for %s ignored", kw.keyword, domain)
            continue
        seen.add(key)
        unique.append(kw)
    return unique


@dataclass(frozen=True)
class ProviderSettings:
    result_depth: int = DEFAULT_RESULT_DEPTH
    timeout_seconds: float = DEFAULT_TIMEOUT
    min_interval_seconds: float = DEFAULT_MIN_INTERVAL
    requests_per_minute: Optional[int] = None
    max_retries: int = 0
    default_location: str = DEFAULT_LOCATION
    google_domain: str = "google.com"
    gl: str = "us"
    hl: str = "en"

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ProviderSettings":
        data = data or {}
        defaults = cls()
        rpm = data.get("requests_per_minute")
        return cls(
            result_depth=int(data.get("result_depth", defaults.result_depth)),
            timeout_seconds=float(data.get("timeout_seconds", defaults.timeout_seconds)),
            min_interval_seconds=float(
                data.get("min_interval_seconds", defaults.min_interval_seconds)
            ),
            requests_per_minute=int(rpm) if rpm else None,
            max_retries=int(data.get("max_retries", defaults.max_retries)),
            default_location=str(data.get("default_location", defaults.default_location)),
            google_domain=str(data.get("google_domain", defaults.google_domain)),
            gl=str(data.get("gl", defaults.gl)),
            hl=str(data.get("hl", defaults.hl)),
        )


@dataclass(frozen=True)
class OutputLimits:
    """How many entries each list keeps in the flattened result."""
    mover_limit: int = DEFAULT_MOVER_LIMIT
    movers_in_result: int = 10
    wins_in_result: int = 20
    gaps_in_result: int = 20
    actions_in_result: int = 15

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if value < 0:
                raise ValueError(f"{name} must be >= 0")

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "OutputLimits":
        data = data or {}
        defaults = cls()
        return cls(**{
            name: int(data.get(name, getattr(defaults, name)))
            for name in (
                "mover_limit", "movers_in_result", "wins_in_result",
                "gaps_in_result", "actions_in_result",
            )
        })


@dataclass(frozen=True)
class PipelineSettings:
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    assumptions: ReportAssumptions = field(default_factory=ReportAssumptions)
    report: ReportConfig = field(default_factory=ReportConfig)
    output: OutputLimits = field(default_factory=OutputLimits)

    @classmethod
    def from_config(cls, config: Optional[dict[str, Any]]) -> "PipelineSettings":
        """Build from the parsed ``settings.yaml`` mapping."""
        config = config or {}
        report_cfg = config.get("report") or {}
        return cls(
            provider=ProviderSettings.from_dict(config.get("serp")),
            assumptions=ReportAssumptions.from_dict(report_cfg.get("assumptions")),
            report=ReportConfig.from_dict(report_cfg),
            output=OutputLimits.from_dict(config.get("output")),
        )


class SerpAnalysisPipeline:
    """Run fetch -> diff -> summarize -> report for one domain.

    Each run owns its own snapshot lists; nothing is shared between runs
    except the fetcher's pacer, so concurrent domains should use separate
    pipelines unless they share one provider quota.

    Usage::

        pipeline = SerpAnalysisPipeline()
        result = await pipeline.run_analysis(
            "example.com",
            [KeywordInput("plumber orlando", volume=1900)],
            previous_snapshots=last_run,
        )
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        fetcher: Optional[RankingFetcher] = None,
        api_key: Optional[str] = None,
    ) -> None:
        self._settings = settings or PipelineSettings()
        self._fetcher = fetcher
        self._api_key = api_key
        self._pipeline_status: dict[str, Any] = {}

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Lazy-loaded collaborators
    # ------------------------------------------------------------------

    def _get_fetcher(self) -> RankingFetcher:
        if self._fetcher is None:
            provider = self._settings.provider
            client = SerpApiClient(
                api_key=self._api_key,
                timeout=provider.timeout_seconds,
                result_depth=provider.result_depth,
                google_domain=provider.google_domain,
                gl=provider.gl,
                hl=provider.hl,
            )
            pacer = RequestPacer(
                min_interval=provider.min_interval_seconds,
                requests_per_minute=provider.requests_per_minute,
                name="serpapi",
            )
            self._fetcher = RankingFetcher(
                client=client, pacer=pacer, max_retries=provider.max_retries
            )
            logger.debug("RankingFetcher created.")
        return self._fetcher

    # ------------------------------------------------------------------
    # Logging helper
    # ------------------------------------------------------------------

    def _log_step(
        self,
        domain: str,
        step: int,
        total: int,
        description: str,
        status: str = "running",
    ) -> None:
        """Log and record a pipeline step transition."""
        msg = f"[{PIPELINE_NAME}:{domain}] Step {step}/{total}: {description} ({status})"
        if status == "error":
            logger.error(msg)
        else:
            logger.info(msg)
        self._pipeline_status[domain] = {
            "current_step": step,
            "total_steps": total,
            "description": description,
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    def get_pipeline_status(self) -> dict[str, Any]:
        """Return the last recorded step of every domain run so far."""
        return dict(self._pipeline_status)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run_analysis(
        self,
        domain: str,
        keywords_with_volume: list[KeywordInput],
        previous_snapshots: Optional[list[RankingSnapshot]] = None,
        location: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """Full SERP analysis for a domain.

        Steps:
            1. Drop duplicate keywords, validate preconditions (credentials,
               non-empty keywords)
            2. Fetch live rankings
            3. Diff against the previous snapshots, detect movers, summarize
            4. Build the cost-of-inaction report
            5. Assemble the consolidated result

        Only the two preconditions produce an unsuccessful result; a
        keyword whose fetch fails is reported as not ranking.
        """
        total = 5
        started = time.monotonic()
        location = location or self._settings.provider.default_location
        base_domain = extract_domain(domain) or domain

        # Step 1: Preconditions
        self._log_step(domain, 1, total, "Validate preconditions")
        keywords_with_volume = _unique_keywords(keywords_with_volume, domain)
        fetcher = self._get_fetcher()
        if not fetcher.is_configured:
            logger.error("%s; skipping SERP analysis for %s", NOT_CONFIGURED_ERROR, domain)
            self._log_step(domain, 1, total, "Validate preconditions", "error")
            return PipelineResult(
                ok=False,
                domain=domain,
                keywords_tracked=len(keywords_with_volume),
                error=NOT_CONFIGURED_ERROR,
            )
        if not keywords_with_volume:
            logger.info("No keywords to track for %s", domain)
            self._log_step(domain, 1, total, "Validate preconditions", "skipped")
            return PipelineResult(
                ok=True,
                domain=domain,
                keywords_tracked=0,
                message=NO_KEYWORDS_MESSAGE,
            )
        logger.info(
            "Starting SERP analysis for %s (%d keywords, location=%r)",
            domain, len(keywords_with_volume), location,
        )

        # Step 2: Fetch
        self._log_step(domain, 2, total, "Fetch live rankings")
        fetched = await fetcher.fetch_rankings(
            [k.keyword for k in keywords_with_volume],
            base_domain,
            location=location,
            progress_callback=progress_callback,
        )
        current = [
            res.to_snapshot(volume=kw.volume)
            for res, kw in zip(fetched, keywords_with_volume)
        ]
        fetch_failures = sum(1 for res in fetched if res.failed)
        self._log_step(domain, 2, total, "Fetch live rankings", "done")

        # Step 3: Diff and summarize
        self._log_step(domain, 3, total, "Compute deltas and movers")
        deltas = compute_deltas(current, previous_snapshots or [])
        movers = detect_movers(deltas, limit=self._settings.output.mover_limit)
        summary = summarize(current, deltas)
        self._log_step(domain, 3, total, "Compute deltas and movers", "done")

        # Step 4: Report
        self._log_step(domain, 4, total, "Build report")
        report = build_report(
            domain,
            current,
            summary,
            deltas,
            assumptions=self._settings.assumptions,
            config=self._settings.report,
        )
        self._log_step(domain, 4, total, "Build report", "done")

        # Step 5: Assemble
        duration_ms = int((time.monotonic() - started) * 1000)
        result = PipelineResult(
            ok=True,
            domain=domain,
            duration_ms=duration_ms,
            keywords_tracked=summary.tracked_keywords,
            summary=summary,
            movers=movers,
            report=report,
            rankings=current,
            fetch_failures=fetch_failures,
        )
        self._log_step(domain, 5, total, "Assemble result", "done")
        logger.info(
            "SERP analysis complete for %s: %d/%d ranking, %d fetch failures, %dms",
            domain, summary.ranking_keywords, summary.tracked_keywords,
            fetch_failures, duration_ms,
        )
        return result

    def result_to_dict(self, result: PipelineResult) -> dict[str, Any]:
        """Flatten a result using the configured output caps."""
        limits = self._settings.output
        return result.to_dict(
            movers_limit=limits.movers_in_result,
            wins_limit=limits.wins_in_result,
            gaps_limit=limits.gaps_in_result,
            actions_limit=limits.actions_in_result,
        )

    async def close(self) -> None:
        """Release the provider client."""
        if self._fetcher is not None:
            await self._fetcher.close()


async def run_analysis(
    domain: str,
    keywords_with_volume: list[KeywordInput],
    previous_snapshots: Optional[list[RankingSnapshot]] = None,
    location: Optional[str] = None,
    settings: Optional[PipelineSettings] = None,
) -> PipelineResult:
    """One-shot convenience wrapper around :class:`SerpAnalysisPipeline`."""
    pipeline = SerpAnalysisPipeline(settings=settings)
    try:
        return await pipeline.run_analysis(
            domain, keywords_with_volume, previous_snapshots, location
        )
    finally:
        await pipeline.close()
