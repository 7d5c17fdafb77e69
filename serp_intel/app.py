"""Application facade: configuration, persistence and scheduled runs."""

import asyncio
import csv
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from serp_intel.integrations.serp_api import api_key_from_env
from serp_intel.models.serp import KeywordInput, PipelineResult
from serp_intel.workflows import PipelineSettings, SerpAnalysisPipeline

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"
DEFAULT_ENV_PATH = ".env"


def load_keywords_file(path: str | Path) -> list[KeywordInput]:
    """Read tracked keywords from a CSV or plain-text file.

    CSV files need a ``keyword`` column and may carry ``volume`` and
    ``target_url``. Any other file is read as one keyword per line; blank
    lines and ``#`` comments are skipped. Duplicate keywords (compared
    case-insensitively) keep their first occurrence.
    """
    path = Path(path)
    keywords: list[KeywordInput] = []
    with open(path, "r", encoding="utf-8", newline="") as fh:
        if path.suffix.lower() == ".csv":
            reader = csv.DictReader(fh)
            if not reader.fieldnames or "keyword" not in reader.fieldnames:
                raise ValueError(f"{path}: CSV needs a 'keyword' column")
            for row in reader:
                if (row.get("keyword") or "").strip():
                    row["keyword"] = row["keyword"].strip()
                    keywords.append(KeywordInput.from_dict(row))
        else:
            for line in fh:
                line = line.strip()
                if line and not line.startswith("#"):
                    keywords.append(KeywordInput(keyword=line))

    seen: set[str] = set()
    unique: list[KeywordInput] = []
    for kw in keywords:
        key = kw.keyword.lower()
        if key in seen:
            logger.warning("Duplicate keyword %r in %s ignored", kw.keyword, path)
            continue
        seen.add(key)
        unique.append(kw)
    logger.info("Loaded %d keywords from %s", len(unique), path)
    return unique


class SerpIntelApp:
    """Central application class: the caller that owns persistence.

    Usage::

        app = SerpIntelApp()
        app.initialize()
        result = app.run_domain("example.com", load_keywords_file("kw.csv"))
    """

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_PATH,
        env_path: str = DEFAULT_ENV_PATH,
    ):
        self._config_path = config_path
        self._env_path = env_path
        self.config: dict[str, Any] = {}
        self.settings = PipelineSettings()
        self._store = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, database_url: Optional[str] = None) -> None:
        """Load .env and YAML configuration and initialise the database."""
        if self._initialized:
            return

        env_file = Path(self._env_path)
        if env_file.exists():
            load_dotenv(env_file)
            logger.info("Loaded environment from %s", self._env_path)

        self.config = self._load_config()
        self.settings = PipelineSettings.from_config(self.config)

        from serp_intel.database import init_db
        from serp_intel.storage import SnapshotStore
        db_cfg = self.config.get("database", {})
        init_db(
            database_url=database_url or os.getenv("DATABASE_URL") or db_cfg.get("url"),
            echo=db_cfg.get("echo", False),
        )
        self._store = SnapshotStore()

        self._initialized = True
        logger.info("SerpIntelApp initialised.")

    def _load_config(self) -> dict[str, Any]:
        """Load the YAML configuration file."""
        config_file = Path(self._config_path)
        if not config_file.exists():
            logger.warning("Config file not found: %s (using defaults)", self._config_path)
            return {}
        with open(config_file, "r", encoding="utf-8") as fh:
            config = yaml.safe_load(fh) or {}
        logger.info("Configuration loaded from %s", self._config_path)
        return config

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Call initialize() before using the application.")

    @property
    def store(self):
        self._ensure_initialized()
        return self._store

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def build_pipeline(self) -> SerpAnalysisPipeline:
        return SerpAnalysisPipeline(settings=self.settings)

    async def run_domain_async(
        self,
        domain: str,
        keywords: list[KeywordInput],
        location: Optional[str] = None,
        save: bool = True,
    ) -> tuple[PipelineResult, dict[str, Any]]:
        """Run one analysis against the stored baseline and persist it.

        Returns the result object and its flattened form.
        """
        self._ensure_initialized()
        previous = self._store.load_previous_snapshots(domain)
        pipeline = self.build_pipeline()
        try:
            result = await pipeline.run_analysis(
                domain, keywords, previous_snapshots=previous, location=location
            )
        finally:
            await pipeline.close()

        result_dict = pipeline.result_to_dict(result)
        if save:
            run_id = self._store.save_result(
                result,
                result_dict,
                location=location or self.settings.provider.default_location,
            )
            result_dict["run_id"] = run_id
        return result, result_dict

    def run_domain(
        self,
        domain: str,
        keywords: list[KeywordInput],
        location: Optional[str] = None,
        save: bool = True,
    ) -> tuple[PipelineResult, dict[str, Any]]:
        """Synchronous wrapper around :meth:`run_domain_async`."""
        return asyncio.run(self.run_domain_async(domain, keywords, location, save))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Return health status of configuration, provider key and database."""
        self._ensure_initialized()
        status: dict[str, dict[str, Any]] = {}

        status["config"] = {
            "status": "ok" if self.config else "warning",
            "details": (
                f"{len(self.config)} sections loaded" if self.config
                else "no config, using defaults"
            ),
        }

        status["provider"] = {
            "status": "ok" if api_key_from_env() else "error",
            "details": "SERPAPI_API_KEY set" if api_key_from_env() else "SERPAPI_API_KEY missing",
        }

        try:
            from sqlalchemy import func

            from serp_intel.database import get_session
            from serp_intel.models.ranking import AnalysisRun
            with get_session() as session:
                runs = session.query(func.count(AnalysisRun.id)).scalar()
            status["database"] = {"status": "ok", "details": f"{runs} stored runs"}
        except Exception as exc:
            status["database"] = {"status": "error", "details": str(exc)}

        return status


def run_scheduled_analysis(
    domain: str,
    keywords_file: str,
    location: Optional[str] = None,
    config_path: str = DEFAULT_CONFIG_PATH,
) -> dict[str, Any]:
    """Scheduler entry point: one full, persisted run for a domain."""
    app = SerpIntelApp(config_path=config_path)
    app.initialize()
    keywords = load_keywords_file(keywords_file)
    result, result_dict = app.run_domain(domain, keywords, location=location)
    if not result.ok:
        logger.error("Scheduled analysis for %s failed: %s", domain, result.error)
    return result_dict


def build_scheduler(config: Optional[dict[str, Any]] = None):
    """Create a RankingScheduler from the ``scheduler`` settings section."""
    from serp_intel.scheduler import RankingScheduler

    sched_cfg = (config or {}).get("scheduler") or {}
    return RankingScheduler(
        job_store_url=sched_cfg.get("job_store", "sqlite:///data/scheduler_jobs.db"),
        timezone=sched_cfg.get("timezone", "UTC"),
        max_workers=int(sched_cfg.get("max_concurrent_jobs", 3)),
    )
