"""Tests for the SERP analysis pipeline."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import yaml

from serp_intel.integrations.serp_api import SerpApiError
from serp_intel.models.serp import KeywordInput, RankingSnapshot
from serp_intel.modules.rank_tracker import RankingFetcher
from serp_intel.workflows import (
    NO_KEYWORDS_MESSAGE,
    NOT_CONFIGURED_ERROR,
    OutputLimits,
    PipelineSettings,
    SerpAnalysisPipeline,
    run_analysis,
)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

KEYWORDS = [
    KeywordInput("plumber orlando", volume=1900),
    KeywordInput("water heater repair", volume=800),
    KeywordInput("drain cleaning", volume=500),
]


@pytest.fixture()
def pipeline_factory(mock_serp_client, instant_pacer):
    def _make(settings=None):
        fetcher = RankingFetcher(client=mock_serp_client, pacer=instant_pacer)
        return SerpAnalysisPipeline(settings=settings, fetcher=fetcher)
    return _make


# ===========================================================================
# Preconditions
# ===========================================================================
class TestPreconditions:

    @pytest.mark.asyncio
    async def test_not_configured(self, pipeline_factory, mock_serp_client):
        mock_serp_client.is_configured = False
        result = await pipeline_factory().run_analysis("example.com", KEYWORDS)

        assert result.ok is False
        assert result.error == NOT_CONFIGURED_ERROR
        assert result.keywords_tracked == 3
        assert result.summary is None and result.report is None
        mock_serp_client.search.assert_not_awaited()
        assert result.to_dict() == {
            "ok": False,
            "service": "serp_intel",
            "domain": "example.com",
            "keywords_tracked": 3,
            "error": NOT_CONFIGURED_ERROR,
        }

    @pytest.mark.asyncio
    async def test_no_keywords(self, pipeline_factory, mock_serp_client):
        result = await pipeline_factory().run_analysis("example.com", [])

        assert result.ok is True
        assert result.keywords_tracked == 0
        assert result.message == NO_KEYWORDS_MESSAGE
        mock_serp_client.search.assert_not_awaited()
        assert "current_wins" not in result.to_dict()

    @pytest.mark.asyncio
    async def test_module_level_run_without_key(self):
        result = await run_analysis("example.com", KEYWORDS)
        assert result.ok is False
        assert result.error == NOT_CONFIGURED_ERROR


# ===========================================================================
# Full run
# ===========================================================================
class TestFullRun:

    @pytest.mark.asyncio
    async def test_provider_failure_on_one_keyword(
        self, pipeline_factory, mock_serp_client, make_organic
    ):
        mock_serp_client.search = AsyncMock(side_effect=[
            make_organic("https://www.example.com/orlando"),
            SerpApiError("SerpApi returned 500", status_code=500, retryable=True),
            make_organic(*[f"https://site{i}.com/" for i in range(13)], "https://example.com/drains"),
        ])
        previous = [
            RankingSnapshot("plumber orlando", 4),
            RankingSnapshot("water heater repair", 9),
        ]
        result = await pipeline_factory().run_analysis(
            "example.com", KEYWORDS, previous_snapshots=previous, location="Orlando, Florida"
        )

        assert result.ok is True
        assert result.fetch_failures == 1
        assert [r.position for r in result.rankings] == [1, None, 14]
        assert [r.volume for r in result.rankings] == [1900, 800, 500]
        mock_serp_client.search.assert_any_await("drain cleaning", "Orlando, Florida")

        summary = result.summary
        assert summary.tracked_keywords == 3
        assert summary.ranking_keywords == 2
        assert summary.improved == 1
        assert summary.lost_rankings == 1
        assert summary.new_rankings == 1
        assert [d.keyword for d in result.movers.top_gainers] == ["plumber orlando"]
        assert [d.keyword for d in result.movers.lost_rankings] == ["water heater repair"]

        report = result.report
        assert [i.keyword for i in report.current_wins] == ["plumber orlando"]
        assert [i.keyword for i in report.big_gaps] == ["water heater repair", "drain cleaning"]
        assert [a.keyword for a in report.what_to_do_next] == ["drain cleaning"]

    @pytest.mark.asyncio
    async def test_flattened_result(self, pipeline_factory):
        result = await pipeline_factory().run_analysis("example.com", KEYWORDS)
        data = result.to_dict()

        assert data["ok"] is True
        assert data["service"] == "serp_intel"
        assert data["keywords_tracked"] == 3
        assert data["keywords_ranking"] == 3
        assert data["keywords_top3"] == 3
        assert data["avg_position"] == 2.0
        assert data["fetch_failures"] == 0
        assert len(data["current_wins"]) == 3
        assert data["current_wins"][0]["fingerprint"]
        for key in (
            "duration_ms", "impressions_available", "clicks_available",
            "leads_available", "page_one_opportunities", "top_gainers",
            "top_losers", "big_gaps", "what_to_do_next", "rankings",
        ):
            assert key in data

    @pytest.mark.asyncio
    async def test_url_input_domain(self, pipeline_factory):
        result = await pipeline_factory().run_analysis("https://www.example.com/", KEYWORDS[:1])
        assert result.domain == "https://www.example.com/"
        assert result.rankings[0].position == 2

    @pytest.mark.asyncio
    async def test_pipeline_status(self, pipeline_factory):
        pipeline = pipeline_factory()
        await pipeline.run_analysis("example.com", KEYWORDS[:1])
        status = pipeline.get_pipeline_status()["example.com"]
        assert status["current_step"] == 5
        assert status["status"] == "done"

    @pytest.mark.asyncio
    async def test_output_limits(self, pipeline_factory):
        settings = PipelineSettings(output=OutputLimits(wins_in_result=1))
        pipeline = pipeline_factory(settings)
        result = await pipeline.run_analysis("example.com", KEYWORDS)
        assert len(result.report.current_wins) == 3
        assert len(pipeline.result_to_dict(result)["current_wins"]) == 1

    @pytest.mark.asyncio
    async def test_duplicate_keywords_fetched_once(
        self, pipeline_factory, mock_serp_client, caplog
    ):
        keywords = [
            KeywordInput("Plumber", volume=100),
            KeywordInput("plumber ", volume=900),
            KeywordInput("drain cleaning", volume=500),
        ]
        with caplog.at_level("WARNING", logger="serp_intel.workflows"):
            result = await pipeline_factory().run_analysis("example.com", keywords)

        assert mock_serp_client.search.await_count == 2
        assert result.keywords_tracked == 2
        assert [(r.keyword, r.volume) for r in result.rankings] == [
            ("Plumber", 100), ("drain cleaning", 500),
        ]
        fingerprints = [i.fingerprint for i in result.report.current_wins]
        assert len(fingerprints) == len(set(fingerprints)) == 2
        assert "Duplicate keyword 'plumber '" in caplog.text

    @pytest.mark.asyncio
    async def test_runs_do_not_share_state(self, pipeline_factory):
        pipeline = pipeline_factory()
        first = await pipeline.run_analysis("a.com", KEYWORDS[:1])
        second = await pipeline.run_analysis("example.com", KEYWORDS[:2])
        assert first.keywords_tracked == 1
        assert second.keywords_tracked == 2
        assert set(pipeline.get_pipeline_status()) == {"a.com", "example.com"}


# ===========================================================================
# Settings
# ===========================================================================
class TestPipelineSettings:

    def test_defaults(self):
        settings = PipelineSettings.from_config({})
        assert settings.provider.result_depth == 20
        assert settings.provider.min_interval_seconds == 1.5
        assert settings.provider.max_retries == 0
        assert settings.assumptions.capture_factor == 0.65
        assert settings.report.big_gap_limit == 20
        assert settings.output.mover_limit == 25

    def test_shipped_settings_file(self):
        with open(PROJECT_ROOT / "config" / "settings.yaml", encoding="utf-8") as fh:
            config = yaml.safe_load(fh)
        settings = PipelineSettings.from_config(config)
        assert settings.provider.default_location == "United States"
        assert settings.provider.requests_per_minute is None
        assert settings.assumptions.target_position == 3
        assert settings.report.ctr_model.ctr_for_rank(8) == pytest.approx(0.025)
        assert settings.output.actions_in_result == 15

    def test_overrides(self):
        settings = PipelineSettings.from_config({
            "serp": {"min_interval_seconds": 3, "requests_per_minute": 30},
            "report": {"assumptions": {"lead_conversion_rate": 0.05}, "action_limit": 5},
            "output": {"movers_in_result": 3},
        })
        assert settings.provider.min_interval_seconds == 3.0
        assert settings.provider.requests_per_minute == 30
        assert settings.assumptions.lead_conversion_rate == 0.05
        assert settings.report.action_limit == 5
        assert settings.output.movers_in_result == 3
