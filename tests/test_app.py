"""Tests for the application facade and keyword files."""

import pytest

from serp_intel.app import SerpIntelApp, load_keywords_file, run_scheduled_analysis
from serp_intel.models.serp import KeywordInput
from serp_intel.modules.rank_tracker import RankingFetcher
from serp_intel.workflows import NOT_CONFIGURED_ERROR, SerpAnalysisPipeline


@pytest.fixture()
def config_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "database:\n"
        "  url: 'sqlite:///:memory:'\n"
        "serp:\n"
        "  default_location: 'Orlando, Florida'\n"
        "output:\n"
        "  wins_in_result: 1\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def serp_app(config_file, tmp_path):
    app = SerpIntelApp(config_path=str(config_file), env_path=str(tmp_path / "missing.env"))
    app.initialize()
    return app


# ===========================================================================
# Keyword files
# ===========================================================================
class TestLoadKeywordsFile:

    def test_csv(self, tmp_path):
        path = tmp_path / "kw.csv"
        path.write_text(
            "keyword,volume,target_url\n"
            "plumber orlando,1900,https://example.com/orlando\n"
            "drain cleaning,,\n"
            "  ,100,\n"
            "Plumber Orlando,50,\n",
            encoding="utf-8",
        )
        keywords = load_keywords_file(path)
        assert [k.keyword for k in keywords] == ["plumber orlando", "drain cleaning"]
        assert keywords[0].volume == 1900
        assert keywords[0].target_url == "https://example.com/orlando"
        assert keywords[1].volume is None
        assert keywords[1].target_url is None

    def test_plain_text(self, tmp_path):
        path = tmp_path / "kw.txt"
        path.write_text("# tracked\nplumber orlando\n\n  drain cleaning  \n", encoding="utf-8")
        assert [k.keyword for k in load_keywords_file(path)] == [
            "plumber orlando", "drain cleaning",
        ]

    def test_csv_without_keyword_column(self, tmp_path):
        path = tmp_path / "kw.csv"
        path.write_text("term,volume\nplumber,10\n", encoding="utf-8")
        with pytest.raises(ValueError, match="keyword"):
            load_keywords_file(path)


# ===========================================================================
# Application
# ===========================================================================
class TestSerpIntelApp:

    def test_requires_initialize(self, config_file):
        app = SerpIntelApp(config_path=str(config_file))
        with pytest.raises(RuntimeError):
            app.get_status()

    def test_settings_loaded(self, serp_app):
        assert serp_app.settings.provider.default_location == "Orlando, Florida"
        assert serp_app.settings.output.wins_in_result == 1

    def test_missing_config_uses_defaults(self, tmp_path):
        app = SerpIntelApp(
            config_path=str(tmp_path / "nope.yaml"), env_path=str(tmp_path / ".env")
        )
        app.initialize(database_url="sqlite:///:memory:")
        assert app.config == {}
        assert app.settings.provider.default_location == "United States"

    def test_status(self, serp_app):
        status = serp_app.get_status()
        assert status["config"]["status"] == "ok"
        assert status["provider"]["status"] == "error"
        assert status["database"] == {"status": "ok", "details": "0 stored runs"}

    @pytest.mark.asyncio
    async def test_second_run_diffs_against_first(
        self, serp_app, mock_serp_client, instant_pacer, make_organic
    ):
        serp_app.build_pipeline = lambda: SerpAnalysisPipeline(
            settings=serp_app.settings,
            fetcher=RankingFetcher(client=mock_serp_client, pacer=instant_pacer),
        )
        keywords = [KeywordInput("plumber orlando", 1900), KeywordInput("drain cleaning", 500)]

        first, first_dict = await serp_app.run_domain_async("example.com", keywords)
        assert first.ok
        assert first_dict["run_id"] == 1
        assert first.summary.new_rankings == 2
        mock_serp_client.search.assert_any_await("plumber orlando", "Orlando, Florida")

        mock_serp_client.search.side_effect = [
            make_organic("https://example.com/orlando"),
            make_organic("https://x.com/"),
        ]
        second, second_dict = await serp_app.run_domain_async("example.com", keywords)
        assert second.summary.improved == 1
        assert second.summary.lost_rankings == 1
        assert len(second_dict["current_wins"]) == 1

        runs = serp_app.store.list_runs("example.com")
        assert [r["id"] for r in runs] == [2, 1]
        assert serp_app.store.get_run(2)["keywords_ranking"] == 1

    @pytest.mark.asyncio
    async def test_no_save(self, serp_app):
        result, data = await serp_app.run_domain_async("example.com", [], save=False)
        assert result.ok is False
        assert result.error == NOT_CONFIGURED_ERROR
        assert "run_id" not in data
        assert serp_app.store.list_runs("example.com") == []


def test_run_scheduled_analysis_without_key(config_file, tmp_path):
    kw_file = tmp_path / "kw.txt"
    kw_file.write_text("plumber orlando\n", encoding="utf-8")
    data = run_scheduled_analysis("example.com", str(kw_file), config_path=str(config_file))
    assert data["ok"] is False
    assert data["error"] == NOT_CONFIGURED_ERROR
    assert data["keywords_tracked"] == 1
    assert data["run_id"] == 1
