"""Ranking fetcher: resolves the target domain's position for each keyword."""

import logging
from typing import Any, Callable, Optional

from serp_intel.integrations.serp_api import (
    DEFAULT_LOCATION,
    SerpApiClient,
    SerpApiError,
    SerpApiNotConfiguredError,
)
from serp_intel.models.serp import CompetitorResult, KeywordRankingResult
from serp_intel.utils.helpers import extract_domain
from serp_intel.utils.rate_limiter import RequestPacer

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 1.5

ProgressCallback = Callable[[int, int, KeywordRankingResult], None]


def _rank_key(item: dict[str, Any]) -> float:
    position = item.get("position")
    return position if isinstance(position, int) else float("inf")


def match_target(
    organic_results: list[dict[str, Any]],
    target_domain: str,
) -> tuple[Optional[int], Optional[str], list[CompetitorResult]]:
    """Split organic results into the target's first hit and competitors.

    Results are walked in rank order (entries without a numeric position go
    last, in their original order). Hosts are compared with a leading
    ``www.`` removed on both sides. Only the best-ranked match counts as the
    target's position; later hits for the target are ignored and
    everything else becomes a competitor.
    """
    base_domain = extract_domain(target_domain) or target_domain.strip().lower()
    position: Optional[int] = None
    url: Optional[str] = None
    competitors: list[CompetitorResult] = []

    for item in sorted(organic_results, key=_rank_key):
        link = item.get("link") or ""
        item_domain = extract_domain(link)
        if not item_domain:
            continue
        if item_domain == base_domain:
            if position is None:
                position = item.get("position")
                url = link
            continue
        competitors.append(CompetitorResult(
            domain=item_domain,
            url=link,
            title=item.get("title") or "",
            position=item.get("position") or 0,
        ))
    return position, url, competitors


class RankingFetcher:
    """Fetch live rankings one keyword at a time under a request pacer.

    Calls are strictly sequential and spaced by ``min_interval`` seconds;
    a failure for one keyword degrades that keyword to "not ranking" and
    never aborts the batch.

    Usage::

        fetcher = RankingFetcher(SerpApiClient(api_key="..."))
        results = await fetcher.fetch_rankings(["seo tools"], "example.com")
    """

    def __init__(
        self,
        client: Optional[SerpApiClient] = None,
        pacer: Optional[RequestPacer] = None,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        max_retries: int = 0,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._client = client or SerpApiClient()
        self._pacer = pacer or RequestPacer(min_interval=min_interval, name="serpapi")
        self._max_retries = max_retries

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    @property
    def pacer(self) -> RequestPacer:
        return self._pacer

    async def _search_with_retry(self, keyword: str, location: str) -> list[dict[str, Any]]:
        attempt = 0
        while True:
            try:
                async with self._pacer:
                    return await self._client.search(keyword, location)
            except SerpApiError as exc:
                if not exc.retryable or attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "SERP attempt %d failed for %r: %s (retrying)", attempt, keyword, exc
                )

    async def fetch_ranking(
        self,
        keyword: str,
        target_domain: str,
        location: str = DEFAULT_LOCATION,
    ) -> KeywordRankingResult:
        """Resolve one keyword. Provider failures are recorded, not raised."""
        try:
            organic = await self._search_with_retry(keyword, location)
        except SerpApiNotConfiguredError:
            raise
        except SerpApiError as exc:
            logger.warning("SERP fetch failed for %r: %s", keyword, exc)
            return KeywordRankingResult(keyword=keyword, error=str(exc))
        except Exception as exc:
            logger.error("Unexpected SERP failure for %r: %s", keyword, exc)
            return KeywordRankingResult(keyword=keyword, error=str(exc))

        position, url, competitors = match_target(organic, target_domain)
        logger.debug("Keyword %r position=%s for %r", keyword, position, target_domain)
        return KeywordRankingResult(
            keyword=keyword,
            position=position,
            url=url,
            competitors=competitors,
        )

    async def fetch_rankings(
        self,
        keywords: list[str],
        target_domain: str,
        location: str = DEFAULT_LOCATION,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> list[KeywordRankingResult]:
        """Resolve every keyword in order, one provider call at a time.

        Returns one result per keyword, in input order.

        Raises:
            SerpApiNotConfiguredError: before any call when credentials are
                missing.
        """
        if not self._client.is_configured:
            raise SerpApiNotConfiguredError("SERPAPI_API_KEY not configured")

        results: list[KeywordRankingResult] = []
        total = len(keywords)
        logger.info("Fetching rankings for %d keywords on %r", total, target_domain)

        for idx, kw in enumerate(keywords, 1):
            logger.info("Fetching keyword %d/%d: %r", idx, total, kw)
            result = await self.fetch_ranking(kw, target_domain, location=location)
            results.append(result)
            if progress_callback is not None:
                progress_callback(idx, total, result)

        failures = sum(1 for r in results if r.failed)
        logger.info(
            "Ranking fetch complete: %d keywords, %d failed", total, failures
        )
        return results

    async def close(self) -> None:
        """Release the provider client."""
        await self._client.close()
