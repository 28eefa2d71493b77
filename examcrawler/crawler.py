"""
Exam Crawler
Discovers providers and exams, then crawls every discussion thread of a
selected exam into an ordered, deduplicated list of question records.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from .exam_cache import DiscoveryCache
from .fetcher import Fetcher
from .models import QuestionRecord
from .run_config import CrawlerRunConfig
from .scraper import (
    QuestionScraper, discussion_category_count, discussion_links,
    page_count, provider_exam_slugs, providers_from_discussions,
    providers_from_exam_index,
)
from .slugs import ALL_DISCUSSIONS, SlugNormalizer, exam_slug_from_exam_link, extract_exam_slug
from .utils import ProgressTracker, RateLimiter, dedupe_links, log_debug, sort_links

logger = logging.getLogger(__name__)

_BS_PARSER = 'lxml'


class DiscoveryError(Exception):
    """Provider or exam discovery produced nothing usable."""


@dataclass
class CrawlResult:
    """
    Result of crawling one exam.
    """
    provider: str
    exam: str = ""
    records: List[QuestionRecord] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    variant_summary: str = ""
    stats: Dict = field(default_factory=dict)

    @property
    def label(self) -> str:
        """``provider/exam`` display label; the exam part is omitted for whole-provider crawls."""
        return f"{self.provider}/{self.exam}" if self.exam else self.provider


class ExamCrawler:
    """
    Concurrent, rate-limited crawler for exam discussion threads.

    All outbound requests share one token bucket and one concurrency cap,
    whichever phase issues them.
    """

    def __init__(
        self,
        config: CrawlerRunConfig = None,
        fetcher: Optional[Fetcher] = None,
        cache: Optional[DiscoveryCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the crawler.

        Args:
            config: Run configuration
            fetcher: Page fetcher (built from ``config`` when omitted)
            cache: Discovery cache (built from ``config`` when omitted)
            sleep: Sleep function for the pause between discovery attempts
        """
        self.config = config or CrawlerRunConfig()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(self.config)
        self.cache = cache or DiscoveryCache(
            self.config.cache_path,
            ttl_seconds=self.config.cache_ttl_seconds,
        )
        self._sleep = sleep

        self.rate_limiter = RateLimiter(
            requests_per_second=self.config.requests_per_second,
            burst_size=1,
        )
        self._semaphore = threading.BoundedSemaphore(self.config.max_concurrency)

        self.normalizer = SlugNormalizer()
        self.scraper = QuestionScraper()

        # Set when the discussion index never reached the adequacy threshold
        self.provider_discovery_partial = False

        self._progress_callback: Optional[Callable] = None

    def set_progress_callback(self, callback: Callable) -> None:
        """
        Set callback for progress updates.

        Args:
            callback: Function(completed, total, current_url)
        """
        self._progress_callback = callback

    # -----------------------------------------------------------------------
    # Fetch helpers
    # -----------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return self.config.base_url.rstrip('/') + path

    def _listing_url(self, provider: str, page: Optional[int] = None) -> str:
        if page is None:
            return self._url(f"/discussions/{provider}/")
        return self._url(f"/discussions/{provider}/{page}")

    def _get(self, url: str) -> Optional[bytes]:
        """Fetch under the shared concurrency cap and rate limit."""
        with self._semaphore:
            self.rate_limiter.wait()
            return self.fetcher.fetch(url)

    def _get_document(self, url: str) -> Optional[BeautifulSoup]:
        body = self._get(url)
        if body is None:
            log_debug(self.config.debug, f"[CRAWL] No document for {url}")
            return None
        return BeautifulSoup(body, _BS_PARSER)

    def _run_parallel(
        self,
        phase: str,
        items: Sequence,
        worker: Callable,
        tracker: ProgressTracker,
    ) -> List:
        """
        Run ``worker`` over ``items`` on a bounded pool.

        Results come back in input order regardless of completion order; a
        unit that fails or raises contributes None.
        """
        results: List = [None] * len(items)
        if not items:
            return results

        workers = max(1, min(self.config.max_concurrency, len(items)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_index = {
                executor.submit(worker, item): index
                for index, item in enumerate(items)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"[CRAWL] {phase} failed for {items[index]}: {e}")
                if results[index] is None:
                    tracker.increment_failed()
                tracker.increment_completed(str(items[index]))

        return results

    def _page_count(self, provider: str) -> int:
        doc = self._get_document(self._listing_url(provider))
        return page_count(doc) if doc is not None else 1

    # -----------------------------------------------------------------------
    # Provider discovery
    # -----------------------------------------------------------------------

    def discover_providers(self) -> List[str]:
        """
        Every provider id known to the site, sorted.

        Union of the exam index and the discussion index.

        Raises:
            DiscoveryError: when neither index yields a provider
        """
        doc = self._get_document(self._url("/exams/"))
        from_exams = providers_from_exam_index(doc) if doc is not None else []
        from_discussions = self._providers_from_discussions()

        providers = sorted(set(from_exams) | set(from_discussions))
        logger.info(
            f"[DISCOVERY] {len(providers)} providers "
            f"({len(from_exams)} from exams, {len(from_discussions)} from discussions)"
        )
        if not providers:
            raise DiscoveryError("No providers could be discovered")
        return providers

    def _providers_from_discussions(self) -> List[str]:
        """
        Providers from the discussion index, retried until the result looks
        complete.

        The index also lists empty categories, so a result covering
        ``category_coverage`` of the declared categories counts as complete;
        without a declared count, ``min_provider_floor`` providers do.
        """
        attempts = self.config.discovery_attempts
        best: List[str] = []
        expected = 0
        self.provider_discovery_partial = False

        for attempt in range(1, attempts + 1):
            doc = self._get_document(self._url("/discussions/"))
            if doc is None:
                log_debug(
                    self.config.debug,
                    f"[DISCOVERY] Discussion index unavailable (attempt {attempt}/{attempts})"
                )
            else:
                expected = max(expected, discussion_category_count(doc))
                current = providers_from_discussions(doc)
                if len(current) > len(best):
                    best = current

                if expected > 0:
                    target = int(expected * self.config.category_coverage)
                else:
                    target = self.config.min_provider_floor
                if len(best) >= target:
                    return best

            if attempt < attempts:
                self._sleep(self.config.discovery_retry_pause)

        self.provider_discovery_partial = True
        logger.warning(
            f"[DISCOVERY] Discussion index looked incomplete after {attempts} attempts; "
            f"using best result ({len(best)} providers"
            + (f" of {expected} categories)" if expected else ")")
        )
        return best

    # -----------------------------------------------------------------------
    # Exam discovery
    # -----------------------------------------------------------------------

    def provider_exam_links(self, provider: str) -> List[str]:
        """Official exam paths (``/exams/<provider>/<slug>/``) listed for a provider."""
        provider = (provider or "").strip().lower()
        doc = self._get_document(self._url(f"/exams/{provider}/"))
        if doc is None:
            return []
        return [f"/exams/{provider}/{slug}/" for slug in provider_exam_slugs(doc, provider)]

    def discover_exam_slugs(self, provider: str, refresh: bool = False) -> List[str]:
        """
        Canonical exam codes offered by ``provider``, sorted.

        Combines the official exam list with codes inferred from the
        provider's discussion threads, so exams missing from the official
        list are still offered.  Returns ``[ALL_DISCUSSIONS]`` when both
        sources come up empty.

        Args:
            provider: Provider id
            refresh: Ignore and replace any cached discovery for the provider

        Raises:
            DiscoveryError: when ``provider`` is blank
        """
        provider = (provider or "").strip().lower()
        if not provider:
            raise DiscoveryError("Provider name is required")
        if refresh:
            self.cache.invalidate(provider)

        official = [
            exam_slug_from_exam_link(provider, link)
            for link in self.provider_exam_links(provider)
        ]
        inferred = self._infer_exam_slugs(provider)

        slugs = {self.normalizer.normalize(provider, raw) for raw in official + inferred}
        slugs.discard("")
        logger.info(
            f"[DISCOVERY] {provider}: {len(slugs)} exams "
            f"({len(official)} official, {len(inferred)} inferred)"
        )
        return sorted(slugs) or [ALL_DISCUSSIONS]

    def _infer_exam_slugs(self, provider: str) -> List[str]:
        """Raw exam slugs seen in the provider's discussion listing (cached)."""
        cached = self.cache.get(provider)
        if cached:
            logger.info(f"[CACHE] Using {len(cached)} cached exam slugs for '{provider}'")
            return cached

        pages = self._page_count(provider)
        tracker = ProgressTracker(self._progress_callback)
        tracker.add_total(pages)

        def scan(page: int) -> Optional[List[str]]:
            doc = self._get_document(self._listing_url(provider, page))
            return discussion_links(doc) if doc is not None else None

        results = self._run_parallel("listing scan", list(range(1, pages + 1)), scan, tracker)

        slugs = set()
        for links in results:
            for link in links or []:
                slug = extract_exam_slug(link)
                if slug:
                    slugs.add(slug)

        if tracker.failed:
            logger.warning(
                f"[CACHE] {tracker.failed}/{pages} listing pages failed for '{provider}'; "
                f"not caching partial discovery"
            )
        else:
            self.cache.put(provider, slugs)
        return sorted(slugs)

    # -----------------------------------------------------------------------
    # Exam crawl
    # -----------------------------------------------------------------------

    def crawl_exam(self, provider: str, selection: str = "") -> CrawlResult:
        """
        Crawl every discussion thread of ``provider`` matching ``selection``.

        Args:
            provider: Provider id
            selection: Exam code; empty or ``ALL_DISCUSSIONS`` means every thread

        Returns:
            CrawlResult with records ordered by (topic, question)
        """
        provider = (provider or "").strip().lower()
        if not provider:
            raise ValueError("provider must not be empty")
        selection = (selection or "").strip().lower()
        if selection == ALL_DISCUSSIONS:
            selection = ""

        tracker = ProgressTracker(self._progress_callback)
        tracker.start()
        result = CrawlResult(provider=provider, exam=selection)

        logger.info(f"[CRAWL] Starting crawl of {result.label}")

        # Phase 1: listing pages -> matching links
        pages = self._page_count(provider)
        tracker.add_total(pages)

        def scan(page: int) -> Optional[List[str]]:
            doc = self._get_document(self._listing_url(provider, page))
            if doc is None:
                return None
            return [
                link for link in discussion_links(doc)
                if self.normalizer.matches(provider, selection, link)
            ]

        page_results = self._run_parallel("listing page", list(range(1, pages + 1)), scan, tracker)
        failed_pages = sum(1 for links in page_results if links is None)

        merged = [link for links in page_results for link in (links or [])]
        result.links = sort_links(dedupe_links(merged))
        logger.info(
            f"[CRAWL] {len(result.links)} matching threads on {pages} pages"
            + (f" ({failed_pages} pages failed)" if failed_pages else "")
        )

        result.variant_summary = self.normalizer.variant_summary(provider, selection, result.links)
        if result.variant_summary:
            logger.info(f"[CRAWL] {result.variant_summary}")

        # Phase 2: one record per link
        tracker.add_total(len(result.links))
        urls = [self._url(link) for link in result.links]
        record_results = self._run_parallel("question page", urls, self._scrape_question, tracker)
        result.records = [record for record in record_results if record is not None]

        tracker.finish()
        result.stats = {
            'pages': pages,
            'links': len(result.links),
            'records': len(result.records),
            'failed_pages': failed_pages,
            'failed_records': len(result.links) - len(result.records),
            'elapsed_time': round(tracker.elapsed_time, 2),
        }
        logger.info(
            f"[CRAWL] Finished {result.label}: {len(result.records)} records "
            f"in {result.stats['elapsed_time']}s"
        )
        return result

    def _scrape_question(self, url: str) -> Optional[QuestionRecord]:
        doc = self._get_document(url)
        if doc is None:
            return None
        record = self.scraper.scrape(doc, url)
        if record.is_empty:
            log_debug(self.config.debug, f"[CRAWL] No question content at {url}")
            return None
        return record

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_fetcher:
            self.fetcher.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
