"""
Tests for crawler.py against a fake site served from canned HTML.

The fake fetcher maps absolute URLs to markup; anything not mapped
behaves like a failed fetch.
"""

import json
import threading
import time

import pytest

from examcrawler.crawler import CrawlResult, DiscoveryError, ExamCrawler
from examcrawler.exam_cache import DiscoveryCache
from examcrawler.run_config import CrawlerRunConfig
from examcrawler.slugs import ALL_DISCUSSIONS

BASE = "https://www.examtopics.com"


class FakeFetcher:
    """Serves canned pages and records what was requested."""

    def __init__(self, pages=None, delays=None):
        self.pages = dict(pages or {})
        self.delays = delays or {}
        self.requested = []
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def fetch(self, url):
        with self._lock:
            self.requested.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if url in self.delays:
                time.sleep(self.delays[url])
            page = self.pages.get(url)
            if isinstance(page, Exception):
                raise page
            return page.encode("utf-8") if page is not None else None
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self):
        pass


def _listing(links, pages=None):
    indicator = ""
    if pages is not None:
        indicator = (
            '<div class="discussion-list-page-indicator">'
            f'Page <strong>1</strong> of <strong>{pages}</strong></div>'
        )
    anchors = "".join(f'<a href="{link}">t</a>' for link in links)
    return f"<html><body>{indicator}{anchors}</body></html>"


def _question(title, answer="A"):
    return f"""
    <html><body>
      <h1>{title}</h1>
      <div class="card-text">Body of {title}</div>
      <li class="multi-choice-item">A. yes</li>
      <li class="multi-choice-item">B. no</li>
      <span class="correct-answer">{answer}</span>
    </body></html>"""


def _link(n, exam, topic, question):
    return f"/discussions/oracle/view/{n}-exam-{exam}-topic-{topic}-question-{question}-discussion/"


@pytest.fixture
def config(tmp_path):
    return CrawlerRunConfig(
        requests_per_second=10_000,
        max_concurrency=4,
        cache_path=str(tmp_path / "cache.json"),
    )


def _crawler(config, pages, **kwargs):
    fetcher = FakeFetcher(pages, **kwargs)
    sleeps = []
    crawler = ExamCrawler(config, fetcher=fetcher, sleep=sleeps.append)
    return crawler, fetcher, sleeps


# ====================================================================
# 1. Exam crawl
# ====================================================================

class TestCrawlExam:

    def _site(self):
        page1 = [
            _link(30, "1z0-1042-23", 1, 10),
            _link(10, "1z0-1042-20", 1, 2),
            _link(40, "1z0-1106-1", 1, 1),
        ]
        page2 = [
            _link(20, "1z0-1042-20", 2, 1),
            _link(10, "1z0-1042-20", 1, 2),  # repeated across pages
        ]
        pages = {
            f"{BASE}/discussions/oracle/": _listing(page1, pages=2),
            f"{BASE}/discussions/oracle/1": _listing(page1, pages=2),
            f"{BASE}/discussions/oracle/2": _listing(page2, pages=2),
        }
        for link in page1 + page2:
            pages[BASE + link] = _question(link)
        return pages

    def test_records_ordered_and_deduplicated(self, config):
        crawler, fetcher, _ = _crawler(config, self._site())
        result = crawler.crawl_exam("oracle", "1z0-1042")

        assert isinstance(result, CrawlResult)
        assert result.links == [
            _link(10, "1z0-1042-20", 1, 2),
            _link(30, "1z0-1042-23", 1, 10),
            _link(20, "1z0-1042-20", 2, 1),
        ]
        assert [r.link for r in result.records] == [BASE + l for l in result.links]
        assert result.stats["records"] == 3
        assert result.stats["pages"] == 2
        assert result.label == "oracle/1z0-1042"

    def test_variant_summary(self, config):
        crawler, _, _ = _crawler(config, self._site())
        result = crawler.crawl_exam("oracle", "1z0-1042")
        assert result.variant_summary == (
            "Including grouped variants for 1z0-1042: 1z0-1042-20 (2), 1z0-1042-23 (1)"
        )

    def test_order_independent_of_completion(self, config):
        site = self._site()
        slow = {BASE + _link(10, "1z0-1042-20", 1, 2): 0.2, f"{BASE}/discussions/oracle/1": 0.1}
        crawler, _, _ = _crawler(config, site, delays=slow)
        result = crawler.crawl_exam("oracle", "1z0-1042")
        assert [r.link for r in result.records] == [BASE + l for l in result.links]
        assert result.records[0].link.endswith(_link(10, "1z0-1042-20", 1, 2))

    def test_sentinel_crawls_everything(self, config):
        crawler, _, _ = _crawler(config, self._site())
        result = crawler.crawl_exam("oracle", ALL_DISCUSSIONS)
        assert len(result.links) == 4
        assert result.exam == ""
        assert result.label == "oracle"

    def test_failed_units_are_dropped(self, config):
        site = self._site()
        del site[f"{BASE}/discussions/oracle/2"]
        site[BASE + _link(30, "1z0-1042-23", 1, 10)] = RuntimeError("parser exploded")
        crawler, _, _ = _crawler(config, site)

        result = crawler.crawl_exam("oracle", "1z0-1042")
        assert result.links == [
            _link(10, "1z0-1042-20", 1, 2),
            _link(30, "1z0-1042-23", 1, 10),
        ]
        assert [r.link for r in result.records] == [BASE + _link(10, "1z0-1042-20", 1, 2)]
        assert result.stats["failed_pages"] == 1
        assert result.stats["failed_records"] == 1

    def test_missing_pagination_means_one_page(self, config):
        pages = {
            f"{BASE}/discussions/oracle/": _listing([]),
            f"{BASE}/discussions/oracle/1": _listing([_link(1, "1z0-083", 1, 1)]),
            BASE + _link(1, "1z0-083", 1, 1): _question("q"),
        }
        crawler, fetcher, _ = _crawler(config, pages)
        result = crawler.crawl_exam("oracle", "1z0-083")
        assert len(result.records) == 1
        assert f"{BASE}/discussions/oracle/2" not in fetcher.requested

    def test_concurrency_cap(self, config):
        site = self._site()
        delays = {url: 0.05 for url in site}
        crawler, fetcher, _ = _crawler(config, site, delays=delays)
        crawler.crawl_exam("oracle", "")
        assert fetcher.max_in_flight <= config.max_concurrency

    def test_progress_callback(self, config):
        calls = []
        crawler, _, _ = _crawler(config, self._site())
        crawler.set_progress_callback(lambda done, total, url: calls.append(done))
        crawler.crawl_exam("oracle", "1z0-1042")
        assert calls == sorted(calls)
        assert calls[-1] == 2 + 3

    def test_blank_provider_rejected(self, config):
        crawler, _, _ = _crawler(config, {})
        with pytest.raises(ValueError):
            crawler.crawl_exam("  ", "x")


# ====================================================================
# 2. Provider discovery
# ====================================================================

def _discussion_index(providers, categories=None):
    indicator = ""
    if categories is not None:
        indicator = (
            '<span class="discussion-list-page-indicator">'
            f'<span>{categories} Categories</span></span>'
        )
    rows = "".join(
        f'<div class="discussion-row"><a href="/discussions/{p}/">{p}</a>'
        f'<div class="discussion-stats-replies">5 Discussions</div></div>'
        for p in providers
    )
    return f"<html><body>{indicator}{rows}</body></html>"


class TestDiscoverProviders:

    def test_union_of_both_indexes(self, config):
        pages = {
            f"{BASE}/exams/": '<a href="/exams/cisco/">c</a><a href="/exams/amazon/">a</a>',
            f"{BASE}/discussions/": _discussion_index(["cisco", "oracle"], categories=2),
        }
        crawler, _, sleeps = _crawler(config, pages)
        assert crawler.discover_providers() == ["amazon", "cisco", "oracle"]
        assert sleeps == []
        assert not crawler.provider_discovery_partial

    def test_retries_until_coverage_then_flags_partial(self, config):
        pages = {
            f"{BASE}/exams/": '<a href="/exams/cisco/">c</a>',
            f"{BASE}/discussions/": _discussion_index(["cisco", "oracle"], categories=10),
        }
        crawler, fetcher, sleeps = _crawler(config, pages)
        assert crawler.discover_providers() == ["cisco", "oracle"]
        assert fetcher.requested.count(f"{BASE}/discussions/") == 3
        assert sleeps == [0.6, 0.6]
        assert crawler.provider_discovery_partial

    def test_floor_without_declared_count(self, config):
        config.min_provider_floor = 2
        pages = {
            f"{BASE}/exams/": "",
            f"{BASE}/discussions/": _discussion_index(["cisco", "oracle"]),
        }
        crawler, fetcher, _ = _crawler(config, pages)
        assert crawler.discover_providers() == ["cisco", "oracle"]
        assert fetcher.requested.count(f"{BASE}/discussions/") == 1

    def test_nothing_discovered_raises(self, config):
        crawler, _, _ = _crawler(config, {})
        with pytest.raises(DiscoveryError):
            crawler.discover_providers()


# ====================================================================
# 3. Exam discovery
# ====================================================================

class TestDiscoverExamSlugs:

    def _site(self):
        return {
            f"{BASE}/exams/oracle/": (
                '<a href="/exams/oracle/1z0-083/">x</a>'
                '<a href="/exams/oracle/1z0-1042-23/">y</a>'
            ),
            f"{BASE}/discussions/oracle/": _listing([], pages=1),
            f"{BASE}/discussions/oracle/1": _listing([
                _link(1, "1z0-1042-20", 1, 1),
                _link(2, "1z0-1106-1", 1, 1),
                "/discussions/oracle/view/3-general-discussion/",
            ], pages=1),
        }

    def test_union_of_official_and_inferred(self, config):
        crawler, _, _ = _crawler(config, self._site())
        assert crawler.discover_exam_slugs("Oracle") == ["1z0-083", "1z0-1042", "1z0-1106"]

    def test_inferred_slugs_are_cached(self, config):
        crawler, fetcher, _ = _crawler(config, self._site())
        crawler.discover_exam_slugs("oracle")
        assert DiscoveryCache(config.cache_path).get("oracle") == ["1z0-1042-20", "1z0-1106-1"]

        fetcher.requested.clear()
        crawler.discover_exam_slugs("oracle")
        assert f"{BASE}/discussions/oracle/1" not in fetcher.requested

        fetcher.requested.clear()
        crawler.discover_exam_slugs("oracle", refresh=True)
        assert f"{BASE}/discussions/oracle/1" in fetcher.requested

    def test_partial_listing_not_cached(self, config):
        site = self._site()
        site[f"{BASE}/discussions/oracle/"] = _listing([], pages=2)
        crawler, _, _ = _crawler(config, site)
        crawler.discover_exam_slugs("oracle")
        assert DiscoveryCache(config.cache_path).get("oracle") is None

    def test_sentinel_when_nothing_found(self, config):
        crawler, _, _ = _crawler(config, {})
        assert crawler.discover_exam_slugs("ghost") == [ALL_DISCUSSIONS]

    def test_blank_provider_raises(self, config):
        crawler, _, _ = _crawler(config, {})
        with pytest.raises(DiscoveryError):
            crawler.discover_exam_slugs("   ")

    def test_provider_exam_links(self, config):
        crawler, _, _ = _crawler(config, self._site())
        assert crawler.provider_exam_links("oracle") == [
            "/exams/oracle/1z0-083/",
            "/exams/oracle/1z0-1042-23/",
        ]

    def test_malformed_cache_entry_recrawled(self, config, tmp_path):
        (tmp_path / "cache.json").write_text(json.dumps({
            "providers": {
                "oracle": {"exam_slugs": [None, "x"], "updated_at_unix": int(time.time())},
            }
        }), encoding="utf-8")
        crawler, fetcher, _ = _crawler(config, self._site())
        assert crawler.discover_exam_slugs("oracle") == ["1z0-083", "1z0-1042", "1z0-1106"]
        assert f"{BASE}/discussions/oracle/1" in fetcher.requested
        assert DiscoveryCache(config.cache_path).get("oracle") == ["1z0-1042-20", "1z0-1106-1"]
