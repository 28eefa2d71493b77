"""
Exam Crawler Package
Concurrent, rate-limited crawler for exam discussion threads.

CLI Usage:
    python -m examcrawler [options]

    Options:
        --list-providers  List every provider
        --provider        Provider id
        --list-exams      List exams of --provider
        --exam            Exam code to crawl
        --output-json     Export to JSON file
        --refresh-cache   Rebuild cached exam discovery
        --debug           Enable debug logs
"""

from .crawler import ExamCrawler, CrawlResult, DiscoveryError
from .exam_cache import DiscoveryCache, default_cache_path
from .exporter import JsonRenderer, Renderer
from .fetcher import Fetcher
from .models import Comment, QuestionRecord
from .run_config import CrawlerRunConfig
from .scraper import QuestionScraper
from .slugs import ALL_DISCUSSIONS, SlugNormalizer, SlugRule, normalize_exam_slug
from .utils import RateLimiter, RetryHandler, ProgressTracker

__all__ = [
    'ExamCrawler',
    'CrawlResult',
    'DiscoveryError',
    'DiscoveryCache',
    'default_cache_path',
    'Fetcher',
    'QuestionScraper',
    'QuestionRecord',
    'Comment',
    'CrawlerRunConfig',
    # Slug normalization
    'ALL_DISCUSSIONS',
    'SlugNormalizer',
    'SlugRule',
    'normalize_exam_slug',
    # Export
    'Renderer',
    'JsonRenderer',
    # Utilities
    'RateLimiter',
    'RetryHandler',
    'ProgressTracker',
]

__version__ = '2.0.0'
