#!/usr/bin/env python3
"""
Command-line entry point for the exam crawler
=============================================
Lists providers and exams, or crawls one exam into a JSON file.

All configuration flows through ``CrawlerRunConfig``; flags and the
optional ``.env`` file only populate it.

Run with: python -m examcrawler
"""

import argparse
import logging
import os
import re
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from .crawler import CrawlResult, DiscoveryError, ExamCrawler
from .exporter import JsonRenderer
from .run_config import CrawlerRunConfig

# Load .env from the project root, falling back to the working directory
_env_path = Path(__file__).resolve().parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------

_PROVIDER_NAME_OVERRIDES = {
    "aws": "AWS",
    "ec-council": "EC-Council",
    "eccouncil": "EC-Council",
    "isc2": "ISC2",
    "isaca": "ISACA",
    "paloalto-networks": "Palo Alto Networks",
    "palo-alto-networks": "Palo Alto Networks",
    "servicenow": "ServiceNow",
    "vmware": "VMware",
    "lpi": "LPI",
}


def format_provider_name(provider: str) -> str:
    """Display name for a provider id (``palo-alto-networks`` -> ``Palo Alto Networks``)."""
    provider = (provider or "").strip().lower()
    if not provider:
        return "Unknown"
    if provider in _PROVIDER_NAME_OVERRIDES:
        return _PROVIDER_NAME_OVERRIDES[provider]
    return " ".join(part[:1].upper() + part[1:] for part in provider.replace("-", " ").split())


def sanitize_filename_segment(value: str) -> str:
    segment = (value or "").strip().lower().replace(" ", "-")
    segment = re.sub(r'[^a-z0-9._-]+', '-', segment)
    return segment.strip("-._")


def default_output_path(provider: str, exam: str) -> str:
    """``<provider>_<exam>.json`` in the working directory."""
    base_provider = sanitize_filename_segment(provider) or "examtopics"
    base_exam = sanitize_filename_segment(exam) or "output"
    return f"{base_provider}_{base_exam}.json"


def print_listing(title: str, items: list, text_filter: str = "") -> None:
    """Print a numbered listing, optionally filtered by substring."""
    text_filter = (text_filter or "").strip().lower()
    shown = [item for item in items if text_filter in item.lower()] if text_filter else items
    print(f"\n{title} ({len(shown)} shown of {len(items)})")
    for i, item in enumerate(shown, 1):
        print(f"  {i:3d}) {item}")


def print_summary(result: CrawlResult, elapsed: float) -> None:
    """Print crawl summary."""
    stats = result.stats
    print("\n" + "=" * 65)
    print("CRAWL COMPLETE")
    print("=" * 65)
    print(f"  Exam:                {result.label}")
    print(f"  Listing pages:       {stats.get('pages', 0)}")
    if stats.get('failed_pages', 0) > 0:
        print(f"  Failed pages:        {stats.get('failed_pages', 0)}")
    print(f"  Matching threads:    {stats.get('links', 0)}")
    print(f"  Questions extracted: {stats.get('records', 0)}")
    if stats.get('failed_records', 0) > 0:
        print(f"  Failed questions:    {stats.get('failed_records', 0)}")
    if result.variant_summary:
        print(f"  {result.variant_summary}")
    print(f"  Total time:          {stats.get('elapsed_time', elapsed):.1f}s")
    print("=" * 65)


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='examcrawler',
        description='Exam discussion crawler - collects questions, answers and comments per exam',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m examcrawler --list-providers
  python -m examcrawler --provider oracle --list-exams
  python -m examcrawler --provider oracle --exam 1z0-1042
  python -m examcrawler --provider lpi --exam 010-160 --output-json lpi.json
        """
    )

    parser.add_argument('--list-providers', action='store_true', help='List every provider and exit')
    parser.add_argument('--provider', type=str, help='Provider id (e.g. oracle, cisco)')
    parser.add_argument('--list-exams', action='store_true', help='List exams offered by --provider and exit')
    parser.add_argument('--exam', type=str, default='',
                        help='Exam code to crawl (omit to crawl every discussion of the provider)')
    parser.add_argument('--filter', type=str, default='', help='Substring filter for listings')
    parser.add_argument('--output-json', type=str, help='JSON output file path (default: <provider>_<exam>.json)')
    parser.add_argument('--no-comments', action='store_true', help='Leave community comments out of the export')
    parser.add_argument('--refresh-cache', action='store_true',
                        help='Ignore cached exam discovery for --provider and rebuild it')
    parser.add_argument('--cache-path', type=str, default=os.environ.get('EXAMCRAWLER_CACHE_PATH') or None,
                        help='Discovery cache file (default: per-user cache dir)')
    parser.add_argument('--workers', type=int, default=15, help='Maximum concurrent requests (default: 15)')
    parser.add_argument('--rate', type=float, default=2.0, help='Requests per second (default: 2.0)')
    parser.add_argument('--timeout', type=int, default=20, help='Read timeout per request in seconds (default: 20)')
    parser.add_argument('--debug', action='store_true', default=_env_flag('EXAMCRAWLER_DEBUG'),
                        help='Enable debug logs')
    return parser


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build CrawlerRunConfig, run."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    if not args.list_providers and not args.provider:
        parser.error("either --list-providers or --provider is required")
    if args.provider is not None and not args.provider.strip():
        parser.error("--provider must not be blank")

    cfg = CrawlerRunConfig.from_cli_args(args)

    with ExamCrawler(cfg) as crawler:
        try:
            if args.list_providers:
                providers = crawler.discover_providers()
                print_listing(
                    "Available Providers",
                    [f"{format_provider_name(p)} [{p}]" for p in providers],
                    args.filter,
                )
                return 0

            provider = args.provider.strip().lower()
            if args.list_exams:
                exams = crawler.discover_exam_slugs(provider, refresh=args.refresh_cache)
                print_listing(f"Available Exams for {format_provider_name(provider)}", exams, args.filter)
                return 0

            if args.refresh_cache:
                crawler.cache.invalidate(provider)
        except DiscoveryError as e:
            logger.error(f"Discovery failed: {e}")
            return 1

        cfg.log_summary(f"{provider}/{args.exam}" if args.exam else provider)

        def progress_cb(completed, total, current_url):
            logger.info(f"[{completed}/{total}] {current_url[:70]}")

        crawler.set_progress_callback(progress_cb)
        start = time.time()
        result = crawler.crawl_exam(provider, args.exam)
        elapsed = time.time() - start

    if not result.records:
        logger.error("No matching questions were extracted")
        print_summary(result, elapsed)
        return 1

    output_path = args.output_json or default_output_path(provider, result.exam)
    renderer = JsonRenderer(stats=result.stats, include_comments=not args.no_comments)
    exported = renderer.render(result.records, result.label, output_path)

    print("\n" + "-" * 40)
    print(f"  Exported: {exported}")
    print("-" * 40)
    print_summary(result, elapsed)
    return 0


if __name__ == '__main__':
    sys.exit(run_cli_with_args())
