"""
HTTP Fetcher
Retrying page downloader over a pooled ``requests`` session.
"""

import logging
import time
from typing import Callable, Optional

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter

from .run_config import CrawlerRunConfig
from .utils import RetryHandler, log_debug

logger = logging.getLogger(__name__)

# Parser used for every downloaded page
_BS_PARSER = 'lxml'


class Fetcher:
    """
    Downloads pages with bounded retries and exponential backoff.

    Only connection failures, timeouts and HTTP 503 are retried.  Every
    other non-200 status ends the fetch immediately.  ``fetch`` never
    raises for network trouble; it returns None and logs the reason.
    """

    def __init__(
        self,
        config: CrawlerRunConfig = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Run configuration (timeouts, retry policy, identity)
            session: Pre-built session, mainly for tests
            sleep: Sleep function used between retries
        """
        self.config = config or CrawlerRunConfig()
        self.debug = self.config.debug
        self.retry_handler = RetryHandler(
            max_retries=self.config.max_retries,
            base_delay=self.config.initial_backoff,
            exponential_base=self.config.backoff_factor,
            max_jitter=self.config.max_jitter,
        )
        self._sleep = sleep
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create configured requests session with browser-like headers."""
        session = requests.Session()
        # Retries are handled in fetch(), not by urllib3
        adapter = HTTPAdapter(
            pool_connections=self.config.pool_maxsize,
            pool_maxsize=self.config.pool_maxsize,
            max_retries=0,
        )
        session.mount('https://', adapter)
        session.mount('http://', adapter)
        session.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Referer': self.config.referer,
        })
        return session

    def fetch(self, url: str) -> Optional[bytes]:
        """
        Fetch a URL.

        Returns:
            The response body on HTTP 200, otherwise None
        """
        max_attempts = self.retry_handler.max_retries + 1

        for attempt in range(max_attempts):
            if attempt > 0:
                delay = self.retry_handler.calculate_delay(attempt - 1)
                log_debug(
                    self.debug,
                    f"[FETCH] Retry {attempt} for {url} after {delay:.2f}s"
                )
                self._sleep(delay)

            try:
                response = self.session.get(
                    url,
                    timeout=self.config.timeout,
                    allow_redirects=True
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                log_debug(self.debug, f"[FETCH] Attempt {attempt + 1} failed for {url}: {e}")
                continue
            except requests.RequestException as e:
                logger.warning(f"[FETCH] Request error for {url}: {e}")
                return None

            if response.status_code == 200:
                return response.content

            if not self.retry_handler.should_retry(response.status_code, attempt):
                if response.status_code in self.retry_handler.RETRYABLE_STATUS_CODES:
                    break
                log_debug(
                    self.debug,
                    f"[FETCH] {url} returned HTTP {response.status_code}"
                )
                return None

        logger.warning(f"[FETCH] Exhausted {max_attempts} attempts for {url}")
        return None

    def fetch_document(self, url: str) -> Optional[BeautifulSoup]:
        """Fetch a URL and parse it; None when the fetch failed."""
        body = self.fetch(url)
        if body is None:
            return None
        return BeautifulSoup(body, _BS_PARSER)

    def close(self) -> None:
        """Release pooled connections."""
        if self.session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
