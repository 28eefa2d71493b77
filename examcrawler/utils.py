"""
Utility Functions
Rate limiting, retry backoff, progress tracking, link ordering and text
cleaning helpers shared by the fetcher, the extractor and the crawler.
"""

import logging
import time
import re
import random
from typing import Callable, Iterable, List, Optional, Tuple
from threading import Lock

logger = logging.getLogger(__name__)


def log_debug(enabled: bool, message: str) -> None:
    """Emit a diagnostic message only when the run config enables debug output."""
    if enabled:
        logger.debug(message)


class RateLimiter:
    """
    Token bucket rate limiter for controlling request frequency.
    Thread-safe implementation; one bucket shared by every caller.
    """

    def __init__(
        self,
        requests_per_second: float = 2.0,
        burst_size: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the rate limiter.

        Args:
            requests_per_second: Maximum requests per second
            burst_size: Maximum burst of requests allowed
            clock: Monotonic time source (injectable for tests)
            sleep: Sleep function used by ``wait`` (injectable for tests)
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self._clock = clock
        self._sleep = sleep

        self._tokens: float = float(burst_size)
        self._last_update: float = clock()
        self._lock = Lock()

    def _update_tokens(self) -> None:
        """Update token count based on elapsed time."""
        now = self._clock()
        elapsed = now - self._last_update
        self._tokens = min(
            self.burst_size,
            self._tokens + elapsed * self.requests_per_second
        )
        self._last_update = now

    def acquire(self) -> float:
        """
        Try to take a token. Returns wait time.

        Returns:
            0 when a token was taken, otherwise the time until one is available
        """
        with self._lock:
            self._update_tokens()

            if self._tokens >= 1:
                self._tokens -= 1
                return 0

            return (1 - self._tokens) / self.requests_per_second

    def wait(self) -> None:
        """Block until a token has been taken."""
        wait_time = self.acquire()
        while wait_time > 0:
            logger.debug(f"Rate limiting: waiting {wait_time:.2f}s")
            self._sleep(wait_time)
            wait_time = self.acquire()


class RetryHandler:
    """
    Retry policy with exponential backoff plus additive jitter.
    """

    # Only the "service unavailable" status is worth another attempt;
    # every other non-200 status is final.
    RETRYABLE_STATUS_CODES = {503}

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        exponential_base: float = 2.0,
        max_jitter: float = 0.5,
    ):
        """
        Initialize the retry handler.

        Args:
            max_retries: Maximum number of retry attempts after the first try
            base_delay: Delay before the first retry in seconds
            exponential_base: Multiplier applied per attempt
            max_jitter: Upper bound of the uniform random delay added per retry
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.exponential_base = exponential_base
        self.max_jitter = max_jitter

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for given retry attempt.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base ** attempt)
        if self.max_jitter > 0:
            delay += random.uniform(0, self.max_jitter)
        return delay

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """True if a response with ``status_code`` on ``attempt`` deserves another try."""
        if attempt >= self.max_retries:
            return False
        return status_code in self.RETRYABLE_STATUS_CODES


class ProgressTracker:
    """
    Tracks crawl progress for reporting.

    Counts completed units of work (listing pages and question pages);
    the count only ever goes up.
    """

    def __init__(self, callback: Optional[Callable[[int, int, str], None]] = None):
        self.completed = 0
        self.failed = 0
        self.total = 0
        self.start_time = None
        self.end_time = None
        self._callback = callback
        self._lock = Lock()

    def start(self) -> None:
        """Mark crawl start."""
        self.start_time = time.time()

    def finish(self) -> None:
        """Mark crawl end."""
        self.end_time = time.time()

    def add_total(self, units: int) -> None:
        with self._lock:
            self.total += units

    def increment_completed(self, url: str = "") -> int:
        """Record one finished unit and notify the progress callback."""
        with self._lock:
            self.completed += 1
            completed, total = self.completed, self.total
        if self._callback:
            try:
                self._callback(completed, total, url)
            except Exception as e:
                logger.warning(f"Progress callback error: {e}")
        return completed

    def increment_failed(self) -> int:
        with self._lock:
            self.failed += 1
            return self.failed

    @property
    def elapsed_time(self) -> float:
        """Elapsed time in seconds."""
        if self.start_time is None:
            return 0
        end = self.end_time or time.time()
        return end - self.start_time

    def get_stats(self) -> dict:
        """Get current statistics."""
        return {
            'units_completed': self.completed,
            'units_failed': self.failed,
            'units_total': self.total,
            'elapsed_time': round(self.elapsed_time, 2),
        }


# ---------------------------------------------------------------------------
# Link ordering
# ---------------------------------------------------------------------------

_TOPIC_RE = re.compile(r'topic-(\d+)')
_QUESTION_RE = re.compile(r'question-(\d+)')


def dedupe_links(links: Iterable[str]) -> List[str]:
    """Drop exact repeats, keeping the first occurrence of each link."""
    seen = set()
    unique = []
    for link in links:
        if link in seen:
            continue
        seen.add(link)
        unique.append(link)
    return unique


def topic_and_question(link: str) -> Tuple[int, int]:
    """``(topic, question)`` parsed from a discussion link; missing numbers are 0."""
    topic = _TOPIC_RE.search(link)
    question = _QUESTION_RE.search(link)
    return (
        int(topic.group(1)) if topic else 0,
        int(question.group(1)) if question else 0,
    )


def sort_links(links: Iterable[str]) -> List[str]:
    """Order links by (topic, question); ties keep their incoming order."""
    return sorted(links, key=topic_and_question)


# ---------------------------------------------------------------------------
# Text cleaning
# ---------------------------------------------------------------------------

_SUGGESTED_ANSWER_RE = re.compile(r'suggested answer', re.IGNORECASE)


def clean_text(text: str) -> str:
    """Collapse whitespace and strip site chrome from extracted question text."""
    if not text:
        return ""

    text = text.strip()
    # ballot-box emoji, with and without the variation selector
    text = text.replace("\U0001F5F3\uFE0F", "").replace("\U0001F5F3", "")

    # Replace multiple whitespace with single space
    text = re.sub(r'\s+', ' ', text).strip()

    text = text.replace("Suggested Answer", "\nSuggested Answer", 1)
    text = text.replace("Forgot my password", "")

    return text


def strip_suggested_answer(text: str) -> str:
    """Cut everything from the first "Suggested Answer" marker onwards."""
    match = _SUGGESTED_ANSWER_RE.search(text or "")
    if match:
        text = text[:match.start()]
    return (text or "").strip()


def normalize_multiline(text: str) -> str:
    """Unify line endings, trim every line and drop blank ones."""
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n").strip()
    if not text:
        return ""
    return "\n".join(line.strip() for line in text.split("\n") if line.strip())
