"""
Tests for fetcher.py using a mocked requests session.
"""

from unittest import mock

import pytest
import requests

from examcrawler.fetcher import Fetcher
from examcrawler.run_config import CrawlerRunConfig


def _response(status, body=b""):
    response = mock.Mock()
    response.status_code = status
    response.content = body
    return response


@pytest.fixture
def sleeps():
    return []


def _fetcher(side_effect, sleeps, **overrides):
    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = side_effect
    cfg = CrawlerRunConfig(max_jitter=0, **overrides)
    return Fetcher(cfg, session=session, sleep=sleeps.append), session


class TestFetch:

    def test_success_returns_body(self, sleeps):
        fetcher, session = _fetcher([_response(200, b"<html></html>")], sleeps)
        assert fetcher.fetch("https://www.examtopics.com/x") == b"<html></html>"
        session.get.assert_called_once_with(
            "https://www.examtopics.com/x", timeout=(10, 20), allow_redirects=True
        )
        assert sleeps == []

    def test_503_retried_with_backoff(self, sleeps):
        fetcher, session = _fetcher(
            [_response(503), _response(503), _response(200, b"ok")], sleeps
        )
        assert fetcher.fetch("u") == b"ok"
        assert session.get.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_connection_errors_exhaust_budget(self, sleeps):
        fetcher, session = _fetcher(requests.ConnectionError("reset"), sleeps)
        assert fetcher.fetch("u") is None
        assert session.get.call_count == 4
        assert sleeps == [1.0, 2.0, 4.0]

    def test_timeout_is_retried(self, sleeps):
        fetcher, session = _fetcher([requests.Timeout("slow"), _response(200, b"ok")], sleeps)
        assert fetcher.fetch("u") == b"ok"
        assert sleeps == [1.0]

    def test_persistent_503_gives_up(self, sleeps):
        fetcher, session = _fetcher([_response(503)] * 4, sleeps)
        assert fetcher.fetch("u") is None
        assert session.get.call_count == 4

    @pytest.mark.parametrize("status", [403, 404, 429, 500])
    def test_other_status_is_terminal(self, sleeps, status):
        fetcher, session = _fetcher([_response(status)], sleeps)
        assert fetcher.fetch("u") is None
        assert session.get.call_count == 1
        assert sleeps == []

    def test_other_request_errors_are_terminal(self, sleeps):
        fetcher, session = _fetcher(requests.TooManyRedirects("loop"), sleeps)
        assert fetcher.fetch("u") is None
        assert session.get.call_count == 1

    def test_fetch_document_parses(self, sleeps):
        fetcher, _ = _fetcher([_response(200, b"<html><h1>Title</h1></html>")], sleeps)
        doc = fetcher.fetch_document("u")
        assert doc.h1.get_text() == "Title"

    def test_fetch_document_none_on_failure(self, sleeps):
        fetcher, _ = _fetcher([_response(404)], sleeps)
        assert fetcher.fetch_document("u") is None


class TestSession:

    def test_default_session_headers_and_pool(self):
        with Fetcher(CrawlerRunConfig()) as fetcher:
            headers = fetcher.session.headers
            assert "Chrome/132" in headers["User-Agent"]
            assert headers["Referer"] == "https://www.examtopics.com/"
            assert headers["Accept-Language"] == "en-US,en;q=0.9"
            adapter = fetcher.session.get_adapter("https://www.examtopics.com/")
            assert adapter.max_retries.total == 0
            assert adapter._pool_maxsize == 100

    def test_context_manager_closes_session(self, sleeps):
        fetcher, session = _fetcher([], sleeps)
        with fetcher:
            pass
        session.close.assert_called_once()
