"""
Content fetcher tests. The HTTP session is always mocked.
"""

from unittest.mock import MagicMock

import pytest
import requests

from src.validation.fetcher import (
    FETCH_UNAVAILABLE,
    ContentFetcher,
    candidate_urls,
    html_to_text,
    normalize_url,
)

LONG_TEXT = "We are an independent type foundry based in Berlin. " * 20


def _response(html, status_ok=True):
    response = MagicMock()
    response.text = html
    if status_ok:
        response.raise_for_status.return_value = None
    else:
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
    return response


def _fetcher(responses):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.get.side_effect = responses
    return ContentFetcher(session=session), session


class TestHelpers:

    @pytest.mark.parametrize("raw,expected", [
        ("example.com", "https://example.com"),
        ("https://example.com/", "https://example.com"),
        ("http://example.com//", "http://example.com"),
        ("  HTTPS://Example.com  ", "HTTPS://Example.com"),
        ("", ""),
    ])
    def test_normalize_url(self, raw, expected):
        assert normalize_url(raw) == expected

    def test_candidate_order(self):
        assert candidate_urls("example.com") == [
            "https://example.com/about",
            "https://example.com/info",
            "https://example.com/studio",
            "https://example.com",
        ]

    def test_html_to_text_strips_scripts_and_styles(self):
        html = """
        <html><head><style>body { color: red }</style>
        <script>var secret = "{not text}";</script></head>
        <body><h1>About</h1>\n\n<p>Founded   in&nbsp;1985 &amp; still going.</p>
        <noscript>Enable JS</noscript></body></html>
        """
        text = html_to_text(html)
        assert "color" not in text
        assert "secret" not in text
        assert "Enable JS" not in text
        assert text == "About Founded in 1985 & still going."

    def test_html_to_text_truncates(self):
        assert len(html_to_text("<p>" + "a" * 100 + "</p>", max_chars=10)) == 10


class TestContentFetcher:

    def test_first_qualifying_candidate_wins(self):
        fetcher, session = _fetcher([
            _response("", status_ok=False),
            _response(f"<p>{LONG_TEXT}</p>"),
        ])

        result = fetcher.fetch("example.com")

        assert result.success is True
        assert result.source_url == "https://example.com/info"
        assert result.content.startswith("Source: https://example.com/info")
        assert session.get.call_count == 2
        assert session.get.call_args.kwargs["timeout"] == fetcher.timeout

    def test_short_pages_are_rejected(self):
        fetcher, _ = _fetcher([
            _response("<p>Loading...</p>"),
            _response("<p>Loading...</p>"),
            _response("<p>Loading...</p>"),
            _response("<div id='root'></div>"),
        ])

        result = fetcher.fetch("https://js-only.example")

        assert result.success is False
        assert result.error_kind == FETCH_UNAVAILABLE
        assert len(result.attempts) == 4
        assert "chars of text" in result.error

    def test_network_errors_on_every_candidate(self):
        fetcher, _ = _fetcher([requests.ConnectionError("refused")] * 4)

        result = fetcher.fetch("example.com")

        assert result.success is False
        assert result.error_kind == FETCH_UNAVAILABLE
        assert "refused" in result.error

    def test_empty_url_is_unavailable(self):
        fetcher, session = _fetcher([])

        result = fetcher.fetch("")

        assert result.success is False
        assert result.error_kind == FETCH_UNAVAILABLE
        session.get.assert_not_called()

    def test_user_agent_is_set(self):
        fetcher, _ = _fetcher([])
        assert "FoundryDirectoryBot" in fetcher.session.headers["User-Agent"]
