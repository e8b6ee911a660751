"""
Content fetcher: pulls readable text from a foundry's website.

Tries /about, /info, /studio and then the bare URL, and accepts the first page
whose extracted text is long enough to be real content. Near-empty pages
usually mean the site blocked us or only renders client-side.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from ..core.config import (
    FETCH_MAX_TEXT_CHARS,
    FETCH_MIN_TEXT_CHARS,
    FETCH_TIMEOUT_SEC,
    FETCH_USER_AGENT,
    RENDERED_FETCH_TIMEOUT_SEC,
)
from util.logging import logger

CANDIDATE_PATHS = ("/about", "/info", "/studio", "")

FETCH_UNAVAILABLE = "fetch_unavailable"

_WHITESPACE = re.compile(r"\s+")


def normalize_url(url: str) -> str:
    """Add a scheme when missing and drop trailing slashes."""
    url = (url or "").strip()
    if not url:
        return ""
    if not re.match(r"^https?://", url, re.I):
        url = f"https://{url}"
    return url.rstrip("/")


def candidate_urls(base_url: str) -> List[str]:
    base = normalize_url(base_url)
    return [f"{base}{path}" for path in CANDIDATE_PATHS]


def html_to_text(html: str, max_chars: int = FETCH_MAX_TEXT_CHARS) -> str:
    """Visible text of an HTML page with scripts/styles removed and whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()

    text = _WHITESPACE.sub(" ", soup.get_text(" ")).strip()
    return text[:max_chars]


@dataclass
class FetchResult:
    """Text from the first qualifying candidate, or the reasons every candidate failed."""
    base_url: str
    success: bool
    content: Optional[str] = None
    source_url: Optional[str] = None
    error_kind: Optional[str] = None
    attempts: List[str] = field(default_factory=list)

    @property
    def error(self) -> Optional[str]:
        if self.success:
            return None
        if not self.attempts:
            return "No URL to fetch"
        return "; ".join(self.attempts)


class ContentFetcher:
    """Plain HTTP fetcher built on a requests session."""

    def __init__(self, timeout: float = FETCH_TIMEOUT_SEC, min_chars: int = FETCH_MIN_TEXT_CHARS,
                 max_chars: int = FETCH_MAX_TEXT_CHARS, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.min_chars = min_chars
        self.max_chars = max_chars
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": FETCH_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml",
        })

    def fetch(self, base_url: str) -> FetchResult:
        base = normalize_url(base_url)
        result = FetchResult(base_url=base, success=False)
        if not base:
            result.error_kind = FETCH_UNAVAILABLE
            logger.log_fetch(str(base_url), "failed", {"reason": "empty url"})
            return result

        for url in candidate_urls(base):
            try:
                html = self._get_html(url)
            except Exception as e:  # try the next candidate
                result.attempts.append(f"{url}: {str(e)[:120]}")
                continue

            text = html_to_text(html, self.max_chars)
            if len(text) <= self.min_chars:
                result.attempts.append(f"{url}: only {len(text)} chars of text")
                continue

            result.success = True
            result.source_url = url
            result.content = f"Source: {url}\n\n{text}"
            logger.log_fetch(url, "success", {"chars": len(text)})
            return result

        result.error_kind = FETCH_UNAVAILABLE
        logger.log_fetch(base, "failed", {"attempts": len(result.attempts)})
        return result

    def _get_html(self, url: str) -> str:
        response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        response.raise_for_status()
        return response.text

    def close(self) -> None:
        self.session.close()


class RenderedContentFetcher(ContentFetcher):
    """Same contract, but each candidate is rendered in headless Chromium first.

    For sites whose content is populated client-side. Requires the optional
    `playwright` dependency and an installed browser (`playwright install chromium`).
    """

    def __init__(self, timeout: float = RENDERED_FETCH_TIMEOUT_SEC, **kwargs):
        super().__init__(timeout=timeout, **kwargs)
        self._playwright = None
        self._browser = None

    def _ensure_browser(self):
        if self._browser is None:
            from playwright.sync_api import sync_playwright

            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=True)
        return self._browser

    def _get_html(self, url: str) -> str:
        browser = self._ensure_browser()
        page = browser.new_page(user_agent=FETCH_USER_AGENT)
        try:
            response = page.goto(url, timeout=self.timeout * 1000, wait_until="networkidle")
            if response is not None and response.status >= 400:
                raise RuntimeError(f"HTTP {response.status}")
            return page.content()
        finally:
            page.close()

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        super().close()
