"""
Supplementary sources gathered alongside the foundry website.

The website is required. Wikidata, Fonts In Use and MyFonts are optional
extra evidence and their failures only add a "[Not available: ...]" marker.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

import requests
from bs4 import BeautifulSoup

from ..core.config import FETCH_TIMEOUT_SEC, FETCH_USER_AGENT
from ..core.schema import FoundryRecord
from .fetcher import FETCH_UNAVAILABLE, ContentFetcher, html_to_text
from util.logging import logger

WIKIDATA_API = "https://www.wikidata.org/w/api.php"
FONTS_IN_USE_SEARCH = "https://fontsinuse.com/search?terms={terms}"
FONTS_IN_USE_MIN_CHARS = 200
FONTS_IN_USE_MAX_CHARS = 10000
MYFONTS_FOUNDRY_URL = "https://www.myfonts.com/foundry/{slug}"
MYFONTS_SEARCH = "https://www.myfonts.com/search?query={terms}"
MYFONTS_NO_RESULTS = ("No results found", "did not match any")
MYFONTS_MIN_CHARS = 200
MYFONTS_MAX_CHARS = 10000

# Wikidata properties: inception, founded by, country, located in
WIKIDATA_PROPERTIES = {
    "founded": "P571",
    "founded_by": "P112",
    "country": "P17",
    "location": "P131",
}

_DESCRIPTION_HINTS = ("type", "foundry", "font", "design")


@dataclass
class SourceData:
    source: str
    url: str
    content: Optional[str] = None
    structured: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.content is not None


@dataclass
class SourceBundle:
    """Everything gathered for one record, ready for the analyzer."""
    slug: str
    sources: List[SourceData]
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def source_names(self) -> List[str]:
        return [s.source for s in self.sources if s.available]

    @property
    def combined_context(self) -> str:
        parts = []
        for source in self.sources:
            if source.available:
                parts.append(f"## {source.source} ({source.url})\n{source.content}")
            else:
                parts.append(f"## {source.source}\n[Not available: {source.error or 'no content'}]")
        return "\n\n".join(parts)


def _get(session: requests.Session, url: str, timeout: float, **kwargs) -> requests.Response:
    response = session.get(url, timeout=timeout, headers={"User-Agent": FETCH_USER_AGENT}, **kwargs)
    response.raise_for_status()
    return response


def _claim_value(claims: Dict[str, Any], prop: str) -> Optional[str]:
    """First value of a Wikidata claim, flattened to a string."""
    try:
        value = claims[prop][0]["mainsnak"]["datavalue"]["value"]
    except (KeyError, IndexError, TypeError):
        return None

    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        if "time" in value:
            # "+1985-00-00T00:00:00Z" -> "1985"
            match = re.match(r"[+-]?(\d{4})", value["time"])
            return match.group(1) if match else None
        if "id" in value:
            return value["id"]
        if "amount" in value:
            return str(value["amount"])
    return None


def _search_wikidata(session: requests.Session, name: str, timeout: float) -> Optional[str]:
    params = {
        "action": "wbsearchentities",
        "search": name,
        "language": "en",
        "format": "json",
        "type": "item",
        "limit": 5,
    }
    results = _get(session, WIKIDATA_API, timeout, params=params).json().get("search") or []
    for item in results:
        description = (item.get("description") or "").lower()
        if any(hint in description for hint in _DESCRIPTION_HINTS):
            return item["id"]
    return results[0]["id"] if results else None


def fetch_wikidata(name: str, session: Optional[requests.Session] = None,
                   timeout: float = FETCH_TIMEOUT_SEC) -> SourceData:
    """Structured facts for a foundry from Wikidata."""
    if session is None:
        with requests.Session() as owned:
            return fetch_wikidata(name, session=owned, timeout=timeout)

    result = SourceData(source="Wikidata", url="https://www.wikidata.org")

    try:
        entity_id = _search_wikidata(session, name, timeout)
        if not entity_id:
            result.error = "Foundry not found on Wikidata"
            return result

        params = {
            "action": "wbgetentities",
            "ids": entity_id,
            "format": "json",
            "props": "labels|descriptions|claims",
        }
        entity = (_get(session, WIKIDATA_API, timeout, params=params).json().get("entities") or {}).get(entity_id)
        if not entity:
            result.error = "Could not fetch Wikidata entity"
            return result
    except (requests.RequestException, ValueError) as e:
        result.error = f"Wikidata fetch failed: {str(e)[:120]}"
        logger.log_fetch(result.url, "failed", {"source": "wikidata", "name": name})
        return result

    claims = entity.get("claims") or {}
    structured = {
        "wikidata_id": entity_id,
        "label": ((entity.get("labels") or {}).get("en") or {}).get("value"),
        "description": ((entity.get("descriptions") or {}).get("en") or {}).get("value"),
    }
    for key, prop in WIKIDATA_PROPERTIES.items():
        structured[key] = _claim_value(claims, prop)

    lines = [f"Wikidata entry for {name}:"]
    labels = [
        ("Name", "label"),
        ("Description", "description"),
        ("Founded", "founded"),
        ("Founded by", "founded_by"),
        ("Country", "country"),
        ("Location", "location"),
    ]
    for label, key in labels:
        if structured.get(key):
            lines.append(f"{label}: {structured[key]}")

    result.url = f"https://www.wikidata.org/wiki/{entity_id}"
    result.structured = structured
    result.content = "\n".join(lines)
    logger.log_fetch(result.url, "success", {"source": "wikidata"})
    return result


def fetch_fonts_in_use(name: str, session: Optional[requests.Session] = None,
                       timeout: float = FETCH_TIMEOUT_SEC) -> SourceData:
    """Fonts In Use search results for the foundry name (typeface attribution)."""
    if session is None:
        with requests.Session() as owned:
            return fetch_fonts_in_use(name, session=owned, timeout=timeout)

    url = FONTS_IN_USE_SEARCH.format(terms=quote_plus(name))
    result = SourceData(source="Fonts In Use", url="https://fontsinuse.com")

    try:
        html = _get(session, url, timeout).text
    except requests.RequestException as e:
        result.error = f"Fonts In Use fetch failed: {str(e)[:120]}"
        logger.log_fetch(url, "failed", {"source": "fontsinuse"})
        return result

    text = html_to_text(html, FONTS_IN_USE_MAX_CHARS)
    if len(text) < FONTS_IN_USE_MIN_CHARS:
        result.error = "No meaningful content found"
        return result

    soup = BeautifulSoup(html, "html.parser")
    typefaces = []
    for tag in soup.select('[class*="typeface"]'):
        label = tag.get_text(" ", strip=True)
        if label and label not in typefaces:
            typefaces.append(label)

    result.url = url
    result.content = f'Fonts In Use search results for "{name}":\n\n{text}'
    if typefaces:
        result.structured = {"typefaces": typefaces}
    logger.log_fetch(url, "success", {"source": "fontsinuse"})
    return result


def _myfonts_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower())


def fetch_myfonts(name: str, session: Optional[requests.Session] = None,
                  timeout: float = FETCH_TIMEOUT_SEC) -> SourceData:
    """MyFonts foundry page, falling back to a catalog search when the page is missing."""
    if session is None:
        with requests.Session() as owned:
            return fetch_myfonts(name, session=owned, timeout=timeout)

    result = SourceData(source="MyFonts", url="https://www.myfonts.com")
    foundry_url = MYFONTS_FOUNDRY_URL.format(slug=_myfonts_slug(name))

    try:
        response = session.get(foundry_url, timeout=timeout, headers={"User-Agent": FETCH_USER_AGENT})
        if not response.ok:
            response = session.get(MYFONTS_SEARCH.format(terms=quote_plus(name)), timeout=timeout,
                                   headers={"User-Agent": FETCH_USER_AGENT})
        if not response.ok:
            result.error = f"HTTP {response.status_code}"
            logger.log_fetch(foundry_url, "failed", {"source": "myfonts", "status": response.status_code})
            return result
        html = response.text
    except requests.RequestException as e:
        result.error = f"MyFonts fetch failed: {str(e)[:120]}"
        logger.log_fetch(foundry_url, "failed", {"source": "myfonts"})
        return result

    if any(marker in html for marker in MYFONTS_NO_RESULTS):
        result.error = "Foundry not found on MyFonts"
        return result

    text = html_to_text(html, MYFONTS_MAX_CHARS)
    if len(text) < MYFONTS_MIN_CHARS:
        result.error = "No meaningful content found"
        return result

    result.url = response.url or foundry_url
    result.content = f'MyFonts page for "{name}":\n\n{text}'
    logger.log_fetch(result.url, "success", {"source": "myfonts"})
    return result


def collect_sources(record: FoundryRecord, fetcher: ContentFetcher, use_wikidata: bool = True,
                    use_fonts_in_use: bool = True, use_myfonts: bool = True,
                    session: Optional[requests.Session] = None) -> SourceBundle:
    """Fetch the website and the enabled supplementary sources for one record.

    A failed website fetch fails the bundle with fetch_unavailable, whatever the
    other sources returned.
    """
    website = fetcher.fetch(record.url or "")
    if not website.success:
        return SourceBundle(
            slug=record.slug,
            sources=[SourceData(source="Foundry Website", url=website.base_url, error=website.error)],
            success=False,
            error=website.error or "Could not fetch website content",
            error_kind=FETCH_UNAVAILABLE,
        )

    sources = [SourceData(source="Foundry Website", url=website.source_url, content=website.content)]
    if use_wikidata:
        sources.append(fetch_wikidata(record.name, session=session))
    if use_fonts_in_use:
        sources.append(fetch_fonts_in_use(record.name, session=session))
    if use_myfonts:
        sources.append(fetch_myfonts(record.name, session=session))

    return SourceBundle(slug=record.slug, sources=sources, success=True)
