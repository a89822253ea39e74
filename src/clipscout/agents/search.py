"""Platform search and deep analysis of candidate pages."""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from ..config import NAV_TIMEOUT_MS, SEARCH_TIMEOUT_MS, PlatformConfig, SearchConfig
from ..errors import TransientPlatformError
from ..models.footage import Candidate
from .extraction import extract_metadata, normalize_result_links

logger = logging.getLogger(__name__)

DEEP_ANALYSIS_RETRIES = 2
RESULT_SELECTOR = 'a[href*="/videos/"]'

_LABEL_PREFIX_RE = re.compile(r"^\s*[A-Za-z][\w ]{0,24}:\s*")
_NON_WORD_RE = re.compile(r"[^\w\s-]")


def clean_query(query: str) -> str:
    """Drop a leading "Label:" prefix and punctuation, collapse whitespace."""
    text = _LABEL_PREFIX_RE.sub("", query or "", count=1)
    text = _NON_WORD_RE.sub(" ", text)
    return " ".join(text.split())


def merge_results(
    batches: Iterable[Tuple[int, str, List[Dict[str, str]]]]
) -> List[Candidate]:
    """Merge per-query result links into candidates, one per URL.

    Each batch is ``(priority, query, links)``. A URL seen by several queries
    keeps the lowest (earliest) priority; output is ordered by priority.
    """
    by_url: Dict[str, Candidate] = {}
    for priority, query, links in batches:
        for link in links:
            existing = by_url.get(link["url"])
            if existing is None:
                by_url[link["url"]] = Candidate(
                    url=link["url"],
                    title=link["title"],
                    source_query=query,
                    query_priority=priority,
                )
            elif priority < existing.query_priority:
                existing.query_priority = priority
                existing.source_query = query
    return sorted(by_url.values(), key=lambda c: c.query_priority)


class ScreenshotCache:
    """Candidate screenshots keyed by URL for the lifetime of a run."""

    def __init__(self):
        self._shots: Dict[str, bytes] = {}

    def get(self, url: str) -> Optional[bytes]:
        return self._shots.get(url)

    def put(self, url: str, data: bytes) -> None:
        self._shots[url] = data

    def clear(self) -> None:
        self._shots.clear()

    def __contains__(self, url: str) -> bool:
        return url in self._shots

    def __len__(self) -> int:
        return len(self._shots)


class SearchCache:
    """Result links per cleaned query, expiring after a TTL."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[Dict[str, str]]]] = {}

    def get(self, query: str) -> Optional[List[Dict[str, str]]]:
        entry = self._entries.get(query.lower())
        if entry is None:
            return None
        stored_at, links = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[query.lower()]
            return None
        return list(links)

    def put(self, query: str, links: List[Dict[str, str]]) -> None:
        self._entries[query.lower()] = (self._clock(), list(links))

    def clear(self) -> None:
        self._entries.clear()


class CandidateSearch:
    """Search the platform and deep-analyse candidate pages, one at a time."""

    def __init__(
        self,
        browser,
        platform: PlatformConfig,
        config: SearchConfig,
        screenshots: Optional[ScreenshotCache] = None,
        cache: Optional[SearchCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.browser = browser
        self.platform = platform
        self.config = config
        self.screenshots = screenshots if screenshots is not None else ScreenshotCache()
        self.cache = cache if cache is not None else SearchCache(
            config.cache_ttl_minutes * 60
        )
        self._sleep = sleep
        self._backoff = 1.5

    def search_url(self, query: str) -> str:
        return f"{self.platform.search_url}?{urlencode({'search': query})}"

    # ── Result links ─────────────────────────────────────────────────

    def find_links(self, query: str) -> List[Dict[str, str]]:
        """Result links for one query, retrying gateway errors with backoff."""
        cleaned = clean_query(query)
        if not cleaned:
            raise ValueError(f"Empty search query: {query!r}")

        cached = self.cache.get(cleaned)
        if cached is not None:
            logger.debug("Search cache hit for %r", cleaned)
            return cached

        retries = self.config.retries
        for attempt in range(retries):
            try:
                self.browser.open(
                    self.search_url(cleaned),
                    timeout_ms=SEARCH_TIMEOUT_MS,
                    wait_for=RESULT_SELECTOR,
                )
                raw = self.browser.result_links()
                break
            except TransientPlatformError as e:
                if attempt + 1 >= retries:
                    logger.warning("All retries exhausted for %r: %s", cleaned, e)
                    return []
                wait = self._backoff * (attempt + 1)
                logger.info("Search %r failed (%s), retrying in %.1fs (%d/%d)",
                            cleaned, e, wait, attempt + 1, retries)
                self._sleep(wait)
        else:
            return []

        links = normalize_result_links(
            raw, self.platform.base_url, self.config.results_per_query
        )
        logger.info("Search %r: %d raw links -> %d results", cleaned, len(raw), len(links))
        self.cache.put(cleaned, links)
        return links

    def collect(self, queries: List[str], base_priority: int = 0,
                stop_after: Optional[int] = None) -> List[Candidate]:
        """Search several queries and merge their results by URL.

        With ``stop_after`` set, stops issuing queries once that many unique
        candidates have been gathered.
        """
        batches = []
        seen = set()
        for i, query in enumerate(queries):
            cleaned = clean_query(query)
            if not cleaned:
                logger.debug("Skipping empty query %r", query)
                continue
            links = self.find_links(cleaned)
            batches.append((base_priority + i, cleaned, links))
            seen.update(link["url"] for link in links)
            if stop_after is not None and len(seen) >= stop_after:
                break
        return merge_results(batches)

    # ── Deep analysis ────────────────────────────────────────────────

    def deep_analyze(self, candidate: Candidate, with_screenshot: bool = False) -> bool:
        """Visit a candidate page and fill in its metadata in place.

        Returns False when the page could not be loaded within the retry budget.
        """
        for attempt in range(DEEP_ANALYSIS_RETRIES):
            try:
                self.browser.open(candidate.url, timeout_ms=NAV_TIMEOUT_MS, wait_for="h1")
                self.browser.pause(400)
                self.browser.expand_sections()
                snapshot = self.browser.snapshot()
                break
            except TransientPlatformError as e:
                if attempt + 1 >= DEEP_ANALYSIS_RETRIES:
                    logger.warning("Skipping %s after %d attempts: %s",
                                   candidate.url, DEEP_ANALYSIS_RETRIES, e)
                    return False
                self._sleep(self._backoff * (attempt + 1))
            except Exception as e:  # page scripts fail when the page navigates away
                logger.warning("Skipping %s: %s", candidate.url, e)
                return False
        else:
            return False

        meta = extract_metadata(snapshot)
        candidate.title = meta["title"] or candidate.title
        candidate.description = meta["description"]
        candidate.video_info = meta["video_info"] or ""
        candidate.shot_list = meta["shot_list"] or ""
        candidate.duration = meta["duration"]
        candidate.mandatory_credit = meta["mandatory_credit"]
        candidate.all_text = meta["all_text"] or ""

        if with_screenshot:
            candidate.screenshot = self._screenshot_for(candidate.url)
        return True

    def _screenshot_for(self, url: str) -> Optional[bytes]:
        cached = self.screenshots.get(url)
        if cached is not None:
            return cached
        shot = self.browser.screenshot()
        if shot:
            self.screenshots.put(url, shot)
        return shot

    def search(self, query: str, limit: int,
               with_screenshots: bool = False) -> List[Candidate]:
        """Search one query and deep-analyse up to ``limit`` results."""
        found = []
        for candidate in self.collect([query])[:limit]:
            if self.deep_analyze(candidate, with_screenshot=with_screenshots):
                found.append(candidate)
        return found

    def search_with_screenshots(self, query: str, limit: int) -> List[Candidate]:
        return self.search(query, limit, with_screenshots=True)
