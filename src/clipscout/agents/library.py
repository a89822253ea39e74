"""Download states and the personal-library polling state machine.

Prepared (watermarked) downloads show up in the user's library some minutes
after they are requested. ``LibraryWatcher`` polls for the entry through a
single ``poll`` callable returning ``Ready``, ``Preparing`` or ``NotFound``;
time comes from an injected clock so the loop can be driven in tests.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from ..errors import TransientPlatformError
from ..models.footage import Success, Timeout

logger = logging.getLogger(__name__)

MAX_TITLE_KEYWORDS = 5
MIN_TITLE_KEYWORD_HITS = 2
PREPARING_MARKERS = ("preparing to download", "cancel request")
_TITLE_STOPWORDS = {
    "the", "and", "for", "with", "from", "that", "this", "says", "after",
    "over", "into", "amid", "about",
}


class DownloadState(str, Enum):
    OPENING_PAGE = "opening_page"
    SUBMITTING_DOWNLOAD = "submitting_download"
    DIRECT_DOWNLOAD = "direct_download"
    DETECTING_PREPARATION = "detecting_preparation"
    WAITING_IN_LIBRARY = "waiting_in_library"
    DOWNLOADED_FROM_LIBRARY = "downloaded_from_library"
    TIMED_OUT = "timed_out"


@dataclass
class Ready:
    entry_index: int
    matched_by: str  # "id" or "title"


@dataclass
class Preparing:
    matched_by: str


@dataclass
class NotFound:
    pass


PollResult = Union[Ready, Preparing, NotFound]


class SystemClock:
    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


def title_keywords(title: str, limit: int = MAX_TITLE_KEYWORDS) -> List[str]:
    words = re.findall(r"[a-z0-9]+", title.lower())
    keywords: List[str] = []
    for word in words:
        if len(word) > 3 and word not in _TITLE_STOPWORDS and word not in keywords:
            keywords.append(word)
    return keywords[:limit]


def _entry_state(matches: List[Dict], matched_by: str) -> PollResult:
    for entry in matches:
        text = str(entry.get("text", "")).lower()
        if entry.get("kind") == "ready" and not any(m in text for m in PREPARING_MARKERS):
            return Ready(entry_index=int(entry["index"]), matched_by=matched_by)
    return Preparing(matched_by=matched_by)


def classify_entries(entries: List[Dict], video_id: Optional[str],
                     title: str) -> PollResult:
    """Find this video among library entries: platform ID first, then title keywords."""
    if video_id:
        by_id = [e for e in entries if f"ID {video_id}" in str(e.get("text", ""))]
        if not by_id:
            by_id = [e for e in entries if video_id in str(e.get("text", ""))]
        if by_id:
            return _entry_state(by_id, "id")

    keywords = title_keywords(title)
    if len(keywords) >= MIN_TITLE_KEYWORD_HITS:
        by_title = [
            e for e in entries
            if sum(k in str(e.get("text", "")).lower() for k in keywords) >= MIN_TITLE_KEYWORD_HITS
        ]
        if by_title:
            return _entry_state(by_title, "title")
    return NotFound()


class LibraryWatcher:
    """Polls the library until the entry is downloaded or the wait runs out."""

    def __init__(
        self,
        poll: Callable[[], PollResult],
        fetch: Callable[[Ready], Optional[Success]],
        refresh: Callable[[], None],
        clock=None,
        interval: float = 5.0,
        max_wait_minutes: float = 4.0,
        on_poll: Optional[Callable[[int, PollResult, float], None]] = None,
    ):
        self.poll = poll
        self.fetch = fetch
        self.refresh = refresh
        self.clock = clock or SystemClock()
        self.interval = interval
        self.max_wait = max_wait_minutes * 60
        self.on_poll = on_poll or (lambda *_a: None)
        self.state = DownloadState.WAITING_IN_LIBRARY
        self.polls = 0

    def run(self) -> Union[Success, Timeout]:
        started = self.clock.now()
        while True:
            self.polls += 1
            try:
                result = self.poll()
            except TransientPlatformError as e:
                logger.warning("Library poll %d failed: %s", self.polls, e)
                result = NotFound()

            elapsed = self.clock.now() - started
            self.on_poll(self.polls, result, elapsed)

            if isinstance(result, Ready):
                outcome = self.fetch(result)
                if outcome is not None:
                    self.state = DownloadState.DOWNLOADED_FROM_LIBRARY
                    logger.info("Library download ready after %.0fs", elapsed)
                    return outcome
                logger.warning("Library entry looked ready but no file arrived")

            elapsed = self.clock.now() - started
            if elapsed >= self.max_wait:
                self.state = DownloadState.TIMED_OUT
                logger.info("Library wait timed out after %d polls", self.polls)
                return Timeout(waited_minutes=round(elapsed / 60, 2))

            self.clock.sleep(min(self.interval, self.max_wait - elapsed))
            try:
                self.refresh()
            except TransientPlatformError as e:
                logger.warning("Library refresh failed: %s", e)
