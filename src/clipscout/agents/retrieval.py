"""Retrieval orchestrator: the platform's download protocol plus fallbacks."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from ..browser.session import is_logged_in, sign_in_demanded
from ..config import (
    DOWNLOAD_EVENT_TIMEOUT_S,
    DOWNLOAD_PAGE_TIMEOUT_MS,
    LIBRARY_DOWNLOAD_TIMEOUT_S,
    MIN_DOWNLOAD_BYTES,
    NAV_TIMEOUT_MS,
    PlatformConfig,
    RetrievalConfig,
)
from ..errors import SessionInvalidError, TransientPlatformError
from ..models.footage import (
    Candidate,
    DownloadOutcome,
    Failure,
    NeedsAsyncPreparation,
    RetrievalReport,
    SkipRecord,
    Success,
    describe_outcome,
)
from .history import RetrievalHistory
from .library import DownloadState, LibraryWatcher, Ready, classify_entries

logger = logging.getLogger(__name__)

EventCallback = Callable[..., None]

PREPARING_PHRASES = (
    "preparing your video",
    "we are preparing",
    "it'll take a few minutes",
    "will receive an email",
)


def detect_preparation(text: str, buttons: List[str]) -> bool:
    """True when the modal says the file will be prepared asynchronously."""
    lower = text.lower()
    if any(phrase in lower for phrase in PREPARING_PHRASES):
        return True
    labels = [b.lower() for b in buttons]
    return any("my content" in b for b in labels) and any("continue" in b for b in labels)


class RetrievalOrchestrator:
    """Downloads the best candidate, falling back down the ranking."""

    def __init__(
        self,
        browser,
        platform: PlatformConfig,
        config: RetrievalConfig,
        session=None,
        history: Optional[RetrievalHistory] = None,
        clock=None,
        event_callback: Optional[EventCallback] = None,
    ):
        self.browser = browser
        self.platform = platform
        self.config = config
        self.session = session
        self.history = history
        self.clock = clock
        self.emit = event_callback or (lambda *_a, **_kw: None)
        self.state = DownloadState.OPENING_PAGE
        self.transitions: List[DownloadState] = []

    def _enter(self, state: DownloadState) -> None:
        logger.debug("Download state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    # ── Single candidate ─────────────────────────────────────────────

    def accept_restrictions(self) -> Optional[str]:
        """Tick the usage-restrictions box; returns the strategy that worked."""
        if self.browser.restrictions_checked():
            return "already"
        strategies = (
            ("direct", self.browser.check_directly),
            ("label", self.browser.check_via_label),
            ("script", self.browser.check_via_script),
            ("row", self.browser.check_via_row),
        )
        for name, attempt in strategies:
            attempt()
            if self.browser.restrictions_checked():
                logger.debug("Restrictions accepted via %s strategy", name)
                return name
        logger.warning("Could not tick the restrictions checkbox, continuing anyway")
        return None

    def download(self, candidate: Candidate, allow_wait: bool) -> DownloadOutcome:
        """Run the download protocol for one candidate.

        Raises SessionInvalidError when the page asks for a sign-in instead of
        offering a download.
        """
        self.transitions = []
        self._enter(DownloadState.OPENING_PAGE)
        try:
            self.browser.open(candidate.url, timeout_ms=DOWNLOAD_PAGE_TIMEOUT_MS,
                              wait_for="button")
        except TransientPlatformError as e:
            return Failure(f"page did not load: {e}")
        self.browser.pause(800)
        self.browser.dismiss_popups()
        title = self.browser.page_title() or candidate.title

        self._enter(DownloadState.SUBMITTING_DOWNLOAD)
        if not self.browser.click_download_button():
            markers = self.browser.auth_markers()
            if sign_in_demanded(markers) and not is_logged_in(markers):
                raise SessionInvalidError("session expired, login required")
            return Failure("no download button on page")
        self.accept_restrictions()
        if self.browser.click_confirm() is None:
            return Failure("no confirm button in download modal")
        self.browser.pause(1200)

        self._enter(DownloadState.DETECTING_PREPARATION)
        if detect_preparation(*self.browser.modal_state()):
            return self._handle_preparation(candidate, title, allow_wait)

        self._enter(DownloadState.DIRECT_DOWNLOAD)
        download = self.browser.wait_for_download(DOWNLOAD_EVENT_TIMEOUT_S)
        if download is None:
            if detect_preparation(*self.browser.modal_state()):
                return self._handle_preparation(candidate, title, allow_wait)
            return Failure("download did not start")
        return self._save(download, candidate, from_library=False)

    def _handle_preparation(self, candidate: Candidate, title: str,
                            allow_wait: bool) -> DownloadOutcome:
        logger.info("%s needs async preparation", candidate.url)
        if self.history is not None:
            self.history.mark_preparing(candidate.url)
        self.browser.leave_preparing_modal()
        if not allow_wait:
            return NeedsAsyncPreparation(video_id=candidate.video_id, title=title)
        return self._wait_in_library(candidate, title)

    def _wait_in_library(self, candidate: Candidate, title: str) -> DownloadOutcome:
        self._enter(DownloadState.WAITING_IN_LIBRARY)
        video_id = candidate.video_id
        try:
            self.browser.open(self.platform.library_url, timeout_ms=NAV_TIMEOUT_MS)
        except TransientPlatformError as e:
            logger.warning("Library page did not load, will retry on next poll: %s", e)

        total = max(1, int(self.config.max_wait_minutes * 60 // self.config.poll_interval) + 1)
        watcher = LibraryWatcher(
            poll=lambda: classify_entries(self.browser.library_entries(), video_id, title),
            fetch=lambda ready: self._fetch_from_library(ready, candidate),
            refresh=self.browser.reload,
            clock=self.clock,
            interval=self.config.poll_interval,
            max_wait_minutes=self.config.max_wait_minutes,
            on_poll=lambda n, result, elapsed: self.emit(
                "library",
                f"{type(result).__name__} after {elapsed:.0f}s: {title[:50]}",
                n, total,
            ),
        )
        outcome = watcher.run()
        self._enter(watcher.state)
        return outcome

    def _fetch_from_library(self, ready: Ready, candidate: Candidate) -> Optional[Success]:
        self.browser.click_library_entry(ready.entry_index)
        download = self.browser.wait_for_download(LIBRARY_DOWNLOAD_TIMEOUT_S)
        if download is None:
            return None
        outcome = self._save(download, candidate, from_library=True)
        return outcome if isinstance(outcome, Success) else None

    def _save(self, download, candidate: Candidate, from_library: bool) -> DownloadOutcome:
        path = self.browser.save_download(download, self.platform.downloads_dir)
        size = path.stat().st_size
        if size < MIN_DOWNLOAD_BYTES:
            path.unlink(missing_ok=True)
            return Failure(f"downloaded file is corrupt ({size} bytes)")
        if self.session is not None:
            self.session.persist()
        logger.info("Downloaded %s (%.1f MB)%s", path.name, size / 1e6,
                    " from library" if from_library else "")
        return Success(
            path=path,
            filename=path.name,
            from_library_fallback=from_library,
            mandatory_credit=candidate.mandatory_credit,
        )

    # ── Ranked list ──────────────────────────────────────────────────

    def retrieve(self, ranked: List[Candidate]) -> RetrievalReport:
        """Try the best candidate (waiting allowed), then the rest without waiting."""
        skipped: List[SkipRecord] = []
        pool = self.history.prioritize(ranked) if self.history is not None else list(ranked)
        pool = pool[: self.config.max_candidates_to_try]

        eligible = []
        for candidate in pool:
            if candidate.score < self.config.min_score:
                skipped.append(SkipRecord(candidate.url, candidate.title,
                                          candidate.score, "score below threshold"))
            else:
                eligible.append(candidate)
        if not eligible:
            return RetrievalReport(
                outcome=Failure("no candidate reached the minimum score"),
                skipped=skipped,
            )

        for i, candidate in enumerate(eligible):
            allow_wait = i == 0 and self.config.wait_for_primary
            self.emit("download" if i == 0 else "fallback",
                      f"Trying {candidate.title[:60]} ({candidate.score})",
                      i + 1, len(eligible))
            try:
                outcome = self.download(candidate, allow_wait=allow_wait)
            except SessionInvalidError as e:
                outcome = Failure(str(e), needs_login=True)
            except Exception as e:  # browser errors vary by page state
                logger.warning("Download of %s failed: %s", candidate.url, e)
                outcome = Failure(f"error: {e}")

            if isinstance(outcome, Success):
                if self.history is not None:
                    self.history.mark_used(candidate.url)
                return RetrievalReport(outcome=outcome, candidate=candidate, skipped=skipped)

            reason = describe_outcome(outcome)
            logger.info("Skipping %s: %s", candidate.url, reason)
            skipped.append(SkipRecord(candidate.url, candidate.title, candidate.score, reason))
            if self.history is not None:
                self.history.add_skipped(candidate.url, reason)
            if isinstance(outcome, Failure) and outcome.needs_login:
                return RetrievalReport(outcome=outcome, skipped=skipped)

        return RetrievalReport(
            outcome=Failure(f"all {len(eligible)} candidates failed"),
            skipped=skipped,
        )
