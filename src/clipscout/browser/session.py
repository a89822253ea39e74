"""Session management: verification, headless checks and interactive login."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..config import (
    LOGIN_POLL_INTERVAL,
    LOGIN_TIMEOUT,
    SEARCH_TIMEOUT_MS,
    PlatformConfig,
)
from ..errors import TransientPlatformError
from .cookies import CookieJar

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str], None]


@dataclass
class SessionCheck:
    valid: bool
    needs_login: bool


def is_logged_in(markers: Dict[str, bool]) -> bool:
    """Profile or library affordances mean signed in; anything else means not."""
    if markers.get("profile") or markers.get("library_link"):
        return True
    return False


def sign_in_demanded(markers: Dict[str, bool]) -> bool:
    return bool(markers.get("sign_in_link"))


class SessionManager:
    """Owns the persisted platform session for one browser profile."""

    def __init__(
        self,
        platform: PlatformConfig,
        browser,
        cookie_jar: CookieJar,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.platform = platform
        self.browser = browser
        self.cookie_jar = cookie_jar
        self._sleep = sleep
        self._clock = clock

    def has_session(self) -> bool:
        return self.cookie_jar.looks_authenticated()

    def persist(self) -> None:
        """Write the live browser cookies back to disk."""
        cookies = self.browser.cookies()
        if cookies:
            self.cookie_jar.save(cookies)

    def verify(self) -> bool:
        """Open the catalogue in the shared page; a sign-in link means invalid."""
        try:
            self.browser.open(self.platform.search_url, timeout_ms=SEARCH_TIMEOUT_MS)
        except TransientPlatformError as e:
            logger.warning("Session check failed to load: %s", e)
            return False
        self.browser.pause(800)
        valid = not sign_in_demanded(self.browser.auth_markers())
        if valid:
            self.persist()
        logger.info("Session %s", "valid" if valid else "requires login")
        return valid

    def verify_headless(self) -> SessionCheck:
        """Check saved cookies in a throwaway headless browser."""
        if not self.has_session():
            return SessionCheck(valid=False, needs_login=True)
        try:
            markers = self.browser.probe_headless(
                self.platform.search_url,
                self.cookie_jar.load(),
                timeout_ms=SEARCH_TIMEOUT_MS,
            )
        except TransientPlatformError as e:
            logger.warning("Headless session check failed: %s", e)
            return SessionCheck(valid=False, needs_login=False)
        if sign_in_demanded(markers):
            return SessionCheck(valid=False, needs_login=True)
        return SessionCheck(valid=True, needs_login=False)

    def _poll_logged_in(self) -> bool:
        try:
            return is_logged_in(self.browser.auth_markers())
        except Exception as e:  # the page navigates while the user signs in
            logger.debug("Login poll failed: %s", e)
            return False

    def login(self, on_status: Optional[StatusCallback] = None,
              timeout: float = LOGIN_TIMEOUT,
              interval: float = LOGIN_POLL_INTERVAL) -> bool:
        """Wait for the user to sign in in the visible window.

        Cookies are saved as soon as a login is detected, and also on
        timeout; ``False`` means "try again later", not a hard failure.
        """
        notify = on_status or (lambda *_a: None)
        try:
            self.browser.open(self.platform.search_url, timeout_ms=30_000)
        except TransientPlatformError as e:
            notify("error", f"Could not open the platform: {e}")
            return False

        if self._poll_logged_in():
            self.persist()
            notify("logged_in", "Already logged in")
            return True

        started = self._clock()
        notify("waiting_login", "Please sign in in the browser window")
        while self._clock() - started < timeout:
            self._sleep(interval)
            if self._poll_logged_in():
                self.persist()
                notify("logged_in", "Login detected, session saved")
                return True
            remaining = int(timeout - (self._clock() - started))
            notify("waiting_login", f"Waiting for login ({max(remaining, 0)}s left)")

        self.persist()
        notify("timeout", "Login not detected in time")
        return False
