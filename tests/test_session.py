"""Tests for cookie persistence and session verification."""

import json

from playwright.sync_api import Error as PlaywrightError

from clipscout.browser.cookies import CookieJar
from clipscout.browser.session import SessionManager, is_logged_in, sign_in_demanded
from clipscout.config import Config
from clipscout.errors import TransientPlatformError

SIGNED_IN = {"profile": True, "library_link": True, "sign_in_link": False, "sign_in_button": False}
SIGNED_OUT = {"profile": False, "library_link": False, "sign_in_link": True, "sign_in_button": True}


def _session_cookies(n=6):
    cookies = [{"name": f"c{i}", "value": "v", "domain": ".example.com"} for i in range(n - 1)]
    cookies.append({"name": "session_id", "value": "s", "domain": ".viory.video"})
    return cookies


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def now(self):
        return self.t

    def sleep(self, seconds):
        self.t += seconds


class FakeBrowser:
    def __init__(self, markers, logs_in_after=None, fail_open=False, probe=None):
        self.markers = markers
        self.logs_in_after = logs_in_after
        self.fail_open = fail_open
        self.probe = probe
        self.checks = 0

    def open(self, url, timeout_ms=None, wait_for=None, wait_for_ms=None):
        if self.fail_open:
            raise TransientPlatformError("timeout")

    def pause(self, ms):
        pass

    def auth_markers(self):
        self.checks += 1
        if self.logs_in_after is not None and self.checks > self.logs_in_after:
            return SIGNED_IN
        return self.markers

    def cookies(self):
        return _session_cookies()

    def probe_headless(self, url, cookies, timeout_ms=None):
        if isinstance(self.probe, Exception):
            raise self.probe
        return self.probe


class TestMarkers:
    def test_logged_in(self):
        assert is_logged_in(SIGNED_IN)
        assert not is_logged_in(SIGNED_OUT)
        assert not is_logged_in({})

    def test_sign_in_demanded(self):
        assert sign_in_demanded(SIGNED_OUT)
        assert not sign_in_demanded(SIGNED_IN)


class TestCookieJar:
    def test_missing_and_corrupt_files_load_empty(self, tmp_path):
        jar = CookieJar(tmp_path / "cookies.json")
        assert jar.load() == []
        jar.path.write_text("{not json")
        assert jar.load() == []

    def test_save_then_load(self, tmp_path):
        jar = CookieJar(tmp_path / "profile" / "cookies.json")
        jar.save(_session_cookies())
        assert json.loads(jar.path.read_text())[-1]["name"] == "session_id"
        assert jar.looks_authenticated()
        assert list(jar.path.parent.glob("*.tmp")) == []

    def test_too_few_cookies_is_not_a_session(self, tmp_path):
        jar = CookieJar(tmp_path / "cookies.json")
        jar.save(_session_cookies(n=5))
        assert not jar.looks_authenticated()


class TestSessionManager:
    def setup_method(self):
        self.config = Config()
        self.clock = FakeClock()
        self.statuses = []

    def _manager(self, browser, tmp_path, with_cookies=True):
        jar = CookieJar(tmp_path / "cookies.json")
        if with_cookies:
            jar.save(_session_cookies())
        return SessionManager(self.config.platform, browser, jar,
                              sleep=self.clock.sleep, clock=self.clock.now)

    def _notify(self, status, message):
        self.statuses.append(status)

    def test_verify_without_sign_in_link(self, tmp_path):
        assert self._manager(FakeBrowser(SIGNED_IN), tmp_path).verify()
        assert not self._manager(FakeBrowser(SIGNED_OUT), tmp_path).verify()

    def test_verify_load_failure(self, tmp_path):
        assert not self._manager(FakeBrowser(SIGNED_IN, fail_open=True), tmp_path).verify()

    def test_verify_headless(self, tmp_path):
        check = self._manager(FakeBrowser(None, probe=SIGNED_IN), tmp_path).verify_headless()
        assert check.valid and not check.needs_login

        check = self._manager(FakeBrowser(None, probe=SIGNED_OUT), tmp_path).verify_headless()
        assert not check.valid and check.needs_login

        error = TransientPlatformError("503", status=503)
        check = self._manager(FakeBrowser(None, probe=error), tmp_path).verify_headless()
        assert not check.valid and not check.needs_login

    def test_verify_headless_without_cookies(self, tmp_path):
        manager = self._manager(FakeBrowser(None, probe=SIGNED_IN), tmp_path, with_cookies=False)
        assert manager.verify_headless().needs_login

    def test_login_detected(self, tmp_path):
        manager = self._manager(FakeBrowser(SIGNED_OUT, logs_in_after=3), tmp_path,
                                with_cookies=False)
        assert manager.login(on_status=self._notify, timeout=60, interval=3)
        assert self.statuses[0] == "waiting_login"
        assert self.statuses[-1] == "logged_in"
        assert manager.has_session()
        assert self.clock.t == 9

    def test_login_already_signed_in(self, tmp_path):
        manager = self._manager(FakeBrowser(SIGNED_IN), tmp_path)
        assert manager.login(on_status=self._notify)
        assert self.statuses == ["logged_in"]

    def test_login_timeout_still_saves_cookies(self, tmp_path):
        manager = self._manager(FakeBrowser(SIGNED_OUT), tmp_path, with_cookies=False)
        assert not manager.login(on_status=self._notify, timeout=9, interval=3)
        assert self.statuses[-1] == "timeout"
        assert manager.cookie_jar.path.exists()

    def test_login_survives_poll_errors(self, tmp_path):
        class NavigatingBrowser(FakeBrowser):
            def auth_markers(self):
                if self.checks == 1:
                    self.checks += 1
                    raise PlaywrightError("Execution context was destroyed")
                return super().auth_markers()

        browser = NavigatingBrowser(SIGNED_OUT, logs_in_after=3)
        manager = self._manager(browser, tmp_path, with_cookies=False)
        assert manager.login(on_status=self._notify, timeout=60, interval=3)
        assert self.statuses[-1] == "logged_in"
        assert manager.has_session()

    def test_verify_refreshes_saved_cookies(self, tmp_path):
        manager = self._manager(FakeBrowser(SIGNED_IN), tmp_path, with_cookies=False)
        assert manager.verify()
        assert manager.has_session()

    def test_failed_verify_leaves_cookies_alone(self, tmp_path):
        manager = self._manager(FakeBrowser(SIGNED_OUT), tmp_path, with_cookies=False)
        assert not manager.verify()
        assert not manager.cookie_jar.path.exists()
