"""Tests for page navigation error mapping in the browser driver."""

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from clipscout.browser.driver import _goto
from clipscout.errors import TransientPlatformError

URL = "https://www.viory.video/en/videos/x1/a"


class FakeResponse:
    def __init__(self, status):
        self.status = status


class FakePage:
    def __init__(self, error=None, status=200):
        self.error = error
        self.status = status

    def goto(self, url, wait_until=None, timeout=None):
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status)


class TestGoto:
    def test_ok(self):
        _goto(FakePage(), URL, 1000)

    def test_gateway_status_is_transient(self):
        with pytest.raises(TransientPlatformError) as exc:
            _goto(FakePage(status=503), URL, 1000)
        assert exc.value.status == 503

    def test_timeout_is_transient(self):
        with pytest.raises(TransientPlatformError):
            _goto(FakePage(error=PlaywrightTimeoutError("Timeout 1000ms exceeded")), URL, 1000)

    def test_network_error_is_transient(self):
        error = PlaywrightError(f"net::ERR_CONNECTION_RESET at {URL}")
        with pytest.raises(TransientPlatformError, match="ERR_CONNECTION_RESET"):
            _goto(FakePage(error=error), URL, 1000)
