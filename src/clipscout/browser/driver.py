"""Playwright-backed browser driver for the licensing platform.

The driver owns one visible (or headless) Chromium page shared by search,
deep analysis and retrieval. Its methods return plain data (strings, dicts,
bytes); deciding what that data means is left to the agents, which keeps
them testable against a fake driver.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from playwright.sync_api import Download, Page
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..agents.extraction import SHOT_LIST_MARKER, META_DATA_MARKER, PageSnapshot
from ..config import NAV_TIMEOUT_MS, PlatformConfig
from ..errors import TransientPlatformError
from .cookies import CookieJar

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1400, "height": 900}
GATEWAY_STATUSES = {502, 503, 504}
LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled"]

SCREENSHOT_SELECTORS = (
    "video",
    '[class*="player"]',
    '[class*="video-container"]',
    "main img",
)
SCREENSHOT_FALLBACK_CLIP = {"x": 300, "y": 80, "width": 900, "height": 500}
MIN_SCREENSHOT_WIDTH = 200

POPUP_SELECTORS = (
    'button:has-text("×")',
    ".popup-close",
    '[aria-label="Close"]',
    ".modal-close",
)

_AUTH_MARKERS_JS = """() => {
  const q = (sel) => !!document.querySelector(sel);
  const texts = Array.from(document.querySelectorAll('button, a'))
    .map(el => (el.textContent || '').toLowerCase());
  return {
    profile: q('[class*="avatar"], [class*="profile"], [class*="user-menu"]'),
    library_link: q('a[href*="my-content"], a[href*="mycontent"]'),
    sign_in_link: q('a[href*="signin"], a[href*="login"]'),
    sign_in_button: texts.some(t => t.includes('sign in') || t.includes('log in') || t.includes('login')),
  };
}"""

_RESULT_LINKS_JS = """() => Array.from(document.querySelectorAll('a[href*="/videos/"]')).map(a => {
  const card = a.closest('article, li, [class*="card"], [class*="item"]') || a.parentElement;
  const heading = card ? card.querySelector('h2, h3') : null;
  return {
    href: a.getAttribute('href') || '',
    heading: heading ? (heading.innerText || '') : '',
    text: a.innerText || '',
  };
})"""

_SNAPSHOT_JS = """() => {
  const pick = (sel, attr) => {
    const el = document.querySelector(sel);
    if (!el) return null;
    return (attr ? el.getAttribute(attr) : el.innerText) || null;
  };
  return {
    body: document.body ? document.body.innerText : '',
    h1: pick('h1'),
    og_title: pick('meta[property="og:title"]', 'content'),
    description: pick('meta[name="description"], meta[property="og:description"]', 'content'),
    title: document.title || null,
  };
}"""

_EXPAND_SECTION_JS = """(label) => {
  const el = Array.from(document.querySelectorAll('h2, h3, h4, p, span, div'))
    .find(e => (e.textContent || '').trim() === label);
  const btn = el && el.parentElement ? el.parentElement.querySelector('button') : null;
  if (!btn) return false;
  btn.click();
  return true;
}"""

_CLICK_DOWNLOAD_JS = """() => {
  const btn = Array.from(document.querySelectorAll('button')).find(b => {
    const t = (b.innerText || '').trim();
    return /download/i.test(t) && !/mp4|720|360/i.test(t);
  });
  if (!btn) return false;
  btn.scrollIntoView({block: 'center'});
  btn.click();
  return true;
}"""

_CHECKBOX_STATE_JS = """() => {
  const box = document.querySelector('input[type="checkbox"]');
  return !!(box && box.checked);
}"""

_FORCE_CHECKBOX_JS = """() => {
  const box = document.querySelector('input[type="checkbox"]');
  if (!box) return false;
  box.checked = true;
  for (const type of ['click', 'change', 'input']) {
    box.dispatchEvent(new Event(type, {bubbles: true}));
  }
  return box.checked;
}"""

_CLICK_CONFIRM_JS = """() => {
  const modal = document.querySelector('[role="dialog"], [class*="modal"]') || document.body;
  const buttons = Array.from(modal.querySelectorAll('button'))
    .filter(b => !b.disabled && b.offsetParent !== null);
  let target = buttons.find(b => /download|confirm|submit/i.test(b.innerText || ''));
  if (!target) target = buttons.find(b => /primary|submit|bg-blue|bg-indigo/.test(b.className || ''));
  if (!target) target = buttons[buttons.length - 1];
  if (!target) return null;
  target.click();
  return (target.innerText || '').trim() || '(unlabelled)';
}"""

_MODAL_STATE_JS = """() => {
  const modal = document.querySelector('[role="dialog"], [class*="modal"]');
  const root = modal || document.body;
  const buttons = Array.from(document.querySelectorAll('button, a'))
    .filter(b => b.offsetParent !== null)
    .map(b => (b.innerText || '').trim())
    .filter(Boolean);
  return {text: (root.innerText || '').slice(0, 5000), buttons: buttons};
}"""

_CONTINUE_JS = """() => {
  const btn = Array.from(document.querySelectorAll('button, a'))
    .find(b => /^\\s*continue/i.test(b.innerText || ''));
  if (btn) btn.click();
  return !!btn;
}"""

_LIBRARY_ENTRIES_JS = """() => {
  const out = [];
  Array.from(document.querySelectorAll('button, a')).forEach((b, i) => {
    const t = (b.innerText || '').toLowerCase();
    const ready = t.includes('download') && /1080p|720p|mp4/.test(t);
    const preparing = t.includes('cancel request');
    if (!ready && !preparing) return;
    let c = b.parentElement;
    for (let depth = 0; c && depth < 8; depth++, c = c.parentElement) {
      if ((c.innerText || '').includes('ID ')) break;
    }
    const container = c || b.parentElement;
    b.setAttribute('data-clipscout-entry', String(i));
    out.push({
      index: i,
      kind: ready ? 'ready' : 'preparing',
      text: container ? (container.innerText || '').slice(0, 2000) : t,
      button: (b.innerText || '').trim(),
    });
  });
  return out;
}"""


class PlatformBrowser:
    """One Chromium page driven through the Playwright sync API."""

    def __init__(self, platform: PlatformConfig, cookie_jar: CookieJar,
                 headless: Optional[bool] = None):
        self.platform = platform
        self.cookie_jar = cookie_jar
        self.headless = platform.headless if headless is None else headless
        self._playwright = None
        self._browser = None
        self._context = None
        self._page: Optional[Page] = None
        self._downloads: List[Download] = []

    # ── Lifecycle ────────────────────────────────────────────────────

    def __enter__(self) -> PlatformBrowser:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _ensure_playwright(self):
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        return self._playwright

    def start(self) -> None:
        if self._page is not None:
            return
        playwright = self._ensure_playwright()
        self._browser = playwright.chromium.launch(
            headless=self.headless, args=LAUNCH_ARGS
        )
        self._context = self._browser.new_context(
            viewport=VIEWPORT,
            user_agent=self.platform.user_agent,
            accept_downloads=True,
        )
        cookies = self.cookie_jar.load()
        if cookies:
            self._context.add_cookies(cookies)
            logger.info("Loaded %d saved cookies", len(cookies))
        self._page = self._context.new_page()
        self._page.on("download", self._downloads.append)

    def close(self) -> None:
        """Tear down page, context, browser and Playwright in that order."""
        for resource in (self._page, self._context, self._browser):
            if resource is None:
                continue
            try:
                resource.close()
            except PlaywrightError as e:
                logger.debug("Close failed: %s", e)
        if self._playwright is not None:
            self._playwright.stop()
        self._page = self._context = self._browser = self._playwright = None

    @property
    def page(self) -> Page:
        if self._page is None:
            self.start()
        return self._page

    # ── Navigation ───────────────────────────────────────────────────

    def open(self, url: str, timeout_ms: int = NAV_TIMEOUT_MS,
             wait_for: Optional[str] = None, wait_for_ms: int = 5000) -> None:
        """Navigate; gateway errors and timeouts raise TransientPlatformError."""
        _goto(self.page, url, timeout_ms)
        if wait_for:
            try:
                self.page.wait_for_selector(wait_for, timeout=wait_for_ms)
            except PlaywrightTimeoutError:
                logger.debug("Selector %r not found on %s", wait_for, url)

    def pause(self, ms: int) -> None:
        self.page.wait_for_timeout(ms)

    def reload(self, timeout_ms: int = NAV_TIMEOUT_MS) -> None:
        try:
            self.page.reload(wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise TransientPlatformError(f"Reload timed out: {e}") from e

    def scroll(self, times: int = 3, step: int = 600, pause_ms: int = 400) -> None:
        for _ in range(times):
            self.page.mouse.wheel(0, step)
            self.page.wait_for_timeout(pause_ms)

    def cookies(self) -> List[Dict]:
        return self._context.cookies() if self._context is not None else []

    # ── Session probes ───────────────────────────────────────────────

    def auth_markers(self) -> Dict[str, bool]:
        return self.page.evaluate(_AUTH_MARKERS_JS)

    def probe_headless(self, url: str, cookies: List[Dict],
                       timeout_ms: int) -> Dict[str, bool]:
        """Read auth markers from a throwaway headless browser."""
        with self._disposable_page(cookies) as page:
            _goto(page, url, timeout_ms)
            page.wait_for_timeout(800)
            return page.evaluate(_AUTH_MARKERS_JS)

    @contextmanager
    def _disposable_page(self, cookies: List[Dict]) -> Iterator[Page]:
        playwright = self._ensure_playwright()
        browser = context = page = None
        try:
            browser = playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
            context = browser.new_context(
                viewport=VIEWPORT, user_agent=self.platform.user_agent
            )
            if cookies:
                context.add_cookies(cookies)
            page = context.new_page()
            yield page
        finally:
            for resource in (page, context, browser):
                if resource is None:
                    continue
                try:
                    resource.close()
                except PlaywrightError as e:
                    logger.debug("Headless teardown failed: %s", e)

    # ── Search & deep analysis ───────────────────────────────────────

    def result_links(self) -> List[Dict[str, str]]:
        self.scroll()
        return self.page.evaluate(_RESULT_LINKS_JS)

    def expand_sections(self) -> None:
        for label in (SHOT_LIST_MARKER, META_DATA_MARKER):
            try:
                if self.page.evaluate(_EXPAND_SECTION_JS, label):
                    self.page.wait_for_timeout(200)
            except PlaywrightError as e:
                logger.debug("Could not expand %r: %s", label, e)

    def snapshot(self) -> PageSnapshot:
        data = self.page.evaluate(_SNAPSHOT_JS)
        return PageSnapshot(
            url=self.page.url,
            body_text=data.get("body") or "",
            h1=data.get("h1"),
            og_title=data.get("og_title"),
            document_title=data.get("title"),
            meta_description=data.get("description"),
        )

    def screenshot(self) -> Optional[bytes]:
        """Capture the player, else a fallback element, else a fixed region."""
        for selector in SCREENSHOT_SELECTORS:
            locator = self.page.locator(selector).first
            try:
                if not locator.count():
                    continue
                box = locator.bounding_box()
                if box and box["width"] > MIN_SCREENSHOT_WIDTH:
                    return locator.screenshot(type="png", timeout=5000)
            except PlaywrightError as e:
                logger.debug("Screenshot via %r failed: %s", selector, e)
        try:
            return self.page.screenshot(type="png", clip=SCREENSHOT_FALLBACK_CLIP)
        except PlaywrightError as e:
            logger.warning("Screenshot failed for %s: %s", self.page.url, e)
            return None

    # ── Download modal ───────────────────────────────────────────────

    def dismiss_popups(self) -> None:
        for selector in POPUP_SELECTORS:
            locator = self.page.locator(selector).first
            try:
                if locator.is_visible():
                    locator.click(timeout=1000)
                    self.page.wait_for_timeout(300)
            except PlaywrightError as e:
                logger.debug("Popup %r not dismissed: %s", selector, e)

    def page_title(self) -> Optional[str]:
        return self.snapshot().h1

    def click_download_button(self) -> bool:
        self.page.mouse.wheel(0, 300)
        self.page.wait_for_timeout(300)
        if not self.page.evaluate(_CLICK_DOWNLOAD_JS):
            return False
        try:
            self.page.wait_for_selector('input[type="checkbox"]', timeout=5000)
        except PlaywrightTimeoutError:
            logger.debug("No restrictions checkbox appeared")
        return True

    def restrictions_checked(self) -> bool:
        return bool(self.page.evaluate(_CHECKBOX_STATE_JS))

    def check_directly(self) -> None:
        self._try_click(self.page.locator('input[type="checkbox"]').first, force=True)

    def check_via_label(self) -> None:
        self._try_click(self.page.locator(
            'label:has-text("restrictions"), label:has-text("understand")'
        ).first)

    def check_via_script(self) -> None:
        try:
            self.page.evaluate(_FORCE_CHECKBOX_JS)
        except PlaywrightError as e:
            logger.debug("Scripted checkbox failed: %s", e)

    def check_via_row(self) -> None:
        self._try_click(self.page.locator(
            'div:has(input[type="checkbox"]):has-text("restrictions")'
        ).last)

    def _try_click(self, locator, force: bool = False) -> None:
        try:
            locator.click(force=force, timeout=3000)
            self.page.wait_for_timeout(200)
        except PlaywrightError as e:
            logger.debug("Click failed: %s", e)

    def click_confirm(self) -> Optional[str]:
        self._downloads.clear()
        return self.page.evaluate(_CLICK_CONFIRM_JS)

    def modal_state(self) -> Tuple[str, List[str]]:
        data = self.page.evaluate(_MODAL_STATE_JS)
        return data.get("text") or "", list(data.get("buttons") or [])

    def leave_preparing_modal(self) -> None:
        try:
            self.page.evaluate(_CONTINUE_JS)
            self.page.wait_for_timeout(300)
            self.page.keyboard.press("Escape")
        except PlaywrightError as e:
            logger.debug("Could not close preparing modal: %s", e)

    def wait_for_download(self, timeout_s: float) -> Optional[Download]:
        """Wait for a download event captured by the page listener."""
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            if self._downloads:
                return self._downloads.pop(0)
            # wait_for_timeout keeps the event loop turning so events arrive
            self.page.wait_for_timeout(250)
        return self._downloads.pop(0) if self._downloads else None

    def save_download(self, download: Download, dest_dir: Path) -> Path:
        dest_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = dest_dir / f"{stamp}_{download.suggested_filename}"
        download.save_as(str(path))
        return path

    # ── Library ──────────────────────────────────────────────────────

    def library_entries(self) -> List[Dict]:
        return self.page.evaluate(_LIBRARY_ENTRIES_JS)

    def click_library_entry(self, index: int) -> None:
        self._downloads.clear()
        self.page.locator(f'[data-clipscout-entry="{index}"]').first.click(timeout=5000)


def _goto(page: Page, url: str, timeout_ms: int) -> None:
    try:
        response = page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise TransientPlatformError(f"Timed out loading {url}") from e
    except PlaywrightError as e:
        raise TransientPlatformError(f"Could not load {url}: {e}") from e
    if response is not None and response.status in GATEWAY_STATUSES:
        raise TransientPlatformError(
            f"Gateway error {response.status} for {url}", status=response.status
        )
