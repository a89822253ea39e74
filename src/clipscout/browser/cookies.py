"""On-disk cookie jar shared by every browser session of a profile."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

MIN_SESSION_COOKIES = 5
_SESSION_NAME_HINTS = ("session", "auth", "token", "user")


class CookieJar:
    """JSON array of Playwright cookie records at a fixed path.

    Writes go through a temp file and an atomic rename, so concurrent runs
    sharing one profile resolve as last-writer-wins without torn files.
    """

    def __init__(self, path: str | Path, platform_domain: str = "viory"):
        self.path = Path(path).expanduser()
        self.platform_domain = platform_domain

    def load(self) -> List[Dict]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable cookie file %s: %s", self.path, e)
            return []
        return data if isinstance(data, list) else []

    def save(self, cookies: List[Dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(cookies, f, indent=2)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Saved %d cookies to %s", len(cookies), self.path)

    def looks_authenticated(self) -> bool:
        """Enough cookies, at least one of which looks like a session cookie."""
        cookies = self.load()
        if len(cookies) <= MIN_SESSION_COOKIES:
            return False
        for cookie in cookies:
            name = str(cookie.get("name", "")).lower()
            domain = str(cookie.get("domain", "")).lower()
            if any(h in name for h in _SESSION_NAME_HINTS) or self.platform_domain in domain:
                return True
        return False
