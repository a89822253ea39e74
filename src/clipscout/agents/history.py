"""Persistent retrieval history shared across segments of a project."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from ..models.footage import Candidate

logger = logging.getLogger(__name__)


@dataclass
class RetrievalHistory:
    """Remembers recent downloads and videos that needed async preparation."""

    recent: List[str] = field(default_factory=list)  # oldest first
    preparing: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)  # url -> reason
    window: int = 6

    def mark_used(self, url: str) -> None:
        if url in self.recent:
            self.recent.remove(url)
        self.recent.append(url)
        del self.recent[:-self.window]

    def mark_preparing(self, url: str) -> None:
        if url not in self.preparing:
            self.preparing.append(url)

    def add_skipped(self, url: str, reason: str) -> None:
        self.skipped[url] = reason

    def is_recent(self, url: str) -> bool:
        return url in self.recent[-self.window:]

    def is_preparing(self, url: str) -> bool:
        return url in self.preparing

    def prioritize(self, candidates: List[Candidate]) -> List[Candidate]:
        """Fresh candidates first, keeping order; repeats and slow ones last."""
        fresh, stale = [], []
        for candidate in candidates:
            if self.is_recent(candidate.url) or self.is_preparing(candidate.url):
                stale.append(candidate)
            else:
                fresh.append(candidate)
        if stale and fresh:
            logger.debug("Deprioritised %d recently used or slow candidates", len(stale))
        return fresh + stale

    # ── Persistence ──────────────────────────────────────────────────

    def save(self, path: str | Path) -> None:
        """Persist history to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "recent": self.recent,
            "preparing": self.preparing,
            "skipped": self.skipped,
            "window": self.window,
        }
        path.write_text(json.dumps(data, indent=2))

    @classmethod
    def load(cls, path: str | Path) -> RetrievalHistory:
        """Load history from a JSON file; a missing file yields an empty history."""
        path = Path(path)
        if not path.exists():
            return cls()
        raw = json.loads(path.read_text())
        return cls(
            recent=raw.get("recent", []),
            preparing=raw.get("preparing", []),
            skipped=raw.get("skipped", {}),
            window=raw.get("window", 6),
        )
