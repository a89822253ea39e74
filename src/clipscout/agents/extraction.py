"""Metadata extraction strategies for candidate detail pages.

The browser driver captures a ``PageSnapshot`` (visible text plus a few
metadata fields); each strategy below turns it into an optional string.
Strategies for a field are tried in order and the first non-empty result
wins, with ``None`` meaning nothing matched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urljoin

ALL_TEXT_LIMIT = 8000
TITLE_LIMIT = 200
DESCRIPTION_LIMIT = 2500
DESCRIPTION_WINDOW = 4000
DESCRIPTION_MAX_LINES = 6
DESCRIPTION_MIN_LINE = 50
SHOT_LIST_LIMIT = 2000
SHOT_LIST_MIN = 20
CREDIT_MIN = 3
CREDIT_MAX = 100

SHOT_LIST_MARKER = "Shot list"
META_DATA_MARKER = "Meta data"

_DOC_TITLE_SUFFIX_RE = re.compile(r"\s*\|.*$")
_DURATION_RE = re.compile(r"Duration[\s:]*(\d{1,2}:\d{2})", re.IGNORECASE)
_CREDIT_RE = re.compile(r"[Mm]andatory\s*credit[:\s]+([^\n]+)")
_NUMBERED_SHOT_RE = re.compile(r"^\s*\d{1,2}[.)]\s+\S")
_TOGGLE_PREFIX_RE = re.compile(r"^\s*(?:Expand|Collapse)\s*", re.IGNORECASE)
_BOILERPLATE = ("cookie", "terms of", "for subscribers only")

# Applied in order; each trims a trailing restriction or usage clause.
_CREDIT_CUTS = (
    re.compile(r";.*$"),
    re.compile(r"/[A-Z].*$", re.IGNORECASE),
    re.compile(r"\s*/-.*$"),
    re.compile(r"\s*/\s*-.*$"),
    re.compile(r"\s+-\s+.*$"),
)
_CREDIT_TRAILING_RE = re.compile(r"[.,;:/]+$")


@dataclass
class PageSnapshot:
    """Raw text captured from a candidate page."""

    url: str
    body_text: str = ""
    h1: Optional[str] = None
    og_title: Optional[str] = None
    document_title: Optional[str] = None
    meta_description: Optional[str] = None


Strategy = Callable[[PageSnapshot], Optional[str]]


def first_match(strategies: Iterable[Strategy], snapshot: PageSnapshot) -> Optional[str]:
    """Run strategies in order, returning the first non-empty result."""
    for strategy in strategies:
        value = strategy(snapshot)
        if value:
            return value
    return None


def _clean(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    text = text.strip()
    return text or None


# ── Title ────────────────────────────────────────────────────────────


def title_from_heading(snapshot: PageSnapshot) -> Optional[str]:
    return _clean(snapshot.h1)


def title_from_og(snapshot: PageSnapshot) -> Optional[str]:
    return _clean(snapshot.og_title)


def title_from_document(snapshot: PageSnapshot) -> Optional[str]:
    if not snapshot.document_title:
        return None
    return _clean(_DOC_TITLE_SUFFIX_RE.sub("", snapshot.document_title))


TITLE_STRATEGIES: List[Strategy] = [
    title_from_heading,
    title_from_og,
    title_from_document,
]


# ── Description block ────────────────────────────────────────────────


def _find(text: str, needle: str, start: int = 0) -> int:
    return text.lower().find(needle.lower(), start)


def _is_description_line(line: str) -> bool:
    if len(line) <= DESCRIPTION_MIN_LINE or line.startswith("©"):
        return False
    lower = line.lower()
    return not any(b in lower for b in _BOILERPLATE)


def description_between_markers(snapshot: PageSnapshot) -> Optional[str]:
    """Substantial lines between the title and the shot-list marker."""
    body = snapshot.body_text
    if not body:
        return None
    title = snapshot.h1 or ""
    start = 0
    if title:
        pos = body.find(title)
        if pos != -1:
            start = pos + len(title)
    end = _find(body, SHOT_LIST_MARKER, start)
    if end == -1 or end - start > DESCRIPTION_WINDOW:
        end = start + DESCRIPTION_WINDOW

    lines = [ln.strip() for ln in body[start:end].splitlines()]
    kept = [ln for ln in lines if _is_description_line(ln)]
    if not kept:
        return None
    return "\n\n".join(kept[:DESCRIPTION_MAX_LINES])[:DESCRIPTION_LIMIT]


def description_from_meta(snapshot: PageSnapshot) -> Optional[str]:
    text = _clean(snapshot.meta_description)
    return text[:DESCRIPTION_LIMIT] if text else None


DESCRIPTION_STRATEGIES: List[Strategy] = [
    description_between_markers,
    description_from_meta,
]


# ── Shot list ────────────────────────────────────────────────────────


def shot_list_between_markers(snapshot: PageSnapshot) -> Optional[str]:
    body = snapshot.body_text
    start = _find(body, SHOT_LIST_MARKER)
    if start == -1:
        return None
    start += len(SHOT_LIST_MARKER)
    end = _find(body, META_DATA_MARKER, start)
    chunk = body[start:end] if end != -1 else body[start:start + SHOT_LIST_LIMIT]
    chunk = _TOGGLE_PREFIX_RE.sub("", chunk).strip()
    if len(chunk) <= SHOT_LIST_MIN:
        return None
    return chunk[:SHOT_LIST_LIMIT]


def shot_list_from_numbered_lines(snapshot: PageSnapshot) -> Optional[str]:
    """Fallback: consecutive "1. WIDE shot ..." style lines anywhere on the page."""
    shots = [
        ln.strip() for ln in snapshot.body_text.splitlines()
        if _NUMBERED_SHOT_RE.match(ln)
    ]
    if len(shots) < 2:
        return None
    return "\n".join(shots)[:SHOT_LIST_LIMIT]


SHOT_LIST_STRATEGIES: List[Strategy] = [
    shot_list_between_markers,
    shot_list_from_numbered_lines,
]


# ── Duration & credit ────────────────────────────────────────────────


def duration_token(snapshot: PageSnapshot) -> Optional[str]:
    match = _DURATION_RE.search(snapshot.body_text)
    return match.group(1) if match else None


def clean_credit(raw: str) -> Optional[str]:
    """Trim a raw credit line down to the attribution itself."""
    credit = raw.strip()
    for pattern in _CREDIT_CUTS:
        credit = pattern.sub("", credit)
    credit = _CREDIT_TRAILING_RE.sub("", credit.strip()).strip()
    if CREDIT_MIN <= len(credit) <= CREDIT_MAX:
        return credit
    return None


def credit_after_label(snapshot: PageSnapshot) -> Optional[str]:
    match = _CREDIT_RE.search(snapshot.body_text)
    if not match:
        return None
    return clean_credit(match.group(1))


# ── Aggregate ────────────────────────────────────────────────────────


def extract_metadata(snapshot: PageSnapshot) -> Dict[str, Optional[str]]:
    """Run every field's strategies against one snapshot."""
    return {
        "title": first_match(TITLE_STRATEGIES, snapshot),
        "description": description_from_meta(snapshot),
        "video_info": first_match(DESCRIPTION_STRATEGIES, snapshot),
        "shot_list": first_match(SHOT_LIST_STRATEGIES, snapshot),
        "duration": duration_token(snapshot),
        "mandatory_credit": credit_after_label(snapshot),
        "all_text": snapshot.body_text[:ALL_TEXT_LIMIT] or None,
    }


# ── Search result links ──────────────────────────────────────────────


def normalize_result_links(
    raw_links: Iterable[Dict[str, str]], base_url: str, limit: int
) -> List[Dict[str, str]]:
    """Filter, absolutize and de-duplicate result links scraped from a search page.

    Each raw link carries ``href`` plus optional ``heading`` (nearest card
    heading) and ``text`` (the anchor's own text).
    """
    by_url: Dict[str, Dict[str, str]] = {}
    for raw in raw_links:
        href = (raw.get("href") or "").strip()
        if "/videos/" not in href or "?" in href:
            continue
        if href.rstrip("/").endswith("/videos"):
            continue
        url = urljoin(base_url + "/", href)
        title = (raw.get("heading") or "").strip()
        if not title:
            lines = (raw.get("text") or "").strip().splitlines()
            title = lines[0].strip() if lines else ""
        title = title[:TITLE_LIMIT]

        existing = by_url.get(url)
        if existing is None:
            by_url[url] = {"url": url, "title": title}
        elif not existing["title"] and title:
            existing["title"] = title

    results = [r for r in by_url.values() if r["title"]]
    return results[:limit]
