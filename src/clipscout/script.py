"""Split a news script into segments on [ON SCREEN: ...] markers."""

from __future__ import annotations

import re
from typing import List

from .models.footage import Segment

DEFAULT_HEADLINE = "News Content"

_MARKER_RE = re.compile(r"\[ON\s*SCREEN[:\s-]*([^\]]+)\]", re.IGNORECASE)


def parse_script(script: str) -> List[Segment]:
    """One segment per marker; a script without markers is a single segment."""
    text = script.replace("\r\n", "\n")
    matches = list(_MARKER_RE.finditer(text))
    if not matches:
        body = text.strip()
        return [Segment(DEFAULT_HEADLINE, body)] if body else []

    segments = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        segments.append(Segment(match.group(1).strip(), text[match.end():end].strip()))
    return segments
