"""Segment analysis and search-query generation via the text model."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from ..errors import AnalysisError
from ..llm_client import LLMClient
from ..models.footage import PersonCheck, SearchAnalysis, Segment

logger = logging.getLogger(__name__)

PERSON_CONFIRM_THRESHOLD = 0.7
MAX_EXPANSION_QUERIES = 12

ANALYSIS_SYSTEM_PROMPT = """\
You are a news video researcher for a footage licensing platform. Given a \
news segment, decide what the B-roll must show and write search queries for \
the platform's own search box.

## Step 1: person or footage?

Set has_important_person = true only when a specific, named public figure \
(a head of state, minister, spokesperson...) is the subject of the story \
and their own statements or actions are being reported. Generic roles \
("officials", "commanders") do not count.

## Step 2: queries

- Return 5 queries, each 1-3 words, ordered from most specific to most generic.
- Person stories: start with "<Surname> says", then "<Surname> speech", then \
the person with a location (Kremlin, White House...), then a generic role.
- Other stories: every query pairs the country (or a country-specific \
organisation such as IRGC or Pentagon) with a visual action: parade, \
launch, troops, streets.
- Obscure model numbers return nothing: use the broader category instead \
("US bomber aircraft" rather than "B-21 Raider").
- The last query is always a safe generic fallback such as \
"<country> news footage" or "military footage".

## Output format

Return valid JSON only (no markdown fences, no extra text):
{
  "main_subject": "what the footage should show",
  "country": "primary country",
  "secondary_country": "second country or null",
  "location_keywords": ["Moscow", "Kremlin"],
  "has_important_person": true,
  "person_name": "full name or null",
  "person_description": "how to recognise them on screen, or null",
  "key_visuals": ["what must be visible"],
  "must_show": ["required elements with country context"],
  "avoid": ["wrong countries", "reaction pieces"],
  "queries": ["query1", "query2", "query3", "query4", "query5"]
}"""

PERSON_CHECK_PROMPT = """\
Look at this image. Is the person shown "{name}"?

Answer with JSON only:
{{
  "is_this_person": true,
  "confidence": 0.0,
  "who_is_shown": "name if you can identify them, or 'unknown'"
}}"""

_EXPANSION_STOPWORDS = {"this", "that", "with", "from", "have", "been", "were", "said"}


class QueryGenerator:
    """Turns a segment into a SearchAnalysis with ranked search queries."""

    def __init__(self, llm_client: LLMClient):
        self.llm = llm_client

    def analyze(self, segment: Segment) -> SearchAnalysis:
        """One text-model call; malformed output raises AnalysisError."""
        prompt = f'Headline: "{segment.headline}"\nText: "{segment.text}"'
        try:
            data = self.llm.generate_json(prompt, system_prompt=ANALYSIS_SYSTEM_PROMPT)
        except json.JSONDecodeError as e:
            raise AnalysisError(f"Segment analysis was not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise AnalysisError("Segment analysis was not a JSON object")

        analysis = SearchAnalysis.from_dict(data)
        if not analysis.queries:
            raise AnalysisError("Segment analysis contained no queries")
        logger.info(
            "Analysis: subject=%r country=%r person=%s queries=%s",
            analysis.main_subject, analysis.country,
            analysis.person_name if analysis.requires_person else "-",
            analysis.queries,
        )
        return analysis

    def confirm_person(self, frame: bytes, person_name: str) -> Optional[PersonCheck]:
        """Ask the vision model whether the segment frame shows the person.

        Advisory only: returns None when the answer cannot be read.
        """
        raw = self.llm.generate_with_images(
            PERSON_CHECK_PROMPT.format(name=person_name), [frame]
        )
        try:
            data = json.loads(LLMClient._extract_json(raw))
            confidence = float(data.get("confidence") or 0.0)
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.warning("Could not parse person check: %s", e)
            return None

        check = PersonCheck(
            expected_person=person_name,
            is_confirmed=data.get("is_this_person") is True
            and confidence >= PERSON_CONFIRM_THRESHOLD,
            confidence=confidence,
            detected_person=str(data.get("who_is_shown") or "unknown"),
        )
        logger.info("Segment frame %s %s (%.0f%%, saw %s)",
                    "shows" if check.is_confirmed else "does not show",
                    person_name, confidence * 100, check.detected_person)
        return check


def expansion_queries(analysis: SearchAnalysis, segment: Segment) -> List[str]:
    """Broader fallback queries for when every generated query found nothing."""
    country = analysis.country.strip()
    text = f"{segment.headline} {segment.text}".lower()
    queries: List[str] = []

    def add(*items: str) -> None:
        queries.extend(items)

    if country:
        add(f"{country} news footage", f"{country} military",
            f"{country} defense", f"{country} armed forces")

    if country and any(w in text for w in ("military", "army", "defense")):
        add(f"{country} troops", f"{country} soldiers", f"{country} weapons")

    if any(w in text for w in ("aircraft", "jet", "plane", "air force")):
        if country:
            add(f"{country} aircraft", f"{country} air force", f"{country} fighter jet")
        add("military aircraft", "fighter jet footage")

    if any(w in text for w in ("ship", "naval", "navy", "carrier")):
        if country:
            add(f"{country} navy", f"{country} warship", f"{country} naval")
        add("warship footage", "naval footage")

    for visual in analysis.key_visuals[:3]:
        if country:
            add(f"{country} {visual}")
        add(f"{visual} footage")

    words = []
    for word in text.split():
        if len(word) > 3 and word not in words:
            words.append(word)
    keywords = [w for w in words[:10] if w not in _EXPANSION_STOPWORDS]
    for keyword in keywords[:3]:
        if country:
            add(f"{country} {keyword}")
        add(f"{keyword} news")

    if any(w in text for w in ("war", "conflict", "attack")):
        add("military conflict footage", "war footage")
    if any(w in text for w in ("drill", "exercise", "training")):
        add("military exercise", "military drill")
    if any(w in text for w in ("meeting", "summit", "talks")):
        add("diplomatic meeting", "international summit")

    add("military footage", "defense news")
    if country:
        add(f"{country} footage")

    unique = list(dict.fromkeys(queries))
    return unique[:MAX_EXPANSION_QUERIES]
