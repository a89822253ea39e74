"""Tests for detail-page metadata extraction and result link normalisation."""

from clipscout.agents.extraction import (
    PageSnapshot,
    clean_credit,
    extract_metadata,
    normalize_result_links,
    shot_list_between_markers,
)

BASE = "https://www.viory.video"

BODY = """Sign in
Venezuelan Foreign Minister meets Putin in Moscow
Russian President Vladimir Putin held talks with Venezuelan Foreign Minister Yvan Gil at the Kremlin on Tuesday.
Short line
Duration: 02:15
Mandatory credit: Kremlin Pool; No access Russia
Shot list
Expand
1. Wide of Kremlin hall
2. Putin shakes hands with Gil
3. Delegations seated at the table
Meta data
Location: Moscow
"""


def _snapshot(**kwargs) -> PageSnapshot:
    defaults = dict(url=f"{BASE}/en/videos/abc123/putin-gil", body_text=BODY)
    defaults.update(kwargs)
    return PageSnapshot(**defaults)


class TestTitleStrategies:
    def test_heading_wins(self):
        meta = extract_metadata(_snapshot(h1="Heading", og_title="OG", document_title="Doc | Viory"))
        assert meta["title"] == "Heading"

    def test_og_title_fallback(self):
        meta = extract_metadata(_snapshot(h1="  ", og_title="OG title"))
        assert meta["title"] == "OG title"

    def test_document_title_suffix_stripped(self):
        meta = extract_metadata(_snapshot(document_title="Putin meets Gil | Viory Video"))
        assert meta["title"] == "Putin meets Gil"

    def test_no_title(self):
        assert extract_metadata(_snapshot())["title"] is None


class TestBodyFields:
    def test_video_info_keeps_long_lines_only(self):
        meta = extract_metadata(_snapshot(h1="Venezuelan Foreign Minister meets Putin in Moscow"))
        assert meta["video_info"].startswith("Russian President Vladimir Putin held talks")
        assert "Short line" not in meta["video_info"]

    def test_description_from_meta(self):
        meta = extract_metadata(_snapshot(meta_description=" Talks in Moscow "))
        assert meta["description"] == "Talks in Moscow"

    def test_shot_list_between_markers(self):
        shots = shot_list_between_markers(_snapshot())
        assert shots.startswith("1. Wide of Kremlin hall")
        assert "Location" not in shots
        assert "Expand" not in shots

    def test_shot_list_numbered_fallback(self):
        body = "Intro\n1. Exterior of ministry\n2. Officials arrive\nOther"
        meta = extract_metadata(_snapshot(body_text=body))
        assert meta["shot_list"] == "1. Exterior of ministry\n2. Officials arrive"

    def test_single_numbered_line_is_not_a_shot_list(self):
        meta = extract_metadata(_snapshot(body_text="1. Only one shot"))
        assert meta["shot_list"] is None

    def test_duration_and_credit(self):
        meta = extract_metadata(_snapshot())
        assert meta["duration"] == "02:15"
        assert meta["mandatory_credit"] == "Kremlin Pool"

    def test_duration_label_is_case_insensitive(self):
        meta = extract_metadata(_snapshot(body_text="DURATION 1:05\n"))
        assert meta["duration"] == "1:05"

    def test_all_text_capped(self):
        meta = extract_metadata(_snapshot(body_text="x" * 9000))
        assert len(meta["all_text"]) == 8000


class TestCleanCredit:
    def test_cuts_restriction_after_slash(self):
        assert clean_credit("RIA Novosti/No use in Russia") == "RIA Novosti"

    def test_cuts_dash_clause(self):
        assert clean_credit("Ruptly - must be on screen") == "Ruptly"

    def test_strips_trailing_punctuation(self):
        assert clean_credit("Reuters.") == "Reuters"

    def test_too_short_is_rejected(self):
        assert clean_credit("AB") is None

    def test_too_long_is_rejected(self):
        assert clean_credit("A" * 101) is None


class TestNormalizeResultLinks:
    def test_filters_and_absolutizes(self):
        raw = [
            {"href": "/en/videos/a1/first", "heading": "First"},
            {"href": "/en/videos", "heading": "Listing"},
            {"href": "/en/videos/a2/second?ref=x", "heading": "Tracked"},
            {"href": "/en/about", "heading": "About"},
        ]
        links = normalize_result_links(raw, BASE, limit=20)
        assert links == [{"url": f"{BASE}/en/videos/a1/first", "title": "First"}]

    def test_dedupes_and_fills_missing_title(self):
        raw = [
            {"href": "/en/videos/a1/first", "heading": "", "text": ""},
            {"href": "/en/videos/a1/first", "text": "Card title\n02:15"},
            {"href": "/en/videos/a3/untitled"},
        ]
        links = normalize_result_links(raw, BASE, limit=20)
        assert links == [{"url": f"{BASE}/en/videos/a1/first", "title": "Card title"}]

    def test_respects_limit(self):
        raw = [{"href": f"/en/videos/v{i}/clip", "heading": f"Clip {i}"} for i in range(30)]
        assert len(normalize_result_links(raw, BASE, limit=20)) == 20
