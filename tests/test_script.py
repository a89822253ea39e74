"""Tests for splitting scripts into segments."""

from clipscout.script import parse_script


class TestParseScript:
    def test_splits_on_markers(self):
        script = (
            "[ON SCREEN: Putin meets Yvan Gil]\nTalks in Moscow.\n\n"
            "[ON SCREEN - Flood in Spain]\r\nValencia streets under water.\n"
        )
        segments = parse_script(script)
        assert [s.headline for s in segments] == ["Putin meets Yvan Gil", "Flood in Spain"]
        assert segments[0].text == "Talks in Moscow."
        assert segments[1].text == "Valencia streets under water."

    def test_marker_is_case_insensitive(self):
        assert parse_script("[on screen: Summit]\nText")[0].headline == "Summit"

    def test_no_markers_is_one_segment(self):
        segments = parse_script("Just some news text.")
        assert len(segments) == 1
        assert segments[0].headline == "News Content"

    def test_empty_script(self):
        assert parse_script("  \n ") == []
