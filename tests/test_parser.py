"""Tests for text -> structured prompt parsing."""
import pytest

from async_studio.prompt.parser import camel_key, parse, split_segments
from async_studio.prompt.synthesizer import synthesize
from async_studio.prompt.values import Nested, StructuredPrompt


class TestCamelKey:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("subject", "subject"),
            ("Aspect ratio", "aspectRatio"),
            ("color palette", "colorPalette"),
            ("  target   audience ", "targetAudience"),
        ],
    )
    def test_labels(self, label, expected):
        assert camel_key(label) == expected


class TestSplitSegments:
    def test_decimal_points_do_not_split(self):
        pieces = [piece for piece, _ in split_segments("version: 2.5. mood: calm")]
        assert pieces == ["version: 2.5", " mood: calm"]

    def test_brackets_and_quotes_are_opaque(self):
        pieces = [piece for piece, _ in split_segments('a: {"x": 1, "y": "b, c"}, d: e')]
        assert pieces == ['a: {"x": 1, "y": "b, c"}', " d: e"]

    def test_unclosed_quote_is_plain_text(self):
        pieces = [piece for piece, _ in split_segments('subject: 5" tall cat, style: bold')]
        assert pieces == ['subject: 5" tall cat', " style: bold"]

    def test_unclosed_bracket_is_plain_text(self):
        pieces = [piece for piece, _ in split_segments("colors: [red. mood: calm")]
        assert pieces == ["colors: [red", " mood: calm"]

    def test_records_preceding_separator(self):
        assert split_segments("a: b, c") == [("a: b", ""), (" c", ",")]


class TestParse:
    def test_updates_changed_value(self):
        assert parse("subject: dog", {"subject": "cat"}) == {"subject": "dog"}

    def test_synthesized_text_round_trips(self):
        """Synthesizer output parses back to the same typed values."""
        structured = StructuredPrompt({"subject": "cat", "colors": ["red", "blue"], "count": 3})
        assert parse(synthesize(structured), structured) == structured

    def test_unchanged_value_keeps_its_type(self):
        result = parse("enabled: true. count: 3", {"enabled": True, "count": 3})
        assert result.to_json() == {"enabled": True, "count": 3}

    def test_unlabelled_prose_is_ignored(self):
        assert parse("A sunny beach, mood: calm", {}) == {"mood": "calm"}

    def test_new_labels_become_camel_case_keys(self):
        result = parse("subject: cat. background color: teal", {"subject": "cat"})
        assert result.to_json() == {"subject": "cat", "backgroundColor": "teal"}

    def test_comma_list_becomes_sequence(self):
        assert parse("colors: red, green", {}).to_json() == {"colors": ["red", "green"]}

    def test_json_value_becomes_nested(self):
        result = parse('lighting: {"key": "soft", "fill": 0.5}', {})
        assert isinstance(result["lighting"], Nested)
        assert result.to_json() == {"lighting": {"key": "soft", "fill": 0.5}}

    def test_keys_not_mentioned_are_kept(self):
        result = parse("mood: calm", {"subject": "cat", "mood": "tense"})
        assert result.to_json() == {"subject": "cat", "mood": "calm"}

    def test_blank_text_returns_previous(self):
        assert parse("   ", {"subject": "cat"}) == {"subject": "cat"}

    def test_never_raises(self):
        """Garbage in either argument falls back instead of raising."""
        assert parse(None, {"subject": "cat"}) == {"subject": "cat"}
        assert parse("subject: x", ["not", "a", "mapping"]) == {"subject": "x"}

    def test_scalar_strings_survive_a_fresh_parse(self):
        """Parsing synthesized text against an empty prompt recovers scalar string values."""
        structured = StructuredPrompt({"subject": "cat", "aspectRatio": "1:1", "mood": "calm"})
        assert parse(synthesize(structured), {}) == structured

    def test_stray_quote_does_not_hide_later_labels(self):
        result = parse('subject: 5" tall cat, style: bold', {"subject": "x", "style": "flat"})
        assert result.to_json() == {"subject": '5" tall cat', "style": "bold"}

    def test_stray_bracket_does_not_hide_later_labels(self):
        result = parse("subject: cat [draft. mood: calm", {"mood": "tense"})
        assert result["mood"].to_json() == "calm"
