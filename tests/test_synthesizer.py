"""Tests for structured prompt -> text synthesis."""
from async_studio.prompt.synthesizer import format_label, synthesize
from async_studio.prompt.values import StructuredPrompt


class TestFormatLabel:
    def test_splits_camel_case(self):
        assert format_label("aspectRatio") == "aspect ratio"
        assert format_label("colorPalette") == "color palette"

    def test_plain_key_unchanged(self):
        assert format_label("subject") == "subject"


class TestSynthesize:
    def test_joins_fragments_in_insertion_order(self):
        prompt = StructuredPrompt({"subject": "cat", "colors": ["red", "blue"]})
        assert synthesize(prompt) == "subject: cat. colors: red, blue."

    def test_skips_blank_values(self):
        prompt = StructuredPrompt({"subject": "", "mood": None, "style": "bold"})
        assert synthesize(prompt) == "style: bold."

    def test_empty_prompt_gives_empty_text(self):
        assert synthesize(StructuredPrompt()) == ""

    def test_nested_values_render_as_compact_json(self):
        prompt = StructuredPrompt({"lighting": {"key": "soft"}})
        assert synthesize(prompt) == 'lighting: {"key":"soft"}.'

    def test_scalars_render_as_json_literals(self):
        prompt = StructuredPrompt({"hdr": True, "count": 3})
        assert synthesize(prompt) == "hdr: true. count: 3."
