"""
Unit tests for src/common/json_utils.py

Tests robust JSON parsing for capability outputs including:
- Valid JSON parsing
- Markdown code block extraction
- Repair of slightly malformed JSON
- List extraction from bare arrays or wrapping objects
- Error handling for invalid inputs
"""

import pytest

from src.common.json_utils import _strip_markdown_blocks, parse_llm_json, parse_llm_json_list


# ===== TESTS: Object parsing =====

class TestParseLlmJson:
    """Tests for parsing a single JSON object."""

    def test_parses_simple_json(self):
        """Should parse simple valid JSON."""
        assert parse_llm_json('{"key": "value"}') == {"key": "value"}

    def test_strips_json_markdown_block(self):
        """Should strip ```json ... ``` wrapper."""
        assert parse_llm_json('```json\n{"score": 7}\n```') == {"score": 7}

    def test_extracts_from_surrounding_prose(self):
        """Should cut the object out of surrounding text."""
        text = 'Here are the adjustments:\n{"adjustments": []}\nLet me know.'
        assert parse_llm_json(text) == {"adjustments": []}

    def test_repairs_trailing_comma(self):
        """Should repair a trailing comma."""
        assert parse_llm_json('{"a": 1, "b": 2,}') == {"a": 1, "b": 2}

    def test_repairs_single_quotes(self):
        """Should repair single-quoted strings."""
        assert parse_llm_json("{'a': 'x'}") == {"a": "x"}

    def test_unwraps_single_object_list(self):
        """A single object wrapped in brackets is unwrapped."""
        assert parse_llm_json('[{"a": 1}]') == {"a": 1}

    def test_empty_input_raises(self):
        """Empty input raises ValueError."""
        with pytest.raises(ValueError, match="Empty input"):
            parse_llm_json("   ")

    def test_no_object_raises(self):
        """Text without braces raises ValueError."""
        with pytest.raises(ValueError, match="No JSON"):
            parse_llm_json("no json here")


# ===== TESTS: List parsing =====

class TestParseLlmJsonList:
    """Tests for parsing a list of finding objects."""

    def test_bare_array(self):
        """A bare array of objects is returned as-is."""
        text = '[{"title": "A"}, {"title": "B"}]'
        assert parse_llm_json_list(text) == [{"title": "A"}, {"title": "B"}]

    def test_wrapped_under_key(self):
        """An object holding the list under the key is unwrapped."""
        text = '```json\n{"findings": [{"title": "A"}]}\n```'
        assert parse_llm_json_list(text) == [{"title": "A"}]

    def test_custom_key(self):
        """The wrapping key is configurable."""
        assert parse_llm_json_list('{"items": [{"x": 1}]}', key="items") == [{"x": 1}]

    def test_drops_non_object_items(self):
        """Strings and numbers inside the list are dropped."""
        assert parse_llm_json_list('[{"title": "A"}, "junk", 3]') == [{"title": "A"}]

    def test_missing_key_raises(self):
        """An object without the list key raises ValueError."""
        with pytest.raises(ValueError):
            parse_llm_json_list('{"other": []}')

    def test_prose_only_raises(self):
        """Plain prose raises ValueError."""
        with pytest.raises(ValueError):
            parse_llm_json_list("The company has no automation needs.")


class TestStripMarkdown:
    """Tests for fence stripping."""

    def test_plain_fence(self):
        assert _strip_markdown_blocks('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence_untouched(self):
        assert _strip_markdown_blocks(' {"a": 1} ') == '{"a": 1}'
