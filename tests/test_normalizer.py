"""
Test suite for the research ResponseNormalizer.

Covers the layered strategies: JSON with aliases, completion phrases and
natural-language tool requests.
"""

from shellsense.pipeline.normalizer import (
    ResponseNormalizer,
    extract_json_array,
    extract_json_object,
    parse_bool,
    strip_code_fence,
)


class TestJsonStrategy:
    """Replies that contain a JSON object."""

    def setup_method(self):
        self.normalizer = ResponseNormalizer()

    def test_plain_tool_request(self):
        result = self.normalizer.parse('{"tool": "read_file", "args": {"path": "package.json"}, "reason": "deps"}')

        assert result.done is False
        assert result.tool == "read_file"
        assert result.args == {"path": "package.json"}
        assert result.reason == "deps"
        assert self.normalizer.last_strategy_used == "json"

    def test_code_fenced_json_with_trailing_prose(self):
        reply = '''Let me look first.

```json
{"action": "list_dir", "parameters": {"path": "src"}}
```

Then I'll decide.'''

        result = self.normalizer.parse(reply)

        assert result.tool == "list_dir"
        assert result.args == {"path": "src"}

    def test_prose_after_object_is_ignored(self):
        """Brace matching stops at the first complete object."""
        result = self.normalizer.parse('{"done": true, "summary": "a {nested} note"} and more {text}')

        assert result.done is True
        assert result.summary == "a {nested} note"

    def test_done_string_values(self):
        assert self.normalizer.parse('{"finished": "yes", "conclusion": "node app"}').done is True
        assert self.normalizer.parse('{"complete": 1, "findings": ["a", "b"]}').summary == "a; b"

    def test_tool_named_done_means_done(self):
        result = self.normalizer.parse('{"tool": "done", "summary": "enough"}')

        assert result.done is True
        assert result.tool is None

    def test_summary_without_tool_implies_done(self):
        assert self.normalizer.parse('{"summary": "rust workspace"}').done is True

    def test_flat_arguments(self):
        result = self.normalizer.parse('{"command": "search_files", "pattern": "*.py"}')

        assert result.tool == "search_files"
        assert result.args == {"pattern": "*.py"}

    def test_non_string_arguments_are_stringified(self):
        result = self.normalizer.parse(
            '{"tool": "read_file", "args": {"path": "a.py", "start_line": 5, "raw": true}}'
        )

        assert result.args == {"path": "a.py", "start_line": "5", "raw": "true"}

    def test_object_without_tool_or_done_falls_through(self):
        assert self.normalizer.parse('{"thoughts": "hmm"}') is None


class TestNaturalLanguageStrategies:
    """Replies with no usable JSON."""

    def setup_method(self):
        self.normalizer = ResponseNormalizer()

    def test_completion_phrase(self):
        result = self.normalizer.parse("I have enough context to make suggestions now.")

        assert result.done is True
        assert self.normalizer.last_strategy_used == "completion_phrase"

    def test_read_request(self):
        result = self.normalizer.parse("I should read the package.json to see the scripts.")

        assert result.tool == "read_file"
        assert result.args == {"path": "package.json"}
        assert self.normalizer.last_strategy_used == "natural_language"

    def test_read_requires_path_like_token(self):
        """'read the docs' names no file."""
        assert self.normalizer.parse("Maybe read the docs") is None

    def test_list_request(self):
        result = self.normalizer.parse("Let me list the contents of src/components.")

        assert result.tool == "list_dir"
        assert result.args == {"path": "src/components"}

    def test_unrecognised_text(self):
        assert self.normalizer.parse("Interesting environment.") is None
        assert self.normalizer.last_strategy_used is None

    def test_empty_text(self):
        assert self.normalizer.parse("") is None
        assert self.normalizer.parse("   \n") is None


class TestExtractionHelpers:

    def test_strip_code_fence_without_fence(self):
        assert strip_code_fence("  plain  ") == "plain"

    def test_extract_object_unbalanced(self):
        assert extract_json_object('{"a": 1') is None

    def test_extract_object_rejects_array(self):
        assert extract_json_object("[1, 2]") is None

    def test_extract_array_spans_first_to_last_bracket(self):
        text = 'Here you go: [{"command": "git status", "reason": "check"}] hope that helps'

        assert extract_json_array(text) == [{"command": "git status", "reason": "check"}]

    def test_extract_array_missing(self):
        assert extract_json_array("no suggestions") is None

    def test_parse_bool(self):
        assert parse_bool("Yes") is True
        assert parse_bool("0") is False
        assert parse_bool(2) is True
        assert parse_bool("maybe") is None
        assert parse_bool(None) is None
