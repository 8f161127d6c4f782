"""Tests for presence/formatting.py -- model/provider display names."""

import pytest

from presence.formatting import (
    PROVIDER_DISPLAY_NAMES,
    format_count,
    format_model_name,
    format_provider_name,
    format_tokens,
    get_pretty_provider,
)


class TestFormatModelName:
    def test_namespaced_model_uses_tail_segment(self):
        assert format_model_name("deepseek-ai/Deepseek-V3-0324") == "Deepseek V3 0324"

    def test_space_separated_words_are_title_cased(self):
        assert format_model_name("llama 3 instruct") == "Llama 3 Instruct"

    def test_hyphenated_model(self):
        assert format_model_name("gpt-4o-mini") == "Gpt 4o Mini"

    def test_tag_suffix_is_stripped(self):
        assert format_model_name("llama3:8b") == "Llama3"

    def test_tag_and_namespace(self):
        assert format_model_name("library/mistral-nemo:12b-instruct") == "Mistral Nemo"

    def test_only_first_letter_changes(self):
        assert format_model_name("anthropic/claude-3.5-sonnet") == "Claude 3.5 Sonnet"
        assert format_model_name("openai/GPT-4o") == "GPT 4o"

    def test_repeated_separators_collapse(self):
        assert format_model_name("qwen--2.5  coder") == "Qwen 2.5 Coder"

    @pytest.mark.parametrize("raw", ["", None, "   ", ":", "/", "a/", "-"])
    def test_empty_or_degenerate_input_returns_empty(self, raw):
        assert format_model_name(raw) == ""

    def test_non_string_input_does_not_raise(self):
        assert format_model_name(42) == "42"
        assert isinstance(format_model_name(["gpt-4o"]), str)


class TestFormatProviderName:
    def test_underscores(self):
        assert format_provider_name("some_weird_id") == "Some Weird Id"

    def test_mixed_separators_and_parentheses(self):
        assert format_provider_name("text-gen (LOCAL)_webui") == "Text Gen Local Webui"

    def test_remainder_is_lowercased(self):
        assert format_provider_name("OPENAI") == "Openai"

    def test_empty(self):
        assert format_provider_name("") == ""
        assert format_provider_name(None) == ""


class TestGetPrettyProvider:
    def test_known_providers(self):
        assert get_pretty_provider("anthropic") == "Anthropic"
        assert get_pretty_provider("openai") == "OpenAI"
        assert get_pretty_provider("openrouter") == "OpenRouter"

    def test_lookup_is_case_insensitive(self):
        assert get_pretty_provider("OpenAI") == "OpenAI"
        assert get_pretty_provider("  ANTHROPIC ") == "Anthropic"

    def test_unknown_falls_back_to_formatter(self):
        assert get_pretty_provider("some_weird_id") == "Some Weird Id"

    def test_empty(self):
        assert get_pretty_provider("") == ""
        assert get_pretty_provider(None) == ""

    def test_table_keys_are_lowercase(self):
        assert all(key == key.lower() for key in PROVIDER_DISPLAY_NAMES)


class TestCounters:
    def test_format_tokens(self):
        assert format_tokens(0) == "0"
        assert format_tokens(999) == "999"
        assert format_tokens(12_500) == "12.5k"
        assert format_tokens(1_200_000) == "1.2M"

    def test_format_count_pluralizes(self):
        assert format_count(1, "message") == "1 message"
        assert format_count(0, "message") == "0 messages"
        assert format_count(5, "message") == "5 messages"
