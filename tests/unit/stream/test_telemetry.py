"""Unit tests for token usage extraction."""

from __future__ import annotations

import pytest

from cli_relay.core.types import TokenUsage
from cli_relay.stream.telemetry import cache_hit_rate, parse_token_usage, usage_from_result


class TestUsageFromResult:
    """Tests for result envelope usage."""

    def test_all_fields(self) -> None:
        usage = usage_from_result(
            {
                "input_tokens": 10,
                "output_tokens": 20,
                "cache_creation_input_tokens": 30,
                "cache_read_input_tokens": 40,
                "service_tier": "standard",
            }
        )
        assert usage == TokenUsage(10, 20, 30, 40)

    def test_missing_fields_default_to_zero(self) -> None:
        usage = usage_from_result({"input_tokens": 100, "output_tokens": 50})
        assert usage.cache_creation_input_tokens == 0
        assert usage.cache_read_input_tokens == 0

    @pytest.mark.parametrize("raw", [None, {}])
    def test_empty(self, raw) -> None:
        assert usage_from_result(raw) == TokenUsage(0, 0, 0, 0)

    def test_null_and_garbage_values(self) -> None:
        usage = usage_from_result({"input_tokens": None, "output_tokens": "n/a"})
        assert usage.input_tokens == 0
        assert usage.output_tokens == 0

    def test_non_integer_values_count_as_zero(self) -> None:
        """Floats and booleans are not truncated or coerced."""
        usage = usage_from_result(
            {"input_tokens": 12.7, "output_tokens": True, "cache_read_input_tokens": "5"}
        )
        assert usage == TokenUsage(
            input_tokens=0,
            output_tokens=0,
            cache_creation_input_tokens=0,
            cache_read_input_tokens=0,
        )


class TestParseTokenUsage:
    """Tests for free-text stderr usage."""

    def test_no_match(self) -> None:
        assert parse_token_usage("Compiling...") is None

    def test_single_counter(self) -> None:
        usage = parse_token_usage("Output tokens: 42")
        assert usage == TokenUsage(output_tokens=42)

    def test_all_counters(self) -> None:
        text = (
            "Input tokens: 1200\n"
            "Output tokens: 300\n"
            "Cache creation input tokens: 50\n"
            "Cache read input tokens: 900\n"
        )
        assert parse_token_usage(text) == TokenUsage(1200, 300, 50, 900)

    def test_case_insensitive_and_singular(self) -> None:
        usage = parse_token_usage("INPUT TOKEN:7")
        assert usage == TokenUsage(input_tokens=7)

    def test_first_occurrence_wins(self) -> None:
        usage = parse_token_usage("Output tokens: 1\nOutput tokens: 2")
        assert usage is not None
        assert usage.output_tokens == 1


class TestCacheHitRate:
    """Tests for cache_hit_rate."""

    def test_rate(self) -> None:
        assert cache_hit_rate(TokenUsage(input_tokens=100, cache_read_input_tokens=300)) == 75.0

    def test_rounded(self) -> None:
        assert cache_hit_rate(TokenUsage(input_tokens=2, cache_read_input_tokens=1)) == 33.3

    def test_no_cache(self) -> None:
        assert cache_hit_rate(TokenUsage(input_tokens=100, cache_read_input_tokens=0)) == 0.0

    def test_absent_counters(self) -> None:
        assert cache_hit_rate(TokenUsage()) == 0.0
