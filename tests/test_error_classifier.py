"""Tests for cadence.core.errors.classifier.

Tests cover:
- classify(): every rule of the default table, English and Japanese messages
- Rule order: domain-specific kinds win over the generic network/UI kinds
- Exception handling: type-name fallback, broken __str__, None and empty input
- Determinism and custom rule tables
"""

import pytest

from cadence.core.errors import ClassificationRule, ErrorClassifier, ErrorKind, describe_failure
from cadence.core.exceptions import CompletionTimeoutError, EmptyResultError


@pytest.fixture
def classifier() -> ErrorClassifier:
    """Create a default ErrorClassifier instance."""
    return ErrorClassifier()


# =============================================================================
# Default rule table
# =============================================================================


class TestDefaultRules:
    """Each message maps to the expected kind."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Search failed", ErrorKind.SEARCH_FAILURE),
            ("search timeout after 30s", ErrorKind.SEARCH_FAILURE),
            ("検索に失敗しました", ErrorKind.SEARCH_FAILURE),
            ("No results found", ErrorKind.NO_RESULTS),
            ("empty result returned", ErrorKind.NO_RESULTS),
            ("結果なし", ErrorKind.NO_RESULTS),
            ("Rate limit exceeded", ErrorKind.PLATFORM_UNAVAILABLE),
            ("429 Too Many Requests", ErrorKind.PLATFORM_UNAVAILABLE),
            ("Service unavailable", ErrorKind.PLATFORM_UNAVAILABLE),
            ("Please log in to continue", ErrorKind.AUTH_REQUIRED),
            ("Login required", ErrorKind.AUTH_REQUIRED),
            ("Session expired", ErrorKind.AUTH_REQUIRED),
            ("ログインしてください", ErrorKind.AUTH_REQUIRED),
            ("Network error", ErrorKind.NETWORK_TIMEOUT),
            ("Failed to fetch", ErrorKind.NETWORK_TIMEOUT),
            ("Connection reset by peer", ErrorKind.NETWORK_TIMEOUT),
            ("request timeout", ErrorKind.NETWORK_TIMEOUT),
            ("Element not found: #send", ErrorKind.ELEMENT_NOT_FOUND),
            ("querySelector returned null", ErrorKind.ELEMENT_NOT_FOUND),
            ("要素が見つかりません", ErrorKind.ELEMENT_NOT_FOUND),
            ("timed out waiting for response", ErrorKind.UI_TIMING_TIMEOUT),
            ("could not click the send button", ErrorKind.UI_TIMING_TIMEOUT),
            ("応答完了まで待機中に中断", ErrorKind.UI_TIMING_TIMEOUT),
            ("something unexpected happened", ErrorKind.GENERIC),
        ],
        ids=[
            "search-failed", "search-timeout", "search-ja",
            "no-results", "empty-result", "no-results-ja",
            "rate-limit", "too-many-requests", "service-unavailable",
            "log-in", "login", "session-expired", "login-ja",
            "network", "fetch", "connection", "timeout",
            "element", "selector", "element-ja",
            "timed-out-waiting", "click", "wait-ja",
            "generic",
        ],
    )
    def test_classify(self, classifier: ErrorClassifier, message: str, expected: ErrorKind):
        assert classifier.classify(message) is expected

    def test_case_insensitive(self, classifier: ErrorClassifier):
        assert classifier.classify("SEARCH FAILED") is ErrorKind.SEARCH_FAILURE
        assert classifier.classify("NeTwOrK down") is ErrorKind.NETWORK_TIMEOUT

    def test_research_is_not_search(self, classifier: ErrorClassifier):
        """'research' does not start a word with 'search'."""
        assert classifier.classify("deep research started") is ErrorKind.GENERIC

    def test_logging_is_not_login(self, classifier: ErrorClassifier):
        assert classifier.classify("logging subsystem failed") is ErrorKind.GENERIC


class TestRuleOrder:
    """Overlapping messages resolve to the earlier, more specific rule."""

    def test_search_beats_timeout(self, classifier: ErrorClassifier):
        assert classifier.classify("Search failed: timeout") is ErrorKind.SEARCH_FAILURE

    def test_platform_beats_network(self, classifier: ErrorClassifier):
        assert classifier.classify("rate limit: connection throttled") is ErrorKind.PLATFORM_UNAVAILABLE

    def test_network_beats_ui(self, classifier: ErrorClassifier):
        assert classifier.classify("button click timeout") is ErrorKind.NETWORK_TIMEOUT

    def test_rules_property_preserves_order(self, classifier: ErrorClassifier):
        kinds = [rule.kind for rule in classifier.rules]
        assert kinds == [
            ErrorKind.SEARCH_FAILURE,
            ErrorKind.NO_RESULTS,
            ErrorKind.PLATFORM_UNAVAILABLE,
            ErrorKind.AUTH_REQUIRED,
            ErrorKind.NETWORK_TIMEOUT,
            ErrorKind.ELEMENT_NOT_FOUND,
            ErrorKind.UI_TIMING_TIMEOUT,
        ]


# =============================================================================
# Exceptions and edge cases
# =============================================================================


class _BrokenStrError(Exception):
    def __str__(self) -> str:
        raise RuntimeError("cannot render")


class TestExceptionInput:
    """classify() accepts exceptions and never raises."""

    def test_exception_message(self, classifier: ErrorClassifier):
        assert classifier.classify(RuntimeError("Element not found")) is ErrorKind.ELEMENT_NOT_FOUND

    def test_type_name_fallback(self, classifier: ErrorClassifier):
        assert classifier.classify(TimeoutError()) is ErrorKind.NETWORK_TIMEOUT
        assert classifier.classify(ConnectionError()) is ErrorKind.NETWORK_TIMEOUT

    def test_message_wins_over_type_name(self, classifier: ErrorClassifier):
        assert classifier.classify(TimeoutError("Search failed")) is ErrorKind.SEARCH_FAILURE

    def test_completion_timeout_is_ui_timing(self, classifier: ErrorClassifier):
        error = CompletionTimeoutError(300.0, "busy")
        assert classifier.classify(error) is ErrorKind.UI_TIMING_TIMEOUT

    def test_empty_result_is_no_results(self, classifier: ErrorClassifier):
        assert classifier.classify(EmptyResultError("")) is ErrorKind.NO_RESULTS

    def test_broken_str_is_generic(self, classifier: ErrorClassifier):
        assert classifier.classify(_BrokenStrError()) is ErrorKind.GENERIC

    @pytest.mark.parametrize("failure", [None, ""], ids=["none", "empty"])
    def test_empty_input_is_generic(self, classifier: ErrorClassifier, failure):
        assert classifier.classify(failure) is ErrorKind.GENERIC

    def test_describe_failure(self):
        assert describe_failure(None) == ""
        assert describe_failure("text") == "text"
        assert describe_failure(ValueError("bad")) == "bad"
        assert describe_failure(_BrokenStrError()) == ""


class TestDeterminism:
    def test_repeated_calls_return_same_kind(self, classifier: ErrorClassifier):
        messages = ["Search failed: timeout", "weird", "Connection refused", "ログイン"]
        first = [classifier.classify(m) for m in messages]
        for _ in range(50):
            assert [classifier.classify(m) for m in messages] == first

    def test_independent_instances_agree(self):
        assert ErrorClassifier().classify("rate limit") is ErrorClassifier().classify("rate limit")


class TestCustomRules:
    def test_custom_table_replaces_defaults(self):
        classifier = ErrorClassifier(rules=[(ErrorKind.NETWORK_TIMEOUT, [r"boom"])])
        assert classifier.classify("boom!") is ErrorKind.NETWORK_TIMEOUT
        assert classifier.classify("Search failed") is ErrorKind.GENERIC

    def test_empty_pattern_rows_are_skipped(self):
        classifier = ErrorClassifier(rules=[(ErrorKind.AUTH_REQUIRED, [])])
        assert classifier.rules == ()

    def test_rule_compile_and_match(self):
        rule = ClassificationRule.compile(ErrorKind.NO_RESULTS, ["no results?", "empty"])
        assert rule.matches("NO RESULT")
        assert rule.matches("Empty page")
        assert not rule.matches("all good")
