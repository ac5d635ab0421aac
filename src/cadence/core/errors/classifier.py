"""ErrorClassifier: maps a raised failure to an ErrorKind.

Classification is a single ordered rule table (pattern list -> ErrorKind),
evaluated first-match-wins over the failure's description, case-insensitive.
Order matters because categories overlap: domain-specific kinds come before
the generic network and UI kinds.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from cadence.core.logging import get_logger

from .codes import ErrorKind

_logger = get_logger("errors")


# =============================================================================
# Default rule table. Kept at module scope so the order is reviewable and
# testable as data.
# =============================================================================

_DEFAULT_RULES: list[tuple[ErrorKind, list[str]]] = [
    (
        ErrorKind.SEARCH_FAILURE,
        [
            r"\bsearch",            # "Search failed", "search timeout", not "research"
            r"検索に失敗",
            r"検索できませんでした",
        ],
    ),
    (
        ErrorKind.NO_RESULTS,
        [
            r"no results?",
            r"empty results?",
            r"結果なし",
            r"結果が見つかりません",
        ],
    ),
    (
        ErrorKind.PLATFORM_UNAVAILABLE,
        [
            r"platform error",
            r"service.?unavailable",
            r"rate.?limit",
            r"too many requests",
            r"プラットフォームエラー",
        ],
    ),
    (
        ErrorKind.AUTH_REQUIRED,
        [
            r"authentication",
            r"auth error",
            r"\blog.?in\b",         # "login", "log in", not "logging"
            r"session expired",
            r"認証",
            r"ログイン",
        ],
    ),
    (
        ErrorKind.NETWORK_TIMEOUT,
        [
            r"timeout",
            r"network",
            r"fetch",
            r"connection",
        ],
    ),
    (
        ErrorKind.ELEMENT_NOT_FOUND,
        [
            r"element not found",
            r"selector",            # also matches "querySelector"
            r"要素が見つかりません",
        ],
    ),
    (
        ErrorKind.UI_TIMING_TIMEOUT,
        [
            r"timed out waiting for",
            r"click",
            r"input",
            r"button",
            r"まで待機",
        ],
    ),
]


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table: any pattern matching yields ``kind``."""

    kind: ErrorKind
    pattern: re.Pattern[str]

    @classmethod
    def compile(cls, kind: ErrorKind, patterns: Sequence[str]) -> ClassificationRule:
        """Merge a pattern list into a single case-insensitive alternation."""
        alternation = "|".join(f"(?:{p})" for p in patterns)
        return cls(kind=kind, pattern=re.compile(alternation, re.IGNORECASE))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def describe_failure(failure: BaseException | str | None) -> str:
    """Return the text used for classification of a failure."""
    if failure is None:
        return ""
    if isinstance(failure, str):
        return failure
    try:
        return str(failure)
    except Exception:
        # A broken __str__ must not make classification throw
        return ""


class ErrorClassifier:
    """Classifies failures into ErrorKinds using an ordered rule table.

    ``classify`` is pure and total: the same description always yields the
    same kind, and it never raises. Unmatched text maps to ``GENERIC``.

    Example:
        classifier = ErrorClassifier()
        kind = classifier.classify(RuntimeError("Search failed: timeout"))
        assert kind is ErrorKind.SEARCH_FAILURE
    """

    def __init__(
        self,
        rules: Sequence[tuple[ErrorKind, Sequence[str]]] | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            rules: Ordered (kind, patterns) rows. Defaults to the built-in table.
        """
        table = _DEFAULT_RULES if rules is None else rules
        self._rules: tuple[ClassificationRule, ...] = tuple(
            ClassificationRule.compile(kind, patterns) for kind, patterns in table if patterns
        )

    @property
    def rules(self) -> tuple[ClassificationRule, ...]:
        """The compiled rule table, in evaluation order."""
        return self._rules

    def classify(self, failure: BaseException | str | None) -> ErrorKind:
        """Classify a failure.

        The failure's message is matched first. When the message matches no
        rule and the failure is an exception, its type name is tried as well
        (so a bare ``TimeoutError()`` is still a network timeout).

        Args:
            failure: An exception, a plain description, or None.

        Returns:
            The first matching ErrorKind, or ``ErrorKind.GENERIC``.
        """
        text = describe_failure(failure)
        kind = self._match(text)
        if kind is None and isinstance(failure, BaseException):
            kind = self._match(type(failure).__name__)
        if kind is None:
            kind = ErrorKind.GENERIC

        _logger.debug(
            "errors.classified",
            error_kind=kind.value,
            message=text[:200],
        )
        return kind

    def _match(self, text: str) -> ErrorKind | None:
        if not text:
            return None
        for rule in self._rules:
            if rule.matches(text):
                return rule.kind
        return None


__all__ = [
    "ClassificationRule",
    "ErrorClassifier",
    "describe_failure",
]
