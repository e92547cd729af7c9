"""String match strategies used to grade model responses.

Every strategy compares one prepared response against one prepared
acceptable answer. ``evaluate`` walks the acceptable answers in order and
stops at the first one a strategy accepts, so the order of the list decides
which answer is reported when several would match.
"""

import re
from collections.abc import Callable

from bench_runner.models import MatchMode, MatchOutcome

_WHITESPACE = re.compile(r"\s+")
_QUOTES = re.compile(r"[\"'`]")

# (normalized actual, normalized expected, case-folded actual, case-folded expected)
# -> match kind, or None when the strategy rejects the pair
Strategy = Callable[[str, str, str, str], str | None]


def normalize_text(text: str) -> str:
    text = _WHITESPACE.sub(" ", text.strip())
    return _QUOTES.sub('"', text)


def _exact(actual_norm: str, expected_norm: str, actual: str, expected: str) -> str | None:
    return "exact" if actual == expected else None


def _contains(actual_norm: str, expected_norm: str, actual: str, expected: str) -> str | None:
    return "contains" if expected_norm in actual_norm else None


def _starts_with(actual_norm: str, expected_norm: str, actual: str, expected: str) -> str | None:
    return "startsWith" if actual_norm.startswith(expected_norm) else None


def _semantic(actual_norm: str, expected_norm: str, actual: str, expected: str) -> str | None:
    if actual_norm == expected_norm:
        return "exact"
    if actual_norm.startswith((expected_norm + " ", expected_norm + ":", expected_norm + "\n")):
        return "startsWith"
    if expected_norm.startswith(actual_norm):
        return "partial"
    return None


STRATEGIES: dict[MatchMode, Strategy] = {
    MatchMode.exact: _exact,
    MatchMode.contains: _contains,
    MatchMode.starts_with: _starts_with,
    MatchMode.semantic: _semantic,
}


def evaluate(
    acceptable: list[str],
    actual: str,
    mode: MatchMode = MatchMode.semantic,
    case_sensitive: bool = False,
) -> MatchOutcome:
    strategy = STRATEGIES.get(mode)
    if strategy is None:
        raise ValueError(f"Match mode '{mode}' is not a string strategy.")

    def fold(text: str) -> str:
        text = text.strip()
        return text if case_sensitive else text.lower()

    actual_folded = fold(actual)
    actual_norm = normalize_text(actual_folded)

    for answer in acceptable:
        answer_folded = fold(answer)
        kind = strategy(actual_norm, normalize_text(answer_folded), actual_folded, answer_folded)
        if kind is not None:
            return MatchOutcome(passed=True, matched_answer=answer, match_kind=kind)

    return MatchOutcome(passed=False)
