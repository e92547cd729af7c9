import pytest

from bench_runner.matching import evaluate, normalize_text
from bench_runner.models import MatchMode


class TestNormalizeText:
    def test_trims_whitespace(self) -> None:
        assert normalize_text("  ls  ") == "ls"

    def test_collapses_whitespace_runs(self) -> None:
        assert normalize_text("ls \n\t  -la") == "ls -la"

    def test_canonicalizes_quotes(self) -> None:
        assert normalize_text("echo 'hi' `x`") == 'echo "hi" "x"'

    def test_does_not_fold_case(self) -> None:
        assert normalize_text("LS") == "LS"

    def test_empty_string(self) -> None:
        assert normalize_text("") == ""


class TestExact:
    def test_passes_on_identical_text(self) -> None:
        outcome = evaluate(["pwd"], "pwd", MatchMode.exact)
        assert outcome.passed
        assert outcome.match_kind == "exact"

    def test_case_insensitive_by_default(self) -> None:
        assert evaluate(["Paris"], "paris", MatchMode.exact).passed

    def test_case_sensitive_when_requested(self) -> None:
        assert not evaluate(["Paris"], "paris", MatchMode.exact, case_sensitive=True).passed

    def test_does_not_collapse_inner_whitespace(self) -> None:
        assert not evaluate(["ls -la"], "ls  -la", MatchMode.exact).passed

    def test_fails_on_verbose_response(self) -> None:
        assert not evaluate(["Paris"], "The capital of France is Paris.", MatchMode.exact).passed


class TestContains:
    def test_passes_when_answer_appears_anywhere(self) -> None:
        outcome = evaluate(["paris"], "The capital of France is Paris.", MatchMode.contains)
        assert outcome.passed
        assert outcome.matched_answer == "paris"
        assert outcome.match_kind == "contains"

    def test_normalizes_whitespace_before_comparing(self) -> None:
        assert evaluate(["git   status"], "run git\nstatus now", MatchMode.contains).passed

    def test_fails_when_absent(self) -> None:
        assert not evaluate(["paris"], "The capital is Lyon", MatchMode.contains).passed


class TestStartsWith:
    def test_passes_on_prefix(self) -> None:
        outcome = evaluate(["pwd"], "pwd # prints directory", MatchMode.starts_with)
        assert outcome.passed
        assert outcome.match_kind == "startsWith"

    def test_prefix_need_not_end_at_a_separator(self) -> None:
        assert evaluate(["ls"], "lsblk", MatchMode.starts_with).passed

    def test_fails_when_answer_is_not_a_prefix(self) -> None:
        assert not evaluate(["pwd"], "run pwd", MatchMode.starts_with).passed


class TestSemantic:
    def test_exact_after_normalization(self) -> None:
        outcome = evaluate(["ls"], "ls")
        assert outcome.passed
        assert outcome.match_kind == "exact"

    def test_clean_prefix_followed_by_space(self) -> None:
        outcome = evaluate(["ls"], "ls -la")
        assert outcome.passed
        assert outcome.match_kind == "startsWith"

    def test_clean_prefix_followed_by_colon(self) -> None:
        assert evaluate(["answer"], "answer: 42").match_kind == "startsWith"

    def test_prefix_without_separator_is_rejected(self) -> None:
        assert not evaluate(["ls"], "lsblk").passed

    def test_truncated_response_is_partial(self) -> None:
        outcome = evaluate(["ls -la"], "ls")
        assert outcome.passed
        assert outcome.match_kind == "partial"

    def test_unrelated_response_fails(self) -> None:
        outcome = evaluate(["paris"], "The capital is Lyon")
        assert not outcome.passed
        assert outcome.matched_answer is None
        assert outcome.match_kind is None

    def test_empty_response_is_a_partial_match(self) -> None:
        outcome = evaluate(["ls", "dir"], "   ")
        assert outcome.passed is True
        assert outcome.matched_answer == "ls"
        assert outcome.match_kind == "partial"

    def test_empty_response_fails_literal_modes(self) -> None:
        assert not evaluate(["ls"], "", MatchMode.contains).passed
        assert not evaluate(["ls"], "", MatchMode.starts_with).passed

    def test_quote_styles_are_equivalent(self) -> None:
        assert evaluate(['echo "hi"'], "echo 'hi'").match_kind == "exact"

    def test_first_listed_answer_wins(self) -> None:
        outcome = evaluate(["ls -la", "ls"], "ls -la")
        assert outcome.matched_answer == "ls -la"
        outcome = evaluate(["ls", "ls -la"], "ls -la")
        assert outcome.matched_answer == "ls"
        assert outcome.match_kind == "startsWith"

    def test_matched_answer_keeps_original_casing(self) -> None:
        assert evaluate(["Paris"], "paris").matched_answer == "Paris"


def test_judge_mode_is_not_a_string_strategy() -> None:
    with pytest.raises(ValueError, match="not a string strategy"):
        evaluate(["x"], "x", MatchMode.llm_judge)
