"""Tests for text normalization helpers."""

from context_engine.core.text_normalizer import (
    collapse_whitespace,
    extract_keywords,
    strip_markdown,
    tokenize,
    truncate_sentence,
)


class TestStripMarkdown:
    """Tests for strip_markdown."""

    def test_removes_heading_markers(self) -> None:
        assert strip_markdown("## Ranking signals\nBody text.") == "Ranking signals\nBody text."

    def test_keeps_hashtags(self) -> None:
        assert strip_markdown("#seo matters") == "#seo matters"

    def test_removes_fence_lines_but_keeps_code_text(self) -> None:
        text = "Intro.\n```python\nprint('hi')\n```\nOutro."
        assert strip_markdown(text) == "Intro.\n\nprint('hi')\n\nOutro."

    def test_unwraps_inline_markup(self) -> None:
        text = "Read **this** and *that* via [the guide](https://example.com) or `code`."
        assert strip_markdown(text) == "Read this and that via the guide or code."

    def test_removes_list_and_quote_markers(self) -> None:
        text = "- first item\n* second item\n1. third item\n> quoted line"
        assert strip_markdown(text) == "first item\nsecond item\nthird item\nquoted line"

    def test_leaves_plain_prose_untouched(self) -> None:
        text = "Helpful content wins. Costs rose 3.5% in 2024, said the team."
        assert strip_markdown(text) == text

    def test_empty(self) -> None:
        assert strip_markdown("") == ""


class TestCollapseWhitespace:
    """Tests for collapse_whitespace."""

    def test_collapses_runs_and_newlines(self) -> None:
        assert collapse_whitespace("  one\n\n two\t three  ") == "one two three"

    def test_empty_and_whitespace_only(self) -> None:
        assert collapse_whitespace("") == ""
        assert collapse_whitespace(" \n\t ") == ""


class TestExtractKeywords:
    """Tests for extract_keywords."""

    def test_lowercases_and_drops_stopwords(self) -> None:
        keywords = extract_keywords("The Google ranking of Helpful content", {"the", "of"}, 10)
        assert keywords == {"google", "ranking", "helpful", "content"}

    def test_drops_single_character_tokens(self) -> None:
        keywords = extract_keywords("Google's R&D a b SEO", set(), 10)
        assert keywords == {"google", "seo"}

    def test_caps_by_first_occurrence(self) -> None:
        keywords = extract_keywords("alpha beta gamma alpha delta", set(), 3)
        assert keywords == {"alpha", "beta", "gamma"}

    def test_stopwords_are_case_insensitive(self) -> None:
        assert extract_keywords("The THE the seo", {"The"}, 5) == {"seo"}

    def test_deterministic(self) -> None:
        text = "Search ranking rewards helpful, people-first content."
        first = extract_keywords(text, {"first"}, 4)
        second = extract_keywords(text, {"first"}, 4)
        assert first == second

    def test_zero_max_keywords(self) -> None:
        assert extract_keywords("google seo", set(), 0) == set()

    def test_tokenize_splits_on_non_word(self) -> None:
        assert tokenize("Multi-agent, R&D!") == ["multi", "agent", "r", "d"]


class TestTruncateSentence:
    """Tests for truncate_sentence."""

    def test_short_sentence_unchanged(self) -> None:
        assert truncate_sentence("Helpful content ranks.", 100) == "Helpful content ranks."

    def test_adds_period_when_missing(self) -> None:
        assert truncate_sentence("Helpful content ranks", 100) == "Helpful content ranks."

    def test_question_becomes_statement(self) -> None:
        assert truncate_sentence("Does helpful content rank?", 100) == "Does helpful content rank."

    def test_cuts_on_sentence_boundary(self) -> None:
        text = "Helpful content improves rankings. " * 20
        out = truncate_sentence(text.strip(), 600)
        assert len(out) <= 600
        assert out.endswith("rankings.")
        assert len(out) == 594

    def test_cuts_on_word_when_no_boundary(self) -> None:
        text = "word " * 50
        out = truncate_sentence(text.strip(), 42)
        assert len(out) <= 42
        assert out.endswith("word.")
        assert "wor." not in out

    def test_removes_ellipsis(self) -> None:
        out = truncate_sentence("Rankings dropped... then recovered…", 100)
        assert "..." not in out
        assert "…" not in out
        assert out == "Rankings dropped. then recovered."

    def test_spaced_dot_runs_collapse_to_one_period(self) -> None:
        assert truncate_sentence("Google rankings wait. …. ok", 600) == "Google rankings wait. ok."
        assert truncate_sentence("a . . . b", 100) == "a. b."
        assert truncate_sentence("Done.. …", 100) == "Done."

    def test_output_never_contains_dot_runs(self) -> None:
        for text in ["x. …. y", "x …… y", "x. . . . y", "x.….… y"]:
            out = truncate_sentence(text, 100)
            assert ".." not in out, out
            assert "…" not in out, out

    def test_never_exceeds_limit_at_exact_length(self) -> None:
        text = "a" * 9 + " bbbbbbbbbb"
        out = truncate_sentence(text, len(text))
        assert len(out) <= len(text)
        assert out.endswith(".")

    def test_empty_inputs(self) -> None:
        assert truncate_sentence("", 100) == ""
        assert truncate_sentence("   ", 100) == ""
        assert truncate_sentence("text", 0) == ""

    def test_early_boundary_prefers_word_cut(self) -> None:
        text = "Short. " + "then a very long clause without any stop " * 5
        out = truncate_sentence(text.strip(), 100)
        assert len(out) <= 100
        assert out != "Short."
        assert out.endswith(".")
