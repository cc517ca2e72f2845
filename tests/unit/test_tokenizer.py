"""Unit tests for the shell word tokenizer and operator splitter."""

import pytest

from gatekeeper.tokenizer import (
    BARE,
    DOUBLE,
    ESCAPED,
    SINGLE,
    scan_quotes,
    split_operators,
    strip_quotes,
    tokenize,
    unquote,
)


# ---------------------------------------------------------------------------
# scan_quotes
# ---------------------------------------------------------------------------

class TestScanQuotes:
    """Tests for quote/escape state tracking."""

    def test_plain_text_is_bare(self):
        assert {s for _, _, s in scan_quotes("ls -la")} == {BARE}

    def test_single_quoted_span(self):
        states = [s for _, _, s in scan_quotes("'a b'")]
        assert states == [SINGLE] * 5

    def test_double_quoted_span(self):
        states = [s for _, _, s in scan_quotes('"a"x')]
        assert states == [DOUBLE, DOUBLE, DOUBLE, BARE]

    def test_backslash_escapes_next_char(self):
        states = [s for _, _, s in scan_quotes("a\\;b")]
        assert states == [BARE, ESCAPED, ESCAPED, BARE]

    def test_backslash_literal_in_single_quotes(self):
        states = [s for _, _, s in scan_quotes("'\\'")]
        assert states == [SINGLE, SINGLE, SINGLE]

    def test_double_quote_escape_only_for_special_chars(self):
        # \n inside double quotes is two literal characters
        states = [s for _, _, s in scan_quotes('"\\n"')]
        assert states == [DOUBLE, DOUBLE, DOUBLE, DOUBLE]

    def test_escaped_quote_inside_double_quotes(self):
        states = [s for _, _, s in scan_quotes('"\\""')]
        assert states == [DOUBLE, ESCAPED, ESCAPED, DOUBLE]


# ---------------------------------------------------------------------------
# tokenize
# ---------------------------------------------------------------------------

class TestTokenize:
    """Tests for whitespace splitting outside quotes."""

    def test_simple_words(self):
        assert tokenize("git status -s") == ["git", "status", "-s"]

    def test_collapses_repeated_whitespace(self):
        assert tokenize("  ls \t -la  ") == ["ls", "-la"]

    def test_single_quotes_kept(self):
        assert tokenize("echo 'hello world'") == ["echo", "'hello world'"]

    def test_double_quotes_kept(self):
        assert tokenize('grep "a b" file') == ["grep", '"a b"', "file"]

    def test_quotes_inside_word(self):
        assert tokenize("FOO='a b' cmd") == ["FOO='a b'", "cmd"]

    def test_escaped_space_does_not_split(self):
        assert tokenize("cat my\\ file.txt") == ["cat", "my\\ file.txt"]

    def test_escaped_quote_does_not_open_span(self):
        assert tokenize("echo \\'a b") == ["echo", "\\'a", "b"]

    def test_unterminated_quote_runs_to_end(self):
        assert tokenize("echo 'a b") == ["echo", "'a b"]

    def test_empty_string(self):
        assert tokenize("") == []

    def test_empty_quoted_token(self):
        assert tokenize("sed -i '' x") == ["sed", "-i", "''", "x"]


# ---------------------------------------------------------------------------
# strip_quotes
# ---------------------------------------------------------------------------

class TestStripQuotes:
    """Tests for removing one matching quote pair."""

    def test_single(self):
        assert strip_quotes("'a.txt'") == "a.txt"

    def test_double(self):
        assert strip_quotes('"a.txt"') == "a.txt"

    def test_mismatched_left_alone(self):
        assert strip_quotes("'a.txt\"") == "'a.txt\""

    def test_unquoted_left_alone(self):
        assert strip_quotes("a.txt") == "a.txt"

    def test_lone_quote(self):
        assert strip_quotes("'") == "'"

    def test_only_one_pair_removed(self):
        assert strip_quotes("''a''") == "'a'"


# ---------------------------------------------------------------------------
# unquote
# ---------------------------------------------------------------------------

class TestUnquote:
    """Tests for shell-unquoting a single word."""

    @pytest.mark.parametrize("word,expected", [
        ("rm", "rm"),
        ("r''m", "rm"),
        ("\\rm", "rm"),
        ("'rm'", "rm"),
        ("\"r\"m", "rm"),
        ("'a b'\"c\"", "a bc"),
        ("\"it's\"", "it's"),
        ("a\\\\b", "a\\b"),
        ("", ""),
    ])
    def test_unquote(self, word, expected):
        assert unquote(word) == expected


# ---------------------------------------------------------------------------
# split_operators
# ---------------------------------------------------------------------------

class TestSplitOperators:
    """Tests for splitting on shell control operators."""

    def test_and(self):
        assert split_operators("a && b") == ["a", "b"]

    def test_or(self):
        assert split_operators("a || b") == ["a", "b"]

    def test_semicolon(self):
        assert split_operators("a; b;c") == ["a", "b", "c"]

    def test_pipe(self):
        assert split_operators("cat f | grep x | wc -l") == ["cat f", "grep x", "wc -l"]

    def test_pipe_stderr(self):
        assert split_operators("make |& tee log") == ["make", "tee log"]

    def test_newline(self):
        assert split_operators("a\nb") == ["a", "b"]

    def test_background(self):
        assert split_operators("server & curl localhost") == ["server", "curl localhost"]

    def test_redirections_are_not_operators(self):
        assert split_operators("cmd 2>&1 >out &>all <&3") == ["cmd 2>&1 >out &>all <&3"]

    def test_clobber_redirect(self):
        assert split_operators("echo x >| file") == ["echo x >| file"]

    def test_quoted_operators(self):
        assert split_operators("echo 'a && b' \"c; d\"") == ["echo 'a && b' \"c; d\""]

    def test_escaped_semicolon(self):
        assert split_operators("find . -exec rm {} \\;") == ["find . -exec rm {} \\;"]

    def test_command_substitution(self):
        assert split_operators("echo $(a; b) && c") == ["echo $(a; b)", "c"]

    def test_nested_substitution(self):
        assert split_operators("x $(a $(b && c)) ; d") == ["x $(a $(b && c))", "d"]

    def test_backticks(self):
        assert split_operators("echo `a | b` | c") == ["echo `a | b`", "c"]

    def test_subshell_group(self):
        assert split_operators("(cd x && make) || y") == ["(cd x && make)", "y"]

    def test_process_substitution(self):
        assert split_operators("diff <(ls a) <(ls b)") == ["diff <(ls a) <(ls b)"]

    def test_single_quote_backslash_cannot_hide_operator(self):
        assert split_operators("echo 'a\\' && rm -rf x") == ["echo 'a\\'", "rm -rf x"]

    def test_stray_closing_paren(self):
        assert split_operators("a ) ; b") == ["a )", "b"]

    def test_empty_segments_dropped(self):
        assert split_operators(";; a ;;") == ["a"]

    def test_no_operators(self):
        assert split_operators("  ls -la  ") == ["ls -la"]

    def test_empty(self):
        assert split_operators("") == []
