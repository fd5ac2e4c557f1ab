"""Tests for mention parsing and tokenizing helpers (switchboard/utils/mentions.py)."""

import pytest

from switchboard.utils.mentions import mention_forms, next_argument, parse_id, split_first


class TestParseId:
    @pytest.mark.parametrize(
        "value, kind, expected",
        [
            ("123", "user", 123),
            ("<@123>", "user", 123),
            ("<@!123>", "member", 123),
            ("<@&55>", "role", 55),
            ("<#77>", "channel", 77),
            (" <#77> ", "channel", 77),
            ("<@&55>", "user", None),
            ("<#77>", "role", None),
            ("@someone", "user", None),
            ("1234567890123456789012", "user", None),
        ],
    )
    def test_values(self, value, kind, expected):
        assert parse_id(value, kind) == expected

    def test_non_string(self):
        assert parse_id(123, "user") is None


class TestTokenizing:
    def test_split_first(self):
        assert split_first("  ping  a b ") == ("ping", "a b ")
        assert split_first("ping") == ("ping", "")
        assert split_first("   ") == ("", "")

    def test_mention_forms(self):
        assert mention_forms(5) == ("<@5>", "<@!5>")

    def test_quoted_argument(self):
        assert next_argument('"two words" rest') == ("two words", "rest")

    def test_typographic_quotes(self):
        assert next_argument("“two words” rest") == ("two words", "rest")

    def test_unterminated_quote_is_plain(self):
        assert next_argument('"two words rest') == ('"two', "words rest")

    def test_empty_quotes(self):
        assert next_argument('"" rest') == ("", "rest")
