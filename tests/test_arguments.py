"""Tests for option schemas and positional argument parsing."""

import pytest
from pydantic import ValidationError

from switchboard.arguments import (
    CommandArguments,
    OptionSpec,
    OptionType,
    parse_arguments,
    usage_line,
)
from switchboard.exceptions import ArgumentError


class TestOptionSpec:

    def test_choices_rejected_for_mentions(self):
        with pytest.raises(ValidationError):
            OptionSpec(name="who", type=OptionType.USER, choices=["1"])

    def test_usage_marks_required(self):
        assert OptionSpec(name="user", required=True).usage() == "<user>"
        assert OptionSpec(name="reason").usage() == "[reason]"

    def test_usage_line(self):
        options = [OptionSpec(name="user", required=True), OptionSpec(name="reason")]
        assert usage_line("mod kick", options) == "mod kick <user> [reason]"
        assert usage_line("ping", []) == "ping"


class TestParseArguments:

    def test_no_options_passes_tokens_through(self):
        args = parse_arguments([], ["Hello", "World"])
        assert args.tokens == ["Hello", "World"]
        assert args.options == {}
        assert args.raw == "Hello World"

    def test_last_string_option_absorbs_rest(self):
        options = [
            OptionSpec(name="user", type=OptionType.USER, required=True),
            OptionSpec(name="reason"),
        ]
        args = parse_arguments(options, ["<@!42>", "too", "many", "memes"])
        assert args["user"] == "42"
        assert args["reason"] == "too many memes"

    def test_missing_required(self):
        options = [OptionSpec(name="user", type=OptionType.USER, required=True)]
        with pytest.raises(ArgumentError, match="Missing required option `user`") as exc:
            parse_arguments(options, [])
        assert exc.value.option == "user"

    def test_missing_optional_left_out(self):
        args = parse_arguments([OptionSpec(name="reason")], [])
        assert "reason" not in args
        assert args.get("reason", "none given") == "none given"

    @pytest.mark.parametrize("token,expected", [
        ("<@&7>", "7"),
        ("7", "7"),
    ])
    def test_role_mention_or_id(self, token, expected):
        args = parse_arguments([OptionSpec(name="role", type=OptionType.ROLE)], [token])
        assert args["role"] == expected

    def test_channel_mention(self):
        args = parse_arguments([OptionSpec(name="where", type=OptionType.CHANNEL)], ["<#99>"])
        assert args["where"] == "99"

    def test_bad_mention(self):
        with pytest.raises(ArgumentError, match="user mention or id"):
            parse_arguments([OptionSpec(name="who", type=OptionType.USER)], ["joe"])

    def test_integer_and_number(self):
        options = [
            OptionSpec(name="minutes", type=OptionType.INTEGER),
            OptionSpec(name="ratio", type=OptionType.NUMBER),
        ]
        args = parse_arguments(options, ["15", "0.5"])
        assert args["minutes"] == 15
        assert args["ratio"] == 0.5

    def test_integer_rejects_text(self):
        with pytest.raises(ArgumentError, match="whole number"):
            parse_arguments([OptionSpec(name="minutes", type=OptionType.INTEGER)], ["ten"])

    @pytest.mark.parametrize("token,expected", [("yes", True), ("OFF", False), ("1", True)])
    def test_boolean(self, token, expected):
        args = parse_arguments([OptionSpec(name="flag", type=OptionType.BOOLEAN)], [token])
        assert args["flag"] is expected

    def test_boolean_rejects_other(self):
        with pytest.raises(ArgumentError):
            parse_arguments([OptionSpec(name="flag", type=OptionType.BOOLEAN)], ["maybe"])

    def test_choices_enforced(self):
        options = [OptionSpec(name="duration", type=OptionType.INTEGER, choices=[5, 10, 60])]
        assert parse_arguments(options, ["10"])["duration"] == 10
        with pytest.raises(ArgumentError, match="one of: 5, 10, 60"):
            parse_arguments(options, ["7"])

    def test_string_with_choices_takes_single_token(self):
        options = [OptionSpec(name="mode", choices=["on", "off"]), OptionSpec(name="note")]
        args = parse_arguments(options, ["on", "extra", "words"])
        assert args["mode"] == "on"
        assert args["note"] == "extra words"
        assert args.tokens == ["on", "extra", "words"]

    def test_leftover_tokens_rejected(self):
        options = [OptionSpec(name="count", type=OptionType.INTEGER)]
        with pytest.raises(ArgumentError, match="Unexpected argument `junk`"):
            parse_arguments(options, ["3", "junk", "more"])

    def test_leftover_after_choice_option_rejected(self):
        options = [OptionSpec(name="mode", choices=["on", "off"])]
        with pytest.raises(ArgumentError, match="Unexpected argument `extra`"):
            parse_arguments(options, ["on", "extra"])


class TestCommandArguments:

    def test_defaults(self):
        args = CommandArguments()
        assert args.tokens == []
        assert args.raw == ""
        with pytest.raises(KeyError):
            args["missing"]
