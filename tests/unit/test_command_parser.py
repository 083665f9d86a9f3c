"""Tests for hive_queen/commands/parser.py."""

import pytest

from hive_queen.commands.parser import parse_command
from hive_queen.enums import CommandVerb
from hive_queen.models.governance import ParsedCommand


class TestRecognisedCommands:
    """Lines that qualify as commands."""

    def test_vote_without_free_text(self):
        assert parse_command("@queen /vote") == ParsedCommand(verb=CommandVerb.VOTE, free_text=None)

    @pytest.mark.parametrize("body", ["@Queen /VOTE", "@QUEEN /Vote", "@hivemoot /vote", "@HiveMoot /vOtE"])
    def test_case_insensitive_mention_and_verb(self, body):
        assert parse_command(body) == ParsedCommand(verb=CommandVerb.VOTE)

    def test_implement_with_free_text(self):
        result = parse_command("@queen /implement   ship it today  ")

        assert result.verb == CommandVerb.IMPLEMENT
        assert result.free_text == "ship it today"

    def test_tab_between_mention_and_verb(self):
        assert parse_command("@queen\t/vote") == ParsedCommand(verb=CommandVerb.VOTE)

    def test_leading_whitespace_allowed(self):
        assert parse_command("   @queen /vote") == ParsedCommand(verb=CommandVerb.VOTE)

    def test_second_command_on_same_line_is_free_text(self):
        result = parse_command("@queen /vote @queen /implement")

        assert result == ParsedCommand(verb=CommandVerb.VOTE, free_text="@queen /implement")

    def test_first_qualifying_line_wins(self):
        body = "Thanks all.\n@queen /implement\n@queen /vote"

        assert parse_command(body).verb == CommandVerb.IMPLEMENT

    def test_unknown_verb_falls_through_to_next_line(self):
        body = "@queen /merge now\n@queen /vote"

        assert parse_command(body) == ParsedCommand(verb=CommandVerb.VOTE)

    def test_inline_code_elsewhere_does_not_block(self):
        result = parse_command("@queen /vote see `config.yml`")

        assert result.free_text == "see `config.yml`"

    def test_command_after_closed_fence(self):
        body = "```\n@queen /implement\n```\n@queen /vote"

        assert parse_command(body) == ParsedCommand(verb=CommandVerb.VOTE)


class TestNonCommands:
    """Bodies that never yield a command."""

    @pytest.mark.parametrize("body", ["", None, "   ", "just a comment"])
    def test_empty_or_plain(self, body):
        assert parse_command(body) is None

    def test_no_space_before_slash(self):
        assert parse_command("@queen/vote") is None

    def test_mention_mid_line(self):
        assert parse_command("text @queen /vote") is None

    def test_quoted_reply(self):
        assert parse_command("> @queen /vote") is None

    def test_indented_multi_line_quote(self):
        assert parse_command("  > earlier reply\n  > @queen /vote") is None

    def test_inside_fenced_block(self):
        assert parse_command("```\n@queen /vote\n```") is None

    def test_inside_fenced_block_with_language_tag(self):
        assert parse_command("```bash\n@queen /vote\n```") is None

    def test_unclosed_fence_hides_rest(self):
        assert parse_command("````\n@queen /vote\n```\n@queen /implement") is None

    def test_unknown_mention(self):
        assert parse_command("@drone /vote") is None

    def test_unknown_verb_only(self):
        assert parse_command("@queen /merge") is None
