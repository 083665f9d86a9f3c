"""
Comment command parser.

Extracts ``@mention /verb [free text]`` commands from issue and pull request
comment bodies::

    "@queen /vote"                  -> ParsedCommand(VOTE, None)
    "@hivemoot /implement asap"     -> ParsedCommand(IMPLEMENT, "asap")
    "@Queen /VOTE"                  -> ParsedCommand(VOTE, None)
    "@queen/vote"                   -> None (no space before the slash)
    "see @queen /vote"              -> None (mention must start the line)
    "> @queen /vote"                -> None (quoted reply)

Lines inside fenced code blocks and quoted-reply lines are invisible. The
first qualifying line wins; anything after the verb on that line, including
another command-like token, is free text.
"""

from __future__ import annotations

import re

from hive_queen.enums import CommandVerb
from hive_queen.models.governance import ParsedCommand

MENTION_ALIASES: tuple[str, ...] = ("queen", "hivemoot")

_COMMAND_LINE = re.compile(
    r"^[ \t]*@(?:" + "|".join(MENTION_ALIASES) + r")[ \t]+/(\S+)(?:[ \t]+(.*))?$",
    re.IGNORECASE,
)
_FENCE = re.compile(r"^[ \t]*(`{3,})(.*)$")

_VERBS = {verb.value: verb for verb in CommandVerb}


def _visible_lines(body: str) -> list[str]:
    """Lines outside fenced code blocks and quoted replies.

    A fence opens on a line of three or more backticks, optionally followed
    by a language tag, and closes on a line holding only a run of at least
    as many backticks. An unclosed fence hides the rest of the body.
    """
    visible: list[str] = []
    fence: str | None = None

    for line in body.splitlines():
        match = _FENCE.match(line)
        if fence is None:
            if match and "`" not in match.group(2):
                fence = match.group(1)
                continue
            if line.lstrip().startswith(">"):
                continue
            visible.append(line)
        elif match and len(match.group(1)) >= len(fence) and not match.group(2).strip():
            fence = None

    return visible


def parse_command(body: str | None) -> ParsedCommand | None:
    """Parse a comment body for a bot command.

    Args:
        body: Raw comment text

    Returns:
        The first recognised command, or None when no visible line
        qualifies
    """
    if not body:
        return None

    for line in _visible_lines(body):
        match = _COMMAND_LINE.match(line)
        if not match:
            continue

        verb = _VERBS.get(match.group(1).lower())
        if verb is None:
            continue

        free_text = (match.group(2) or "").strip() or None
        return ParsedCommand(verb=verb, free_text=free_text)

    return None
