"""Rewriting of user mention tokens between Slack ids and directory indexes."""

import re
from collections.abc import Mapping

from slack_archiver.domain.entities.directory import UserEntry

SLACK_MENTION_PATTERN = re.compile(r"<@([UW][A-Z0-9]+)>")
INDEX_MENTION_PATTERN = re.compile(r"<@(\d+)>")


def replace_mentions_with_index(text: str, lookup: Mapping[str, int]) -> str:
    """Rewrite ``<@U123>`` tokens into ``<@7>`` using a user id to index map.

    Unknown ids are left as they are.

    >>> replace_mentions_with_index("hi <@U123>", {"U123": 7})
    'hi <@7>'
    """
    if not text:
        return ""

    def substitute(match: re.Match[str]) -> str:
        index = lookup.get(match.group(1))
        return f"<@{index}>" if index else match.group(0)

    return SLACK_MENTION_PATTERN.sub(substitute, text)


def render_mentions(text: str, users: Mapping[int, UserEntry]) -> str:
    """Rewrite ``<@7>`` tokens into ``@<name>`` for display.

    >>> render_mentions("hi <@7>", {7: UserEntry(index=7, user_id="U1", name="Ann")})
    'hi @Ann'
    """
    if not text:
        return ""

    def substitute(match: re.Match[str]) -> str:
        user = users.get(int(match.group(1)))
        return f"@{user.name}" if user is not None else match.group(0)

    return INDEX_MENTION_PATTERN.sub(substitute, text)
