"""Hidden markers the bot writes into its comments.

Bitbucket Cloud has no metadata field on comments, so the bot tags what it
posts with markdown link-reference lines, which render as nothing:

    [//]: # (danger-id-<ID>;)
    [//]: # (  File: <path>;
      Line: <line>;)

The id line is on every bot comment, the File/Line block only on inline ones.
A comment counts as the bot's own when it carries the id marker and was
authored by the bot account.
"""

import re
from dataclasses import dataclass

ID_PREFIX = "danger-id-"

_ID_RE = re.compile(r"\[//\]: # \(" + re.escape(ID_PREFIX) + r"(?P<bot_id>[^;)]+);\)")
# non-greedy so paths may contain ";"
_LOCATION_RE = re.compile(
    r"\[//\]: # \(\s*File: (?P<path>.+?);\s*Line: (?P<line>\d+);\)"
)


@dataclass(frozen=True)
class CommentMarker:
    bot_id: str
    path: str | None = None
    line: int | None = None

    @property
    def is_inline(self) -> bool:
        return self.path is not None


def id_marker(bot_id: str) -> str:
    return f"{ID_PREFIX}{bot_id};"


def signature_postfix(commit_id: str | None, tool_name: str = "bbcloud") -> str:
    signature = f"Generated by :no_entry_sign: {tool_name}"
    if commit_id:
        signature += f" against {commit_id}"
    return signature


def render_main_comment(bot_id: str, body: str, commit_id: str | None = None) -> str:
    return (
        f"{body}\n"
        f"\n[//]: # ({id_marker(bot_id)})\n"
        f"\n{signature_postfix(commit_id)}\n"
    )


def render_inline_comment(bot_id: str, path: str, line: int, body: str) -> str:
    return (
        f"\n[//]: # ({id_marker(bot_id)})"
        f"\n[//]: # (  File: {path};\n  Line: {line};)"
        f"\n\n{body}\n\n\n  "
    )


def parse_markers(text: str | None) -> CommentMarker | None:
    if not text:
        return None
    id_match = _ID_RE.search(text)
    if id_match is None:
        return None
    location = _LOCATION_RE.search(text)
    if location is None:
        return CommentMarker(bot_id=id_match.group("bot_id"))
    return CommentMarker(
        bot_id=id_match.group("bot_id"),
        path=location.group("path").strip(),
        line=int(location.group("line")),
    )


def contains_id(text: str | None, bot_id: str) -> bool:
    # the trailing ";" keeps danger-id-1 from matching danger-id-10
    return bool(text) and id_marker(bot_id) in text


def is_owned(
    text: str | None,
    author_uuid: str | None,
    bot_uuid: str | None,
    bot_id: str,
) -> bool:
    if not bot_uuid:
        return False
    return author_uuid == bot_uuid and contains_id(text, bot_id)
