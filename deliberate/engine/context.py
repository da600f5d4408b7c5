"""Context sanitizer - bounds and neutralizes text crossing the LLM boundary.

Inbound: decision text and extracted documents are attacker-reachable, so
they are stripped of control characters and role-like tags and clipped to a
budget before being placed in a system prompt. Outbound: model text is
rendered as HTML, so it is escaped with only a handful of tags re-enabled.
"""

import html
import re
from collections.abc import Iterable

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_CODE_FENCE = re.compile(r"```")
_ROLE_TAG = re.compile(r"<\s*/?\s*(system|assistant|user|tool)\s*>", re.IGNORECASE)

_MD_HEADING = re.compile(r"^\s{0,3}#{1,6}\s?", re.MULTILINE)
_MD_BOLD_STARS = re.compile(r"\*\*(.*?)\*\*")
_MD_BOLD_UNDERSCORES = re.compile(r"__(.*?)__")
_MD_INLINE_CODE = re.compile(r"`([^`]+)`")
_MD_LINK = re.compile(r"\[(.*?)\]\((.*?)\)")
_MD_QUOTE = re.compile(r"^\s*>\s?", re.MULTILINE)
_MD_BULLET = re.compile(r"^\s*[-*]\s+", re.MULTILINE)

# Escaped forms of the only tags the coach may emit
_ALLOWED_TAGS = (
    ("&lt;b&gt;", "<b>"),
    ("&lt;/b&gt;", "</b>"),
    ("&lt;i&gt;", "<i>"),
    ("&lt;/i&gt;", "</i>"),
    ("&lt;br&gt;", "<br>"),
    ("&lt;br/&gt;", "<br>"),
    ("&lt;br /&gt;", "<br>"),
)


def strip_control_chars(text: str) -> str:
    """Replace C0 control characters and DEL with spaces, then trim."""
    return _CONTROL_CHARS.sub(" ", text).strip()


def sanitize_untrusted_context(text: str, max_chars: int) -> str:
    """
    Make untrusted text safe to embed in a system prompt.

    Control characters go first and the result is clipped to ``max_chars``;
    fence and role-tag removal then run on the bounded string until nothing
    more matches, since removing one tag can splice the halves of another.
    """
    bounded = strip_control_chars(text)[: max(max_chars, 0)]
    while True:
        cleaned = _ROLE_TAG.sub("", _CODE_FENCE.sub("", bounded))
        if cleaned == bounded:
            break
        bounded = cleaned
    return bounded.strip()


def build_bounded_context(parts: Iterable[str], max_total_chars: int) -> str:
    """
    Newline-join ``parts`` so that their combined length never exceeds
    ``max_total_chars``. The part that meets the budget is clipped; anything
    after it is dropped. Empty parts are skipped.
    """
    chunks: list[str] = []
    used = 0
    for part in parts:
        if not part or used >= max_total_chars:
            continue
        clipped = part[: max_total_chars - used]
        chunks.append(clipped)
        used += len(clipped)
    return "\n".join(chunks)


def sanitize_coach_output(text: str) -> str:
    """Strip Markdown, escape HTML, then re-enable only b, i and br."""
    plain = _CODE_FENCE.sub("", text)
    plain = _MD_HEADING.sub("", plain)
    plain = _MD_BOLD_STARS.sub(r"\1", plain)
    plain = _MD_BOLD_UNDERSCORES.sub(r"\1", plain)
    plain = _MD_INLINE_CODE.sub(r"\1", plain)
    plain = _MD_LINK.sub(r"\1", plain)
    plain = _MD_QUOTE.sub("", plain)
    plain = _MD_BULLET.sub("", plain)

    escaped = html.escape(plain, quote=False)
    for entity, tag in _ALLOWED_TAGS:
        escaped = escaped.replace(entity, tag)
    return escaped.replace("\n", "<br>")
