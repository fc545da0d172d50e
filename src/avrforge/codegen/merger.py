"""
Marker-delimited section merging.

Merging works purely on the byte offsets of a validated marker pair: the text
strictly between the start and end tokens is replaced, and nothing outside
the pair is ever modified. The surrounding language is never parsed, so an
unbalanced brace elsewhere in the file cannot affect the result.
"""

from dataclasses import dataclass
from typing import Optional

from .markers import MarkerPair


class MergeError(Exception):
    """Raised when a merge would corrupt the marker structure."""

    pass


@dataclass(frozen=True)
class MarkedSection:
    """
    A located marker pair and the text strictly between its tokens.

    Attributes:
        start_token: Start sentinel
        end_token: End sentinel
        body_start: Offset of the first character after the start token
        body_end: Offset of the end token
        body: ``text[body_start:body_end]``
    """

    start_token: str
    end_token: str
    body_start: int
    body_end: int
    body: str

    @classmethod
    def find(cls, text: str, start_token: str, end_token: str) -> Optional["MarkedSection"]:
        """
        Locate the marker pair in ``text``.

        The pair is the last start token that is followed by an end token,
        together with the first end token after it. Orphaned tokens (a start
        without an end after it, or an end without a start before it) are
        never paired, so they cannot cause user text to be swallowed.

        Returns:
            MarkedSection, or None when no well-formed pair exists
        """
        position = text.rfind(start_token)
        while position != -1:
            body_start = position + len(start_token)
            body_end = text.find(end_token, body_start)
            if body_end != -1:
                return cls(start_token, end_token, body_start, body_end, text[body_start:body_end])
            position = text.rfind(start_token, 0, position)
        return None


def _validate(start_token: str, end_token: str, body: str) -> None:
    if not start_token or not end_token or start_token == end_token:
        raise MergeError("Marker tokens must be non-empty and distinct")
    if start_token in body or end_token in body:
        raise MergeError("Section body must not contain its own marker tokens")


def merge_section(
    text: str,
    start_token: str,
    end_token: str,
    body: str,
    anchor: Optional[str] = None,
    at_start: bool = False,
) -> str:
    """
    Replace the text between a marker pair, creating the pair if absent.

    Args:
        text: Current file contents
        start_token: Start marker
        end_token: End marker
        body: New text placed strictly between the markers, verbatim
        anchor: When the pair must be created, insert it on the line after
            the first occurrence of this text (if present)
        at_start: When the pair must be created and no anchor applies,
            insert it at the top of the file instead of the end

    Returns:
        Updated file contents

    Raises:
        MergeError: If the tokens are unusable or ``body`` contains them

    Example:
        merge_section("a\\n// B\\nfoo();\\n// E\\nz", "// B", "// E", "\\npins_init_all();\\n")
        # -> "a\\n// B\\npins_init_all();\\n// E\\nz"
    """
    _validate(start_token, end_token, body)

    section = MarkedSection.find(text, start_token, end_token)
    if section is not None:
        return text[:section.body_start] + body + text[section.body_end:]

    block = f"{start_token}{body}{end_token}"

    if anchor:
        anchor_at = text.find(anchor)
        if anchor_at != -1:
            line_end = text.find("\n", anchor_at + len(anchor))
            if line_end == -1:
                return f"{text}\n{block}\n"
            return f"{text[:line_end]}\n{block}{text[line_end:]}"

    if not text:
        return f"{block}\n"
    if at_start:
        return f"{block}\n{text}"
    separator = "\n" if text.endswith("\n") else "\n\n"
    return f"{text}{separator}{block}\n"


def merge_marked(text: str, pair: MarkerPair, body: str, **placement) -> str:
    """``merge_section`` for a MarkerPair."""
    return merge_section(text, pair.start, pair.end, body, **placement)


def frame_body(lines: str, indent: str = "") -> str:
    """
    Lay out region content so each marker stays on its own line.

    Produces ``"\\n" + indented lines + "\\n" + indent`` so that the end
    marker keeps the indentation of the start marker. Framing is a pure
    function of its input, which keeps repeated merges byte-identical.
    """
    if not lines:
        return f"\n{indent}"
    indented = "\n".join(f"{indent}{line}" if line else "" for line in lines.split("\n"))
    return f"\n{indented}\n{indent}"
