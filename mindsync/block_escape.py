"""
Block escapes - keep node content from turning into markdown structure.

A content line that starts like a block (`# `, `- `, `1. `, `>`, a fence, a
thematic break or setext underline, an HTML tag, a link definition) would be
read back as a different element. The serializer puts a backslash in front
of such lines and the parser takes it off again:

    content "# Intro"   <->   - \\# Intro

Backslashes already in front of such a line get one more, so the escape is
reversible for every line. Other backslashes are left alone.
"""

import re

BLOCK_START_PATTERN = re.compile(
    r"^(?:"
    r"#{1,6}(?:\s|$)"            # ATX heading
    r"|[-+*](?:\s|$)"            # bullet, or a spaced thematic break
    r"|\d{1,9}[.)](?:\s|$)"      # ordered list item
    r"|>"                        # block quote
    r"|```|~~~"                  # fence
    r"|-+\s*$|=+\s*$"            # thematic break / setext underline
    r"|(?:_\s*){3,}$|(?:\*\s*){3,}$"
    r"|<"                        # HTML block
    r"|\[[^\]]*\]:"              # link reference definition
    r")"
)


def needs_escape(line: str) -> bool:
    # Backslashes in front of a block start are escaped too
    return bool(BLOCK_START_PATTERN.match(line.lstrip("\\")))


def escape_block_starts(content: str) -> str:
    """Backslash-escape every line of `content` that would open a block."""
    return "\n".join("\\" + line if needs_escape(line) else line for line in content.split("\n"))


def unescape_block_starts(content: str) -> str:
    """Inverse of `escape_block_starts`."""
    lines = []
    for line in content.split("\n"):
        if line.startswith("\\") and needs_escape(line[1:]):
            line = line[1:]
        lines.append(line)
    return "\n".join(lines)


def normalize_content(content: str) -> str:
    """Strip the text and each of its lines, as markdown would."""
    return "\n".join(line.strip() for line in content.strip().split("\n"))
