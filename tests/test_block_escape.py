"""
Tests for block escapes: which content lines get a backslash, and that
unescaping gives the original content back.
"""

import pytest

from mindsync.block_escape import (
    escape_block_starts,
    needs_escape,
    normalize_content,
    unescape_block_starts,
)


@pytest.mark.parametrize("line", [
    "# Intro", "###### deep", "#", "- item", "+ item", "* item", "-",
    "1. one", "10) ten", "> quote", "```js", "~~~", "---", "___", "* * *",
    "===", "<div>", "[ref]: /url", "\\# already",
])
def test_block_starts_need_escape(line):
    assert needs_escape(line)


@pytest.mark.parametrize("line", [
    "plain", "#hashtag", "*emphasis*", "-dash", "1.5 litres", "C# code",
    "a > b", "\\*not a block", "[link](url)", "",
])
def test_plain_lines_are_left_alone(line):
    assert not needs_escape(line)
    assert escape_block_starts(line) == line


def test_escape_is_per_line():
    assert escape_block_starts("first\n- second\nthird") == "first\n\\- second\nthird"


@pytest.mark.parametrize("content", [
    "# Intro", "\\# Intro", "\\\\# Intro", "a\n> b\n\\c", "1. one\n2. two",
])
def test_unescape_reverses_escape(content):
    assert unescape_block_starts(escape_block_starts(content)) == content


def test_normalize_content_strips_each_line():
    assert normalize_content("  one \n   two\n") == "one\ntwo"
