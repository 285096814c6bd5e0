"""
Style tokens - trailing `{.token .token}` annotations on markdown elements.

A heading, list item, code fence or image may end with a single brace block
of dot-prefixed identifiers:

    # Title {.color-blue .h1}
    - child {.color-red}

The codec strips that block into a token list (the node's `style`) and puts
it back on serialization. Brace text anywhere else is ordinary content.
"""

import logging
import re
from typing import NamedTuple, Union

logger = logging.getLogger(__name__)

# Optional whitespace + {.tok1 .tok2} + optional whitespace at end of text
STYLE_BLOCK_PATTERN = re.compile(r"\s*\{(\.[\w-]+(?:\s+\.[\w-]+)*)\}\s*$")

TOKEN_PATTERN = re.compile(r"^[\w-]+$")

MAX_RESOLVE_DEPTH = 10


class StyleTokens(NamedTuple):
    """Result of splitting element text into content and tokens."""
    content: str
    tokens: list[str]


def extract_style_tokens(text: str) -> StyleTokens:
    """
    Split a trailing style block off `text`.

    Only the last trailing block is recognized; without one the text comes
    back unchanged with no tokens.

    Example:
        extract_style_tokens("Header {.color-blue .h1}")
        -> StyleTokens(content="Header", tokens=["color-blue", "h1"])
    """
    match = STYLE_BLOCK_PATTERN.search(text)
    if not match:
        return StyleTokens(text, [])

    content = text[:match.start()].rstrip()
    tokens = [t.lstrip(".") for t in match.group(1).split()]
    return StyleTokens(content, [t for t in tokens if t])


def restore_style_tokens(content: str, tokens: list[str]) -> str:
    """Append the canonical `{.tok1 .tok2}` suffix (inverse of extract)."""
    if not tokens:
        return content
    block = " ".join(f".{t}" for t in tokens)
    return f"{content} {{{block}}}" if content else f"{{{block}}}"


def split_style(style: str) -> list[str]:
    """Split a node's space-separated `style` string into tokens."""
    return style.split()


def is_valid_token(token: str) -> bool:
    """Check a token name can round-trip through a style block."""
    return bool(TOKEN_PATTERN.match(token))


# --- Style resolution ---

StyleValue = Union[dict, str]  # atomic properties, or a composite token string

DEFAULT_TOKENS: dict[str, StyleValue] = {
    # Colors
    "color-blue": {"stroke": "#2563eb", "fill": "#dbeafe"},
    "color-red": {"stroke": "#dc2626", "fill": "#fee2e2"},
    "color-mint": {"stroke": "#059669", "fill": "#d1fae5"},
    "color-yellow": {"stroke": "#ca8a04", "fill": "#fef9c3"},
    "color-gray": {"stroke": "#64748b", "fill": "#f1f5f9"},
    "color-purple": {"stroke": "#7c3aed", "fill": "#ede9fe"},
    "color-orange": {"stroke": "#ea580c", "fill": "#fed7aa"},
    "color-pink": {"stroke": "#db2777", "fill": "#fce7f3"},
    # Sizes (font size only; boxes are measured by the renderer)
    "h1": {"fontSize": 24},
    "h2": {"fontSize": 20},
    "h3": {"fontSize": 18},
    "h4": {"fontSize": 16},
    "h5": {"fontSize": 14},
    "h6": {"fontSize": 12},
    # Feel (roughness of the hand-drawn stroke)
    "smooth": {"roughness": 0.5},
    "neat": {"roughness": 1.0},
    "rough": {"roughness": 1.5},
    "sketchy": {"roughness": 2.0},
    "messy": {"roughness": 2.5},
    # Border
    "thin": {"strokeWidth": 1},
    "normal": {"strokeWidth": 2},
    "thick": {"strokeWidth": 3},
    "bold": {"strokeWidth": 4},
    # Shape
    "shape-none": {"shape": "none"},
    "shape-rect": {"shape": "rect"},
    "shape-circle": {"shape": "circle"},
    "shape-rounded": {"shape": "rounded"},
}


def resolve_style(
    style: str,
    definitions: dict[str, StyleValue] | None = None,
    depth: int = 0,
) -> dict:
    """
    Resolve a token string into merged style properties.

    Composite tokens (string values) are expanded recursively up to
    MAX_RESOLVE_DEPTH levels. Later tokens override earlier ones.

    Args:
        style: Space-separated token names, e.g. "color-blue h4 neat"
        definitions: Token library (defaults to DEFAULT_TOKENS)
        depth: Current recursion depth

    Returns:
        Dict of style properties
    """
    if definitions is None:
        definitions = DEFAULT_TOKENS

    if depth > MAX_RESOLVE_DEPTH:
        logger.warning("Token recursion depth exceeded (max %d) for style %r", MAX_RESOLVE_DEPTH, style)
        return {}

    result: dict = {}
    for name in split_style(style):
        value = definitions.get(name)
        if value is None:
            logger.warning("Unknown style token: %r", name)
            continue
        if isinstance(value, str):
            result.update(resolve_style(value, definitions, depth + 1))
        else:
            result.update(value)
    return result
