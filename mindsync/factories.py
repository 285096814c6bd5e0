"""
Validating factories for nodes and edges.

Each factory returns `Ok(entity)` or `Err(ValidationError)`; pydantic's own
validation exceptions never escape. Positions start at the origin and are
assigned later by the layout engine.
"""

from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .block_escape import normalize_content
from .errors import Err, Ok, Result, ValidationError, ValidationErrorKind
from .models import BaseNode, CodeNode, Edge, HeaderNode, ImageNode, TextNode


def validation_error_from(exc: PydanticValidationError, node_id: Optional[str] = None) -> ValidationError:
    """Convert the first pydantic error into the engine's ValidationError."""
    first = exc.errors()[0]
    loc = first.get("loc") or ()
    field = str(loc[0]) if loc else None
    try:
        kind = ValidationErrorKind(first["type"])
    except ValueError:
        if first["type"] in ("greater_than_equal", "less_than_equal", "greater_than", "less_than"):
            kind = ValidationErrorKind.OUT_OF_RANGE
        else:
            kind = ValidationErrorKind.INVALID_FIELD
    message = first["msg"]
    if field:
        message = f"{field}: {message}"
    return ValidationError(
        kind=kind,
        message=message,
        node_id=node_id,
        field=field,
        value=first.get("input"),
    )


def build_node(model: type[BaseNode], **fields: Any) -> Result[BaseNode, ValidationError]:
    """Construct any node model, converting validation failures to a result."""
    try:
        return Ok(model(**fields))
    except PydanticValidationError as e:
        return Err(validation_error_from(e, node_id=fields.get("id")))


def create_text_node(content: str, level: int, style: str = "") -> Result[TextNode, ValidationError]:
    """
    Create a text node (list item).

    Args:
        content: Display text
        level: List nesting depth (1-5)
        style: Space-separated style tokens
    """
    return build_node(TextNode, content=normalize_content(content), level=level, style=style)


def create_header_node(content: str, level: int, style: str = "") -> Result[HeaderNode, ValidationError]:
    """
    Create a header node.

    Args:
        content: Display text
        level: Heading depth (1-6)
        style: Space-separated style tokens
    """
    return build_node(HeaderNode, content=normalize_content(content), level=level, style=style)


def create_code_node(content: str, language: str = "", style: str = "") -> Result[CodeNode, ValidationError]:
    """Create a code node. Content may be empty; language may be empty."""
    return build_node(CodeNode, content=content, language=language.strip(), style=style)


def create_image_node(alt_text: str, image_url: str, style: str = "") -> Result[ImageNode, ValidationError]:
    """Create an image node; the alt text doubles as display content."""
    alt = alt_text.strip()
    return build_node(ImageNode, content=alt, alt_text=alt, image_url=image_url.strip(), style=style)


def create_edge(source_id: str, target_id: str) -> Result[Edge, ValidationError]:
    """Create a parent -> child edge. Rejects empty ids and self loops."""
    for field, value in (("source_id", source_id), ("target_id", target_id)):
        if not value or not value.strip():
            return Err(ValidationError(
                kind=ValidationErrorKind.EMPTY_CONTENT,
                message=f"{field} is required",
                field=field,
                value=value,
            ))
    try:
        return Ok(Edge(source_id=source_id, target_id=target_id))
    except PydanticValidationError as e:
        return Err(validation_error_from(e, node_id=source_id))
