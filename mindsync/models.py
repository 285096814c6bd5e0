"""
Core data models for the markdown graph.

These models define the canonical schema shared by the parser, serializer,
layout engine and sync controller:
- Four node kinds (text, header, code, image), a union tagged by `type`
- Parent -> child edges (`source_id` is the parent, `target_id` the child)
- Graph snapshots bundling nodes, edges and the layout mode

Field Naming Convention:
- Python attributes are snake_case (`source_id`, `measured_size`, `group_id`)
- JSON serialization outputs camelCase (`sourceId`, `measuredSize`, `groupId`)
  so renderer collaborators can consume the snapshot as-is
- For compatibility with plain diagram payloads, edges also accept
  `source`/`target` on input and convert them

All models are frozen. Changing a node means building a new one with
`model_copy(update=...)` or re-validating through the factories.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from urllib.parse import urlsplit
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError


class LayoutMode(str, Enum):
    """Position algorithm selector."""
    RADIAL = "radial"
    HORIZONTAL = "horizontal"


class NodeKind(str, Enum):
    """Node variants, matching the `type` tag of each node model."""
    TEXT = "text"      # List item
    HEADER = "header"  # ATX/setext heading
    CODE = "code"      # Fenced or indented code block
    IMAGE = "image"    # Standalone ![alt](url) paragraph


MAX_TEXT_LEVEL = 5
MAX_HEADER_LEVEL = 6

ALLOWED_URL_SCHEMES = frozenset({"http", "https", "data", "file"})


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"n{uuid.uuid4().hex[:8]}"


def generate_edge_id() -> str:
    """Generate a unique edge ID."""
    return f"e{uuid.uuid4().hex[:8]}"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Position(_FrozenModel):
    """Canvas coordinates of a node's center."""
    x: float = 0.0
    y: float = 0.0


class Size(_FrozenModel):
    """Bounding box reported by the renderer after drawing a node."""
    width: float = Field(ge=0)
    height: float = Field(ge=0)


def _require_content(value: str) -> str:
    if not value or not value.strip():
        raise PydanticCustomError("empty_content", "content must be a non-empty string")
    return value


def _require_level(value: int, max_level: int) -> int:
    if value < 1 or value > max_level:
        raise PydanticCustomError(
            "out_of_range",
            "level must be between 1 and {max_level}, got {level}",
            {"max_level": max_level, "level": value},
        )
    return value


class BaseNode(_FrozenModel):
    """Fields shared by every node kind."""
    id: str = Field(default_factory=generate_node_id)
    content: str = ""
    style: str = ""  # Space-separated style tokens, without dots
    position: Position = Field(default_factory=Position)
    measured_size: Optional[Size] = None
    group_id: Optional[int] = None  # Set by thematic breaks

    @property
    def kind(self) -> NodeKind:
        return NodeKind(self.type)  # type: ignore[attr-defined]

    @property
    def tokens(self) -> list[str]:
        """Style tokens as a list."""
        return self.style.split()

    def center(self) -> tuple[float, float]:
        """Get the center point of the node."""
        return (self.position.x, self.position.y)

    def bounds(self) -> Optional[tuple[float, float, float, float]]:
        """Get the bounding box (left, top, right, bottom), if measured."""
        if self.measured_size is None:
            return None
        half_w = self.measured_size.width / 2
        half_h = self.measured_size.height / 2
        return (
            self.position.x - half_w,
            self.position.y - half_h,
            self.position.x + half_w,
            self.position.y + half_h,
        )


class TextNode(BaseNode):
    """A list item. `level` is the list nesting depth (1-5)."""
    type: Literal["text"] = "text"
    level: int = 1

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        return _require_content(value)

    @field_validator("level")
    @classmethod
    def check_level(cls, value: int) -> int:
        return _require_level(value, MAX_TEXT_LEVEL)


class HeaderNode(BaseNode):
    """A heading. `level` is the number of hashes (1-6)."""
    type: Literal["header"] = "header"
    level: int = 1

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        return _require_content(value)

    @field_validator("level")
    @classmethod
    def check_level(cls, value: int) -> int:
        return _require_level(value, MAX_HEADER_LEVEL)


class CodeNode(BaseNode):
    """A code block. `content` is the code, `language` may be empty."""
    type: Literal["code"] = "code"
    language: str = ""

    @field_validator("language")
    @classmethod
    def check_language(cls, value: str) -> str:
        if any(ch.isspace() for ch in value) or "`" in value:
            raise PydanticCustomError(
                "invalid_field",
                "language must be a single word without backticks, got '{language}'",
                {"language": value},
            )
        return value


class ImageNode(BaseNode):
    """A standalone image. `content` mirrors `alt_text` for display."""
    type: Literal["image"] = "image"
    image_url: str
    alt_text: str = ""

    @field_validator("image_url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not value or any(ch.isspace() for ch in value):
            raise PydanticCustomError("invalid_url", "image URL must be non-empty and contain no whitespace")
        scheme = urlsplit(value).scheme.lower()
        if scheme and scheme not in ALLOWED_URL_SCHEMES:
            raise PydanticCustomError(
                "invalid_url",
                "image URL scheme '{scheme}' is not allowed",
                {"scheme": scheme},
            )
        return value


Node = Annotated[
    Union[TextNode, HeaderNode, CodeNode, ImageNode],
    Field(discriminator="type"),
]

NODE_MODELS: dict[NodeKind, type[BaseNode]] = {
    NodeKind.TEXT: TextNode,
    NodeKind.HEADER: HeaderNode,
    NodeKind.CODE: CodeNode,
    NodeKind.IMAGE: ImageNode,
}


def _convert_legacy_edge_fields(data: Any) -> Any:
    if isinstance(data, dict):
        data = dict(data)
        if "source" in data and "sourceId" not in data and "source_id" not in data:
            data["sourceId"] = data.pop("source")
        if "target" in data and "targetId" not in data and "target_id" not in data:
            data["targetId"] = data.pop("target")
    return data


class Edge(_FrozenModel):
    """
    A parent -> child hierarchy link.

    Uses `source_id` and `target_id` as canonical field names.
    Accepts `source`/`target` on input for compatibility.
    """
    id: str = Field(default_factory=generate_edge_id)
    source_id: str
    target_id: str

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert plain 'source'/'target' fields to 'sourceId'/'targetId'."""
        return _convert_legacy_edge_fields(data)

    @model_validator(mode="after")
    def check_not_self_loop(self) -> "Edge":
        if self.source_id == self.target_id:
            raise PydanticCustomError(
                "invalid_field",
                "edge cannot connect node {node_id} to itself",
                {"node_id": self.source_id},
            )
        return self


class Graph(_FrozenModel):
    """
    The complete (nodes, edges, layout mode) snapshot.

    A parse produces a brand new Graph; mutations produce new Graphs.
    Node order is document order and is significant to the serializer.
    """
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    layout_mode: LayoutMode = LayoutMode.RADIAL

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict with camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json_dict(cls, data: dict) -> "Graph":
        """Create a Graph from a JSON dict (camelCase or snake_case keys)."""
        return cls.model_validate(data)

    def node_index(self) -> dict[str, BaseNode]:
        """Map node id -> node."""
        return {node.id: node for node in self.nodes}

    def get_node(self, node_id: str) -> Optional[BaseNode]:
        """Get a node by ID (O(n) - build node_index() for repeated lookups)."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        """Get an edge by ID."""
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def structure(self) -> list[tuple]:
        """
        Id-independent description of the graph.

        Two graphs with equal structure have the same node kinds, levels,
        content, style, groups and parent links, in the same order.
        """
        order = {node.id: i for i, node in enumerate(self.nodes)}
        parents = {edge.target_id: order.get(edge.source_id) for edge in self.edges}
        rows = []
        for node in self.nodes:
            extra = node.model_dump(include={"level", "language", "image_url", "alt_text"})
            rows.append((
                node.type,
                tuple(sorted(extra.items())),
                node.content,
                node.style,
                node.group_id,
                parents.get(node.id),
            ))
        return rows


# --- API Request Models ---

class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CreateNodeRequest(_RequestModel):
    """Request to create a node, optionally under a parent."""
    type: NodeKind = NodeKind.TEXT
    parent_id: Optional[str] = None
    content: Optional[str] = None
    level: Optional[int] = None
    style: Optional[str] = None
    language: Optional[str] = None
    image_url: Optional[str] = None
    alt_text: Optional[str] = None
    position: Optional[Position] = None

    def node_fields(self) -> dict:
        """Fields for the node itself (unset ones keep their defaults)."""
        return self.model_dump(exclude_none=True, exclude={"type", "parent_id"})


class UpdateNodeRequest(_RequestModel):
    """Request to update an existing node (partial update)."""
    content: Optional[str] = None
    level: Optional[int] = None
    style: Optional[str] = None
    language: Optional[str] = None
    image_url: Optional[str] = None
    alt_text: Optional[str] = None
    position: Optional[Position] = None
    group_id: Optional[int] = None

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class CreateEdgeRequest(_RequestModel):
    """Request to link a child under a parent."""
    source_id: str
    target_id: str

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert plain 'source'/'target' fields to 'sourceId'/'targetId'."""
        return _convert_legacy_edge_fields(data)


class TextUpdateRequest(_RequestModel):
    """New editor text; `flush` skips the debounce."""
    text: str
    flush: bool = False


class LayoutModeRequest(_RequestModel):
    mode: LayoutMode


class MeasuredSizesRequest(_RequestModel):
    """Renderer-measured sizes, keyed by node id."""
    sizes: dict[str, Size]


class ParseRequest(_RequestModel):
    text: str


class LayoutRequest(_RequestModel):
    """Stateless layout of an arbitrary node set."""
    nodes: list[Node]
    edges: list[Edge] = Field(default_factory=list)
    mode: LayoutMode = LayoutMode.RADIAL
