"""
Mindsync - keeps a markdown document and its mind-map graph in sync.

This package provides the pure engine (parse, serialize, layout, style
tokens, validating factories) and the stateful SyncController used by the
backend and the CLI.
"""

from .models import (
    # Enums
    LayoutMode,
    NodeKind,
    # Core models
    Position,
    Size,
    BaseNode,
    TextNode,
    HeaderNode,
    CodeNode,
    ImageNode,
    Node,
    Edge,
    Graph,
)

from .errors import (
    Ok,
    Err,
    Result,
    EngineError,
    EngineFailure,
    ParseError,
    SerializeError,
    LayoutError,
    ValidationError,
)
from .style_tokens import extract_style_tokens, restore_style_tokens, resolve_style, DEFAULT_TOKENS
from .factories import create_text_node, create_header_node, create_code_node, create_image_node, create_edge
from .parser import parse
from .serializer import serialize, serialize_nodes
from .layout import layout, radial_layout, horizontal_layout
from .validation import validate_graph, ValidationIssue, IssueSeverity
from .analysis import summarize_graph, compute_levels, find_roots, find_children, find_parent
from .sync import SyncController, SyncState, DocumentSnapshot
from .config import Settings, get_settings

__all__ = [
    # Enums
    "LayoutMode",
    "NodeKind",
    # Models
    "Position",
    "Size",
    "BaseNode",
    "TextNode",
    "HeaderNode",
    "CodeNode",
    "ImageNode",
    "Node",
    "Edge",
    "Graph",
    # Results and errors
    "Ok",
    "Err",
    "Result",
    "EngineError",
    "EngineFailure",
    "ParseError",
    "SerializeError",
    "LayoutError",
    "ValidationError",
    # Style tokens
    "extract_style_tokens",
    "restore_style_tokens",
    "resolve_style",
    "DEFAULT_TOKENS",
    # Factories
    "create_text_node",
    "create_header_node",
    "create_code_node",
    "create_image_node",
    "create_edge",
    # Engine
    "parse",
    "serialize",
    "serialize_nodes",
    "layout",
    "radial_layout",
    "horizontal_layout",
    # Validation
    "validate_graph",
    "ValidationIssue",
    "IssueSeverity",
    # Analysis
    "summarize_graph",
    "compute_levels",
    "find_roots",
    "find_children",
    "find_parent",
    # Sync
    "SyncController",
    "SyncState",
    "DocumentSnapshot",
    # Config
    "Settings",
    "get_settings",
]
