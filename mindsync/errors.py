"""
Result values and the engine's error taxonomy.

Every fallible engine operation returns `Ok(value)` or `Err(error)` instead of
raising. Errors are small dataclasses carrying a machine-readable `kind`, a
human message, and whatever locator is available (node id, edge id, line).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class EngineFailure(Exception):
    """Raised by `Err.unwrap()`; carries the error value."""

    def __init__(self, error: "EngineError"):
        super().__init__(f"{error.kind.value}: {error.message}")
        self.error = error


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result."""
    error: E

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise EngineFailure(self.error)  # type: ignore[arg-type]


Result = Union[Ok[T], Err[E]]


class ParseErrorKind(str, Enum):
    SYNTAX_ERROR = "syntax_error"
    TOKEN_EXTRACTION_ERROR = "token_extraction_error"


class SerializeErrorKind(str, Enum):
    INVALID_NODE = "invalid_node"
    INVALID_EDGE = "invalid_edge"


class LayoutErrorKind(str, Enum):
    MISSING_MEASURED_SIZE = "missing_measured_size"
    CIRCULAR_DEPENDENCY = "circular_dependency"


class ValidationErrorKind(str, Enum):
    OUT_OF_RANGE = "out_of_range"
    INVALID_URL = "invalid_url"
    EMPTY_CONTENT = "empty_content"
    INVALID_FIELD = "invalid_field"


@dataclass(frozen=True)
class EngineError:
    """Base error value. `kind` is one of the *ErrorKind enums."""
    kind: Enum
    message: str
    node_id: str | None = None
    edge_id: str | None = None
    line: int | None = None

    @property
    def category(self) -> str:
        return "error"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "category": self.category,
            "type": self.kind.value,
            "message": self.message,
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.edge_id:
            result["edge_id"] = self.edge_id
        if self.line is not None:
            result["line"] = self.line
        return result


@dataclass(frozen=True)
class ParseError(EngineError):
    @property
    def category(self) -> str:
        return "parse"


@dataclass(frozen=True)
class SerializeError(EngineError):
    @property
    def category(self) -> str:
        return "serialize"


@dataclass(frozen=True)
class LayoutError(EngineError):
    @property
    def category(self) -> str:
        return "layout"


@dataclass(frozen=True)
class ValidationError(EngineError):
    """Factory-level rejection of a field value."""
    field: str | None = None
    value: Any = None

    @property
    def category(self) -> str:
        return "validation"

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result
