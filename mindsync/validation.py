"""
Graph validation - Check graphs for structural issues.

The hierarchy must be a forest: every edge joins two existing, distinct
nodes, every node has at most one parent, and there are no cycles. Used by
the CLI `validate` command and the backend to report every issue at once;
the serializer stops at the first one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .analysis import find_cycle

if TYPE_CHECKING:
    from .models import Graph


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, cannot be serialized faithfully
    WARNING = "warning"  # Redundant but harmless
    INFO = "info"        # Informational


@dataclass
class ValidationIssue:
    """A single validation issue found in a graph."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    edge_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.edge_id:
            result["edge_id"] = self.edge_id
        return result


def validate_graph(graph: "Graph") -> list[ValidationIssue]:
    """
    Validate a graph and return a list of issues.

    Checks for:
    - Empty graph - INFO
    - Duplicate node ids - ERROR
    - Invalid edge references (source/target doesn't exist) - ERROR
    - Self-referencing edges - ERROR
    - Duplicate edges (same source->target) - WARNING
    - Nodes with more than one parent - ERROR
    - Cycles - ERROR

    Args:
        graph: The graph to validate

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []

    if not graph.nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Graph has no nodes"
        ))
        if not graph.edges:
            return issues

    node_ids: set[str] = set()
    for node in graph.nodes:
        if node.id in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Duplicate node id: {node.id}",
                node_id=node.id
            ))
        node_ids.add(node.id)

    # Check for invalid edge references
    for edge in graph.edges:
        if edge.source_id not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent source node: {edge.source_id}",
                edge_id=edge.id
            ))
        if edge.target_id not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent target node: {edge.target_id}",
                edge_id=edge.id
            ))

    # Check for self-referencing edges
    for edge in graph.edges:
        if edge.source_id == edge.target_id:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message="Self-referencing edge (node points to itself)",
                edge_id=edge.id,
                node_id=edge.source_id
            ))

    # Check for duplicate edges and multiple parents
    seen_pairs: set[tuple[str, str]] = set()
    parent_of: dict[str, str] = {}
    for edge in graph.edges:
        pair = (edge.source_id, edge.target_id)
        if pair in seen_pairs:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate edge from {edge.source_id} to {edge.target_id}",
                edge_id=edge.id
            ))
            continue
        seen_pairs.add(pair)

        if edge.target_id in parent_of:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=(
                    f"Node {edge.target_id} has more than one parent "
                    f"({parent_of[edge.target_id]}, {edge.source_id})"
                ),
                edge_id=edge.id,
                node_id=edge.target_id
            ))
        else:
            parent_of[edge.target_id] = edge.source_id

    cycle = find_cycle(graph.edges)
    if cycle:
        issues.append(ValidationIssue(
            severity=IssueSeverity.ERROR,
            message=f"Cycle in hierarchy: {' -> '.join(cycle)}",
            node_id=cycle[0]
        ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    return {
        "total": len(issues),
        "errors": len([i for i in issues if i.severity == IssueSeverity.ERROR]),
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": len([i for i in issues if i.severity == IssueSeverity.ERROR]) == 0
    }
