"""
Tests for the pydantic data models and their JSON shape.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from mindsync.models import (
    CreateEdgeRequest,
    CreateNodeRequest,
    Edge,
    Graph,
    ImageNode,
    Size,
    TextNode,
    UpdateNodeRequest,
)


def test_graph_json_is_camel_case():
    node = TextNode(content="x", measured_size=Size(width=10, height=5), group_id=2)
    data = Graph(nodes=[node]).to_json_dict()
    assert data["layoutMode"] == "radial"
    assert data["nodes"][0]["measuredSize"] == {"width": 10.0, "height": 5.0}
    assert data["nodes"][0]["groupId"] == 2
    assert data["nodes"][0]["type"] == "text"


def test_graph_from_json_dict_selects_node_model():
    graph = Graph.from_json_dict({
        "nodes": [
            {"id": "i", "type": "image", "imageUrl": "a.png", "altText": "pic"},
            {"id": "t", "type": "text", "content": "x", "level": 2},
        ],
        "edges": [{"source": "t", "target": "i"}],
        "layoutMode": "horizontal",
    })
    assert isinstance(graph.nodes[0], ImageNode)
    assert graph.nodes[0].alt_text == "pic"
    assert graph.nodes[1].level == 2
    assert graph.edges[0].source_id == "t"
    assert graph.edges[0].target_id == "i"


def test_models_are_frozen():
    node = TextNode(content="x")
    with pytest.raises(PydanticValidationError):
        node.content = "y"


def test_edge_rejects_self_loop():
    with pytest.raises(PydanticValidationError):
        Edge(source_id="a", target_id="a")


def test_node_bounds():
    node = TextNode(content="x")
    assert node.bounds() is None
    sized = node.model_copy(update={"measured_size": Size(width=10, height=4)})
    assert sized.bounds() == (-5, -2, 5, 2)
    assert sized.center() == (0, 0)


def test_structure_ignores_ids():
    first = Graph(nodes=[TextNode(content="a"), TextNode(content="b")])
    second = Graph(nodes=[TextNode(content="a"), TextNode(content="b")])
    assert first.nodes[0].id != second.nodes[0].id
    assert first.structure() == second.structure()


def test_request_models():
    create = CreateNodeRequest.model_validate({"type": "image", "parentId": "p", "imageUrl": "a.png"})
    assert create.parent_id == "p"
    assert create.node_fields() == {"image_url": "a.png"}

    update = UpdateNodeRequest.model_validate({"content": "x", "groupId": None})
    assert update.changes() == {"content": "x", "group_id": None}

    edge = CreateEdgeRequest.model_validate({"source": "a", "target": "b"})
    assert (edge.source_id, edge.target_id) == ("a", "b")
