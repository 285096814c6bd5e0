"""
Tests for the mindsync command line interface.
"""

import json

import httpx
import pytest

import mindsync.cli as cli
from mindsync.cli import main
from mindsync.parser import parse

DIRECTIVE = "<!-- mindsync-layout: radial -->"


def _run_json(argv, capsys):
    """Run a command that reports JSON and exits."""
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code, json.loads(capsys.readouterr().out)


@pytest.fixture
def doc(tmp_path):
    path = tmp_path / "doc.md"
    path.write_text("# A\n- x\n", encoding="utf-8")
    return path


@pytest.fixture
def graph_file(tmp_path):
    graph = parse("# A\n- x").unwrap()
    sizes = {"measuredSize": {"width": 100, "height": 40}}
    data = graph.to_json_dict()
    data["nodes"] = [{**node, **sizes} for node in data["nodes"]]
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


# ============================================================================
# Engine commands
# ============================================================================

def test_parse(doc, capsys):
    code, data = _run_json(["parse", str(doc)], capsys)
    assert code == 0
    assert data["success"] is True
    assert [n["content"] for n in data["graph"]["nodes"]] == ["A", "x"]


def test_missing_file(tmp_path, capsys):
    code, data = _run_json(["parse", str(tmp_path / "nope.md")], capsys)
    assert code == 1
    assert data["error"].startswith("Cannot read")


def test_serialize_markdown(doc, capsys):
    main(["serialize", str(doc), "--mode", "horizontal"])
    assert capsys.readouterr().out == "<!-- mindsync-layout: horizontal -->\n\n# A\n- x\n"


def test_serialize_graph_json(graph_file, capsys):
    main(["serialize", str(graph_file)])
    assert capsys.readouterr().out == f"{DIRECTIVE}\n\n# A\n- x\n"


def test_serialize_invalid_json(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text('{"nodes": [{"type": "spiral"}]}', encoding="utf-8")
    code, data = _run_json(["serialize", str(path)], capsys)
    assert code == 1
    assert "Invalid graph JSON" in data["error"]


def test_format_prints_canonical_text(doc, capsys):
    main(["format", str(doc)])
    assert capsys.readouterr().out == f"{DIRECTIVE}\n\n# A\n- x\n"
    assert doc.read_text(encoding="utf-8") == "# A\n- x\n"


def test_format_write(doc, capsys):
    code, data = _run_json(["format", str(doc), "--write"], capsys)
    assert code == 0
    assert data == {"success": True, "file": str(doc)}
    assert doc.read_text(encoding="utf-8") == f"{DIRECTIVE}\n\n# A\n- x\n"


def test_layout(graph_file, capsys):
    code, data = _run_json(["layout", str(graph_file), "--mode", "horizontal"], capsys)
    assert code == 0
    assert data["graph"]["layoutMode"] == "horizontal"
    positions = [n["position"] for n in data["graph"]["nodes"]]
    assert positions[0] == {"x": 150.0, "y": 120.0}
    assert positions[1]["x"] > positions[0]["x"]


def test_layout_without_sizes(doc, capsys):
    code, data = _run_json(["layout", str(doc)], capsys)
    assert code == 1
    assert data["error"]["type"] == "missing_measured_size"


# ============================================================================
# Analysis commands
# ============================================================================

def test_validate(doc, capsys):
    code, data = _run_json(["validate", str(doc)], capsys)
    assert code == 0
    assert data["summary"]["valid"] is True


def test_summarize(doc, capsys):
    code, data = _run_json(["summarize", str(doc)], capsys)
    assert code == 0
    assert data["summary"]["total_nodes"] == 2
    assert data["summary"]["max_depth"] == 1


# ============================================================================
# Backend client commands
# ============================================================================

@pytest.fixture
def mock_backend(monkeypatch):
    """Route the CLI's HTTP client to a handler instead of the network."""
    requests = []
    real_client = httpx.Client

    def install(handler):
        def recording_handler(request):
            requests.append(request)
            return handler(request)

        monkeypatch.setattr(
            cli.httpx, "Client",
            lambda **kwargs: real_client(transport=httpx.MockTransport(recording_handler), **kwargs),
        )
        return requests

    return install


def test_push(doc, capsys, mock_backend):
    requests = mock_backend(lambda request: httpx.Response(200, json={"success": True}))
    code, data = _run_json(["push", str(doc)], capsys)

    assert code == 0
    assert data == {"success": True}
    assert requests[0].method == "PUT"
    assert requests[0].url.path == "/api/document/text"
    assert json.loads(requests[0].content) == {"text": "# A\n- x\n", "flush": True}


def test_status_api_error(capsys, mock_backend):
    mock_backend(lambda request: httpx.Response(404, json={"detail": "Not Found"}))
    code, data = _run_json(["status"], capsys)
    assert code == 1
    assert data["error"] == "API error: Not Found"


def test_status_connection_failure(capsys, mock_backend):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    mock_backend(refuse)
    code, data = _run_json(["status"], capsys)
    assert code == 1
    assert "Is `mindsync serve` running?" in data["error"]
