"""Mindsync CLI - parse, serialize, format, lay out and serve markdown mind maps."""

import argparse
import json
import logging
import sys
from pathlib import Path

import httpx
from pydantic import ValidationError as PydanticValidationError

from .analysis import summarize_graph
from .config import get_settings
from .layout import layout
from .models import Graph, LayoutMode
from .parser import parse
from .serializer import serialize
from .validation import validate_graph, validation_summary


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _fail(message, code=1):
    _json_out({"success": False, "error": message}, code)


def _api_base():
    settings = get_settings()
    return f"http://{settings.host}:{settings.port}/api"


def _api_request(method, endpoint, data=None):
    """Make a request to a running mindsync backend."""
    url = f"{_api_base()}{endpoint}"
    try:
        with httpx.Client(timeout=30.0) as client:
            response = client.request(method, url, json=data)
    except httpx.HTTPError as e:
        _fail(f"Connection failed: {e}. Is `mindsync serve` running?")

    if response.status_code >= 400:
        try:
            _fail(f"API error: {response.json().get('detail', 'Unknown error')}")
        except ValueError:
            _fail(f"API error ({response.status_code}): {response.text}")
    return response.json()


def _read(path):
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        _fail(f"Cannot read {path}: {e}")


def _load_graph(path):
    """Load a graph from a .json snapshot or by parsing a markdown file."""
    text = _read(path)
    if Path(path).suffix == ".json":
        try:
            return Graph.from_json_dict(json.loads(text))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            _fail(f"Invalid graph JSON in {path}: {e}")

    result = parse(text)
    if not result.ok:
        _json_out({"success": False, "error": result.error.to_dict()}, 1)
    return result.value


# ── Engine ───────────────────────────────────────────────────────────────────

def cmd_parse(args):
    result = parse(_read(args.file))
    if not result.ok:
        _json_out({"success": False, "error": result.error.to_dict()}, 1)
    _json_out({"success": True, "graph": result.value.to_json_dict()})


def cmd_serialize(args):
    graph = _load_graph(args.file)
    if args.mode:
        graph = graph.model_copy(update={"layout_mode": LayoutMode(args.mode)})
    result = serialize(graph)
    if not result.ok:
        _json_out({"success": False, "error": result.error.to_dict()}, 1)
    print(result.value)


def cmd_format(args):
    result = parse(_read(args.file))
    if not result.ok:
        _json_out({"success": False, "error": result.error.to_dict()}, 1)
    text = serialize(result.value)
    if not text.ok:
        _json_out({"success": False, "error": text.error.to_dict()}, 1)

    if not args.write:
        print(text.value)
        return

    Path(args.file).write_text(text.value + "\n", encoding="utf-8")
    _json_out({"success": True, "file": str(args.file)})


def cmd_layout(args):
    graph = _load_graph(args.file)
    mode = LayoutMode(args.mode) if args.mode else graph.layout_mode
    result = layout(graph.nodes, graph.edges, mode)
    if not result.ok:
        _json_out({"success": False, "error": result.error.to_dict()}, 1)
    positioned = graph.model_copy(update={"nodes": result.value, "layout_mode": mode})
    _json_out({"success": True, "graph": positioned.to_json_dict()})


# ── Analysis ─────────────────────────────────────────────────────────────────

def cmd_validate(args):
    issues = validate_graph(_load_graph(args.file))
    _json_out({
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues)
    })


def cmd_summarize(args):
    summary = summarize_graph(_load_graph(args.file))
    _json_out({
        "success": True,
        "summary": summary.to_dict()
    })


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    import uvicorn

    from .backend.main import app, load_document

    if args.file:
        load_document(_read(args.file))

    settings = get_settings()
    uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)


def cmd_push(args):
    data = _api_request("PUT", "/document/text", {"text": _read(args.file), "flush": True})
    _json_out(data)


def cmd_status(args):
    _json_out(_api_request("GET", "/document"))


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(prog="mindsync", description="Markdown <-> graph sync engine")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    modes = [m.value for m in LayoutMode]

    # Engine
    p = sub.add_parser("parse", help="markdown -> graph JSON")
    p.add_argument("file")

    p = sub.add_parser("serialize", help="graph JSON (or markdown) -> markdown")
    p.add_argument("file")
    p.add_argument("--mode", choices=modes, default=None)

    p = sub.add_parser("format", help="re-serialize a markdown file canonically")
    p.add_argument("file")
    p.add_argument("--write", action="store_true", help="rewrite the file in place")

    p = sub.add_parser("layout", help="position a graph with measured sizes")
    p.add_argument("file")
    p.add_argument("--mode", choices=modes, default=None)

    # Analysis
    p = sub.add_parser("validate")
    p.add_argument("file")

    p = sub.add_parser("summarize")
    p.add_argument("file")

    # Service
    p = sub.add_parser("serve", help="run the backend")
    p.add_argument("file", nargs="?", default=None)
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    p = sub.add_parser("push", help="send a file's text to a running backend")
    p.add_argument("file")

    sub.add_parser("status", help="show a running backend's document")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cmd_map = {
        "parse": cmd_parse,
        "serialize": cmd_serialize,
        "format": cmd_format,
        "layout": cmd_layout,
        "validate": cmd_validate,
        "summarize": cmd_summarize,
        "serve": cmd_serve,
        "push": cmd_push,
        "status": cmd_status,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
