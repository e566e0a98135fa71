from __future__ import annotations

import argparse
import json
import os
import socket
import sys
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.table import Table

from .ai import DEFAULT_TEXTGEN_MODEL, DEFAULT_TEXTGEN_URL, ENV_TEXTGEN_KEY, ENV_TEXTGEN_MODEL, ENV_TEXTGEN_URL
from .bundle import display_value
from .codec import decode_bundle_sync, encode_bundle_sync, token_stats
from .collect import LogSink, collect_info, make_sample_logs
from .compression import DEFAULT_ADAPTER, CompressionAdapter, set_debug_logging
from .errors import DecodeError, NonSerializableError, PathSyntaxError
from .htmlview import document_to_html
from .logging_utils import build_uvicorn_log_config
from .pathindex import build_path_index, format_path, parse_path
from .render import render_annotated_text
from .terminal import bundle_tree, document_renderables
from .web import WebConfig, create_app

COMMANDS = ("encode", "decode", "inspect", "render", "collect", "web")


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("troublecode")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"troublecode {__version__}",
    )


def _add_debug_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (compression fallback, reference lookups).",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode",
        description=(
            "Pack diagnostic bundles into shareable TroubleCode tokens and read them back. "
            "Use `troublecode <command> --help` for details."
        ),
    )
    _add_version_flag(ap)
    ap.add_argument("command", choices=COMMANDS, help="Command to run.")
    return ap


def build_encode_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode encode",
        description="Encode a JSON bundle into a TroubleCode token.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "input",
        nargs="?",
        default="-",
        help="JSON file to encode, or '-' for stdin (default: -).",
    )
    ap.add_argument(
        "--no-compress",
        action="store_true",
        help="Skip the gzip transform and emit the raw JSON as base64url.",
    )
    _add_debug_flag(ap)
    return ap


def build_decode_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode decode",
        description="Decode a TroubleCode token and print its bundle as JSON.",
    )
    _add_version_flag(ap)
    ap.add_argument("token", help="TroubleCode token, or '-' to read it from stdin.")
    ap.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: 2; 0 prints a single line).",
    )
    _add_debug_flag(ap)
    return ap


def build_inspect_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode inspect",
        description="Show a decoded TroubleCode as a tree of addressable paths.",
    )
    _add_version_flag(ap)
    ap.add_argument("token", help="TroubleCode token, or '-' to read it from stdin.")
    ap.add_argument(
        "--path",
        help="Only show the node at this path (for example logs[0].message).",
    )
    _add_debug_flag(ap)
    return ap


def build_render_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode render",
        description="Render annotated commentary with [[ref:path]] bindings.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "input",
        nargs="?",
        default="-",
        help="Commentary text file, or '-' for stdin (default: -).",
    )
    ap.add_argument(
        "--code",
        help="TroubleCode whose bundle the references should resolve against.",
    )
    ap.add_argument(
        "--format",
        choices=["text", "html"],
        default="text",
        help="Output format (default: text).",
    )
    _add_debug_flag(ap)
    return ap


def build_collect_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode collect",
        description="Collect host and process details into a new TroubleCode.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "-e",
        "--error",
        default="",
        help="Short description of the problem being reported.",
    )
    ap.add_argument(
        "--sample-logs",
        action="store_true",
        help="Add demo warning, info and error log entries.",
    )
    ap.add_argument(
        "--json",
        action="store_true",
        help="Print the collected bundle as JSON instead of a token.",
    )
    _add_debug_flag(ap)
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="troublecode web",
        description="Serve the browser-based TroubleCode viewer.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    ap.add_argument(
        "--textgen-url",
        help=f"Text generation endpoint (default: ${ENV_TEXTGEN_URL} or {DEFAULT_TEXTGEN_URL}).",
    )
    ap.add_argument(
        "--textgen-model",
        help=f"Text generation model (default: ${ENV_TEXTGEN_MODEL} or {DEFAULT_TEXTGEN_MODEL}).",
    )
    ap.add_argument(
        "--textgen-timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for commentary (default: 60).",
    )
    _add_debug_flag(ap)
    return ap


def _read_text_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source).expanduser()
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    return path.read_text(encoding="utf-8")


def _read_token(value: str) -> str:
    token = sys.stdin.read() if value == "-" else value
    token = token.strip()
    if not token:
        raise SystemExit("Paste a TroubleCode to continue.")
    return token


def _decode_or_exit(token: str):
    try:
        return decode_bundle_sync(token)
    except DecodeError as exc:
        raise SystemExit(f"Unable to decode this TroubleCode. ({exc})") from exc


def _run_encode(args: argparse.Namespace) -> int:
    set_debug_logging(bool(getattr(args, "debug", False)))
    text = _read_text_input(args.input)
    try:
        bundle = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Input is not valid JSON: {exc}") from exc
    adapter = CompressionAdapter(enabled=False) if args.no_compress else DEFAULT_ADAPTER
    try:
        token = encode_bundle_sync(bundle, adapter=adapter)
    except NonSerializableError as exc:
        raise SystemExit(str(exc)) from exc
    print(token)
    return 0


def _run_decode(args: argparse.Namespace) -> int:
    set_debug_logging(bool(getattr(args, "debug", False)))
    if args.indent < 0:
        raise SystemExit("--indent must be zero or positive.")
    bundle = _decode_or_exit(_read_token(args.token))
    print(json.dumps(bundle, indent=args.indent or None, ensure_ascii=False))
    return 0


def _run_inspect(args: argparse.Namespace) -> int:
    set_debug_logging(bool(getattr(args, "debug", False)))
    token = _read_token(args.token)
    bundle = _decode_or_exit(token)
    index = build_path_index(bundle)
    console = Console()

    if args.path is not None:
        try:
            path = format_path(parse_path(args.path))
        except PathSyntaxError as exc:
            raise SystemExit(str(exc)) from exc
        node = index.lookup(path)
        if node is None:
            raise SystemExit(f"Path not found: {args.path}")
        if node.is_container:
            console.print(json.dumps(node.value, indent=2, ensure_ascii=False), markup=False, highlight=False)
        else:
            console.print(display_value(node.value), markup=False, highlight=False)
        return 0

    stats = token_stats(token)
    table = Table(show_header=False, box=None)
    table.add_row("token", f"{stats.token_length} chars")
    table.add_row("payload", f"{stats.payload_bytes} bytes")
    table.add_row("json", f"{stats.json_bytes} bytes")
    table.add_row("compressed", "yes" if stats.compressed else "no")
    table.add_row("paths", str(len(index)))
    console.print(table)
    console.print(bundle_tree(index))
    for conflict in index.conflicts:
        console.print(f"[yellow]duplicate path skipped:[/] {conflict}", highlight=False)
    return 0


def _run_render(args: argparse.Namespace) -> int:
    set_debug_logging(bool(getattr(args, "debug", False)))
    text = _read_text_input(args.input)
    index = build_path_index(_decode_or_exit(_read_token(args.code))) if args.code else None
    document = render_annotated_text(text, index)

    unresolved = sorted(
        {ref.path for ref in document.references() if index is None or index.lookup(ref.path) is None}
    )
    if index is not None:
        for path in unresolved:
            print(f"warning: reference does not resolve: {path}", file=sys.stderr)

    if args.format == "html":
        print(document_to_html(document))
    else:
        Console().print(document_renderables(document))
    return 0


def _run_collect(args: argparse.Namespace) -> int:
    set_debug_logging(bool(getattr(args, "debug", False)))
    sink = LogSink()
    if args.sample_logs:
        make_sample_logs(sink)
    bundle = collect_info(args.error, sink=sink)
    if args.json:
        print(json.dumps(bundle, indent=2, ensure_ascii=False))
        return 0
    print(encode_bundle_sync(bundle))
    return 0


def _run_web(args: argparse.Namespace) -> None:
    set_debug_logging(bool(getattr(args, "debug", False)))
    config = WebConfig(
        textgen_url=args.textgen_url or os.environ.get(ENV_TEXTGEN_URL) or DEFAULT_TEXTGEN_URL,
        textgen_model=args.textgen_model or os.environ.get(ENV_TEXTGEN_MODEL) or DEFAULT_TEXTGEN_MODEL,
        textgen_key=os.environ.get(ENV_TEXTGEN_KEY) or None,
        textgen_timeout=args.textgen_timeout,
    )
    app = create_app(config)
    public_ip = _resolve_local_ip(args.host)
    print(f"Web URL: http://{public_ip}:{args.port}/")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="info",
        log_config=build_uvicorn_log_config(),
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "encode":
        return _run_encode(build_encode_parser().parse_args(argv[1:]))
    if argv and argv[0] == "decode":
        return _run_decode(build_decode_parser().parse_args(argv[1:]))
    if argv and argv[0] == "inspect":
        return _run_inspect(build_inspect_parser().parse_args(argv[1:]))
    if argv and argv[0] == "render":
        return _run_render(build_render_parser().parse_args(argv[1:]))
    if argv and argv[0] == "collect":
        return _run_collect(build_collect_parser().parse_args(argv[1:]))
    if argv and argv[0] == "web":
        _run_web(build_web_parser().parse_args(argv[1:]))
        return 0

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


if __name__ == "__main__":
    raise SystemExit(main())
