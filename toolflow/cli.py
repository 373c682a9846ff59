from __future__ import annotations

import argparse
import json
import os
import sys

from toolflow.config import load_settings
from toolflow.errors import is_error
from toolflow.rag.embed import create_transformer, default_transformer
from toolflow.tools.registry import ToolRegistry
from toolflow.tools.search import create_vector_database


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = load_settings()
    p = argparse.ArgumentParser(prog="toolflow", description="Build vector databases and run tool graphs.")
    sub = p.add_subparsers(dest="command", required=True)

    idx = sub.add_parser("index", help="Build a vector database from text files.")
    idx.add_argument("sources", nargs="+", help="Text files (or raw text) to index.")
    idx.add_argument("--out", required=True, help="Output vector database path.")
    idx.add_argument("--transformer", default="", help="Registered transformer name (default: DashScope embeddings).")
    idx.add_argument("--chunk-size", type=int, default=settings.chunk_size, help="Chunk size in characters.")
    idx.add_argument("--chunk-overlap", type=int, default=settings.chunk_overlap, help="Chunk overlap in characters.")
    idx.add_argument("--max-workers", type=int, default=settings.max_workers, help="Embedding worker threads.")

    run = sub.add_parser("run", help="Build a tool from a recipe file and execute it.")
    run.add_argument("recipe", help="Tool definition JSON file.")
    run.add_argument("--context", default="{}", help="Execution context as JSON text, or @file.json.")
    run.add_argument("--plugin", action="append", default=[], help="Plugin module file to register (repeatable).")
    return p.parse_args(argv)


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def cmd_index(args: argparse.Namespace) -> int:
    missing = [s for s in args.sources if not os.path.exists(s)]
    if missing:
        print(f"[ERR] sources not found: {', '.join(missing)}", file=sys.stderr)
        return 1
    try:
        transformer = create_transformer(args.transformer) if args.transformer else default_transformer()
    except LookupError as e:
        print(f"[ERR] {e}", file=sys.stderr)
        return 1

    store = create_vector_database(
        args.sources,
        transformer,
        out_path=args.out,
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap,
        max_workers=args.max_workers,
    )
    print(f"[DONE] database_out={args.out} records={len(store)}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    if not os.path.exists(args.recipe):
        print(f"[ERR] recipe not found: {args.recipe}", file=sys.stderr)
        return 1
    settings = load_settings()
    registry = ToolRegistry()
    for path in [*settings.plugins, *args.plugin]:
        try:
            registry.plugins.register_file(path, data_dir=settings.data_dir)
        except Exception as e:
            print(f"[ERR] cannot load plugin {path}: {e}", file=sys.stderr)
            return 1

    tool = registry.create_tool(_read_text(args.recipe))
    if tool is None:
        print(f"[ERR] cannot build a tool from: {args.recipe}", file=sys.stderr)
        return 1

    context = _read_text(args.context[1:]) if args.context.startswith("@") else args.context
    try:
        json.loads(context)
    except json.JSONDecodeError as e:
        print(f"[ERR] invalid context JSON: {e}", file=sys.stderr)
        return 1

    output = registry.execute(tool.name, context)
    print(output)
    return 1 if is_error(output) else 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "index":
        return cmd_index(args)
    return cmd_run(args)


if __name__ == "__main__":
    raise SystemExit(main())
