"""
INTENTGRAPH MAIN - Command-Line Tools for Project Files

Commands:
    new      - Write a fresh project (Greet + Fallback) to a JSON file
    validate - Check a project file's shape and graph invariants
    stats    - Print the intents and transitions of a project as tables
    tables   - Export intents/transitions to CSV or Parquet

Usage:
    python main.py new my_bot.json --name "Pizza Bot"
    python main.py validate my_bot.json
    python main.py stats my_bot.json
    python main.py tables my_bot.json --format parquet --output ./export
"""
import sys
import logging
from pathlib import Path
from typing import List, Optional

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.codec import CodecError, SerializationCodec
from core.graph_db import GraphStore, InvalidGraphError
from core.graph_invariants import GraphInvariants
from core.schemas import BotMetadata, seed_graph
from infrastructure.config import load_editor_config


logger = logging.getLogger("intentgraph.cli")


def _load_store(path: str):
    """Decode a project file into a store. Returns (metadata, store)."""
    codec = SerializationCodec(load_editor_config().schema_version)
    metadata, graph = codec.decode(Path(path).read_bytes())
    return metadata, GraphStore(graph)


def cmd_new(args) -> int:
    """Write a seed project."""
    config = load_editor_config()
    defaults = {k: v for k, v in config.metadata.items() if k in BotMetadata.__struct_fields__}
    metadata = BotMetadata(**defaults)
    if args.name:
        metadata.name = args.name

    data = SerializationCodec(config.schema_version).encode(metadata, seed_graph())
    Path(args.output).write_bytes(data)
    print(f"Wrote new project {metadata.name!r} to {args.output}")
    return 0


def cmd_validate(args) -> int:
    """Validate a project file. Exit code 1 on any error."""
    try:
        metadata, store = _load_store(args.project)
    except (CodecError, InvalidGraphError) as e:
        print(f"[x] {e}")
        return 1

    report = GraphInvariants.validate(store.snapshot(), entry_id=store.entry_id)
    print(f"[+] {metadata.name}: {report.metrics['node_count']} intents, "
          f"{report.metrics['edge_count']} transitions")
    for warning in report.warnings:
        print(f"[!] {warning.message}: {', '.join(warning.nodes_involved)}")
    return 0


def cmd_stats(args) -> int:
    """Print intents and transitions."""
    try:
        metadata, store = _load_store(args.project)
    except (CodecError, InvalidGraphError) as e:
        print(f"[x] {e}")
        return 1

    print(f"{metadata.avatar} {metadata.name} ({metadata.personality})")
    print(store.to_polars_nodes())
    print(store.to_polars_edges())
    return 0


def cmd_tables(args) -> int:
    """Export intents/transitions as CSV or Parquet files."""
    try:
        _, store = _load_store(args.project)
    except (CodecError, InvalidGraphError) as e:
        print(f"[x] {e}")
        return 1

    output = Path(args.output)
    output.mkdir(parents=True, exist_ok=True)
    stem = Path(args.project).stem

    for kind, frame in (("nodes", store.to_polars_nodes()), ("edges", store.to_polars_edges())):
        target = output / f"{stem}.{kind}.{args.format}"
        if args.format == "csv":
            frame.write_csv(target)
        else:
            frame.write_parquet(target)
        print(f"Wrote {target}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        description="IntentGraph - conversation flow project tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    new_parser = subparsers.add_parser("new", help="Write a fresh project file")
    new_parser.add_argument("output", help="Path of the JSON file to write")
    new_parser.add_argument("--name", help="Bot name")
    new_parser.set_defaults(func=cmd_new)

    validate_parser = subparsers.add_parser("validate", help="Validate a project file")
    validate_parser.add_argument("project", help="Path to project JSON")
    validate_parser.set_defaults(func=cmd_validate)

    stats_parser = subparsers.add_parser("stats", help="Print intent/transition tables")
    stats_parser.add_argument("project", help="Path to project JSON")
    stats_parser.set_defaults(func=cmd_stats)

    tables_parser = subparsers.add_parser("tables", help="Export intent/transition tables")
    tables_parser.add_argument("project", help="Path to project JSON")
    tables_parser.add_argument("--output", "-o", default="./export", help="Output directory")
    tables_parser.add_argument("--format", choices=["csv", "parquet"], default="csv")
    tables_parser.set_defaults(func=cmd_tables)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
