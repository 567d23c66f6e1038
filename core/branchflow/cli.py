"""
Command-line interface for branchflow.

Usage:
    branchflow run flows/research.json
    branchflow run flows/research.json --api-base http://localhost:3000/api --json
    branchflow validate flows/research.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from branchflow.config import FlowConfig
from branchflow.graph.edge import FlowGraph
from branchflow.graph.executor import RunResult
from branchflow.graph.validator import GraphStructureError
from branchflow.llm.http import HttpBranchSelector, HttpTextGenerator
from branchflow.observability import configure_logging
from branchflow.runtime.event_bus import EventBus, EventType, FlowEvent
from branchflow.runtime.flow_store import FlowStore

logger = logging.getLogger(__name__)


def load_graph(path: str | Path) -> FlowGraph:
    """Load a flow file: ``{"nodes": [...], "edges": [...]}``."""
    with open(path, encoding="utf-8") as f:
        return FlowGraph.from_dict(json.load(f))


def _format_result(graph: FlowGraph, result: RunResult) -> str:
    lines = []
    for node in graph.nodes:
        header = f"## {node.display_name}"
        if node.id in result.skipped:
            lines.append(f"{header} (skipped)")
        elif node.id in result.failed:
            lines.append(f"{header} (failed)")
        else:
            lines.append(header)
            lines.append(result.responses.get(node.id, ""))
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def _result_to_dict(result: RunResult) -> dict:
    return {
        "run_id": result.run_id,
        "success": result.success,
        "responses": result.responses,
        "chosen_child": result.chosen_child,
        "skipped": sorted(result.skipped),
        "failed": sorted(result.failed),
    }


async def _log_progress(event: FlowEvent) -> None:
    if event.type == EventType.NODE_SKIPPED:
        logger.info(f"Skipped {event.node_id} (by {event.data.get('skipped_by')})")
    elif event.type == EventType.BRANCH_SELECTED:
        logger.info(f"{event.node_id} chose {event.data.get('selected_child_id')}")
    elif event.type == EventType.NODE_FAILED:
        logger.warning(f"Node {event.node_id} failed")


async def _run(graph: FlowGraph, config: FlowConfig) -> RunResult | None:
    generator = HttpTextGenerator.from_config(config)
    selector = HttpBranchSelector.from_config(config)
    bus = EventBus()
    bus.subscribe(
        event_types=[EventType.NODE_SKIPPED, EventType.BRANCH_SELECTED, EventType.NODE_FAILED],
        handler=_log_progress,
    )
    store = FlowStore(
        graph,
        generator=generator,
        selector=selector,
        throttle_ms=config.response_throttle_ms,
        event_bus=bus,
    )
    try:
        return await store.run_flow()
    finally:
        await generator.aclose()
        await selector.aclose()


def cmd_run(args: argparse.Namespace) -> int:
    """Run a flow file against the generation service."""
    try:
        graph = load_graph(args.flow)
    except (OSError, ValueError) as e:
        print(f"Could not load flow {args.flow}: {e}", file=sys.stderr)
        return 1

    config = FlowConfig()
    if args.api_base:
        config.api_base = args.api_base.rstrip("/")

    try:
        result = asyncio.run(_run(graph, config))
    except GraphStructureError as e:
        print(f"Invalid flow: {e}", file=sys.stderr)
        return 1

    if result is None:
        return 1
    if args.json:
        print(json.dumps(_result_to_dict(result), indent=2))
    else:
        print(_format_result(graph, result), end="")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Report structural problems in a flow file."""
    try:
        graph = load_graph(args.flow)
    except (OSError, ValueError) as e:
        print(f"Could not load flow {args.flow}: {e}", file=sys.stderr)
        return 1

    errors = graph.validate()
    if errors:
        for error in errors:
            print(f"  ✗ {error}")
        return 1
    print(f"  ✓ {len(graph.nodes)} nodes, {len(graph.edges)} edges, no problems found")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="branchflow",
        description="branchflow - run graphs of language-model reasoning steps",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a flow file")
    run_parser.add_argument("flow", help="Path to the flow JSON file")
    run_parser.add_argument("--api-base", default=None, help="Generation service base URL")
    run_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a flow file")
    validate_parser.add_argument("flow", help="Path to the flow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
