"""
Command-line interface for the semantic context engine.
"""

import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

from .config import load_config
from .context import load_snapshot_file
from .engine import ContextEngine
from .errors import SemanticContextError
from .memory import FeedbackType, MemoryCategory, MemorySource, TaskType
from .memory.types import utc_now


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _values(enum_cls) -> list:
    return [member.value for member in enum_cls]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="semantic-context",
        description="Semantic context - memories and token-bounded context for content generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Remember a preference
  semantic-context memory add bakery-1 "Customers love behind-the-scenes videos" --pin

  # Search memories
  semantic-context memory search bakery-1 "video ideas" --limit 5

  # Build context for a caption
  semantic-context context build bakery-1 caption_generation --platform instagram --snapshots snapshots.yml
        """
    )
    parser.add_argument(
        "--config",
        help="Path to a configuration file"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Memory commands
    memory_parser = subparsers.add_parser(
        "memory",
        help="Manage memories"
    )
    memory_subparsers = memory_parser.add_subparsers(dest="memory_command")

    add_parser = memory_subparsers.add_parser("add", help="Store a new memory")
    add_parser.add_argument("owner", help="Owner ID")
    add_parser.add_argument("content", help="Memory content")
    add_parser.add_argument("--category", choices=_values(MemoryCategory))
    add_parser.add_argument("--source", choices=_values(MemorySource))
    add_parser.add_argument("--importance", type=float, help="Importance between 0 and 1")
    add_parser.add_argument("--tag", action="append", dest="tags", help="Tag (repeatable)")
    add_parser.add_argument("--pin", action="store_true", help="Pin the memory")
    add_parser.add_argument("--expires-in-days", type=int, help="Expire after N days")
    add_parser.add_argument("--platform", help="Related platform")
    add_parser.add_argument("--task-type", choices=_values(TaskType), help="Related task type")

    search_parser = memory_subparsers.add_parser("search", help="Search memories")
    search_parser.add_argument("owner", help="Owner ID")
    search_parser.add_argument("query", nargs="?", help="Search query")
    search_parser.add_argument("--category", choices=_values(MemoryCategory))
    search_parser.add_argument("--platform", help="Filter by platform")
    search_parser.add_argument("--task-type", choices=_values(TaskType))
    search_parser.add_argument("--min-importance", type=float)
    search_parser.add_argument("--limit", type=int, default=10, help="Maximum results (default: 10)")
    search_parser.add_argument("--include-inactive", action="store_true")

    feedback_parser = memory_subparsers.add_parser("feedback", help="Record feedback on a memory")
    feedback_parser.add_argument("owner", help="Owner ID")
    feedback_parser.add_argument("memory_id", help="Memory ID")
    feedback_parser.add_argument("outcome", choices=_values(FeedbackType))

    prune_parser = memory_subparsers.add_parser(
        "prune",
        help="Deactivate expired and low-value memories"
    )
    prune_parser.add_argument("owner", help="Owner ID")

    stats_parser = memory_subparsers.add_parser("stats", help="Show memory statistics")
    stats_parser.add_argument("owner", help="Owner ID")

    delete_parser = memory_subparsers.add_parser("delete", help="Permanently delete a memory")
    delete_parser.add_argument("owner", help="Owner ID")
    delete_parser.add_argument("memory_id", help="Memory ID")

    export_parser = memory_subparsers.add_parser("export", help="Export memories to a JSON file")
    export_parser.add_argument("owner", help="Owner ID")
    export_parser.add_argument("output", help="Output file path")

    import_parser = memory_subparsers.add_parser("import", help="Import memories from a JSON file")
    import_parser.add_argument("owner", help="Owner ID to import the memories under")
    import_parser.add_argument("input", help="Input file path")

    # Context commands
    context_parser = subparsers.add_parser(
        "context",
        help="Assemble context"
    )
    context_subparsers = context_parser.add_subparsers(dest="context_command")

    context_build_parser = context_subparsers.add_parser("build", help="Build context for a task")
    context_build_parser.add_argument("owner", help="Owner ID")
    context_build_parser.add_argument("task_type", choices=_values(TaskType))
    context_build_parser.add_argument("--platform", help="Platform to focus on")
    context_build_parser.add_argument("--extra", help="Freeform text to append if it fits")
    context_build_parser.add_argument("--max-tokens", type=int, help="Token budget")
    context_build_parser.add_argument("--snapshots", help="YAML file with profile, platform and template snapshots")
    context_build_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)

    try:
        if args.command == "memory":
            handle_memory(args)
        elif args.command == "context":
            handle_context(args)
    except SemanticContextError as e:
        print(f"Error: {e}")
        sys.exit(1)


def create_engine(args, snapshots=None) -> ContextEngine:
    """Create an engine from the configuration named on the command line."""
    config = load_config(config_path=args.config)
    return ContextEngine.from_config(config, snapshots=snapshots)


def handle_memory(args):
    """Handle memory commands."""
    if not args.memory_command:
        print("Error: Please specify a memory command "
              "(add, search, feedback, prune, stats, delete, export, import)")
        sys.exit(1)

    engine = create_engine(args)

    try:
        if args.memory_command == "add":
            handle_memory_add(engine, args)
        elif args.memory_command == "search":
            handle_memory_search(engine, args)
        elif args.memory_command == "feedback":
            handle_memory_feedback(engine, args)
        elif args.memory_command == "prune":
            handle_memory_prune(engine, args)
        elif args.memory_command == "stats":
            handle_memory_stats(engine, args)
        elif args.memory_command == "delete":
            handle_memory_delete(engine, args)
        elif args.memory_command == "export":
            handle_memory_export(engine, args)
        elif args.memory_command == "import":
            handle_memory_import(engine, args)
    finally:
        engine.close()


def handle_memory_add(engine, args):
    """Store a new memory."""
    expires_at = None
    if args.expires_in_days is not None:
        expires_at = utc_now() + timedelta(days=args.expires_in_days)

    memory = engine.create_memory(
        args.owner,
        args.content,
        category=args.category,
        source=args.source or MemorySource.USER_INPUT,
        importance=args.importance,
        tags=args.tags,
        pinned=args.pin,
        expires_at=expires_at,
        related_platform=args.platform,
        related_task_type=args.task_type,
    )
    embedded = "with embedding" if memory.has_embedding else "without embedding"
    print(f"Created memory {memory.id} ({embedded})")


def handle_memory_search(engine, args):
    """Search memories."""
    results = engine.search_memories(
        args.owner,
        query=args.query,
        category=args.category,
        platform=args.platform,
        task_type=args.task_type,
        min_importance=args.min_importance,
        limit=args.limit,
        include_inactive=args.include_inactive,
    )

    if not results:
        print("No memories found matching your query.")
        return

    print(f"Found {len(results)} matching memories:\n")
    for i, result in enumerate(results, 1):
        memory = result.memory
        pinned = " [pinned]" if memory.is_pinned else ""
        print(f"{i}. [{memory.category.value}]{pinned} Score: {result.score:.3f}")
        print(f"   ID: {memory.id}")
        print(f"   Importance: {memory.importance:.2f}, used {memory.usage_count} times")
        print(f"   Content: {memory.summary}")
        if memory.tags:
            print(f"   Tags: {', '.join(memory.tags)}")
        print()


def handle_memory_feedback(engine, args):
    """Apply feedback to a memory."""
    memory = engine.submit_feedback(args.owner, args.memory_id, args.outcome)
    print(f"Memory {memory.id} importance is now {memory.importance:.2f}")


def handle_memory_prune(engine, args):
    """Deactivate expired and low-value memories."""
    pruned = engine.prune(args.owner)
    print(f"Pruned {pruned} memories")


def handle_memory_stats(engine, args):
    """Show memory statistics."""
    stats = engine.get_stats(args.owner)
    print(f"Memory statistics for {args.owner}:")
    print(f"  Total: {stats.total}")
    print(f"  Active: {stats.active}")
    print(f"  Pinned: {stats.pinned}")
    print(f"  With embedding: {stats.with_embedding}")
    print(f"  Average importance: {stats.average_importance:.2f}")
    if stats.by_category:
        print("  By category:")
        for category, count in sorted(stats.by_category.items()):
            print(f"    {category}: {count}")


def handle_memory_delete(engine, args):
    """Permanently delete a memory."""
    engine.delete_memory(args.owner, args.memory_id)
    print(f"Deleted memory {args.memory_id}")


def handle_memory_export(engine, args):
    """Export memories to file."""
    try:
        count = engine.export_memories(args.owner, args.output)
    except OSError as e:
        print(f"Error: Cannot write {args.output}: {e}")
        sys.exit(1)
    print(f"Exported {count} memories to {args.output}")


def handle_memory_import(engine, args):
    """Import memories from file."""
    if not Path(args.input).exists():
        print(f"Error: File not found: {args.input}")
        sys.exit(1)

    try:
        count = engine.import_memories(args.owner, args.input)
    except json.JSONDecodeError as e:
        print(f"Error: {args.input} is not valid JSON: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"Error: Cannot import {args.input}: {e}")
        sys.exit(1)
    print(f"Imported {count} memories from {args.input}")


def handle_context(args):
    """Handle context commands."""
    if not args.context_command:
        print("Error: Please specify a context command (build)")
        sys.exit(1)

    snapshots = None
    if args.snapshots:
        if not Path(args.snapshots).exists():
            print(f"Error: File not found: {args.snapshots}")
            sys.exit(1)
        snapshots = load_snapshot_file(args.snapshots)

    engine = create_engine(args, snapshots=snapshots)
    try:
        result = engine.build_context(
            args.owner,
            args.task_type,
            platform=args.platform,
            extra=args.extra,
            max_tokens=args.max_tokens,
        )
    finally:
        engine.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return

    print(result.context)
    print(
        f"\n--- {result.tokens_used} tokens, tier: {result.metadata.tier.value}, "
        f"memories: {len(result.memory_ids)}, templates: {len(result.template_ids)}"
    )


if __name__ == "__main__":
    main()
