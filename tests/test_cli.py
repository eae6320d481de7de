"""Tests for the CLI module."""

import json
import re
from unittest.mock import MagicMock, patch

import pytest

from semantic_context.cli import (
    build_parser,
    handle_memory,
    handle_memory_search,
    main,
    setup_logging,
)


ENV_VARS = [
    "SEMANTIC_CONTEXT_EMBEDDING_PROVIDER",
    "SEMANTIC_CONTEXT_EMBEDDING_MODEL",
    "SEMANTIC_CONTEXT_STORAGE",
    "SEMANTIC_CONTEXT_DB_PATH",
    "SEMANTIC_CONTEXT_CACHE_SIZE",
    "SEMANTIC_CONTEXT_CACHE_EVICTION",
]

SNAPSHOTS = """
profiles:
  - owner_id: bakery
    business_name: Crumb & Co
    business_type: bakery
    brand_values: [Craft]
"""


def create_mock_args(**kwargs):
    """Helper to create mock args with default values."""
    defaults = {
        'config': None,
        'verbose': False,
        'command': 'memory',
        'memory_command': None,
        'query': None,
        'category': None,
        'platform': None,
        'task_type': None,
        'min_importance': None,
        'limit': 10,
        'include_inactive': False,
    }
    defaults.update(kwargs)

    args = MagicMock()
    for key, value in defaults.items():
        setattr(args, key, value)
    return args


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Config using offline embeddings and a temporary SQLite database."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    path = tmp_path / "config.yml"
    path.write_text(
        "embedding:\n"
        "  provider: simple\n"
        "  dimensions: 64\n"
        "storage:\n"
        "  backend: sqlite\n"
        f"  db_path: {tmp_path / 'memory.db'}\n"
    )
    return str(path)


def run(config_file, *argv):
    main(["--config", config_file, *argv])


def add_memory(config_file, capsys, *argv):
    run(config_file, "memory", "add", *argv)
    output = capsys.readouterr().out
    match = re.search(r"Created memory (mem_\w+)", output)
    assert match, output
    return match.group(1)


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_default(self):
        """Test default logging setup."""
        setup_logging(verbose=False)

    def test_setup_logging_verbose(self):
        """Test verbose logging setup."""
        setup_logging(verbose=True)


class TestParser:
    """Tests for argument parsing."""

    def test_memory_add_arguments(self):
        """Test memory add options."""
        args = build_parser().parse_args([
            "memory", "add", "bakery", "Use first names",
            "--category", "style_preference", "--tag", "tone", "--tag", "names",
            "--importance", "0.8", "--pin",
        ])

        assert args.memory_command == "add"
        assert args.tags == ["tone", "names"]
        assert args.importance == 0.8
        assert args.pin is True

    def test_invalid_task_type(self):
        """Test argparse rejects unknown task types."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["context", "build", "bakery", "poem_generation"])


class TestMain:
    """Tests for the main entry point."""

    def test_no_command(self, capsys):
        """Test help is printed without a command."""
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert "usage:" in capsys.readouterr().out

    def test_memory_without_subcommand(self, config_file, capsys):
        """Test the memory command requires a subcommand."""
        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory")

        assert exc_info.value.code == 1
        assert "Please specify a memory command" in capsys.readouterr().out


class TestMemoryCommands:
    """Tests for memory commands."""

    def test_add_and_search(self, config_file, capsys):
        """Test a stored memory can be searched."""
        memory_id = add_memory(
            config_file, capsys, "bakery", "Sourdough sells out by noon", "--pin", "--tag", "stock"
        )

        run(config_file, "memory", "search", "bakery", "sourdough sells out")
        output = capsys.readouterr().out

        assert "Found 1 matching memories:" in output
        assert memory_id in output
        assert "[pinned]" in output
        assert "Tags: stock" in output

    def test_add_defaults_to_user_input(self, config_file, capsys, tmp_path):
        """Test memories added from the CLI are marked as user input."""
        add_memory(config_file, capsys, "bakery", "Closed on Mondays")
        output_path = tmp_path / "export.json"

        run(config_file, "memory", "export", "bakery", str(output_path))

        entries = json.loads(output_path.read_text())["entries"]
        assert entries[0]["source"] == "user_input"

    def test_search_no_results(self, config_file, capsys):
        """Test the empty search message."""
        run(config_file, "memory", "search", "bakery", "anything")

        assert "No memories found matching your query." in capsys.readouterr().out

    def test_feedback(self, config_file, capsys):
        """Test feedback changes importance."""
        memory_id = add_memory(config_file, capsys, "bakery", "Use first names")

        run(config_file, "memory", "feedback", "bakery", memory_id, "negative")

        assert f"Memory {memory_id} importance is now 0.40" in capsys.readouterr().out

    def test_feedback_unknown_memory(self, config_file, capsys):
        """Test errors are reported with a non-zero exit."""
        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory", "feedback", "bakery", "mem_missing", "positive")

        assert exc_info.value.code == 1
        assert "Error: memory not found: mem_missing" in capsys.readouterr().out

    def test_feedback_other_owner(self, config_file, capsys):
        """Test feedback cannot reach another owner's memory."""
        memory_id = add_memory(config_file, capsys, "bakery", "Use first names")

        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory", "feedback", "florist", memory_id, "negative")

        assert exc_info.value.code == 1
        assert f"Error: memory not found: {memory_id}" in capsys.readouterr().out

        run(config_file, "memory", "search", "bakery")
        assert "Importance: 0.50" in capsys.readouterr().out

    def test_invalid_importance(self, config_file, capsys):
        """Test validation errors are reported."""
        with pytest.raises(SystemExit):
            run(config_file, "memory", "add", "bakery", "text", "--importance", "2")

        assert "Error: Invalid importance" in capsys.readouterr().out

    def test_stats_prune_delete(self, config_file, capsys):
        """Test maintenance commands."""
        memory_id = add_memory(config_file, capsys, "bakery", "Closed on Mondays",
                               "--category", "seasonal")

        run(config_file, "memory", "stats", "bakery")
        output = capsys.readouterr().out
        assert "Memory statistics for bakery:" in output
        assert "Total: 1" in output
        assert "seasonal: 1" in output

        run(config_file, "memory", "prune", "bakery")
        assert "Pruned 0 memories" in capsys.readouterr().out

        run(config_file, "memory", "delete", "bakery", memory_id)
        assert f"Deleted memory {memory_id}" in capsys.readouterr().out

    def test_export_import(self, config_file, capsys, tmp_path):
        """Test exporting and importing memories."""
        add_memory(config_file, capsys, "bakery", "Closed on Mondays")
        output_path = tmp_path / "export.json"

        run(config_file, "memory", "export", "bakery", str(output_path))
        assert "Exported 1 memories" in capsys.readouterr().out

        run(config_file, "memory", "import", "bakery", str(output_path))
        assert "Imported 1 memories" in capsys.readouterr().out

    def test_import_missing_file(self, config_file, capsys, tmp_path):
        """Test importing a missing file."""
        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory", "import", "bakery", str(tmp_path / "missing.json"))

        assert exc_info.value.code == 1
        assert "Error: File not found" in capsys.readouterr().out

    def test_import_into_other_owner(self, config_file, capsys, tmp_path):
        """Test importing another owner's export copies rather than moves."""
        memory_id = add_memory(config_file, capsys, "bakery", "Closed on Mondays")
        output_path = tmp_path / "export.json"
        run(config_file, "memory", "export", "bakery", str(output_path))

        run(config_file, "memory", "import", "florist", str(output_path))
        assert "Imported 1 memories" in capsys.readouterr().out

        run(config_file, "memory", "search", "bakery")
        assert memory_id in capsys.readouterr().out

        run(config_file, "memory", "search", "florist")
        output = capsys.readouterr().out
        assert "Found 1 matching memories:" in output
        assert memory_id not in output

    def test_import_invalid_json(self, config_file, capsys, tmp_path):
        """Test malformed JSON is reported without a traceback."""
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory", "import", "bakery", str(path))

        assert exc_info.value.code == 1
        assert "is not valid JSON" in capsys.readouterr().out

    def test_import_not_an_export(self, config_file, capsys, tmp_path):
        """Test a JSON file of the wrong shape is rejected."""
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")

        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory", "import", "bakery", str(path))

        assert exc_info.value.code == 1
        assert "is not a memory export" in capsys.readouterr().out

    def test_export_unwritable_path(self, config_file, capsys, tmp_path):
        """Test a bad export path is reported without a traceback."""
        output_path = tmp_path / "missing-dir" / "export.json"

        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "memory", "export", "bakery", str(output_path))

        assert exc_info.value.code == 1
        assert "Error: Cannot write" in capsys.readouterr().out

    def test_handle_memory_closes_engine(self):
        """Test the engine is closed even when a handler fails."""
        engine = MagicMock()
        engine.search_memories.side_effect = RuntimeError("boom")
        args = create_mock_args(memory_command="search", owner="bakery")

        with patch("semantic_context.cli.create_engine", return_value=engine):
            with pytest.raises(RuntimeError):
                handle_memory(args)

        engine.close.assert_called_once()

    def test_handle_memory_search_passes_filters(self, capsys):
        """Test search arguments reach the engine."""
        engine = MagicMock()
        engine.search_memories.return_value = []
        args = create_mock_args(
            owner="bakery", query="hooks", platform="tiktok", limit=3,
        )

        handle_memory_search(engine, args)

        engine.search_memories.assert_called_once_with(
            "bakery",
            query="hooks",
            category=None,
            platform="tiktok",
            task_type=None,
            min_importance=None,
            limit=3,
            include_inactive=False,
        )


class TestContextCommands:
    """Tests for context commands."""

    def test_build(self, config_file, capsys, tmp_path):
        """Test building context from snapshots and memories."""
        snapshots = tmp_path / "snapshots.yml"
        snapshots.write_text(SNAPSHOTS)
        add_memory(config_file, capsys, "bakery", "Always mention free delivery", "--pin")

        run(config_file, "context", "build", "bakery", "caption_generation",
            "--snapshots", str(snapshots))
        output = capsys.readouterr().out

        assert output.startswith("BUSINESS CONTEXT:\nCrumb & Co (bakery)")
        assert "KEY MEMORIES:\n- Always mention free delivery" in output
        assert "Brand Values: Craft" in output
        assert "tier: extended, memories: 1, templates: 0" in output

    def test_build_json(self, config_file, capsys):
        """Test JSON output without snapshots."""
        add_memory(config_file, capsys, "bakery", "Always mention free delivery", "--pin")

        run(config_file, "context", "build", "bakery", "hook_generation", "--json")
        data = json.loads(capsys.readouterr().out)

        assert data["context"] == "KEY MEMORIES:\n- Always mention free delivery"
        assert data["metadata"]["tier"] == "task_specific"
        assert data["metadata"]["pinned_memories_count"] == 1

    def test_build_missing_snapshots(self, config_file, capsys, tmp_path):
        """Test a missing snapshot file."""
        with pytest.raises(SystemExit) as exc_info:
            run(config_file, "context", "build", "bakery", "enhancement",
                "--snapshots", str(tmp_path / "missing.yml"))

        assert exc_info.value.code == 1
        assert "Error: File not found" in capsys.readouterr().out
