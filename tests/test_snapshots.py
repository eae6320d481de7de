"""
Tests for profile, platform and template snapshots.
"""

import pytest

from semantic_context.context import (
    ContextTemplate,
    InMemorySnapshotStore,
    load_snapshot_file,
)
from semantic_context.errors import ValidationError
from semantic_context.memory import TaskType


SNAPSHOT_YAML = """
profiles:
  - owner_id: "bakery-1"
    business_name: "Crumb & Co"
    business_type: "bakery"
    tagline: "Bread worth waking up for"
    unique_selling_points: ["Wild yeast", "Organic flour"]
    brand_voice:
      tone: "warm"
      keywords: ["fresh"]
      avoid_words: ["cheap"]
    products:
      - name: "Country loaf"
        price: 8
        highlight: true
    brand_assets:
      primary_color: "#F4A261"
platforms:
  - owner_id: "bakery-1"
    platform: "instagram"
    followers_count: 12500
    average_engagement_rate: 0.05
templates:
  - id: "tpl-1"
    owner_id: "bakery-1"
    name: "Weekend special"
    content: "Mention the Saturday sourdough drop."
    applicable_task_types: ["caption_generation"]
    priority: 2
"""


def make_template(template_id, priority=0, effectiveness=0.0, **kwargs):
    return ContextTemplate(
        id=template_id,
        owner_id=kwargs.pop("owner_id", "owner-1"),
        name=template_id,
        content=f"content of {template_id}",
        applicable_task_types=kwargs.pop(
            "task_types", [TaskType.CAPTION_GENERATION]
        ),
        priority=priority,
        effectiveness_score=effectiveness,
        **kwargs,
    )


class TestInMemorySnapshotStore:
    """Test the dictionary-backed snapshot provider."""

    def test_missing_records(self):
        """Test unknown owners and platforms return None."""
        store = InMemorySnapshotStore()

        assert store.get_profile("nobody") is None
        assert store.get_platform_context("nobody", "instagram") is None
        assert store.get_templates("nobody", TaskType.ENHANCEMENT) == []

    def test_template_ordering(self):
        """Test templates sort by priority, then effectiveness."""
        store = InMemorySnapshotStore()
        store.add_template(make_template("low", priority=1))
        store.add_template(make_template("high-weak", priority=5, effectiveness=0.2))
        store.add_template(make_template("high-strong", priority=5, effectiveness=0.9))

        templates = store.get_templates("owner-1", TaskType.CAPTION_GENERATION, limit=3)

        assert [t.id for t in templates] == ["high-strong", "high-weak", "low"]

    def test_template_filters(self):
        """Test inactive, foreign and inapplicable templates are excluded."""
        store = InMemorySnapshotStore()
        store.add_template(make_template("ok"))
        store.add_template(make_template("inactive", is_active=False))
        store.add_template(make_template("foreign", owner_id="owner-2"))
        store.add_template(make_template("hooks", task_types=[TaskType.HOOK_GENERATION]))

        templates = store.get_templates("owner-1", TaskType.CAPTION_GENERATION)

        assert [t.id for t in templates] == ["ok"]

    def test_template_limit(self):
        """Test the template limit."""
        store = InMemorySnapshotStore()
        for i in range(4):
            store.add_template(make_template(f"tpl-{i}", priority=i))

        templates = store.get_templates("owner-1", TaskType.CAPTION_GENERATION)

        assert [t.id for t in templates] == ["tpl-3", "tpl-2"]


class TestLoadSnapshotFile:
    """Test loading snapshots from YAML."""

    def test_load(self, tmp_path):
        """Test every section is loaded."""
        path = tmp_path / "snapshots.yml"
        path.write_text(SNAPSHOT_YAML)

        store = load_snapshot_file(path)

        profile = store.get_profile("bakery-1")
        assert profile.business_name == "Crumb & Co"
        assert profile.brand_voice.avoid_words == ["cheap"]
        assert profile.products[0].price == "8"
        assert profile.products[0].highlight is True
        assert profile.brand_assets.primary_color == "#F4A261"

        stats = store.get_platform_context("bakery-1", "instagram")
        assert stats.followers_count == 12500

        templates = store.get_templates("bakery-1", TaskType.CAPTION_GENERATION)
        assert templates[0].name == "Weekend special"

    def test_empty_file(self, tmp_path):
        """Test an empty file gives an empty store."""
        path = tmp_path / "empty.yml"
        path.write_text("")

        store = load_snapshot_file(str(path))

        assert store.get_profile("anyone") is None

    def test_missing_required_field(self, tmp_path):
        """Test an entry without a required field is rejected."""
        path = tmp_path / "bad.yml"
        path.write_text("profiles:\n  - owner_id: bakery-1\n")

        with pytest.raises(ValidationError):
            load_snapshot_file(path)

    def test_bad_number(self, tmp_path):
        """Test a non-numeric count is rejected."""
        path = tmp_path / "bad.yml"
        path.write_text(
            "platforms:\n  - owner_id: o\n    platform: x\n    followers_count: lots\n"
        )

        with pytest.raises(ValidationError):
            load_snapshot_file(path)

    def test_unknown_task_type(self, tmp_path):
        """Test an unknown task type in a template is rejected."""
        path = tmp_path / "bad.yml"
        path.write_text(
            "templates:\n"
            "  - id: t\n    owner_id: o\n    name: n\n    content: c\n"
            "    applicable_task_types: [poem_generation]\n"
        )

        with pytest.raises(ValidationError):
            load_snapshot_file(path)

    def test_non_mapping(self, tmp_path):
        """Test a top-level list is rejected."""
        path = tmp_path / "list.yml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ValidationError):
            load_snapshot_file(path)
