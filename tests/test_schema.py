"""Tests for the classification data model."""

from pathlib import Path

import pytest
from plugin_bootstrap import FolderConvention
from plugin_bootstrap import MaterializeReport
from plugin_bootstrap import RepoReference
from plugin_bootstrap import SourceOutcome
from plugin_bootstrap import UnstructuredMerge
from plugin_bootstrap import WholeRepoPlugin
from plugin_bootstrap.schema import ClassifiedPlugin
from pydantic import TypeAdapter
from pydantic import ValidationError


def test_repo_reference_urls():
    ref = RepoReference(owner="org", name="my-plugin")

    assert ref.clone_url == "https://github.com/org/my-plugin.git"
    assert ref.archive_url("main") == "https://github.com/org/my-plugin/archive/refs/heads/main.zip"
    assert str(ref) == "org/my-plugin"
    assert str(RepoReference(owner="org", name="my-plugin", branch="dev")) == "org/my-plugin@dev"


def test_repo_reference_rejects_blank_parts():
    with pytest.raises(ValidationError):
        RepoReference(owner="  ", name="repo")

    with pytest.raises(ValidationError):
        RepoReference(owner="org", name="")


def test_repo_reference_is_frozen():
    ref = RepoReference(owner="org", name="repo")

    with pytest.raises(ValidationError):
        ref.name = "other"


def test_classified_plugin_discriminates_on_kind():
    """Variants round-trip through the tagged union by ``kind``."""
    adapter = TypeAdapter(ClassifiedPlugin)

    plugin = adapter.validate_python({"kind": "whole_repo", "repo_root": "/tmp/repo", "plugin_name": "x"})
    assert isinstance(plugin, WholeRepoPlugin)

    plugin = adapter.validate_python({"kind": "folder_convention", "repo_root": "/tmp/repo", "plugin_names": ["a"]})
    assert isinstance(plugin, FolderConvention)
    assert plugin.plugin_names == ["a"]

    with pytest.raises(ValidationError):
        adapter.validate_python({"kind": "unknown"})


def test_report_views_keep_input_order():
    report = MaterializeReport()
    report.add(SourceOutcome(source="a", status="placed", placed=["alpha", "beta"]))
    report.add(SourceOutcome(source="b", status="failed", detail="404"))
    report.add(SourceOutcome(source="c", status="skipped", detail="merge declined by user"))
    report.add(SourceOutcome(source="d", status="placed", placed=["gamma.tsx"]))

    assert [o.source for o in report.placed] == ["a", "d"]
    assert [o.source for o in report.failed] == ["b"]
    assert [o.source for o in report.skipped] == ["c"]
    assert report.plugin_names == ["alpha", "beta", "gamma.tsx"]


def test_plugin_names_leave_out_merged_entries():
    report = MaterializeReport()
    report.add(SourceOutcome(source="a", status="placed", placed=["alpha"]))
    report.add(
        SourceOutcome(
            source="b",
            status="placed",
            plugin=UnstructuredMerge(repo_root=Path("/tmp/loose")),
            placed=["README.md", "src"],
        )
    )
    report.add(
        SourceOutcome(
            source="c",
            status="placed",
            plugin=WholeRepoPlugin(repo_root=Path("/tmp/whole"), plugin_name="whole"),
            placed=["whole"],
        )
    )

    assert [o.source for o in report.placed] == ["a", "b", "c"]
    assert report.plugin_names == ["alpha", "whole"]


def test_outcome_status_is_validated():
    with pytest.raises(ValidationError):
        SourceOutcome(source="a", status="done")


def test_whole_repo_requires_name():
    with pytest.raises(ValidationError):
        WholeRepoPlugin(repo_root=Path("/tmp/repo"))
