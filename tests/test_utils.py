"""Tests for filesystem helpers."""

import tempfile
from pathlib import Path

from plugin_bootstrap.utils import copy_tree
from plugin_bootstrap.utils import generated_name
from plugin_bootstrap.utils import is_empty_dir
from plugin_bootstrap.utils import move_contents
from plugin_bootstrap.utils import overlay_tree
from plugin_bootstrap.utils import remove_path


def test_remove_path_file_and_tree():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        file_path = root / "file.txt"
        file_path.write_text("x")
        tree = root / "tree" / "nested"
        tree.mkdir(parents=True)
        (tree / "inner.txt").write_text("y")

        assert remove_path(file_path)
        assert remove_path(root / "tree")
        assert not file_path.exists()
        assert not (root / "tree").exists()


def test_remove_path_missing_is_success():
    """Nothing there afterwards counts as removed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        assert remove_path(Path(tmpdir) / "missing")


def test_remove_path_read_only_file():
    """Read-only entries (git pack files) are still removed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tree = Path(tmpdir) / "repo"
        objects = tree / ".git" / "objects"
        objects.mkdir(parents=True)
        pack = objects / "pack-1.pack"
        pack.write_text("data")
        pack.chmod(0o444)

        assert remove_path(tree)
        assert not tree.exists()


def test_copy_tree_skips_git_metadata():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "source"
        (source / ".git").mkdir(parents=True)
        (source / ".git" / "HEAD").write_text("ref: refs/heads/main")
        (source / "index.tsx").write_text("export default {}")

        target = Path(tmpdir) / "target"
        copy_tree(source, target)

        assert (target / "index.tsx").read_text() == "export default {}"
        assert not (target / ".git").exists()


def test_copy_tree_replaces_existing_target():
    """Stale files from a previous install do not survive."""
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "source"
        source.mkdir()
        (source / "new.ts").write_text("new")

        target = Path(tmpdir) / "target"
        target.mkdir()
        (target / "stale.ts").write_text("stale")

        copy_tree(source, target)

        assert (target / "new.ts").exists()
        assert not (target / "stale.ts").exists()


def test_overlay_tree_merges_into_existing_directories():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "source"
        (source / "src").mkdir(parents=True)
        (source / "src" / "patch.ts").write_text("patched")
        (source / "README.md").write_text("from source")
        (source / ".git").mkdir()

        target = Path(tmpdir) / "target"
        (target / "src").mkdir(parents=True)
        (target / "src" / "original.ts").write_text("original")
        (target / "README.md").write_text("from target")
        (target / "package.json").write_text("{}")

        written = overlay_tree(source, target)

        assert written == ["README.md", "src"]
        assert (target / "README.md").read_text() == "from source"
        assert (target / "src" / "patch.ts").read_text() == "patched"
        assert (target / "src" / "original.ts").read_text() == "original"
        assert (target / "package.json").exists()
        assert not (target / ".git").exists()


def test_overlay_tree_replaces_type_conflicts():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "source"
        (source / "src" / "api").mkdir(parents=True)
        (source / "src" / "api" / "patch.ts").write_text("patched")
        (source / "docs").write_text("now a file")

        target = Path(tmpdir) / "target"
        (target / "src").mkdir(parents=True)
        (target / "src" / "api").write_text("was a file")
        (target / "src" / "keep.ts").write_text("kept")
        (target / "docs").mkdir()
        (target / "docs" / "old.md").write_text("old")

        overlay_tree(source, target)

        assert (target / "src" / "api" / "patch.ts").read_text() == "patched"
        assert (target / "src" / "keep.ts").read_text() == "kept"
        assert (target / "docs").read_text() == "now a file"


def test_move_contents_and_is_empty_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "source"
        source.mkdir()
        (source / "a.txt").write_text("a")
        (source / "sub").mkdir()

        target = Path(tmpdir) / "target"
        move_contents(source, target)

        assert is_empty_dir(source)
        assert (target / "a.txt").exists()
        assert (target / "sub").is_dir()
        assert not is_empty_dir(target)
        assert not is_empty_dir(Path(tmpdir) / "missing")


def test_generated_name():
    name = generated_name()
    other = generated_name(suffix=".tsx")

    assert name.startswith("plugin-")
    assert len(name) == len("plugin-") + 8
    assert other.endswith(".tsx")
    assert name != generated_name()
