"""Tests for PluginLock with injected lock path."""

import json
import tempfile
from pathlib import Path

from plugin_bootstrap import PluginLock


def test_lock_with_injected_path():
    """Test lock uses injected path (not hardcoded)."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "custom.lock"

        lock = PluginLock(lock_path=lock_path)

        assert lock.lock_path == lock_path
        assert not lock_path.exists()  # Not created until first save


def test_add_and_get_entry():
    """Test adding and retrieving lock entries."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"
        lock = PluginLock(lock_path=lock_path)

        lock.add_entry(
            name="alpha",
            source="https://github.com/org/plugins",
            kind="folder_convention",
            path=Path("/install/src/userplugins/alpha"),
        )

        entry = lock.get_entry("alpha")
        assert entry is not None
        assert entry.name == "alpha"
        assert entry.source == "https://github.com/org/plugins"
        assert entry.kind == "folder_convention"
        assert entry.path == str(Path("/install/src/userplugins/alpha"))
        assert entry.installed_at


def test_add_replaces_existing_entry():
    """Re-installing a name overwrites its record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock = PluginLock(lock_path=Path(tmpdir) / "test.lock")

        lock.add_entry(name="alpha", source="first", kind="whole_repo", path=Path("/a"))
        lock.add_entry(name="alpha", source="second", kind="whole_repo", path=Path("/a"))

        assert len(lock.list_entries()) == 1
        assert lock.get_entry("alpha").source == "second"


def test_remove_entry():
    """Test removing lock entry."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"
        lock = PluginLock(lock_path=lock_path)

        lock.add_entry(name="test", source="src", kind="single_file", path=Path("/test.tsx"))

        assert lock.is_installed("test")

        lock.remove_entry("test")

        assert not lock.is_installed("test")
        assert lock.get_entry("test") is None


def test_remove_unknown_entry_is_noop():
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"
        lock = PluginLock(lock_path=lock_path)

        lock.remove_entry("missing")

        assert not lock_path.exists()


def test_list_entries():
    """Test listing all lock entries."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"
        lock = PluginLock(lock_path=lock_path)

        lock.add_entry(name="alpha", source="src1", kind="folder_convention", path=Path("/alpha"))
        lock.add_entry(name="beta", source="src2", kind="whole_repo", path=Path("/beta"))

        entries = lock.list_entries()

        assert len(entries) == 2
        names = [e.name for e in entries]
        assert "alpha" in names
        assert "beta" in names


def test_lock_persistence():
    """Test that lock file persists across instances."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"

        lock1 = PluginLock(lock_path=lock_path)
        lock1.add_entry(name="persistent", source="src", kind="whole_repo", path=Path("/p"))

        lock2 = PluginLock(lock_path=lock_path)

        assert lock2.is_installed("persistent")
        assert lock2.get_entry("persistent").kind == "whole_repo"


def test_lock_file_format():
    """Test lock file JSON layout."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"
        lock = PluginLock(lock_path=lock_path)

        lock.add_entry(name="alpha", source="src", kind="folder_convention", path=Path("/alpha"))

        data = json.loads(lock_path.read_text(encoding="utf-8"))
        assert data["version"] == "1.0"
        assert "alpha" in data["plugins"]
        assert data["plugins"]["alpha"]["kind"] == "folder_convention"


def test_corrupt_lock_file_loads_empty():
    """Unreadable lock file is treated as empty, not an error."""
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "test.lock"
        lock_path.write_text("{not json", encoding="utf-8")

        lock = PluginLock(lock_path=lock_path)

        assert lock.list_entries() == []
