"""Install record of placed plugins.

Tracks which source each plugin in the plugin folder came from, so plugins
can be listed and removed later. The record path is injected by the caller.

Lock format (JSON):
{
  "version": "1.0",
  "plugins": {
    "alpha": {
      "name": "alpha",
      "source": "https://github.com/org/plugins",
      "kind": "folder_convention",
      "path": "/home/me/Vencord/src/userplugins/alpha",
      "installed_at": "2026-10-19T12:00:00+00:00"
    }
  }
}
"""

import json
import logging
from dataclasses import asdict
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class PluginLockEntry:
    """Entry in the plugin install record."""

    name: str
    source: str
    kind: str
    path: str
    installed_at: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PluginLockEntry":
        """Create from dictionary."""
        return cls(**data)


class PluginLock:
    """Plugin install record manager (with injected lock path)."""

    VERSION = "1.0"

    def __init__(self, lock_path: Path):
        """Initialize lock manager.

        Args:
            lock_path: Path to lock file (not created until the first save)

        Example:
            >>> lock = PluginLock(lock_path=Path("~/Vencord/.plugin-bootstrap.lock").expanduser())
        """
        self.lock_path = lock_path
        self._data: dict[str, PluginLockEntry] = {}
        self._load()

    def _load(self) -> None:
        """Load lock file if it exists."""
        if not self.lock_path.exists():
            self._data = {}
            return

        try:
            with open(self.lock_path, encoding="utf-8") as f:
                data = json.load(f)

            if data.get("version") != self.VERSION:
                logger.warning(f"Lock file version mismatch: expected {self.VERSION}, got {data.get('version')}")

            plugins = data.get("plugins", {})
            self._data = {name: PluginLockEntry.from_dict(entry) for name, entry in plugins.items()}
            logger.debug(f"Loaded {len(self._data)} plugins from lock file")

        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to load lock file {self.lock_path}: {e}")
            self._data = {}

    def _save(self) -> None:
        """Save lock file."""
        data = {
            "version": self.VERSION,
            "plugins": {name: entry.to_dict() for name, entry in self._data.items()},
        }

        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.lock_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            logger.debug(f"Saved lock file with {len(self._data)} plugins")
        except OSError as e:
            logger.error(f"Failed to save lock file {self.lock_path}: {e}")

    def add_entry(self, name: str, source: str, kind: str, path: Path) -> None:
        """Add or replace the record for a plugin name.

        Args:
            name: Plugin entry name inside the plugin folder
            source: Source string the plugin came from
            kind: Classification kind (e.g. "whole_repo")
            path: Installed path
        """
        self._data[name] = PluginLockEntry(
            name=name,
            source=source,
            kind=kind,
            path=str(path),
            installed_at=datetime.now(UTC).isoformat(),
        )
        self._save()
        logger.debug(f"Recorded {name} in lock file")

    def remove_entry(self, name: str) -> None:
        """Forget a plugin (no-op when unknown)."""
        if name in self._data:
            del self._data[name]
            self._save()
            logger.debug(f"Removed {name} from lock file")

    def get_entry(self, name: str) -> PluginLockEntry | None:
        return self._data.get(name)

    def list_entries(self) -> list[PluginLockEntry]:
        return list(self._data.values())

    def is_installed(self, name: str) -> bool:
        return name in self._data
