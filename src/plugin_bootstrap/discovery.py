"""Installed plugin discovery - convention over configuration.

Convention inside the plugin folder:
- each non-hidden subdirectory is one plugin
- each top-level ``.ts``/``.tsx``/``.js``/``.jsx`` file is one single-file plugin
"""

from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

PLUGIN_FILE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx")


class InstalledPlugins(BaseModel):
    """Plugins found in a plugin folder (immutable data structure)."""

    model_config = ConfigDict(frozen=True)

    folders: list[Path] = Field(default_factory=list)
    files: list[Path] = Field(default_factory=list)

    def has_plugins(self) -> bool:
        return bool(self.folders or self.files)

    @property
    def names(self) -> list[str]:
        return sorted(p.name for p in [*self.folders, *self.files])


def discover_installed_plugins(plugins_dir: Path) -> InstalledPlugins:
    """
    Discover plugins installed in ``plugins_dir``.

    Args:
        plugins_dir: Plugin folder of an install (e.g. ``<install>/src/userplugins``)

    Returns:
        InstalledPlugins; empty when the folder does not exist

    Example:
        >>> plugins = discover_installed_plugins(Path("~/Vencord/src/userplugins").expanduser())
        >>> print(f"Found {len(plugins.folders)} plugin folders")
    """
    if not plugins_dir.is_dir():
        return InstalledPlugins()

    folders = []
    files = []
    for item in plugins_dir.iterdir():
        if item.name.startswith("."):
            continue
        if item.is_dir():
            folders.append(item)
        elif item.is_file() and item.suffix.lower() in PLUGIN_FILE_SUFFIXES:
            files.append(item)

    return InstalledPlugins(
        folders=sorted(folders, key=lambda p: p.name),
        files=sorted(files, key=lambda p: p.name),
    )


def list_plugins(plugins_dir: Path) -> list[str]:
    """
    List installed plugin names (helper).

    Example:
        >>> list_plugins(Path("~/Vencord/src/userplugins").expanduser())
        ['alpha', 'beta', 'quickFix.tsx']
    """
    return discover_installed_plugins(plugins_dir).names
