"""Developer tool discovery and provisioning.

Resolution order for each tool:
1. an executable already on PATH
2. a user-supplied location (the executable itself, or a directory searched
   a few levels deep); its directory is prepended to PATH for the rest of the run

Provisioning fills the gaps for node (portable archive) and pnpm (npm global
install). Git is never provisioned; repository fetches fall back to archives.
"""

import logging
import os
import platform
import shutil
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict

from .context import RunContext
from .exceptions import ToolNotFoundError
from .fetch import HttpDownloader
from .fetch import extract_archive
from .process import run_command
from .protocols import CommandRunnerProtocol
from .protocols import DownloaderProtocol

logger = logging.getLogger(__name__)

MAX_SEARCH_DEPTH = 4


class ToolSpec(BaseModel):
    """A tool and the executable names it may go by."""

    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    executables: tuple[str, ...]


GIT = ToolSpec(key="git", display_name="Git", executables=("git", "git.exe"))
NODE = ToolSpec(key="node", display_name="Node.js", executables=("node", "node.exe"))
NPM = ToolSpec(key="npm", display_name="npm", executables=("npm", "npm.cmd"))
PNPM = ToolSpec(key="pnpm", display_name="pnpm", executables=("pnpm", "pnpm.cmd", "pnpm.exe"))


def _is_executable(path: Path) -> bool:
    return path.is_file() and (os.name == "nt" or os.access(path, os.X_OK))


def find_executable(spec: ToolSpec, location: Path) -> Path | None:
    """Find one of ``spec.executables`` at ``location``.

    Args:
        spec: Tool to look for
        location: Executable file, or directory searched breadth-first up to
            ``MAX_SEARCH_DEPTH`` levels

    Returns:
        Path to the executable, or None
    """
    names = {name.lower() for name in spec.executables}
    if location.is_file():
        return location if location.name.lower() in names and _is_executable(location) else None
    if not location.is_dir():
        return None

    level = [location]
    for _ in range(MAX_SEARCH_DEPTH + 1):
        next_level: list[Path] = []
        for directory in level:
            for name in spec.executables:
                candidate = directory / name
                if _is_executable(candidate):
                    return candidate
            try:
                next_level.extend(
                    sorted(p for p in directory.iterdir() if p.is_dir() and not p.name.startswith("."))
                )
            except OSError as e:
                logger.debug(f"Cannot scan {directory}: {e}")
        level = next_level
    return None


class ToolResolver:
    """Resolve tools from PATH or user-supplied locations (injected overrides)."""

    def __init__(self, overrides: Mapping[str, Path] | None = None):
        """Initialize resolver.

        Args:
            overrides: Tool key -> user-supplied file or directory

        Example:
            >>> resolver = ToolResolver(overrides={"node": Path("C:/tools/node")})
        """
        self.overrides = dict(overrides or {})

    def which(self, spec: ToolSpec) -> Path | None:
        for name in spec.executables:
            found = shutil.which(name)
            if found:
                return Path(found)
        return None

    def resolve_in(self, spec: ToolSpec, location: Path, ctx: RunContext) -> Path | None:
        """Look for the tool at ``location``; on success put its directory on PATH."""
        executable = find_executable(spec, location.expanduser())
        if executable is None:
            return None
        ctx.prepend_path(executable.parent)
        logger.info(f"Using {spec.display_name} at {executable}")
        return executable

    def resolve(self, spec: ToolSpec, ctx: RunContext) -> Path | None:
        """Locate a tool; None when neither PATH nor the override has it."""
        found = self.which(spec)
        if found is not None:
            logger.debug(f"Found {spec.display_name} on PATH: {found}")
            return found

        override = self.overrides.get(spec.key)
        if override is None:
            return None

        executable = self.resolve_in(spec, override, ctx)
        if executable is None:
            logger.warning(f"No {spec.display_name} executable found at {override}")
        return executable

    def require(self, spec: ToolSpec, ctx: RunContext) -> Path:
        """Like ``resolve`` but raise when the tool is missing."""
        found = self.resolve(spec, ctx)
        if found is None:
            raise ToolNotFoundError(
                f"{spec.display_name} was not found on PATH"
                + (f" or at {self.overrides[spec.key]}" if spec.key in self.overrides else ""),
                context={"tool": spec.key},
            )
        return found


_ARCHES = {"x86_64": "x64", "amd64": "x64", "aarch64": "arm64", "arm64": "arm64"}
_SYSTEMS = {"windows": "win", "darwin": "darwin", "linux": "linux"}


def node_archive_name(version: str, system: str | None = None, machine: str | None = None) -> str:
    """Name of the portable Node.js archive for a platform.

    Example:
        >>> node_archive_name("20.18.0", "Linux", "x86_64")
        'node-v20.18.0-linux-x64.tar.gz'
    """
    system_key = (system or platform.system()).lower()
    machine_key = (machine or platform.machine()).lower()
    os_name = _SYSTEMS.get(system_key)
    arch = _ARCHES.get(machine_key)
    if os_name is None or arch is None:
        raise ToolNotFoundError(
            f"No portable Node.js build for {system_key}/{machine_key}",
            context={"system": system_key, "machine": machine_key},
        )
    extension = "zip" if os_name == "win" else "tar.gz"
    return f"node-v{version}-{os_name}-{arch}.{extension}"


class ToolProvisioner:
    """Make node and pnpm available, downloading or installing them when absent."""

    def __init__(
        self,
        resolver: ToolResolver,
        downloader: DownloaderProtocol | None = None,
        runner: CommandRunnerProtocol = run_command,
        node_version: str = "20.18.0",
        dist_url: str = "https://nodejs.org/dist",
    ):
        self.resolver = resolver
        self.downloader = downloader or HttpDownloader()
        self.runner = runner
        self.node_version = node_version
        self.dist_url = dist_url.rstrip("/")

    async def ensure_node(self, ctx: RunContext) -> Path:
        found = self.resolver.resolve(NODE, ctx)
        if found is not None:
            return found

        archive = node_archive_name(self.node_version)
        url = f"{self.dist_url}/v{self.node_version}/{archive}"
        logger.info(f"Node.js not found, downloading portable {self.node_version} from {url}")
        data = await self.downloader.download(url)
        ctx.raise_if_cancelled()

        root = extract_archive(data, ctx.make_temp_dir("node-"))
        executable = self.resolver.resolve_in(NODE, root, ctx)
        if executable is None:
            raise ToolNotFoundError(f"Downloaded {archive} contains no node executable", context={"url": url})
        return executable

    async def ensure_pnpm(self, ctx: RunContext) -> Path:
        found = self.resolver.resolve(PNPM, ctx)
        if found is not None:
            return found

        npm = self.resolver.require(NPM, ctx)
        logger.info("pnpm not found, installing it with npm")
        exit_code = await self.runner(ctx, str(npm), ["install", "-g", "pnpm"])
        if exit_code != 0:
            raise ToolNotFoundError(f"npm install -g pnpm failed with exit code {exit_code}", context={"npm": str(npm)})

        found = self.resolver.which(PNPM) or self.resolver.resolve_in(PNPM, npm.parent, ctx)
        if found is None:
            raise ToolNotFoundError("pnpm was installed but cannot be found", context={"npm": str(npm)})
        return found
