"""Per-run state: cancellation, temporary paths and the active process.

One ``RunContext`` is created per run and passed to every step. Nothing here
is module-global, so two runs never share state.
"""

import asyncio
import logging
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from .exceptions import InstallCancelled
from .utils import remove_path

logger = logging.getLogger(__name__)


class RunContext:
    """Cancellation flag, temp-path registry and process handle for one run."""

    def __init__(self, destination_root: Path, poll_interval: float = 0.1, owns_destination: bool = True):
        """Initialize context for a run targeting ``destination_root``.

        Args:
            destination_root: Install directory
            poll_interval: Seconds between cancellation checks while waiting
            owns_destination: Whether rollback deletes ``destination_root``
                (False when adding to an install this run did not create)
        """
        self.destination_root = destination_root
        self.poll_interval = poll_interval
        self.owns_destination = owns_destination
        self.active_process: asyncio.subprocess.Process | None = None
        self._cancelled = False
        self._temp_paths: list[Path] = []
        self._original_path: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def temp_paths(self) -> list[Path]:
        """Temporary paths still owned by this run."""
        return list(self._temp_paths)

    def cancel(self) -> None:
        """Raise the cancellation flag and kill the running process, if any.

        The flag is observed at the next poll point, not immediately.
        """
        if not self._cancelled:
            logger.warning("Cancellation requested")
        self._cancelled = True
        process = self.active_process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise InstallCancelled()

    def track(self, path: Path) -> Path:
        """Register a path for removal when the run ends."""
        self._temp_paths.append(path)
        return path

    def make_temp_dir(self, prefix: str = "plugin-bootstrap-") -> Path:
        """Create and track a fresh temporary directory."""
        return self.track(Path(tempfile.mkdtemp(prefix=prefix)))

    def owner_of(self, path: Path) -> Path | None:
        """Tracked area that is ``path`` or contains it."""
        for tracked in reversed(self._temp_paths):
            if path == tracked or path.is_relative_to(tracked):
                return tracked
        return None

    def release(self, path: Path) -> None:
        """Remove the tracked area owning ``path`` now (best effort) and stop tracking it.

        Untracked paths are removed as-is.
        """
        owner = self.owner_of(path) or path
        remove_path(owner)
        if owner in self._temp_paths:
            self._temp_paths.remove(owner)

    def prepend_path(self, directory: Path) -> None:
        """Put ``directory`` first on PATH until the run ends."""
        if self._original_path is None:
            self._original_path = os.environ.get("PATH", "")
        current = os.environ.get("PATH", "")
        entries = current.split(os.pathsep) if current else []
        if str(directory) in entries:
            return
        os.environ["PATH"] = os.pathsep.join([str(directory), *entries])
        logger.debug(f"Added {directory} to PATH")

    def cleanup(self) -> None:
        """Drain the temp registry and restore PATH. Never raises."""
        for path in reversed(self._temp_paths):
            remove_path(path)
        self._temp_paths.clear()
        if self._original_path is not None:
            os.environ["PATH"] = self._original_path
            self._original_path = None
        self.active_process = None

    def rollback(self) -> None:
        """Delete everything this run produced, including the destination root."""
        self.cleanup()
        if self.owns_destination:
            logger.info(f"Rolling back: removing {self.destination_root}")
            remove_path(self.destination_root)


@asynccontextmanager
async def open_run(
    destination_root: Path,
    poll_interval: float = 0.1,
    owns_destination: bool = True,
) -> AsyncIterator[RunContext]:
    """Scope a run: cleanup on every exit path, full rollback on cancellation.

    Example:
        >>> async with open_run(Path("~/Vencord").expanduser()) as ctx:
        ...     await materializer.materialize_all(ctx, sources)
    """
    ctx = RunContext(destination_root, poll_interval=poll_interval, owns_destination=owns_destination)
    try:
        yield ctx
    except (InstallCancelled, asyncio.CancelledError):
        ctx.rollback()
        raise
    finally:
        ctx.cleanup()
