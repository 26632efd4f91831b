"""Protocols for the collaborators the materializer and pipeline depend on.

The library only requires these interfaces; the front-end (or a test) decides
how commands run, how bytes are downloaded and how the user is asked.
"""

from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Protocol
from typing import runtime_checkable

if TYPE_CHECKING:
    from .context import RunContext
    from .schema import RepoReference


@runtime_checkable
class CommandRunnerProtocol(Protocol):
    """Run an external command and report its exit code."""

    async def __call__(
        self,
        ctx: "RunContext",
        command: str,
        args: Sequence[str],
        cwd: Path | None = None,
        on_output: Callable[[str], None] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run ``command args`` in ``cwd``, streaming output line by line.

        ``env`` entries are set on top of the inherited environment.

        Raises:
            InstallCancelled: If the run is cancelled while waiting
        """
        ...


@runtime_checkable
class DownloaderProtocol(Protocol):
    """Fetch the body of a URL."""

    async def download(self, url: str) -> bytes:
        """Return response bytes.

        Raises:
            SourceFetchError: On HTTP or transport errors
        """
        ...


@runtime_checkable
class RepositoryFetcherProtocol(Protocol):
    """Produce a local copy of a repository inside a tracked work area."""

    async def fetch(self, ctx: "RunContext", url: str, ref: "RepoReference | None") -> Path:
        """Return the local repository root.

        Raises:
            SourceFetchError: If every attempt failed
        """
        ...


@runtime_checkable
class MergeConfirmProtocol(Protocol):
    """Ask whether an unstructured repository may be overlaid onto the install root."""

    async def confirm_merge(self, source: str, repo_root: Path, destination_root: Path) -> bool:
        """Block until the user answers. True means merge."""
        ...
