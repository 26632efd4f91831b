"""Repository and file fetching.

Git is preferred when a client is available; otherwise (or when every clone
attempt fails) the branch snapshot archive is downloaded and extracted. Every
attempt happens inside a work area tracked by the run context.
"""

import io
import logging
import tarfile
import zipfile
from collections.abc import Sequence
from pathlib import Path

import httpx

from .context import RunContext
from .exceptions import SourceFetchError
from .protocols import CommandRunnerProtocol
from .protocols import DownloaderProtocol
from .process import run_command
from .schema import RepoReference
from .urls import filename_from_url
from .urls import parse_repo_reference
from .utils import is_empty_dir
from .utils import move_contents
from .utils import remove_path

logger = logging.getLogger(__name__)

DEFAULT_BRANCHES = ("main", "master")

# Private or missing repositories fail instead of waiting on a credential prompt
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


class HttpDownloader:
    """Download URL bodies with httpx."""

    def __init__(self, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self.transport = transport
        self.headers = {"User-Agent": "plugin-bootstrap"}

    async def download(self, url: str) -> bytes:
        logger.debug(f"Downloading {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=self.headers,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Download failed for {url}: {e}", context={"url": url}) from e


def _safe_member_path(root: Path, name: str) -> Path:
    destination = (root / name).resolve()
    if not destination.is_relative_to(root.resolve()):
        raise SourceFetchError(f"Archive entry escapes extraction directory: {name}", context={"entry": name})
    return destination


def extract_archive(data: bytes, target_dir: Path) -> Path:
    """Extract a zip or tar archive into ``target_dir``.

    Returns:
        The archive's single top-level directory if it has exactly one
        (snapshot archives wrap everything in ``<repo>-<branch>/``),
        otherwise ``target_dir`` itself

    Raises:
        SourceFetchError: If the payload is not a readable archive or an entry
            would land outside ``target_dir``
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(io.BytesIO(data)):
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for name in archive.namelist():
                    _safe_member_path(target_dir, name)
                archive.extractall(target_dir)
        else:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
                archive.extractall(target_dir, filter="data")
    except (zipfile.BadZipFile, tarfile.TarError) as e:
        raise SourceFetchError(f"Could not extract archive: {e}", context={"target_dir": str(target_dir)}) from e

    entries = list(target_dir.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return target_dir


def _local_folder_name(url: str, ref: RepoReference | None) -> str:
    if ref is not None:
        return ref.name
    name = filename_from_url(url.rstrip("/")) or "repository"
    return name[:-4] if name.lower().endswith(".git") else name


class RepositoryFetcher:
    """Obtain local repository copies (git first, archive fallback)."""

    def __init__(
        self,
        git: str | None = None,
        runner: CommandRunnerProtocol = run_command,
        downloader: DownloaderProtocol | None = None,
        default_branches: Sequence[str] = DEFAULT_BRANCHES,
    ):
        """Initialize fetcher.

        Args:
            git: Git executable, or None when no client is available
            runner: Command runner used for git
            downloader: Used for archive snapshots
            default_branches: Tried in order when a reference names no branch
        """
        self.git = git
        self.runner = runner
        self.downloader = downloader or HttpDownloader()
        self.default_branches = list(default_branches)

    def _branches(self, ref: RepoReference | None) -> list[str]:
        if ref is not None and ref.branch:
            return [ref.branch]
        return list(self.default_branches)

    async def _clone(self, ctx: RunContext, url: str, target: Path, branch: str | None) -> bool:
        args = ["clone", "--depth", "1"]
        if branch:
            args += ["--branch", branch]
        args += [url, str(target)]
        exit_code = await self.runner(ctx, self.git, args, env=GIT_ENV)
        if exit_code == 0:
            return True
        remove_path(target)
        return False

    async def _download_snapshot(self, ctx: RunContext, ref: RepoReference, branch: str, work: Path) -> Path:
        data = await self.downloader.download(ref.archive_url(branch))
        ctx.raise_if_cancelled()
        return extract_archive(data, work / f"archive-{branch}")

    async def fetch(self, ctx: RunContext, url: str, ref: RepoReference | None) -> Path:
        """Return the root of a local copy of the repository.

        The copy lives in a work area tracked by ``ctx``; callers release it
        with ``ctx.release(root)``.

        Raises:
            SourceFetchError: If no attempt succeeded
            InstallCancelled: If the run was cancelled
        """
        ctx.raise_if_cancelled()
        work = ctx.make_temp_dir("plugin-src-")
        try:
            return await self._fetch(ctx, url, ref, work)
        except BaseException:
            ctx.release(work)
            raise

    async def _fetch(self, ctx: RunContext, url: str, ref: RepoReference | None, work: Path) -> Path:
        branches = self._branches(ref)
        errors: list[str] = []

        if self.git:
            clone_url = ref.clone_url if ref is not None else url.strip()
            target = work / _local_folder_name(url, ref)
            for branch in branches:
                if await self._clone(ctx, clone_url, target, branch):
                    logger.info(f"Cloned {clone_url} ({branch})")
                    return target
                errors.append(f"git clone of branch '{branch}' failed")
            if ref is None or ref.branch is None:
                if await self._clone(ctx, clone_url, target, None):
                    logger.info(f"Cloned {clone_url} (remote default branch)")
                    return target
                errors.append("git clone of the remote default branch failed")

        if ref is None:
            if not self.git:
                errors.append("not a recognized repository URL and git is not available")
            raise SourceFetchError(f"Could not fetch {url}: {'; '.join(errors)}", context={"url": url})

        for branch in branches:
            try:
                root = await self._download_snapshot(ctx, ref, branch, work)
                logger.info(f"Downloaded snapshot of {ref.owner}/{ref.name} ({branch})")
                return root
            except SourceFetchError as e:
                errors.append(e.message)

        raise SourceFetchError(
            f"Could not fetch {ref}: {'; '.join(errors)}",
            context={"url": url, "branches": branches},
        )

    async def fetch_into(self, ctx: RunContext, url: str, target: Path) -> None:
        """Fetch the main repository directly into ``target`` (absent or empty).

        Raises:
            SourceFetchError: If neither clone nor snapshot download worked
        """
        ctx.raise_if_cancelled()
        if target.exists() and not is_empty_dir(target):
            raise SourceFetchError(f"Target directory is not empty: {target}", context={"target": str(target)})

        if self.git:
            if await self._clone(ctx, url, target, None):
                logger.info(f"Cloned {url} into {target}")
                return
            logger.warning(f"git clone of {url} failed, trying archive download")

        ref = parse_repo_reference(url)
        if ref is None:
            raise SourceFetchError(f"Could not fetch main repository {url}", context={"url": url})

        work = ctx.make_temp_dir("main-repo-")
        try:
            errors = []
            for branch in self._branches(ref):
                try:
                    root = await self._download_snapshot(ctx, ref, branch, work)
                except SourceFetchError as e:
                    errors.append(e.message)
                    continue
                move_contents(root, target)
                logger.info(f"Extracted {ref.owner}/{ref.name} ({branch}) into {target}")
                return
            raise SourceFetchError(
                f"Could not fetch main repository {url}: {'; '.join(errors)}",
                context={"url": url},
            )
        finally:
            ctx.release(work)
