"""Plugin source classification and materialization.

Each source is handled independently; one failing source never stops the
others. Classification order for a fetched repository is fixed:

1. folder convention: ``<plugin_folder>/`` with at least one subdirectory
2. whole-repo plugin: root-level entry file (``index.tsx``)
3. unstructured merge: anything else, only after user confirmation
"""

import logging
import shutil
from collections.abc import Sequence
from pathlib import Path

from .config import InstallerSettings
from .context import RunContext
from .context import open_run
from .exceptions import InstallCancelled
from .exceptions import SourceFetchError
from .fetch import HttpDownloader
from .fetch import RepositoryFetcher
from .lock import PluginLock
from .protocols import DownloaderProtocol
from .protocols import MergeConfirmProtocol
from .protocols import RepositoryFetcherProtocol
from .schema import Failed
from .schema import FolderConvention
from .schema import MaterializeReport
from .schema import RepoReference
from .schema import SingleFile
from .schema import SourceOutcome
from .schema import UnstructuredMerge
from .schema import WholeRepoPlugin
from .urls import filename_from_url
from .urls import parse_repo_reference
from .urls import to_raw_file_url
from .utils import copy_tree
from .utils import generated_name
from .utils import overlay_tree
from .utils import replace_entry

logger = logging.getLogger(__name__)

DEFAULT_PLUGIN_FOLDER = "src/userplugins"
DEFAULT_ENTRY_FILE = "index.tsx"


class DeclineMerge:
    """Confirmer that refuses every unstructured merge."""

    async def confirm_merge(self, source: str, repo_root: Path, destination_root: Path) -> bool:
        return False


def classify_repository(
    repo_root: Path,
    ref: RepoReference | None,
    plugin_folder: str = DEFAULT_PLUGIN_FOLDER,
    entry_file: str = DEFAULT_ENTRY_FILE,
    fallback_name: str | None = None,
) -> FolderConvention | WholeRepoPlugin | UnstructuredMerge:
    """Decide how a local repository copy is placed.

    Args:
        repo_root: Root of the fetched repository
        ref: Parsed reference, if the source had one
        plugin_folder: Relative folder holding one subdirectory per plugin
        entry_file: Root-level file marking a whole-repo plugin
        fallback_name: Whole-repo plugin name when ``ref`` is None

    Returns:
        The placement variant; never Failed (fetch failures happen earlier)
    """
    container = repo_root / plugin_folder
    if container.is_dir():
        names = sorted(p.name for p in container.iterdir() if p.is_dir() and not p.name.startswith("."))
        if names:
            return FolderConvention(repo_root=repo_root, plugin_names=names)

    if (repo_root / entry_file).is_file():
        if ref is not None:
            name = ref.name
        else:
            name = fallback_name or generated_name()
        return WholeRepoPlugin(repo_root=repo_root, plugin_name=name)

    return UnstructuredMerge(repo_root=repo_root)


class PluginMaterializer:
    """Turns plugin sources into content inside the install directory."""

    def __init__(
        self,
        fetcher: RepositoryFetcherProtocol,
        confirmer: MergeConfirmProtocol | None = None,
        downloader: DownloaderProtocol | None = None,
        plugin_folder: str = DEFAULT_PLUGIN_FOLDER,
        entry_file: str = DEFAULT_ENTRY_FILE,
        lock: PluginLock | None = None,
    ):
        """Initialize materializer with its collaborators.

        Args:
            fetcher: Produces local repository copies
            confirmer: Asked before an unstructured merge (default: always decline)
            downloader: Fetches single raw files
            plugin_folder: Plugin folder relative to the install root and to repositories
            entry_file: Whole-repo plugin marker
            lock: Optional install record updated on every placement
        """
        self.fetcher = fetcher
        self.confirmer = confirmer or DeclineMerge()
        self.downloader = downloader or HttpDownloader()
        self.plugin_folder = plugin_folder
        self.entry_file = entry_file
        self.lock = lock
        self._placed_by: dict[str, str] = {}

    def plugins_dir(self, destination_root: Path) -> Path:
        return destination_root / self.plugin_folder

    async def materialize_all(self, ctx: RunContext, sources: Sequence[str]) -> MaterializeReport:
        """Process every non-empty source into ``ctx.destination_root``.

        Returns:
            Report with exactly one outcome per non-empty source, in order

        Raises:
            InstallCancelled: If the run is cancelled (nothing else propagates)
        """
        report = MaterializeReport()
        self._placed_by = {}
        pending = [s.strip() for s in sources if s and s.strip()]
        if not pending:
            logger.info("No plugin sources given")
            return report

        self.plugins_dir(ctx.destination_root).mkdir(parents=True, exist_ok=True)
        for index, source in enumerate(pending, start=1):
            ctx.raise_if_cancelled()
            logger.info(f"Plugin source {index}/{len(pending)}: {source}")
            outcome = await self.materialize_source(ctx, source)
            report.add(outcome)

        logger.info(
            f"Plugins: {len(report.placed)} placed, {len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report

    async def materialize_source(self, ctx: RunContext, source: str) -> SourceOutcome:
        """Classify and place one source; failures become a ``failed`` outcome."""
        try:
            outcome = await self._materialize(ctx, source)
        except InstallCancelled:
            raise
        except Exception as e:
            logger.warning(f"Failed to install plugin from {source}: {e}")
            return SourceOutcome(source=source, status="failed", plugin=Failed(reason=str(e)), detail=str(e))

        if outcome.status == "placed":
            logger.info(f"Installed from {source}: {', '.join(outcome.placed)}")
        elif outcome.status == "skipped":
            logger.warning(f"Skipped {source}: {outcome.detail}")
        else:
            logger.warning(f"Failed to install plugin from {source}: {outcome.detail}")
        return outcome

    async def _materialize(self, ctx: RunContext, source: str) -> SourceOutcome:
        raw_url = to_raw_file_url(source)
        if raw_url is not None:
            return await self._place_single_file(ctx, source, SingleFile(url=raw_url))

        ref = parse_repo_reference(source)
        try:
            repo_root = await self.fetcher.fetch(ctx, source, ref)
        except SourceFetchError as e:
            return SourceOutcome(source=source, status="failed", plugin=Failed(reason=e.message), detail=e.message)

        try:
            # A folder that is itself the work area has a random temp name
            fallback = None if ctx.owner_of(repo_root) == repo_root else repo_root.name
            plugin = classify_repository(repo_root, ref, self.plugin_folder, self.entry_file, fallback)
            logger.debug(f"{source} classified as {plugin.kind}")

            if isinstance(plugin, FolderConvention):
                return self._place_folder_convention(ctx, source, plugin)
            if isinstance(plugin, WholeRepoPlugin):
                return self._place_whole_repo(ctx, source, plugin)
            return await self._merge_unstructured(ctx, source, plugin)
        finally:
            ctx.release(repo_root)

    def _claim(self, name: str, source: str) -> None:
        previous = self._placed_by.get(name)
        if previous is not None and previous != source:
            logger.warning(f"Plugin '{name}' from {source} replaces the one installed from {previous} in this run")
        self._placed_by[name] = source

    def _record(self, name: str, source: str, kind: str, path: Path) -> None:
        if self.lock is not None:
            self.lock.add_entry(name=name, source=source, kind=kind, path=path)

    async def _place_single_file(self, ctx: RunContext, source: str, plugin: SingleFile) -> SourceOutcome:
        data = await self.downloader.download(plugin.url)
        ctx.raise_if_cancelled()

        name = filename_from_url(plugin.url) or generated_name(suffix=".tsx")
        target = self.plugins_dir(ctx.destination_root) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        replace_entry(target)
        target.write_bytes(data)

        self._claim(name, source)
        self._record(name, source, plugin.kind, target)
        return SourceOutcome(source=source, status="placed", plugin=plugin, placed=[name], detail=str(target))

    def _place_folder_convention(self, ctx: RunContext, source: str, plugin: FolderConvention) -> SourceOutcome:
        plugins_dir = self.plugins_dir(ctx.destination_root)
        container = plugin.repo_root / self.plugin_folder
        for name in plugin.plugin_names:
            ctx.raise_if_cancelled()
            target = plugins_dir / name
            copy_tree(container / name, target)
            self._claim(name, source)
            self._record(name, source, plugin.kind, target)
            logger.debug(f"Copied plugin folder {name} to {target}")

        return SourceOutcome(
            source=source,
            status="placed",
            plugin=plugin,
            placed=list(plugin.plugin_names),
            detail=f"{len(plugin.plugin_names)} plugin folder(s)",
        )

    def _place_whole_repo(self, ctx: RunContext, source: str, plugin: WholeRepoPlugin) -> SourceOutcome:
        target = self.plugins_dir(ctx.destination_root) / plugin.plugin_name
        copy_tree(plugin.repo_root, target)
        self._claim(plugin.plugin_name, source)
        self._record(plugin.plugin_name, source, plugin.kind, target)
        return SourceOutcome(source=source, status="placed", plugin=plugin, placed=[plugin.plugin_name], detail=str(target))

    async def _merge_unstructured(self, ctx: RunContext, source: str, plugin: UnstructuredMerge) -> SourceOutcome:
        logger.info(f"{source} has no {self.plugin_folder}/ folder and no {self.entry_file}; asking before merging")
        confirmed = await self.confirmer.confirm_merge(source, plugin.repo_root, ctx.destination_root)
        ctx.raise_if_cancelled()

        if not confirmed:
            return SourceOutcome(source=source, status="skipped", plugin=plugin, detail="merge declined by user")

        written = overlay_tree(plugin.repo_root, ctx.destination_root)
        logger.info(f"Merged {len(written)} entries from {source} into {ctx.destination_root}")
        return SourceOutcome(
            source=source,
            status="placed",
            plugin=plugin,
            placed=written,
            detail=f"merged into {ctx.destination_root}",
        )


async def materialize_all(
    destination_root: Path,
    sources: Sequence[str],
    confirmer: MergeConfirmProtocol | None = None,
    fetcher: RepositoryFetcherProtocol | None = None,
    downloader: DownloaderProtocol | None = None,
    settings: InstallerSettings | None = None,
    lock: PluginLock | None = None,
) -> MaterializeReport:
    """Materialize sources into ``destination_root`` within a fresh run.

    Example:
        >>> report = await materialize_all(
        ...     Path("~/Vencord").expanduser(),
        ...     ["https://github.com/org/my-plugin"],
        ... )
        >>> print([o.status for o in report.outcomes])
    """
    settings = settings or InstallerSettings()
    downloader = downloader or HttpDownloader(timeout=settings.http_timeout)
    if fetcher is None:
        fetcher = RepositoryFetcher(
            git=shutil.which("git"),
            downloader=downloader,
            default_branches=settings.default_branches,
        )

    materializer = PluginMaterializer(
        fetcher=fetcher,
        confirmer=confirmer,
        downloader=downloader,
        plugin_folder=settings.plugin_folder,
        entry_file=settings.plugin_entry_file,
        lock=lock,
    )
    async with open_run(destination_root, poll_interval=settings.poll_interval) as ctx:
        return await materializer.materialize_all(ctx, sources)
