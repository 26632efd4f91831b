"""Install orchestration.

Steps, strictly in order:
1. prepare the install directory
2. fetch the main repository into it
3. materialize plugin sources into its plugin folder
4. resolve or provision node and pnpm
5. run the enabled build pipeline stages

A stage failure aborts the run and leaves what was written in place.
Cancellation rolls everything back (see ``context.open_run``).
"""

import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from .config import InstallerSettings
from .context import RunContext
from .context import open_run
from .discovery import discover_installed_plugins
from .exceptions import DestinationError
from .exceptions import PluginInstallError
from .fetch import HttpDownloader
from .fetch import RepositoryFetcher
from .lock import PluginLock
from .materializer import PluginMaterializer
from .pipeline import BuildPipeline
from .pipeline import PipelineOptions
from .pipeline import pipeline_stages
from .process import run_command
from .protocols import CommandRunnerProtocol
from .protocols import DownloaderProtocol
from .protocols import MergeConfirmProtocol
from .schema import InstallSummary
from .schema import MaterializeReport
from .tools import GIT
from .tools import NODE
from .tools import PNPM
from .tools import ToolProvisioner
from .tools import ToolResolver
from .utils import is_empty_dir
from .utils import replace_entry

logger = logging.getLogger(__name__)


class InstallOptions(BaseModel):
    """What the user asked for."""

    model_config = ConfigDict(frozen=True)

    install_dir: Path
    plugin_sources: list[str] = Field(default_factory=list)
    pipeline: PipelineOptions = Field(default_factory=PipelineOptions)
    clean: bool = False
    main_repo_url: str | None = None


def prepare_destination(install_dir: Path, clean: bool = False) -> None:
    """Make sure ``install_dir`` exists and is empty.

    Raises:
        DestinationError: If it holds content and ``clean`` is False, or it
            cannot be created or cleaned
    """
    try:
        if install_dir.exists() and not install_dir.is_dir():
            raise DestinationError(f"{install_dir} exists and is not a directory", context={"path": str(install_dir)})
        if install_dir.is_dir() and not is_empty_dir(install_dir):
            if not clean:
                raise DestinationError(
                    f"{install_dir} is not empty; choose another directory or clean it",
                    context={"path": str(install_dir)},
                )
            logger.info(f"Cleaning {install_dir}")
            for item in install_dir.iterdir():
                replace_entry(item)
        install_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DestinationError(f"Cannot prepare {install_dir}: {e}", context={"path": str(install_dir)}) from e


class Installer:
    """Runs the whole bootstrap for one install directory at a time."""

    def __init__(
        self,
        settings: InstallerSettings | None = None,
        resolver: ToolResolver | None = None,
        confirmer: MergeConfirmProtocol | None = None,
        downloader: DownloaderProtocol | None = None,
        runner: CommandRunnerProtocol = run_command,
        elevated_runner: CommandRunnerProtocol | None = None,
        on_step: Callable[[str], None] | None = None,
    ):
        """Initialize installer with injected policy and collaborators.

        Args:
            settings: Installer settings (default: from environment)
            resolver: Tool resolver carrying user-supplied tool locations
            confirmer: Asked before unstructured merges
            downloader: HTTP downloader shared by every fetch
            runner: Command runner for captured commands
            elevated_runner: Runner for the injection stage
            on_step: Called with each step name as it starts (progress display)
        """
        self.settings = settings or InstallerSettings()
        self.resolver = resolver or ToolResolver()
        self.confirmer = confirmer
        self.downloader = downloader or HttpDownloader(timeout=self.settings.http_timeout)
        self.runner = runner
        self.elevated_runner = elevated_runner
        self.on_step = on_step
        self._ctx: RunContext | None = None

    def cancel(self) -> None:
        """Request cancellation of the current run (no-op when idle)."""
        if self._ctx is not None:
            self._ctx.cancel()

    def planned_steps(self, options: InstallOptions) -> list[str]:
        steps = ["prepare", "fetch", "plugins"]
        stages = pipeline_stages(self.settings, options.pipeline)
        if stages:
            steps.append("tools")
        steps.extend(stage.name for stage in stages)
        return steps

    def _step(self, name: str) -> None:
        if self.on_step is not None:
            self.on_step(name)

    def lock_for(self, install_dir: Path) -> PluginLock:
        return PluginLock(lock_path=install_dir / self.settings.lock_filename)

    def _materializer(self, ctx: RunContext, install_dir: Path) -> PluginMaterializer:
        git = self.resolver.resolve(GIT, ctx)
        if git is None:
            logger.info("Git not found; repositories will be downloaded as archives")
        fetcher = RepositoryFetcher(
            git=str(git) if git else None,
            runner=self.runner,
            downloader=self.downloader,
            default_branches=self.settings.default_branches,
        )
        return PluginMaterializer(
            fetcher=fetcher,
            confirmer=self.confirmer,
            downloader=self.downloader,
            plugin_folder=self.settings.plugin_folder,
            entry_file=self.settings.plugin_entry_file,
            lock=self.lock_for(install_dir),
        )

    async def run(self, options: InstallOptions) -> InstallSummary:
        """
        Run the full install.

        Returns:
            InstallSummary naming the install location and plugin folder

        Raises:
            BootstrapError: If a stage fails (destination, fetch, tools, pipeline)
            InstallCancelled: If cancelled; the install directory has been removed

        Example:
            >>> installer = Installer(confirmer=DeclineMerge())
            >>> summary = await installer.run(InstallOptions(
            ...     install_dir=Path("~/Vencord").expanduser(),
            ...     plugin_sources=["https://github.com/org/my-plugin"],
            ... ))
            >>> print(summary.plugins_dir)
        """
        install_dir = options.install_dir.expanduser().resolve()
        repo_url = options.main_repo_url or self.settings.main_repo_url
        stages = pipeline_stages(self.settings, options.pipeline)

        async with open_run(install_dir, poll_interval=self.settings.poll_interval) as ctx:
            self._ctx = ctx
            try:
                self._step("prepare")
                prepare_destination(install_dir, clean=options.clean)

                self._step("fetch")
                materializer = self._materializer(ctx, install_dir)
                logger.info(f"Fetching {repo_url} into {install_dir}")
                await materializer.fetcher.fetch_into(ctx, repo_url, install_dir)

                self._step("plugins")
                report = await materializer.materialize_all(ctx, options.plugin_sources)

                stages_run: list[str] = []
                if stages:
                    self._step("tools")
                    await self._ensure_tools(ctx, options.pipeline)
                    pipeline = BuildPipeline(stages, runner=self.runner, elevated_runner=self.elevated_runner)
                    stages_run = await pipeline.run(ctx, install_dir, on_stage=self._step)

                ctx.raise_if_cancelled()
                summary = InstallSummary(
                    install_dir=install_dir,
                    plugins_dir=materializer.plugins_dir(install_dir),
                    report=report,
                    stages_run=stages_run,
                )
                logger.info(f"Install complete: {install_dir}")
                return summary
            finally:
                self._ctx = None

    async def _ensure_tools(self, ctx: RunContext, options: PipelineOptions) -> None:
        if options.provision_tools:
            provisioner = ToolProvisioner(
                self.resolver,
                downloader=self.downloader,
                runner=self.runner,
                node_version=self.settings.node_version,
                dist_url=self.settings.node_dist_url,
            )
            await provisioner.ensure_node(ctx)
            await provisioner.ensure_pnpm(ctx)
        else:
            self.resolver.require(NODE, ctx)
            self.resolver.require(PNPM, ctx)

    async def add_plugins(self, install_dir: Path, sources: list[str]) -> MaterializeReport:
        """Materialize plugin sources into an existing install.

        Cancellation discards temporary copies but never deletes the install.

        Raises:
            DestinationError: If ``install_dir`` does not exist
            InstallCancelled: If cancelled
        """
        install_dir = install_dir.expanduser().resolve()
        if not install_dir.is_dir():
            raise DestinationError(f"Install directory not found: {install_dir}", context={"path": str(install_dir)})

        async with open_run(install_dir, poll_interval=self.settings.poll_interval, owns_destination=False) as ctx:
            self._ctx = ctx
            try:
                self._step("plugins")
                materializer = self._materializer(ctx, install_dir)
                return await materializer.materialize_all(ctx, sources)
            finally:
                self._ctx = None


async def remove_plugin(
    plugin_name: str,
    plugins_dir: Path,
    lock: PluginLock | None = None,
) -> None:
    """
    Remove one installed plugin (folder or single file).

    Args:
        plugin_name: Entry name inside the plugin folder
        plugins_dir: Plugin folder of the install
        lock: Optional install record to update

    Raises:
        PluginInstallError: If the plugin is not installed or removal failed

    Example:
        >>> await remove_plugin("alpha", Path("~/Vencord/src/userplugins").expanduser())
    """
    plugins = discover_installed_plugins(plugins_dir)
    plugin_path = next((p for p in [*plugins.folders, *plugins.files] if p.name == plugin_name), None)

    if plugin_path is None:
        raise PluginInstallError(
            f"Plugin '{plugin_name}' not found in {plugins_dir}",
            context={"plugin_name": plugin_name, "plugins_dir": str(plugins_dir)},
        )

    try:
        logger.info(f"Removing plugin: {plugin_name}")
        replace_entry(plugin_path)

        if lock is not None:
            lock.remove_entry(plugin_name)

        logger.info(f"Successfully removed: {plugin_name}")

    except OSError as e:
        raise PluginInstallError(f"Failed to remove plugin '{plugin_name}': {e}") from e


async def run_install(
    options: InstallOptions,
    settings: InstallerSettings | None = None,
    confirmer: MergeConfirmProtocol | None = None,
) -> InstallSummary:
    """
    Run a full install with default collaborators (PATH tools, httpx downloads).

    Example:
        >>> summary = await run_install(InstallOptions(install_dir=Path("~/Vencord").expanduser()))
    """
    return await Installer(settings=settings, confirmer=confirmer).run(options)
