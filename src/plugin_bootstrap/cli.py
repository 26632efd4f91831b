"""Command-line front-end.

The log view is a timestamped rich log, the progress indicator follows the
install steps, and Ctrl+C cancels the running install (rolling it back).

Usage:
    plugin-bootstrap install ~/Vencord -p https://github.com/org/my-plugin
    plugin-bootstrap add ~/Vencord -f plugins.txt
    plugin-bootstrap list ~/Vencord
    plugin-bootstrap remove ~/Vencord my-plugin
"""

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn
from rich.progress import MofNCompleteColumn
from rich.progress import Progress
from rich.progress import SpinnerColumn
from rich.progress import TextColumn
from rich.prompt import Confirm
from rich.table import Table

from . import __version__
from .config import InstallerSettings
from .discovery import discover_installed_plugins
from .exceptions import BootstrapError
from .exceptions import InstallCancelled
from .installer import InstallOptions
from .installer import Installer
from .installer import remove_plugin
from .pipeline import PipelineOptions
from .schema import MaterializeReport
from .tools import ToolResolver
from .urls import extract_source_urls

T = TypeVar("T")

EXIT_CANCELLED = 130

STEP_LABELS = {
    "prepare": "Preparing install directory",
    "fetch": "Fetching main repository",
    "plugins": "Installing plugins",
    "tools": "Checking developer tools",
    "install": "Installing dependencies",
    "build": "Building",
    "inject": "Injecting (elevated)",
}

console = Console()
app = typer.Typer(
    name="plugin-bootstrap",
    help="Fetch a client repository, add user plugins, build and inject it.",
    no_args_is_help=True,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False, rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def collect_sources(plugins: list[str] | None, plugins_file: Path | None) -> list[str]:
    """Plugin source URLs from repeated ``--plugins`` text and an optional file (``-`` = stdin)."""
    chunks = list(plugins or [])
    if plugins_file is not None:
        if str(plugins_file) == "-":
            chunks.append(sys.stdin.read())
        else:
            try:
                chunks.append(plugins_file.read_text(encoding="utf-8"))
            except OSError as e:
                console.print(f"[red]Cannot read {plugins_file}: {e}[/red]")
                raise typer.Exit(1) from e
    return extract_source_urls("\n".join(chunks))


class StepProgress:
    """Progress bar over install steps."""

    def __init__(self, steps: list[str]):
        self.steps = steps
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        )
        self.task = self.progress.add_task("Starting", total=len(steps))
        self._started = 0

    def __enter__(self) -> "StepProgress":
        self.progress.start()
        return self

    def __exit__(self, *exc) -> None:
        self.progress.stop()

    def on_step(self, name: str) -> None:
        if self._started:
            self.progress.advance(self.task)
        self._started += 1
        self.progress.update(self.task, description=STEP_LABELS.get(name, name))

    def pause(self) -> None:
        self.progress.stop()

    def resume(self) -> None:
        self.progress.start()


class ConsoleMergeConfirmer:
    """Asks on the terminal before overlaying an unstructured repository."""

    def __init__(self, assume_yes: bool = False, progress: StepProgress | None = None):
        self.assume_yes = assume_yes
        self.progress = progress

    async def confirm_merge(self, source: str, repo_root: Path, destination_root: Path) -> bool:
        if self.assume_yes:
            return True
        question = (
            f"{source} has no plugin folder and no entry file.\n"
            f"Merge its whole content into {destination_root}? Existing files with the same names are overwritten."
        )
        if self.progress is not None:
            self.progress.pause()
        try:
            return await asyncio.to_thread(Confirm.ask, question, console=console, default=False)
        finally:
            if self.progress is not None:
                self.progress.resume()


async def _with_cancel(installer: Installer, work: Callable[[], Awaitable[T]]) -> T:
    loop = asyncio.get_running_loop()
    installed = False
    with suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, installer.cancel)
        installed = True
    try:
        return await work()
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _print_report(report: MaterializeReport) -> None:
    if not report.outcomes:
        return
    table = Table(title="Plugin sources")
    table.add_column("Source", overflow="fold")
    table.add_column("Result")
    table.add_column("Details", overflow="fold")
    styles = {"placed": "green", "skipped": "yellow", "failed": "red"}
    for outcome in report.outcomes:
        details = ", ".join(outcome.placed) if outcome.status == "placed" else outcome.detail
        table.add_row(outcome.source, f"[{styles[outcome.status]}]{outcome.status}[/]", details)
    console.print(table)


def _fail(message: str) -> None:
    console.print(Panel(message, title="Error", border_style="red"))
    raise typer.Exit(1)


def _cancelled(install_dir: Path, rolled_back: bool) -> None:
    detail = f"\n{install_dir} was removed." if rolled_back else ""
    console.print(Panel(f"Installation cancelled.{detail}", title="Cancelled", border_style="yellow"))
    raise typer.Exit(EXIT_CANCELLED)


def _tool_overrides(git: Path | None, node: Path | None, pnpm: Path | None) -> dict[str, Path]:
    candidates = {"git": git, "node": node, "pnpm": pnpm}
    return {key: path for key, path in candidates.items() if path is not None}


@app.callback(invoke_without_command=True)
def main_callback(
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
):
    if version:
        console.print(f"plugin-bootstrap {__version__}")
        raise typer.Exit(0)


@app.command()
def install(
    install_dir: Path = typer.Argument(Path("Vencord"), help="Where to install"),
    plugins: list[str] | None = typer.Option(
        None, "--plugins", "-p", help="Plugin URLs, one per line or pasted text (repeatable)"
    ),
    plugins_file: Path | None = typer.Option(None, "--plugins-file", "-f", help="File with plugin URLs ('-' for stdin)"),
    repo: str | None = typer.Option(None, "--repo", help="Main repository URL"),
    no_install: bool = typer.Option(False, "--no-install", help="Skip dependency install"),
    no_build: bool = typer.Option(False, "--no-build", help="Skip build"),
    no_inject: bool = typer.Option(False, "--no-inject", help="Skip injection"),
    no_provision: bool = typer.Option(False, "--no-provision", help="Never download node or install pnpm"),
    git: Path | None = typer.Option(None, "--git", help="Git executable or directory to search"),
    node: Path | None = typer.Option(None, "--node", help="Node.js executable or directory to search"),
    pnpm: Path | None = typer.Option(None, "--pnpm", help="pnpm executable or directory to search"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Merge unstructured repositories without asking"),
    clean: bool = typer.Option(False, "--clean", help="Empty a non-empty install directory first"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Fetch the main repository, add plugins, provision tools and build."""
    _configure_logging(verbose)
    sources = collect_sources(plugins, plugins_file)
    options = InstallOptions(
        install_dir=install_dir,
        plugin_sources=sources,
        pipeline=PipelineOptions(
            provision_tools=not no_provision,
            install_dependencies=not no_install,
            build=not no_build,
            inject=not no_inject,
        ),
        clean=clean,
        main_repo_url=repo,
    )

    installer = Installer(settings=InstallerSettings(), resolver=ToolResolver(_tool_overrides(git, node, pnpm)))
    with StepProgress(installer.planned_steps(options)) as progress:
        installer.on_step = progress.on_step
        installer.confirmer = ConsoleMergeConfirmer(assume_yes=yes, progress=progress)
        error = None
        try:
            summary = asyncio.run(_with_cancel(installer, lambda: installer.run(options)))
        except (InstallCancelled, KeyboardInterrupt):
            summary = None
        except BootstrapError as e:
            summary, error = None, e

    if error is not None:
        _fail(error.message)
    elif summary is None:
        _cancelled(install_dir, rolled_back=True)
    else:
        _print_report(summary.report)
        console.print(
            Panel(
                f"Installed to {summary.install_dir}\nPlugin folder: {summary.plugins_dir}\n"
                f"Stages run: {', '.join(summary.stages_run) or 'none'}",
                title="Done",
                border_style="green",
            )
        )


@app.command()
def add(
    install_dir: Path = typer.Argument(..., help="Existing install directory"),
    plugins: list[str] | None = typer.Option(None, "--plugins", "-p", help="Plugin URLs (repeatable)"),
    plugins_file: Path | None = typer.Option(None, "--plugins-file", "-f", help="File with plugin URLs ('-' for stdin)"),
    git: Path | None = typer.Option(None, "--git", help="Git executable or directory to search"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Merge unstructured repositories without asking"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Add plugins to an existing install without rebuilding."""
    _configure_logging(verbose)
    sources = collect_sources(plugins, plugins_file)
    if not sources:
        _fail("No plugin URLs found in the given text.")

    installer = Installer(settings=InstallerSettings(), resolver=ToolResolver(_tool_overrides(git, None, None)))
    with StepProgress(["plugins"]) as progress:
        installer.on_step = progress.on_step
        installer.confirmer = ConsoleMergeConfirmer(assume_yes=yes, progress=progress)
        error = None
        try:
            report = asyncio.run(_with_cancel(installer, lambda: installer.add_plugins(install_dir, sources)))
        except (InstallCancelled, KeyboardInterrupt):
            report = None
        except BootstrapError as e:
            report, error = None, e

    if error is not None:
        _fail(error.message)
    elif report is None:
        _cancelled(install_dir, rolled_back=False)
    else:
        _print_report(report)


@app.command(name="list")
def list_command(
    install_dir: Path = typer.Argument(..., help="Install directory"),
):
    """List plugins in the install's plugin folder."""
    settings = InstallerSettings()
    plugins_dir = install_dir / settings.plugin_folder
    installed = discover_installed_plugins(plugins_dir)
    if not installed.has_plugins():
        console.print(f"No plugins in {plugins_dir}")
        return

    lock = Installer(settings=settings).lock_for(install_dir)
    table = Table(title=str(plugins_dir))
    table.add_column("Plugin")
    table.add_column("Source", overflow="fold")
    for name in installed.names:
        entry = lock.get_entry(name)
        table.add_row(name, entry.source if entry else "[dim]unknown[/dim]")
    console.print(table)


@app.command()
def remove(
    install_dir: Path = typer.Argument(..., help="Install directory"),
    name: str = typer.Argument(..., help="Plugin folder or file name"),
):
    """Remove one plugin from the install."""
    _configure_logging(False)
    settings = InstallerSettings()
    installer = Installer(settings=settings)
    try:
        asyncio.run(remove_plugin(name, install_dir / settings.plugin_folder, lock=installer.lock_for(install_dir)))
    except BootstrapError as e:
        _fail(e.message)
    console.print(f"Removed {name}")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
