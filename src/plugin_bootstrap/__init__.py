"""plugin-bootstrap - Fetch a client repository, overlay user plugins, build and inject.

Public API exports. The library is mechanism only: callers inject settings,
tool locations and the merge confirmation policy.
"""

from .config import InstallerSettings
from .context import RunContext
from .context import open_run
from .discovery import InstalledPlugins
from .discovery import discover_installed_plugins
from .discovery import list_plugins
from .exceptions import BootstrapError
from .exceptions import DestinationError
from .exceptions import InstallCancelled
from .exceptions import PipelineStageError
from .exceptions import PluginInstallError
from .exceptions import SourceFetchError
from .exceptions import ToolNotFoundError
from .fetch import HttpDownloader
from .fetch import RepositoryFetcher
from .installer import InstallOptions
from .installer import Installer
from .installer import remove_plugin
from .installer import run_install
from .lock import PluginLock
from .lock import PluginLockEntry
from .materializer import DeclineMerge
from .materializer import PluginMaterializer
from .materializer import classify_repository
from .materializer import materialize_all
from .pipeline import BuildPipeline
from .pipeline import PipelineOptions
from .protocols import CommandRunnerProtocol
from .protocols import DownloaderProtocol
from .protocols import MergeConfirmProtocol
from .protocols import RepositoryFetcherProtocol
from .schema import Failed
from .schema import FolderConvention
from .schema import InstallSummary
from .schema import MaterializeReport
from .schema import RepoReference
from .schema import SingleFile
from .schema import SourceOutcome
from .schema import UnstructuredMerge
from .schema import WholeRepoPlugin
from .tools import ToolProvisioner
from .tools import ToolResolver
from .urls import extract_source_urls
from .urls import parse_repo_reference
from .urls import to_raw_file_url

__all__ = [
    # Configuration
    "InstallerSettings",
    # Run scope
    "RunContext",
    "open_run",
    # Classification model
    "RepoReference",
    "SingleFile",
    "FolderConvention",
    "WholeRepoPlugin",
    "UnstructuredMerge",
    "Failed",
    "SourceOutcome",
    "MaterializeReport",
    "InstallSummary",
    # Materialization
    "PluginMaterializer",
    "DeclineMerge",
    "classify_repository",
    "materialize_all",
    # Fetching
    "HttpDownloader",
    "RepositoryFetcher",
    # Tools and pipeline
    "ToolResolver",
    "ToolProvisioner",
    "BuildPipeline",
    "PipelineOptions",
    # Orchestration
    "Installer",
    "InstallOptions",
    "remove_plugin",
    "run_install",
    # Installed plugins
    "InstalledPlugins",
    "discover_installed_plugins",
    "list_plugins",
    "PluginLock",
    "PluginLockEntry",
    # Protocols
    "CommandRunnerProtocol",
    "DownloaderProtocol",
    "MergeConfirmProtocol",
    "RepositoryFetcherProtocol",
    # Exceptions
    "BootstrapError",
    "DestinationError",
    "InstallCancelled",
    "PipelineStageError",
    "PluginInstallError",
    "SourceFetchError",
    "ToolNotFoundError",
    # URL utilities
    "extract_source_urls",
    "parse_repo_reference",
    "to_raw_file_url",
]

__version__ = "0.1.0"
