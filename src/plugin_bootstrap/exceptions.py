"""Bootstrap-specific exceptions.

Every failure carries a human-readable message plus a context dict so the
front-end can log details without parsing strings.
"""


class BootstrapError(Exception):
    """Base exception for bootstrap operations."""

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (paths, URLs, exit codes)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class SourceFetchError(BootstrapError):
    """Repository or file could not be fetched."""


class PluginInstallError(BootstrapError):
    """Plugin placement or removal failed."""


class DestinationError(BootstrapError):
    """Install directory could not be created or cleaned."""


class ToolNotFoundError(BootstrapError):
    """Required developer tool is not available."""


class PipelineStageError(BootstrapError):
    """A build pipeline stage exited unsuccessfully."""

    def __init__(self, stage: str, exit_code: int, message: str | None = None):
        super().__init__(
            message or f"Stage '{stage}' failed with exit code {exit_code}",
            context={"stage": stage, "exit_code": exit_code},
        )
        self.stage = stage
        self.exit_code = exit_code


class InstallCancelled(Exception):
    """The user cancelled the run.

    Not a BootstrapError: per-source and stage error handlers must never
    swallow it.
    """

    def __init__(self, message: str = "Installation cancelled"):
        super().__init__(message)
        self.message = message
