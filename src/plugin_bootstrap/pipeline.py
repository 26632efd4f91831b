"""Fixed build pipeline: dependency install, build, injection.

Stages always run in this order in the repository root; options only switch
stages off. The injection stage needs elevated privileges and runs in its own
interactive session instead of being captured.
"""

import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from .config import InstallerSettings
from .context import RunContext
from .exceptions import PipelineStageError
from .process import launch_elevated
from .process import run_command
from .protocols import CommandRunnerProtocol

logger = logging.getLogger(__name__)


class PipelineOptions(BaseModel):
    """Which stages run."""

    model_config = ConfigDict(frozen=True)

    provision_tools: bool = True
    install_dependencies: bool = True
    build: bool = True
    inject: bool = True


class PipelineStage(BaseModel):
    """One command of the pipeline."""

    model_config = ConfigDict(frozen=True)

    name: str
    command: list[str] = Field(min_length=1)
    elevated: bool = False


def pipeline_stages(settings: InstallerSettings, options: PipelineOptions) -> list[PipelineStage]:
    """Enabled stages, in fixed order."""
    stages = []
    if options.install_dependencies:
        stages.append(PipelineStage(name="install", command=settings.install_command))
    if options.build:
        stages.append(PipelineStage(name="build", command=settings.build_command))
    if options.inject:
        stages.append(PipelineStage(name="inject", command=settings.inject_command, elevated=True))
    return stages


class BuildPipeline:
    """Runs pipeline stages one at a time, aborting on the first failure."""

    def __init__(
        self,
        stages: list[PipelineStage],
        runner: CommandRunnerProtocol = run_command,
        elevated_runner: CommandRunnerProtocol | None = None,
    ):
        self.stages = stages
        self.runner = runner
        self.elevated_runner = elevated_runner or _elevated

    async def run(
        self,
        ctx: RunContext,
        repo_root: Path,
        on_stage: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Run every stage in ``repo_root``.

        Returns:
            Names of the stages that ran

        Raises:
            PipelineStageError: On the first non-zero exit
            InstallCancelled: If cancelled during or between stages
        """
        completed = []
        for stage in self.stages:
            ctx.raise_if_cancelled()
            if on_stage is not None:
                on_stage(stage.name)
            logger.info(f"Stage '{stage.name}': {' '.join(stage.command)}")

            runner = self.elevated_runner if stage.elevated else self.runner
            command, *args = stage.command
            exit_code = await runner(ctx, command, args, cwd=repo_root)
            if exit_code != 0:
                logger.error(f"Stage '{stage.name}' failed with exit code {exit_code}")
                raise PipelineStageError(stage.name, exit_code)

            completed.append(stage.name)
        return completed


async def _elevated(ctx, command, args, cwd=None, on_output=None, env=None) -> int:
    return await launch_elevated(ctx, command, args, cwd=cwd)
