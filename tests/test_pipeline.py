"""Tests for the fixed build pipeline."""

import tempfile
from pathlib import Path

import pytest
from plugin_bootstrap import BuildPipeline
from plugin_bootstrap import InstallCancelled
from plugin_bootstrap import InstallerSettings
from plugin_bootstrap import PipelineOptions
from plugin_bootstrap import PipelineStageError
from plugin_bootstrap import RunContext
from plugin_bootstrap.pipeline import PipelineStage
from plugin_bootstrap.pipeline import pipeline_stages
from pydantic import ValidationError


class RecordingRunner:
    """Command runner returning canned exit codes per command name."""

    def __init__(self, exit_codes: dict[str, int] | None = None, on_call=None):
        self.exit_codes = exit_codes or {}
        self.on_call = on_call
        self.calls: list[tuple[list[str], Path | None]] = []

    async def __call__(self, ctx, command, args, cwd=None, on_output=None, env=None) -> int:
        self.calls.append(([command, *args], cwd))
        if self.on_call is not None:
            self.on_call(ctx)
        return self.exit_codes.get(args[0] if args else command, 0)


def test_stages_in_fixed_order():
    stages = pipeline_stages(InstallerSettings(), PipelineOptions())

    assert [s.name for s in stages] == ["install", "build", "inject"]
    assert [s.elevated for s in stages] == [False, False, True]
    assert stages[0].command == ["pnpm", "install", "--frozen-lockfile"]


def test_disabled_stages_are_dropped():
    stages = pipeline_stages(InstallerSettings(), PipelineOptions(install_dependencies=False, inject=False))

    assert [s.name for s in stages] == ["build"]
    assert pipeline_stages(InstallerSettings(), PipelineOptions(install_dependencies=False, build=False, inject=False)) == []


def test_stage_commands_from_settings():
    settings = InstallerSettings(build_command=["pnpm", "run", "buildWeb"])

    stages = pipeline_stages(settings, PipelineOptions(install_dependencies=False, inject=False))

    assert stages[0].command == ["pnpm", "run", "buildWeb"]


def test_stage_requires_command():
    with pytest.raises(ValidationError):
        PipelineStage(name="build", command=[])


@pytest.mark.asyncio
async def test_run_executes_stages_in_repo_root():
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_root = Path(tmpdir)
        runner = RecordingRunner()
        elevated = RecordingRunner()
        started = []
        pipeline = BuildPipeline(
            pipeline_stages(InstallerSettings(), PipelineOptions()),
            runner=runner,
            elevated_runner=elevated,
        )

        completed = await pipeline.run(RunContext(repo_root), repo_root, on_stage=started.append)

        assert completed == ["install", "build", "inject"]
        assert started == completed
        assert runner.calls == [
            (["pnpm", "install", "--frozen-lockfile"], repo_root),
            (["pnpm", "build"], repo_root),
        ]
        assert elevated.calls == [(["pnpm", "inject"], repo_root)]


@pytest.mark.asyncio
async def test_failure_stops_pipeline():
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_root = Path(tmpdir)
        runner = RecordingRunner(exit_codes={"build": 2})
        elevated = RecordingRunner()
        pipeline = BuildPipeline(
            pipeline_stages(InstallerSettings(), PipelineOptions()),
            runner=runner,
            elevated_runner=elevated,
        )

        with pytest.raises(PipelineStageError) as exc_info:
            await pipeline.run(RunContext(repo_root), repo_root)

        assert exc_info.value.stage == "build"
        assert exc_info.value.exit_code == 2
        assert exc_info.value.context == {"stage": "build", "exit_code": 2}
        assert elevated.calls == []


@pytest.mark.asyncio
async def test_cancel_between_stages():
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_root = Path(tmpdir)
        runner = RecordingRunner(on_call=lambda ctx: ctx.cancel())
        pipeline = BuildPipeline(
            pipeline_stages(InstallerSettings(), PipelineOptions()),
            runner=runner,
            elevated_runner=RecordingRunner(),
        )

        with pytest.raises(InstallCancelled):
            await pipeline.run(RunContext(repo_root), repo_root)

        assert len(runner.calls) == 1
