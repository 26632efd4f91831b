"""Data model for plugin sources, classification results and run reports.

Classification is a closed set of variants discriminated on ``kind``; the
materializer dispatches on the variant type, never on which optional fields
happen to be populated.
"""

from pathlib import Path
from typing import Annotated
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

GITHUB_URL = "https://github.com"


class RepoReference(BaseModel):
    """Owner/name/branch of a repository on the code-hosting site."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    branch: str | None = None

    @field_validator("owner", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @property
    def clone_url(self) -> str:
        return f"{GITHUB_URL}/{self.owner}/{self.name}.git"

    def archive_url(self, branch: str) -> str:
        """Snapshot zip for a branch head."""
        return f"{GITHUB_URL}/{self.owner}/{self.name}/archive/refs/heads/{branch}.zip"

    def __str__(self) -> str:
        suffix = f"@{self.branch}" if self.branch else ""
        return f"{self.owner}/{self.name}{suffix}"


class SingleFile(BaseModel):
    """A single raw file placed directly into the plugin folder."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single_file"] = "single_file"
    url: str


class FolderConvention(BaseModel):
    """Repository carrying one subdirectory per plugin under the plugin folder."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["folder_convention"] = "folder_convention"
    repo_root: Path
    plugin_names: list[str] = Field(default_factory=list)


class WholeRepoPlugin(BaseModel):
    """Repository usable in its entirety as one plugin."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["whole_repo"] = "whole_repo"
    repo_root: Path
    plugin_name: str


class UnstructuredMerge(BaseModel):
    """Repository with no recognized layout; overlaid onto the install root if confirmed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unstructured_merge"] = "unstructured_merge"
    repo_root: Path


class Failed(BaseModel):
    """Source could not be classified."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    reason: str


ClassifiedPlugin = Annotated[
    SingleFile | FolderConvention | WholeRepoPlugin | UnstructuredMerge | Failed,
    Field(discriminator="kind"),
]

OutcomeStatus = Literal["placed", "skipped", "failed"]


class SourceOutcome(BaseModel):
    """Result of processing one plugin source (exactly one per non-empty source)."""

    model_config = ConfigDict(frozen=True)

    source: str
    status: OutcomeStatus
    plugin: ClassifiedPlugin | None = None
    placed: list[str] = Field(default_factory=list)
    detail: str = ""


class MaterializeReport(BaseModel):
    """Outcomes of a materialization run, in input order."""

    outcomes: list[SourceOutcome] = Field(default_factory=list)

    def add(self, outcome: SourceOutcome) -> None:
        self.outcomes.append(outcome)

    def _with_status(self, status: OutcomeStatus) -> list[SourceOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def placed(self) -> list[SourceOutcome]:
        return self._with_status("placed")

    @property
    def skipped(self) -> list[SourceOutcome]:
        return self._with_status("skipped")

    @property
    def failed(self) -> list[SourceOutcome]:
        return self._with_status("failed")

    @property
    def plugin_names(self) -> list[str]:
        """Names placed into the plugin folder, in placement order.

        Entries merged into the install root are not plugins and are left out.
        """
        return [
            name
            for outcome in self.placed
            if outcome.plugin is None or outcome.plugin.kind != "unstructured_merge"
            for name in outcome.placed
        ]


class InstallSummary(BaseModel):
    """What a full install run did."""

    model_config = ConfigDict(frozen=True)

    install_dir: Path
    plugins_dir: Path
    report: MaterializeReport = Field(default_factory=MaterializeReport)
    stages_run: list[str] = Field(default_factory=list)
