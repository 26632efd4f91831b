"""Installer settings.

Precedence: explicit overrides > env vars (``PLUGIN_BOOTSTRAP_*``) > .env file > defaults.

Library classes never read the environment themselves; the front-end builds
one ``InstallerSettings`` and injects it.
"""

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class InstallerSettings(BaseSettings):
    """Installer configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PLUGIN_BOOTSTRAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    main_repo_url: str = Field(
        default="https://github.com/Vendicated/Vencord",
        description="Repository cloned into the install directory",
    )
    plugin_folder: str = Field(
        default="src/userplugins",
        description="Plugin folder, relative to both the install root and plugin repositories",
    )
    plugin_entry_file: str = Field(
        default="index.tsx",
        description="Root-level file marking a repository as a single plugin",
    )
    default_branches: list[str] = Field(
        default_factory=lambda: ["main", "master"],
        description="Branches tried in order when a source names none",
    )
    poll_interval: float = Field(default=0.1, gt=0, description="Seconds between process/cancel polls")
    http_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")

    install_command: list[str] = Field(default_factory=lambda: ["pnpm", "install", "--frozen-lockfile"])
    build_command: list[str] = Field(default_factory=lambda: ["pnpm", "build"])
    inject_command: list[str] = Field(default_factory=lambda: ["pnpm", "inject"])

    node_version: str = Field(default="20.18.0", description="Portable Node.js release to provision")
    node_dist_url: str = Field(default="https://nodejs.org/dist")
    lock_filename: str = Field(default=".plugin-bootstrap.lock")
