"""
netforge.models - Pydantic Models for Repository Configuration
==============================================================

This module defines the data models used throughout netforge. Pydantic gives
us validation of user input, a stable JSON round trip for the configuration
file, and self-documenting fields.

Architecture Notes
------------------
The models are organized around one persistent record and a few transient
ones:

    ForgeConfig (persistent, config.json)
    ├── Visibility (enum)
    └── License (enum)

    RepositorySpec (per invocation)
    ├── Platform (enum)
    ├── Visibility | None
    └── License | None

    ProvisionResult (dataclass, outcome of a pipeline run)

The configuration file uses PascalCase keys (``GitHubOrganization``,
``WSLPath``...). Field aliases keep that on-disk format while the Python
side uses snake_case attributes.

Usage Example
-------------
>>> from netforge.models import ForgeConfig, RepositorySpec
>>> config = ForgeConfig(GitHubOrganization="acme", CompanyName="Acme")
>>> RepositorySpec(name="smart-enums").package_id(config.company_name)
'Acme.smart-enums'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enumerations
# =============================================================================

class Platform(str, Enum):
    """
    Hosting platform for a new repository.

    Attributes
    ----------
    GITHUB : str
        GitHub repository created with the ``gh`` CLI, built by GitHub
        Actions and published to GitHub Packages / NuGet.org.

    AZURE : str
        Azure DevOps repository created with ``az repos``, built by Azure
        Pipelines and published to an Azure Artifacts feed.
    """

    GITHUB = "github"
    AZURE = "azure"

    @property
    def description(self) -> str:
        """Human-readable name for prompts."""
        descriptions = {
            Platform.GITHUB: "GitHub",
            Platform.AZURE: "Azure DevOps",
        }
        return descriptions[self]


class Visibility(str, Enum):
    """Repository visibility."""

    PRIVATE = "private"
    PUBLIC = "public"

    @property
    def gh_flag(self) -> str:
        """
        Flag for ``gh repo create``.

        Returns
        -------
        str
            ``--private`` or ``--public``.
        """
        return f"--{self.value}"

    @property
    def description(self) -> str:
        descriptions = {
            Visibility.PRIVATE: "Private (recommended for internal projects)",
            Visibility.PUBLIC: "Public (for open source projects)",
        }
        return descriptions[self]


class License(str, Enum):
    """
    Licenses offered for new repositories.

    The value is the SPDX identifier, which is what both ``gh repo create
    --license`` and ``<PackageLicenseExpression>`` expect.
    """

    APACHE2 = "Apache-2.0"
    MIT = "MIT"

    @property
    def spdx_id(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        descriptions = {
            License.APACHE2: "Apache-2.0 (recommended for business)",
            License.MIT: "MIT (simple permissive)",
        }
        return descriptions[self]


class EnvironmentKind(str, Enum):
    """Host environment netforge is running in."""

    WSL = "wsl"
    LINUX = "linux"
    WINDOWS = "windows"
    MACOS = "macos"


# =============================================================================
# Persistent Configuration
# =============================================================================

# Git ref names: no spaces, no "..", no leading "-", none of ~^:?*[\
_BRANCH_PATTERN = re.compile(r"^(?!-)(?!.*\.\.)[^\s~^:?*\[\\]+$")


class ForgeConfig(BaseModel):
    """
    The configuration record stored in ``config.json``.

    It is loaded at process start, optionally completed interactively and
    rewritten in full. GitHub and Azure DevOps flows share the file; each
    flow only requires its own subset of values (see
    ``missing_github_fields`` and ``missing_azure_fields``).

    Attributes
    ----------
    github_organization : str
        GitHub organization (or user) that owns the repositories.

    company_name : str
        Company name used in package ids, copyright and NuGet source mapping.

    wsl_path : str
        Directory repositories are cloned into (Linux / WSL side).

    windows_path : str
        Same directory seen from Windows (informational).

    linux_path : str | None
        Clone directory on plain Linux; falls back to ``wsl_path``.

    default_branch : str
        Branch every repository is moved to (``master`` by default).

    repository_visibility : Visibility
        Visibility used when a repository is created.

    default_license : License
        License used unless overridden per repository.

    azure_organization, azure_project : str | None
        Azure DevOps organization and project.

    artifact_feed : str
        Azure Artifacts feed packages are pushed to.

    script_path : str | None
        Where the config was written from (informational).

    last_updated : str | None
        ``YYYY-mm-dd HH:MM:SS`` timestamp of the last save.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    github_organization: str = Field(default="", alias="GitHubOrganization")
    company_name: str = Field(default="", alias="CompanyName")
    wsl_path: str = Field(default="", alias="WSLPath")
    windows_path: str = Field(default="", alias="WindowsPath")
    linux_path: str | None = Field(default=None, alias="LinuxPath")
    default_branch: str = Field(default="master", alias="DefaultBranch")
    repository_visibility: Visibility = Field(
        default=Visibility.PRIVATE,
        alias="RepositoryVisibility",
    )
    default_license: License = Field(default=License.APACHE2, alias="DefaultLicense")
    azure_organization: str | None = Field(default=None, alias="AzureOrganization")
    azure_project: str | None = Field(default=None, alias="AzureProject")
    artifact_feed: str = Field(default="dotnet-packages", alias="ArtifactFeed")
    script_path: str | None = Field(default=None, alias="ScriptPath")
    last_updated: str | None = Field(default=None, alias="LastUpdated")

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_default_path(cls, data: Any) -> Any:
        """Older setup runs stored the clone directory as ``DefaultPath``."""
        if isinstance(data, dict) and "DefaultPath" in data:
            data = dict(data)
            legacy = data.pop("DefaultPath")
            if not data.get("WSLPath") and not data.get("wsl_path"):
                data["WSLPath"] = legacy
        return data

    @field_validator(
        "github_organization", "company_name", "wsl_path", "windows_path",
        "default_branch", "artifact_feed",
    )
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

    @field_validator("default_branch")
    @classmethod
    def validate_branch(cls, v: str) -> str:
        """
        Reject values git would not accept as a branch name.

        Raises
        ------
        ValueError
            If the name is empty or contains forbidden characters.
        """
        if not v or not _BRANCH_PATTERN.match(v) or v.endswith((".lock", "/", ".")):
            msg = f"Invalid branch name '{v}'"
            raise ValueError(msg)
        return v

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def azure_org_url(self) -> str:
        return f"https://dev.azure.com/{self.azure_organization}"

    @property
    def github_packages_url(self) -> str:
        return f"https://nuget.pkg.github.com/{self.github_organization}/index.json"

    @property
    def artifact_feed_url(self) -> str:
        return (
            f"https://pkgs.dev.azure.com/{self.azure_organization}/"
            f"{self.azure_project}/_packaging/{self.artifact_feed}/nuget/v3/index.json"
        )

    def missing_github_fields(self) -> list[str]:
        """
        Names (JSON keys) of required GitHub values that are empty.

        Returns
        -------
        list[str]
            Empty when the config is usable for the GitHub flow.
        """
        required = {
            "GitHubOrganization": self.github_organization,
            "CompanyName": self.company_name,
            "WSLPath": self.wsl_path,
        }
        return [key for key, value in required.items() if not value]

    def missing_azure_fields(self) -> list[str]:
        """Names (JSON keys) of required Azure DevOps values that are empty."""
        required = {
            "AzureOrganization": self.azure_organization,
            "AzureProject": self.azure_project,
            "CompanyName": self.company_name,
            "WSLPath": self.wsl_path or self.linux_path,
        }
        return [key for key, value in required.items() if not value]

    def missing_fields(self, platform: Platform) -> list[str]:
        if platform == Platform.AZURE:
            return self.missing_azure_fields()
        return self.missing_github_fields()

    def repository_root(self, kind: EnvironmentKind) -> Path:
        """
        Directory new repositories are cloned into for this host.

        Parameters
        ----------
        kind : EnvironmentKind
            Detected host environment.

        Returns
        -------
        Path
            ``WindowsPath`` on Windows, ``WSLPath`` under WSL and
            ``LinuxPath`` (falling back to ``WSLPath``) elsewhere.
        """
        if kind == EnvironmentKind.WINDOWS and self.windows_path:
            return Path(self.windows_path)
        if kind in {EnvironmentKind.LINUX, EnvironmentKind.MACOS} and self.linux_path:
            return Path(self.linux_path)
        return Path(self.wsl_path or self.linux_path or ".")

    def to_json_dict(self) -> dict[str, Any]:
        """All fields keyed by their on-disk (PascalCase) names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Per-Invocation Models
# =============================================================================

_REPO_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")


class RepositorySpec(BaseModel):
    """
    A repository to create or update.

    Attributes
    ----------
    name : str
        Repository name (letters, digits, ``.``, ``-``, ``_``).

    description : str
        Repository description; defaults to
        ``"<name> library for .NET development"``.

    license : License | None
        Overrides ``ForgeConfig.default_license`` when set.

    visibility : Visibility | None
        Overrides ``ForgeConfig.repository_visibility`` when set.

    platform : Platform
        Where the repository is hosted.
    """

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=350)
    license: License | None = None
    visibility: Visibility | None = None
    platform: Platform = Platform.GITHUB

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not _REPO_NAME_PATTERN.match(v) or v.endswith(".git"):
            msg = (
                f"Invalid repository name '{v}'. Use letters, digits, '.', '-' "
                "and '_' and do not start with '.' or '-'."
            )
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def default_description(self) -> RepositorySpec:
        if not self.description:
            self.description = f"{self.name} library for .NET development"
        return self

    def effective_license(self, config: ForgeConfig) -> License:
        return self.license or config.default_license

    def effective_visibility(self, config: ForgeConfig) -> Visibility:
        return self.visibility or config.repository_visibility

    def package_id(self, company_name: str) -> str:
        """
        NuGet package id published for this repository.

        Examples
        --------
        >>> RepositorySpec(name="enhanced-enums").package_id("Acme")
        'Acme.enhanced-enums'
        """
        return f"{company_name}.{self.name}"


# =============================================================================
# Result Data Classes
# =============================================================================

@dataclass
class ProvisionResult:
    """
    Outcome of a repository provisioning run.

    Attributes
    ----------
    success : bool
        Whether the pipeline reached the end.

    repository : str
        ``owner/name`` (GitHub) or ``org/project/name`` (Azure DevOps).

    local_path : Path | None
        Working tree on disk.

    url : str
        Web URL of the repository.

    files_created : list[Path]
        Files written by the template emitter.

    warnings : list[str]
        Best-effort steps that failed without stopping the pipeline.

    errors : list[str]
        Errors that stopped the pipeline (only when ``success`` is False).
    """

    success: bool
    repository: str
    local_path: Path | None = None
    url: str = ""
    files_created: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
