"""
netforge.generator - Repository File Generation
===============================================

This module renders the boilerplate every .NET repository gets: build
props, versioning, SDK pinning, workflow / pipeline YAML, README, security
policy and license. Provisioners call it once the working tree exists.

Architecture
------------
The generator follows the same pipeline for every platform:

    1. Build the template context (config, repository, license, versions)
    2. Pick the templates that apply to the platform (TEMPLATE_MAPPINGS)
    3. Render them with Jinja2
    4. Write them into the working tree, asking before touching an
       existing repository

Nothing here runs external commands; git, gh and az calls live in the
provisioners.

Template System
---------------
Templates are Jinja2 files in the ``templates/`` package. Each template
receives:

    - config: The ForgeConfig record
    - repo: The RepositorySpec being generated
    - license: Effective license (repository override or config default)
    - platform: github or azure
    - year, netforge_version, dotnet_version, nbgv_version

Usage Example
-------------
>>> from netforge.generator import render_repository_files
>>> from netforge.models import ForgeConfig, Platform, RepositorySpec
>>>
>>> config = ForgeConfig(GitHubOrganization="acme", CompanyName="Acme")
>>> files = render_repository_files(config, RepositorySpec(name="smart-enums"), Platform.GITHUB)
>>> sorted(str(p) for p in files)[:2]
['.config/dotnet-tools.json', '.editorconfig']

See Also
--------
- models.py: ForgeConfig and RepositorySpec
- templates/: Jinja2 template files
- github.py / azure.py: Provisioners that call ``scaffold_repository``
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, PackageLoader, select_autoescape

from netforge import __version__
from netforge.console import log_info, log_warn
from netforge.models import ForgeConfig, License, Platform, RepositorySpec


DOTNET_VERSION = "9.0"
NBGV_VERSION = "3.6.128"


# =============================================================================
# Module-Level Configuration
# =============================================================================


def _github(platform: Platform) -> bool:
    return platform == Platform.GITHUB


def _azure(platform: Platform) -> bool:
    return platform == Platform.AZURE


# Template file mappings: template_name -> (output_path, condition_func)
# The condition_func decides whether the template applies to a platform
TEMPLATE_MAPPINGS: dict[str, tuple[str, Callable[[Platform], bool] | None]] = {
    # gh repo create already writes the VisualStudio .gitignore
    "gitignore.j2": (".gitignore", _azure),
    # Build and versioning
    "global.json.j2": ("global.json", None),
    "Directory.Build.props.j2": ("Directory.Build.props", None),
    "version.json.j2": ("version.json", None),
    "dotnet-tools.json.j2": (".config/dotnet-tools.json", None),
    "nuget.config.j2": ("nuget.config", None),
    # Documentation
    "README.md.j2": ("README.md", None),
    "SECURITY.md.j2": ("SECURITY.md", None),
    "editorconfig.j2": (".editorconfig", None),
    # GitHub
    "dependabot.yml.j2": (".github/dependabot.yml", _github),
    "CODEOWNERS.j2": (".github/CODEOWNERS", _github),
    "github/dotnet-ci-cd.yml.j2": (".github/workflows/dotnet-ci-cd.yml", _github),
    "github/security.yml.j2": (".github/workflows/security.yml", _github),
    # Azure DevOps
    "azure/dotnet-ci-cd.yml.j2": ("azure-pipelines.yml", _azure),
    "azure/security.yml.j2": (".azuredevops/security-pipeline.yml", _azure),
}

# License template mappings
LICENSE_TEMPLATES: dict[License, str] = {
    License.MIT: "LICENSE_MIT.j2",
    License.APACHE2: "LICENSE_Apache-2.0.j2",
}

# Workflow files refreshed by ``netforge update``
WORKFLOW_OUTPUTS = frozenset({
    ".github/workflows/dotnet-ci-cd.yml",
    ".github/workflows/security.yml",
})

# Config files refreshed by ``netforge update``
CONFIG_OUTPUTS = frozenset({
    "Directory.Build.props",
    "version.json",
    "global.json",
    ".github/dependabot.yml",
    ".github/CODEOWNERS",
})

# Directories every generated repository has, even when empty
SCAFFOLD_DIRECTORIES = ("src", "tests", "docs")

# Presence of any of these marks a repository that already has content
EXISTING_MARKERS = ("README.md", "Directory.Build.props", ".github/workflows")


# =============================================================================
# Template Engine Setup
# =============================================================================


def create_jinja_env() -> Environment:
    """
    Create and configure the Jinja2 template environment.

    Returns
    -------
    Environment
        Environment loading from ``netforge.templates``.

    Notes
    -----
    Autoescaping is disabled: the output is YAML, XML, JSON and Markdown,
    not HTML.
    """
    env = Environment(
        loader=PackageLoader("netforge", "templates"),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    return env


def build_context(
    config: ForgeConfig,
    repo: RepositorySpec | None = None,
    platform: Platform = Platform.GITHUB,
    **extra: Any,
) -> dict[str, Any]:
    """
    Build the context dictionary shared by all templates.

    Parameters
    ----------
    config : ForgeConfig
        Persisted configuration.

    repo : RepositorySpec | None
        Repository being generated. Templates that do not describe a single
        repository (the ci-cd-workflows pages) pass None.

    platform : Platform
        Target platform.

    **extra
        Additional template variables (``vault_name``, ``repositories``...).
    """
    context: dict[str, Any] = {
        "config": config,
        "repo": repo,
        "license": repo.effective_license(config) if repo else config.default_license,
        "platform": platform,
        "year": datetime.now(UTC).year,
        "netforge_version": __version__,
        "dotnet_version": DOTNET_VERSION,
        "nbgv_version": NBGV_VERSION,
        "security_contact": None,
    }
    context.update(extra)
    return context


# =============================================================================
# Template Rendering
# =============================================================================


def render_template(env: Environment, template_name: str, context: dict[str, Any]) -> str:
    """
    Render a single template.

    Raises
    ------
    jinja2.TemplateNotFound
        If the template file doesn't exist.
    jinja2.TemplateSyntaxError
        If the template has syntax errors.
    """
    return env.get_template(template_name).render(**context)


def render_repository_files(
    config: ForgeConfig,
    repo: RepositorySpec,
    platform: Platform | None = None,
) -> dict[Path, str]:
    """
    Render every template that applies to the platform.

    Parameters
    ----------
    config : ForgeConfig
        Persisted configuration.

    repo : RepositorySpec
        Repository being generated.

    platform : Platform | None
        Target platform; defaults to ``repo.platform``.

    Returns
    -------
    dict[Path, str]
        Mapping of output paths (relative to the repository root) to content.

    Notes
    -----
    GitHub repositories get their LICENSE and .gitignore from
    ``gh repo create``; Azure DevOps repositories get both rendered here.
    """
    platform = platform or repo.platform
    env = create_jinja_env()
    context = build_context(config, repo, platform)
    rendered: dict[Path, str] = {}

    for template_name, (output_path, condition) in TEMPLATE_MAPPINGS.items():
        if condition is not None and not condition(platform):
            continue
        rendered[Path(output_path)] = render_template(env, template_name, context)

    if platform == Platform.AZURE:
        rendered[Path("LICENSE")] = render_license(config, repo, env=env)

    return rendered


def render_license(
    config: ForgeConfig,
    repo: RepositorySpec,
    *,
    env: Environment | None = None,
) -> str:
    """Render the LICENSE text for the repository's effective license."""
    env = env or create_jinja_env()
    license_ = repo.effective_license(config)
    context = build_context(config, repo, repo.platform)
    return render_template(env, LICENSE_TEMPLATES[license_], context)


def render_keyvault_workflow(vault_name: str) -> str:
    """
    Render the reusable GitHub Actions Key Vault workflow.

    Parameters
    ----------
    vault_name : str
        Key Vault the workflow reads ``database-url``, ``api-key`` and
        ``storage-connection`` from.
    """
    env = create_jinja_env()
    return render_template(env, "github/azure-keyvault.yml.j2", {"vault_name": vault_name})


def render_keyvault_pipeline() -> str:
    """Render the Azure Pipelines Key Vault step template."""
    env = create_jinja_env()
    return render_template(env, "azure/azure-keyvault.yml.j2", {})


# =============================================================================
# File Writing
# =============================================================================


def write_files(
    root: Path,
    files: dict[Path, str],
    *,
    overwrite: bool = True,
    skip: Iterable[Path | str] = (),
) -> list[Path]:
    """
    Write rendered files below ``root``.

    Parameters
    ----------
    root : Path
        Repository root.

    files : dict[Path, str]
        Mapping of relative paths to file contents.

    overwrite : bool, default=True
        When False, files that already exist are left untouched.

    skip : Iterable[Path | str]
        Relative paths never written (e.g. a README the user wants to keep).

    Returns
    -------
    list[Path]
        Absolute paths of the files actually written.
    """
    skipped = {Path(p) for p in skip}
    written: list[Path] = []

    for relative_path, content in files.items():
        if relative_path in skipped:
            continue
        full_path = root / relative_path
        if full_path.exists() and not overwrite:
            continue
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")
        written.append(full_path)

    return written


def is_existing_repository(path: Path) -> bool:
    """
    Whether ``path`` already holds a repository with content.

    A fresh clone of a ``gh repo create`` repository only has LICENSE and
    .gitignore; anything beyond that counts as existing content.
    """
    return any((path / marker).exists() for marker in EXISTING_MARKERS)


def scaffold_repository(
    path: Path,
    config: ForgeConfig,
    repo: RepositorySpec,
    platform: Platform | None = None,
    *,
    confirm: Callable[[str, bool], bool],
) -> list[Path]:
    """
    Write the repository boilerplate into a working tree.

    Parameters
    ----------
    path : Path
        Repository working tree (created when missing).

    config : ForgeConfig
        Persisted configuration.

    repo : RepositorySpec
        Repository being generated.

    platform : Platform | None
        Target platform; defaults to ``repo.platform``.

    confirm : Callable[[str, bool], bool]
        Asks a yes/no question (message, default). Only called when the
        repository already has content.

    Returns
    -------
    list[Path]
        Files written. Empty when the user declined to update an existing
        repository.
    """
    platform = platform or repo.platform
    skip: list[str] = []

    if is_existing_repository(path):
        log_warn(f"Repository {repo.name} already has content")
        if not confirm("Update existing repository files?", False):
            log_info("Skipping file generation")
            return []
        if (path / "README.md").exists() and not confirm("Overwrite existing README.md?", False):
            skip.append("README.md")

    files = render_repository_files(config, repo, platform)

    # A repository created outside gh (or without a license) still needs these
    if platform == Platform.GITHUB:
        if not (path / ".gitignore").exists():
            files[Path(".gitignore")] = render_template(
                create_jinja_env(), "gitignore.j2", build_context(config, repo, platform)
            )
        if not (path / "LICENSE").exists():
            files[Path("LICENSE")] = render_license(config, repo)

    for directory in SCAFFOLD_DIRECTORIES:
        (path / directory).mkdir(parents=True, exist_ok=True)

    written = write_files(path, files, skip=skip)
    log_info(f"Created {len(written)} files in {path}")
    return written


def write_user_nuget_config(config: ForgeConfig, home: Path | None = None) -> Path:
    """
    Write ``~/.nuget/NuGet/NuGet.Config`` mapping the company's packages to
    GitHub Packages.

    Parameters
    ----------
    config : ForgeConfig
        Supplies the organization and company name.

    home : Path | None
        Home directory; defaults to ``Path.home()``.

    Returns
    -------
    Path
        The written file.
    """
    home = home or Path.home()
    target = home / ".nuget" / "NuGet" / "NuGet.Config"
    target.parent.mkdir(parents=True, exist_ok=True)
    content = render_template(create_jinja_env(), "user_nuget_config.j2", build_context(config))
    target.write_text(content, encoding="utf-8")
    log_info(f"NuGet configuration written to {target}")
    return target


# =============================================================================
# Post-Generation Validation
# =============================================================================


def validate_repository(path: Path, platform: Platform) -> tuple[bool, list[str]]:
    """
    Validate that the generated files are present and well formed.

    Parameters
    ----------
    path : Path
        Repository root.

    platform : Platform
        Decides which workflow / pipeline files are essential.

    Returns
    -------
    tuple[bool, list[str]]
        ``(success, issues)``.

    Checks Performed
    ----------------
    1. Essential files exist
    2. JSON files parse
    3. YAML workflow / pipeline files parse
    4. XML build files parse
    """
    issues: list[str] = []

    essential = ["README.md", "Directory.Build.props", "version.json", "global.json"]
    if platform == Platform.GITHUB:
        essential.append(".github/workflows/dotnet-ci-cd.yml")
    else:
        essential.append("azure-pipelines.yml")

    for name in essential:
        if not (path / name).exists():
            issues.append(f"Missing essential file: {name}")

    for name in ("version.json", "global.json", ".config/dotnet-tools.json"):
        file_path = path / name
        if file_path.exists():
            try:
                json.loads(file_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                issues.append(f"Invalid JSON in {name}: {e}")

    yaml_files = [
        *path.glob(".github/**/*.yml"),
        *path.glob(".azuredevops/*.yml"),
        *path.glob("pipelines/*.yml"),
        *path.glob("azure-pipelines.yml"),
    ]
    for file_path in yaml_files:
        try:
            yaml.safe_load(file_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            issues.append(f"Invalid YAML in {file_path.relative_to(path)}: {e}")

    for name in ("Directory.Build.props", "nuget.config"):
        file_path = path / name
        if file_path.exists():
            try:
                ET.parse(file_path)
            except ET.ParseError as e:
                issues.append(f"Invalid XML in {name}: {e}")

    return len(issues) == 0, issues


# =============================================================================
# Add Feature to Existing Repository
# =============================================================================

# Feature to template mapping
FEATURE_TEMPLATES: dict[str, list[tuple[str, str]]] = {
    "workflows": [
        ("github/dotnet-ci-cd.yml.j2", ".github/workflows/dotnet-ci-cd.yml"),
        ("github/security.yml.j2", ".github/workflows/security.yml"),
    ],
    "pipelines": [
        ("azure/dotnet-ci-cd.yml.j2", "azure-pipelines.yml"),
        ("azure/security.yml.j2", ".azuredevops/security-pipeline.yml"),
    ],
    "keyvault": [
        ("github/azure-keyvault.yml.j2", ".github/workflows/azure-keyvault.yml"),
    ],
    "dependabot": [
        ("dependabot.yml.j2", ".github/dependabot.yml"),
    ],
    "codeowners": [
        ("CODEOWNERS.j2", ".github/CODEOWNERS"),
    ],
    "editorconfig": [
        ("editorconfig.j2", ".editorconfig"),
    ],
    "versioning": [
        ("version.json.j2", "version.json"),
        ("dotnet-tools.json.j2", ".config/dotnet-tools.json"),
    ],
}

# Azure DevOps repositories get the pipeline flavour of the Key Vault feature
AZURE_FEATURE_TEMPLATES: dict[str, list[tuple[str, str]]] = {
    "keyvault": [
        ("azure/azure-keyvault.yml.j2", "pipelines/azure-keyvault.yml"),
    ],
}


def feature_templates(feature: str, platform: Platform) -> list[tuple[str, str]]:
    """
    Templates written for a feature on a platform.

    Raises
    ------
    ValueError
        If the feature is unknown.
    """
    if feature not in FEATURE_TEMPLATES:
        valid = ", ".join(FEATURE_TEMPLATES.keys())
        raise ValueError(f"Unknown feature '{feature}'. Valid features: {valid}")
    if platform == Platform.AZURE and feature in AZURE_FEATURE_TEMPLATES:
        return AZURE_FEATURE_TEMPLATES[feature]
    return FEATURE_TEMPLATES[feature]


def add_feature_to_repository(
    path: Path,
    feature: str,
    config: ForgeConfig,
    *,
    platform: Platform = Platform.GITHUB,
    force: bool = False,
    vault_name: str | None = None,
) -> list[Path]:
    """
    Add a feature to an existing repository.

    Parameters
    ----------
    path : Path
        Repository root. Its directory name is used as the repository name.

    feature : str
        One of ``FEATURE_TEMPLATES``.

    config : ForgeConfig
        Persisted configuration.

    platform : Platform
        Selects the platform flavour of the templates.

    force : bool, default=False
        Overwrite existing files.

    vault_name : str | None
        Key Vault name for the ``keyvault`` feature.

    Returns
    -------
    list[Path]
        Files that were created.

    Raises
    ------
    ValueError
        If the feature is unknown or the directory name is not a valid
        repository name.
    FileExistsError
        If files exist and ``force`` is False.
    """
    path = path.resolve()
    templates = feature_templates(feature, platform)

    if not force:
        existing = [output for _, output in templates if (path / output).exists()]
        if existing:
            raise FileExistsError(
                f"Files already exist: {', '.join(existing)}. Use --force to overwrite."
            )

    repo = RepositorySpec(name=path.name, platform=platform)
    env = create_jinja_env()
    context = build_context(
        config, repo, platform, vault_name=vault_name or default_vault_name(config)
    )

    created: list[Path] = []
    for template_name, output in templates:
        full_path = path / output
        try:
            content = render_template(env, template_name, context)
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(content, encoding="utf-8")
        except Exception as e:
            for f in created:
                if f.exists():
                    f.unlink()
            raise RuntimeError(f"Failed to create {output}: {e}") from e
        created.append(full_path)

    return created


def default_vault_name(config: ForgeConfig) -> str:
    """
    Key Vault name used when none is given: ``<company>-keyvault``.

    Examples
    --------
    >>> default_vault_name(ForgeConfig(CompanyName="Cyber Dine"))
    'cyberdine-keyvault'
    """
    base = "".join(ch for ch in config.company_name.lower() if ch.isalnum() or ch == "-")
    return f"{base or 'netforge'}-keyvault"
