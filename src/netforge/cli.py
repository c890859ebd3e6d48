"""
netforge.cli - Command Line Interface
=====================================

This module provides the command-line interface for netforge using Typer.

Architecture
------------
The CLI is structured around Typer's app pattern:

    app (main entry point)
    ├── new          - Create one repository on GitHub or Azure DevOps
    ├── setup-all    - Bootstrap an organization (ci-cd-workflows + repos)
    ├── setup-repos  - Provision several GitHub repositories
    ├── update       - Refresh workflows / config in existing repositories
    ├── add          - Add a feature to an existing repository
    ├── keyvault
    │   ├── github   - Add the Key Vault workflow (and optionally the vault)
    │   └── azure    - Link a Key Vault to an Azure DevOps variable group
    └── config
        ├── show     - Print the configuration file
        └── init     - (Re)create the configuration interactively

Commands are interactive by default; ``--yes`` answers every question with
yes or its default and never opens the configuration wizard.

Usage Examples
--------------
Interactive mode:
    $ netforge new enhanced-enums

Non-interactive mode:
    $ netforge new enhanced-enums --platform github --protect --yes

Show help:
    $ netforge --help
    $ netforge keyvault --help
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import questionary
import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from netforge import __version__
from netforge.azure import AzureDevOpsProvisioner
from netforge.bootstrap import (
    DEFAULT_REPOSITORIES,
    BootstrapChoice,
    run_setup_all,
    setup_repositories,
)
from netforge.config import (
    PROMPTS,
    default_config_path,
    detect_environment,
    load_config,
    prompt_confirm,
    prompt_text,
    resolve_config,
    save_config,
)
from netforge.console import console, log_info, log_warn
from netforge.exceptions import NetforgeError
from netforge.generator import (
    FEATURE_TEMPLATES,
    add_feature_to_repository,
    default_vault_name,
    feature_templates,
    validate_repository,
)
from netforge.github import GitHubProvisioner
from netforge.keyvault import (
    DEFAULT_LOCATION,
    DEFAULT_RESOURCE_GROUP_SUFFIX,
    add_github_keyvault,
    link_keyvault,
    setup_azure_resources,
)
from netforge.models import ForgeConfig, License, Platform, ProvisionResult, RepositorySpec, Visibility
from netforge.runner import CommandRunner
from netforge.updater import RepositoryUpdater, UpdateResult, list_organization_repositories


# =============================================================================
# CLI Application Setup
# =============================================================================

app = typer.Typer(
    name="netforge",
    help="Provision .NET library repositories with CI/CD on GitHub or Azure DevOps.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=True,
)

keyvault_app = typer.Typer(
    help="Azure Key Vault integration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(
    help="Inspect or create the configuration file.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(keyvault_app, name="keyvault")
app.add_typer(config_app, name="config")


ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Configuration file (default: $NETFORGE_CONFIG or ./config.json)",
        dir_okay=False,
    ),
]

VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Echo every external command"),
]


# =============================================================================
# Version Callback
# =============================================================================

def version_callback(value: bool) -> None:
    """
    Display version information and exit.

    Parameters
    ----------
    value : bool
        True if --version was passed.
    """
    if value:
        console.print(Panel(
            f"[bold green]netforge[/] version [cyan]{__version__}[/]\n\n"
            f"[dim].NET repository provisioning for GitHub and Azure DevOps[/]\n"
            f"[dim]Tooling: gh + az + git + dotnet + nbgv[/]",
            border_style="green",
        ))
        raise typer.Exit()


# =============================================================================
# Helpers
# =============================================================================

def _fail(message: str, hint: str | None = None) -> typer.Exit:
    rprint(f"[red]Error:[/] {escape(message)}")
    if hint:
        rprint(f"[dim]{escape(hint)}[/]")
    return typer.Exit(1)


def _parse_choice(value: str, enum_type: type, label: str):
    """Match ``value`` against an enum's values, case-insensitively."""
    for member in enum_type:
        if member.value.lower() == value.lower():
            return member
    valid = ", ".join(m.value for m in enum_type)
    raise _fail(f"Invalid {label} '{value}'", f"Valid options: {valid}")


def _assume_yes(message: str, default: bool = False) -> bool:
    return True


def _accept_default(message: str, default: str = "") -> str:
    return default


def _config_path(path: Path | None) -> Path:
    return path or default_config_path()


def prompt_platform() -> Platform:
    """
    Ask which platform the repository is created on.

    Returns
    -------
    Platform
        Selected platform.
    """
    choices = [questionary.Choice(title=p.description, value=p) for p in Platform]
    result = questionary.select("Choose your platform", choices=choices).ask()
    if result is None:
        raise typer.Abort()
    return result


def prompt_bootstrap_choice() -> BootstrapChoice:
    choices = [questionary.Choice(title=c.description, value=c) for c in BootstrapChoice]
    result = questionary.select("What would you like to do next?", choices=choices).ask()
    if result is None:
        raise typer.Abort()
    return result


def print_results(results: list[ProvisionResult]) -> None:
    """Summarize several provisioning runs in one table."""
    table = Table(title="Summary", show_header=True)
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("URL", style="dim")
    for result in results:
        status = "[green]created[/]" if result.success else "[red]failed[/]"
        if result.success and result.warnings:
            status = f"[yellow]created ({len(result.warnings)} warnings)[/]"
        table.add_row(result.repository, status, result.url)
    console.print()
    console.print(table)


# =============================================================================
# Main Application Callback
# =============================================================================

@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    [bold]netforge[/] - .NET repository provisioning.

    Creates repositories with [cyan]Nerdbank.GitVersioning[/], CI/CD
    workflows, security scanning and package publishing on
    [cyan]GitHub[/] or [cyan]Azure DevOps[/].

    [bold]Quick Start:[/]

        netforge new my-library

    [bold]Non-interactive:[/]

        netforge new my-library --platform github --yes
    """


# =============================================================================
# New Command - Create One Repository
# =============================================================================

@app.command()
def new(
    name: Annotated[
        str,
        typer.Argument(help="Name of the repository to create"),
    ],
    platform: Annotated[
        str | None,
        typer.Option("--platform", "-p", help="Platform: github, azure"),
    ] = None,
    config_path: ConfigOption = None,
    license_: Annotated[
        str | None,
        typer.Option("--license", "-l", help="License: Apache-2.0, MIT"),
    ] = None,
    visibility: Annotated[
        str | None,
        typer.Option("--visibility", help="Visibility (GitHub): private, public"),
    ] = None,
    description: Annotated[
        str | None,
        typer.Option("--description", "-d", help="Repository description"),
    ] = None,
    project: Annotated[
        str | None,
        typer.Option("--project", help="Azure DevOps project (overrides the configuration)"),
    ] = None,
    org: Annotated[
        str | None,
        typer.Option("--org", help="Azure DevOps organization (overrides the configuration)"),
    ] = None,
    protect: Annotated[
        bool,
        typer.Option("--protect", help="Apply branch protection (GitHub)"),
    ] = False,
    environments: Annotated[
        bool,
        typer.Option("--environments", help="Create staging / production environments (GitHub)"),
    ] = False,
    secrets: Annotated[
        bool,
        typer.Option("--secrets", help="Set placeholder repository secrets (GitHub)"),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Answer yes to every question; never prompt"),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    Create a new .NET library repository.

    [bold]Examples:[/]

        netforge new enhanced-enums
        netforge new enhanced-enums --platform github --protect --environments
        netforge new enhanced-enums --platform azure --org myorg --project Libraries
    """
    if platform is None:
        if yes:
            raise _fail("--platform is required with --yes", "Valid options: github, azure")
        selected = prompt_platform()
    else:
        selected = _parse_choice(platform, Platform, "platform")

    selected_license = _parse_choice(license_, License, "license") if license_ else None
    selected_visibility = (
        _parse_choice(visibility, Visibility, "visibility") if visibility else None
    )

    try:
        repo = RepositorySpec(
            name=name,
            description=description or "",
            license=selected_license,
            visibility=selected_visibility,
            platform=selected,
        )
    except ValidationError as e:
        raise _fail(e.errors()[0]["msg"])

    path = _config_path(config_path)
    runner = CommandRunner(verbose=verbose)
    confirm = _assume_yes if yes else prompt_confirm

    try:
        if selected == Platform.AZURE:
            config = _azure_config(path, org, project, interactive=not yes)
            provisioner = AzureDevOpsProvisioner(
                config, runner, confirm=confirm, interactive=not yes
            )
            result = provisioner.provision(repo)
        else:
            config = resolve_config(path, Platform.GITHUB, interactive=not yes)
            github = GitHubProvisioner(
                config,
                runner,
                config_path=path,
                confirm=confirm,
                ask=_accept_default if yes else prompt_text,
            )
            result = github.provision(
                repo, protect=protect, environments=environments, secrets=secrets
            )
    except (NetforgeError, FileExistsError) as e:
        raise _fail(str(e))

    for warning in result.warnings:
        log_warn(warning)

    if result.local_path is not None and result.local_path.is_dir():
        ok, issues = validate_repository(result.local_path, selected)
        for issue in issues:
            log_warn(issue)
        if ok:
            log_info("Validation passed")


def _azure_config(path: Path, org: str | None, project: str | None, *, interactive: bool) -> ForgeConfig:
    """
    Configuration for ``new --platform azure``.

    ``--org`` / ``--project`` win over the file. When both are given the
    file is optional and nothing is prompted for.
    """
    overrides = {
        key: value
        for key, value in (("azure_organization", org), ("azure_project", project))
        if value
    }
    if org and project:
        base = load_config(path) if path.exists() else ForgeConfig(DefaultLicense=License.MIT)
        if not base.company_name:
            overrides["company_name"] = org
        return base.model_copy(update=overrides)
    return resolve_config(path, Platform.AZURE, interactive=interactive).model_copy(
        update=overrides
    )


# =============================================================================
# Organization Bootstrap
# =============================================================================

@app.command("setup-all")
def setup_all(
    config_path: ConfigOption = None,
    reconfigure: Annotated[
        bool,
        typer.Option("--reconfigure", help="Prompt for every configuration value again"),
    ] = False,
    choice: Annotated[
        str | None,
        typer.Option("--choice", help="After ci-cd-workflows: all, test, skip"),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Bootstrap a GitHub organization.

    Creates the public [cyan]ci-cd-workflows[/] repository, then either the
    standard library repositories, a test repository, or nothing.
    """
    selected = _parse_choice(choice, BootstrapChoice, "choice") if choice else None
    path = _config_path(config_path)

    try:
        config = resolve_config(path, Platform.GITHUB, reconfigure=reconfigure)
        if selected is None:
            selected = prompt_bootstrap_choice()
        provisioner = GitHubProvisioner(config, CommandRunner(verbose=verbose), config_path=path)
        results = run_setup_all(provisioner, selected)
    except NetforgeError as e:
        raise _fail(str(e))

    print_results(results)
    if not all(r.success for r in results):
        raise typer.Exit(1)


@app.command("setup-repos")
def setup_repos(
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Repositories to provision (default: the standard set)"),
    ] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Provision several GitHub repositories with environments, secrets and
    branch protection.

    A repository that fails is reported and the next one is attempted.
    """
    path = _config_path(config_path)
    try:
        config = resolve_config(path, Platform.GITHUB)
        provisioner = GitHubProvisioner(config, CommandRunner(verbose=verbose), config_path=path)
        provisioner.check_dependencies()
        results = setup_repositories(provisioner, names or list(DEFAULT_REPOSITORIES))
    except NetforgeError as e:
        raise _fail(str(e))

    print_results(results)
    if not all(r.success for r in results):
        raise typer.Exit(1)


# =============================================================================
# Update Command
# =============================================================================

@app.command()
def update(
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Repositories to update"),
    ] = None,
    all_: Annotated[
        bool,
        typer.Option("--all", "-a", help="Update every matching organization repository"),
    ] = False,
    workflows_only: Annotated[
        bool,
        typer.Option("--workflows-only", "-w", help="Update only workflows"),
    ] = False,
    config_only: Annotated[
        bool,
        typer.Option("--config-only", help="Update only configuration files"),
    ] = False,
    fix_branch: Annotated[
        bool,
        typer.Option("--fix-branch", help="Make the configured branch GitHub's default"),
    ] = False,
    add_repo: Annotated[
        str | None,
        typer.Option("--add-repo", help="Provision a new repository instead of updating"),
    ] = None,
    org: Annotated[
        str | None,
        typer.Option("--org", "-o", help="GitHub organization (overrides the configuration)"),
    ] = None,
    repo_path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Directory holding the clones"),
    ] = None,
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Default branch (overrides the configuration)"),
    ] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Update existing repositories with the latest CI/CD configuration.

    [bold]Examples:[/]

        netforge update smart-generators enhanced-enums
        netforge update --all
        netforge update --workflows-only smart-generators
        netforge update --add-repo new-library
    """
    if workflows_only and config_only:
        raise _fail("--workflows-only and --config-only are mutually exclusive")

    path = _config_path(config_path)
    runner = CommandRunner(verbose=verbose)

    try:
        config = resolve_config(path, Platform.GITHUB)
        updates: dict[str, object] = {}
        if org:
            updates["github_organization"] = org
        if branch:
            updates["default_branch"] = branch
        if updates:
            config = ForgeConfig.model_validate(config.model_dump() | updates)

        if add_repo:
            provisioner = GitHubProvisioner(config, runner, config_path=path)
            provisioner.check_dependencies()
            added = setup_repositories(provisioner, [add_repo])
            print_results(added)
            if not all(r.success for r in added):
                raise typer.Exit(1)
            return

        runner.require_tools(["gh", "git"])
        if all_:
            names = list_organization_repositories(runner, config.github_organization)
            log_info(f"Found {len(names)} repositories to update")

        if not names:
            raise _fail(
                "No repositories specified.",
                "Use --all for all repositories or give repository names.",
            )

        updater = RepositoryUpdater(config, runner, root=repo_path)
        results = [
            updater.update_repository(
                name,
                workflows=not config_only,
                config_files=not workflows_only,
                fix_branch=fix_branch,
            )
            for name in names
        ]
    except (NetforgeError, ValidationError) as e:
        raise _fail(str(e))

    print_update_summary(results)


def print_update_summary(results: list[UpdateResult]) -> None:
    table = Table(title="Update Summary", show_header=True)
    table.add_column("Repository", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Branch fixed")
    table.add_column("Pushed")
    for result in results:
        table.add_row(
            result.repository,
            str(len(result.files_updated)),
            "yes" if result.branch_fixed else "-",
            "[green]yes[/]" if result.pushed else "[dim]no changes[/]",
        )
    console.print()
    console.print(table)


# =============================================================================
# Add Command - Add Features to an Existing Repository
# =============================================================================

@app.command()
def add(
    feature: Annotated[
        str,
        typer.Argument(help="Feature to add: " + ", ".join(FEATURE_TEMPLATES)),
    ],
    path: Annotated[
        Path,
        typer.Option(
            "--path",
            "-p",
            help="Path to repository",
            exists=True,
            file_okay=False,
            dir_okay=True,
        ),
    ] = Path("."),
    platform: Annotated[
        str,
        typer.Option("--platform", help="Platform flavour of the files: github, azure"),
    ] = Platform.GITHUB.value,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite existing files"),
    ] = False,
    config_path: ConfigOption = None,
) -> None:
    """
    Add a feature to an existing repository.

    - workflows: GitHub Actions build and security workflows
    - pipelines: Azure Pipelines build and security pipelines
    - keyvault: Azure Key Vault secrets workflow (pipeline template on azure)
    - dependabot: Dependabot configuration
    - codeowners: CODEOWNERS file
    - editorconfig: .editorconfig
    - versioning: Nerdbank.GitVersioning version.json and tool manifest

    [bold]Examples:[/]

        netforge add workflows
        netforge add keyvault --path ./enhanced-enums
        netforge add pipelines --platform azure --force
    """
    selected = _parse_choice(platform, Platform, "platform")
    path = path.resolve()

    try:
        templates = feature_templates(feature, selected)
    except ValueError:
        raise _fail(
            f"Unknown feature '{feature}'",
            f"Valid features: {', '.join(FEATURE_TEMPLATES)}",
        )

    config_file = _config_path(config_path)
    try:
        config = load_config(config_file) if config_file.exists() else ForgeConfig()
    except NetforgeError as e:
        raise _fail(str(e))

    console.print()
    console.print(f"[bold]Adding {feature} to {path}[/]")
    console.print()

    files_table = Table(title="Files to Create", show_header=True)
    files_table.add_column("File", style="cyan")
    files_table.add_column("Status", style="dim")
    for _, output_path in templates:
        if (path / output_path).exists():
            status = "[yellow]will overwrite[/]" if force else "[red]exists (use --force)[/]"
        else:
            status = "[green]will create[/]"
        files_table.add_row(output_path, status)
    console.print(files_table)
    console.print()

    try:
        created = add_feature_to_repository(
            path, feature, config, platform=selected, force=force
        )
    except (FileExistsError, ValueError, RuntimeError, NetforgeError) as e:
        raise _fail(str(e))

    console.print(Panel(
        f"[bold green]Added {feature}![/]\n\n"
        f"Created {len(created)} file(s):\n"
        + "\n".join(f"  - {f.relative_to(path).as_posix()}" for f in created),
        title="[bold]Success[/]",
        border_style="green",
    ))


# =============================================================================
# Key Vault Commands
# =============================================================================

@keyvault_app.command("github")
def keyvault_github(
    repositories: Annotated[
        list[str] | None,
        typer.Argument(help="Repositories to add the workflow to (default: the standard set)"),
    ] = None,
    vault: Annotated[
        str | None,
        typer.Option("--vault", help="Key Vault name (default: <company>-keyvault)"),
    ] = None,
    resource_group: Annotated[
        str | None,
        typer.Option("--resource-group", "-g", help="Resource group for --provision"),
    ] = None,
    location: Annotated[
        str,
        typer.Option("--location", help="Azure region for --provision"),
    ] = DEFAULT_LOCATION,
    provision: Annotated[
        bool,
        typer.Option("--provision", help="Also create the resource group, vault and sample secrets"),
    ] = False,
    repo_path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Directory holding the clones"),
    ] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Add the Azure Key Vault workflow to local GitHub repositories.

    Azure resources are only created with [cyan]--provision[/].
    """
    path = _config_path(config_path)
    try:
        config = resolve_config(path, Platform.GITHUB)
        vault_name = vault or default_vault_name(config)
        root = repo_path or config.repository_root(detect_environment())

        written = add_github_keyvault(root, repositories or list(DEFAULT_REPOSITORIES), vault_name)

        if provision:
            group = resource_group or f"{vault_name}{DEFAULT_RESOURCE_GROUP_SUFFIX}"
            setup_azure_resources(CommandRunner(verbose=verbose), vault_name, group, location)
    except NetforgeError as e:
        raise _fail(str(e))

    console.print(Panel(
        f"[bold green]Key Vault workflow added to {len(written)} repositories[/]\n\n"
        "[bold]Required GitHub secrets:[/]\n"
        "  AZURE_CLIENT_ID, AZURE_TENANT_ID, AZURE_SUBSCRIPTION_ID\n\n"
        f"[dim]Vault:[/] {vault_name}",
        title="[bold]Success[/]",
        border_style="green",
    ))


@keyvault_app.command("azure")
def keyvault_azure(
    vault: Annotated[
        str,
        typer.Option("--vault", help="Existing Key Vault name"),
    ],
    group: Annotated[
        str,
        typer.Option("--group", help="Variable group to create"),
    ],
    project: Annotated[
        str | None,
        typer.Option("--project", help="Azure DevOps project"),
    ] = None,
    org: Annotated[
        str | None,
        typer.Option("--org", help="Azure DevOps organization"),
    ] = None,
    subscription: Annotated[
        str | None,
        typer.Option("--subscription", help="Subscription id (default: current account)"),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """
    Link a Key Vault to an Azure DevOps variable group.

    Creates a service principal with read access to the vault. The service
    connection and the vault link are finished in the Azure DevOps portal.
    """
    try:
        link = link_keyvault(
            CommandRunner(verbose=verbose),
            vault,
            group,
            organization=org,
            project=project,
            subscription=subscription,
        )
    except NetforgeError as e:
        raise _fail(str(e))

    steps = "\n".join(f"  {i}. {step}" for i, step in enumerate(link.manual_steps, start=1))
    console.print(Panel(
        f"[bold green]Key Vault '{link.vault_name}' ready for Azure DevOps[/]\n\n"
        f"[dim]Subscription:[/] {link.subscription_id}\n"
        f"[dim]Tenant:[/] {link.tenant_id}\n"
        f"[dim]Client Id:[/] {link.client_id}\n"
        "[dim]Client Secret:[/] shown once by Azure, not displayed\n\n"
        f"[bold]Manual steps:[/]\n{steps}",
        title="[bold]Key Vault[/]",
        border_style="green",
    ))


# =============================================================================
# Config Commands
# =============================================================================

@config_app.command("show")
def config_show(config_path: ConfigOption = None) -> None:
    """Print the configuration file."""
    path = _config_path(config_path)
    if not path.exists():
        raise _fail(f"No configuration at {path}", "Run 'netforge config init' to create one.")
    try:
        config = load_config(path)
    except NetforgeError as e:
        raise _fail(str(e))

    table = Table(title=str(path), show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.to_json_dict().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@config_app.command("init")
def config_init(
    platform: Annotated[
        str,
        typer.Option("--platform", "-p", help="Platform to configure: github, azure"),
    ] = Platform.GITHUB.value,
    config_path: ConfigOption = None,
) -> None:
    """Create or update the configuration file interactively."""
    selected = _parse_choice(platform, Platform, "platform")
    path = _config_path(config_path)
    try:
        existing = load_config(path) if path.exists() else None
        config = save_config(PROMPTS[selected](existing), path)
    except NetforgeError as e:
        raise _fail(str(e))
    log_info(f"Configuration saved to {path}")
    missing = config.missing_fields(selected)
    if missing:
        log_warn(f"Still missing: {', '.join(missing)}")


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    app()
