"""
netforge.keyvault - Azure Key Vault Integration
===============================================

Two flavours, one per platform:

- GitHub: write the reusable ``azure-keyvault.yml`` workflow into existing
  repositories, and optionally create the resource group, vault and sample
  secrets.
- Azure DevOps: create a service principal that can read the vault, create
  the variable group and report the steps that must be finished in the
  portal (service connection, vault link).

Secrets returned by Azure (the service principal password) are kept out of
console output.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from netforge.console import log_info, log_warn
from netforge.generator import render_keyvault_workflow
from netforge.runner import CommandRunner, ensure_azure_cli


KEYVAULT_WORKFLOW_PATH = Path(".github/workflows/azure-keyvault.yml")

DEFAULT_RESOURCE_GROUP_SUFFIX = "-rg"
DEFAULT_LOCATION = "eastus"

# Placeholder secrets created with a new vault
SAMPLE_SECRETS: dict[str, str] = {
    "database-url": "Server=prod.db;Database=app",
    "api-key": "prod-api-key",
    "storage-connection": "DefaultEndpointsProtocol=https",
}


# =============================================================================
# GitHub Flavour
# =============================================================================


def add_github_keyvault(root: Path, repositories: Iterable[str], vault_name: str) -> list[Path]:
    """
    Write the Key Vault workflow into each repository below ``root``.

    Parameters
    ----------
    root : Path
        Directory holding the local clones.

    repositories : Iterable[str]
        Repository directory names.

    vault_name : str
        Key Vault the workflow reads from.

    Returns
    -------
    list[Path]
        Workflow files written. Repositories without a local clone are
        skipped with a warning.
    """
    content = render_keyvault_workflow(vault_name)
    written: list[Path] = []

    for name in repositories:
        repo_path = root / name
        if not repo_path.is_dir():
            log_warn(f"Repository {name} not found at {repo_path}, skipping")
            continue
        target = repo_path / KEYVAULT_WORKFLOW_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        log_info(f"Added Azure Key Vault workflow to {name}")
        written.append(target)

    return written


def setup_azure_resources(
    runner: CommandRunner,
    vault_name: str,
    resource_group: str,
    location: str = DEFAULT_LOCATION,
) -> None:
    """
    Create the resource group, an RBAC-enabled vault and the sample secrets.

    Only run when explicitly requested: it creates billable resources.
    """
    log_info("Setting up Azure Key Vault resources")
    ensure_azure_cli(runner)

    runner.run(["az", "group", "create", "--name", resource_group, "--location", location])
    runner.run([
        "az", "keyvault", "create",
        "--name", vault_name,
        "--resource-group", resource_group,
        "--location", location,
        "--enable-rbac-authorization",
    ])
    for name, value in SAMPLE_SECRETS.items():
        runner.run([
            "az", "keyvault", "secret", "set",
            "--vault-name", vault_name,
            "--name", name,
            "--value", value,
        ])

    log_info("Azure Key Vault setup complete")


# =============================================================================
# Azure DevOps Flavour
# =============================================================================


@dataclass
class KeyVaultLink:
    """
    Outcome of linking a Key Vault to an Azure DevOps variable group.

    Attributes
    ----------
    vault_name, variable_group : str
        What was linked.

    service_connection : str
        Name the service connection must be created with in the portal.

    subscription_id, tenant_id, client_id : str
        Service principal details needed for the service connection.

    client_secret : str
        Service principal password. Never printed; shown by Azure only once.

    manual_steps : list[str]
        Steps left for the Azure DevOps portal.
    """

    vault_name: str
    variable_group: str
    service_connection: str
    subscription_id: str
    tenant_id: str
    client_id: str
    client_secret: str = field(default="", repr=False)
    variable_group_created: bool = False
    manual_steps: list[str] = field(default_factory=list)


def link_keyvault(
    runner: CommandRunner,
    vault_name: str,
    group: str,
    *,
    organization: str | None = None,
    project: str | None = None,
    subscription: str | None = None,
) -> KeyVaultLink:
    """
    Give Azure DevOps read access to a Key Vault through a variable group.

    Parameters
    ----------
    runner : CommandRunner
        Runs the az commands.

    vault_name : str
        Existing Key Vault.

    group : str
        Variable group to create; also names the service principal
        (``sp-azuredevops-<group>``) and service connection
        (``azure-keyvault-<group>``).

    organization, project : str | None
        Set as ``az devops`` defaults when both are given.

    subscription : str | None
        Subscription id; defaults to the current ``az account``.

    Returns
    -------
    KeyVaultLink
        Service principal details and the remaining manual steps.
    """
    ensure_azure_cli(runner)

    account = runner.run_json(["az", "account", "show", "-o", "json"])
    subscription = subscription or account.get("id", "")
    tenant = account.get("tenantId", "")

    if organization and project:
        runner.run([
            "az", "devops", "configure", "--defaults",
            f"organization=https://dev.azure.com/{organization}",
            f"project={project}",
        ])

    log_info("Creating service principal for Azure DevOps...")
    sp_info = runner.run_json([
        "az", "ad", "sp", "create-for-rbac",
        "--name", f"sp-azuredevops-{group}",
        "--role", "Key Vault Reader",
        "--scopes", f"/subscriptions/{subscription}",
        "-o", "json",
    ])
    client_id = sp_info.get("appId", "")

    log_info("Granting Key Vault access to service principal...")
    runner.run([
        "az", "keyvault", "set-policy",
        "--name", vault_name,
        "--spn", client_id,
        "--secret-permissions", "get", "list",
    ])

    log_info("Linking Key Vault to variable group...")
    created = runner.try_run(
        [
            "az", "pipelines", "variable-group", "create",
            "--name", group,
            "--authorize", "true",
            "--description", f"Variables from Key Vault: {vault_name}",
        ],
        warning=f"Variable group '{group}' not created (it may already exist)",
    ).ok

    service_connection = f"azure-keyvault-{group}"
    return KeyVaultLink(
        vault_name=vault_name,
        variable_group=group,
        service_connection=service_connection,
        subscription_id=subscription,
        tenant_id=tenant,
        client_id=client_id,
        client_secret=sp_info.get("password", ""),
        variable_group_created=created,
        manual_steps=[
            f"Create service connection '{service_connection}' with the service principal details",
            f"Link variable group '{group}' to Key Vault '{vault_name}'",
            "Select which secrets to expose as variables",
        ],
    )
