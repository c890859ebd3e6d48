"""
netforge - .NET Repository Provisioning for GitHub and Azure DevOps
===================================================================

A CLI tool that creates and configures .NET library repositories with
CI/CD, versioning and security scanning already wired in.

Features
--------
- **Guided Configuration**: one JSON file, created interactively on first run
- **GitHub**: repositories, Actions workflows, environments, secrets and
  branch protection through the ``gh`` CLI
- **Azure DevOps**: repositories, pipelines, variable groups, artifact feeds
  and branch policies through ``az repos`` / ``az pipelines``
- **Versioning**: Nerdbank.GitVersioning configured in every repository
- **Bulk Updates**: refresh workflows and config files across an organization

Quick Start
-----------
```bash
pip install netforge

# Create a repository interactively
netforge new smart-enums

# Azure DevOps instead of GitHub
netforge new smart-enums --platform azure
```

Architecture
------------
- ``cli``: Typer-based command line interface
- ``config``: JSON configuration file and interactive prompts
- ``runner``: gh / az / git / dotnet invocation
- ``generator``: Jinja2 template rendering
- ``github`` / ``azure``: repository provisioning pipelines
- ``keyvault``: Azure Key Vault integration
- ``updater``: bulk update of existing repositories
- ``bootstrap``: one-shot organization setup
- ``models``: Pydantic models for configuration
"""

# =============================================================================
# Package Metadata
# =============================================================================
__version__ = "0.1.0"
__license__ = "MIT"


# =============================================================================
# Public API Exports
# =============================================================================

from netforge.azure import AzureDevOpsProvisioner
from netforge.config import load_config, resolve_config, save_config
from netforge.generator import render_repository_files, scaffold_repository
from netforge.github import GitHubProvisioner
from netforge.models import ForgeConfig, Platform, ProvisionResult, RepositorySpec
from netforge.runner import CommandRunner


__all__ = [
    "AzureDevOpsProvisioner",
    "CommandRunner",
    "ForgeConfig",
    "GitHubProvisioner",
    "Platform",
    "ProvisionResult",
    "RepositorySpec",
    "__version__",
    "load_config",
    "render_repository_files",
    "resolve_config",
    "save_config",
    "scaffold_repository",
]
