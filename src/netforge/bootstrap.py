"""
netforge.bootstrap - Organization Bootstrap
===========================================

One-shot setup of a GitHub organization: the shared ``ci-cd-workflows``
repository, then either the standard library repositories, a single test
repository, or nothing.

Usage Example
-------------
>>> provisioner = GitHubProvisioner(config, CommandRunner(), config_path=path)
>>> run_setup_all(provisioner, BootstrapChoice.TEST)
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from pathlib import Path

from netforge.console import log_error, log_info
from netforge.exceptions import NetforgeError
from netforge.generator import (
    build_context,
    create_jinja_env,
    default_vault_name,
    render_template,
    write_files,
)
from netforge.github import GitHubProvisioner
from netforge.models import License, Platform, ProvisionResult, RepositorySpec, Visibility


WORKFLOWS_REPOSITORY = "ci-cd-workflows"
TEST_REPOSITORY = "test-cicd-pipeline"

DEFAULT_REPOSITORIES: dict[str, str] = {
    "smart-generators": "Smart code generators for .NET development",
    "enhanced-enums": "Enhanced enum functionality for .NET",
    "smart-switches": "Intelligent switch expressions and pattern matching",
    "smart-delegates": "Smart delegate and event handling utilities",
    "developer-kit": "Comprehensive developer toolkit for .NET",
}

WORKFLOWS_REPOSITORY_TOPICS = "cicd,github-actions,devops"

WORKFLOWS_COMMIT_MESSAGE = """Add CI/CD workflow templates and documentation

- Add reusable GitHub Actions workflows
- Add comprehensive documentation
- Support for .NET 9/10 with Nerdbank.GitVersioning"""

# Template -> path inside ci-cd-workflows
WORKFLOWS_REPOSITORY_FILES: dict[str, str] = {
    "workflows_repo/README.md.j2": "README.md",
    "workflows_repo/workflows.md.j2": "docs/workflows.md",
    "workflows_repo/usage.md.j2": "docs/usage.md",
    "github/dotnet-ci-cd.yml.j2": "workflows/dotnet-ci-cd.yml",
    "github/security.yml.j2": "workflows/security.yml",
    "github/azure-keyvault.yml.j2": "workflows/azure-keyvault.yml",
}


class BootstrapChoice(str, Enum):
    """What ``setup-all`` creates after the workflows repository."""

    ALL = "all"
    TEST = "test"
    SKIP = "skip"

    @property
    def description(self) -> str:
        descriptions = {
            BootstrapChoice.ALL: f"Create all {len(DEFAULT_REPOSITORIES)} repositories "
            f"({', '.join(list(DEFAULT_REPOSITORIES)[:2])}, etc.)",
            BootstrapChoice.TEST: "Create test repository only",
            BootstrapChoice.SKIP: "Skip repository creation",
        }
        return descriptions[self]


def render_workflows_repository(provisioner: GitHubProvisioner) -> dict[Path, str]:
    """Render the README, docs pages and reusable workflows of ci-cd-workflows."""
    config = provisioner.config
    env = create_jinja_env()
    context = build_context(
        config,
        None,
        Platform.GITHUB,
        repositories=list(DEFAULT_REPOSITORIES.items()),
        vault_name=default_vault_name(config),
    )
    return {
        Path(output): render_template(env, template, context)
        for template, output in WORKFLOWS_REPOSITORY_FILES.items()
    }


def create_workflows_repository(provisioner: GitHubProvisioner) -> ProvisionResult:
    """
    Create (or refresh) the public ``ci-cd-workflows`` repository.

    Returns
    -------
    ProvisionResult
        Outcome of the run.
    """
    log_info(f"Creating {WORKFLOWS_REPOSITORY} repository...")
    config = provisioner.config
    repo = RepositorySpec(
        name=WORKFLOWS_REPOSITORY,
        description=f"CI/CD workflow templates and scripts for {config.company_name}",
        license=License.MIT,
        visibility=Visibility.PUBLIC,
    )
    provisioner.warnings = []

    provisioner.create_repository(repo)
    path = provisioner.clone_or_open(repo)
    provisioner.ensure_default_branch(path, repo)

    provisioner.best_effort(
        [
            "gh", "repo", "edit", provisioner.full_name(repo),
            "--enable-issues",
            "--enable-wiki",
            "--enable-discussions",
            "--delete-branch-on-merge",
            "--add-topic", WORKFLOWS_REPOSITORY_TOPICS,
        ],
        "Some settings may not have been applied",
    )

    written = write_files(path, render_workflows_repository(provisioner))
    provisioner.commit_and_push(path, WORKFLOWS_COMMIT_MESSAGE)

    log_info(f"{WORKFLOWS_REPOSITORY} repository created")
    return ProvisionResult(
        success=True,
        repository=provisioner.full_name(repo),
        local_path=path,
        url=provisioner.repository_url(repo),
        files_created=written,
        warnings=list(provisioner.warnings),
    )


def setup_repositories(
    provisioner: GitHubProvisioner,
    names: Iterable[str] | None = None,
) -> list[ProvisionResult]:
    """
    Provision several repositories with environments, secrets and branch
    protection.

    A repository that fails is reported and the next one is attempted.

    Parameters
    ----------
    names : Iterable[str] | None
        Repository names; defaults to ``DEFAULT_REPOSITORIES``. Names not in
        ``DEFAULT_REPOSITORIES`` get the generic description.
    """
    results: list[ProvisionResult] = []
    for name in names or DEFAULT_REPOSITORIES:
        repo = RepositorySpec(name=name, description=DEFAULT_REPOSITORIES.get(name, ""))
        try:
            result = provisioner.provision(repo, protect=True, environments=True, secrets=True)
        except NetforgeError as e:
            log_error(f"Setup failed for {name}: {e}")
            result = ProvisionResult(
                success=False,
                repository=provisioner.full_name(repo),
                url=provisioner.repository_url(repo),
                warnings=list(provisioner.warnings),
                errors=[str(e)],
            )
        results.append(result)
    return results


def create_test_repository(provisioner: GitHubProvisioner) -> ProvisionResult:
    """Provision the private ``test-cicd-pipeline`` repository."""
    log_info(f"Creating {TEST_REPOSITORY} repository...")
    repo = RepositorySpec(
        name=TEST_REPOSITORY,
        description="Test repository for CI/CD pipeline validation",
        license=License.MIT,
        visibility=Visibility.PRIVATE,
    )
    return provisioner.provision(repo)


def run_setup_all(
    provisioner: GitHubProvisioner,
    choice: BootstrapChoice,
) -> list[ProvisionResult]:
    """
    The ``setup-all`` flow: workflows repository, then ``choice``.

    Returns
    -------
    list[ProvisionResult]
        The workflows repository result followed by one result per
        repository created.
    """
    provisioner.check_dependencies()
    results = [create_workflows_repository(provisioner)]

    if choice == BootstrapChoice.ALL:
        log_info("Creating all repositories...")
        results.extend(setup_repositories(provisioner))
    elif choice == BootstrapChoice.TEST:
        results.append(create_test_repository(provisioner))
    else:
        log_info("Skipping repository creation")

    return results
