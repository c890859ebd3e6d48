"""
netforge.azure - Azure DevOps Repository Provisioner
====================================================

Creates a .NET repository in an Azure DevOps project: local solution and
projects, Azure Repos repository, artifact feed, variable groups, CI/CD and
security pipelines and branch policies.

Architecture
------------
Unlike the GitHub flow, the working tree is built locally first and the
remote is attached afterwards:

    1. ensure_azure_cli         az installed, logged in, devops extension
    2. git init -b <branch>     in a directory that must not exist yet
    3. setup_artifact_feed      create the feed when missing
    4. scaffold                 generator.scaffold_repository
    5. create_project_structure dotnet sln / classlib / xunit, nbgv
    6. create_repository        az repos create, origin remote
    7. variable groups, pipelines, branch policies
    8. push the default branch and a ``develop`` branch

Usage Example
-------------
>>> provisioner = AzureDevOpsProvisioner(config, CommandRunner())
>>> result = provisioner.provision(RepositorySpec(name="smart-enums", platform=Platform.AZURE))
>>> result.url
'https://dev.azure.com/acme/Libraries/_git/smart-enums'
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from netforge.config import detect_environment, prompt_confirm
from netforge.console import console, log_info, print_panel, settings_table
from netforge.generator import DOTNET_VERSION, scaffold_repository
from netforge.models import EnvironmentKind, ForgeConfig, Platform, ProvisionResult, RepositorySpec
from netforge.runner import CommandRunner, ensure_azure_cli


COMMIT_MESSAGE = "Initial project setup with Azure DevOps CI/CD"

TARGET_FRAMEWORK = f"net{DOTNET_VERSION}"

# Variable group name -> ASPNETCORE_ENVIRONMENT value
VARIABLE_GROUPS: dict[str, str] = {
    "development-secrets": "Development",
    "staging-secrets": "Staging",
    "production-secrets": "Production",
}


class AzureDevOpsProvisioner:
    """
    Provision Azure DevOps repositories for a configured project.

    Parameters
    ----------
    config : ForgeConfig
        Must carry ``azure_organization`` and ``azure_project``.

    runner : CommandRunner | None
        Runs az / git / dotnet / nbgv.

    environment : EnvironmentKind | None
        Host environment; detected when omitted.

    confirm : Callable[[str, bool], bool]
        Yes/no prompt passed to the template emitter.

    interactive : bool, default=True
        Allow ``az login`` when the CLI is not logged in.
    """

    def __init__(
        self,
        config: ForgeConfig,
        runner: CommandRunner | None = None,
        *,
        environment: EnvironmentKind | None = None,
        confirm: Callable[[str, bool], bool] = prompt_confirm,
        interactive: bool = True,
    ) -> None:
        self.config = config
        self.runner = runner or CommandRunner()
        self.environment = environment or detect_environment()
        self.confirm = confirm
        self.interactive = interactive
        self.warnings: list[str] = []

    @property
    def branch(self) -> str:
        return self.config.default_branch

    @property
    def org_url(self) -> str:
        return self.config.azure_org_url

    def repository_url(self, repo: RepositorySpec) -> str:
        return f"{self.org_url}/{self.config.azure_project}/_git/{repo.name}"

    def feed_url(self) -> str:
        return (
            f"{self.org_url}/{self.config.azure_project}/_artifacts/feed/"
            f"{self.config.artifact_feed}"
        )

    def best_effort(self, args: Sequence[str], warning: str, *, cwd: Path | None = None) -> bool:
        result = self.runner.try_run(args, cwd=cwd, warning=warning)
        if not result.ok:
            self.warnings.append(warning)
        return result.ok

    # -------------------------------------------------------------------------
    # Pipeline Steps
    # -------------------------------------------------------------------------

    def check_dependencies(self) -> None:
        ensure_azure_cli(self.runner, interactive=self.interactive)
        self.runner.require_tools(["git", "dotnet"])

    def configure_defaults(self) -> None:
        self.runner.run([
            "az", "devops", "configure", "--defaults",
            f"organization={self.org_url}",
            f"project={self.config.azure_project}",
        ])

    def setup_artifact_feed(self, feed: str | None = None) -> None:
        """
        Create the artifact feed when it does not exist and let the build
        service publish to it.
        """
        feed = feed or self.config.artifact_feed
        log_info(f"Checking Azure Artifacts feed: {feed}")

        show = ["az", "artifacts", "feed", "show", "--name", feed, "--org", self.org_url]
        if not self.runner.run(show, check=False).ok:
            log_info(f"Creating Azure Artifacts feed: {feed}")
            self.runner.run([
                "az", "artifacts", "feed", "create",
                "--name", feed,
                "--org", self.org_url,
                "--description", "NuGet packages for .NET projects",
                "--only-allow-upstream-source",
                "--include-upstream-sources",
            ])

        log_info("Setting feed permissions...")
        self.best_effort(
            [
                "az", "artifacts", "feed", "permission", "update",
                "--feed", feed,
                "--org", self.org_url,
                "--role", "contributor",
                "--identity", f"Project Collection Build Service ({self.config.azure_organization})",
            ],
            f"Could not grant the build service access to feed {feed}",
        )

    def create_project_structure(self, path: Path, repo: RepositorySpec) -> None:
        """Create the solution, library and test projects and install nbgv."""
        log_info("Setting up .NET project structure...")
        name = repo.name
        src_project = f"src/{name}/{name}.csproj"
        test_project = f"tests/{name}.Tests/{name}.Tests.csproj"

        for directory in ("src", "tests"):
            (path / directory).mkdir(parents=True, exist_ok=True)

        self.runner.run(["dotnet", "new", "sln", "-n", name], cwd=path)
        self.runner.run(
            ["dotnet", "new", "classlib", "-n", name, "-f", TARGET_FRAMEWORK], cwd=path / "src"
        )
        self.runner.run(["dotnet", "sln", "add", src_project], cwd=path)
        self.runner.run(
            ["dotnet", "new", "xunit", "-n", f"{name}.Tests", "-f", TARGET_FRAMEWORK],
            cwd=path / "tests",
        )
        self.runner.run(["dotnet", "sln", "add", test_project], cwd=path)
        self.runner.run(["dotnet", "add", test_project, "reference", src_project], cwd=path)

        self.best_effort(
            ["dotnet", "tool", "install", "-g", "nbgv"],
            "nbgv global tool not installed (it may already be present)",
            cwd=path,
        )
        self.best_effort(["nbgv", "install"], "nbgv install failed", cwd=path)

    def create_repository(self, path: Path, repo: RepositorySpec) -> str:
        """
        Create the Azure Repos repository and attach it as ``origin``.

        Returns
        -------
        str
            The repository id (empty in dry-run mode).
        """
        log_info(f"Creating Azure DevOps repository: {repo.name}")
        info = self.runner.run_json(
            ["az", "repos", "create", "--name", repo.name, "--detect", "false", "-o", "json"]
        )
        repo_id = info.get("id", "")
        remote_url = info.get("remoteUrl") or self.repository_url(repo)
        log_info(f"Repository created with ID: {repo_id}")

        self.runner.run(["git", "remote", "add", "origin", remote_url], cwd=path)
        return repo_id

    def create_variable_groups(self) -> None:
        log_info("Creating variable groups...")
        for name, environment in VARIABLE_GROUPS.items():
            self.best_effort(
                [
                    "az", "pipelines", "variable-group", "create",
                    "--name", name,
                    "--variables", f"ASPNETCORE_ENVIRONMENT={environment}",
                    "--authorize", "true",
                    "--description", f"{environment} environment secrets",
                ],
                f"Variable group {name} not created (it may already exist)",
            )

    def create_pipelines(self, repo: RepositorySpec) -> str:
        """
        Register the CI/CD and security pipelines.

        Returns
        -------
        str
            Id of the CI/CD pipeline, used for build validation.
        """
        log_info("Setting up Azure Pipelines...")

        def create(name: str, yml_path: str) -> list[str]:
            return [
                "az", "pipelines", "create",
                "--name", name,
                "--repository", repo.name,
                "--repository-type", "tfsgit",
                "--branch", self.branch,
                "--yml-path", yml_path,
                "--skip-first-run", "true",
                "-o", "json",
            ]

        info = self.runner.run_json(create(f"{repo.name}-CI-CD", "azure-pipelines.yml"))
        self.runner.run(create(f"{repo.name}-Security", ".azuredevops/security-pipeline.yml"))
        log_info("Pipelines created successfully")
        return str(info.get("id", ""))

    def setup_branch_policies(self, repo_id: str, pipeline_id: str) -> None:
        """Build validation, one required reviewer and work item linking."""
        log_info(f"Setting up branch policies for {self.branch}...")
        common = ["--repository-id", repo_id, "--branch", self.branch, "--enabled", "true"]

        self.best_effort(
            [
                "az", "repos", "policy", "build", "create", *common,
                "--blocking", "true",
                "--queue-on-source-update-only", "false",
                "--display-name", "PR Build Validation",
                "--build-definition-id", pipeline_id,
                "--valid-duration", "720",
            ],
            "Build validation policy not applied",
        )
        self.best_effort(
            [
                "az", "repos", "policy", "required-reviewer", "create", *common,
                "--blocking", "true",
                "--message", "At least one reviewer required",
            ],
            "Required reviewer policy not applied",
        )
        self.best_effort(
            [
                "az", "repos", "policy", "work-item-linking", "create", *common,
                "--blocking", "false",
            ],
            "Work item linking policy not applied",
        )

    def push_branches(self, path: Path) -> None:
        """Commit, push the default branch, then create and push ``develop``."""
        self.runner.run(["git", "add", "."], cwd=path)
        self.runner.run(["git", "commit", "-m", COMMIT_MESSAGE], cwd=path)
        self.runner.run(["git", "push", "-u", "origin", self.branch], cwd=path)
        self.runner.run(["git", "checkout", "-b", "develop"], cwd=path)
        self.runner.run(["git", "push", "-u", "origin", "develop"], cwd=path)
        self.runner.run(["git", "checkout", self.branch], cwd=path)

    # -------------------------------------------------------------------------
    # Full Pipeline
    # -------------------------------------------------------------------------

    def provision(self, repo: RepositorySpec) -> ProvisionResult:
        """
        Create and set up one Azure DevOps repository.

        Raises
        ------
        FileExistsError
            If the local repository directory already exists.
        NetforgeError
            If a required step fails.
        """
        self.warnings = []
        path = self.config.repository_root(self.environment) / repo.name
        result = ProvisionResult(
            success=False,
            repository=f"{self.config.azure_organization}/{self.config.azure_project}/{repo.name}",
            local_path=path,
            url=self.repository_url(repo),
        )

        if path.exists():
            raise FileExistsError(f"Directory {path} already exists")

        console.print(settings_table("Using configuration", [
            ("Azure Organization", self.config.azure_organization or ""),
            ("Azure Project", self.config.azure_project or ""),
            ("Company Name", self.config.company_name),
            ("Artifact Feed", self.config.artifact_feed),
            ("License", repo.effective_license(self.config).spdx_id),
            ("Default Branch", self.branch),
        ]))

        self.check_dependencies()
        self.configure_defaults()

        path.mkdir(parents=True)
        self.runner.run(["git", "init", "-b", self.branch], cwd=path)

        self.setup_artifact_feed()
        result.files_created = scaffold_repository(
            path, self.config, repo, Platform.AZURE, confirm=self.confirm
        )
        self.create_project_structure(path, repo)

        repo_id = self.create_repository(path, repo)
        self.create_variable_groups()
        pipeline_id = self.create_pipelines(repo)
        self.setup_branch_policies(repo_id, pipeline_id)

        self.push_branches(path)

        result.success = True
        result.warnings.extend(self.warnings)

        print_panel(
            f"[bold green]Repository setup complete![/]\n\n"
            f"[dim]Location:[/] {path}\n"
            f"[dim]Azure DevOps:[/] {result.url}\n"
            f"[dim]Artifact Feed:[/] {self.feed_url()}\n\n"
            "[bold]Next steps:[/]\n"
            "  1. Configure Key Vault secrets in variable groups\n"
            "  2. Set up service connections if needed\n"
            "  3. Run the pipeline to verify setup",
            title="Success",
            style="green",
        )
        return result
