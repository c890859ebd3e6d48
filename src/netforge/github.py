"""
netforge.github - GitHub Repository Provisioner
===============================================

Creates a repository with the ``gh`` CLI, clones it, moves it to the
configured default branch, writes the generated files and pushes them.
Optional steps add deployment environments, placeholder secrets and branch
protection.

Architecture
------------
``GitHubProvisioner.provision`` runs the steps in a fixed order:

    1. check_dependencies      gh, git, dotnet on PATH; gh logged in
    2. create_repository       gh repo create (an existing repo is fine)
    3. clone_or_open           reuse the local clone or git clone
    4. ensure_default_branch   never leave the repository on ``main``
    5. scaffold                generator.scaffold_repository
    6. configure_repository    gh repo edit (issues, wiki, merge settings)
    7. environments / secrets  optional
    8. commit_and_push
    9. branch protection       optional, needs the branch on the remote

Steps the setup scripts ran with ``|| true`` are best-effort: their failures
are collected in ``ProvisionResult.warnings`` instead of stopping the run.

Usage Example
-------------
>>> provisioner = GitHubProvisioner(config, CommandRunner(), config_path=path)
>>> result = provisioner.provision(RepositorySpec(name="smart-enums"), protect=True)
>>> result.url
'https://github.com/acme/smart-enums'
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from netforge.config import detect_environment, prompt_confirm, prompt_text, update_config_value
from netforge.console import console, log_error, log_info, print_panel, settings_table
from netforge.exceptions import ProvisioningError
from netforge.generator import scaffold_repository, write_user_nuget_config
from netforge.models import EnvironmentKind, ForgeConfig, Platform, ProvisionResult, RepositorySpec
from netforge.runner import CommandRunner, check_github_auth


COMMIT_MESSAGE = """Initial CI/CD setup with Nerdbank.GitVersioning

- Add GitHub Actions workflows for CI/CD
- Configure Nerdbank.GitVersioning with SemVer 2.0
- Add security scanning and SBOM generation
- Add repository structure and configuration files"""

REPOSITORY_TOPICS = "dotnet,csharp,nuget"

# (secret name, environment or None for repository level, placeholder value)
DEFAULT_SECRETS: list[tuple[str, str | None, str]] = [
    ("NUGET_API_KEY", None, "dummy-key-replace-in-production"),
    ("DATABASE_URL", "staging", "staging-connection-string"),
    ("DATABASE_URL", "production", "production-connection-string"),
]

ENVIRONMENTS: dict[str, dict[str, Any]] = {
    "staging": {
        "wait_timer": 0,
        "deployment_branch_policy": None,
    },
    "production": {
        "wait_timer": 30,
        "deployment_branch_policy": {
            "protected_branches": True,
            "custom_branch_policies": False,
        },
    },
}

REQUIRED_STATUS_CHECKS = ["build", "test", "security"]


def branch_protection_body() -> dict[str, Any]:
    """Request body for ``PUT /repos/{owner}/{repo}/branches/{branch}/protection``."""
    return {
        "required_status_checks": {"strict": True, "contexts": REQUIRED_STATUS_CHECKS},
        "enforce_admins": False,
        "required_pull_request_reviews": {
            "required_approving_review_count": 1,
            "dismiss_stale_reviews": True,
            "require_code_owner_reviews": True,
        },
        "restrictions": None,
        "required_linear_history": True,
        "allow_force_pushes": False,
        "allow_deletions": False,
        "required_conversation_resolution": True,
        "lock_branch": False,
        "allow_fork_syncing": True,
    }


class GitHubProvisioner:
    """
    Provision GitHub repositories for a configured organization.

    Parameters
    ----------
    config : ForgeConfig
        Organization, company, paths and defaults.

    runner : CommandRunner | None
        Runs gh / git / dotnet. A default runner is created when omitted.

    config_path : Path | None
        Configuration file to update when the user picks a new clone path.

    environment : EnvironmentKind | None
        Host environment; detected when omitted.

    confirm : Callable[[str, bool], bool]
        Yes/no prompt.

    ask : Callable[[str, str], str]
        Free text prompt (message, default).

    home : Path | None
        Home directory for the user-level NuGet.Config.
    """

    def __init__(
        self,
        config: ForgeConfig,
        runner: CommandRunner | None = None,
        *,
        config_path: Path | None = None,
        environment: EnvironmentKind | None = None,
        confirm: Callable[[str, bool], bool] = prompt_confirm,
        ask: Callable[[str, str], str] = prompt_text,
        home: Path | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or CommandRunner()
        self.config_path = config_path
        self.environment = environment or detect_environment()
        self.confirm = confirm
        self.ask = ask
        self.home = home
        self.warnings: list[str] = []

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def org(self) -> str:
        return self.config.github_organization

    @property
    def branch(self) -> str:
        return self.config.default_branch

    def full_name(self, repo: RepositorySpec) -> str:
        return f"{self.org}/{repo.name}"

    def repository_url(self, repo: RepositorySpec) -> str:
        return f"https://github.com/{self.full_name(repo)}"

    def best_effort(
        self,
        args: Sequence[str],
        warning: str,
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
    ) -> bool:
        result = self.runner.try_run(args, cwd=cwd, input_text=input_text, warning=warning)
        if not result.ok:
            self.warnings.append(warning)
        return result.ok

    # -------------------------------------------------------------------------
    # Pipeline Steps
    # -------------------------------------------------------------------------

    def check_dependencies(self) -> None:
        """
        Raises
        ------
        ToolNotFoundError
            If gh, git or dotnet is missing.
        AuthenticationError
            If gh is not logged in.
        """
        self.runner.require_tools(["gh", "git", "dotnet"])
        check_github_auth(self.runner)

    def create_repository(self, repo: RepositorySpec) -> bool:
        """
        Create the repository on GitHub.

        Returns
        -------
        bool
            False when ``gh repo create`` failed, which almost always means
            the repository already exists; provisioning continues with it.
        """
        log_info(f"Creating repository: {self.full_name(repo)}")
        result = self.runner.run(
            [
                "gh", "repo", "create", self.full_name(repo),
                repo.effective_visibility(self.config).gh_flag,
                "--description", repo.description,
                "--gitignore", "VisualStudio",
                "--license", repo.effective_license(self.config).spdx_id,
            ],
            check=False,
        )
        if result.ok:
            log_info("Repository created successfully")
        else:
            log_info("Repository already exists, continuing with setup...")
        return result.ok

    def clone_or_open(self, repo: RepositorySpec) -> Path:
        """
        Return the local working tree, cloning it when needed.

        A failing clone (typically a Windows filesystem mounted in WSL) asks
        for another base path. The new path is saved as ``WSLPath``.

        Raises
        ------
        ProvisioningError
            If the clone failed and no other path was given.
        """
        root = self.config.repository_root(self.environment)
        root.mkdir(parents=True, exist_ok=True)
        target = root / repo.name

        if target.exists():
            log_info("Local repository directory found, using existing clone")
        else:
            log_info("Cloning repository...")
            clone = ["git", "clone", f"{self.repository_url(repo)}.git"]
            if not self.runner.run(clone, cwd=root, check=False).ok:
                target = self._retry_clone(repo, clone, root)

        self.runner.run(["git", "config", "core.filemode", "false"], cwd=target)
        self.runner.run(["git", "config", "core.autocrlf", "input"], cwd=target)
        return target

    def _retry_clone(self, repo: RepositorySpec, clone: list[str], root: Path) -> Path:
        log_error("Git clone failed, likely due to WSL filesystem permission issues.")
        console.print("This usually happens when trying to clone to a Windows filesystem path.")
        console.print(f"Current path: {root}")

        if not self.confirm("Would you like to use a WSL filesystem path instead?", False):
            raise ProvisioningError("Cannot proceed without a working git repository.")

        user = os.environ.get("USER", "user")
        new_path = self.ask("Enter new project path:", f"/home/{user}/projects")
        if not new_path:
            raise ProvisioningError("Cannot proceed without a working git repository.")

        self.config = self.config.model_copy(update={"wsl_path": new_path})
        if self.config_path is not None:
            update_config_value(self.config_path, "WSLPath", new_path)
        log_info(f"Updated configuration with new path: {new_path}")

        new_root = Path(new_path)
        new_root.mkdir(parents=True, exist_ok=True)
        self.runner.run(clone, cwd=new_root)
        return new_root / repo.name

    def ensure_default_branch(self, path: Path, repo: RepositorySpec) -> None:
        """
        Move the repository to the configured default branch.

        GitHub creates ``main``. When the configured branch differs, it is
        created (or checked out), pushed, made the default on GitHub and
        the remote ``main`` is removed.
        """
        current = self.runner.run(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=path).stdout
        if current == self.branch:
            return

        local_ref = ["git", "show-ref", "--verify", "--quiet", f"refs/heads/{self.branch}"]
        if self.runner.run(local_ref, cwd=path, check=False).ok:
            self.runner.run(["git", "checkout", self.branch], cwd=path)
            return

        log_info(f"Switching default branch to {self.branch}")
        self.runner.run(["git", "checkout", "-b", self.branch], cwd=path)
        self.runner.run(["git", "push", "-u", "origin", self.branch], cwd=path)
        self.runner.run(
            ["gh", "repo", "edit", self.full_name(repo), "--default-branch", self.branch],
            cwd=path,
        )

        remote_main = ["git", "show-ref", "--verify", "--quiet", "refs/remotes/origin/main"]
        if self.runner.run(remote_main, cwd=path, check=False).ok:
            self.best_effort(
                ["git", "push", "origin", "--delete", "main"],
                "Could not delete remote main branch",
                cwd=path,
            )

    def configure_repository(self, repo: RepositorySpec) -> bool:
        log_info("Configuring repository settings")
        return self.best_effort(
            [
                "gh", "repo", "edit", self.full_name(repo),
                "--enable-issues",
                "--enable-wiki",
                "--enable-discussions",
                "--enable-projects",
                "--enable-auto-merge",
                "--enable-squash-merge",
                "--enable-rebase-merge",
                "--delete-branch-on-merge",
                "--add-topic", REPOSITORY_TOPICS,
            ],
            "Some settings may not have been applied",
        )

    def setup_environments(self, repo: RepositorySpec) -> None:
        """Create the ``staging`` and ``production`` deployment environments."""
        log_info("Setting up deployment environments")
        for name, body in ENVIRONMENTS.items():
            self.best_effort(
                [
                    "gh", "api", "--method", "PUT",
                    f"repos/{self.full_name(repo)}/environments/{name}",
                    "--input", "-",
                ],
                f"{name.capitalize()} environment setup failed",
                input_text=json.dumps(body),
            )

    def setup_secrets(
        self,
        repo: RepositorySpec,
        secrets: Sequence[tuple[str, str | None, str]] | None = None,
    ) -> None:
        """
        Set repository and environment secrets.

        Values are piped through stdin so they never appear on a command
        line. The defaults are placeholders to be replaced later.
        """
        log_info("Setting up repository secrets")
        for name, environment, value in secrets or DEFAULT_SECRETS:
            args = ["gh", "secret", "set", name, "--repo", self.full_name(repo)]
            if environment:
                args += ["--env", environment]
            where = f" ({environment})" if environment else ""
            self.best_effort(args, f"Could not set secret {name}{where}", input_text=value)

    def setup_branch_protection(self, repo: RepositorySpec) -> bool:
        log_info(f"Setting up branch protection for {self.branch} branch")
        return self.best_effort(
            [
                "gh", "api", "--method", "PUT",
                f"repos/{self.full_name(repo)}/branches/{self.branch}/protection",
                "--input", "-",
            ],
            "Branch protection partially applied",
            input_text=json.dumps(branch_protection_body()),
        )

    def commit_and_push(self, path: Path, message: str = COMMIT_MESSAGE) -> bool:
        """
        Commit everything in the working tree and push the default branch.

        Returns
        -------
        bool
            Whether a commit was created.
        """
        log_info("Committing and pushing initial setup")
        self.runner.run(["git", "add", "."], cwd=path)
        status = self.runner.run(["git", "status", "--porcelain"], cwd=path)
        committed = bool(status.stdout)
        if committed:
            self.runner.run(["git", "commit", "-m", message], cwd=path)
        else:
            log_info("Nothing to commit, working tree clean")
        self.runner.run(["git", "push", "-u", "origin", self.branch], cwd=path)
        return committed

    # -------------------------------------------------------------------------
    # Full Pipeline
    # -------------------------------------------------------------------------

    def provision(
        self,
        repo: RepositorySpec,
        *,
        protect: bool = False,
        environments: bool = False,
        secrets: bool = False,
    ) -> ProvisionResult:
        """
        Create and set up one repository.

        Parameters
        ----------
        repo : RepositorySpec
            Repository to create.

        protect : bool, default=False
            Apply branch protection after the first push.

        environments : bool, default=False
            Create staging / production environments.

        secrets : bool, default=False
            Set placeholder secrets.

        Returns
        -------
        ProvisionResult
            Outcome including best-effort warnings.

        Raises
        ------
        NetforgeError
            If a required step fails. Warnings gathered so far stay on
            ``self.warnings``.
        """
        self.warnings = []
        result = ProvisionResult(
            success=False,
            repository=self.full_name(repo),
            url=self.repository_url(repo),
        )

        console.print(settings_table("Using configuration", [
            ("GitHub Organization", self.org),
            ("Company Name", self.config.company_name),
            ("Repository Path", str(self.config.repository_root(self.environment))),
            ("Repository Visibility", repo.effective_visibility(self.config).value),
            ("License", repo.effective_license(self.config).spdx_id),
            ("Default Branch", self.branch),
        ]))

        self.check_dependencies()
        self.create_repository(repo)
        path = self.clone_or_open(repo)
        result.local_path = path
        self.ensure_default_branch(path, repo)

        result.files_created = scaffold_repository(
            path, self.config, repo, Platform.GITHUB, confirm=self.confirm
        )
        write_user_nuget_config(self.config, self.home)

        self.configure_repository(repo)
        if environments:
            self.setup_environments(repo)
        if secrets:
            self.setup_secrets(repo)

        self.commit_and_push(path)

        if protect:
            self.setup_branch_protection(repo)

        result.success = True
        result.warnings.extend(self.warnings)

        print_panel(
            f"[bold green]Repository {repo.name} setup completed successfully![/]\n\n"
            f"[dim]Repository URL:[/] {result.url}\n"
            f"[dim]Local path:[/] {result.local_path}\n\n"
            "[bold]Next steps:[/]\n"
            "  1. Add your library code to the /src folder\n"
            "  2. Add tests to the /tests folder\n"
            "  3. Push your first commit to trigger CI/CD",
            title="Success",
            style="green",
        )
        return result
