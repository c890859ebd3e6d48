"""
netforge.updater - Bulk Update of Existing Repositories
=======================================================

Brings repositories created earlier up to date with the current templates:
workflows, build configuration and (optionally) the default branch.

For each repository the updater:

    1. Clones it, or pulls when a local clone exists
    2. Optionally moves GitHub's default branch to the configured one
    3. Re-renders the workflow and / or config templates
    4. Writes only the files whose content changed
    5. Commits and pushes when ``git status --porcelain`` reports changes

Usage Example
-------------
>>> updater = RepositoryUpdater(config, CommandRunner())
>>> names = list_organization_repositories(updater.runner, config.github_organization)
>>> results = [updater.update_repository(name) for name in names]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from netforge.config import detect_environment
from netforge.console import log_info
from netforge.generator import CONFIG_OUTPUTS, WORKFLOW_OUTPUTS, render_repository_files
from netforge.models import ForgeConfig, Platform, RepositorySpec
from netforge.runner import CommandRunner


DEFAULT_REPOSITORY_PATTERN = r"smart-|enhanced-|developer-kit"

UPDATE_COMMIT_MESSAGE = """Update CI/CD configuration

- Update workflows to latest version
- Update configuration files
- Maintain compatibility with .NET 9/10"""

# Added only when missing; never overwritten
ADD_IF_MISSING = frozenset({".editorconfig"})


@dataclass
class UpdateResult:
    """
    Outcome of updating one repository.

    Attributes
    ----------
    repository : str
        Repository name.

    files_updated : list[Path]
        Files whose content changed (relative to the repository root).

    branch_fixed : bool
        Whether the default branch was changed on GitHub.

    pushed : bool
        Whether a commit was pushed.
    """

    repository: str
    files_updated: list[Path] = field(default_factory=list)
    branch_fixed: bool = False
    pushed: bool = False


def list_organization_repositories(
    runner: CommandRunner,
    organization: str,
    pattern: str = DEFAULT_REPOSITORY_PATTERN,
) -> list[str]:
    """
    Names of the organization's repositories matching ``pattern``.

    Parameters
    ----------
    runner : CommandRunner
        Runs ``gh repo list``.

    organization : str
        GitHub organization.

    pattern : str
        Regular expression searched in each name.

    Returns
    -------
    list[str]
        Matching names, in the order gh returns them (at most 100 are
        listed).
    """
    repos = runner.run_json(
        ["gh", "repo", "list", organization, "--limit", "100", "--json", "name"]
    )
    regex = re.compile(pattern)
    return [r["name"] for r in repos or [] if regex.search(r["name"])]


class RepositoryUpdater:
    """
    Update local clones of an organization's repositories.

    Parameters
    ----------
    config : ForgeConfig
        Organization, default branch and template values.

    runner : CommandRunner | None
        Runs gh / git.

    root : Path | None
        Directory holding the clones; defaults to the configured
        repository root for this host.
    """

    def __init__(
        self,
        config: ForgeConfig,
        runner: CommandRunner | None = None,
        *,
        root: Path | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or CommandRunner()
        self.root = root or config.repository_root(detect_environment())

    @property
    def branch(self) -> str:
        return self.config.default_branch

    def full_name(self, name: str) -> str:
        return f"{self.config.github_organization}/{name}"

    def sync_clone(self, name: str) -> Path:
        """Pull an existing clone or clone the repository."""
        path = self.root / name
        if path.is_dir():
            self.runner.run(["git", "pull"], cwd=path)
        else:
            self.root.mkdir(parents=True, exist_ok=True)
            self.runner.run(["gh", "repo", "clone", self.full_name(name)], cwd=self.root)
        return path

    def fix_default_branch(self, path: Path, name: str) -> bool:
        """
        Make the configured branch GitHub's default branch.

        Returns
        -------
        bool
            True when the default branch was changed.
        """
        log_info(f"Fixing default branch to {self.branch}...")
        current = self.runner.run(
            [
                "gh", "repo", "view", self.full_name(name),
                "--json", "defaultBranchRef", "-q", ".defaultBranchRef.name",
            ],
            cwd=path,
        ).stdout

        if current == self.branch:
            log_info(f"Default branch is already {self.branch}")
            return False

        log_info(f"Current default branch is {current}, changing to {self.branch}...")
        local_ref = ["git", "show-ref", "--verify", "--quiet", f"refs/heads/{self.branch}"]
        if not self.runner.run(local_ref, cwd=path, check=False).ok:
            self.runner.run(["git", "checkout", "-b", self.branch], cwd=path)
        else:
            self.runner.run(["git", "checkout", self.branch], cwd=path)
        self.runner.run(["git", "push", "-u", "origin", self.branch], cwd=path)

        self.runner.run(
            ["gh", "repo", "edit", self.full_name(name), "--default-branch", self.branch],
            cwd=path,
        )
        if current == "main":
            self.runner.try_run(
                ["git", "push", "origin", "--delete", "main"],
                cwd=path,
                warning="Could not delete remote main branch",
            )
        return True

    def refresh_files(self, path: Path, name: str, *, workflows: bool, config_files: bool) -> list[Path]:
        """
        Re-render templates and write those whose content changed.

        Returns
        -------
        list[Path]
            Relative paths of the files written.
        """
        wanted: set[str] = set()
        if workflows:
            log_info("Updating workflows...")
            wanted |= WORKFLOW_OUTPUTS
        if config_files:
            log_info("Updating configuration files...")
            wanted |= CONFIG_OUTPUTS | ADD_IF_MISSING

        rendered = render_repository_files(
            self.config, RepositorySpec(name=name), Platform.GITHUB
        )

        updated: list[Path] = []
        for relative, content in rendered.items():
            key = relative.as_posix()
            if key not in wanted:
                continue
            target = path / relative
            if target.exists():
                if key in ADD_IF_MISSING or target.read_text(encoding="utf-8") == content:
                    continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            log_info(f"Updated {key}")
            updated.append(relative)
        return updated

    def update_repository(
        self,
        name: str,
        *,
        workflows: bool = True,
        config_files: bool = True,
        fix_branch: bool = False,
    ) -> UpdateResult:
        """
        Update one repository and push the result.

        Parameters
        ----------
        name : str
            Repository name.

        workflows : bool, default=True
            Refresh the GitHub Actions workflows.

        config_files : bool, default=True
            Refresh build / versioning / dependabot / CODEOWNERS files.

        fix_branch : bool, default=False
            Also move GitHub's default branch to the configured branch.
        """
        log_info(f"=== Updating {name} ===")
        result = UpdateResult(repository=name)
        path = self.sync_clone(name)

        if fix_branch:
            result.branch_fixed = self.fix_default_branch(path, name)

        result.files_updated = self.refresh_files(
            path, name, workflows=workflows, config_files=config_files
        )

        status = self.runner.run(["git", "status", "--porcelain"], cwd=path)
        if status.stdout:
            self.runner.run(["git", "add", "."], cwd=path)
            self.runner.run(["git", "commit", "-m", UPDATE_COMMIT_MESSAGE], cwd=path)
            self.runner.run(["git", "push"], cwd=path)
            result.pushed = True
            log_info(f"Updates pushed to {name}")
        else:
            log_info(f"No updates needed for {name}")

        return result
