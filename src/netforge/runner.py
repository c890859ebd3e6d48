"""
netforge.runner - External Command Execution
============================================

Every interaction with ``gh``, ``az``, ``git``, ``dotnet`` and ``nbgv`` goes
through ``CommandRunner``. Keeping it in one place lets the provisioners stay
readable (a list of commands) and lets tests substitute a recording runner.

Two calling styles mirror how the setup steps behave:

- ``run``: the step matters. A non-zero exit raises ``CommandError``.
- ``try_run``: the step is best-effort (branch protection, topics, secrets).
  A non-zero exit logs a warning and the pipeline carries on.

Usage Example
-------------
>>> runner = CommandRunner()
>>> runner.require_tools(["git", "gh"])
>>> result = runner.run(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=repo)
>>> result.stdout
'master'
"""

from __future__ import annotations

import json
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from netforge.console import log_command, log_info, log_warn
from netforge.exceptions import (
    AuthenticationError,
    CommandError,
    ToolNotFoundError,
)


@dataclass
class CommandResult:
    """
    Captured outcome of one external command.

    Attributes
    ----------
    args : list[str]
        The command line that was run.

    returncode : int
        Exit status (0 on success).

    stdout : str
        Captured standard output, stripped of trailing whitespace.

    stderr : str
        Captured standard error.
    """

    args: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """
    Run external commands and capture their output.

    Parameters
    ----------
    dry_run : bool, default=False
        Print commands instead of running them. Every command then reports
        success with empty output.

    verbose : bool, default=False
        Echo each command before running it.
    """

    def __init__(self, *, dry_run: bool = False, verbose: bool = False) -> None:
        self.dry_run = dry_run
        self.verbose = verbose

    # -------------------------------------------------------------------------
    # Tool discovery
    # -------------------------------------------------------------------------

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def require_tools(self, tools: Sequence[str]) -> None:
        """
        Make sure every tool is on PATH.

        Raises
        ------
        ToolNotFoundError
            Listing all missing tools, not just the first one.
        """
        missing = [tool for tool in tools if self.which(tool) is None]
        if missing:
            raise ToolNotFoundError(missing)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Parameters
        ----------
        args : Sequence[str]
            Command and arguments.

        cwd : Path | None
            Working directory.

        input_text : str | None
            Text piped to standard input (used for secrets and JSON bodies).

        check : bool, default=True
            Raise on a non-zero exit status.

        Returns
        -------
        CommandResult
            The captured result.

        Raises
        ------
        CommandError
            If ``check`` is True and the command fails.
        ToolNotFoundError
            If the executable does not exist.
        """
        argv = [str(a) for a in args]

        if self.verbose or self.dry_run:
            log_command(argv)

        if self.dry_run:
            return CommandResult(args=argv)

        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                input=input_text,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError([argv[0]]) from e

        result = CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=(completed.stdout or "").rstrip(),
            stderr=completed.stderr or "",
        )

        if check and not result.ok:
            raise CommandError(argv, result.returncode, result.stderr)

        return result

    def run_json(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
    ) -> Any:
        """
        Run a command whose standard output is JSON and parse it.

        In dry-run mode an empty dict is returned.
        """
        result = self.run(args, cwd=cwd, input_text=input_text)
        if not result.stdout:
            return {}
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise CommandError(
                list(args), result.returncode, f"Unexpected non-JSON output: {e}"
            ) from e

    def try_run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
        warning: str | None = None,
    ) -> CommandResult:
        """
        Best-effort variant of ``run``.

        A failing command (or a missing executable) is reported as a
        warning and never raises.

        Parameters
        ----------
        warning : str | None
            Message printed on failure; defaults to the command line.
        """
        try:
            result = self.run(args, cwd=cwd, input_text=input_text, check=False)
        except ToolNotFoundError as e:
            result = CommandResult(args=[str(a) for a in args], returncode=127, stderr=str(e))

        if not result.ok:
            log_warn(warning or f"Command failed: {' '.join(result.args)}")
        return result


# =============================================================================
# Platform Authentication
# =============================================================================


def check_github_auth(runner: CommandRunner) -> None:
    """
    Verify ``gh`` is logged in.

    Raises
    ------
    AuthenticationError
        If ``gh auth status`` fails.
    """
    result = runner.run(["gh", "auth", "status"], check=False)
    if not result.ok:
        raise AuthenticationError("Not authenticated with GitHub. Run 'gh auth login' first.")


def ensure_azure_cli(runner: CommandRunner, *, interactive: bool = True) -> None:
    """
    Make sure the Azure CLI is installed, logged in and has the DevOps extension.

    Parameters
    ----------
    runner : CommandRunner
        Runner used for the ``az`` calls.

    interactive : bool, default=True
        Run ``az login`` when not logged in. When False a missing login
        raises instead.

    Raises
    ------
    ToolNotFoundError
        If ``az`` is not installed.
    AuthenticationError
        If not logged in and ``interactive`` is False.
    """
    runner.require_tools(["az"])

    if not runner.run(["az", "account", "show"], check=False).ok:
        if not interactive:
            raise AuthenticationError("Not logged in to Azure CLI. Run 'az login' first.")
        log_info("Not logged in to Azure CLI. Please log in...")
        runner.run(["az", "login"])

    if not runner.run(["az", "extension", "show", "--name", "azure-devops"], check=False).ok:
        log_info("Installing Azure DevOps extension...")
        runner.run(["az", "extension", "add", "--name", "azure-devops"])
