"""
Tests for netforge.runner
=========================

``subprocess.run`` and ``shutil.which`` are patched; nothing external runs.
"""

import subprocess
from unittest import mock

import pytest

from netforge.exceptions import AuthenticationError, CommandError, ToolNotFoundError
from netforge.runner import CommandRunner, check_github_auth, ensure_azure_cli


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCommandRunner:
    """Tests for CommandRunner."""

    def test_run_captures_output(self) -> None:
        with mock.patch("netforge.runner.subprocess.run", return_value=_completed(stdout="master\n")) as run:
            result = CommandRunner().run(["git", "rev-parse", "--abbrev-ref", "HEAD"])

        assert result.ok
        assert result.stdout == "master"
        run.assert_called_once()
        assert run.call_args.args[0] == ["git", "rev-parse", "--abbrev-ref", "HEAD"]
        assert run.call_args.kwargs["capture_output"] is True

    def test_run_passes_input_and_cwd(self, tmp_path) -> None:
        with mock.patch("netforge.runner.subprocess.run", return_value=_completed()) as run:
            CommandRunner().run(["gh", "secret", "set", "X"], cwd=tmp_path, input_text="value")

        assert run.call_args.kwargs["input"] == "value"
        assert run.call_args.kwargs["cwd"] == tmp_path

    def test_failure_raises_with_stderr(self) -> None:
        with mock.patch(
            "netforge.runner.subprocess.run",
            return_value=_completed(returncode=2, stderr="fatal: not a repo"),
        ):
            with pytest.raises(CommandError) as exc_info:
                CommandRunner().run(["git", "status"])

        assert exc_info.value.returncode == 2
        assert "fatal: not a repo" in str(exc_info.value)

    def test_failure_without_check(self) -> None:
        with mock.patch("netforge.runner.subprocess.run", return_value=_completed(returncode=1)):
            result = CommandRunner().run(["gh", "auth", "status"], check=False)

        assert not result.ok

    def test_missing_executable(self) -> None:
        with mock.patch("netforge.runner.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(ToolNotFoundError):
                CommandRunner().run(["nbgv", "install"])

    def test_arguments_stringified(self, tmp_path) -> None:
        with mock.patch("netforge.runner.subprocess.run", return_value=_completed()) as run:
            CommandRunner().run(["ls", tmp_path])

        assert run.call_args.args[0] == ["ls", str(tmp_path)]

    def test_dry_run_runs_nothing(self) -> None:
        with mock.patch("netforge.runner.subprocess.run") as run:
            runner = CommandRunner(dry_run=True)
            result = runner.run(["gh", "repo", "create", "acme/x"])
            data = runner.run_json(["az", "repos", "create"])

        run.assert_not_called()
        assert result.ok
        assert data == {}

    def test_run_json(self) -> None:
        with mock.patch(
            "netforge.runner.subprocess.run",
            return_value=_completed(stdout='{"id": "42", "name": "x"}'),
        ):
            data = CommandRunner().run_json(["az", "repos", "create", "--name", "x"])

        assert data == {"id": "42", "name": "x"}

    def test_run_json_rejects_garbage(self) -> None:
        with mock.patch("netforge.runner.subprocess.run", return_value=_completed(stdout="oops")):
            with pytest.raises(CommandError):
                CommandRunner().run_json(["az", "account", "show"])

    def test_try_run_never_raises(self) -> None:
        with mock.patch("netforge.runner.subprocess.run", return_value=_completed(returncode=1)):
            result = CommandRunner().try_run(["gh", "repo", "edit"], warning="settings failed")

        assert not result.ok

    def test_try_run_missing_tool(self) -> None:
        with mock.patch("netforge.runner.subprocess.run", side_effect=FileNotFoundError()):
            result = CommandRunner().try_run(["nbgv", "install"])

        assert result.returncode == 127

    def test_require_tools_lists_all_missing(self) -> None:
        with mock.patch("netforge.runner.shutil.which", side_effect=lambda t: None if t != "git" else "/usr/bin/git"):
            with pytest.raises(ToolNotFoundError) as exc_info:
                CommandRunner().require_tools(["gh", "git", "dotnet"])

        assert exc_info.value.tools == ["gh", "dotnet"]


class TestAuthentication:

    def test_github_auth_ok(self, fake_runner) -> None:
        check_github_auth(fake_runner)
        assert fake_runner.calls == [["gh", "auth", "status"]]

    def test_github_auth_missing(self, fake_runner) -> None:
        fake_runner.fail("gh", "auth", "status")
        with pytest.raises(AuthenticationError):
            check_github_auth(fake_runner)

    def test_azure_cli_ready(self, fake_runner) -> None:
        ensure_azure_cli(fake_runner)

        assert not fake_runner.called("az", "login")
        assert not fake_runner.called("az", "extension", "add")

    def test_azure_login_and_extension(self, fake_runner) -> None:
        fake_runner.fail("az", "account", "show")
        fake_runner.fail("az", "extension", "show")

        ensure_azure_cli(fake_runner)

        assert fake_runner.called("az", "login")
        assert fake_runner.called("az", "extension", "add", "--name", "azure-devops")

    def test_azure_not_logged_in_non_interactive(self, fake_runner) -> None:
        fake_runner.fail("az", "account", "show")
        with pytest.raises(AuthenticationError):
            ensure_azure_cli(fake_runner, interactive=False)

    def test_azure_cli_missing(self, runner_factory) -> None:
        runner = runner_factory(missing_tools=["az"])
        with pytest.raises(ToolNotFoundError):
            ensure_azure_cli(runner)
        assert runner.calls == []
