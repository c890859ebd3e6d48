"""
Tests for netforge.cli
======================

This module contains tests for the command-line interface.
Tests use Typer's CliRunner; external commands go to a RecordingRunner
patched in place of ``CommandRunner``.

Test Organization
-----------------
- TestVersionCommand: Tests for --version flag
- TestHelpOutput: Tests for help text
- TestNewCommand: Tests for the new command
- TestBulkCommands: setup-all, setup-repos, update
- TestAddCommand: Tests for the add command
- TestKeyVaultCommands: keyvault github / azure
- TestConfigCommands: config show / init
"""

import json
from pathlib import Path
from unittest import mock

import pytest
from typer.testing import CliRunner

from netforge import __version__
from netforge.cli import app
from netforge.models import ForgeConfig, Platform


# =============================================================================
# Fixtures
# =============================================================================

def _text(result) -> str:
    """Output with rich line wrapping undone."""
    return " ".join(result.output.split())


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep NuGet.Config and config lookups inside tmp_path."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("NETFORGE_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture
def commands(fake_runner):
    """Route every CommandRunner the CLI creates to ``fake_runner``."""
    with mock.patch("netforge.cli.CommandRunner", return_value=fake_runner):
        yield fake_runner


# =============================================================================
# Version and Help
# =============================================================================

class TestVersionCommand:
    """Tests for the --version flag."""

    def test_version_flag(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in _text(result)

    def test_version_short_flag(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["-V"])

        assert result.exit_code == 0
        assert __version__ in _text(result)


class TestHelpOutput:

    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("new", "setup-all", "setup-repos", "update", "add", "keyvault", "config"):
            assert command in _text(result)

    def test_keyvault_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["keyvault", "--help"])

        assert result.exit_code == 0
        assert "github" in _text(result)
        assert "azure" in _text(result)


# =============================================================================
# New Command
# =============================================================================

class TestNewCommand:
    """Tests for the new command."""

    def test_invalid_platform(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["new", "my-lib", "--platform", "gitlab"])

        assert result.exit_code == 1
        assert "Invalid platform" in _text(result)
        assert "github, azure" in _text(result)

    def test_invalid_license(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["new", "my-lib", "--platform", "github", "--license", "GPL"])

        assert result.exit_code == 1
        assert "Apache-2.0, MIT" in _text(result)

    def test_invalid_visibility(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["new", "my-lib", "--platform", "github", "--visibility", "secret"])

        assert result.exit_code == 1
        assert "private, public" in _text(result)

    def test_invalid_name(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["new", "-bad-", "--platform", "github"])

        assert result.exit_code != 0

    def test_yes_requires_platform(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["new", "my-lib", "--yes"])

        assert result.exit_code == 1
        assert "--platform" in _text(result)

    def test_platform_prompt(self, runner: CliRunner, config_file: Path, commands) -> None:
        question = mock.Mock()
        question.ask.return_value = Platform.GITHUB
        with mock.patch("netforge.cli.questionary.select", return_value=question) as select:
            result = runner.invoke(app, ["new", "my-lib", "--config", str(config_file), "--yes"])

        # --yes without --platform never prompts
        assert result.exit_code == 1
        select.assert_not_called()

        with mock.patch("netforge.cli.questionary.select", return_value=question) as select:
            result = runner.invoke(app, ["new", "my-lib", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert select.call_args.args[0] == "Choose your platform"

    def test_platform_prompt_cancelled(self, runner: CliRunner) -> None:
        question = mock.Mock()
        question.ask.return_value = None
        with mock.patch("netforge.cli.questionary.select", return_value=question):
            result = runner.invoke(app, ["new", "my-lib"])

        assert result.exit_code == 1

    def test_github(self, runner: CliRunner, config_file: Path, repos_root: Path, commands) -> None:
        result = runner.invoke(app, [
            "new", "my-lib",
            "--platform", "github",
            "--config", str(config_file),
            "--license", "mit",
            "--protect",
            "--yes",
        ])

        assert result.exit_code == 0, result.output
        assert (repos_root / "my-lib" / ".github" / "workflows" / "dotnet-ci-cd.yml").exists()
        create = commands.find("gh", "repo", "create")[0]
        assert create[create.index("--license") + 1] == "MIT"
        assert commands.called("gh", "api", "--method", "PUT", "repos/acme/my-lib/branches/master/protection")
        assert not commands.called("gh", "secret")

    def test_github_missing_config_non_interactive(self, runner: CliRunner, tmp_path: Path, commands) -> None:
        result = runner.invoke(app, [
            "new", "my-lib", "--platform", "github",
            "--config", str(tmp_path / "missing.json"),
            "--yes",
        ])

        assert result.exit_code == 1
        assert "Error:" in _text(result)
        assert commands.calls == []

    def test_github_command_failure(self, runner: CliRunner, config_file: Path, commands) -> None:
        commands.fail("gh", "auth", "status")

        result = runner.invoke(app, [
            "new", "my-lib", "--platform", "github", "--config", str(config_file), "--yes",
        ])

        assert result.exit_code == 1
        assert "Error:" in _text(result)

    def test_azure_with_org_and_project(self, runner: CliRunner, tmp_path: Path, commands) -> None:
        config_path = tmp_path / "azure.json"
        config_path.write_text(json.dumps(
            ForgeConfig(CompanyName="Acme", LinuxPath=str(tmp_path / "src"), WSLPath=str(tmp_path / "src")).to_json_dict()
        ))

        result = runner.invoke(app, [
            "new", "my-lib",
            "--platform", "azure",
            "--org", "acme-org",
            "--project", "Libraries",
            "--config", str(config_path),
            "--yes",
        ])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "src" / "my-lib" / "azure-pipelines.yml").exists()
        assert commands.called(
            "az", "devops", "configure", "--defaults",
            "organization=https://dev.azure.com/acme-org", "project=Libraries",
        )

    def test_azure_existing_directory(self, runner: CliRunner, tmp_path: Path, commands) -> None:
        (tmp_path / "src" / "my-lib").mkdir(parents=True)
        config_path = tmp_path / "azure.json"
        config_path.write_text(json.dumps(
            ForgeConfig(CompanyName="Acme", LinuxPath=str(tmp_path / "src"), WSLPath=str(tmp_path / "src")).to_json_dict()
        ))

        result = runner.invoke(app, [
            "new", "my-lib", "--platform", "azure",
            "--org", "acme-org", "--project", "Libraries",
            "--config", str(config_path), "--yes",
        ])

        assert result.exit_code == 1
        assert "already exists" in _text(result)


# =============================================================================
# Bulk Commands
# =============================================================================

class TestBulkCommands:

    def test_setup_all_skip(self, runner: CliRunner, config_file: Path, commands) -> None:
        result = runner.invoke(app, ["setup-all", "--config", str(config_file), "--choice", "skip"])

        assert result.exit_code == 0, result.output
        assert [c[3] for c in commands.find("gh", "repo", "create")] == ["acme/ci-cd-workflows"]

    def test_setup_all_invalid_choice(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(app, ["setup-all", "--config", str(config_file), "--choice", "some"])

        assert result.exit_code == 1
        assert "all, test, skip" in _text(result)

    def test_setup_repos(self, runner: CliRunner, config_file: Path, commands) -> None:
        result = runner.invoke(app, ["setup-repos", "lib-a", "lib-b", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert [c[3] for c in commands.find("gh", "repo", "create")] == ["acme/lib-a", "acme/lib-b"]

    def test_setup_repos_reports_failure(self, runner: CliRunner, config_file: Path, commands) -> None:
        commands.fail("git", "push")

        result = runner.invoke(app, ["setup-repos", "lib-a", "--config", str(config_file)])

        assert result.exit_code == 1

    def test_update_needs_names(self, runner: CliRunner, config_file: Path, commands) -> None:
        result = runner.invoke(app, ["update", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "No repositories specified" in _text(result)

    def test_update_exclusive_flags(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(app, [
            "update", "x", "--workflows-only", "--config-only", "--config", str(config_file),
        ])

        assert result.exit_code == 1

    def test_update_named(self, runner: CliRunner, config_file: Path, tmp_path: Path, commands) -> None:
        clones = tmp_path / "clones"
        (clones / "enhanced-enums").mkdir(parents=True)
        commands.respond("git", "status", "--porcelain", stdout="?? .github/")

        result = runner.invoke(app, [
            "update", "enhanced-enums",
            "--workflows-only",
            "--path", str(clones),
            "--branch", "main",
            "--config", str(config_file),
        ])

        assert result.exit_code == 0, result.output
        workflow = clones / "enhanced-enums" / ".github" / "workflows" / "dotnet-ci-cd.yml"
        assert "branches: [ main, develop" in workflow.read_text()
        assert not (clones / "enhanced-enums" / "version.json").exists()
        assert commands.called("git", "push")

    def test_update_all(self, runner: CliRunner, config_file: Path, tmp_path: Path, commands) -> None:
        commands.respond("gh", "repo", "list", stdout=[{"name": "smart-generators"}, {"name": "website"}])

        result = runner.invoke(app, [
            "update", "--all", "--org", "other-org",
            "--path", str(tmp_path / "clones"),
            "--config", str(config_file),
        ])

        assert result.exit_code == 0, result.output
        assert commands.called("gh", "repo", "list", "other-org")
        assert commands.called("gh", "repo", "clone", "other-org/smart-generators")
        assert not commands.called("gh", "repo", "clone", "other-org/website")

    def test_update_add_repo(self, runner: CliRunner, config_file: Path, commands) -> None:
        result = runner.invoke(app, ["update", "--add-repo", "new-library", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert commands.called("gh", "repo", "create", "acme/new-library")

    def test_update_add_repo_failure(self, runner: CliRunner, config_file: Path, commands) -> None:
        commands.fail("git", "push")

        result = runner.invoke(app, ["update", "--add-repo", "new-library", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "failed" in _text(result)


# =============================================================================
# Add Command
# =============================================================================

class TestAddCommand:

    def test_unknown_feature(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["add", "docker", "--path", str(tmp_path)])

        assert result.exit_code == 1
        assert "Unknown feature" in _text(result)

    def test_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        config_path = tmp_path / "broken.json"
        config_path.write_text("{not json")

        result = runner.invoke(app, [
            "add", "editorconfig", "--path", str(tmp_path), "--config", str(config_path),
        ])

        assert result.exit_code == 1
        assert "Error:" in _text(result)
        assert not (tmp_path / ".editorconfig").exists()

    def test_add_and_refuse_overwrite(self, runner: CliRunner, tmp_path: Path, config_file: Path) -> None:
        repo = tmp_path / "enhanced-enums"
        repo.mkdir()
        args = ["add", "workflows", "--path", str(repo), "--config", str(config_file)]

        first = runner.invoke(app, args)
        second = runner.invoke(app, args)
        forced = runner.invoke(app, [*args, "--force"])

        assert first.exit_code == 0, first.output
        assert (repo / ".github" / "workflows" / "security.yml").exists()
        assert second.exit_code == 1
        assert "--force" in _text(second)
        assert forced.exit_code == 0

    def test_add_azure_keyvault(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["add", "keyvault", "--platform", "azure", "--path", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "pipelines" / "azure-keyvault.yml").exists()


# =============================================================================
# Key Vault Commands
# =============================================================================

class TestKeyVaultCommands:

    def test_github(self, runner: CliRunner, config_file: Path, tmp_path: Path, commands) -> None:
        clones = tmp_path / "clones"
        (clones / "smart-generators").mkdir(parents=True)

        result = runner.invoke(app, [
            "keyvault", "github", "smart-generators",
            "--path", str(clones),
            "--config", str(config_file),
        ])

        assert result.exit_code == 0, result.output
        workflow = clones / "smart-generators" / ".github" / "workflows" / "azure-keyvault.yml"
        assert 'keyvault: "acme-keyvault"' in workflow.read_text()
        assert commands.calls == []

    def test_github_provision(self, runner: CliRunner, config_file: Path, tmp_path: Path, commands) -> None:
        result = runner.invoke(app, [
            "keyvault", "github",
            "--vault", "kv1",
            "--provision",
            "--path", str(tmp_path),
            "--config", str(config_file),
        ])

        assert result.exit_code == 0, result.output
        assert commands.called("az", "group", "create", "--name", "kv1-rg", "--location", "eastus")

    def test_azure(self, runner: CliRunner, commands) -> None:
        commands.respond("az", "account", "show", "-o", "json", stdout={"id": "sub", "tenantId": "ten"})
        commands.respond("az", "ad", "sp", stdout={"appId": "app", "password": "s3cret"})

        result = runner.invoke(app, ["keyvault", "azure", "--vault", "kv1", "--group", "secrets"])

        assert result.exit_code == 0, result.output
        assert "app" in _text(result)
        assert "s3cret" not in _text(result)

    def test_azure_requires_vault(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["keyvault", "azure", "--group", "secrets"])

        assert result.exit_code != 0


# =============================================================================
# Config Commands
# =============================================================================

class TestConfigCommands:

    def test_show(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(app, ["config", "show", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "GitHubOrganization" in _text(result)
        assert "acme" in _text(result)

    def test_show_missing(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(app, ["config", "show", "--config", str(tmp_path / "none.json")])

        assert result.exit_code == 1
        assert "config init" in _text(result)

    def test_init(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        prompted = ForgeConfig(AzureOrganization="o", AzureProject="p", CompanyName="c", LinuxPath="/src")
        with mock.patch.dict("netforge.cli.PROMPTS", {Platform.AZURE: lambda existing: prompted}):
            result = runner.invoke(app, ["config", "init", "--platform", "azure", "--config", str(path)])

        assert result.exit_code == 0, result.output
        assert json.loads(path.read_text())["AzureProject"] == "p"
