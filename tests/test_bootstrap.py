"""Tests for netforge.bootstrap."""

from pathlib import Path

import pytest

from netforge.bootstrap import (
    DEFAULT_REPOSITORIES,
    TEST_REPOSITORY,
    WORKFLOWS_REPOSITORY,
    BootstrapChoice,
    create_workflows_repository,
    render_workflows_repository,
    run_setup_all,
    setup_repositories,
)
from netforge.github import GitHubProvisioner
from netforge.models import EnvironmentKind, ForgeConfig


@pytest.fixture
def provisioner(tmp_path: Path, github_config: ForgeConfig, fake_runner, always_yes) -> GitHubProvisioner:
    return GitHubProvisioner(
        github_config,
        fake_runner,
        environment=EnvironmentKind.LINUX,
        confirm=always_yes,
        home=tmp_path / "home",
    )


def _created(fake_runner) -> list[str]:
    return [call[3] for call in fake_runner.find("gh", "repo", "create")]


class TestWorkflowsRepository:

    def test_rendered_files(self, provisioner) -> None:
        files = {p.as_posix(): c for p, c in render_workflows_repository(provisioner).items()}

        assert set(files) == {
            "README.md",
            "docs/workflows.md",
            "docs/usage.md",
            "workflows/dotnet-ci-cd.yml",
            "workflows/security.yml",
            "workflows/azure-keyvault.yml",
        }
        for name in DEFAULT_REPOSITORIES:
            assert f"`{name}`" in files["README.md"]
        assert "Acme" in files["README.md"]
        assert 'keyvault: "acme-keyvault"' in files["workflows/azure-keyvault.yml"]

    def test_create(self, provisioner, fake_runner, repos_root: Path) -> None:
        fake_runner.respond("git", "status", "--porcelain", stdout="?? README.md")

        result = create_workflows_repository(provisioner)

        assert result.success
        assert result.repository == f"acme/{WORKFLOWS_REPOSITORY}"
        create = fake_runner.find("gh", "repo", "create")[0]
        assert "--public" in create
        assert create[create.index("--license") + 1] == "MIT"
        assert (repos_root / WORKFLOWS_REPOSITORY / "docs" / "usage.md").exists()
        edit = fake_runner.find("gh", "repo", "edit")[0]
        assert "--enable-discussions" in edit
        assert fake_runner.called("git", "commit")


class TestSetupRepositories:

    def test_default_set(self, provisioner, fake_runner) -> None:
        results = setup_repositories(provisioner)

        assert [r.repository for r in results] == [f"acme/{n}" for n in DEFAULT_REPOSITORIES]
        assert all(r.success for r in results)
        assert _created(fake_runner) == [f"acme/{n}" for n in DEFAULT_REPOSITORIES]
        assert fake_runner.called("gh", "secret", "set")
        assert len(fake_runner.find("gh", "api", "--method", "PUT")) == 3 * len(DEFAULT_REPOSITORIES)

    def test_failure_does_not_stop_the_run(self, provisioner, fake_runner) -> None:
        fake_runner.fail("git", "clone", "https://github.com/acme/enhanced-enums.git")
        provisioner.confirm = lambda message, default=False: False

        results = setup_repositories(provisioner, ["smart-generators", "enhanced-enums", "developer-kit"])

        assert [r.success for r in results] == [True, False, True]
        assert results[1].errors
        assert _created(fake_runner)[-1] == "acme/developer-kit"

    def test_failed_result_keeps_warnings(self, provisioner, fake_runner) -> None:
        fake_runner.fail("gh", "repo", "edit")
        fake_runner.fail("git", "push", stderr="rejected")

        [result] = setup_repositories(provisioner, ["enhanced-enums"])

        assert not result.success
        assert "rejected" in result.errors[0]
        assert "Some settings may not have been applied" in result.warnings

    def test_unknown_name_gets_generic_description(self, provisioner, fake_runner) -> None:
        setup_repositories(provisioner, ["new-library"])

        create = fake_runner.find("gh", "repo", "create")[0]
        assert create[create.index("--description") + 1] == "new-library library for .NET development"


class TestSetupAll:

    def test_test_choice(self, provisioner, fake_runner) -> None:
        results = run_setup_all(provisioner, BootstrapChoice.TEST)

        assert [r.repository for r in results] == [
            f"acme/{WORKFLOWS_REPOSITORY}",
            f"acme/{TEST_REPOSITORY}",
        ]
        test_create = fake_runner.find("gh", "repo", "create")[1]
        assert "--private" in test_create

    def test_skip_choice(self, provisioner, fake_runner) -> None:
        results = run_setup_all(provisioner, BootstrapChoice.SKIP)

        assert len(results) == 1
        assert _created(fake_runner) == [f"acme/{WORKFLOWS_REPOSITORY}"]

    def test_all_choice(self, provisioner, fake_runner) -> None:
        results = run_setup_all(provisioner, BootstrapChoice.ALL)

        assert len(results) == 1 + len(DEFAULT_REPOSITORIES)

    def test_choice_descriptions(self) -> None:
        assert "5 repositories" in BootstrapChoice.ALL.description
        assert BootstrapChoice("skip") == BootstrapChoice.SKIP
