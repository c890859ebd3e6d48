"""
pytest configuration and shared fixtures for netforge tests.

This module provides fixtures and configuration used across all test modules.
Fixtures defined here are automatically available to all tests.

Fixtures
--------
github_config : ForgeConfig
    A complete GitHub configuration cloning into ``tmp_path/repos``.

azure_config : ForgeConfig
    A complete Azure DevOps configuration.

config_file : Path
    ``github_config`` saved as ``config.json``.

fake_runner : RecordingRunner
    A command runner that records commands instead of running them.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from netforge.exceptions import CommandError
from netforge.models import EnvironmentKind, ForgeConfig, License
from netforge.runner import CommandResult, CommandRunner


# =============================================================================
# Fake Runner
# =============================================================================

class RecordingRunner(CommandRunner):
    """
    CommandRunner that records every command and answers from a script.

    Commands succeed with empty output unless a response was registered
    for a prefix of their arguments. The longest matching prefix wins and,
    on equal length, the latest registration.
    """

    def __init__(self, missing_tools: Sequence[str] = ()) -> None:
        super().__init__()
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.inputs: list[str | None] = []
        self.missing_tools = set(missing_tools)
        self._responses: list[list] = []

    def respond(
        self,
        *prefix: str,
        stdout: str | dict | list = "",
        returncode: int = 0,
        stderr: str = "",
        times: int | None = None,
    ) -> None:
        """Answer commands starting with ``prefix``, at most ``times`` times when given."""
        if not isinstance(stdout, str):
            stdout = json.dumps(stdout)
        self._responses.append([list(prefix), returncode, stdout, stderr, times])

    def fail(self, *prefix: str, stderr: str = "boom", times: int | None = None) -> None:
        self.respond(*prefix, returncode=1, stderr=stderr, times=times)

    def which(self, tool: str) -> str | None:
        return None if tool in self.missing_tools else f"/usr/bin/{tool}"

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        argv = [str(a) for a in args]
        self.calls.append(argv)
        self.cwds.append(cwd)
        self.inputs.append(input_text)

        best: list | None = None
        for response in self._responses:
            prefix, remaining = response[0], response[4]
            if remaining == 0 or argv[: len(prefix)] != prefix:
                continue
            if best is None or len(prefix) >= len(best[0]):
                best = response

        returncode, stdout, stderr = 0, "", ""
        if best is not None:
            _, returncode, stdout, stderr, remaining = best
            if remaining is not None:
                best[4] = remaining - 1
        result = CommandResult(args=argv, returncode=returncode, stdout=stdout, stderr=stderr)
        if check and not result.ok:
            raise CommandError(argv, returncode, stderr)
        return result

    # -------------------------------------------------------------------------
    # Assertion helpers
    # -------------------------------------------------------------------------

    def called(self, *prefix: str) -> bool:
        return any(call[: len(prefix)] == list(prefix) for call in self.calls)

    def find(self, *prefix: str) -> list[list[str]]:
        return [call for call in self.calls if call[: len(prefix)] == list(prefix)]

    def index(self, *prefix: str) -> int:
        for i, call in enumerate(self.calls):
            if call[: len(prefix)] == list(prefix):
                return i
        raise AssertionError(f"{' '.join(prefix)} was never called")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def runner_factory() -> type[RecordingRunner]:
    """The RecordingRunner class, for tests that need missing tools."""
    return RecordingRunner


@pytest.fixture
def repos_root(tmp_path: Path) -> Path:
    """Directory repositories are cloned into."""
    root = tmp_path / "repos"
    root.mkdir()
    return root


@pytest.fixture
def github_config(repos_root: Path) -> ForgeConfig:
    return ForgeConfig(
        GitHubOrganization="acme",
        CompanyName="Acme",
        WSLPath=str(repos_root),
        WindowsPath="D:\\acme",
        DefaultBranch="master",
    )


@pytest.fixture
def azure_config(repos_root: Path) -> ForgeConfig:
    return ForgeConfig(
        CompanyName="Acme",
        AzureOrganization="acme-org",
        AzureProject="Libraries",
        ArtifactFeed="dotnet-packages",
        WSLPath=str(repos_root),
        LinuxPath=str(repos_root),
        DefaultLicense=License.MIT,
    )


@pytest.fixture
def config_file(tmp_path: Path, github_config: ForgeConfig) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(github_config.to_json_dict(), indent=2), encoding="utf-8")
    return path


@pytest.fixture
def linux() -> EnvironmentKind:
    return EnvironmentKind.LINUX


@pytest.fixture
def always_yes():
    """Confirm callback answering yes to everything."""
    return lambda message, default=False: True


@pytest.fixture
def always_no():
    return lambda message, default=False: False


# =============================================================================
# pytest Configuration
# =============================================================================

def pytest_configure(config: pytest.Config) -> None:
    """
    Configure pytest with custom markers.

    This function is called by pytest during startup to register
    custom markers used in our test suite.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external resources"
    )
