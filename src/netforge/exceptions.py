"""
netforge.exceptions - Error Hierarchy
=====================================

Every error netforge raises on purpose derives from ``NetforgeError`` so the
CLI can turn it into a red message and exit code 1 without catching unrelated
exceptions.

    NetforgeError
    ├── ConfigError          - config file missing values or unreadable
    ├── ToolNotFoundError    - gh / az / git / dotnet not on PATH
    ├── AuthenticationError  - gh or az not logged in
    ├── CommandError         - an external command exited non-zero
    └── ProvisioningError    - a provisioning step cannot continue
"""

from __future__ import annotations

from collections.abc import Sequence


class NetforgeError(Exception):
    """Base exception for netforge operations."""

    pass


class ConfigError(NetforgeError):
    """Configuration file is invalid or incomplete."""

    pass


class ToolNotFoundError(NetforgeError):
    """One or more required command line tools are missing."""

    def __init__(self, tools: Sequence[str]) -> None:
        self.tools = list(tools)
        names = ", ".join(self.tools)
        super().__init__(f"Required tool(s) not installed: {names}")


class AuthenticationError(NetforgeError):
    """The platform CLI is not authenticated."""

    pass


class CommandError(NetforgeError):
    """An external command exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"Command failed ({returncode}): {' '.join(self.args_list)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class ProvisioningError(NetforgeError):
    """A provisioning step failed and the pipeline cannot continue."""

    pass
