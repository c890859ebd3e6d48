"""
netforge.config - Configuration Resolver
========================================

Loads the JSON configuration file, creates it interactively when it is
missing, and re-prompts when values required by the selected platform are
empty.

The file is a flat record (see ``ForgeConfig``) rewritten in full on every
save. There is a single writer per process, so no locking is involved.

Lookup order for the file location:

1. ``--config PATH`` on the command line
2. ``$NETFORGE_CONFIG``
3. ``./config.json``

Interactive prompts use questionary, the same way the ``new`` command asks
its questions.
"""

from __future__ import annotations

import json
import os
import re
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path, PureWindowsPath

import questionary
import typer
from pydantic import ValidationError

from netforge.console import log_info, log_warn
from netforge.exceptions import ConfigError
from netforge.models import EnvironmentKind, ForgeConfig, License, Platform, Visibility


CONFIG_ENV_VAR = "NETFORGE_CONFIG"
DEFAULT_CONFIG_NAME = "config.json"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# Locations and Host Detection
# =============================================================================


def default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_NAME


def detect_environment(proc_version: Path = Path("/proc/version")) -> EnvironmentKind:
    """
    Detect the host environment.

    WSL kernels report "Microsoft" or "WSL" in ``/proc/version``.

    Parameters
    ----------
    proc_version : Path
        File to inspect (overridable for tests).

    Returns
    -------
    EnvironmentKind
        The detected environment.
    """
    if sys.platform.startswith("win"):
        return EnvironmentKind.WINDOWS
    if sys.platform == "darwin":
        return EnvironmentKind.MACOS
    try:
        content = proc_version.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return EnvironmentKind.LINUX
    if re.search(r"microsoft|wsl", content, re.IGNORECASE):
        return EnvironmentKind.WSL
    return EnvironmentKind.LINUX


def wsl_to_windows_path(path: str) -> str:
    """
    Convert a WSL mount path to its Windows form.

    Examples
    --------
    >>> wsl_to_windows_path("/mnt/c/Source/repos")
    'C:\\\\Source\\\\repos'
    >>> wsl_to_windows_path("/home/dev/projects")
    '/home/dev/projects'
    """
    match = re.match(r"^/mnt/([a-zA-Z])(?:/(.*))?$", path.rstrip("/") or "/")
    if not match:
        return path
    drive, rest = match.group(1).upper(), match.group(2) or ""
    return f"{drive}:\\" + rest.replace("/", "\\")


def windows_to_wsl_path(path: str) -> str:
    """
    Convert a Windows drive path to its WSL mount form.

    Examples
    --------
    >>> windows_to_wsl_path("D:\\\\fractaldataworks")
    '/mnt/d/fractaldataworks'
    """
    win = PureWindowsPath(path)
    if not win.drive or not win.drive.endswith(":"):
        return path
    return "/".join([f"/mnt/{win.drive[0].lower()}", *win.parts[1:]])


# =============================================================================
# Load / Save
# =============================================================================


def load_config(path: Path) -> ForgeConfig:
    """
    Load and validate the configuration file.

    Parameters
    ----------
    path : Path
        Location of ``config.json``.

    Returns
    -------
    ForgeConfig
        The validated record.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ConfigError
        If the file is not valid JSON or fails validation.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {path} must contain a JSON object")

    try:
        return ForgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration {path}: {e}") from e


def save_config(config: ForgeConfig, path: Path) -> ForgeConfig:
    """
    Stamp and write the configuration, replacing the file.

    Returns
    -------
    ForgeConfig
        The saved record (with ``LastUpdated`` / ``ScriptPath`` filled).
    """
    updates: dict[str, str] = {"last_updated": datetime.now().strftime(TIMESTAMP_FORMAT)}
    if not config.script_path:
        updates["script_path"] = str(Path(sys.argv[0]).resolve().parent)
    config = config.model_copy(update=updates)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_json_dict(), indent=2) + "\n", encoding="utf-8")
    log_info(f"Configuration saved to: {path}")
    return config


def update_config_value(path: Path, key: str, value: str) -> ForgeConfig:
    """
    Read-modify-write a single value.

    Parameters
    ----------
    key : str
        Either the JSON key (``WSLPath``) or the attribute name (``wsl_path``).
    """
    config = load_config(path)
    data = config.to_json_dict()
    aliases = {name: info.alias for name, info in ForgeConfig.model_fields.items()}
    json_key = aliases.get(key, key)
    if json_key not in data:
        raise ConfigError(f"Unknown configuration key '{key}'")
    data[json_key] = value
    try:
        updated = ForgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {json_key}: {e}") from e
    return save_config(updated, path)


# =============================================================================
# Interactive Prompts
# =============================================================================


def _ask(question: questionary.Question) -> str:
    answer = question.ask()
    if answer is None:
        raise typer.Abort()
    return answer


def prompt_confirm(message: str, default: bool = False) -> bool:
    """Yes/no question; Ctrl-C aborts."""
    answer = questionary.confirm(message, default=default).ask()
    if answer is None:
        raise typer.Abort()
    return answer


def prompt_text(message: str, default: str = "") -> str:
    return _ask(questionary.text(message, default=default)).strip()


def prompt_required(message: str, default: str = "") -> str:
    """Ask until a non-empty value is given."""
    value = _ask(questionary.text(message, default=default)).strip()
    while not value:
        value = _ask(questionary.text(f"{message} (required)")).strip()
    return value


def prompt_with_default(message: str, default: str) -> str:
    value = _ask(questionary.text(f"{message}", default=default)).strip()
    return value or default


def prompt_visibility(default: Visibility) -> Visibility:
    choices = [questionary.Choice(title=v.description, value=v) for v in Visibility]
    return _ask(questionary.select("Repository visibility?", choices=choices, default=default))


def prompt_license(default: License) -> License:
    choices = [questionary.Choice(title=lic.description, value=lic) for lic in License]
    return _ask(questionary.select("Default license?", choices=choices, default=default))


def prompt_branch(default: str) -> str:
    while True:
        value = prompt_with_default("Default branch name:", default)
        try:
            ForgeConfig(DefaultBranch=value)
        except ValidationError:
            log_warn(f"'{value}' is not a valid branch name")
            continue
        return value


def prompt_github_config(defaults: ForgeConfig | None = None) -> ForgeConfig:
    """
    Guided configuration for the GitHub flow.

    Parameters
    ----------
    defaults : ForgeConfig | None
        Existing values offered as defaults (reconfiguration keeps Azure
        values untouched).

    Returns
    -------
    ForgeConfig
        The completed record (not yet saved).
    """
    base = defaults or ForgeConfig()
    user = os.environ.get("USER", "user")

    org = prompt_required("GitHub Organization name:", base.github_organization)
    company = prompt_required("Company name:", base.company_name)
    wsl_path = prompt_with_default(
        "WSL path for repositories:", base.wsl_path or f"/home/{user}/projects"
    )
    windows_path = prompt_with_default(
        "Windows path for repositories:", base.windows_path or "D:\\fractaldataworks"
    )
    visibility = prompt_visibility(base.repository_visibility)
    branch = prompt_branch(base.default_branch)
    license_ = prompt_license(base.default_license)

    return base.model_copy(update={
        "github_organization": org,
        "company_name": company,
        "wsl_path": wsl_path,
        "windows_path": windows_path,
        "repository_visibility": visibility,
        "default_branch": branch,
        "default_license": license_,
    })


def prompt_azure_config(
    defaults: ForgeConfig | None = None,
    environment: EnvironmentKind | None = None,
) -> ForgeConfig:
    """
    Guided configuration for the Azure DevOps flow.

    Under WSL the repository path defaults to ``/mnt/c/Source`` and the
    Windows path is derived from it. Elsewhere ``~/source`` is offered and
    stored as both ``LinuxPath`` and ``WSLPath``.
    """
    base = defaults or ForgeConfig(DefaultLicense=License.MIT)
    kind = environment or detect_environment()

    org = prompt_required("Azure DevOps organization name:", base.azure_organization or "")
    project = prompt_required("Azure DevOps project name:", base.azure_project or "")
    company = prompt_required("Company name:", base.company_name)
    feed = prompt_with_default("Artifact feed name:", base.artifact_feed or "dotnet-packages")

    updates: dict[str, object] = {
        "azure_organization": org,
        "azure_project": project,
        "company_name": company,
        "artifact_feed": feed,
    }

    if kind == EnvironmentKind.WSL:
        log_info("WSL environment detected.")
        wsl_path = prompt_with_default("WSL repository path:", base.wsl_path or "/mnt/c/Source")
        updates["wsl_path"] = wsl_path
        updates["windows_path"] = wsl_to_windows_path(wsl_path)
    else:
        default = base.linux_path or base.wsl_path or str(Path.home() / "source")
        repo_path = prompt_with_default("Repository path:", default)
        updates["linux_path"] = repo_path
        updates["wsl_path"] = repo_path

    return base.model_copy(update=updates)


PROMPTS: dict[Platform, Callable[[ForgeConfig | None], ForgeConfig]] = {
    Platform.GITHUB: prompt_github_config,
    Platform.AZURE: prompt_azure_config,
}


# =============================================================================
# Resolution
# =============================================================================


def resolve_config(
    path: Path,
    platform: Platform = Platform.GITHUB,
    *,
    reconfigure: bool = False,
    interactive: bool = True,
) -> ForgeConfig:
    """
    Load the configuration, creating or completing it when needed.

    Parameters
    ----------
    path : Path
        Location of ``config.json``.

    platform : Platform
        Flow the configuration is needed for; decides which values are
        required.

    reconfigure : bool, default=False
        Prompt for every value even when the file is complete.

    interactive : bool, default=True
        When False, never prompt: a missing file or value raises.

    Returns
    -------
    ForgeConfig
        A configuration with every value the platform needs.

    Raises
    ------
    ConfigError
        In non-interactive mode when the file is missing or incomplete.
    """
    existing: ForgeConfig | None = None
    if path.exists():
        log_info(f"Loading configuration from: {path}")
        existing = load_config(path)
    else:
        log_info("Configuration file not found. Setting up configuration...")

    missing = existing.missing_fields(platform) if existing else ["all values"]

    if existing is not None and not missing and not reconfigure:
        return existing

    if not interactive and not missing:
        raise ConfigError(f"Reconfiguring {path} requires interactive prompts")

    if not interactive:
        raise ConfigError(
            f"Configuration {path} is missing required values: {', '.join(missing)}"
        )

    if existing is not None and missing:
        log_warn(f"Invalid configuration. Required values missing: {', '.join(missing)}")

    log_info("CI/CD Configuration Setup")
    config = PROMPTS[platform](existing)
    return save_config(config, path)
