# Configuration loading for mcpdoctor itself (not the MCP configs it audits)
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomli

from mcpdoctor.errors import PreflightError

# ABOUTME: Default config directory in user's home
CONFIG_DIR = Path.home() / ".mcpdoctor"

# ABOUTME: Main config file location (TOML format)
CONFIG_FILE = CONFIG_DIR / "config.toml"

# ABOUTME: Environment overrides
CONFIG_ENV_VAR = "MCPDOCTOR_CONFIG"
NO_HTTP_ENV_VAR = "MCPDOCTOR_NO_HTTP"

# Hosts whose MCP endpoints always authenticate through OAuth, so a 401
# without configured headers is expected. fnmatch patterns, matched against
# the URL hostname.
DEFAULT_OAUTH_HOSTS: tuple[str, ...] = (
    "mcp.atlassian.com",
    "mcp.notion.com",
    "mcp.linear.app",
    "mcp.sentry.dev",
    "*.mcp.claude.com",
)

DEFAULT_INVENTORY_COMMAND: tuple[str, ...] = ("claude", "mcp", "list")


@dataclass(frozen=True)
class Settings:
    """Tunables for probes and report collection.

    ABOUTME: Loaded from ~/.mcpdoctor/config.toml, every key optional
    ABOUTME: oauth_hosts from the file extend DEFAULT_OAUTH_HOSTS
    """
    http_timeout: float = 5.0
    command_timeout: float = 5.0
    daemon_timeout: float = 5.0
    cli_timeout: float = 10.0
    http_checks: bool = True
    oauth_hosts: tuple[str, ...] = DEFAULT_OAUTH_HOSTS
    inventory_command: tuple[str, ...] = DEFAULT_INVENTORY_COMMAND
    max_workers: int = 8


def get_config_path() -> Path:
    """Return the path to the mcpdoctor config file.

    ABOUTME: MCPDOCTOR_CONFIG wins over ~/.mcpdoctor/config.toml
    ABOUTME: File may not exist - defaults are used then

    Returns:
        Path to config file
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def _number(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise PreflightError(f"'{key}' must be a positive number, got {value!r}")
    return float(value)


def _string_list(section: dict[str, Any], key: str) -> tuple[str, ...]:
    value = section.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise PreflightError(f"'{key}' must be a list of strings")
    return tuple(value)


def load_config(path: Path | None = None) -> Settings:
    """Load mcpdoctor settings from a TOML file.

    ABOUTME: Uses tomli for TOML parsing
    ABOUTME: Missing file means defaults; a broken file is a fatal preflight error

    Args:
        path: Path to config.toml (default: get_config_path())

    Returns:
        Parsed Settings

    Raises:
        PreflightError: If the file is unreadable, not valid TOML, or has bad values
    """
    if path is None:
        path = get_config_path()

    http_disabled = os.environ.get(NO_HTTP_ENV_VAR, "") not in ("", "0")

    if not path.exists():
        return Settings(http_checks=not http_disabled)

    try:
        with open(path, "rb") as f:
            data = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise PreflightError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise PreflightError(f"Cannot read config {path}: {e}") from e

    health = data.get("health", {})
    report = data.get("report", {})
    if not isinstance(health, dict) or not isinstance(report, dict):
        raise PreflightError(f"'health' and 'report' in {path} must be tables")

    http_checks = health.get("http_checks", True)
    if not isinstance(http_checks, bool):
        raise PreflightError(f"'http_checks' must be true or false, got {http_checks!r}")

    max_workers = report.get("max_workers", 8)
    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        raise PreflightError(f"'max_workers' must be a positive integer, got {max_workers!r}")

    inventory = _string_list(report, "inventory_command") or DEFAULT_INVENTORY_COMMAND

    return Settings(
        http_timeout=_number(health, "http_timeout", 5.0),
        command_timeout=_number(health, "command_timeout", 5.0),
        daemon_timeout=_number(health, "daemon_timeout", 5.0),
        cli_timeout=_number(report, "cli_timeout", 10.0),
        http_checks=http_checks and not http_disabled,
        oauth_hosts=DEFAULT_OAUTH_HOSTS + _string_list(health, "oauth_hosts"),
        inventory_command=inventory,
        max_workers=max_workers,
    )
