# Discovery of the seven configuration sources
import os
import sys
from pathlib import Path
from typing import Literal

from mcpdoctor.models import ConfigSource

OSFamily = Literal["linux", "darwin", "windows", "unknown"]

# ABOUTME: Directory names that mark a version-controlled project root
VCS_MARKERS = (".git",)


def find_project_root(start: Path) -> Path:
    """Walk up from start until a directory holding a VCS marker is found.

    ABOUTME: Falls back to start itself when the filesystem root is reached
    ABOUTME: .git may be a file (worktrees, submodules), so only existence is checked

    Args:
        start: Directory to start searching from

    Returns:
        Detected project root
    """
    start = start.resolve()
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in VCS_MARKERS):
            return candidate
    return start


def detect_os(platform: str | None = None) -> OSFamily:
    """Map sys.platform onto the OS families that have distinct managed paths."""
    value = sys.platform if platform is None else platform
    if value.startswith("linux"):
        return "linux"
    if value == "darwin":
        return "darwin"
    if value in ("win32", "cygwin"):
        return "windows"
    return "unknown"


def managed_config_dir(os_family: OSFamily) -> Path:
    """Directory holding organization-managed policy files.

    ABOUTME: Unknown platforms use the Linux location
    """
    if os_family == "darwin":
        return Path("/Library/Application Support/ClaudeCode")
    if os_family == "windows":
        program_data = os.environ.get("PROGRAMDATA", r"C:\ProgramData")
        return Path(program_data) / "ClaudeCode"
    return Path("/etc/claude-code")


def get_config_sources(
    project_root: Path,
    os_family: OSFamily | None = None,
    home: Path | None = None,
) -> list[ConfigSource]:
    """Return the seven config sources in precedence order.

    ABOUTME: The order of this list is the merge precedence contract
    ABOUTME: Paths are computed only; nothing is read here

    Args:
        project_root: Project directory (see find_project_root)
        os_family: Override for detect_os()
        home: Override for Path.home()

    Returns:
        List of exactly seven ConfigSource entries, earliest wins
    """
    if os_family is None:
        os_family = detect_os()
    if home is None:
        home = Path.home()
    managed = managed_config_dir(os_family)

    return [
        ConfigSource("managed-mcp", "organization", True, managed / "managed-mcp.json", "mcp"),
        ConfigSource("managed-settings", "organization", True, managed / "managed-settings.json", "settings"),
        ConfigSource("user", "all-projects", False, home / ".claude.json", "mcp"),
        ConfigSource("project", "project", True, project_root / ".mcp.json", "mcp"),
        ConfigSource("user-settings", "all-projects", False, home / ".claude" / "settings.json", "settings"),
        ConfigSource("project-settings", "project", True, project_root / ".claude" / "settings.json", "settings"),
        ConfigSource("local-settings", "project", False, project_root / ".claude" / "settings.local.json", "settings"),
    ]
