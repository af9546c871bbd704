# Report assembly: runs the whole pipeline and builds the JSON result
import logging
import os
import platform
import shutil
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mcpdoctor import __version__
from mcpdoctor.classify import LAUNCHER_GROUPS, classify_all
from mcpdoctor.config import Settings
from mcpdoctor.health import check_all
from mcpdoctor.locator import OSFamily, detect_os, find_project_root, get_config_sources
from mcpdoctor.merge import merge_servers
from mcpdoctor.models import (
    ClassifiedServer,
    ConflictRecord,
    HealthResult,
    HttpServer,
    ParsedConfig,
    SettingsPolicy,
    StdioServer,
)
from mcpdoctor.reader import read_sources
from mcpdoctor.utils import command_version, redact_mapping, run_command

logger = logging.getLogger(__name__)

# ABOUTME: Runtimes whose versions go into the environment snapshot
KNOWN_RUNTIMES = ("node", "npm", "npx", "uv", "uvx", "bun", "deno", "docker", "python3")

# ABOUTME: Section name -> top-level keys it selects; meta and summary are always kept
SECTIONS: dict[str, tuple[str, ...]] = {
    "all": (),
    "configs": ("config_files",),
    "servers": ("all_servers_all_tiers", "effective_servers", "conflicts"),
    "health": ("effective_servers",),
    "settings": ("settings_audit",),
}
ALWAYS_INCLUDED = ("meta", "summary")


# --- serialization -----------------------------------------------------------

def source_to_dict(parsed: ParsedConfig) -> dict[str, Any]:
    """Describe one config source; server declarations are listed by name only."""
    source = parsed.source
    return {
        "tier": source.tier,
        "scope": source.scope,
        "shared": source.shared,
        "kind": source.kind,
        "path": str(source.path),
        "exists": parsed.exists,
        "parse_error": parsed.parse_error,
        "error": parsed.error_message,
        "server_names": list(parsed.servers),
    }


def server_to_dict(server: ClassifiedServer) -> dict[str, Any]:
    """Convert a classified server to its JSON form.

    ABOUTME: Only redacted env/header copies are emitted
    ABOUTME: HttpServer.raw_headers and raw_url are never serialized
    """
    result: dict[str, Any] = {
        "name": server.name,
        "tier": server.tier,
        "source": str(server.source),
        "transport": server.transport,
    }

    if isinstance(server, StdioServer):
        result.update({
            "command": server.command,
            "args": list(server.args),
            "launcher": server.launcher,
            "launcher_group": LAUNCHER_GROUPS[server.launcher],
            "package": server.package,
            "cwd": server.cwd,
            "env": dict(server.env),
            "env_refs": list(server.env_refs),
        })
    elif isinstance(server, HttpServer):
        result.update({
            "url": server.url,
            "headers": dict(server.headers),
        })
    else:
        result.update({
            "declared_type": server.declared_type,
            "fields": list(server.fields),
        })

    return result


def health_to_dict(result: HealthResult) -> dict[str, Any]:
    """Classified fields plus health, issues and probe details.

    ABOUTME: Probe details never overwrite a classified field of the same name
    """
    data = server_to_dict(result.server)
    data["health"] = result.health
    data["issues"] = [{"severity": i.severity, "message": i.message} for i in result.issues]
    for key, value in result.details.items():
        data.setdefault(key, value)
    return data


def conflict_to_dict(conflict: ConflictRecord) -> dict[str, Any]:
    return {
        "name": conflict.name,
        "occurrences": [{"tier": tier, "source": str(path)} for tier, path in conflict.occurrences],
        "winner": conflict.winner,
        "shadowed": list(conflict.shadowed),
    }


# --- settings audit ------------------------------------------------------------

def has_mcp_permission_rule(permissions: dict[str, Any]) -> bool:
    """True if any allow/deny permission string mentions mcp (any case)."""
    for key in ("allow", "deny"):
        rules = permissions.get(key)
        if not isinstance(rules, list):
            continue
        if any(isinstance(rule, str) and "mcp" in rule.lower() for rule in rules):
            return True
    return False


def audit_settings(parsed: Iterable[ParsedConfig]) -> list[dict[str, Any]]:
    """One audit entry per existing settings source.

    ABOUTME: Unparsable files get parse_error=True and empty policy fields
    """
    entries: list[dict[str, Any]] = []
    for config in parsed:
        if config.source.kind != "settings" or not config.exists:
            continue
        policy = config.settings or SettingsPolicy()
        entries.append({
            "tier": config.source.tier,
            "path": str(config.source.path),
            "parse_error": config.parse_error,
            "permissions": policy.permissions,
            "env": redact_mapping(policy.env),
            "hooks": policy.hooks,
            "enabled_mcpjson_servers": policy.enabled_mcpjson_servers,
            "disabled_mcpjson_servers": policy.disabled_mcpjson_servers,
            "allowed_mcp_servers": policy.allowed_mcp_servers,
            "denied_mcp_servers": policy.denied_mcp_servers,
            "enable_all_project_mcp_servers": policy.enable_all_project_mcp_servers,
            "model": policy.model,
            "has_mcp_permission_rule": has_mcp_permission_rule(policy.permissions),
        })
    return entries


# --- auxiliary, best-effort sections -----------------------------------------------

def cli_inventory(settings: Settings) -> str:
    """Capture the host CLI's own server listing.

    ABOUTME: Never fails: every problem becomes an explanatory placeholder string
    """
    cmd = list(settings.inventory_command)
    joined = " ".join(cmd)
    result = run_command(cmd, settings.cli_timeout)

    if result.status == "not_found":
        return f"{cmd[0]} CLI not found"
    if result.status == "timeout":
        return f"'{joined}' timed out after {settings.cli_timeout:g}s"
    if result.status == "failed":
        detail = result.stderr.strip().splitlines()[0] if result.stderr.strip() else "no output"
        code = result.returncode if result.returncode is not None else "?"
        return f"'{joined}' exited with status {code}: {detail}"
    return result.stdout.strip() or "(no output)"


def runtime_version(name: str, settings: Settings) -> str:
    if shutil.which(name) is None:
        return "not found"
    return command_version(name, settings.command_timeout) or "unknown"


def environment_snapshot(settings: Settings) -> dict[str, Any]:
    """Shell, PATH entries and versions of runtimes MCP servers commonly need."""
    with ThreadPoolExecutor(max_workers=max(1, min(settings.max_workers, len(KNOWN_RUNTIMES)))) as pool:
        versions = list(pool.map(lambda name: runtime_version(name, settings), KNOWN_RUNTIMES))

    return {
        "shell": os.environ.get("SHELL") or os.environ.get("COMSPEC") or "unknown",
        "path": [entry for entry in os.environ.get("PATH", "").split(os.pathsep) if entry],
        "python": platform.python_version(),
        "runtimes": dict(zip(KNOWN_RUNTIMES, versions)),
    }


# --- summary and projection --------------------------------------------------

def summarize(
    parsed: Sequence[ParsedConfig],
    all_servers: Sequence[ClassifiedServer],
    results: Sequence[HealthResult],
    conflicts: Sequence[ConflictRecord],
) -> dict[str, int]:
    return {
        "configs_found": sum(1 for p in parsed if p.exists),
        "configs_checked": len(parsed),
        "parse_errors": sum(1 for p in parsed if p.parse_error),
        "total_servers": len(results),
        "total_declarations": len(all_servers),
        "healthy": sum(1 for r in results if r.health == "healthy"),
        "warnings": sum(1 for r in results if r.health == "warning"),
        "errors": sum(1 for r in results if r.health == "error"),
        "conflicts": len(conflicts),
    }


def project_sections(result: dict[str, Any], section: str) -> dict[str, Any]:
    """Select a named subset of a full result.

    ABOUTME: meta and summary are always kept
    ABOUTME: "all" or an unrecognized section name returns everything
    """
    keys = SECTIONS.get(section)
    if not keys:
        return dict(result)
    wanted = ALWAYS_INCLUDED[:1] + keys + ALWAYS_INCLUDED[1:]
    return {key: result[key] for key in wanted if key in result}


# --- orchestration -------------------------------------------------------------

def collect(
    project_dir: Path | None = None,
    cwd: Path | None = None,
    settings: Settings | None = None,
    os_family: OSFamily | None = None,
    home: Path | None = None,
) -> dict[str, Any]:
    """Run discovery, parsing, classification, merge and health checks.

    ABOUTME: Only fatal CLI errors abort a run; everything here degrades to data
    ABOUTME: Each effective server name is probed exactly once

    Args:
        project_dir: Override for the directory project-root detection starts from
        cwd: Invocation directory (default: Path.cwd())
        settings: Tool settings (default: Settings())
        os_family: Override for detect_os()
        home: Override for Path.home()

    Returns:
        Full result object, ready for json.dumps
    """
    if settings is None:
        settings = Settings()
    if os_family is None:
        os_family = detect_os()
    invocation_dir = (cwd or Path.cwd()).resolve()
    project_root = find_project_root(project_dir or invocation_dir)

    with ThreadPoolExecutor(max_workers=2) as aux:
        inventory_future = aux.submit(cli_inventory, settings)
        environment_future = aux.submit(environment_snapshot, settings)

        sources = get_config_sources(project_root, os_family, home)
        parsed = read_sources(sources, settings.max_workers)
        all_servers = classify_all(parsed)
        merged = merge_servers(all_servers)
        logger.info(
            f"{len(all_servers)} declaration(s), {len(merged.effective)} effective, "
            f"{len(merged.conflicts)} conflict(s)"
        )
        results = check_all(merged.effective, settings)

        inventory = inventory_future.result()
        environment = environment_future.result()

    return {
        "meta": {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "platform": os_family,
            "project_root": str(project_root),
            "cwd": str(invocation_dir),
            "version": __version__,
        },
        "config_files": [source_to_dict(p) for p in parsed],
        "all_servers_all_tiers": [server_to_dict(s) for s in all_servers],
        "effective_servers": [health_to_dict(r) for r in results],
        "conflicts": [conflict_to_dict(c) for c in merged.conflicts],
        "settings_audit": audit_settings(parsed),
        "cli_mcp_list": inventory,
        "environment": environment,
        "summary": summarize(parsed, all_servers, results, merged.conflicts),
    }
