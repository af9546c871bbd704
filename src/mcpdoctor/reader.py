# Reading and parsing of individual config sources
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from mcpdoctor.models import ConfigSource, ParsedConfig, ServerDeclaration, SettingsPolicy

logger = logging.getLogger(__name__)

# ABOUTME: Key holding server declarations in every source kind
SERVERS_KEY = "mcpServers"


def read_json_file(source: ConfigSource) -> tuple[dict[str, Any] | None, str | None]:
    """Read a JSON object from disk.

    ABOUTME: Returns (data, None) on success and (None, message) on any failure
    ABOUTME: A top-level value that isn't an object counts as a parse failure
    """
    try:
        with open(source.path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON: {e}"
    except (OSError, UnicodeDecodeError) as e:
        return None, f"Cannot read file: {e}"

    if not isinstance(data, dict):
        return None, f"Expected a JSON object at top level, got {type(data).__name__}"
    return data, None


def _dict_field(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return dict(value) if isinstance(value, dict) else {}


def _list_field(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    return list(value) if isinstance(value, list) else []


def parse_settings(data: dict[str, Any]) -> SettingsPolicy:
    """Extract the policy sub-schema from a settings file.

    ABOUTME: Missing or wrongly-typed fields fall back to empty values
    ABOUTME: Unknown keys are ignored
    """
    enable_all = data.get("enableAllProjectMcpServers")
    model = data.get("model")
    return SettingsPolicy(
        permissions=_dict_field(data, "permissions"),
        env={str(k): str(v) for k, v in _dict_field(data, "env").items()},
        hooks=_dict_field(data, "hooks"),
        enabled_mcpjson_servers=_list_field(data, "enabledMcpjsonServers"),
        disabled_mcpjson_servers=_list_field(data, "disabledMcpjsonServers"),
        allowed_mcp_servers=_list_field(data, "allowedMcpServers"),
        denied_mcp_servers=_list_field(data, "deniedMcpServers"),
        enable_all_project_mcp_servers=enable_all if isinstance(enable_all, bool) else None,
        model=model if isinstance(model, str) else None,
    )


def parse_servers(data: dict[str, Any], source: ConfigSource) -> dict[str, ServerDeclaration]:
    """Extract the mcpServers map, skipping entries that aren't objects."""
    raw = data.get(SERVERS_KEY)
    if not isinstance(raw, dict):
        return {}

    servers: dict[str, ServerDeclaration] = {}
    for name, declaration in raw.items():
        if not isinstance(declaration, dict):
            logger.warning(f"Ignoring server '{name}' in {source.path}: declaration is not an object")
            continue
        servers[str(name)] = dict(declaration)
    return servers


def read_source(source: ConfigSource) -> ParsedConfig:
    """Load one config source into a ParsedConfig.

    ABOUTME: Missing file -> exists=False; unparsable -> parse_error=True
    ABOUTME: Never raises: failures are described by the returned value

    Args:
        source: Location to read

    Returns:
        ParsedConfig for the source
    """
    try:
        present = source.path.is_file()
    except OSError:
        present = False

    if not present:
        logger.debug(f"Config source {source.tier} not found: {source.path}")
        return ParsedConfig(source=source)

    data, error = read_json_file(source)
    if data is None:
        logger.warning(f"Error parsing {source.tier} config {source.path}: {error}")
        return ParsedConfig(source=source, exists=True, parse_error=True, error_message=error)

    servers = parse_servers(data, source)
    settings = parse_settings(data) if source.kind == "settings" else None
    logger.info(f"Found {len(servers)} server(s) in {source.tier} config {source.path}")

    return ParsedConfig(source=source, exists=True, servers=servers, settings=settings)


def read_sources(sources: list[ConfigSource], max_workers: int = 8) -> list[ParsedConfig]:
    """Read all sources concurrently, returning results in input order."""
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(sources) or 1))) as pool:
        return list(pool.map(read_source, sources))
