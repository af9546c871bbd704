# mcpdoctor - MCP server configuration audit and health checks
# ABOUTME: Version information
__version__ = "0.1.0"

# ABOUTME: Export core data models
# ABOUTME: Export pipeline entry points
from mcpdoctor.classify import classify_server
from mcpdoctor.config import Settings, get_config_path, load_config
from mcpdoctor.errors import DoctorError, PreflightError, UsageError
from mcpdoctor.health import check_health
from mcpdoctor.locator import find_project_root, get_config_sources
from mcpdoctor.merge import merge_servers
from mcpdoctor.models import (
    TIER_ORDER,
    ConfigSource,
    ConflictRecord,
    HealthResult,
    HttpServer,
    Issue,
    ParsedConfig,
    StdioServer,
    UnknownServer,
)
from mcpdoctor.reader import read_source
from mcpdoctor.report import collect, project_sections

__all__ = [
    "__version__",
    "TIER_ORDER",
    "ConfigSource",
    "ConflictRecord",
    "HealthResult",
    "HttpServer",
    "Issue",
    "ParsedConfig",
    "StdioServer",
    "UnknownServer",
    "Settings",
    "get_config_path",
    "load_config",
    "DoctorError",
    "PreflightError",
    "UsageError",
    "classify_server",
    "check_health",
    "find_project_root",
    "get_config_sources",
    "merge_servers",
    "read_source",
    "collect",
    "project_sections",
]
