# ABOUTME: End-to-end tests for report collection over a fake home and project
# ABOUTME: Probing is real for stdio (PATH lookups) and disabled for HTTP
import json
from pathlib import Path

import pytest

import mcpdoctor.health as health
import mcpdoctor.locator as locator
import mcpdoctor.report as report
from mcpdoctor.config import Settings
from mcpdoctor.models import HealthResult
from mcpdoctor.report import (
    cli_inventory,
    collect,
    has_mcp_permission_rule,
    project_sections,
)
from mcpdoctor.utils.process import CommandResult

SETTINGS = Settings(http_checks=False)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Isolated home, managed dir and git project."""
    home = tmp_path / "home"
    home.mkdir()
    managed = tmp_path / "managed"
    managed.mkdir()
    project = tmp_path / "project"
    (project / ".git").mkdir(parents=True)

    monkeypatch.setattr(locator, "managed_config_dir", lambda os_family: managed)
    monkeypatch.setattr(report, "cli_inventory", lambda settings: "(no output)")
    monkeypatch.setattr(report, "environment_snapshot", lambda settings: {"runtimes": {}})

    return {"home": home, "managed": managed, "project": project}


def write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def run(workspace, settings=SETTINGS):
    return collect(
        project_dir=workspace["project"],
        cwd=workspace["project"],
        settings=settings,
        os_family="linux",
        home=workspace["home"],
    )


def test_no_sources_anywhere(workspace):
    """Test an empty machine yields an empty but complete report."""
    result = run(workspace)

    assert result["effective_servers"] == []
    assert result["summary"]["total_servers"] == 0
    assert result["summary"]["configs_found"] == 0
    assert result["summary"]["configs_checked"] == 7
    assert len(result["config_files"]) == 7
    assert result["conflicts"] == []
    assert result["settings_audit"] == []
    assert result["meta"]["project_root"] == str(workspace["project"].resolve())
    assert result["meta"]["platform"] == "linux"


def test_missing_command_is_error(workspace):
    """Test a single server whose command cannot be found."""
    write_json(workspace["project"] / ".mcp.json", {
        "mcpServers": {"alpha": {"command": "missing-binary-xyz"}}
    })

    result = run(workspace)

    [alpha] = result["effective_servers"]
    assert alpha["name"] == "alpha"
    assert alpha["health"] == "error"
    assert alpha["issues"] == [{"severity": "error", "message": "Command not found: missing-binary-xyz"}]
    assert result["summary"]["errors"] == 1


def test_conflict_resolved_by_precedence(workspace):
    """Test the earlier tier wins and only the winner is probed."""
    write_json(workspace["home"] / ".claude.json", {
        "mcpServers": {"alpha": {"command": "true"}}
    })
    write_json(workspace["project"] / ".mcp.json", {
        "mcpServers": {"alpha": {"command": "missing-binary-xyz"}}
    })

    result = run(workspace)

    assert len(result["conflicts"]) == 1
    conflict = result["conflicts"][0]
    assert conflict["name"] == "alpha"
    assert conflict["winner"] == "user"
    assert conflict["shadowed"] == ["project"]

    [alpha] = result["effective_servers"]
    assert alpha["tier"] == "user"
    assert alpha["command"] == "true"
    assert alpha["health"] == "healthy"
    assert len(result["all_servers_all_tiers"]) == 2
    assert result["summary"]["total_declarations"] == 2
    assert result["summary"]["conflicts"] == 1


def test_unset_env_reference(workspace, monkeypatch):
    """Test ${FOO} with FOO unset is reported as UNSET."""
    monkeypatch.delenv("FOO", raising=False)
    write_json(workspace["project"] / ".mcp.json", {
        "mcpServers": {"alpha": {"command": "true", "env": {"X": "${FOO}"}}}
    })

    result = run(workspace)

    [alpha] = result["effective_servers"]
    assert alpha["env_refs"] == ["FOO=UNSET"]
    assert alpha["health"] == "warning"


def test_each_name_probed_once(workspace, monkeypatch):
    """Test shadowed declarations are never probed."""
    probed = []

    def fake_check(server, settings=None):
        probed.append((server.name, server.tier))
        return HealthResult(server=server)

    monkeypatch.setattr(health, "check_health", fake_check)
    for path in (
        workspace["managed"] / "managed-mcp.json",
        workspace["home"] / ".claude.json",
        workspace["project"] / ".claude" / "settings.local.json",
    ):
        write_json(path, {"mcpServers": {"alpha": {"command": "true"}, "beta": {"url": "https://x/mcp"}}})

    result = run(workspace)

    assert sorted(probed) == [("alpha", "managed-mcp"), ("beta", "managed-mcp")]
    assert len(result["effective_servers"]) == 2
    assert [c["shadowed"] for c in result["conflicts"]] == [
        ["user", "local-settings"],
        ["user", "local-settings"],
    ]


def test_parse_error_is_contained(workspace):
    """Test a broken source is reported and the others still load."""
    (workspace["home"] / ".claude.json").write_text("{ not json")
    write_json(workspace["project"] / ".mcp.json", {
        "mcpServers": {"alpha": {"command": "true"}}
    })

    result = run(workspace)

    user = next(c for c in result["config_files"] if c["tier"] == "user")
    assert user["exists"] is True
    assert user["parse_error"] is True
    assert user["error"].startswith("Invalid JSON")
    assert result["summary"]["parse_errors"] == 1
    assert result["summary"]["configs_found"] == 2
    assert [s["name"] for s in result["effective_servers"]] == ["alpha"]


def test_secrets_never_in_output(workspace):
    """Test credentials in env, headers and URLs stay out of the JSON."""
    write_json(workspace["project"] / ".mcp.json", {
        "mcpServers": {
            "github": {
                "command": "true",
                "env": {"GITHUB_TOKEN": "ghp_verysecretvalue123"},
            },
            "remote": {
                "type": "http",
                "url": "https://api.example.com/mcp?api_key=querysecretvalue99",
                "headers": {"Authorization": "Bearer headersecretvalue42"},
            },
        }
    })
    write_json(workspace["project"] / ".claude" / "settings.json", {
        "env": {"ANTHROPIC_API_KEY": "sk-ant-settingssecret777"}
    })

    output = json.dumps(run(workspace), default=str)

    for secret in ("verysecretvalue", "querysecretvalue", "headersecretvalue", "settingssecret"):
        assert secret not in output
    assert "ghp_...e123" in output


def test_settings_audit(workspace):
    """Test one audit entry per parsed settings source."""
    write_json(workspace["home"] / ".claude" / "settings.json", {
        "permissions": {"allow": ["mcp__github__create_issue"]},
        "enabledMcpjsonServers": ["github"],
        "model": "opus",
    })
    write_json(workspace["project"] / ".claude" / "settings.local.json", {
        "permissions": {"allow": ["Bash(ls:*)"]},
    })

    result = run(workspace)

    audit = {entry["tier"]: entry for entry in result["settings_audit"]}
    assert set(audit) == {"user-settings", "local-settings"}
    assert audit["user-settings"]["has_mcp_permission_rule"] is True
    assert audit["user-settings"]["enabled_mcpjson_servers"] == ["github"]
    assert audit["user-settings"]["model"] == "opus"
    assert audit["local-settings"]["has_mcp_permission_rule"] is False
    assert audit["user-settings"]["parse_error"] is False


def test_settings_audit_lists_unparsable_file(workspace):
    """Test a broken settings file still gets an audit entry."""
    path = workspace["project"] / ".claude" / "settings.json"
    path.parent.mkdir(parents=True)
    path.write_text("{ broken")

    result = run(workspace)

    [entry] = result["settings_audit"]
    assert entry["tier"] == "project-settings"
    assert entry["path"].endswith(str(Path(".claude") / "settings.json"))
    assert entry["parse_error"] is True
    assert entry["permissions"] == {}
    assert entry["enabled_mcpjson_servers"] == []
    assert entry["model"] is None
    assert entry["has_mcp_permission_rule"] is False
    assert result["summary"]["parse_errors"] == 1


def test_aux_sections_included(workspace):
    result = run(workspace)

    assert result["cli_mcp_list"] == "(no output)"
    assert result["environment"] == {"runtimes": {}}


def test_has_mcp_permission_rule():
    assert has_mcp_permission_rule({"deny": ["MCP__shady__*"]})
    assert not has_mcp_permission_rule({"allow": "mcp__x"})
    assert not has_mcp_permission_rule({})


class TestCliInventory:
    """Tests for cli_inventory placeholders."""

    def run_with(self, monkeypatch, command_result):
        monkeypatch.setattr(report, "run_command", lambda cmd, timeout: command_result)
        return cli_inventory(Settings(inventory_command=("claude", "mcp", "list"), cli_timeout=4.0))

    def test_output(self, monkeypatch):
        result = self.run_with(monkeypatch, CommandResult(status="ok", stdout="github: npx ...\n", returncode=0))
        assert result == "github: npx ..."

    def test_empty_output(self, monkeypatch):
        assert self.run_with(monkeypatch, CommandResult(status="ok", returncode=0)) == "(no output)"

    def test_not_found(self, monkeypatch):
        assert self.run_with(monkeypatch, CommandResult(status="not_found")) == "claude CLI not found"

    def test_timeout(self, monkeypatch):
        assert self.run_with(monkeypatch, CommandResult(status="timeout")) == "'claude mcp list' timed out after 4s"

    def test_failed(self, monkeypatch):
        result = self.run_with(monkeypatch, CommandResult(status="failed", stderr="boom\nmore", returncode=1))
        assert result == "'claude mcp list' exited with status 1: boom"


class TestProjectSections:
    """Tests for project_sections function."""

    FULL = {
        "meta": {},
        "config_files": [],
        "all_servers_all_tiers": [],
        "effective_servers": [],
        "conflicts": [],
        "settings_audit": [],
        "cli_mcp_list": "",
        "environment": {},
        "summary": {},
    }

    def test_all(self):
        assert project_sections(self.FULL, "all") == self.FULL

    def test_unknown_section_returns_everything(self):
        assert project_sections(self.FULL, "bogus") == self.FULL

    def test_health(self):
        assert list(project_sections(self.FULL, "health")) == ["meta", "effective_servers", "summary"]

    def test_servers(self):
        assert list(project_sections(self.FULL, "servers")) == [
            "meta", "all_servers_all_tiers", "effective_servers", "conflicts", "summary",
        ]

    def test_configs_and_settings(self):
        assert list(project_sections(self.FULL, "configs")) == ["meta", "config_files", "summary"]
        assert list(project_sections(self.FULL, "settings")) == ["meta", "settings_audit", "summary"]
