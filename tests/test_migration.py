"""Tests for migrating provider-native state into the canonical store."""

import json

import pytest

from agent_loom.core.agents import parse_agent_file
from agent_loom.core.commands import parse_command_file
from agent_loom.core.mcp import read_canonical_mcp
from agent_loom.core.models import Settings
from agent_loom.errors import MigrationConflictError
from agent_loom.prompts import NullPrompter
from agent_loom.services.migration import (
    canonical_command_name,
    format_migration_summary,
    initialize_canonical_layout,
    migrate_provider_state,
)
from agent_loom.services.sync_service import sync_all

from conftest import ScriptedPrompter, write_agent, write_command, write_json, write_skill


def _migrate(paths, providers, prompter=None, **kwargs):
    kwargs.setdefault("non_interactive", True)
    return migrate_provider_state(paths, providers, prompter or NullPrompter(), **kwargs)


def test_migrate_new_agent_with_provider_config(local_paths):
    """Verify provider-only keys are nested under the provider block."""
    write_agent(local_paths.workspace_root / ".claude" / "agents", "reviewer", "Review code", "Review.\n", extra="model: opus\n")

    summary = _migrate(local_paths, ["claude"], target="agent")

    agent = parse_agent_file(local_paths.agents_dir / "reviewer.md")
    assert agent.description == "Review code"
    assert agent.body == "Review.\n"
    assert agent.frontmatter["claude"] == {"model": "opus"}
    assert summary.counts["agent"].imported == 1


def test_sync_then_migrate_is_a_no_op(local_paths):
    """Verify rendering then reading back changes nothing."""
    write_agent(local_paths.agents_dir, "reviewer", "Review code", "Review.\n")
    write_command(local_paths.commands_dir, "ship.md", "Ship $ARGUMENTS\n")
    before_agent = (local_paths.agents_dir / "reviewer.md").read_text()

    sync_all(local_paths, Settings(), NullPrompter(), providers=["claude", "copilot"], target="all", non_interactive=True)
    summary = _migrate(local_paths, ["claude", "copilot"], target="all")

    assert (local_paths.agents_dir / "reviewer.md").read_text() == before_agent
    assert (local_paths.commands_dir / "ship.md").read_text() == "Ship $ARGUMENTS\n"
    assert summary.counts["agent"].imported == 0
    assert summary.counts["command"].imported == 0
    assert summary.counts["command"].detected == 2


def test_conflicting_new_agent_non_interactive(local_paths):
    write_agent(local_paths.workspace_root / ".claude" / "agents", "reviewer", "R", "Claude body.\n")
    write_agent(local_paths.workspace_root / ".gemini" / "agents", "reviewer", "R", "Gemini body.\n")

    with pytest.raises(MigrationConflictError, match="across multiple providers"):
        _migrate(local_paths, ["claude", "gemini"], target="agent")
    assert not (local_paths.agents_dir / "reviewer.md").exists()


def test_conflicting_new_agent_interactive_choice(local_paths):
    """Verify the selected provider's body seeds the canonical agent."""
    write_agent(local_paths.workspace_root / ".claude" / "agents", "reviewer", "R", "Claude body.\n")
    write_agent(local_paths.workspace_root / ".gemini" / "agents", "reviewer", "R", "Gemini body.\n")

    summary = _migrate(local_paths, ["claude", "gemini"], ScriptedPrompter(1), target="agent", non_interactive=False)

    assert parse_agent_file(local_paths.agents_dir / "reviewer.md").body == "Gemini body.\n"
    assert summary.counts["agent"].conflicts == 1


def test_existing_agent_conflict_use_provider(local_paths):
    write_agent(local_paths.agents_dir, "reviewer", "R", "Canonical.\n")
    write_agent(local_paths.workspace_root / ".claude" / "agents", "reviewer", "R", "Provider.\n")

    _migrate(local_paths, ["claude"], ScriptedPrompter("provider"), target="agent", non_interactive=False)

    assert parse_agent_file(local_paths.agents_dir / "reviewer.md").body == "Provider.\n"


def test_existing_agent_conflict_keep_canonical(local_paths):
    write_agent(local_paths.agents_dir, "reviewer", "R", "Canonical.\n")
    write_agent(local_paths.workspace_root / ".claude" / "agents", "reviewer", "R", "Provider.\n")

    _migrate(local_paths, ["claude"], ScriptedPrompter("canonical"), target="agent", non_interactive=False)

    assert parse_agent_file(local_paths.agents_dir / "reviewer.md").body == "Canonical.\n"


def test_disabled_provider_key_is_kept(local_paths):
    """Verify `<provider>: false` is never replaced by migrated config."""
    write_agent(local_paths.agents_dir, "reviewer", "R", "Body.\n", extra="cursor: false\n")
    rules = local_paths.workspace_root / ".cursor" / "rules"
    rules.mkdir(parents=True)
    (rules / "reviewer.mdc").write_text("---\ndescription: R\nalwaysApply: true\n---\n\nBody.\n")

    _migrate(local_paths, ["cursor"], target="agent")

    assert parse_agent_file(local_paths.agents_dir / "reviewer.md").frontmatter["cursor"] is False


def test_copilot_prompt_arguments_restored(local_paths):
    """Verify copilot prompt files come back with $ARGUMENTS and a .md name."""
    write_command(local_paths.workspace_root / ".github" / "prompts", "ship.prompt.md", "Ship ${input:args}\n")

    _migrate(local_paths, ["copilot"], target="command")

    assert (local_paths.commands_dir / "ship.md").read_text() == "Ship $ARGUMENTS\n"


def test_command_frontmatter_merge(local_paths):
    """Verify shared keys are hoisted and provider-only keys nested."""
    write_command(
        local_paths.workspace_root / ".claude" / "commands", "ship.md",
        "---\ndescription: Ship it\nmodel: haiku\n---\n\nShip\n",
    )
    write_command(
        local_paths.workspace_root / ".github" / "prompts", "ship.prompt.md",
        "---\ndescription: Ship it\nmode: agent\n---\n\nShip\n",
    )

    _migrate(local_paths, ["claude", "copilot"], target="command")

    command = parse_command_file(local_paths.commands_dir / "ship.md")
    assert command.frontmatter == {
        "description": "Ship it",
        "claude": {"model": "haiku"},
        "copilot": {"mode": "agent"},
    }
    assert command.body == "Ship\n"


def test_codex_prompts_only_migrated_globally(local_paths, global_paths):
    write_command(local_paths.home_dir / ".codex" / "prompts", "ship.md", "Ship\n")

    assert _migrate(local_paths, ["codex"], target="command").counts["command"].detected == 0
    assert _migrate(global_paths, ["codex"], target="command").counts["command"].detected == 1


def test_migrate_mcp_servers(local_paths):
    """Verify the first provider's config becomes base and others become overrides."""
    write_json(local_paths.workspace_root / ".cursor" / "mcp.json", {"mcpServers": {"gh": {"command": "npx", "args": ["-y"]}}})
    write_json(local_paths.workspace_root / ".mcp.json", {"mcpServers": {"gh": {"command": "npx", "args": ["-y"]}}})
    write_json(local_paths.workspace_root / ".gemini" / "settings.json", {"mcpServers": {"docs": {"httpUrl": "https://d"}}})

    summary = _migrate(local_paths, ["cursor", "claude", "gemini"], target="mcp")

    servers = read_canonical_mcp(local_paths)
    assert servers["gh"].base == {"command": "npx", "args": ["-y"]}
    assert servers["gh"].providers == {"codex": False, "opencode": False, "gemini": False, "copilot": False}
    assert servers["docs"].base == {"url": "https://d"}
    assert servers["docs"].providers == {
        "cursor": False, "claude": False, "codex": False, "opencode": False, "copilot": False,
    }
    assert summary.counts["mcp"].detected == 3


def test_migrated_server_stays_with_its_provider(local_paths):
    """Verify a server found only in claude is not published to other providers later."""
    write_json(local_paths.workspace_root / ".mcp.json", {"mcpServers": {"gh": {"command": "npx"}}})

    _migrate(local_paths, ["claude"], target="mcp")
    sync_all(local_paths, Settings(), NullPrompter(), providers=["claude", "cursor"], target="mcp", non_interactive=True)

    gh = read_canonical_mcp(local_paths)["gh"]
    assert "claude" not in gh.providers
    assert all(gh.providers[p] is False for p in ("cursor", "codex", "opencode", "gemini", "copilot"))
    assert not (local_paths.workspace_root / ".cursor" / "mcp.json").exists()


def test_migrate_mcp_existing_server_override(local_paths):
    write_json(local_paths.mcp_path, {"version": 1, "mcpServers": {"gh": {"base": {"command": "npx"}}}})
    write_json(local_paths.workspace_root / ".cursor" / "mcp.json", {"mcpServers": {"gh": {"command": "bunx"}}})

    _migrate(local_paths, ["cursor"], target="mcp")

    data = json.loads(local_paths.mcp_path.read_text())
    assert data["mcpServers"]["gh"] == {"base": {"command": "npx"}, "providers": {"cursor": {"command": "bunx"}}}


def test_migrate_skills(local_paths):
    write_skill(local_paths.workspace_root / ".claude" / "skills", "writer")

    summary = _migrate(local_paths, ["claude"], target="skill")

    assert (local_paths.skills_dir / "writer" / "SKILL.md").is_file()
    assert summary.counts["skill"].imported == 1


def test_dry_run_writes_nothing(local_paths):
    write_agent(local_paths.workspace_root / ".claude" / "agents", "reviewer", "R", "Body.\n")

    summary = _migrate(local_paths, ["claude"], target="agent", dry_run=True)

    assert summary.counts["agent"].imported == 1
    assert not local_paths.agents_dir.exists()


def test_canonical_command_name():
    assert canonical_command_name("ship.prompt.md") == "ship.md"
    assert canonical_command_name("ship.mdc") == "ship.md"
    assert canonical_command_name("ship.md") == "ship.md"


def test_format_migration_summary(local_paths):
    summary = _migrate(local_paths, ["claude"], target="agent")

    assert format_migration_summary(summary) == [
        "Migration summary (provider -> canonical):",
        "agent: detected=0, imported=0, conflicts=0, skipped=0",
    ]


def test_initialize_canonical_layout(local_paths):
    """Verify init creates the store and remembers scope and providers."""
    settings = initialize_canonical_layout(local_paths, Settings(), ["claude", "codex"])

    assert local_paths.agents_dir.is_dir()
    assert local_paths.commands_dir.is_dir()
    assert local_paths.skills_dir.is_dir()
    assert json.loads(local_paths.mcp_path.read_text()) == {"version": 1, "mcpServers": {}}
    assert json.loads(local_paths.lock_path.read_text()) == {"version": 1, "entries": []}
    assert local_paths.manifest_path.is_file()
    assert settings.last_scope == "local"
    assert settings.default_providers == ["claude", "codex"]
