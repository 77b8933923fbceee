"""Tests for the command line entry point."""

import json

import pytest

from agent_loom.cli import build_parser, main

from conftest import write_agent


@pytest.fixture
def cli_env(workspace, home, monkeypatch):
    """Run the CLI from ``workspace`` with ``home`` as the home directory."""
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(workspace)
    return workspace, home


def test_list_providers(capsys):
    main(["list"])

    out = capsys.readouterr().out
    for name in ("cursor", "claude", "codex", "opencode", "gemini", "copilot"):
        assert name in out


def test_no_command_prints_help(capsys):
    main([])
    assert "usage" in capsys.readouterr().out.lower()


def test_parser_options():
    args = build_parser().parse_args(["add", "acme/kit", "--agents", "a, b", "--only", "agent", "--global", "-y"])

    assert args.agents == ["a", "b"]
    assert args.only == ["agent"]
    assert args.global_scope and args.yes


def test_sync_local(cli_env):
    """Verify sync renders agents and persists scope and providers."""
    workspace, home = cli_env
    write_agent(workspace / ".agents" / "agents", "reviewer", "Review code")

    main(["sync", "--local", "--no-interactive", "--providers", "claude"])

    assert (workspace / ".claude" / "agents" / "reviewer.md").exists()
    settings = json.loads((workspace / ".agents" / "settings.local.json").read_text())
    assert settings["lastScope"] == "local"
    assert settings["defaultProviders"] == ["claude"]
    remembered = json.loads((home / ".agents" / "settings.local.json").read_text())
    assert remembered["lastScope"] == "local"


def test_sync_dry_run(cli_env, capsys):
    workspace, _ = cli_env
    write_agent(workspace / ".agents" / "agents", "reviewer", "Review code")

    main(["sync", "--local", "--no-interactive", "--providers", "claude", "--dry-run"])

    assert "Would sync" in capsys.readouterr().out
    assert not (workspace / ".claude").exists()


def test_init_migrates_and_syncs(cli_env):
    """Verify init pulls existing provider agents in and renders them elsewhere."""
    workspace, _ = cli_env
    write_agent(workspace / ".claude" / "agents", "reviewer", "Review code", "Review.\n")

    main(["init", "--local", "--no-interactive", "--providers", "claude,cursor"])

    assert (workspace / ".agents" / "agents" / "reviewer.md").exists()
    assert (workspace / ".cursor" / "rules" / "reviewer.mdc").exists()
    assert (workspace / ".agents" / "agents.lock.json").exists()


def test_add_and_delete_by_source(cli_env, source_repo):
    workspace, _ = cli_env

    main(["add", str(source_repo), "--local", "--no-interactive", "--providers", "claude"])
    assert (workspace / ".agents" / "agents" / "reviewer.md").exists()
    assert (workspace / ".claude" / "agents" / "reviewer.md").exists()

    main(["delete", "--source", str(source_repo), "--local", "--no-interactive", "--providers", "claude"])
    assert not (workspace / ".agents" / "agents" / "reviewer.md").exists()
    assert not (workspace / ".claude" / "agents" / "reviewer.md").exists()


def test_unknown_provider_exits_with_error(cli_env, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["sync", "--local", "--no-interactive", "--providers", "windsurf"])

    assert exc.value.code == 1
    assert "Unknown provider" in capsys.readouterr().out


def test_conflict_exit_code(cli_env, source_repo):
    """Verify a non-interactive import conflict exits with code 2."""
    workspace, _ = cli_env
    write_agent(workspace / ".agents" / "agents", "reviewer", "Mine", "Different.\n")

    with pytest.raises(SystemExit) as exc:
        main(["add", str(source_repo), "--local", "--no-interactive", "--no-sync"])

    assert exc.value.code == 2


def test_delete_requires_target(cli_env):
    with pytest.raises(SystemExit) as exc:
        main(["delete", "--local", "--no-interactive"])
    assert exc.value.code == 2


def test_status(cli_env, capsys):
    main(["status", "--local", "--no-interactive"])
    assert "not initialized" in capsys.readouterr().out
