"""Tests for status_service.py."""

import os
import time
from datetime import datetime, timedelta

from agent_loom.core.models import Settings
from agent_loom.core.sources import prepare_source
from agent_loom.prompts import NullPrompter
from agent_loom.services.importer import ImportRequest, import_source
from agent_loom.services.status_display import display_status
from agent_loom.services.status_service import _relative_time, collect_status
from agent_loom.services.sync_service import sync_all


def _import_and_sync(paths, source):
    import_source(paths, prepare_source(str(source)), ImportRequest(non_interactive=True), NullPrompter())
    sync_all(paths, Settings(), NullPrompter(), providers=["claude"], non_interactive=True)


def _by_name(status):
    return {p.name: p for p in status.provider_statuses}


def test_uninitialized_scope(local_paths):
    """Verify a missing .agents/ reports nothing synced."""
    status = collect_status(local_paths)

    assert status.initialized is False
    assert status.canonical_counts == {"agent": 0, "command": 0, "mcp": 0, "skill": 0}
    assert status.source_statuses == []
    assert not any(p.synced for p in status.provider_statuses)


def test_status_after_import_and_sync(local_paths, source_repo):
    _import_and_sync(local_paths, source_repo)
    status = collect_status(local_paths)

    assert status.initialized
    assert status.canonical_counts == {"agent": 2, "command": 1, "mcp": 1, "skill": 1}
    assert status.mcp_server_names == ["github"]
    assert status.manifest_counts["agent"] == 2

    source = status.source_statuses[0]
    assert source.source == str(source_repo.resolve())
    assert source.imported_count == 5
    assert source.freshness == "just now"

    providers = _by_name(status)
    assert providers["claude"].synced
    assert providers["claude"].file_count == 5
    assert not providers["copilot"].synced
    assert not providers["gemini"].synced


def test_provider_stale_when_canonical_newer(local_paths, source_repo):
    """Verify editing canonical content after a sync flags the provider stale."""
    _import_and_sync(local_paths, source_repo)
    assert not _by_name(collect_status(local_paths))["claude"].is_stale

    future = time.time() + 3600
    os.utime(local_paths.agents_dir / "reviewer.md", (future, future))

    assert _by_name(collect_status(local_paths))["claude"].is_stale


def test_relative_time():
    """Verify human-friendly time strings."""
    now = datetime.now()

    assert _relative_time(None) == "never"
    assert _relative_time(now) == "just now"
    assert _relative_time(now - timedelta(minutes=5)) == "5m ago"
    assert _relative_time(now - timedelta(hours=3)) == "3h ago"
    assert _relative_time(now - timedelta(days=2)) == "2d ago"
    assert _relative_time(now - timedelta(weeks=3)) == "3w ago"


def test_display_status(local_paths, source_repo, capsys):
    _import_and_sync(local_paths, source_repo)

    display_status(collect_status(local_paths))

    out = capsys.readouterr().out
    assert "Scope:" in out
    assert "2 agents, 1 commands, 1 MCP servers, 1 skills" in out
    assert "claude" in out
    assert "github" in out


def test_display_uninitialized(local_paths, capsys):
    display_status(collect_status(local_paths))

    out = capsys.readouterr().out
    assert "not initialized" in out
    assert "No imported sources" in out
