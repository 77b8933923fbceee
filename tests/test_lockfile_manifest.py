"""Tests for the lockfile and sync manifest stores."""

import json

from agent_loom.core.lockfile import read_lockfile, same_entry_key, upsert_lock_entry, write_lockfile
from agent_loom.core.manifest import classify_legacy_path, read_manifest, write_manifest
from agent_loom.core.models import CodexTracking, LockEntry, Lockfile, SyncManifest

from conftest import write_json


def _entry(source, **kwargs):
    return LockEntry(source=source, source_type="local", resolved_commit="abc", imported_at="2024-01-01T00:00:00Z", **kwargs)


def test_missing_lockfile_reads_empty(local_paths):
    assert read_lockfile(local_paths).entries == []


def test_foreign_version_lockfile_reads_empty(local_paths):
    write_json(local_paths.lock_path, {"version": 2, "entries": [{"source": "x"}]})
    assert read_lockfile(local_paths).entries == []


def test_local_source_stored_relative(local_paths):
    """Verify local sources inside the workspace are stored relative and read back absolute."""
    source = local_paths.workspace_root / "vendor" / "kit"
    lockfile = Lockfile(entries=[_entry(str(source), imported_agents=["agents/a.md"], requested_agents=["a"])])
    write_lockfile(local_paths, lockfile)

    raw = json.loads(local_paths.lock_path.read_text())
    assert raw["entries"][0]["source"] == "vendor/kit"
    assert raw["entries"][0]["requestedAgents"] == ["a"]
    assert "selectedSourceCommands" not in raw["entries"][0]
    assert "commandRenameMap" not in raw["entries"][0]

    entry = read_lockfile(local_paths).entries[0]
    assert entry.source == str(source)
    assert entry.requested_agents == ["a"]
    assert entry.selected_source_commands is None


def test_entry_key_includes_selection():
    """Verify different pinned selections are different entries; order does not matter."""
    left = _entry("/src", requested_agents=["A", "b"])
    assert same_entry_key(left, _entry("/src", requested_agents=["b", "a"]))
    assert not same_entry_key(left, _entry("/src", requested_agents=["a"]))
    assert not same_entry_key(left, _entry("/src", requested_agents=None))


def test_upsert_replaces_matching_entry():
    lockfile = Lockfile()
    upsert_lock_entry(lockfile, _entry("/src", imported_agents=["agents/a.md"]))
    upsert_lock_entry(lockfile, _entry("/src", imported_agents=["agents/b.md"]))
    upsert_lock_entry(lockfile, _entry("/other"))

    assert [e.source for e in lockfile.entries] == ["/src", "/other"]
    assert lockfile.entries[0].imported_agents == ["agents/b.md"]


def test_manifest_paths_portable(local_paths):
    """Verify workspace paths are stored relative and home paths as ~/."""
    in_workspace = str(local_paths.workspace_root / ".claude" / "agents" / "a.md")
    in_home = str(local_paths.home_dir / ".codex" / "prompts" / "ship.md")
    manifest = SyncManifest(
        generated_files=[in_workspace, in_home],
        generated_by_entity={"agent": [in_workspace], "command": [in_home]},
        codex=CodexTracking(roles=["b", "a"]),
    )
    write_manifest(local_paths, manifest)

    raw = json.loads(local_paths.manifest_path.read_text())
    assert raw["generatedFiles"] == [".claude/agents/a.md", "~/.codex/prompts/ship.md"]
    assert raw["codex"] == {"roles": ["a", "b"], "mcpServers": []}

    loaded = read_manifest(local_paths)
    assert sorted(loaded.generated_files) == sorted([in_workspace, in_home])
    assert loaded.generated_by_entity["command"] == [in_home]


def test_legacy_manifest_partitioned(local_paths):
    """Verify a manifest without generatedByEntity is split by path shape."""
    write_json(local_paths.manifest_path, {
        "version": 1,
        "generatedFiles": [".claude/agents/a.md", ".github/prompts/ship.prompt.md", ".cursor/mcp.json"],
    })
    manifest = read_manifest(local_paths)

    root = local_paths.workspace_root
    assert manifest.generated_by_entity == {
        "agent": [str(root / ".claude" / "agents" / "a.md")],
        "command": [str(root / ".github" / "prompts" / "ship.prompt.md")],
        "mcp": [str(root / ".cursor" / "mcp.json")],
    }


def test_classify_unknown_path():
    assert classify_legacy_path("/somewhere/else.txt") == ["agent", "command", "mcp"]
    assert classify_legacy_path("/p/.codex/config.toml") == ["agent", "mcp"]
