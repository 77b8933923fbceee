"""``agents.lock.json``: provenance and selection state per imported source."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..utils import normalize_selector_list, read_json_if_exists, write_json_atomic
from .models import LockEntry, Lockfile, ScopePaths

# (attribute, JSON key) in on-disk order
_FIELDS = [
    ("source", "source"),
    ("source_type", "sourceType"),
    ("requested_ref", "requestedRef"),
    ("requested_agents", "requestedAgents"),
    ("resolved_commit", "resolvedCommit"),
    ("subdir", "subdir"),
    ("imported_at", "importedAt"),
    ("imported_agents", "importedAgents"),
    ("imported_commands", "importedCommands"),
    ("selected_source_commands", "selectedSourceCommands"),
    ("command_rename_map", "commandRenameMap"),
    ("imported_mcp_servers", "importedMcpServers"),
    ("selected_source_mcp_servers", "selectedSourceMcpServers"),
    ("imported_skills", "importedSkills"),
    ("selected_source_skills", "selectedSourceSkills"),
    ("skill_rename_map", "skillRenameMap"),
    ("tracked_entities", "trackedEntities"),
    ("content_hash", "contentHash"),
]

_REQUIRED_LISTS = ("importedAgents", "importedCommands", "importedMcpServers", "importedSkills", "trackedEntities")
_OPTIONAL_LISTS = ("requestedAgents", "selectedSourceCommands", "selectedSourceMcpServers", "selectedSourceSkills")
_RENAME_MAPS = ("commandRenameMap", "skillRenameMap")


def _string_list(value: Any) -> List[str]:
    return [v for v in value if isinstance(v, str)]


def _normalize_rename_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {
        k: v for k, v in value.items()
        if isinstance(k, str) and k.strip() and isinstance(v, str) and v.strip()
    }


def entry_from_dict(data: Dict[str, Any]) -> LockEntry:
    kwargs: Dict[str, Any] = {}
    for attr, key in _FIELDS:
        value = data.get(key)
        if key in _REQUIRED_LISTS:
            value = _string_list(value) if isinstance(value, list) else []
        elif key in _OPTIONAL_LISTS:
            value = _string_list(value) if isinstance(value, list) else None
        elif key in _RENAME_MAPS:
            value = _normalize_rename_map(value)
        elif value is not None and not isinstance(value, str):
            value = str(value)
        kwargs[attr] = value
    kwargs["source"] = kwargs["source"] or ""
    kwargs["source_type"] = kwargs["source_type"] or "local"
    kwargs["resolved_commit"] = kwargs["resolved_commit"] or ""
    kwargs["imported_at"] = kwargs["imported_at"] or ""
    kwargs["content_hash"] = kwargs["content_hash"] or ""
    return LockEntry(**kwargs)


def entry_to_dict(entry: LockEntry) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for attr, key in _FIELDS:
        value = getattr(entry, attr)
        if value is None:
            continue
        if key in _RENAME_MAPS and not value:
            continue
        data[key] = value
    return data


def read_lockfile(paths: ScopePaths) -> Lockfile:
    """Load the lockfile; a missing or foreign-version file reads as empty."""
    try:
        data = read_json_if_exists(paths.lock_path)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {paths.lock_path}: {e}") from e

    if not isinstance(data, dict) or data.get("version") != 1 or not isinstance(data.get("entries"), list):
        return Lockfile()

    entries = [
        _entry_for_runtime(paths, entry_from_dict(raw))
        for raw in data["entries"]
        if isinstance(raw, dict)
    ]
    return Lockfile(entries=entries)


def write_lockfile(paths: ScopePaths, lockfile: Lockfile) -> None:
    write_json_atomic(
        paths.lock_path,
        {
            "version": 1,
            "entries": [entry_to_dict(_entry_for_disk(paths, e)) for e in lockfile.entries],
        },
    )


def _entry_for_runtime(paths: ScopePaths, entry: LockEntry) -> LockEntry:
    if paths.is_global or entry.source_type != "local":
        return entry
    if os.path.isabs(entry.source):
        return entry
    entry.source = str((paths.workspace_root / entry.source).resolve())
    return entry


def _entry_for_disk(paths: ScopePaths, entry: LockEntry) -> LockEntry:
    """Local sources in local scope are stored relative to the workspace."""
    if paths.is_global or entry.source_type != "local" or not os.path.isabs(entry.source):
        return entry
    relative = os.path.relpath(entry.source, paths.workspace_root)
    return _copy_with_source(entry, Path(relative).as_posix() if relative != "." else ".")


def _copy_with_source(entry: LockEntry, source: str) -> LockEntry:
    data = entry_to_dict(entry)
    data["source"] = source
    return entry_from_dict(data)


# =============================================================================
# MATCHING
# =============================================================================


def same_selection(left: Optional[List[str]], right: Optional[List[str]]) -> bool:
    return normalize_selector_list(left) == normalize_selector_list(right)


def same_source(entry: LockEntry, source: str, source_type: str, subdir: Optional[str]) -> bool:
    return entry.source == source and entry.source_type == source_type and (entry.subdir or None) == (subdir or None)


def same_entry_key(left: LockEntry, right: LockEntry) -> bool:
    return (
        same_source(left, right.source, right.source_type, right.subdir)
        and same_selection(left.requested_agents, right.requested_agents)
        and same_selection(left.selected_source_commands, right.selected_source_commands)
        and same_selection(left.selected_source_mcp_servers, right.selected_source_mcp_servers)
        and same_selection(left.selected_source_skills, right.selected_source_skills)
    )


def find_entry(lockfile: Lockfile, entry: LockEntry) -> Optional[LockEntry]:
    for existing in lockfile.entries:
        if same_entry_key(existing, entry):
            return existing
    return None


def upsert_lock_entry(lockfile: Lockfile, entry: LockEntry) -> None:
    for index, existing in enumerate(lockfile.entries):
        if same_entry_key(existing, entry):
            lockfile.entries[index] = entry
            return
    lockfile.entries.append(entry)
