"""``.sync-manifest.json``: which provider files the last sync generated.

Paths are absolute in memory. On disk they are written relative to the
workspace (local scope) or as ``~/...`` (home), with POSIX separators, so a
manifest survives moving the project or sharing it between machines.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List

from ..errors import ValidationError
from ..utils import is_subpath, read_json_if_exists, write_json_atomic
from .models import ENTITY_TYPES, CodexTracking, ScopePaths, SyncManifest

_COMMAND_DIR_MARKERS = (
    "/.cursor/commands/",
    "/.claude/commands/",
    "/.opencode/commands/",
    "/.gemini/commands/",
    "/.github/prompts/",
    "/.codex/prompts/",
)
_AGENT_DIR_MARKERS = (
    "/.cursor/rules/",
    "/.claude/agents/",
    "/.opencode/agents/",
    "/.gemini/agents/",
    "/.github/agents/",
    "/.codex/agents/",
)
_MCP_FILE_SUFFIXES = (
    "/.cursor/mcp.json",
    "/.mcp.json",
    "/.claude/settings.json",
    "/.opencode/opencode.json",
    "/.gemini/settings.json",
    "/.vscode/mcp.json",
    "/code/user/settings.json",
)


def resolve_path_for_runtime(paths: ScopePaths, value: str) -> str:
    value = value.strip()
    if not value:
        return ""
    if value == "~":
        return str(paths.home_dir)
    if value.startswith("~/"):
        return os.path.normpath(str(paths.home_dir / value[2:]))
    if os.path.isabs(value):
        return os.path.normpath(value)
    return os.path.normpath(str(paths.workspace_root / value))


def resolve_path_for_disk(paths: ScopePaths, value: str) -> str:
    value = value.strip()
    if not value:
        return ""
    if not os.path.isabs(value):
        return Path(value).as_posix()

    absolute = Path(os.path.normpath(value))
    if not paths.is_global and is_subpath(absolute, paths.workspace_root):
        relative = absolute.relative_to(paths.workspace_root).as_posix()
        return relative or "."
    if is_subpath(absolute, paths.home_dir):
        relative = absolute.relative_to(paths.home_dir).as_posix()
        return f"~/{relative}" if relative != "." else "~"
    return absolute.as_posix()


def _path_list(paths: ScopePaths, value: Any, resolver) -> List[str]:
    if not isinstance(value, list):
        return []
    resolved = (resolver(paths, item) for item in value if isinstance(item, str))
    return sorted({item for item in resolved if item})


def _name_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return sorted({item for item in value if isinstance(item, str) and item})


def classify_legacy_path(file_path: str) -> List[str]:
    """Entity types a pre-partition manifest path belongs to."""
    normalized = Path(file_path).as_posix().lower()
    if normalized.endswith("/.codex/config.toml"):
        return ["agent", "mcp"]
    if any(marker in normalized for marker in _COMMAND_DIR_MARKERS):
        return ["command"]
    if any(marker in normalized for marker in _AGENT_DIR_MARKERS):
        return ["agent"]
    if any(normalized.endswith(suffix) for suffix in _MCP_FILE_SUFFIXES):
        return ["mcp"]
    # Unknown paths are kept by every scoped sync
    return ["agent", "command", "mcp"]


def infer_generated_by_entity(generated_files: List[str]) -> Dict[str, List[str]]:
    by_entity: Dict[str, List[str]] = {entity: [] for entity in ENTITY_TYPES}
    for file_path in generated_files:
        for entity in classify_legacy_path(file_path):
            by_entity[entity].append(file_path)
    return {entity: sorted(set(files)) for entity, files in by_entity.items() if files}


def read_manifest(paths: ScopePaths) -> SyncManifest:
    try:
        data = read_json_if_exists(paths.manifest_path)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {paths.manifest_path}: {e}") from e

    if not isinstance(data, dict) or data.get("version") != 1 or not isinstance(data.get("generatedFiles"), list):
        return SyncManifest()

    generated_files = _path_list(paths, data["generatedFiles"], resolve_path_for_runtime)
    raw_by_entity = data.get("generatedByEntity")
    if isinstance(raw_by_entity, dict):
        by_entity = {
            entity: _path_list(paths, raw_by_entity.get(entity), resolve_path_for_runtime)
            for entity in ENTITY_TYPES
        }
        by_entity = {entity: files for entity, files in by_entity.items() if files}
    else:
        by_entity = infer_generated_by_entity(generated_files)

    codex = data.get("codex") if isinstance(data.get("codex"), dict) else {}
    return SyncManifest(
        generated_files=generated_files,
        generated_by_entity=by_entity,
        codex=CodexTracking(
            roles=_name_list(codex.get("roles")),
            mcp_servers=_name_list(codex.get("mcpServers")),
        ),
    )


def manifest_to_dict(paths: ScopePaths, manifest: SyncManifest) -> Dict[str, Any]:
    by_entity = {}
    for entity in ENTITY_TYPES:
        files = _path_list(paths, manifest.generated_by_entity.get(entity), resolve_path_for_disk)
        if files:
            by_entity[entity] = files

    data: Dict[str, Any] = {
        "version": 1,
        "generatedFiles": _path_list(paths, manifest.generated_files, resolve_path_for_disk),
        "generatedByEntity": by_entity,
        "codex": {
            "roles": _name_list(manifest.codex.roles),
            "mcpServers": _name_list(manifest.codex.mcp_servers),
        },
    }
    return data


def write_manifest(paths: ScopePaths, manifest: SyncManifest) -> None:
    write_json_atomic(paths.manifest_path, manifest_to_dict(paths, manifest))
