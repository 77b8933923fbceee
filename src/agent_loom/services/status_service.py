"""
Business logic for 'agent-loom status' command.
Collects canonical store state and returns structured data for display.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from agent_loom.core.adapter import ProviderAdapter, adapter_registry
from agent_loom.core.agents import parse_agents_dir
from agent_loom.core.commands import parse_commands_dir
from agent_loom.core.lockfile import read_lockfile
from agent_loom.core.manifest import read_manifest
from agent_loom.core.mcp import read_canonical_mcp
from agent_loom.core.models import ENTITY_TYPES, ScopePaths
from agent_loom.core.skills import parse_skills_dir
from agent_loom.utils import is_subpath

# Written by import and sync themselves, so they never make a provider stale
_BOOKKEEPING_FILES = ("agents.lock.json", ".sync-manifest.json", "settings.local.json")


@dataclass
class SourceStatus:
    source: str
    source_type: str
    resolved_commit: str
    imported_count: int
    imported_at: Optional[datetime]
    freshness: str


@dataclass
class ProviderStatus:
    name: str
    display_name: str
    output_dir: str
    synced: bool
    file_count: int
    is_stale: bool


@dataclass
class ScopeStatus:
    scope: str
    agents_root: Path
    initialized: bool
    canonical_counts: Dict[str, int]
    mcp_server_names: List[str]
    source_statuses: List[SourceStatus]
    manifest_counts: Dict[str, int]
    provider_statuses: List[ProviderStatus]


def collect_status(paths: ScopePaths) -> ScopeStatus:
    """Main entry point. Collects all status data for one scope."""
    initialized = paths.agents_root.exists()
    servers = sorted(read_canonical_mcp(paths)) if initialized else []

    counts = {entity: 0 for entity in ENTITY_TYPES}
    if initialized:
        counts["agent"] = len(parse_agents_dir(paths.agents_dir))
        counts["command"] = len(parse_commands_dir(paths.commands_dir))
        counts["mcp"] = len(servers)
        counts["skill"] = len(parse_skills_dir(paths.skills_dir))

    manifest = read_manifest(paths)
    manifest_counts = {
        entity: len(manifest.generated_by_entity.get(entity, [])) for entity in ENTITY_TYPES
    }

    return ScopeStatus(
        scope=paths.scope,
        agents_root=paths.agents_root,
        initialized=initialized,
        canonical_counts=counts,
        mcp_server_names=servers,
        source_statuses=_get_source_statuses(paths),
        manifest_counts=manifest_counts,
        provider_statuses=_get_provider_statuses(paths, manifest.generated_files),
    )


def _get_source_statuses(paths: ScopePaths) -> List[SourceStatus]:
    """One row per lock entry."""
    statuses = []
    for entry in read_lockfile(paths).entries:
        imported_at = _parse_timestamp(entry.imported_at)
        imported_count = (
            len(entry.imported_agents)
            + len(entry.imported_commands)
            + len(entry.imported_mcp_servers)
            + len(entry.imported_skills)
        )
        statuses.append(SourceStatus(
            source=entry.source,
            source_type=entry.source_type,
            resolved_commit=entry.resolved_commit,
            imported_count=imported_count,
            imported_at=imported_at,
            freshness=_relative_time(imported_at),
        ))
    return statuses


def _provider_owns(paths: ScopePaths, adapter: ProviderAdapter, file_path: Path) -> bool:
    # Skills dirs are left out: copilot shares the claude one
    roots = [adapter.root(paths), adapter.agents_dir(paths), adapter.commands_dir(paths)]
    if any(file_path == root or is_subpath(file_path, root) for root in roots):
        return True
    return any(output.path == file_path for output in adapter.mcp_outputs(paths, {}))


def _get_provider_statuses(paths: ScopePaths, generated_files: List[str]) -> List[ProviderStatus]:
    """Generated file counts per provider, flagged stale when canonical is newer."""
    statuses = []
    canonical_newest = _get_newest_mtime(paths.agents_root)

    for adapter in adapter_registry.all():
        info = adapter.info
        files = [Path(f) for f in generated_files if _provider_owns(paths, adapter, Path(f))]
        existing = [f for f in files if f.exists()]

        is_stale = False
        if existing and canonical_newest:
            provider_newest = max(datetime.fromtimestamp(f.stat().st_mtime) for f in existing)
            is_stale = canonical_newest > provider_newest

        statuses.append(ProviderStatus(
            name=info.name,
            display_name=info.display_name,
            output_dir=info.output_dir,
            synced=bool(existing),
            file_count=len(existing),
            is_stale=is_stale,
        ))

    return statuses


def _get_newest_mtime(directory: Path) -> Optional[datetime]:
    """Newest modification time among canonical entity files."""
    if not directory.exists():
        return None

    newest = None
    for item in directory.rglob("*"):
        if not item.is_file() or item.name in _BOOKKEEPING_FILES:
            continue
        mtime = datetime.fromtimestamp(item.stat().st_mtime)
        if newest is None or mtime > newest:
            newest = mtime

    return newest


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _relative_time(dt: Optional[datetime]) -> str:
    """Convert datetime to human-friendly string like '2h ago', '3d ago'."""
    if dt is None:
        return "never"

    delta = datetime.now() - dt
    seconds = delta.total_seconds()

    if seconds < 60:
        return "just now"
    elif seconds < 3600:
        minutes = int(seconds / 60)
        return f"{minutes}m ago"
    elif seconds < 86400:
        hours = int(seconds / 3600)
        return f"{hours}h ago"
    elif seconds < 604800:
        days = int(seconds / 86400)
        return f"{days}d ago"
    else:
        weeks = int(seconds / 604800)
        return f"{weeks}w ago"
