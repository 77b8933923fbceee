"""Update service: re-import every locked source whose revision moved."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..core.lockfile import read_lockfile
from ..core.models import ENTITY_TYPES, LockEntry, ScopePaths
from ..core.sources import PreparedSource, parse_source_spec, prepare_source
from ..prompts import NullPrompter
from ..utils import logger
from .importer import ImportRequest, ImportSummary, import_source


@dataclass
class UpdateSummary:
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    imports: List[ImportSummary] = field(default_factory=list)


def replay_request(entry: LockEntry) -> ImportRequest:
    """Import request that reproduces the selection recorded in ``entry``.

    An entity recorded with an empty selector list was skipped on import and
    stays skipped.
    """
    tracked = entry.tracked_entities or list(ENTITY_TYPES)
    entities = [e for e in ENTITY_TYPES if e in tracked and entry.selection_for(e) != []]
    return ImportRequest(
        entities=entities,
        agents=entry.requested_agents or None,
        commands=entry.selected_source_commands or None,
        mcp_servers=entry.selected_source_mcp_servers or None,
        skills=entry.selected_source_skills or None,
        selection_mode="all",
        yes=True,
        non_interactive=True,
    )


def update_sources(
    paths: ScopePaths,
    source: Optional[str] = None,
    cwd: Optional[Path] = None,
    prepare: Callable[..., PreparedSource] = prepare_source,
) -> UpdateSummary:
    """Re-import lock entries (optionally only those of ``source``)."""
    entries = list(read_lockfile(paths).entries)
    if source:
        wanted = parse_source_spec(source, cwd or paths.workspace_root).source
        entries = [e for e in entries if e.source == wanted]

    summary = UpdateSummary()
    for entry in entries:
        prepared = prepare(entry.source, ref=entry.requested_ref, subdir=entry.subdir, cwd=paths.workspace_root)
        try:
            if prepared.resolved_commit == entry.resolved_commit:
                logger.debug("%s is already at %s", entry.source, entry.resolved_commit)
                summary.unchanged.append(entry.source)
                continue
            result = import_source(paths, prepared, replay_request(entry), NullPrompter())
            summary.imports.append(result)
            summary.updated.append(entry.source)
        finally:
            prepared.cleanup()
    return summary
