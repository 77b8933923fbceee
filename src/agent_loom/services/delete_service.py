"""
Delete service: remove canonical entities by name, or everything a locked
source imported, and keep the lockfile consistent with what is left.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..core.agents import parse_agents_dir
from ..core.commands import parse_commands_dir, strip_command_file_extension
from ..core.lockfile import read_lockfile, write_lockfile
from ..core.mcp import read_canonical_mcp, write_canonical_mcp
from ..core.models import ENTITY_TYPES, LockEntry, ScopePaths
from ..core.skills import parse_skills_dir
from ..core.sources import parse_source_spec
from ..errors import SelectorError, SelectorNotFoundError, SourceDiscoveryError, SourceNotFoundError
from ..prompts import CANCELLED, Cancelled, Prompter
from ..utils import logger, safe_remove


@dataclass
class DeleteSummary:
    removed: List[str] = field(default_factory=list)
    dropped_entries: int = 0


def _norm(value: str) -> str:
    return value.strip().lower()


def _base(item: str) -> str:
    """``agents/reviewer.md`` -> ``reviewer``."""
    name = Path(item).name
    if name.lower().endswith((".md", ".mdc")):
        return strip_command_file_extension(name)
    return name


# =============================================================================
# NAME MATCHING
# =============================================================================


def detect_name_matches(paths: ScopePaths, name: str) -> List[str]:
    """Entity types that hold a canonical entity called ``name``."""
    wanted = _norm(name)
    matches = []
    if any(wanted in (_norm(a.name), _norm(a.source_path.stem)) for a in parse_agents_dir(paths.agents_dir)):
        matches.append("agent")
    if any(
        wanted in (_norm(c.file_name), _norm(strip_command_file_extension(c.file_name)))
        for c in parse_commands_dir(paths.commands_dir)
    ):
        matches.append("command")
    if any(_norm(server) == wanted for server in read_canonical_mcp(paths)):
        matches.append("mcp")
    if any(_norm(s.name) == wanted for s in parse_skills_dir(paths.skills_dir)):
        matches.append("skill")
    return matches


def _delete_canonical(paths: ScopePaths, entity: str, name: str) -> str:
    wanted = _norm(name)
    if entity == "agent":
        for agent in parse_agents_dir(paths.agents_dir):
            if wanted in (_norm(agent.name), _norm(agent.source_path.stem)):
                safe_remove(agent.source_path)
                return f"agents/{agent.file_name}"
    elif entity == "command":
        for command in parse_commands_dir(paths.commands_dir):
            if wanted in (_norm(command.file_name), _norm(strip_command_file_extension(command.file_name))):
                safe_remove(command.source_path)
                return f"commands/{command.file_name}"
    elif entity == "mcp":
        servers = read_canonical_mcp(paths)
        for server in list(servers):
            if _norm(server) == wanted:
                del servers[server]
                write_canonical_mcp(paths, servers)
                return f"mcp/{server}"
    elif entity == "skill":
        for skill in parse_skills_dir(paths.skills_dir):
            if _norm(skill.name) == wanted:
                safe_remove(skill.source_dir)
                return f"skills/{skill.name}"
    raise SelectorNotFoundError(f"No {entity} named `{name}` found.")


# =============================================================================
# LOCK ENTRIES
# =============================================================================


def finalize_entry(entry: LockEntry) -> Optional[LockEntry]:
    """Drop tracking for emptied entity types; None when nothing is left."""
    if not (entry.imported_agents or entry.imported_commands or entry.imported_mcp_servers or entry.imported_skills):
        return None
    if not entry.imported_commands:
        entry.command_rename_map = {}
    entry.tracked_entities = [
        entity for entity in entry.tracked_entities
        if entry.imported_for(entity) or entry.selection_for(entity)
    ]
    return entry


def remove_entities_from_entry(entry: LockEntry, entities: List[str]) -> Optional[LockEntry]:
    if "agent" in entities:
        entry.imported_agents = []
        entry.requested_agents = None
    if "command" in entities:
        entry.imported_commands = []
        entry.selected_source_commands = None
    if "mcp" in entities:
        entry.imported_mcp_servers = []
        entry.selected_source_mcp_servers = None
    if "skill" in entities:
        entry.imported_skills = []
        entry.selected_source_skills = None
        entry.skill_rename_map = {}
    return finalize_entry(entry)


def remove_name_from_entry(entry: LockEntry, entity: str, name: str) -> Optional[LockEntry]:
    """Forget ``name`` and pin the remaining selection so update does not bring it back."""
    wanted = _norm(name)

    def keep(item: str) -> bool:
        return _norm(_base(item)) != wanted

    if entity == "agent":
        before = entry.imported_agents
        entry.imported_agents = [i for i in before if keep(i)]
        if entry.imported_agents != before:
            entry.requested_agents = [_base(i) for i in entry.imported_agents]
    elif entity == "command":
        before = entry.imported_commands
        entry.imported_commands = [i for i in before if keep(i)]
        if entry.imported_commands != before:
            remaining = {Path(i).name for i in entry.imported_commands}
            entry.command_rename_map = {
                source: imported for source, imported in entry.command_rename_map.items()
                if imported in remaining
            }
            renamed = set(entry.command_rename_map.values())
            entry.selected_source_commands = list(entry.command_rename_map) + [
                n for n in sorted(remaining) if n not in renamed
            ]
    elif entity == "mcp":
        before = entry.imported_mcp_servers
        entry.imported_mcp_servers = [i for i in before if keep(i)]
        if entry.imported_mcp_servers != before:
            entry.selected_source_mcp_servers = list(entry.imported_mcp_servers)
    elif entity == "skill":
        before = entry.imported_skills
        entry.imported_skills = [i for i in before if keep(i)]
        if entry.imported_skills != before:
            inverse = {imported: source for source, imported in entry.skill_rename_map.items()}
            entry.skill_rename_map = {
                source: imported for source, imported in entry.skill_rename_map.items()
                if _norm(imported) != wanted
            }
            entry.selected_source_skills = [inverse.get(_base(i), _base(i)) for i in entry.imported_skills]
    return finalize_entry(entry)


def _rewrite_entries(paths: ScopePaths, entries, transform) -> int:
    lockfile = read_lockfile(paths)
    kept: List[LockEntry] = []
    dropped = 0
    for entry in lockfile.entries:
        if entries(entry):
            entry = transform(entry)
            if entry is None:
                dropped += 1
                continue
        kept.append(entry)
    lockfile.entries = kept
    write_lockfile(paths, lockfile)
    return dropped


# =============================================================================
# ENTRY POINTS
# =============================================================================


def delete_by_name(
    paths: ScopePaths,
    name: str,
    prompter: Prompter,
    entities: Optional[List[str]] = None,
    non_interactive: bool = False,
) -> Union[DeleteSummary, Cancelled]:
    """Delete the canonical entity called ``name``."""
    entities = list(entities or ENTITY_TYPES)
    matching = [e for e in detect_name_matches(paths, name) if e in entities]
    if not matching:
        raise SelectorNotFoundError(f"No installed entity named `{name}` found.")

    if len(matching) > 1:
        if non_interactive:
            raise SelectorError(
                f"Name `{name}` matches multiple entities ({', '.join(matching)}). "
                "Use --entity for non-interactive deletion."
            )
        answer = prompter.select(
            f"`{name}` exists as more than one entity type. Which should be deleted?",
            [(entity, entity) for entity in matching],
        )
        if isinstance(answer, Cancelled):
            return CANCELLED
        matching = [answer.value]

    summary = DeleteSummary()
    for entity in matching:
        removed = _delete_canonical(paths, entity, name)
        summary.removed.append(removed)
        summary.dropped_entries += _rewrite_entries(
            paths,
            lambda _entry: True,
            lambda entry, entity=entity, removed=removed: remove_name_from_entry(entry, entity, _base(removed)),
        )
    logger.debug("Deleted %s", ", ".join(summary.removed))
    return summary


def delete_by_source(paths: ScopePaths, source: str, entities: Optional[List[str]] = None) -> DeleteSummary:
    """Delete everything ``source`` imported and its lock entries."""
    entities = list(entities or ENTITY_TYPES)
    candidates = {source}
    try:
        candidates.add(parse_source_spec(source, paths.workspace_root).source)
    except SourceDiscoveryError:
        pass

    lockfile = read_lockfile(paths)
    matching = [e for e in lockfile.entries if e.source in candidates]
    if not matching:
        raise SourceNotFoundError(f"No lock entries found for source: {source}")

    summary = DeleteSummary()
    servers = read_canonical_mcp(paths)
    for entry in matching:
        if "agent" in entities:
            for item in entry.imported_agents:
                if safe_remove(paths.agents_root / item):
                    summary.removed.append(item)
        if "command" in entities:
            for item in entry.imported_commands:
                if safe_remove(paths.agents_root / item):
                    summary.removed.append(item)
        if "skill" in entities:
            for item in entry.imported_skills:
                if safe_remove(paths.agents_root / item):
                    summary.removed.append(item)
        if "mcp" in entities:
            for server in entry.imported_mcp_servers:
                if servers.pop(server, None) is not None:
                    summary.removed.append(f"mcp/{server}")
    if "mcp" in entities:
        write_canonical_mcp(paths, servers)

    summary.dropped_entries = _rewrite_entries(
        paths, lambda entry: entry.source in candidates, lambda entry: remove_entities_from_entry(entry, entities)
    )
    return summary
