"""
Import service: pull agents, commands, MCP servers and skills from a prepared
source into the canonical store and record the selection in the lockfile.

Every conflict is resolved before the first write, so a conflict that cannot
be resolved leaves the canonical store untouched.
"""

import json
import shutil
import tempfile
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..core.agents import agent_file_name, parse_agents_dir, serialize_agent
from ..core.commands import (
    command_extension,
    match_command,
    normalize_command_selector,
    parse_commands_dir,
)
from ..core.lockfile import find_entry, read_lockfile, same_source, upsert_lock_entry, write_lockfile
from ..core.mcp import load_mcp_file, read_canonical_mcp, server_to_dict, write_canonical_mcp
from ..core.models import (
    ENTITY_TYPES,
    CanonicalAgent,
    CanonicalCommand,
    CanonicalMcpServer,
    CanonicalSkill,
    LockEntry,
    ScopePaths,
)
from ..core.skills import copy_skill, normalize_skill_selector, parse_skills_dir, stage_skill
from ..core.sources import (
    PreparedSource,
    discover_agents_dir,
    discover_commands_dir,
    discover_mcp_file,
    discover_skills_dir,
)
from ..errors import (
    AmbiguousSelectorError,
    NonInteractiveConflictError,
    SelectorNotFoundError,
    SourceNotFoundError,
    ValidationError,
)
from ..prompts import CANCELLED, Cancelled, Prompter
from ..utils import (
    directories_are_equal,
    ensure_dir,
    hash_content,
    logger,
    normalize_selector_list,
    slugify,
    write_text_atomic,
)


@dataclass
class ImportRequest:
    entities: List[str] = field(default_factory=lambda: list(ENTITY_TYPES))
    agents: Optional[List[str]] = None
    commands: Optional[List[str]] = None
    mcp_servers: Optional[List[str]] = None
    skills: Optional[List[str]] = None
    selection_mode: Optional[str] = None
    rename: Optional[str] = None
    yes: bool = False
    non_interactive: bool = False

    def selectors_for(self, entity: str) -> Optional[List[str]]:
        return {
            "agent": self.agents,
            "command": self.commands,
            "mcp": self.mcp_servers,
            "skill": self.skills,
        }[entity]

    @property
    def can_prompt(self) -> bool:
        return not self.yes and not self.non_interactive


@dataclass
class ImportSummary:
    source: str
    resolved_commit: str
    imported_agents: List[str] = field(default_factory=list)
    imported_commands: List[str] = field(default_factory=list)
    imported_mcp_servers: List[str] = field(default_factory=list)
    imported_skills: List[str] = field(default_factory=list)
    entry: Optional[LockEntry] = None

    @property
    def total(self) -> int:
        return (
            len(self.imported_agents)
            + len(self.imported_commands)
            + len(self.imported_mcp_servers)
            + len(self.imported_skills)
        )


@dataclass
class _Selection:
    items: List[Any]
    # selectors persisted in the lock entry; None tracks every entity
    lock_selectors: Optional[List[str]]


@dataclass
class _PlannedFile:
    path: Path
    content: str


# =============================================================================
# SELECTORS
# =============================================================================


def _agent_stem(agent: CanonicalAgent) -> str:
    return agent.source_path.stem


def match_agents(agents: List[CanonicalAgent], selectors: Sequence[str]) -> List[CanonicalAgent]:
    """Resolve agent selectors: exact name or file stem first, slug only as fallback."""
    selected: List[CanonicalAgent] = []
    missing: List[str] = []

    for selector in selectors:
        wanted = selector.strip().lower()
        exact = [a for a in agents if wanted in (a.name.lower(), _agent_stem(a).lower())]
        matches = exact
        if not matches:
            wanted_slug = slugify(selector)
            matches = [
                a for a in agents
                if wanted_slug and wanted_slug in (slugify(a.name), slugify(_agent_stem(a)))
            ]

        if not matches:
            missing.append(selector)
            continue
        if len(matches) > 1:
            names = ", ".join(a.name for a in matches)
            raise AmbiguousSelectorError(
                f"Agent selector is ambiguous: {selector} ({names}); Use the exact frontmatter name."
            )
        if matches[0] not in selected:
            selected.append(matches[0])

    if missing:
        available = ", ".join(a.name for a in agents) or "(none)"
        raise SelectorNotFoundError(
            f"Requested agent(s) not found: {', '.join(missing)}. Available agents: {available}"
        )
    return selected


def stable_agent_selector(agent: CanonicalAgent, agents: List[CanonicalAgent]) -> str:
    """The agent name when it is unique in the source, else the file stem."""
    same_name = [a for a in agents if a.name.lower() == agent.name.lower()]
    return agent.name if len(same_name) == 1 else _agent_stem(agent)


def _match_mcp(servers: Dict[str, CanonicalMcpServer], selectors: Sequence[str]) -> List[CanonicalMcpServer]:
    missing = [s for s in selectors if s not in servers]
    if missing:
        available = ", ".join(sorted(servers)) or "(none)"
        raise SelectorNotFoundError(
            f"Requested MCP server(s) not found: {', '.join(missing)}. Available MCP servers: {available}"
        )
    return [servers[s] for s in dict.fromkeys(selectors)]


def _match_skills(skills: List[CanonicalSkill], selectors: Sequence[str]) -> List[CanonicalSkill]:
    by_slug = {normalize_skill_selector(s.name): s for s in skills}
    missing = [s for s in selectors if normalize_skill_selector(s) not in by_slug]
    if missing:
        available = ", ".join(s.name for s in skills) or "(none)"
        raise SelectorNotFoundError(
            f"Requested skill(s) not found: {', '.join(missing)}. Available skills: {available}"
        )
    chosen = []
    for selector in selectors:
        skill = by_slug[normalize_skill_selector(selector)]
        if skill not in chosen:
            chosen.append(skill)
    return chosen


# =============================================================================
# SELECTION MODE
# =============================================================================


def _recorded_selection(previous: List[LockEntry], entity: str):
    """(mode, selectors) recorded for this source, or (None, None)."""
    if not previous:
        return None, None
    selectors = previous[-1].selection_for(entity)
    if selectors is None:
        return "all", None
    return "custom", list(selectors)


def _select(
    entity: str,
    label: str,
    items: List[Any],
    label_of: Callable[[Any], str],
    selector_of: Callable[[Any], str],
    match: Callable[[Sequence[str]], List[Any]],
    request: ImportRequest,
    previous: List[LockEntry],
    prompter: Prompter,
) -> Union[_Selection, Cancelled]:
    explicit = request.selectors_for(entity)
    if explicit:
        chosen = match(explicit)
        return _Selection(chosen, [selector_of(i) for i in chosen])

    recorded_mode, recorded_selectors = _recorded_selection(previous, entity)
    mode = request.selection_mode or recorded_mode
    if mode is None and request.can_prompt and items:
        answer = prompter.select(
            f"Import which {label}?",
            [(f"All {label} (track new ones on update)", "all"), (f"Choose {label}", "custom"), ("Skip", "skip")],
            default="all",
        )
        if isinstance(answer, Cancelled):
            return CANCELLED
        mode = answer.value
    mode = mode or "all"

    if mode == "skip":
        return _Selection([], [])
    if mode == "all":
        return _Selection(list(items), None)

    pinned: List[Any] = []
    if recorded_selectors is not None:
        available = {selector_of(i).lower() for i in items} | {label_of(i).lower() for i in items}
        still_present = [s for s in recorded_selectors if s.lower() in available]
        for gone in sorted(set(recorded_selectors) - set(still_present)):
            logger.warning("Pinned %s `%s` no longer exists in the source", entity, gone)
        pinned = match(still_present) if still_present else []
        if not request.can_prompt or request.selection_mode is None:
            return _Selection(pinned, [selector_of(i) for i in pinned])

    if not request.can_prompt:
        # pin the current set so future upstream additions are not imported
        return _Selection(list(items), [selector_of(i) for i in items])

    initial = pinned if recorded_selectors is not None else list(items)
    answer = prompter.multiselect(
        f"Select {label} to import",
        [(label_of(i), i) for i in items],
        initial=initial,
    )
    if isinstance(answer, Cancelled):
        return CANCELLED
    chosen = [i for i in items if i in answer.value]
    return _Selection(chosen, [selector_of(i) for i in chosen])


# =============================================================================
# CONFLICTS
# =============================================================================


def _resolve_name_conflict(
    target_dir: Path,
    name: str,
    differs: Callable[[str], bool],
    rename_to: Callable[[str], str],
    request: ImportRequest,
    prompter: Prompter,
    reserved: set,
) -> Union[Optional[str], Cancelled]:
    """Final name for a write into ``target_dir``; None means skip."""
    while True:
        if name not in reserved and not differs(name):
            return name
        if request.yes and name not in reserved:
            return name
        if request.non_interactive or request.yes:
            raise NonInteractiveConflictError(f"Conflict for {name}. Use --yes or run interactively.")

        answer = prompter.select(
            f"{target_dir.name}/{name} already exists with different content.",
            [("Overwrite", "overwrite"), ("Skip", "skip"), ("Rename", "rename")],
            default="skip",
        )
        if isinstance(answer, Cancelled):
            return CANCELLED
        if answer.value == "overwrite" and name not in reserved:
            return name
        if answer.value == "skip":
            return None
        entered = prompter.text("New name:", default=name)
        if isinstance(entered, Cancelled):
            return CANCELLED
        if entered.value.strip():
            name = rename_to(entered.value)


def _file_differs(target_dir: Path, content: str) -> Callable[[str], bool]:
    def differs(name: str) -> bool:
        path = target_dir / name
        return path.exists() and path.read_text(encoding="utf-8") != content

    return differs


# =============================================================================
# IMPORT
# =============================================================================


def import_source(
    paths: ScopePaths,
    prepared: PreparedSource,
    request: ImportRequest,
    prompter: Prompter,
) -> Union[ImportSummary, Cancelled]:
    """Import ``prepared`` into the canonical store of ``paths``."""
    root = prepared.import_root
    spec = prepared.spec
    lockfile = read_lockfile(paths)
    previous = [e for e in lockfile.entries if same_source(e, spec.source, spec.source_type, prepared.subdir)]

    locations = {
        "agent": discover_agents_dir(root),
        "command": discover_commands_dir(root),
        "mcp": discover_mcp_file(root),
        "skill": discover_skills_dir(root),
    }
    requested = [e for e in ENTITY_TYPES if e in request.entities]
    for entity in requested:
        required = request.selectors_for(entity) or requested == [entity]
        if locations[entity] is None and required:
            raise SourceNotFoundError(f"No {entity} definitions found in source: {root}")
    if not any(locations[e] is not None for e in requested):
        raise SourceNotFoundError(f"No importable entities found in source: {root}")

    source_agents = parse_agents_dir(locations["agent"]) if "agent" in requested and locations["agent"] else []
    source_commands = parse_commands_dir(locations["command"]) if "command" in requested and locations["command"] else []
    source_mcp = load_mcp_file(locations["mcp"]) if "mcp" in requested and locations["mcp"] else {}
    source_skills = parse_skills_dir(locations["skill"]) if "skill" in requested and locations["skill"] else []

    selections: Dict[str, _Selection] = {}
    steps = [
        ("agent", "agents", source_agents, lambda a: a.name,
         lambda a: stable_agent_selector(a, source_agents), lambda s: match_agents(source_agents, s)),
        ("command", "commands", source_commands, lambda c: c.file_name,
         lambda c: c.file_name, lambda s: [match_command(source_commands, x) for x in dict.fromkeys(s)]),
        ("mcp", "MCP servers", list(source_mcp.values()), lambda m: m.name,
         lambda m: m.name, lambda s: _match_mcp(source_mcp, s)),
        ("skill", "skills", source_skills, lambda k: k.name,
         lambda k: k.name, lambda s: _match_skills(source_skills, s)),
    ]
    for entity, label, items, label_of, selector_of, match in steps:
        if entity not in requested or locations[entity] is None:
            continue
        selection = _select(entity, label, items, label_of, selector_of, match, request, previous, prompter)
        if isinstance(selection, Cancelled):
            return CANCELLED
        selections[entity] = selection

    chosen_total = sum(len(s.items) for s in selections.values())
    if request.rename and chosen_total != 1:
        raise ValidationError("--rename can only be used when importing a single entity.")

    planned: List[_PlannedFile] = []
    summary = ImportSummary(source=spec.source, resolved_commit=prepared.resolved_commit)
    command_rename_map: Dict[str, str] = {}
    skill_rename_map: Dict[str, str] = {}
    hash_parts: List[str] = []

    # Agents
    reserved: set = set()
    for agent in selections.get("agent", _Selection([], None)).items:
        result = _plan_agent(paths, agent, request, prompter, reserved)
        if isinstance(result, Cancelled):
            return CANCELLED
        if result is None:
            continue
        reserved.add(result.path.name)
        planned.append(result)
        summary.imported_agents.append(f"agents/{result.path.name}")
        hash_parts.append(result.content)

    # Commands
    previous_command_map = _merged_rename_map(previous, "command")
    reserved = set()
    for command in selections.get("command", _Selection([], None)).items:
        result = _plan_command(paths, command, request, previous_command_map, prompter, reserved)
        if isinstance(result, Cancelled):
            return CANCELLED
        if result is None:
            continue
        reserved.add(result.path.name)
        planned.append(result)
        summary.imported_commands.append(f"commands/{result.path.name}")
        if result.path.name != command.file_name:
            command_rename_map[command.file_name] = result.path.name
        hash_parts.append(result.content)

    # Skills
    staging = Path(tempfile.mkdtemp(prefix="agent-loom-skills-"))
    try:
        skill_writes = []
        previous_skill_map = _merged_rename_map(previous, "skill")
        reserved = set()
        for skill in selections.get("skill", _Selection([], None)).items:
            staged = stage_skill(skill, staging)
            target_name = slugify(request.rename) if request.rename else previous_skill_map.get(skill.name, skill.name)

            def skill_differs(name: str, staged=staged) -> bool:
                target = paths.skills_dir / name
                return target.exists() and not directories_are_equal(staged, target)

            final = _resolve_name_conflict(
                paths.skills_dir, target_name, skill_differs, slugify, request, prompter, reserved
            )
            if isinstance(final, Cancelled):
                return CANCELLED
            if final is None:
                continue
            reserved.add(final)
            skill_writes.append((skill, final))
            summary.imported_skills.append(f"skills/{final}")
            if final != skill.name:
                skill_rename_map[skill.name] = final
            hash_parts.append((staged / "SKILL.md").read_text(encoding="utf-8"))

        # MCP
        mcp_servers = None
        mcp_selection = selections.get("mcp")
        if mcp_selection is not None and mcp_selection.items:
            mcp_servers = _plan_mcp(paths, mcp_selection.items, request, prompter)
            if isinstance(mcp_servers, Cancelled):
                return CANCELLED
            summary.imported_mcp_servers = [s.name for s in mcp_selection.items]
            hash_parts.append(json.dumps([server_to_dict(s) for s in mcp_selection.items], sort_keys=True))

        # Writes
        for item in planned:
            write_text_atomic(item.path, item.content)
        for skill, name in skill_writes:
            ensure_dir(paths.skills_dir)
            copy_skill(skill, paths.skills_dir / name)
        if mcp_servers is not None:
            write_canonical_mcp(paths, mcp_servers)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    entry = _build_lock_entry(
        prepared, selections, summary, command_rename_map, skill_rename_map, hash_parts
    )
    existing = find_entry(lockfile, entry)
    if existing and existing.content_hash == entry.content_hash and existing.resolved_commit == entry.resolved_commit:
        entry.imported_at = existing.imported_at
    upsert_lock_entry(lockfile, entry)
    write_lockfile(paths, lockfile)

    summary.entry = entry
    return summary


def _plan_agent(
    paths: ScopePaths,
    agent: CanonicalAgent,
    request: ImportRequest,
    prompter: Prompter,
    reserved: set,
) -> Union[Optional[_PlannedFile], Cancelled]:
    def render(file_name: str) -> str:
        if file_name == agent_file_name(agent.name):
            return serialize_agent(agent)
        return serialize_agent(replace(agent, frontmatter=dict(agent.frontmatter, name=Path(file_name).stem)))

    def rename_to(value: str) -> str:
        return agent_file_name(value)

    target = rename_to(request.rename) if request.rename else agent_file_name(agent.name)
    final = _resolve_name_conflict(
        paths.agents_dir,
        target,
        lambda name: _file_differs(paths.agents_dir, render(name))(name),
        rename_to,
        request,
        prompter,
        reserved,
    )
    if final is None or isinstance(final, Cancelled):
        return final
    return _PlannedFile(paths.agents_dir / final, render(final))


def _plan_command(
    paths: ScopePaths,
    command: CanonicalCommand,
    request: ImportRequest,
    rename_map: Dict[str, str],
    prompter: Prompter,
    reserved: set,
) -> Union[Optional[_PlannedFile], Cancelled]:
    content = command.source_path.read_text(encoding="utf-8")
    extension = command_extension(command.file_name)

    def rename_to(value: str) -> str:
        value = value.strip()
        if "." in value:
            return value
        return f"{slugify(value)}{extension}"

    if request.rename:
        target = rename_to(request.rename)
    else:
        target = command.file_name
        for source_name, imported_name in rename_map.items():
            if normalize_command_selector(source_name) == normalize_command_selector(command.file_name):
                target = imported_name
                break

    final = _resolve_name_conflict(
        paths.commands_dir, target, _file_differs(paths.commands_dir, content), rename_to, request, prompter, reserved
    )
    if final is None or isinstance(final, Cancelled):
        return final
    return _PlannedFile(paths.commands_dir / final, content)


def _plan_mcp(
    paths: ScopePaths,
    servers: List[CanonicalMcpServer],
    request: ImportRequest,
    prompter: Prompter,
) -> Union[Dict[str, CanonicalMcpServer], Cancelled]:
    """Canonical MCP servers after importing ``servers``."""
    existing = read_canonical_mcp(paths)
    incoming = {s.name: s for s in servers}
    conflicts = sorted(
        name for name in incoming
        if name in existing and server_to_dict(existing[name]) != server_to_dict(incoming[name])
    )

    strategy = "merge"
    if conflicts and not request.yes:
        if request.non_interactive:
            raise NonInteractiveConflictError("MCP server conflicts found. Use --yes or run interactively.")
        answer = prompter.select(
            f"MCP servers already defined: {', '.join(conflicts)}",
            [("Merge (imported servers win)", "merge"), ("Replace canonical MCP servers", "replace")],
            default="merge",
        )
        if isinstance(answer, Cancelled):
            return CANCELLED
        strategy = answer.value

    if strategy == "replace":
        return dict(incoming)
    merged = dict(existing)
    merged.update(incoming)
    return merged


def _merged_rename_map(previous: List[LockEntry], entity: str) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    for entry in previous:
        merged.update(entry.command_rename_map if entity == "command" else entry.skill_rename_map)
    return merged


def _build_lock_entry(
    prepared: PreparedSource,
    selections: Dict[str, _Selection],
    summary: ImportSummary,
    command_rename_map: Dict[str, str],
    skill_rename_map: Dict[str, str],
    hash_parts: List[str],
) -> LockEntry:
    def lock_selectors(entity: str) -> Optional[List[str]]:
        selection = selections.get(entity)
        return None if selection is None else selection.lock_selectors

    tracked = [
        entity for entity in ENTITY_TYPES
        if entity in selections and selections[entity].lock_selectors != []
    ]
    entry = LockEntry(
        source=prepared.spec.source,
        source_type=prepared.spec.source_type,
        requested_ref=prepared.requested_ref,
        requested_agents=lock_selectors("agent"),
        resolved_commit=prepared.resolved_commit,
        subdir=prepared.subdir,
        imported_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        imported_agents=sorted(summary.imported_agents),
        imported_commands=sorted(summary.imported_commands),
        selected_source_commands=lock_selectors("command"),
        command_rename_map=command_rename_map,
        imported_mcp_servers=sorted(summary.imported_mcp_servers),
        selected_source_mcp_servers=lock_selectors("mcp"),
        imported_skills=sorted(summary.imported_skills),
        selected_source_skills=lock_selectors("skill"),
        skill_rename_map=skill_rename_map,
        tracked_entities=tracked,
    )
    entry.content_hash = hash_content(
        json.dumps(
            {
                "agents": entry.imported_agents,
                "commands": entry.imported_commands,
                "selectedSourceCommands": normalize_selector_list(entry.selected_source_commands),
                "commandRenameMap": entry.command_rename_map,
                "mcp": entry.imported_mcp_servers,
                "selectedSourceMcpServers": normalize_selector_list(entry.selected_source_mcp_servers),
                "skills": entry.imported_skills,
                "selectedSourceSkills": normalize_selector_list(entry.selected_source_skills),
                "trackedEntities": entry.tracked_entities,
                "content": [hash_content(part) for part in hash_parts],
            },
            sort_keys=True,
        )
    )
    return entry
