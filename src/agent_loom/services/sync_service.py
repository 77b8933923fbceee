"""
Sync service: render the canonical store into every selected provider and
prune files a previous sync generated that are no longer produced.

The sync manifest records generated paths per entity type, so a sync limited
to one entity type only ever prunes files of that type. Shared provider
documents (editor settings, ``opencode.json``, codex ``config.toml``) are
updated in place and never tracked or pruned.
"""

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from ..core.adapter import ProviderAdapter, adapter_registry
from ..core.agents import parse_agents_dir
from ..core.commands import parse_commands_dir
from ..core.manifest import read_manifest, write_manifest
from ..core.mcp import read_canonical_mcp, resolve_for_provider
from ..core.models import ENTITY_TYPES, SYNC_TARGETS, CodexTracking, ScopePaths, Settings, SyncManifest
from ..core.settings import normalize_providers
from ..core.skills import copy_skill, parse_skills_dir, stage_skill
from ..errors import ConflictError, ValidationError
from ..prompts import CANCELLED, Cancelled, Prompter
from ..utils import (
    directories_are_equal,
    ensure_dir,
    is_subpath,
    logger,
    read_json_if_exists,
    safe_remove,
    write_text_if_changed,
)
from .migration import provider_skill_dirs, skill_target_name


@dataclass
class SyncSummary:
    providers: List[str]
    settings: Settings
    generated_files: List[str] = field(default_factory=list)
    stale_files: List[str] = field(default_factory=list)
    removed_files: List[str] = field(default_factory=list)
    dry_run: bool = False


def resolve_providers(
    settings: Settings,
    prompter: Prompter,
    providers: Optional[List[str]] = None,
    non_interactive: bool = False,
) -> Union[List[str], Cancelled]:
    """Explicit providers, else the saved defaults (prompting when interactive)."""
    if providers:
        return normalize_providers(providers)
    if non_interactive:
        return list(settings.default_providers)

    answer = prompter.multiselect(
        "Sync to which providers?",
        [(adapter.info.display_name, adapter.name) for adapter in adapter_registry.all()],
        initial=settings.default_providers,
    )
    if isinstance(answer, Cancelled):
        return CANCELLED
    if not answer.value:
        raise ValidationError("Select at least one provider.")
    return normalize_providers(answer.value)


# =============================================================================
# RENDERING
# =============================================================================


def _emit(path: Path, content: str, dry_run: bool) -> None:
    if dry_run:
        return
    if write_text_if_changed(path, content):
        logger.debug("Synced %s", path)


def _sync_agents(paths: ScopePaths, adapter: ProviderAdapter, agents, dry_run: bool) -> List[Path]:
    written = []
    for agent in agents:
        content = adapter.render_agent(agent)
        if content is None:
            continue
        path = adapter.agents_dir(paths) / adapter.agent_file_name(agent)
        _emit(path, content, dry_run)
        written.append(path)
    return written


def _sync_commands(paths: ScopePaths, adapter: ProviderAdapter, commands, dry_run: bool) -> List[Path]:
    written = []
    for command in commands:
        content = adapter.render_command(command)
        if content is None:
            continue
        path = adapter.commands_dir(paths) / adapter.command_file_name(command.file_name)
        _emit(path, content, dry_run)
        written.append(path)
    return written


def _sync_mcp(paths: ScopePaths, adapter: ProviderAdapter, servers: Dict[str, Dict[str, Any]], dry_run: bool) -> List[Path]:
    """Apply every MCP output of ``adapter``; returns the owned paths.

    With no servers left, owned files are not written so pruning removes them,
    while shared documents that already exist are rewritten without the servers.
    """
    owned = []
    for output in adapter.mcp_outputs(paths, servers):
        if not servers and (output.owned or not output.path.exists()):
            continue
        try:
            existing = read_json_if_exists(output.path)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {output.path}: {e}") from e
        document = output.update(existing if isinstance(existing, dict) else {})
        _emit(output.path, json.dumps(document, indent=2, ensure_ascii=False) + "\n", dry_run)
        if output.owned:
            owned.append(output.path)
    return owned


# =============================================================================
# SKILLS
# =============================================================================


def _check_skill_dir(target: Path, canonical: Path, staging: Path) -> List[Any]:
    """Skills in a real provider directory that canonical does not have yet."""
    if not target.is_dir():
        raise ConflictError(f"Cannot link skills: {target} exists and is not a directory.")

    missing = []
    for skill in parse_skills_dir(target):
        name = skill_target_name(skill)
        dest = canonical / name
        if not dest.exists():
            missing.append((skill, dest))
            continue
        if not directories_are_equal(stage_skill(skill, staging), dest):
            raise ConflictError(
                f"Skill `{name}` in {target} differs from the canonical skill. "
                "Run `agent-loom migrate --only skill` to resolve it first."
            )
    return missing


def apply_skill_side_effects(paths: ScopePaths, adapters: List[ProviderAdapter], dry_run: bool = False) -> List[Path]:
    """Point every provider skills directory at the canonical one.

    Real directories are folded into canonical before being replaced by the
    link. Returns the link paths.
    """
    targets = provider_skill_dirs(paths, adapters)
    canonical = paths.skills_dir
    if not targets:
        return []
    if not dry_run:
        ensure_dir(canonical)

    staging = Path(tempfile.mkdtemp(prefix="agent-loom-skills-"))
    try:
        for target in targets:
            if target.is_symlink():
                if target.resolve() == canonical.resolve():
                    continue
                raise ConflictError(
                    f"Expected {target} to link to {canonical}, but it points to {os.readlink(target)}."
                )
            if target.exists():
                missing = _check_skill_dir(target, canonical, staging)
                if dry_run:
                    continue
                for skill, dest in missing:
                    logger.debug("Moving provider skill %s into %s", skill.source_dir, dest)
                    copy_skill(skill, dest)
                shutil.rmtree(target)
            elif dry_run:
                continue
            ensure_dir(target.parent)
            target.symlink_to(canonical, target_is_directory=True)
            logger.debug("Linked %s -> %s", target, canonical)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return targets


# =============================================================================
# STALE FILES
# =============================================================================


def protected_paths(paths: ScopePaths) -> Set[str]:
    """Shared provider documents that pruning must never delete."""
    protected = set()
    for adapter in adapter_registry.all():
        for output in adapter.mcp_outputs(paths, {}):
            if not output.owned:
                protected.add(str(output.path))
        if adapter.folded:
            protected.add(str(adapter.config_path(paths)))
    return protected


def find_stale_files(paths: ScopePaths, old: SyncManifest, new_files: List[str]) -> List[str]:
    protected = protected_paths(paths)
    current = set(new_files)
    stale = []
    for file_path in old.generated_files:
        path = Path(file_path)
        if file_path in current or file_path in protected:
            continue
        if is_subpath(path, paths.agents_root):
            continue
        if path.exists() or path.is_symlink():
            stale.append(file_path)
    return sorted(stale)


def _choose_stale(
    stale: List[str],
    prompter: Prompter,
    yes: bool,
    non_interactive: bool,
) -> Union[List[str], Cancelled]:
    if not stale or yes or non_interactive:
        return list(stale)
    answer = prompter.multiselect(
        "Remove files generated by a previous sync that are no longer produced?",
        [(file_path, file_path) for file_path in stale],
        initial=stale,
    )
    if isinstance(answer, Cancelled):
        return CANCELLED
    return [file_path for file_path in stale if file_path in answer.value]


# =============================================================================
# SYNC
# =============================================================================


def sync_all(
    paths: ScopePaths,
    settings: Settings,
    prompter: Prompter,
    providers: Optional[List[str]] = None,
    target: str = "all",
    yes: bool = False,
    non_interactive: bool = False,
    dry_run: bool = False,
) -> Union[SyncSummary, Cancelled]:
    """Render the canonical store for the selected providers.

    Returns the summary with updated settings; the caller persists them.
    """
    if target not in SYNC_TARGETS:
        raise ValidationError(f"Unknown sync target: {target}. Use one of: {', '.join(SYNC_TARGETS)}")
    entities = list(ENTITY_TYPES) if target == "all" else [target]

    selected = resolve_providers(settings, prompter, providers, non_interactive or yes)
    if isinstance(selected, Cancelled):
        return CANCELLED
    adapters = [adapter_registry.require(p) for p in selected]

    agents = parse_agents_dir(paths.agents_dir) if "agent" in entities else []
    commands = parse_commands_dir(paths.commands_dir) if "command" in entities else []
    servers = read_canonical_mcp(paths) if "mcp" in entities else {}

    old = read_manifest(paths)
    written: Dict[str, List[Path]] = {entity: [] for entity in entities}
    codex = CodexTracking(roles=list(old.codex.roles), mcp_servers=list(old.codex.mcp_servers))

    for adapter in adapters:
        resolved = resolve_for_provider(servers, adapter.name)
        if adapter.folded:
            if "agent" in entities or "mcp" in entities:
                result = adapter.sync_folded(
                    paths,
                    agents,
                    resolved,
                    old.codex,
                    include_roles="agent" in entities,
                    include_mcp="mcp" in entities,
                    dry_run=dry_run,
                )
                codex = result.tracking
                if "agent" in entities:
                    written["agent"].extend(result.files["agent"])
        elif "agent" in entities:
            written["agent"].extend(_sync_agents(paths, adapter, agents, dry_run))

        if "command" in entities:
            written["command"].extend(_sync_commands(paths, adapter, commands, dry_run))
        if "mcp" in entities and not adapter.folded:
            written["mcp"].extend(_sync_mcp(paths, adapter, resolved, dry_run))

    if "skill" in entities:
        written["skill"].extend(apply_skill_side_effects(paths, adapters, dry_run))

    by_entity = {e: files for e, files in old.generated_by_entity.items() if e not in entities}
    for entity in entities:
        files = sorted({str(p) for p in written[entity]})
        if files:
            by_entity[entity] = files
    generated = sorted({f for files in by_entity.values() for f in files})
    manifest = SyncManifest(generated_files=generated, generated_by_entity=by_entity, codex=codex)

    stale = find_stale_files(paths, old, generated)
    summary = SyncSummary(
        providers=selected,
        settings=settings,
        generated_files=generated,
        stale_files=stale,
        dry_run=dry_run,
    )
    if dry_run:
        return summary

    chosen = _choose_stale(stale, prompter, yes, non_interactive)
    if isinstance(chosen, Cancelled):
        return CANCELLED
    for file_path in chosen:
        if safe_remove(Path(file_path)):
            logger.debug("Removed stale file %s", file_path)
            summary.removed_files.append(file_path)

    write_manifest(paths, manifest)
    summary.settings = settings.with_last_scope(paths.scope, selected)
    return summary
