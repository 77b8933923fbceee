"""
Migration service: fold provider-native agents, commands, MCP servers and
skills back into the canonical store.

Also home of ``initialize_canonical_layout``, which ``init`` runs before the
first migration.
"""

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.adapter import ProviderAdapter, ProviderAgentRecord, adapter_registry
from ..core.agents import agent_file_name, build_agent_markdown, parse_agents_dir
from ..core.commands import build_command_markdown, parse_command_file, parse_commands_dir
from ..core.lockfile import read_lockfile, write_lockfile
from ..core.manifest import read_manifest, write_manifest
from ..core.mcp import read_canonical_mcp, server_to_dict, write_canonical_mcp
from ..core.models import ALL_PROVIDERS, ENTITY_TYPES, CanonicalMcpServer, ScopePaths, Settings
from ..core.skills import copy_skill, parse_skills_dir, stage_skill
from ..errors import MigrationConflictError
from ..prompts import CANCELLED, Cancelled, Prompter
from ..utils import (
    deep_merge,
    directories_are_equal,
    ensure_dir,
    logger,
    normalize_body,
    slugify,
    write_text_atomic,
)

# Front-section keys shared by every provider's command files
COMMAND_GENERIC_KEYS = ("name", "description")


@dataclass
class EntityCounts:
    detected: int = 0
    imported: int = 0
    conflicts: int = 0
    skipped: int = 0


@dataclass
class MigrationSummary:
    providers: List[str]
    target: str
    counts: Dict[str, EntityCounts] = field(default_factory=dict)


@dataclass
class _CommandRecord:
    provider: str
    file_name: str
    frontmatter: Optional[Dict[str, Any]]
    body: str
    source_path: Path


@dataclass
class _Context:
    prompter: Prompter
    yes: bool
    non_interactive: bool
    dry_run: bool

    @property
    def can_prompt(self) -> bool:
        return not self.yes and not self.non_interactive


def format_migration_summary(summary: MigrationSummary) -> List[str]:
    lines = ["Migration summary (provider -> canonical):"]
    for entity in ENTITY_TYPES:
        counts = summary.counts.get(entity)
        if counts is None:
            continue
        lines.append(
            f"{entity}: detected={counts.detected}, imported={counts.imported}, "
            f"conflicts={counts.conflicts}, skipped={counts.skipped}"
        )
    return lines


# =============================================================================
# CONFLICT CHOICES
# =============================================================================


def _choose_provider_source(label: str, records: List[Any], preferred: Any, context: _Context):
    """Pick which provider's version seeds a new canonical entity."""
    if not context.can_prompt:
        raise MigrationConflictError(
            f"Migration conflict for {label} across multiple providers.\n"
            "Run without --yes in an interactive terminal to select a source provider."
        )
    answer = context.prompter.select(
        f"{label} differs between providers. Which version should become canonical?",
        [(f"{r.provider} ({r.source_path})", index) for index, r in enumerate(records)],
        default=records.index(preferred),
    )
    if isinstance(answer, Cancelled):
        return CANCELLED
    return records[answer.value]


def _use_provider_version(label: str, provider: str, context: _Context) -> Union[bool, Cancelled]:
    """True when the user picks the provider version over the canonical one."""
    if not context.can_prompt:
        raise MigrationConflictError(
            f"Migration conflict for {label}.\n"
            "Run without --yes in an interactive terminal to choose between canonical and provider content."
        )
    answer = context.prompter.select(
        f"{label} in {provider} differs from the canonical version.",
        [("Keep canonical version", "canonical"), ("Use provider version", "provider")],
        default="canonical",
    )
    if isinstance(answer, Cancelled):
        return CANCELLED
    return answer.value == "provider"


def _preferred(records: List[Any]) -> Any:
    for record in records:
        if record.provider == "copilot":
            return record
    return records[0]


def _write(path: Path, content: str, context: _Context) -> bool:
    """Write when bytes differ. Returns True when the file would change."""
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        return False
    if not context.dry_run:
        write_text_atomic(path, content)
    return True


# =============================================================================
# AGENTS
# =============================================================================


def _file_key(path: Path) -> str:
    return slugify(path.name.split(".")[0])


def _dedupe_agent_records(provider: str, records: List[ProviderAgentRecord]) -> List[ProviderAgentRecord]:
    by_key: Dict[str, ProviderAgentRecord] = {}
    for record in records:
        key = slugify(record.name)
        if not key:
            continue
        current = by_key.get(key)
        if current is None:
            by_key[key] = record
            continue
        logger.warning(
            "Duplicate %s agents share canonical name `%s`: %s and %s",
            provider, key, current.source_path.name, record.source_path.name,
        )
        if _file_key(record.source_path) == key and _file_key(current.source_path) != key:
            by_key[key] = record
    return list(by_key.values())


def _merge_agent_provider_config(frontmatter: Dict[str, Any], record: ProviderAgentRecord) -> None:
    existing = frontmatter.get(record.provider)
    if existing is False:
        return
    config = dict(existing) if isinstance(existing, dict) else {}
    config.update(record.provider_config)
    if record.name != frontmatter["name"]:
        config["name"] = record.name
    if record.description != frontmatter["description"]:
        config["description"] = record.description
    if config:
        frontmatter[record.provider] = config


def _migrate_agents(
    paths: ScopePaths,
    adapters: List[ProviderAdapter],
    counts: EntityCounts,
    context: _Context,
) -> Optional[Cancelled]:
    canonical = {}
    for agent in parse_agents_dir(paths.agents_dir):
        canonical.setdefault(slugify(agent.name), agent)
        canonical.setdefault(slugify(agent.source_path.stem), agent)

    grouped: Dict[str, List[ProviderAgentRecord]] = {}
    for adapter in adapters:
        for record in _dedupe_agent_records(adapter.name, adapter.read_agent_records(paths)):
            grouped.setdefault(slugify(record.name), []).append(record)
    counts.detected = sum(len(records) for records in grouped.values())

    for key in sorted(grouped):
        records = grouped[key]
        existing = canonical.get(key)
        label = f"agent `{key}`"

        if existing is None:
            chosen = _preferred(records)
            if len({normalize_body(r.body) for r in records}) > 1:
                counts.conflicts += 1
                chosen = _choose_provider_source(label, records, chosen, context)
                if isinstance(chosen, Cancelled):
                    return CANCELLED
            frontmatter: Dict[str, Any] = {"name": chosen.name, "description": chosen.description}
            body = chosen.body
            target = paths.agents_dir / agent_file_name(chosen.name)
        else:
            frontmatter = dict(existing.frontmatter)
            body = existing.body
            for record in records:
                if normalize_body(record.body) == normalize_body(existing.body):
                    continue
                counts.conflicts += 1
                use_provider = _use_provider_version(label, record.provider, context)
                if isinstance(use_provider, Cancelled):
                    return CANCELLED
                if use_provider:
                    body = record.body
            target = existing.source_path

        for record in records:
            _merge_agent_provider_config(frontmatter, record)

        if _write(target, build_agent_markdown(frontmatter, body), context):
            counts.imported += 1
        else:
            counts.skipped += 1
    return None


# =============================================================================
# COMMANDS
# =============================================================================


def canonical_command_name(file_name: str) -> str:
    """``review.prompt.md`` / ``review.mdc`` -> ``review.md``."""
    lowered = file_name.lower()
    if lowered.endswith(".prompt.md"):
        return file_name[: -len(".prompt.md")] + ".md"
    if lowered.endswith(".mdc"):
        return file_name[: -len(".mdc")] + ".md"
    return file_name


def _read_command_records(paths: ScopePaths, adapter: ProviderAdapter) -> List[_CommandRecord]:
    if not adapter.migrates_commands(paths):
        return []
    records = []
    for path in adapter.command_source_files(paths):
        command = parse_command_file(path)
        body = command.body
        if adapter.argument_placeholder:
            body = body.replace(adapter.argument_placeholder, "$ARGUMENTS")
        records.append(
            _CommandRecord(
                provider=adapter.name,
                file_name=canonical_command_name(path.name),
                frontmatter=command.frontmatter,
                body=body,
                source_path=path,
            )
        )
    return records


def merge_command_frontmatter(
    canonical: Optional[Dict[str, Any]],
    records: List[_CommandRecord],
    preferred: _CommandRecord,
) -> Optional[Dict[str, Any]]:
    """Hoist the generic keys, nest anything provider-specific under the provider."""
    has_canonical = canonical is not None
    merged: Dict[str, Any] = dict(canonical) if canonical else {}

    shared: Dict[str, Any] = {}
    for key in COMMAND_GENERIC_KEYS:
        if key in merged:
            shared[key] = merged[key]
        elif not has_canonical and preferred.frontmatter and key in preferred.frontmatter:
            merged[key] = shared[key] = preferred.frontmatter[key]

    for record in records:
        existing = merged.get(record.provider)
        if existing is False:
            continue
        had_block = isinstance(existing, dict)
        config = dict(existing) if had_block else {}

        for key, value in (record.frontmatter or {}).items():
            if key in ALL_PROVIDERS:
                continue
            if key in COMMAND_GENERIC_KEYS:
                if key not in shared:
                    if has_canonical:
                        config[key] = value
                    else:
                        merged[key] = shared[key] = value
                elif shared[key] != value:
                    config[key] = value
                continue
            if key in merged and merged[key] == value:
                continue
            config[key] = value

        if config or had_block:
            merged[record.provider] = config

    return merged or None


def _migrate_commands(
    paths: ScopePaths,
    adapters: List[ProviderAdapter],
    counts: EntityCounts,
    context: _Context,
) -> Optional[Cancelled]:
    canonical = {c.file_name.lower(): c for c in parse_commands_dir(paths.commands_dir)}

    grouped: Dict[str, List[_CommandRecord]] = {}
    for adapter in adapters:
        for record in _read_command_records(paths, adapter):
            grouped.setdefault(record.file_name.lower(), []).append(record)
    counts.detected = sum(len(records) for records in grouped.values())

    for key in sorted(grouped):
        records = grouped[key]
        existing = canonical.get(key)
        label = f"command `{records[0].file_name}`"
        with_frontmatter = [r for r in records if r.frontmatter]
        preferred = _preferred(with_frontmatter) if with_frontmatter else records[0]
        conflicted = False

        if existing is None:
            chosen = preferred
            if len({normalize_body(r.body) for r in records}) > 1:
                counts.conflicts += 1
                conflicted = True
                chosen = _choose_provider_source(label, records, preferred, context)
                if isinstance(chosen, Cancelled):
                    return CANCELLED
            body = chosen.body
            target = paths.commands_dir / records[0].file_name
            frontmatter = merge_command_frontmatter(None, records, chosen)
        else:
            body = existing.body
            for record in records:
                if normalize_body(record.body) == normalize_body(existing.body):
                    continue
                counts.conflicts += 1
                conflicted = True
                use_provider = _use_provider_version(label, record.provider, context)
                if isinstance(use_provider, Cancelled):
                    return CANCELLED
                if use_provider:
                    body = record.body
            target = existing.source_path
            frontmatter = merge_command_frontmatter(existing.frontmatter, records, preferred)

        if _write(target, build_command_markdown(frontmatter, body), context):
            counts.imported += 1
        elif not conflicted:
            counts.skipped += 1
    return None


# =============================================================================
# MCP
# =============================================================================


def _migrate_mcp(
    paths: ScopePaths,
    adapters: List[ProviderAdapter],
    counts: EntityCounts,
    context: _Context,
) -> None:
    provider_servers = {adapter.name: adapter.read_mcp(paths) for adapter in adapters}
    counts.detected = sum(len(servers) for servers in provider_servers.values())
    canonical = read_canonical_mcp(paths)
    updated = dict(canonical)

    names = sorted({name for servers in provider_servers.values() for name in servers})
    for name in names:
        existing = canonical.get(name)
        if existing is None:
            base = next(servers[name] for servers in provider_servers.values() if name in servers)
            providers: Dict[str, Any] = {}
            # A new server only goes to the providers that already had it
            for provider in ALL_PROVIDERS:
                servers = provider_servers.get(provider, {})
                if name not in servers:
                    providers[provider] = False
                elif servers[name] != base:
                    providers[provider] = dict(servers[name])
            updated[name] = CanonicalMcpServer(name=name, base=dict(base), providers=providers)
            counts.imported += 1
            continue

        providers = dict(existing.providers)
        for provider, servers in provider_servers.items():
            if name not in servers or providers.get(provider) is False:
                continue
            config = servers[name]
            if config == existing.base:
                providers.pop(provider, None)
                continue
            override = providers.get(provider)
            if deep_merge(existing.base, override if isinstance(override, dict) else {}) != config:
                providers[provider] = dict(config)

        server = CanonicalMcpServer(name=name, base=dict(existing.base), providers=providers)
        if server_to_dict(server) == server_to_dict(existing):
            counts.skipped += 1
        else:
            updated[name] = server
            counts.imported += 1

    if counts.imported and not context.dry_run:
        write_canonical_mcp(paths, updated)


# =============================================================================
# SKILLS
# =============================================================================


def provider_skill_dirs(paths: ScopePaths, adapters: List[ProviderAdapter]) -> List[Path]:
    """Distinct provider skill directories (claude and copilot share one)."""
    seen: List[Path] = []
    for adapter in adapters:
        directory = adapter.skills_dir(paths)
        if directory is not None and directory not in seen:
            seen.append(directory)
    return seen


def skill_target_name(skill) -> str:
    if skill.layout == "nested":
        return skill.source_dir.name
    return slugify(skill.name) or "skill"


def _migrate_skills(
    paths: ScopePaths,
    adapters: List[ProviderAdapter],
    counts: EntityCounts,
    context: _Context,
) -> Optional[Cancelled]:
    staging = Path(tempfile.mkdtemp(prefix="agent-loom-migrate-"))
    try:
        for directory in provider_skill_dirs(paths, adapters):
            # Symlinked dirs already point at the canonical store
            if directory.is_symlink() or not directory.is_dir():
                continue
            for skill in parse_skills_dir(directory):
                counts.detected += 1
                name = skill_target_name(skill)
                target = paths.skills_dir / name
                if target.exists():
                    if directories_are_equal(stage_skill(skill, staging), target):
                        counts.skipped += 1
                        continue
                    counts.conflicts += 1
                    use_provider = _use_provider_version(f"skill `{name}`", directory.parent.name, context)
                    if isinstance(use_provider, Cancelled):
                        return CANCELLED
                    if not use_provider:
                        counts.skipped += 1
                        continue
                if not context.dry_run:
                    ensure_dir(paths.skills_dir)
                    copy_skill(skill, target)
                counts.imported += 1
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return None


# =============================================================================
# ENTRY POINTS
# =============================================================================


def migrate_provider_state(
    paths: ScopePaths,
    providers: List[str],
    prompter: Prompter,
    target: str = "all",
    yes: bool = False,
    non_interactive: bool = False,
    dry_run: bool = False,
) -> Union[MigrationSummary, Cancelled]:
    """Import provider-native state for ``providers`` into the canonical store."""
    adapters = [adapter_registry.require(p) for p in providers]
    context = _Context(prompter=prompter, yes=yes, non_interactive=non_interactive, dry_run=dry_run)
    entities = list(ENTITY_TYPES) if target == "all" else [target]
    summary = MigrationSummary(providers=[a.name for a in adapters], target=target)

    steps = {
        "agent": _migrate_agents,
        "command": _migrate_commands,
        "mcp": _migrate_mcp,
        "skill": _migrate_skills,
    }
    for entity in entities:
        counts = summary.counts.setdefault(entity, EntityCounts())
        logger.debug("Migrating %s from %s", entity, ", ".join(summary.providers))
        if isinstance(steps[entity](paths, adapters, counts, context), Cancelled):
            return CANCELLED
    return summary


def initialize_canonical_layout(paths: ScopePaths, settings: Settings, providers: List[str]) -> Settings:
    """Create (or normalize) the canonical store and return the updated settings."""
    for directory in (paths.agents_dir, paths.commands_dir, paths.skills_dir):
        ensure_dir(directory)

    write_canonical_mcp(paths, read_canonical_mcp(paths))
    write_lockfile(paths, read_lockfile(paths))
    write_manifest(paths, read_manifest(paths))
    return settings.with_last_scope(paths.scope, providers)
