"""Core data types shared by codecs, adapters and orchestrators."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..utils import markdown_body

ALL_PROVIDERS = ["cursor", "claude", "codex", "opencode", "gemini", "copilot"]
ENTITY_TYPES = ["agent", "command", "mcp", "skill"]
SYNC_TARGETS = ["all"] + ENTITY_TYPES
SELECTION_MODES = ["all", "custom"]


# =============================================================================
# PROVIDER TOGGLE
# =============================================================================


@dataclass(frozen=True)
class Enabled:
    """The entity is rendered for a provider, with ``config`` merged in."""

    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Disabled:
    """The entity is excluded from a provider."""


ProviderToggle = Union[Enabled, Disabled]

DISABLED = Disabled()


def decode_provider_key(value: Any) -> ProviderToggle:
    """``false`` disables, a mapping is an override, anything else enables as-is."""
    if value is False:
        return DISABLED
    if isinstance(value, dict):
        return Enabled(dict(value))
    return Enabled({})


def decode_provider_toggles(data: Optional[Dict[str, Any]]) -> Dict[str, ProviderToggle]:
    data = data or {}
    return {provider: decode_provider_key(data.get(provider)) for provider in ALL_PROVIDERS}


# =============================================================================
# CANONICAL ENTITIES
# =============================================================================


@dataclass
class CanonicalAgent:
    name: str
    description: str
    body: str
    frontmatter: Dict[str, Any]
    source_path: Path
    file_name: str
    toggles: Dict[str, ProviderToggle] = field(default_factory=dict)

    def __post_init__(self):
        self.body = markdown_body(self.body)

    def toggle_for(self, provider: str) -> ProviderToggle:
        return self.toggles.get(provider, Enabled())


@dataclass
class CanonicalCommand:
    file_name: str
    body: str
    source_path: Path
    frontmatter: Optional[Dict[str, Any]] = None
    toggles: Dict[str, ProviderToggle] = field(default_factory=dict)

    def __post_init__(self):
        # Without frontmatter the file is the body, kept byte for byte
        if self.frontmatter:
            self.body = markdown_body(self.body)

    def toggle_for(self, provider: str) -> ProviderToggle:
        return self.toggles.get(provider, Enabled())


@dataclass
class CanonicalSkill:
    name: str
    source_dir: Path
    skill_file: Path
    layout: str = "nested"


@dataclass
class CanonicalMcpServer:
    name: str
    base: Dict[str, Any]
    providers: Dict[str, Any] = field(default_factory=dict)

    def toggle_for(self, provider: str) -> ProviderToggle:
        return decode_provider_key(self.providers.get(provider))


# =============================================================================
# SCOPE
# =============================================================================


@dataclass(frozen=True)
class ScopePaths:
    scope: str
    workspace_root: Path
    home_dir: Path
    agents_root: Path
    agents_dir: Path
    commands_dir: Path
    skills_dir: Path
    mcp_path: Path
    lock_path: Path
    settings_path: Path
    manifest_path: Path

    @property
    def is_global(self) -> bool:
        return self.scope == "global"

    @property
    def base_dir(self) -> Path:
        """Root that provider-native paths hang off for this scope."""
        return self.home_dir if self.is_global else self.workspace_root


@dataclass
class Settings:
    version: int = 1
    last_scope: Optional[str] = None
    default_providers: List[str] = field(default_factory=lambda: list(ALL_PROVIDERS))

    def with_last_scope(self, scope: str, providers: Optional[List[str]] = None) -> "Settings":
        if providers:
            return replace(self, last_scope=scope, default_providers=list(providers))
        return replace(self, last_scope=scope)


# =============================================================================
# LOCKFILE / MANIFEST
# =============================================================================


@dataclass
class LockEntry:
    source: str
    source_type: str
    resolved_commit: str
    imported_at: str
    requested_ref: Optional[str] = None
    requested_agents: Optional[List[str]] = None
    subdir: Optional[str] = None
    imported_agents: List[str] = field(default_factory=list)
    imported_commands: List[str] = field(default_factory=list)
    selected_source_commands: Optional[List[str]] = None
    command_rename_map: Dict[str, str] = field(default_factory=dict)
    imported_mcp_servers: List[str] = field(default_factory=list)
    selected_source_mcp_servers: Optional[List[str]] = None
    imported_skills: List[str] = field(default_factory=list)
    selected_source_skills: Optional[List[str]] = None
    skill_rename_map: Dict[str, str] = field(default_factory=dict)
    tracked_entities: List[str] = field(default_factory=list)
    content_hash: str = ""

    def selection_for(self, entity: str) -> Optional[List[str]]:
        """Pinned selectors for ``entity``; None means every entity is tracked."""
        return {
            "agent": self.requested_agents,
            "command": self.selected_source_commands,
            "mcp": self.selected_source_mcp_servers,
            "skill": self.selected_source_skills,
        }[entity]

    def imported_for(self, entity: str) -> List[str]:
        return {
            "agent": self.imported_agents,
            "command": self.imported_commands,
            "mcp": self.imported_mcp_servers,
            "skill": self.imported_skills,
        }[entity]


@dataclass
class Lockfile:
    version: int = 1
    entries: List[LockEntry] = field(default_factory=list)


@dataclass
class CodexTracking:
    roles: List[str] = field(default_factory=list)
    mcp_servers: List[str] = field(default_factory=list)


@dataclass
class SyncManifest:
    version: int = 1
    generated_files: List[str] = field(default_factory=list)
    generated_by_entity: Dict[str, List[str]] = field(default_factory=dict)
    codex: CodexTracking = field(default_factory=CodexTracking)
