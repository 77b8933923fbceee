"""
Base provider adapter and registry.

Each provider module subclasses ``ProviderAdapter`` and registers an
instance with ``adapter_registry``. The sync and migration engines only
talk to adapters through this interface.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..errors import ValidationError
from ..utils import build_markdown, extract_yaml_frontmatter, read_json_if_exists, slugify
from .agents import shared_frontmatter
from .models import (
    ALL_PROVIDERS,
    CanonicalAgent,
    CanonicalCommand,
    Disabled,
    ScopePaths,
)


@dataclass(frozen=True)
class ProviderInfo:
    """Metadata about a provider."""

    name: str
    display_name: str
    output_dir: str


@dataclass
class McpOutput:
    """One provider MCP file: ``update`` turns the existing document into the new one.

    ``owned`` files are written whole and tracked in the sync manifest; shared
    documents keep their other keys and are never pruned.
    """

    path: Path
    update: Callable[[Dict[str, Any]], Dict[str, Any]]
    owned: bool = True


@dataclass
class ProviderAgentRecord:
    """A provider-native agent normalized for migration."""

    provider: str
    name: str
    description: str
    body: str
    provider_config: Dict[str, Any]
    source_path: Path


def pick_keys(config: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
    return {k: config[k] for k in keys if k in config and config[k] is not None}


class ProviderAdapter:
    """Translation rules between the canonical store and one provider."""

    info: ProviderInfo
    agent_extension = ".md"
    # Suffixes recognised when reading provider-native agents
    agent_suffixes = (".md",)
    argument_placeholder: Optional[str] = None
    # Folded providers keep agents and MCP servers inside one shared document
    folded = False

    @property
    def name(self) -> str:
        return self.info.name

    # -------------------------------------------------------------------------
    # Locations
    # -------------------------------------------------------------------------

    def root(self, paths: ScopePaths) -> Path:
        return paths.base_dir / self.info.output_dir

    def agents_dir(self, paths: ScopePaths) -> Path:
        return self.root(paths) / "agents"

    def commands_dir(self, paths: ScopePaths) -> Path:
        return self.root(paths) / "commands"

    def skills_dir(self, paths: ScopePaths) -> Optional[Path]:
        return None

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def agent_file_name(self, agent: CanonicalAgent) -> str:
        return f"{slugify(agent.name) or 'agent'}{self.agent_extension}"

    def agent_frontmatter(self, agent: CanonicalAgent, config: Dict[str, Any]) -> Dict[str, Any]:
        return {"name": agent.name, "description": agent.description, **config}

    def render_agent(self, agent: CanonicalAgent) -> Optional[str]:
        """Provider-native agent file, or None when the agent is disabled here."""
        toggle = agent.toggle_for(self.name)
        if isinstance(toggle, Disabled):
            return None
        return build_markdown(self.agent_frontmatter(agent, toggle.config), agent.body)

    def agent_stem(self, file_name: str) -> Optional[str]:
        lowered = file_name.lower()
        for suffix in self.agent_suffixes:
            if lowered.endswith(suffix):
                return file_name[: -len(suffix)]
        return None

    def is_agent_file(self, file_name: str) -> bool:
        stem = self.agent_stem(file_name)
        return bool(stem) and stem.lower() != "readme"

    def read_agent_records(self, paths: ScopePaths) -> List[ProviderAgentRecord]:
        """Read provider-native agent files for migration."""
        records = []
        for path in self.agent_source_files(paths):
            content = path.read_text(encoding="utf-8")
            frontmatter, body = extract_yaml_frontmatter(content)
            frontmatter = frontmatter or {}
            stem = self.agent_stem(path.name) or path.stem
            name = frontmatter.get("name")
            description = frontmatter.get("description")
            records.append(
                ProviderAgentRecord(
                    provider=self.name,
                    name=name.strip() if isinstance(name, str) and name.strip() else stem,
                    description=(
                        description.strip()
                        if isinstance(description, str) and description.strip()
                        else f"Migrated from {self.name}"
                    ),
                    body=body.lstrip(),
                    provider_config=self.extract_agent_config(frontmatter),
                    source_path=path,
                )
            )
        return records

    def agent_source_files(self, paths: ScopePaths) -> List[Path]:
        directory = self.agents_dir(paths)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file() and self.is_agent_file(p.name))

    def extract_agent_config(self, frontmatter: Dict[str, Any]) -> Dict[str, Any]:
        """Explicit provider block when present, else every non-identity key."""
        explicit = frontmatter.get(self.name)
        if isinstance(explicit, dict):
            return dict(explicit)
        return {
            k: v for k, v in frontmatter.items()
            if k not in ("name", "description") and k not in ALL_PROVIDERS
        }

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def command_file_name(self, file_name: str) -> str:
        if file_name.lower().endswith(".mdc"):
            return file_name[: -len(".mdc")] + ".md"
        return file_name

    def render_command(self, command: CanonicalCommand) -> Optional[str]:
        toggle = command.toggle_for(self.name)
        if isinstance(toggle, Disabled):
            return None

        body = command.body
        if self.argument_placeholder:
            body = re.sub(r"\$ARGUMENTS\b", lambda _: self.argument_placeholder, body)

        frontmatter = {**shared_frontmatter(command.frontmatter or {}), **toggle.config}
        if not frontmatter:
            return body
        return build_markdown(frontmatter, body)

    def is_command_file(self, file_name: str) -> bool:
        lowered = file_name.lower()
        match = re.match(r"^(.*?)(\.prompt)?\.(md|mdc)$", lowered)
        return bool(match) and match.group(1) != "readme"

    def migrates_commands(self, paths: ScopePaths) -> bool:
        return True

    def command_source_files(self, paths: ScopePaths) -> List[Path]:
        directory = self.commands_dir(paths)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file() and self.is_command_file(p.name))

    # -------------------------------------------------------------------------
    # MCP
    # -------------------------------------------------------------------------

    def mcp_outputs(self, paths: ScopePaths, servers: Dict[str, Dict[str, Any]]) -> List[McpOutput]:
        return []

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return None

    def parse_mcp_servers(self, document: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """Provider document -> ``{name: neutral config}``."""
        servers = document.get("mcpServers")
        if not isinstance(servers, dict):
            return {}
        return {name: dict(cfg) for name, cfg in servers.items() if isinstance(cfg, dict)}

    def read_mcp(self, paths: ScopePaths) -> Dict[str, Dict[str, Any]]:
        path = self.mcp_source_path(paths)
        if path is None:
            return {}
        try:
            document = read_json_if_exists(path)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(document, dict):
            return {}
        return self.parse_mcp_servers(document)


class AdapterRegistry:
    """Registry of provider adapters keyed by provider id."""

    def __init__(self):
        self._adapters: Dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> ProviderAdapter:
        self._adapters[adapter.name] = adapter
        return adapter

    def get(self, name: str) -> Optional[ProviderAdapter]:
        return self._adapters.get(name.lower())

    def require(self, name: str) -> ProviderAdapter:
        adapter = self.get(name)
        if adapter is None:
            raise ValidationError(f"Unknown provider: {name}")
        return adapter

    def names(self) -> List[str]:
        return [p for p in ALL_PROVIDERS if p in self._adapters]

    def all(self) -> List[ProviderAdapter]:
        return [self._adapters[name] for name in self.names()]


adapter_registry = AdapterRegistry()
