"""
Codex adapter.

Codex keeps every agent role and MCP server inside ``.codex/config.toml``.
Sync treats that file as a key-value document: entries we wrote before (as
recorded in the sync manifest) are removed when they are no longer enabled,
enabled entries are upserted, and anything else in the file is left alone.
Each role also gets ``agents/<role>.toml`` and ``agents/<role>.instructions.md``
side files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from ..core.adapter import ProviderAdapter, ProviderAgentRecord, ProviderInfo, adapter_registry
from ..core.models import CanonicalAgent, CodexTracking, Enabled, ScopePaths
from ..errors import ValidationError
from ..utils import ensure_dir, logger, slugify, write_text_if_changed

# canonical codex config key -> role TOML key
ROLE_SETTING_KEYS = [
    ("model", "model"),
    ("reasoningEffort", "model_reasoning_effort"),
    ("approvalPolicy", "approval_policy"),
    ("sandboxMode", "sandbox_mode"),
]


@dataclass
class FoldedSyncResult:
    """Paths written per entity type and the keys now owned in config.toml."""

    files: Dict[str, List[Path]] = field(default_factory=lambda: {"agent": [], "mcp": []})
    tracking: CodexTracking = field(default_factory=CodexTracking)


def load_toml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    raw = path.read_text(encoding="utf-8")
    if not raw.strip():
        return {}
    try:
        return toml.loads(raw)
    except toml.TomlDecodeError as e:
        raise ValidationError(f"Invalid TOML in {path}: {e}") from e


def build_role_toml(role: str, config: Dict[str, Any]) -> Dict[str, Any]:
    role_toml: Dict[str, Any] = {"model_instructions_file": f"./{role}.instructions.md"}
    for canonical_key, toml_key in ROLE_SETTING_KEYS:
        if isinstance(config.get(canonical_key), str):
            role_toml[toml_key] = config[canonical_key]
    if isinstance(config.get("webSearch"), bool):
        role_toml["tools"] = {"web_search": config["webSearch"]}
    return role_toml


def role_config_from_toml(role_toml: Dict[str, Any]) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    for canonical_key, toml_key in ROLE_SETTING_KEYS:
        if isinstance(role_toml.get(toml_key), str):
            config[canonical_key] = role_toml[toml_key]
    tools = role_toml.get("tools")
    if isinstance(tools, dict) and isinstance(tools.get("web_search"), bool):
        config["webSearch"] = tools["web_search"]
    return config


def codex_server_entry(config: Dict[str, Any]) -> Dict[str, Any]:
    entry: Dict[str, Any] = {}
    if isinstance(config.get("url"), str):
        entry["url"] = config["url"]
    if isinstance(config.get("command"), str):
        entry["command"] = config["command"]
    if isinstance(config.get("args"), list):
        entry["args"] = config["args"]
    if isinstance(config.get("env"), dict):
        entry["env"] = config["env"]
    return entry


def _resolve_reference(base_dir: Path, reference: str) -> Path:
    candidate = Path(reference.strip())
    if candidate.is_absolute():
        return candidate
    return (base_dir / candidate).resolve()


class CodexAdapter(ProviderAdapter):
    info = ProviderInfo(name="codex", display_name="Codex", output_dir=".codex")
    folded = True

    def config_path(self, paths: ScopePaths) -> Path:
        return self.root(paths) / "config.toml"

    def commands_dir(self, paths: ScopePaths) -> Path:
        # Codex only reads prompts from the home directory
        return paths.home_dir / ".codex" / "prompts"

    def migrates_commands(self, paths: ScopePaths) -> bool:
        return paths.is_global

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def sync_folded(
        self,
        paths: ScopePaths,
        agents: List[CanonicalAgent],
        servers: Dict[str, Dict[str, Any]],
        tracking: CodexTracking,
        include_roles: bool = True,
        include_mcp: bool = True,
        dry_run: bool = False,
    ) -> FoldedSyncResult:
        config_path = self.config_path(paths)
        agents_dir = self.agents_dir(paths)
        document = load_toml(config_path)
        result = FoldedSyncResult(tracking=CodexTracking(roles=list(tracking.roles), mcp_servers=list(tracking.mcp_servers)))

        features = dict(document["features"]) if isinstance(document.get("features"), dict) else {}
        features["multi_agent"] = True
        document["features"] = features

        if include_roles:
            agents_table = dict(document["agents"]) if isinstance(document.get("agents"), dict) else {}
            enabled = []
            for agent in agents:
                toggle = agent.toggle_for(self.name)
                role = slugify(agent.name)
                if isinstance(toggle, Enabled) and role:
                    enabled.append((role, agent, toggle.config))
            enabled_roles = {role for role, _, _ in enabled}

            for old_role in tracking.roles:
                if old_role not in enabled_roles and old_role in agents_table:
                    logger.debug("Removing codex role %s", old_role)
                    del agents_table[old_role]

            for role, agent, config in enabled:
                role_toml_path = agents_dir / f"{role}.toml"
                instructions_path = agents_dir / f"{role}.instructions.md"
                if not dry_run:
                    ensure_dir(agents_dir)
                    write_text_if_changed(instructions_path, agent.body.strip() + "\n")
                    write_text_if_changed(role_toml_path, toml.dumps(build_role_toml(role, config)))
                result.files["agent"].extend([role_toml_path, instructions_path])
                agents_table[role] = {
                    "description": agent.description,
                    "config_file": f"./agents/{role}.toml",
                }

            document["agents"] = agents_table
            result.tracking.roles = sorted(enabled_roles)

        if include_mcp:
            mcp_table = dict(document["mcp_servers"]) if isinstance(document.get("mcp_servers"), dict) else {}
            for old_server in tracking.mcp_servers:
                if old_server not in servers and old_server in mcp_table:
                    del mcp_table[old_server]
            for name, config in servers.items():
                mcp_table[name] = codex_server_entry(config)
            document["mcp_servers"] = mcp_table
            result.tracking.mcp_servers = sorted(servers)

        if not dry_run:
            write_text_if_changed(config_path, toml.dumps(document))
        return result

    # -------------------------------------------------------------------------
    # Migration
    # -------------------------------------------------------------------------

    def read_agent_records(self, paths: ScopePaths) -> List[ProviderAgentRecord]:
        config_path = self.config_path(paths)
        document = load_toml(config_path)
        agents_table = document.get("agents")
        if not isinstance(agents_table, dict):
            return []

        records = []
        for role, entry in agents_table.items():
            if not isinstance(entry, dict):
                continue
            config_file = entry.get("config_file")
            if not isinstance(config_file, str) or not config_file.strip():
                continue
            role_toml_path = _resolve_reference(config_path.parent, config_file)
            if not role_toml_path.is_file():
                continue

            role_toml = load_toml(role_toml_path)
            body = ""
            instructions_ref = role_toml.get("model_instructions_file")
            if isinstance(instructions_ref, str) and instructions_ref.strip():
                instructions_path = _resolve_reference(role_toml_path.parent, instructions_ref)
                if instructions_path.is_file():
                    body = instructions_path.read_text(encoding="utf-8").lstrip()

            description = entry.get("description")
            records.append(
                ProviderAgentRecord(
                    provider=self.name,
                    name=role,
                    description=description.strip() if isinstance(description, str) and description.strip() else role,
                    body=body,
                    provider_config=role_config_from_toml(role_toml),
                    source_path=role_toml_path,
                )
            )
        return records

    def read_mcp(self, paths: ScopePaths) -> Dict[str, Dict[str, Any]]:
        servers = load_toml(self.config_path(paths)).get("mcp_servers")
        if not isinstance(servers, dict):
            return {}
        return {name: dict(cfg) for name, cfg in servers.items() if isinstance(cfg, dict)}

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return self.config_path(paths)


adapter_registry.register(CodexAdapter())
