"""Canonical MCP document: ``{version: 1, mcpServers: {name: {base, providers}}}``."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ValidationError
from ..utils import deep_merge, read_json_if_exists, write_json_atomic
from .models import CanonicalMcpServer, Disabled, ScopePaths


def normalize_server(name: str, raw: Any) -> CanonicalMcpServer:
    """Fold stray top-level keys of a raw server object into ``base``."""
    if not isinstance(raw, dict):
        raise ValidationError(f"MCP server `{name}` must be an object.")

    base = dict(raw["base"]) if isinstance(raw.get("base"), dict) else {}
    for key, value in raw.items():
        if key not in ("base", "providers"):
            base[key] = value

    providers: Dict[str, Any] = {}
    raw_providers = raw.get("providers")
    if isinstance(raw_providers, dict):
        for provider, override in raw_providers.items():
            if override is False or isinstance(override, dict):
                providers[provider] = override

    return CanonicalMcpServer(name=name, base=base, providers=providers)


def parse_mcp_document(data: Any, origin: Optional[Path] = None) -> Dict[str, CanonicalMcpServer]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"Invalid MCP document{f' in {origin}' if origin else ''}.")
    servers = data.get("mcpServers") or {}
    if not isinstance(servers, dict):
        raise ValidationError(f"`mcpServers` must be an object{f' in {origin}' if origin else ''}.")
    return {name: normalize_server(name, raw) for name, raw in servers.items()}


def load_mcp_file(path: Path) -> Dict[str, CanonicalMcpServer]:
    try:
        data = read_json_if_exists(path)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}") from e
    return parse_mcp_document(data, path)


def read_canonical_mcp(paths: ScopePaths) -> Dict[str, CanonicalMcpServer]:
    return load_mcp_file(paths.mcp_path)


def server_to_dict(server: CanonicalMcpServer) -> Dict[str, Any]:
    data: Dict[str, Any] = {"base": dict(server.base)}
    if server.providers:
        data["providers"] = dict(server.providers)
    return data


def mcp_document(servers: Dict[str, CanonicalMcpServer]) -> Dict[str, Any]:
    return {
        "version": 1,
        "mcpServers": {name: server_to_dict(servers[name]) for name in servers},
    }


def write_canonical_mcp(paths: ScopePaths, servers: Dict[str, CanonicalMcpServer]) -> None:
    write_json_atomic(paths.mcp_path, mcp_document(servers))


def resolve_for_provider(servers: Dict[str, CanonicalMcpServer], provider: str) -> Dict[str, Dict[str, Any]]:
    """Effective server configs for ``provider``; disabled servers are dropped."""
    resolved: Dict[str, Dict[str, Any]] = {}
    for name in sorted(servers):
        toggle = servers[name].toggle_for(provider)
        if isinstance(toggle, Disabled):
            continue
        resolved[name] = deep_merge(servers[name].base, toggle.config)
    return resolved
