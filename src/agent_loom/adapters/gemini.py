"""Gemini adapter: ``.gemini/agents`` and ``.gemini/settings.json``."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.adapter import McpOutput, ProviderAdapter, ProviderInfo, adapter_registry
from ..core.models import ScopePaths


class GeminiAdapter(ProviderAdapter):
    info = ProviderInfo(name="gemini", display_name="Gemini", output_dir=".gemini")

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return self.root(paths) / "settings.json"

    def parse_mcp_servers(self, document: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        servers = {}
        for name, cfg in super().parse_mcp_servers(document).items():
            if "httpUrl" in cfg:
                cfg["url"] = cfg.pop("httpUrl")
            servers[name] = cfg
        return servers

    def mcp_outputs(self, paths: ScopePaths, servers: Dict[str, Dict[str, Any]]) -> List[McpOutput]:
        gemini_servers = {}
        for name, cfg in servers.items():
            mapped: Dict[str, Any] = {}
            if isinstance(cfg.get("url"), str):
                mapped["httpUrl"] = cfg["url"]
            if isinstance(cfg.get("command"), str):
                mapped["command"] = cfg["command"]
            if isinstance(cfg.get("args"), list):
                mapped["args"] = cfg["args"]
            if isinstance(cfg.get("env"), dict):
                mapped["env"] = cfg["env"]
            gemini_servers[name] = mapped

        def update(existing: Dict[str, Any]) -> Dict[str, Any]:
            experimental = dict(existing["experimental"]) if isinstance(existing.get("experimental"), dict) else {}
            experimental["enableAgents"] = True
            return {**existing, "experimental": experimental, "mcpServers": gemini_servers}

        return [McpOutput(path=self.root(paths) / "settings.json", update=update, owned=False)]


adapter_registry.register(GeminiAdapter())
