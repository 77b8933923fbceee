"""Claude adapter: ``.claude/agents``, ``.mcp.json`` plus the enabled-server list."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.adapter import McpOutput, ProviderAdapter, ProviderInfo, adapter_registry, pick_keys
from ..core.models import ScopePaths


class ClaudeAdapter(ProviderAdapter):
    info = ProviderInfo(name="claude", display_name="Claude", output_dir=".claude")

    def skills_dir(self, paths: ScopePaths) -> Optional[Path]:
        return self.root(paths) / "skills"

    def settings_path(self, paths: ScopePaths) -> Path:
        if paths.is_global:
            return paths.home_dir / ".claude.json"
        return self.root(paths) / "settings.json"

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return paths.base_dir / ".mcp.json"

    def mcp_outputs(self, paths: ScopePaths, servers: Dict[str, Dict[str, Any]]) -> List[McpOutput]:
        claude_servers = {}
        for name, cfg in servers.items():
            mapped = pick_keys(cfg, ["type", "url", "command", "args", "env"])
            if "type" not in mapped and isinstance(mapped.get("url"), str):
                mapped["type"] = "http"
            claude_servers[name] = mapped

        def update_settings(existing: Dict[str, Any]) -> Dict[str, Any]:
            return {**existing, "enabledMcpjsonServers": sorted(claude_servers)}

        return [
            McpOutput(path=paths.base_dir / ".mcp.json", update=lambda _existing: {"mcpServers": claude_servers}),
            McpOutput(path=self.settings_path(paths), update=update_settings, owned=False),
        ]


adapter_registry.register(ClaudeAdapter())
