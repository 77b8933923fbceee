"""Cursor adapter: ``.cursor/rules/*.mdc`` agents, ``.cursor/mcp.json``."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.adapter import McpOutput, ProviderAdapter, ProviderInfo, adapter_registry, pick_keys
from ..core.models import CanonicalAgent, ScopePaths


class CursorAdapter(ProviderAdapter):
    info = ProviderInfo(name="cursor", display_name="Cursor", output_dir=".cursor")
    agent_extension = ".mdc"
    agent_suffixes = (".mdc", ".md")

    def agents_dir(self, paths: ScopePaths) -> Path:
        return self.root(paths) / "rules"

    def skills_dir(self, paths: ScopePaths) -> Optional[Path]:
        return self.root(paths) / "skills"

    def agent_frontmatter(self, agent: CanonicalAgent, config: Dict[str, Any]) -> Dict[str, Any]:
        # Cursor rules carry no name; the file name identifies them
        return {"description": agent.description, "alwaysApply": False, **config}

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return self.root(paths) / "mcp.json"

    def mcp_outputs(self, paths: ScopePaths, servers: Dict[str, Dict[str, Any]]) -> List[McpOutput]:
        payload = {
            "mcpServers": {
                name: pick_keys(cfg, ["url", "command", "args", "env"])
                for name, cfg in servers.items()
            }
        }
        return [McpOutput(path=self.root(paths) / "mcp.json", update=lambda _existing: payload)]


adapter_registry.register(CursorAdapter())
