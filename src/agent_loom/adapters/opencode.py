"""OpenCode adapter: ``.opencode`` locally, ``~/.config/opencode`` globally."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.adapter import McpOutput, ProviderAdapter, ProviderInfo, adapter_registry
from ..core.models import ScopePaths


class OpenCodeAdapter(ProviderAdapter):
    info = ProviderInfo(name="opencode", display_name="OpenCode", output_dir=".opencode")

    def root(self, paths: ScopePaths) -> Path:
        if paths.is_global:
            return paths.home_dir / ".config" / "opencode"
        return paths.workspace_root / self.info.output_dir

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return self.root(paths) / "opencode.json"

    def parse_mcp_servers(self, document: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        raw = document.get("mcp")
        if not isinstance(raw, dict):
            return {}
        servers = {}
        for name, cfg in raw.items():
            if not isinstance(cfg, dict):
                continue
            neutral: Dict[str, Any] = {}
            if isinstance(cfg.get("url"), str):
                neutral["url"] = cfg["url"]
            command = cfg.get("command")
            if isinstance(command, list) and command:
                # opencode also accepts the whole argv as one list
                neutral["command"] = command[0]
                if len(command) > 1:
                    neutral["args"] = list(command[1:])
            elif isinstance(command, str):
                neutral["command"] = command
            if isinstance(cfg.get("args"), list):
                neutral["args"] = cfg["args"]
            if isinstance(cfg.get("environment"), dict):
                neutral["env"] = cfg["environment"]
            servers[name] = neutral
        return servers

    def mcp_outputs(self, paths: ScopePaths, servers: Dict[str, Dict[str, Any]]) -> List[McpOutput]:
        mcp: Dict[str, Dict[str, Any]] = {}
        for name, cfg in servers.items():
            if isinstance(cfg.get("url"), str):
                entry: Dict[str, Any] = {"type": "remote", "url": cfg["url"]}
            else:
                entry = {"type": "local", "command": cfg.get("command")}
                if isinstance(cfg.get("args"), list):
                    entry["args"] = cfg["args"]
            if isinstance(cfg.get("env"), dict):
                entry["environment"] = cfg["env"]
            mcp[name] = entry

        return [
            McpOutput(
                path=self.root(paths) / "opencode.json",
                update=lambda existing: {**existing, "mcp": mcp},
                owned=False,
            )
        ]


adapter_registry.register(OpenCodeAdapter())
