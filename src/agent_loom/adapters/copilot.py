"""GitHub Copilot adapter.

Agents become ``.github/agents/<slug>.agent.md`` (``~/.vscode/chatmodes``
globally), commands become ``.prompt.md`` prompt files and ``$ARGUMENTS`` is
rewritten to the VS Code input variable. MCP servers go to
``.vscode/mcp.json`` and, for the global scope, the VS Code user settings.
"""

import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.adapter import McpOutput, ProviderAdapter, ProviderInfo, adapter_registry, pick_keys
from ..core.models import ScopePaths

_RE_EXTENSION = re.compile(r"\.[^./]+$")


def vscode_settings_path(home_dir: Path) -> Path:
    """VS Code user settings file for the current platform."""
    if sys.platform == "darwin":
        return home_dir / "Library" / "Application Support" / "Code" / "User" / "settings.json"
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        base = Path(app_data) if app_data else home_dir / "AppData" / "Roaming"
        return base / "Code" / "User" / "settings.json"
    return home_dir / ".config" / "Code" / "User" / "settings.json"


class CopilotAdapter(ProviderAdapter):
    info = ProviderInfo(name="copilot", display_name="Copilot", output_dir=".github")
    agent_extension = ".agent.md"
    agent_suffixes = (".agent.md", ".chatmode.md")
    argument_placeholder = "${input:args}"

    def agents_dir(self, paths: ScopePaths) -> Path:
        if paths.is_global:
            return paths.home_dir / ".vscode" / "chatmodes"
        return self.root(paths) / "agents"

    def commands_dir(self, paths: ScopePaths) -> Path:
        return self.root(paths) / "prompts"

    def skills_dir(self, paths: ScopePaths) -> Optional[Path]:
        # Copilot reads skills from the Claude location
        return paths.base_dir / ".claude" / "skills"

    def command_file_name(self, file_name: str) -> str:
        lowered = file_name.lower()
        if lowered.endswith(".prompt.md"):
            return file_name
        if lowered.endswith(".md") or lowered.endswith(".mdc"):
            return _RE_EXTENSION.sub("", file_name) + ".prompt.md"
        if _RE_EXTENSION.search(file_name):
            return _RE_EXTENSION.sub(".prompt.md", file_name)
        return f"{file_name}.prompt.md"

    def is_command_file(self, file_name: str) -> bool:
        lowered = file_name.lower()
        return lowered.endswith(".prompt.md") and lowered[: -len(".prompt.md")] != "readme"

    def mcp_path(self, paths: ScopePaths) -> Path:
        return paths.base_dir / ".vscode" / "mcp.json"

    def mcp_source_path(self, paths: ScopePaths) -> Optional[Path]:
        return self.mcp_path(paths)

    def parse_mcp_servers(self, document: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        servers = document.get("mcpServers")
        if not isinstance(servers, dict):
            # VS Code's own key
            servers = document.get("servers")
        if not isinstance(servers, dict):
            return {}
        return {name: dict(cfg) for name, cfg in servers.items() if isinstance(cfg, dict)}

    def mcp_outputs(self, paths: ScopePaths, servers: Dict[str, Dict[str, Any]]) -> List[McpOutput]:
        copilot_servers = {}
        for name, cfg in servers.items():
            mapped = pick_keys(cfg, ["type", "url", "command", "args", "env", "tools"])
            if not isinstance(mapped.get("tools"), list):
                mapped["tools"] = ["*"]
            if not mapped.get("type"):
                mapped["type"] = "http" if mapped.get("url") else "local"
            copilot_servers[name] = mapped

        outputs = [McpOutput(path=self.mcp_path(paths), update=lambda _existing: {"mcpServers": copilot_servers})]
        if paths.is_global:
            outputs.append(
                McpOutput(
                    path=vscode_settings_path(paths.home_dir),
                    update=lambda existing: {**existing, "mcp.servers": copilot_servers},
                    owned=False,
                )
            )
        return outputs


adapter_registry.register(CopilotAdapter())
