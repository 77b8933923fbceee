"""
Agent Loom - one canonical ``.agents/`` store for AI coding assistants.

Agents, commands, skills and MCP servers are written once and synced to:
- Cursor (.cursor/)
- Claude (.claude/, .mcp.json)
- Codex (.codex/config.toml)
- OpenCode (.opencode/)
- Gemini (.gemini/)
- GitHub Copilot (.github/, .vscode/)
"""

__version__ = "1.0.0"

# Trigger adapter auto-registration on import
from agent_loom import adapters  # noqa: F401

__all__ = [
    "adapters",
    "cli",
    "core",
    "prompts",
    "services",
    "utils",
]
