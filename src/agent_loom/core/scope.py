"""Scope resolution and the canonical store layout."""

from pathlib import Path
from typing import Optional, Union

from ..errors import ValidationError
from ..prompts import CANCELLED, Cancelled, Prompter
from .models import ScopePaths, Settings

CANONICAL_DIRNAME = ".agents"


def build_scope_paths(scope: str, workspace_root: Path, home_dir: Optional[Path] = None) -> ScopePaths:
    """Derive every canonical path for ``scope`` from a single root."""
    if scope not in ("local", "global"):
        raise ValidationError(f"Unknown scope: {scope}")

    workspace_root = Path(workspace_root).resolve()
    home_dir = Path(home_dir or Path.home()).resolve()
    agents_root = (home_dir if scope == "global" else workspace_root) / CANONICAL_DIRNAME

    return ScopePaths(
        scope=scope,
        workspace_root=workspace_root,
        home_dir=home_dir,
        agents_root=agents_root,
        agents_dir=agents_root / "agents",
        commands_dir=agents_root / "commands",
        skills_dir=agents_root / "skills",
        mcp_path=agents_root / "mcp.json",
        lock_path=agents_root / "agents.lock.json",
        settings_path=agents_root / "settings.local.json",
        manifest_path=agents_root / ".sync-manifest.json",
    )


def resolve_scope(
    settings: Settings,
    prompter: Prompter,
    global_flag: bool = False,
    local_flag: bool = False,
    non_interactive: bool = False,
) -> Union[str, Cancelled]:
    """Pick the scope from flags, else prompt (defaulting to the last scope).

    Non-interactive runs without a flag use the global scope.
    """
    if global_flag and local_flag:
        raise ValidationError("Use either --global or --local, not both.")
    if global_flag:
        return "global"
    if local_flag:
        return "local"
    if non_interactive:
        return "global"

    default = settings.last_scope if settings.last_scope in ("local", "global") else "local"
    result = prompter.select(
        "Which scope should be used?",
        [
            ("Local (this project: ./.agents)", "local"),
            ("Global (your home directory: ~/.agents)", "global"),
        ],
        default=default,
    )
    if isinstance(result, Cancelled):
        return CANCELLED
    return result.value
