"""
Import sources: parsing the source argument, preparing a local checkout and
discovering entity locations inside it.
"""

import hashlib
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..errors import SourceDiscoveryError, SourceNotFoundError
from ..utils import list_files, logger
from .skills import SKILL_FILE

_RE_GITHUB_SLUG = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

# Discovery order: the first existing location wins
AGENT_SOURCE_DIRS = ("agents", ".agents/agents", ".github/agents")
COMMAND_SOURCE_DIRS = (".agents/commands", "commands", "prompts", ".github/prompts")
MCP_SOURCE_FILES = (".agents/mcp.json", "mcp.json")
SKILL_SOURCE_DIRS = (".agents/skills", "skills")


@dataclass(frozen=True)
class SourceSpec:
    source: str
    source_type: str  # local | github | git
    clone_url: Optional[str] = None


@dataclass
class PreparedSource:
    spec: SourceSpec
    import_root: Path
    resolved_commit: str
    requested_ref: Optional[str] = None
    subdir: Optional[str] = None
    cleanup: Callable[[], None] = lambda: None


def parse_source_spec(source: str, cwd: Optional[Path] = None) -> SourceSpec:
    """Classify ``source`` as a local path, a git URL or a GitHub ``owner/repo``."""
    raw = source.strip()
    if not raw:
        raise SourceDiscoveryError("Source must not be empty.")

    cwd = Path(cwd or Path.cwd())
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = cwd / candidate

    explicit_local = raw.startswith((".", "/", "~")) or re.match(r"^[A-Za-z]:[\\/]", raw)
    if explicit_local or candidate.exists():
        return SourceSpec(source=str(candidate.resolve()), source_type="local")

    if raw.startswith(("http://", "https://", "git@", "ssh://")) or raw.endswith(".git"):
        return SourceSpec(source=raw, source_type="git", clone_url=raw)

    if _RE_GITHUB_SLUG.match(raw):
        return SourceSpec(source=raw, source_type="github", clone_url=f"https://github.com/{raw}.git")

    raise SourceDiscoveryError(f"Unsupported source: {source}")


def _run_git(args, cwd: Optional[Path] = None) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd else None,
            check=True,
            capture_output=True,
        )
    except FileNotFoundError as e:
        raise SourceDiscoveryError("git is required to import remote sources.") from e
    except subprocess.CalledProcessError as e:
        raise SourceDiscoveryError(f"git {' '.join(args)} failed: {e.stderr.decode().strip()}") from e
    return result.stdout.decode().strip()


def local_revision(root: Path) -> str:
    """``git rev-parse HEAD`` for git checkouts, else a hash of the file tree."""
    try:
        result = subprocess.run(
            ["git", "-C", str(root), "rev-parse", "HEAD"],
            check=True,
            capture_output=True,
        )
        return result.stdout.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        pass

    digest = hashlib.sha256()
    for path in list_files(root):
        if ".git" in path.relative_to(root).parts:
            continue
        digest.update(path.relative_to(root).as_posix().encode("utf-8"))
        digest.update(b"\0")
        digest.update(path.read_bytes())
        digest.update(b"\0")
    return f"local-{digest.hexdigest()}"


def prepare_source(
    source: str,
    ref: Optional[str] = None,
    subdir: Optional[str] = None,
    cwd: Optional[Path] = None,
) -> PreparedSource:
    """Materialize ``source`` as a local directory with a resolved revision."""
    spec = parse_source_spec(source, cwd)

    if spec.source_type == "local":
        root = Path(spec.source)
        if not root.is_dir():
            raise SourceNotFoundError(f"Source directory does not exist: {spec.source}")
        import_root = _apply_subdir(root, subdir)
        return PreparedSource(
            spec=spec,
            import_root=import_root,
            resolved_commit=local_revision(root),
            requested_ref=ref,
            subdir=subdir,
        )

    checkout = Path(tempfile.mkdtemp(prefix="agent-loom-"))

    def cleanup() -> None:
        shutil.rmtree(checkout, ignore_errors=True)

    try:
        logger.debug("Cloning %s into %s", spec.clone_url, checkout)
        if ref:
            _run_git(["clone", spec.clone_url, str(checkout)])
            _run_git(["checkout", ref], cwd=checkout)
        else:
            _run_git(["clone", "--depth", "1", spec.clone_url, str(checkout)])
        commit = _run_git(["rev-parse", "HEAD"], cwd=checkout)
        import_root = _apply_subdir(checkout, subdir)
    except BaseException:
        cleanup()
        raise

    return PreparedSource(
        spec=spec,
        import_root=import_root,
        resolved_commit=commit,
        requested_ref=ref,
        subdir=subdir,
        cleanup=cleanup,
    )


def _apply_subdir(root: Path, subdir: Optional[str]) -> Path:
    if not subdir:
        return root
    target = (root / subdir).resolve()
    if not target.is_dir():
        raise SourceNotFoundError(f"Subdir does not exist in source: {subdir}")
    return target


# =============================================================================
# DISCOVERY
# =============================================================================


def _first_dir(root: Path, candidates) -> Optional[Path]:
    for relative in candidates:
        candidate = root / relative
        if candidate.is_dir():
            return candidate
    return None


def discover_agents_dir(root: Path) -> Optional[Path]:
    return _first_dir(root, AGENT_SOURCE_DIRS)


def discover_commands_dir(root: Path) -> Optional[Path]:
    return _first_dir(root, COMMAND_SOURCE_DIRS)


def discover_mcp_file(root: Path) -> Optional[Path]:
    for relative in MCP_SOURCE_FILES:
        candidate = root / relative
        if candidate.is_file():
            return candidate
    return None


def discover_skills_dir(root: Path) -> Optional[Path]:
    """Skills directory, or ``root`` itself when it holds a ``SKILL.md``."""
    found = _first_dir(root, SKILL_SOURCE_DIRS)
    if found is not None:
        return found
    if (root / SKILL_FILE).is_file():
        return root
    return None
