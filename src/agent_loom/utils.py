import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

# Configure module logger
logger = logging.getLogger("agent_loom")


# ANSI colors
class Colors:
    HEADER = "\033[95m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BOLD = "\033[1m"
    ENDC = "\033[0m"


# =============================================================================
# CONSOLE OUTPUT
# =============================================================================


def print_success(text: str) -> None:
    """Print success message."""
    print(f"  {Colors.GREEN}✓{Colors.ENDC} {text}")


def print_error(text: str) -> None:
    """Print error message."""
    print(f"  {Colors.RED}✗ {text}{Colors.ENDC}")


def print_info(text: str) -> None:
    """Print info message."""
    print(f"  ℹ {text}")


def print_warning(text: str) -> None:
    """Print warning message."""
    print(f"  {Colors.YELLOW}⚠ {text}{Colors.ENDC}")


# =============================================================================
# NAMING
# =============================================================================

_RE_SLUG_INVALID = re.compile(r"[^a-z0-9_-]+")
_RE_SLUG_DASHES = re.compile(r"-+")


def slugify(value: str) -> str:
    """Lowercase, dash-separated identifier safe for file names (max 80 chars)."""
    slug = _RE_SLUG_INVALID.sub("-", value.strip().lower())
    slug = _RE_SLUG_DASHES.sub("-", slug).strip("-")
    return slug[:80]


def normalize_selector_list(values: Optional[Iterable[str]]) -> List[str]:
    """Trim, lowercase, dedupe and sort selectors so lists compare as sets."""
    if not values:
        return []
    return sorted({v.strip().lower() for v in values if v and v.strip()})


# =============================================================================
# CONTENT UTILITIES
# =============================================================================

_RE_FRONTMATTER = re.compile(r"^---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)


def extract_yaml_frontmatter(content: str) -> tuple[Optional[Dict], str]:
    """Extract YAML frontmatter from markdown content.

    Returns ``(frontmatter, body)``. ``frontmatter`` is None when the content
    has no front-section or the section is not a YAML mapping.
    """
    match = _RE_FRONTMATTER.match(content)
    if not match:
        return None, content

    try:
        frontmatter = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return None, content

    body = content[match.end():]
    if frontmatter is None:
        return {}, body
    if not isinstance(frontmatter, dict):
        return None, content
    return frontmatter, body


def markdown_body(text: str) -> str:
    """Body as it is stored after a frontmatter block: trimmed, one trailing newline."""
    text = text.strip()
    return f"{text}\n" if text else ""


def build_markdown(frontmatter: Dict[str, Any], body: str) -> str:
    """Render ``---\\n<yaml>\\n---\\n\\n<body>`` ending with exactly one newline."""
    fm_str = yaml.dump(frontmatter, default_flow_style=False, allow_unicode=True, sort_keys=False).rstrip("\n")
    text = markdown_body(body)
    if text:
        return f"---\n{fm_str}\n---\n\n{text}"
    return f"---\n{fm_str}\n---\n"


def normalize_body(text: str) -> str:
    """Normalize body text for equality checks."""
    return text.replace("\r\n", "\n").strip()


def hash_content(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` onto a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


# =============================================================================
# FILE UTILITIES
# =============================================================================


def read_json_if_exists(path: Path) -> Optional[Any]:
    """Load JSON from ``path``; None when the file does not exist."""
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def write_text_atomic(path: Path, content: str) -> None:
    """Write text through a temp file in the same directory, then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    logger.debug("Wrote %s", path)


def write_json_atomic(path: Path, payload: Any) -> None:
    write_text_atomic(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def write_text_if_changed(path: Path, content: str) -> bool:
    """Write only when bytes differ. Returns True when the file changed."""
    if path.exists() and path.read_text(encoding="utf-8") == content:
        return False
    write_text_atomic(path, content)
    return True


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_remove(path: Path) -> bool:
    """Remove a file, symlink or directory tree. Returns False when nothing existed."""
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def list_files(root: Path) -> List[Path]:
    """All regular files under ``root``, sorted by relative POSIX path."""
    if not root.is_dir():
        return []
    files = [p for p in root.rglob("*") if p.is_file()]
    return sorted(files, key=lambda p: p.relative_to(root).as_posix())


def directories_are_equal(left: Path, right: Path) -> bool:
    """Compare two trees by relative file names and byte content."""
    left_files = list_files(left)
    right_files = list_files(right)
    left_rel = [p.relative_to(left).as_posix() for p in left_files]
    right_rel = [p.relative_to(right).as_posix() for p in right_files]
    if left_rel != right_rel:
        return False
    return all(a.read_bytes() == b.read_bytes() for a, b in zip(left_files, right_files))


def is_subpath(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False
