"""Canonical command markdown codec and selector helpers."""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import AmbiguousSelectorError, SelectorNotFoundError
from ..utils import build_markdown, extract_yaml_frontmatter, slugify
from .models import CanonicalCommand, decode_provider_toggles

COMMAND_EXTENSIONS = (".md", ".mdc")

_RE_EXTENSION = re.compile(r"\.[^./]+$")


def parse_command_file(path: Path) -> CanonicalCommand:
    content = path.read_text(encoding="utf-8")
    frontmatter, body = extract_yaml_frontmatter(content)
    if frontmatter:
        return CanonicalCommand(
            file_name=path.name,
            body=body,
            source_path=path,
            frontmatter=frontmatter,
            toggles=decode_provider_toggles(frontmatter),
        )
    return CanonicalCommand(
        file_name=path.name,
        body=content,
        source_path=path,
        toggles=decode_provider_toggles(None),
    )


def parse_commands_dir(commands_dir: Path) -> List[CanonicalCommand]:
    if not commands_dir.is_dir():
        return []
    files = sorted(
        p for p in commands_dir.iterdir()
        if p.is_file() and p.suffix in COMMAND_EXTENSIONS
    )
    return [parse_command_file(p) for p in files]


def build_command_markdown(frontmatter: Optional[Dict[str, Any]], body: str) -> str:
    if not frontmatter:
        return body
    return build_markdown(frontmatter, body)


def serialize_command(command: CanonicalCommand) -> str:
    return build_command_markdown(command.frontmatter, command.body)


# =============================================================================
# SELECTORS
# =============================================================================


def strip_command_file_extension(file_name: str) -> str:
    if file_name.lower().endswith(".prompt.md"):
        return file_name[: -len(".prompt.md")]
    return _RE_EXTENSION.sub("", file_name)


def normalize_command_selector(value: str) -> str:
    """``/Review.prompt.md`` -> ``review``."""
    return strip_command_file_extension(value.strip().lstrip("/")).lower()


def command_extension(file_name: str) -> str:
    match = _RE_EXTENSION.search(file_name)
    return match.group(0) if match else ".md"


def match_command(commands: List[CanonicalCommand], selector: str) -> CanonicalCommand:
    """Resolve a selector by exact file name, then stem, then slug."""
    raw = selector.strip().lstrip("/").lower()
    normalized = normalize_command_selector(selector)

    for matcher in (
        lambda c: c.file_name.lower() == raw,
        lambda c: normalize_command_selector(c.file_name) == normalized,
        lambda c: slugify(strip_command_file_extension(c.file_name)) == slugify(normalized),
    ):
        matches = [c for c in commands if matcher(c)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            names = ", ".join(c.file_name for c in matches)
            raise AmbiguousSelectorError(f"Command selector is ambiguous: {selector} ({names})")

    available = ", ".join(c.file_name for c in commands) or "(none)"
    raise SelectorNotFoundError(
        f"Requested command(s) not found: {selector}. Available commands: {available}"
    )
