"""Canonical agent markdown codec."""

from pathlib import Path
from typing import Any, Dict, List

from ..errors import ValidationError
from ..utils import build_markdown, extract_yaml_frontmatter, slugify
from .models import ALL_PROVIDERS, CanonicalAgent, decode_provider_toggles


def agent_file_name(name: str) -> str:
    return f"{slugify(name) or 'agent'}.md"


def parse_agent_file(path: Path) -> CanonicalAgent:
    content = path.read_text(encoding="utf-8")
    frontmatter, body = extract_yaml_frontmatter(content)
    if frontmatter is None:
        frontmatter = {}

    for field_name in ("name", "description"):
        value = frontmatter.get(field_name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"Invalid frontmatter in {path}: missing `{field_name}`.")

    name = frontmatter["name"].strip()
    description = frontmatter["description"].strip()
    frontmatter = dict(frontmatter, name=name, description=description)

    return CanonicalAgent(
        name=name,
        description=description,
        body=body,
        frontmatter=frontmatter,
        source_path=path,
        file_name=path.name,
        toggles=decode_provider_toggles(frontmatter),
    )


def parse_agents_dir(agents_dir: Path) -> List[CanonicalAgent]:
    """Parse every ``*.md`` agent in ``agents_dir`` (sorted by file name)."""
    if not agents_dir.is_dir():
        return []
    files = sorted(p for p in agents_dir.iterdir() if p.is_file() and p.suffix == ".md")
    return [parse_agent_file(p) for p in files]


def build_agent_markdown(frontmatter: Dict[str, Any], body: str) -> str:
    return build_markdown(frontmatter, body)


def serialize_agent(agent: CanonicalAgent) -> str:
    return build_agent_markdown(agent.frontmatter, agent.body)


def shared_frontmatter(frontmatter: Dict[str, Any]) -> Dict[str, Any]:
    """Front-section keys that are not provider override blocks."""
    return {k: v for k, v in frontmatter.items() if k not in ALL_PROVIDERS}
