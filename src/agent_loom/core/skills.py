"""Canonical skill bundles (a directory holding ``SKILL.md`` plus assets)."""

import shutil
from pathlib import Path
from typing import List

from ..utils import extract_yaml_frontmatter, slugify
from .models import CanonicalSkill

SKILL_FILE = "SKILL.md"

# Supporting directories copied alongside a root-level SKILL.md
ROOT_SKILL_ARTIFACT_DIRS = ("references", "assets", "scripts", "templates", "examples")


def normalize_skill_selector(value: str) -> str:
    return slugify(value.strip().rstrip("/"))


def parse_skills_dir(skills_dir: Path) -> List[CanonicalSkill]:
    """Nested ``<name>/SKILL.md`` bundles, or a single root ``SKILL.md``."""
    if not skills_dir.is_dir():
        return []

    nested = [
        CanonicalSkill(name=child.name, source_dir=child, skill_file=child / SKILL_FILE)
        for child in sorted(skills_dir.iterdir(), key=lambda p: p.name)
        if child.is_dir() and (child / SKILL_FILE).is_file()
    ]
    if nested:
        return nested

    root_file = skills_dir / SKILL_FILE
    if root_file.is_file():
        frontmatter, _ = extract_yaml_frontmatter(root_file.read_text(encoding="utf-8"))
        name = ""
        if frontmatter and isinstance(frontmatter.get("name"), str):
            name = slugify(frontmatter["name"])
        return [
            CanonicalSkill(
                name=name or slugify(skills_dir.name) or "skill",
                source_dir=skills_dir,
                skill_file=root_file,
                layout="root",
            )
        ]
    return []


def copy_skill(skill: CanonicalSkill, dest_dir: Path) -> None:
    """Replace ``dest_dir`` with the skill bundle."""
    if dest_dir.is_symlink() or dest_dir.is_file():
        dest_dir.unlink()
    elif dest_dir.exists():
        shutil.rmtree(dest_dir)

    if skill.layout == "nested":
        shutil.copytree(skill.source_dir, dest_dir)
        return

    dest_dir.mkdir(parents=True)
    shutil.copy2(skill.skill_file, dest_dir / SKILL_FILE)
    for artifact in ROOT_SKILL_ARTIFACT_DIRS:
        source = skill.source_dir / artifact
        if source.is_dir():
            shutil.copytree(source, dest_dir / artifact)


def stage_skill(skill: CanonicalSkill, staging_root: Path) -> Path:
    """Materialize a skill under ``staging_root`` so it compares like a nested bundle."""
    if skill.layout == "nested":
        return skill.source_dir
    staged = staging_root / skill.name
    copy_skill(skill, staged)
    return staged
