"""Shared fixtures for tests."""

import json
from pathlib import Path

import pytest

from agent_loom import adapters  # noqa: F401
from agent_loom.core.scope import build_scope_paths
from agent_loom.prompts import CANCELLED, Choice, Prompter


class ScriptedPrompter(Prompter):
    """Answers prompts from a queue. ``None`` in the queue means cancel."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    def _next(self, kind, message):
        self.calls.append((kind, message))
        if not self.answers:
            raise AssertionError(f"Unexpected {kind} prompt: {message}")
        answer = self.answers.pop(0)
        return CANCELLED if answer is None else Choice(answer)

    def select(self, message, options, default=None):
        return self._next("select", message)

    def multiselect(self, message, options, initial=None):
        return self._next("multiselect", message)

    def text(self, message, default=""):
        return self._next("text", message)


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def home(tmp_path):
    root = tmp_path / "home"
    root.mkdir()
    return root


@pytest.fixture
def local_paths(workspace, home):
    return build_scope_paths("local", workspace, home)


@pytest.fixture
def global_paths(workspace, home):
    return build_scope_paths("global", workspace, home)


@pytest.fixture
def prompter():
    return ScriptedPrompter()


def write_agent(directory: Path, name: str, description: str = "An agent", body: str = "Do the work.\n", extra: str = "") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.md"
    path.write_text(f"---\nname: {name}\ndescription: {description}\n{extra}---\n\n{body}", encoding="utf-8")
    return path


def write_command(directory: Path, file_name: str, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / file_name
    path.write_text(content, encoding="utf-8")
    return path


def write_skill(directory: Path, name: str, body: str = "Use this skill.\n") -> Path:
    skill_dir = directory / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(f"---\nname: {name}\n---\n\n{body}", encoding="utf-8")
    return skill_dir


def write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def source_repo(tmp_path):
    """A local import source with two agents, one command, one MCP server and a skill."""
    root = tmp_path / "source"
    write_agent(root / "agents", "reviewer", "Review code", "Review the diff.\n")
    write_agent(root / "agents", "planner", "Plan work", "Write a plan.\n")
    write_command(root / "commands", "ship.md", "Ship $ARGUMENTS now.\n")
    write_json(root / "mcp.json", {"mcpServers": {"github": {"command": "npx", "args": ["-y", "gh-mcp"]}}})
    write_skill(root / "skills", "clean-code")
    return root
