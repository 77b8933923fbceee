"""Tests for the canonical agent, command, MCP and skill codecs."""

import pytest

from agent_loom.core.agents import agent_file_name, parse_agent_file, parse_agents_dir, serialize_agent
from agent_loom.core.commands import (
    match_command,
    normalize_command_selector,
    parse_command_file,
    parse_commands_dir,
    serialize_command,
)
from agent_loom.core.mcp import mcp_document, parse_mcp_document, resolve_for_provider
from agent_loom.core.models import CanonicalAgent, CanonicalCommand, Disabled, Enabled, decode_provider_key
from agent_loom.core.skills import parse_skills_dir
from agent_loom.errors import AmbiguousSelectorError, SelectorNotFoundError, ValidationError

from conftest import write_agent, write_command, write_skill


# =============================================================================
# AGENTS
# =============================================================================


def test_parse_agent(tmp_path):
    """Verify name, description, body and provider toggles are read."""
    path = write_agent(tmp_path, "reviewer", "Review code", "Look closely.\n", extra="cursor: false\nclaude:\n  model: opus\n")
    agent = parse_agent_file(path)

    assert agent.name == "reviewer"
    assert agent.description == "Review code"
    assert agent.body == "Look closely.\n"
    assert isinstance(agent.toggle_for("cursor"), Disabled)
    assert agent.toggle_for("claude") == Enabled({"model": "opus"})
    assert agent.toggle_for("gemini") == Enabled({})


def test_parse_agent_missing_description(tmp_path):
    """Verify an agent without a description is rejected."""
    path = tmp_path / "broken.md"
    path.write_text("---\nname: broken\n---\n\nBody\n")

    with pytest.raises(ValidationError, match="description"):
        parse_agent_file(path)


def test_parse_agent_without_frontmatter(tmp_path):
    """Verify a plain markdown file is not a valid agent."""
    path = tmp_path / "plain.md"
    path.write_text("# Just a heading\n")

    with pytest.raises(ValidationError, match="name"):
        parse_agent_file(path)


def test_agent_serialize_is_stable(tmp_path):
    """Verify parse -> serialize -> parse yields the same agent."""
    path = write_agent(tmp_path, "reviewer", "Review code", "Body text\n\nMore.\n", extra="codex:\n  model: o3\n")
    first = parse_agent_file(path)
    path.write_text(serialize_agent(first))
    second = parse_agent_file(path)

    assert second.frontmatter == first.frontmatter
    assert second.body == first.body


@pytest.mark.parametrize("body", ["Body", "Body\n\n", "\n\nBody\n", ""])
def test_agent_round_trip_any_body(tmp_path, body):
    """Verify serialize -> parse returns the same agent and bytes settle after one pass."""
    agent = CanonicalAgent(
        name="reviewer",
        description="Review code",
        body=body,
        frontmatter={"name": "reviewer", "description": "Review code"},
        source_path=tmp_path / "reviewer.md",
        file_name="reviewer.md",
    )
    path = tmp_path / "reviewer.md"
    path.write_text(serialize_agent(agent))
    parsed = parse_agent_file(path)

    assert parsed.body == agent.body
    assert parsed.frontmatter == agent.frontmatter
    assert serialize_agent(parsed) == path.read_text()


def test_parse_agents_dir_ignores_other_files(tmp_path):
    """Verify only *.md files are agents, sorted by file name."""
    write_agent(tmp_path, "zeta")
    write_agent(tmp_path, "alpha")
    (tmp_path / "notes.txt").write_text("ignored")

    assert [a.name for a in parse_agents_dir(tmp_path)] == ["alpha", "zeta"]
    assert parse_agents_dir(tmp_path / "missing") == []


def test_agent_file_name():
    assert agent_file_name("Code Reviewer") == "code-reviewer.md"
    assert agent_file_name("!!!") == "agent.md"


# =============================================================================
# COMMANDS
# =============================================================================


def test_command_without_frontmatter_is_verbatim(tmp_path):
    """Verify a plain command keeps its whole content as the body."""
    path = write_command(tmp_path, "ship.md", "Ship $ARGUMENTS\n")
    command = parse_command_file(path)

    assert command.frontmatter is None
    assert serialize_command(command) == "Ship $ARGUMENTS\n"


def test_command_with_frontmatter(tmp_path):
    """Verify front-section and provider toggles of a command."""
    path = write_command(tmp_path, "ship.md", "---\ndescription: Ship it\ngemini: false\n---\n\nShip\n")
    command = parse_command_file(path)

    assert command.frontmatter["description"] == "Ship it"
    assert isinstance(command.toggle_for("gemini"), Disabled)
    assert serialize_command(command) == "---\ndescription: Ship it\ngemini: false\n---\n\nShip\n"


@pytest.mark.parametrize("body", ["Ship it", "Ship it\n\n\n", "\nShip it\n"])
def test_command_round_trip_any_body(tmp_path, body):
    command = CanonicalCommand(
        file_name="ship.md",
        body=body,
        source_path=tmp_path / "ship.md",
        frontmatter={"description": "Ship"},
    )
    path = tmp_path / "ship.md"
    path.write_text(serialize_command(command))
    parsed = parse_command_file(path)

    assert parsed.body == command.body
    assert parsed.frontmatter == command.frontmatter
    assert serialize_command(parsed) == path.read_text()


def test_normalize_command_selector():
    assert normalize_command_selector("/Review.prompt.md") == "review"
    assert normalize_command_selector("deploy.mdc") == "deploy"


def test_match_command_by_stem(tmp_path):
    """Verify a selector matches by stem when the file name differs."""
    write_command(tmp_path, "review.md", "Review\n")
    write_command(tmp_path, "ship.mdc", "Ship\n")
    commands = parse_commands_dir(tmp_path)

    assert match_command(commands, "/ship").file_name == "ship.mdc"
    assert match_command(commands, "review.md").file_name == "review.md"


def test_match_command_ambiguous(tmp_path):
    """Verify two files with the same stem make a stem selector ambiguous."""
    write_command(tmp_path, "review.md", "A\n")
    write_command(tmp_path, "review.mdc", "B\n")
    commands = parse_commands_dir(tmp_path)

    with pytest.raises(AmbiguousSelectorError):
        match_command(commands, "review")
    assert match_command(commands, "review.mdc").file_name == "review.mdc"


def test_match_command_missing(tmp_path):
    write_command(tmp_path, "review.md", "A\n")

    with pytest.raises(SelectorNotFoundError, match="review.md"):
        match_command(parse_commands_dir(tmp_path), "deploy")


# =============================================================================
# MCP
# =============================================================================


def test_decode_provider_key():
    assert isinstance(decode_provider_key(False), Disabled)
    assert decode_provider_key({"a": 1}) == Enabled({"a": 1})
    assert decode_provider_key(None) == Enabled({})
    assert decode_provider_key(True) == Enabled({})


def test_mcp_stray_keys_fold_into_base():
    """Verify flat server objects are normalized into base."""
    servers = parse_mcp_document({"mcpServers": {"gh": {"command": "npx", "args": ["-y"]}}})

    assert servers["gh"].base == {"command": "npx", "args": ["-y"]}
    assert mcp_document(servers) == {
        "version": 1,
        "mcpServers": {"gh": {"base": {"command": "npx", "args": ["-y"]}}},
    }


def test_mcp_resolve_for_provider():
    """Verify overrides deep-merge onto base and false disables."""
    servers = parse_mcp_document({
        "version": 1,
        "mcpServers": {
            "gh": {
                "base": {"command": "npx", "env": {"A": "1"}},
                "providers": {"cursor": False, "claude": {"env": {"B": "2"}}},
            },
        },
    })

    assert resolve_for_provider(servers, "cursor") == {}
    assert resolve_for_provider(servers, "claude") == {"gh": {"command": "npx", "env": {"A": "1", "B": "2"}}}
    assert resolve_for_provider(servers, "gemini") == {"gh": {"command": "npx", "env": {"A": "1"}}}


def test_mcp_invalid_servers():
    with pytest.raises(ValidationError):
        parse_mcp_document({"mcpServers": {"gh": "not-an-object"}})


# =============================================================================
# SKILLS
# =============================================================================


def test_parse_nested_skills(tmp_path):
    write_skill(tmp_path, "clean-code")
    write_skill(tmp_path, "testing")
    (tmp_path / "not-a-skill").mkdir()

    assert [s.name for s in parse_skills_dir(tmp_path)] == ["clean-code", "testing"]


def test_parse_root_skill(tmp_path):
    """Verify a directory holding SKILL.md directly is one skill named by its front-section."""
    (tmp_path / "SKILL.md").write_text("---\nname: My Skill\n---\n\nBody\n")
    skills = parse_skills_dir(tmp_path)

    assert len(skills) == 1
    assert skills[0].name == "my-skill"
    assert skills[0].layout == "root"
