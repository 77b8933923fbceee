"""Tests for the provider adapter registry."""

import pytest

from agent_loom import adapters  # noqa: F401
from agent_loom.core.adapter import adapter_registry
from agent_loom.core.models import ALL_PROVIDERS
from agent_loom.errors import ValidationError


def test_all_adapters_registered():
    """Verify every supported provider has an adapter, in canonical order."""
    assert adapter_registry.names() == ALL_PROVIDERS
    assert len(adapter_registry.all()) == 6


def test_get_adapter_case_insensitive():
    """Verify registry.get('Claude') works."""
    adapter = adapter_registry.get("Claude")

    assert adapter is not None
    assert adapter.info.name == "claude"


def test_get_unknown_adapter():
    """Verify unknown names return None."""
    assert adapter_registry.get("windsurf") is None


def test_require_unknown_adapter_raises():
    """Verify require() rejects unknown providers."""
    with pytest.raises(ValidationError):
        adapter_registry.require("windsurf")


def test_adapter_has_info():
    """Verify each adapter has name, display_name, output_dir."""
    for adapter in adapter_registry.all():
        info = adapter.info

        assert info.name
        assert info.display_name
        assert info.output_dir.startswith(".")


def test_only_codex_is_folded():
    """Verify codex is the one provider keeping agents inside a shared document."""
    folded = [a.name for a in adapter_registry.all() if a.folded]
    assert folded == ["codex"]


def test_only_copilot_rewrites_arguments():
    """Verify only copilot has an argument placeholder."""
    placeholders = {a.name: a.argument_placeholder for a in adapter_registry.all()}
    assert placeholders.pop("copilot") == "${input:args}"
    assert all(value is None for value in placeholders.values())
