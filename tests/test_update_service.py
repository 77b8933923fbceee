"""Tests for re-importing locked sources."""

import pytest

from agent_loom.core.agents import parse_agent_file
from agent_loom.core.lockfile import read_lockfile
from agent_loom.core.sources import prepare_source
from agent_loom.errors import SelectorNotFoundError
from agent_loom.prompts import NullPrompter
from agent_loom.services.importer import ImportRequest, import_source
from agent_loom.services.update_service import replay_request, update_sources

from conftest import write_agent


def _add(paths, source, **kwargs):
    request = ImportRequest(non_interactive=True, **kwargs)
    return import_source(paths, prepare_source(str(source)), request, NullPrompter())


def test_unchanged_source_is_skipped(local_paths, source_repo):
    _add(local_paths, source_repo)

    summary = update_sources(local_paths)

    assert summary.updated == []
    assert summary.unchanged == [str(source_repo.resolve())]


def test_update_picks_up_changes(local_paths, source_repo):
    _add(local_paths, source_repo)
    write_agent(source_repo / "agents", "reviewer", "Review code better", "Review harder.\n")

    summary = update_sources(local_paths)

    assert summary.updated == [str(source_repo.resolve())]
    assert parse_agent_file(local_paths.agents_dir / "reviewer.md").description == "Review code better"


def test_pinned_selection_is_stable(local_paths, source_repo):
    """Verify an {A, B} selection stays {A, B} after C appears upstream."""
    _add(local_paths, source_repo, entities=["agent"], agents=["reviewer", "planner"])
    write_agent(source_repo / "agents", "critic", "Criticise")

    update_sources(local_paths)

    assert sorted(p.name for p in local_paths.agents_dir.iterdir()) == ["planner.md", "reviewer.md"]
    entries = read_lockfile(local_paths).entries
    assert len(entries) == 1
    assert sorted(entries[0].requested_agents) == ["planner", "reviewer"]


def test_all_selection_tracks_new_entities(local_paths, source_repo):
    _add(local_paths, source_repo, entities=["agent"])
    write_agent(source_repo / "agents", "critic", "Criticise")

    update_sources(local_paths)

    assert (local_paths.agents_dir / "critic.md").exists()


def test_vanished_pinned_selector_fails(local_paths, source_repo):
    _add(local_paths, source_repo, entities=["agent"], agents=["planner"])
    (source_repo / "agents" / "planner.md").unlink()

    with pytest.raises(SelectorNotFoundError):
        update_sources(local_paths)


def test_update_filters_by_source(local_paths, source_repo, tmp_path):
    """Verify only the named source is prepared and cleanup always runs."""
    _add(local_paths, source_repo)
    prepared_sources = []
    cleaned = []

    def fake_prepare(source, ref=None, subdir=None, cwd=None):
        prepared = prepare_source(source, ref=ref, subdir=subdir, cwd=cwd)
        prepared_sources.append(source)
        prepared.cleanup = lambda: cleaned.append(source)
        return prepared

    update_sources(local_paths, source=str(tmp_path / "other"), prepare=fake_prepare)
    assert prepared_sources == []

    update_sources(local_paths, source=str(source_repo), prepare=fake_prepare)
    assert prepared_sources == [str(source_repo.resolve())]
    assert cleaned == prepared_sources


def test_replay_request_skips_empty_selections(local_paths, source_repo):
    _add(local_paths, source_repo, entities=["agent", "command"], agents=["reviewer"], selection_mode="all")
    entry = read_lockfile(local_paths).entries[0]
    entry.selected_source_commands = []

    request = replay_request(entry)

    assert request.entities == ["agent"]
    assert request.agents == ["reviewer"]
    assert request.yes and request.non_interactive
