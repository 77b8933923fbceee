"""
Services: the orchestrators behind each CLI command.

Each service handles one flow: import, update, sync, migrate, delete, status.
"""

from agent_loom.services.delete_service import delete_by_name, delete_by_source
from agent_loom.services.importer import ImportRequest, import_source
from agent_loom.services.migration import initialize_canonical_layout, migrate_provider_state
from agent_loom.services.status_display import display_status
from agent_loom.services.status_service import collect_status
from agent_loom.services.sync_service import sync_all
from agent_loom.services.update_service import update_sources

__all__ = [
    "ImportRequest",
    "import_source",
    "update_sources",
    "sync_all",
    "migrate_provider_state",
    "initialize_canonical_layout",
    "delete_by_name",
    "delete_by_source",
    "collect_status",
    "display_status",
]
