"""
Display formatting for 'agent-loom status' output.
Separated from collection logic for testability.
"""

from agent_loom.services.status_service import ScopeStatus
from agent_loom.utils import Colors


def display_status(status: ScopeStatus) -> None:
    """Print formatted status dashboard."""

    # Scope header
    print(f"\n{Colors.BOLD}📍 Scope:{Colors.ENDC}   {status.scope} ({status.agents_root})")

    # Canonical content
    if status.initialized:
        counts = status.canonical_counts
        print(f"{Colors.BOLD}📦 Canonical:{Colors.ENDC} "
              f"{counts.get('agent', 0)} agents, "
              f"{counts.get('command', 0)} commands, "
              f"{counts.get('mcp', 0)} MCP servers, "
              f"{counts.get('skill', 0)} skills")
    else:
        print(f"{Colors.BOLD}📦 Canonical:{Colors.ENDC} "
              f"{Colors.RED}✗ not initialized (run 'agent-loom init'){Colors.ENDC}")

    # Sources
    print(f"{Colors.BOLD}🔗 Sources:{Colors.ENDC}")
    if not status.source_statuses:
        print(f"   {Colors.YELLOW}⚠ No imported sources{Colors.ENDC}")
    for source in status.source_statuses:
        commit = source.resolved_commit[:12] or "unknown"
        print(f"   {Colors.GREEN}✓{Colors.ENDC} {source.source:<30} "
              f"{source.source_type:<7} {commit:<12} "
              f"({source.imported_count} entities, imported {source.freshness})")

    # Providers
    print(f"{Colors.BOLD}🖥  Providers:{Colors.ENDC}")
    for provider in status.provider_statuses:
        if provider.synced:
            if provider.is_stale:
                symbol = f"{Colors.YELLOW}⚠{Colors.ENDC}"
                note = " (stale, run 'agent-loom sync')"
            else:
                symbol = f"{Colors.GREEN}✓{Colors.ENDC}"
                note = ""
            print(f"   {symbol} {provider.name:<10} {provider.output_dir:<10} "
                  f"({provider.file_count} files){note}")
        else:
            symbol = f"{Colors.RED}✗{Colors.ENDC}"
            print(f"   {symbol} {provider.name:<10} not synced")

    # Manifest
    manifest = ", ".join(f"{entity}={count}" for entity, count in status.manifest_counts.items())
    print(f"{Colors.BOLD}🧾 Manifest:{Colors.ENDC} {manifest}")

    # MCP
    if status.mcp_server_names:
        print(f"{Colors.BOLD}🔌 MCP:{Colors.ENDC} {', '.join(status.mcp_server_names)}")
    else:
        print(f"{Colors.BOLD}🔌 MCP:{Colors.ENDC} {Colors.YELLOW}⚠ No MCP servers{Colors.ENDC}")

    print()  # Trailing newline
