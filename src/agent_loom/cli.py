import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .adapters import adapter_registry
from .core.lockfile import read_lockfile
from .core.models import ENTITY_TYPES, SELECTION_MODES, SYNC_TARGETS, ScopePaths, Settings
from .core.scope import build_scope_paths, resolve_scope
from .core.settings import global_settings_path, load_settings, normalize_providers, save_settings
from .core.sources import prepare_source
from .errors import AgentLoomError, CancelledError, ValidationError
from .prompts import Cancelled, Prompter, QuestionaryPrompter
from .services import (
    ImportRequest,
    collect_status,
    delete_by_name,
    delete_by_source,
    display_status,
    import_source,
    initialize_canonical_layout,
    migrate_provider_state,
    sync_all,
    update_sources,
)
from .services.delete_service import detect_name_matches
from .services.migration import format_migration_summary
from .services.sync_service import resolve_providers
from .utils import Colors, logger, print_error, print_info, print_success, print_warning


def _csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _unwrap(result):
    """Turn a cancelled prompt into the CLI's cancellation error."""
    if isinstance(result, Cancelled):
        raise CancelledError()
    return result


class _Context:
    """Resolved scope, settings and prompt mode for one invocation."""

    def __init__(self, args, prompter: Prompter):
        self.args = args
        self.prompter = prompter
        self.yes = getattr(args, "yes", False)
        self.non_interactive = getattr(args, "no_interactive", False) or not sys.stdin.isatty()
        self.home = Path.home()
        self.cwd = Path.cwd()

        global_settings = load_settings(global_settings_path(self.home))
        scope = _unwrap(resolve_scope(
            global_settings,
            prompter,
            global_flag=getattr(args, "global_scope", False),
            local_flag=getattr(args, "local_scope", False),
            non_interactive=self.non_interactive,
        ))
        self.paths: ScopePaths = build_scope_paths(scope, self.cwd, self.home)
        self.settings: Settings = load_settings(self.paths.settings_path)

    @property
    def providers(self) -> Optional[List[str]]:
        value = getattr(self.args, "providers", None)
        return normalize_providers(value) if value else None

    def persist_settings(self, settings: Settings) -> None:
        self.settings = settings
        save_settings(self.paths.settings_path, settings)
        global_path = global_settings_path(self.home)
        if global_path == self.paths.settings_path:
            return
        try:
            remembered = load_settings(global_path)
            remembered.last_scope = settings.last_scope
            save_settings(global_path, remembered)
        except (OSError, AgentLoomError) as e:
            logger.warning("Could not update %s: %s", global_path, e)


# =============================================================================
# COMMANDS
# =============================================================================


def _run_sync(ctx: _Context, target: str = "all", dry_run: bool = False, providers: Optional[List[str]] = None) -> None:
    summary = _unwrap(sync_all(
        ctx.paths,
        ctx.settings,
        ctx.prompter,
        providers=providers or ctx.providers,
        target=target,
        yes=ctx.yes,
        non_interactive=ctx.non_interactive,
        dry_run=dry_run,
    ))

    label = "Would sync" if dry_run else "Synced"
    print_success(f"{label} {len(summary.generated_files)} files for {', '.join(summary.providers)}")
    if dry_run:
        for file_path in summary.stale_files:
            print_info(f"Stale: {file_path}")
        return
    for file_path in summary.removed_files:
        print_info(f"Removed stale file {file_path}")
    ctx.persist_settings(summary.settings)


def cmd_init(ctx: _Context) -> None:
    print(f"{Colors.HEADER}🚀 Initializing {ctx.paths.agents_root}...{Colors.ENDC}")
    providers = ctx.providers
    if providers is None:
        providers = _unwrap(resolve_providers(ctx.settings, ctx.prompter, None, ctx.non_interactive or ctx.yes))

    ctx.persist_settings(initialize_canonical_layout(ctx.paths, ctx.settings, providers))
    print_success(f"Canonical layout ready ({', '.join(providers)})")

    if not ctx.args.no_migrate:
        summary = _unwrap(migrate_provider_state(
            ctx.paths,
            providers,
            ctx.prompter,
            yes=ctx.yes,
            non_interactive=ctx.non_interactive,
        ))
        for line in format_migration_summary(summary):
            print_info(line)

    if not ctx.args.no_sync:
        _run_sync(ctx, providers=providers)
    print(f"\n{Colors.GREEN}🎉 Initialization complete!{Colors.ENDC}")


def cmd_add(ctx: _Context) -> None:
    args = ctx.args
    entities = list(ENTITY_TYPES)
    if args.only:
        unknown = [e for e in args.only if e not in ENTITY_TYPES]
        if unknown:
            raise ValidationError(f"Unknown entity type: {', '.join(unknown)}. Use one of: {', '.join(ENTITY_TYPES)}")
        entities = [e for e in ENTITY_TYPES if e in args.only]

    request = ImportRequest(
        entities=entities,
        agents=args.agents,
        commands=args.commands,
        mcp_servers=args.mcp,
        skills=args.skills,
        selection_mode=args.selection_mode,
        rename=args.rename,
        yes=ctx.yes,
        non_interactive=ctx.non_interactive,
    )

    print(f"{Colors.CYAN}📥 Importing {args.source}...{Colors.ENDC}")
    prepared = prepare_source(args.source, ref=args.ref, subdir=args.subdir, cwd=ctx.cwd)
    try:
        summary = _unwrap(import_source(ctx.paths, prepared, request, ctx.prompter))
    finally:
        prepared.cleanup()

    for label, names in (
        ("agents", summary.imported_agents),
        ("commands", summary.imported_commands),
        ("MCP servers", summary.imported_mcp_servers),
        ("skills", summary.imported_skills),
    ):
        if names:
            print_success(f"Imported {len(names)} {label}: {', '.join(names)}")
    if summary.total == 0:
        print_warning("Nothing was imported.")

    if not args.no_sync:
        _run_sync(ctx, providers=ctx.providers or ctx.settings.default_providers)


def cmd_update(ctx: _Context) -> None:
    if not read_lockfile(ctx.paths).entries:
        print_warning(f"No imported sources recorded in {ctx.paths.lock_path}")
        return

    print(f"{Colors.CYAN}🔄 Updating imported sources...{Colors.ENDC}")
    summary = update_sources(ctx.paths, source=ctx.args.source, cwd=ctx.cwd)
    for source in summary.updated:
        print_success(f"Updated {source}")
    for source in summary.unchanged:
        print_info(f"{source} is up to date")

    if summary.updated and not ctx.args.no_sync:
        _run_sync(ctx, providers=ctx.providers or ctx.settings.default_providers)


def cmd_sync(ctx: _Context) -> None:
    print(f"{Colors.CYAN}🔄 Syncing {ctx.paths.agents_root}...{Colors.ENDC}")
    _run_sync(ctx, target=ctx.args.only, dry_run=ctx.args.dry_run)


def cmd_migrate(ctx: _Context) -> None:
    providers = ctx.providers or list(ctx.settings.default_providers)
    summary = _unwrap(migrate_provider_state(
        ctx.paths,
        providers,
        ctx.prompter,
        target=ctx.args.only,
        yes=ctx.yes,
        non_interactive=ctx.non_interactive,
        dry_run=ctx.args.dry_run,
    ))
    for line in format_migration_summary(summary):
        print_info(line)


def cmd_delete(ctx: _Context) -> None:
    args = ctx.args
    entities = [args.entity] if args.entity else list(ENTITY_TYPES)
    target = args.source or args.name

    by_source = bool(args.source) or any(
        e.source == target for e in read_lockfile(ctx.paths).entries
    )
    if not by_source and not args.entity and not detect_name_matches(ctx.paths, target):
        by_source = True

    if by_source:
        summary = delete_by_source(ctx.paths, target, entities)
    else:
        summary = _unwrap(delete_by_name(ctx.paths, target, ctx.prompter, entities, ctx.non_interactive))

    for removed in summary.removed:
        print_success(f"Deleted {removed}")
    if summary.dropped_entries:
        print_info(f"Dropped {summary.dropped_entries} lock entries")

    if not args.no_sync:
        _run_sync(ctx, providers=ctx.providers or ctx.settings.default_providers)


def cmd_status(ctx: _Context) -> None:
    display_status(collect_status(ctx.paths))


def cmd_list() -> None:
    print(f"{Colors.BLUE}📂 Supported providers:{Colors.ENDC}")
    for adapter in adapter_registry.all():
        info = adapter.info
        print(f"  - {Colors.YELLOW}{info.name}{Colors.ENDC}: {info.display_name} ({info.output_dir}/)")


# =============================================================================
# PARSER
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-loom",
        description="Agent Loom - one canonical store for agents, commands, MCP servers and skills",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    scope = argparse.ArgumentParser(add_help=False)
    scope.add_argument("--global", dest="global_scope", action="store_true", help="Use ~/.agents")
    scope.add_argument("--local", dest="local_scope", action="store_true", help="Use ./.agents")
    scope.add_argument("--yes", "-y", action="store_true", help="Accept overwrites without prompting")
    scope.add_argument("--no-interactive", action="store_true", help="Never prompt")
    scope.add_argument("--providers", type=_csv, default=None, help="Comma-separated providers")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    init_parser = subparsers.add_parser("init", parents=[scope], help="Create the canonical store and migrate")
    init_parser.add_argument("--no-migrate", action="store_true", help="Skip importing provider state")
    init_parser.add_argument("--no-sync", action="store_true", help="Skip the sync after init")

    add_parser = subparsers.add_parser("add", parents=[scope], help="Import from a local path, git URL or owner/repo")
    add_parser.add_argument("source", help="Source to import")
    add_parser.add_argument("--ref", default=None, help="Branch, tag or commit")
    add_parser.add_argument("--subdir", default=None, help="Subdirectory inside the source")
    add_parser.add_argument("--agents", type=_csv, default=None, help="Agent selectors")
    add_parser.add_argument("--commands", type=_csv, default=None, help="Command selectors")
    add_parser.add_argument("--mcp", type=_csv, default=None, help="MCP server names")
    add_parser.add_argument("--skills", type=_csv, default=None, help="Skill names")
    add_parser.add_argument("--only", type=_csv, default=None, help="Entity types to import")
    add_parser.add_argument("--selection-mode", choices=SELECTION_MODES, default=None, help="all or custom")
    add_parser.add_argument("--rename", default=None, help="New name for a single imported entity")
    add_parser.add_argument("--no-sync", action="store_true", help="Skip the sync after import")

    update_parser = subparsers.add_parser("update", parents=[scope], help="Re-import sources whose revision moved")
    update_parser.add_argument("source", nargs="?", default=None, help="Only update this source")
    update_parser.add_argument("--no-sync", action="store_true", help="Skip the sync after update")

    sync_parser = subparsers.add_parser("sync", parents=[scope], help="Render canonical state into providers")
    sync_parser.add_argument("--only", choices=SYNC_TARGETS, default="all", help="Entity type to sync")
    sync_parser.add_argument("--dry-run", action="store_true", help="Show what would change")

    migrate_parser = subparsers.add_parser("migrate", parents=[scope], help="Import provider-native state")
    migrate_parser.add_argument("--only", choices=SYNC_TARGETS, default="all", help="Entity type to migrate")
    migrate_parser.add_argument("--dry-run", action="store_true", help="Show what would change")

    delete_parser = subparsers.add_parser("delete", parents=[scope], help="Delete an entity or an imported source")
    delete_parser.add_argument("name", nargs="?", default=None, help="Entity name or source")
    delete_parser.add_argument("--source", default=None, help="Delete everything imported from this source")
    delete_parser.add_argument("--entity", choices=ENTITY_TYPES, default=None, help="Restrict to one entity type")
    delete_parser.add_argument("--no-sync", action="store_true", help="Skip the sync after delete")

    subparsers.add_parser("status", parents=[scope], help="Show canonical, lock and sync state")
    subparsers.add_parser("list", help="List supported providers")
    return parser


def main(argv: Optional[List[str]] = None):
    """CLI entry point."""
    try:
        _main_inner(argv)
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Cancelled.{Colors.ENDC}")
        sys.exit(130)
    except AgentLoomError as e:
        print_error(str(e))
        sys.exit(e.exit_code)


def _main_inner(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return
    if args.command == "list":
        cmd_list()
        return
    if args.command == "delete" and not (args.name or args.source):
        parser.error("delete requires a name or --source")

    ctx = _Context(args, QuestionaryPrompter())
    commands = {
        "init": cmd_init,
        "add": cmd_add,
        "update": cmd_update,
        "sync": cmd_sync,
        "migrate": cmd_migrate,
        "delete": cmd_delete,
        "status": cmd_status,
    }
    commands[args.command](ctx)


if __name__ == "__main__":
    main()
