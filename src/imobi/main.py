"""Command-line dashboard for the property store."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import get_args

from pydantic import ValidationError

from imobi.config import Settings
from imobi.export import EmptyExportError, write_csv
from imobi.logging import configure_logging, get_logger
from imobi.models import FormStatus, Property, PropertyDraft, PropertyStatus, PropertyType
from imobi.query import PropertyFilter, SortField, compute_stats, query_properties
from imobi.service import PropertyService
from imobi.session import UserSession
from imobi.store import SqliteKeyValue, StoreError, first_snapshot, open_backend

logger = get_logger(__name__)

_SORT_FIELDS: tuple[str, ...] = get_args(SortField)


def _format_row(prop: Property) -> str:
    return " | ".join(
        [
            prop.id[:8],
            prop.code,
            prop.address,
            prop.neighborhood,
            prop.property_type.value,
            f"{prop.value:,.2f}",
            prop.status.value,
            prop.form_status.value,
            prop.collected_by,
        ]
    )


def _ask(prompt: str) -> bool:
    answer = input(f"{prompt} [s/N] ")
    return answer.strip().lower() in {"s", "sim", "y", "yes"}


def _always_yes(prompt: str) -> bool:
    return True


async def _with_service(
    settings: Settings,
    action: Callable[[PropertyService], Awaitable[int]],
) -> int:
    kv = SqliteKeyValue(settings.database_path)
    try:
        user = await UserSession(kv).current_user()
        backend = await open_backend(settings, user, kv=kv)
        try:
            return await action(PropertyService(backend))
        finally:
            await backend.close()
    finally:
        await kv.close()


async def run_session_command(settings: Settings, args: argparse.Namespace) -> int:
    kv = SqliteKeyValue(settings.database_path)
    try:
        session = UserSession(kv)
        if args.command == "login":
            user = await session.login(args.username)
            print(f"Logged in as {user}")
        elif args.command == "logout":
            await session.logout()
            print("Logged out")
        else:
            print(await session.current_user() or "(not logged in)")
        return 0
    finally:
        await kv.close()


async def run_list(service: PropertyService, args: argparse.Namespace) -> int:
    snapshot = await first_snapshot(service.backend)
    filters = PropertyFilter(search=args.search, status=args.status, category=args.category)
    rows = query_properties(snapshot, filters, args.sort, "asc" if args.asc else "desc")
    for prop in rows:
        print(_format_row(prop))
    print(f"{len(rows)} of {len(snapshot)} properties")
    return 0


async def run_stats(service: PropertyService, args: argparse.Namespace) -> int:
    stats = compute_stats(await first_snapshot(service.backend))
    for name, count in stats.model_dump().items():
        print(f"{name:>20}: {count}")
    return 0


async def run_add(service: PropertyService, args: argparse.Namespace) -> int:
    draft = PropertyDraft(
        code=args.code,
        address=args.address,
        neighborhood=args.neighborhood,
        property_type=args.type,
        value=args.value,
        description=args.description,
        note=args.note,
        status=args.status or PropertyStatus.AVAILABLE,
        collected_by=args.collected_by,
    )
    property_id = await service.create(draft)
    print(property_id)
    return 0


async def run_set_status(service: PropertyService, args: argparse.Namespace) -> int:
    await service.change_status(args.id, PropertyStatus(args.status))
    return 0


async def run_set_form(service: PropertyService, args: argparse.Namespace) -> int:
    notice = await service.change_form_status(args.id, FormStatus(args.form_status))
    if notice:
        print(notice)
    return 0


async def run_destructive(service: PropertyService, args: argparse.Namespace) -> int:
    confirm = _always_yes if args.yes else _ask
    if args.command == "delete":
        done = await service.delete(args.id, confirm)
    elif args.command == "clear":
        done = await service.clear_all(confirm)
    else:
        done = await service.restore_defaults(confirm)
    if not done:
        print("Cancelled")
    return 0


async def run_export(service: PropertyService, args: argparse.Namespace) -> int:
    snapshot = await first_snapshot(service.backend)
    filters = PropertyFilter(search=args.search, status=args.status, category=args.category)
    try:
        path = write_csv(query_properties(snapshot, filters), Path(args.output))
    except EmptyExportError as e:
        print(e)
        return 1
    print(path)
    return 0


async def run_watch(service: PropertyService, args: argparse.Namespace) -> int:
    def on_snapshot(snapshot: list[Property]) -> None:
        stats = compute_stats(snapshot)
        print(
            f"{stats.total} properties "
            f"({stats.residential} residential, {stats.commercial} commercial, "
            f"{stats.available} available)"
        )

    unsubscribe = service.subscribe(on_snapshot)
    try:
        await asyncio.sleep(args.seconds)
    finally:
        unsubscribe()
    return 0


_COMMANDS: dict[str, Callable[[PropertyService, argparse.Namespace], Awaitable[int]]] = {
    "list": run_list,
    "stats": run_stats,
    "add": run_add,
    "set-status": run_set_status,
    "set-form": run_set_form,
    "delete": run_destructive,
    "clear": run_destructive,
    "restore": run_destructive,
    "export": run_export,
    "watch": run_watch,
}


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--search", default="", help="Match code, address, neighborhood or agent")
    parser.add_argument("--status", default=None, help="Status label, or 'Todos'")
    parser.add_argument("--category", default=None, help="Residencial, Comercial or 'Todos'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Imobi - property listing dashboard")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Set the active user (selects the data partition)")
    login.add_argument("username")
    sub.add_parser("logout", help="Clear the active user")
    sub.add_parser("whoami", help="Show the active user")

    list_cmd = sub.add_parser("list", help="Show filtered and sorted properties")
    _add_filter_arguments(list_cmd)
    list_cmd.add_argument("--sort", choices=_SORT_FIELDS, default="last_updated_at")
    list_cmd.add_argument("--asc", action="store_true", help="Sort ascending")

    sub.add_parser("stats", help="Show dashboard counts")

    add = sub.add_parser("add", help="Create a property")
    add.add_argument("--code", required=True)
    add.add_argument("--address", required=True)
    add.add_argument("--neighborhood", required=True)
    add.add_argument("--type", required=True, choices=[t.value for t in PropertyType])
    add.add_argument("--value", required=True, type=float)
    add.add_argument("--description", default="")
    add.add_argument("--note", default="")
    add.add_argument("--status", choices=[s.value for s in PropertyStatus], default=None)
    add.add_argument("--collected-by", default=None)

    set_status = sub.add_parser("set-status", help="Quick status change")
    set_status.add_argument("id")
    set_status.add_argument("status", choices=[s.value for s in PropertyStatus])

    set_form = sub.add_parser("set-form", help="Change the application form status")
    set_form.add_argument("id")
    set_form.add_argument("form_status", choices=[f.value for f in FormStatus])

    delete = sub.add_parser("delete", help="Delete a property")
    delete.add_argument("id")
    for name, help_text in (
        ("clear", "Delete every property in the partition"),
        ("restore", "Replace the partition with the default data"),
    ):
        sub.add_parser(name, help=help_text)
    for name in ("delete", "clear", "restore"):
        sub.choices[name].add_argument("--yes", action="store_true", help="Skip confirmation")

    export = sub.add_parser("export", help="Write filtered properties to a CSV file")
    _add_filter_arguments(export)
    export.add_argument("--output", default=".", help="Directory for the CSV file")

    watch = sub.add_parser("watch", help="Print counts whenever the data changes")
    watch.add_argument("--seconds", type=float, default=60.0)

    return parser


async def run_command(settings: Settings, args: argparse.Namespace) -> int:
    if args.command in ("login", "logout", "whoami"):
        return await run_session_command(settings, args)
    action = _COMMANDS[args.command]
    return await _with_service(settings, lambda service: action(service, args))


def main() -> None:
    """Main entry point."""
    args = build_parser().parse_args()

    configure_logging(json_output=False, level=logging.DEBUG if args.debug else logging.WARNING)

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error("failed_to_load_settings", error=str(e))
        print(f"Error: Failed to load settings. {e}")
        sys.exit(1)

    if settings.log_json or settings.debug:
        configure_logging(
            json_output=settings.log_json,
            level=logging.DEBUG if (args.debug or settings.debug) else logging.WARNING,
        )

    try:
        code = asyncio.run(run_command(settings, args))
    except (StoreError, ValidationError, ValueError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}")
        sys.exit(1)
    except TimeoutError:
        logger.error("snapshot_timeout", command=args.command, backend=settings.backend)
        print("Error: timed out waiting for data from the backend")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
