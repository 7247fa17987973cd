from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from syncdock.adapters.files import CsvAccountFeed
from syncdock.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemySyncUnitOfWork,
    is_started,
    startup,
)
from syncdock.app import (
    build_application,
    masked,
    read_connector_properties,
    run_until_stopped,
    update_connector_properties,
)
from syncdock.config import configure_logging
from syncdock.domain.feeds import AccountFeedLoader
from syncdock.domain.model import CustomAction

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

COLLECTION_FLAGS = ("needs", "defects", "iterations")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronise records with external systems")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug messages")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def connector_parser(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("connector", help="Connector name, e.g. jira or redmine-prod")
        sub.add_argument("--vendor", help="Vendor binding when the name does not start with it")
        return sub

    connector_parser("run", "Start the connector and keep its schedule running")

    sync = connector_parser("sync", "Synchronise one registered root record now")
    sync.add_argument("root_id", type=int)

    connector_parser("reload-mappings", "Add newly offered remote keys to the mapping tables")
    connector_parser("resync-all", "Resynchronise every registered root record")

    register = connector_parser("register", "Register a root record and set its collections")
    register.add_argument("root_id", type=int)
    register.add_argument(
        "--create-project",
        action="store_true",
        help="Create the remote project before registering",
    )
    for flag in COLLECTION_FLAGS:
        register.add_argument(
            f"--{flag}",
            action=argparse.BooleanOptionalAction,
            default=None,
            help=f"Synchronise {flag}",
        )

    link = connector_parser("link", "Link an existing remote project to a root record")
    link.add_argument("root_id", type=int)
    link.add_argument("project_id")

    unlink = connector_parser("unlink", "Unlink a remote project and drop its records")
    unlink.add_argument("root_id", type=int)
    unlink.add_argument("project_id")

    withdraw = connector_parser("withdraw", "Withdraw the registration of a root record")
    withdraw.add_argument("root_id", type=int)

    projects = connector_parser("projects", "Search remote projects by name")
    projects.add_argument("term", nargs="?", default="")

    feed = subparsers.add_parser("load-accounts", help="Load user accounts from a CSV feed")
    feed.add_argument("path", type=Path)
    feed.add_argument("--feed", help="Feed name, by default the file name without suffix")
    feed.add_argument("--delimiter", default=",", help="Column separator")
    feed.add_argument(
        "--keep-missing",
        action="store_true",
        help="Leave accounts that are no longer listed active",
    )

    config = subparsers.add_parser("config", help="Stored connector configuration")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    config_set = config_sub.add_parser("set", help="Set keys; an empty value removes the key")
    config_set.add_argument("connector")
    config_set.add_argument("assignments", nargs="+", metavar="KEY=VALUE")
    config_show = config_sub.add_parser("show", help="Show the stored keys")
    config_show.add_argument("connector")

    return parser.parse_args(list(argv))


def _parse_assignments(assignments: Sequence[str]) -> dict[str, str]:
    changes: dict[str, str] = {}
    for assignment in assignments:
        key, separator, value = assignment.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {assignment!r}")
        changes[key.strip()] = value.strip()
    return changes


def _requested_flags(args: argparse.Namespace) -> dict[str, bool]:
    return {
        flag: getattr(args, flag) for flag in COLLECTION_FLAGS if getattr(args, flag) is not None
    }


def _run_config_command(args: argparse.Namespace, changes: dict[str, str]) -> None:
    if not is_started():
        startup()
    if args.config_command == "set":
        update_connector_properties(
            args.connector, changes, unit_of_work_factory=SqlAlchemySyncUnitOfWork
        )
        return
    values = read_connector_properties(
        args.connector, unit_of_work_factory=SqlAlchemySyncUnitOfWork
    )
    for key, value in masked(values).items():
        print(f"{key}={value}")  # noqa: T201


def _run_feed_command(args: argparse.Namespace) -> None:
    if not is_started():
        startup()
    feed = CsvAccountFeed(args.path, delimiter=args.delimiter, feed_name=args.feed)
    loader = AccountFeedLoader(
        SqlAlchemySyncUnitOfWork, deactivate_missing=not args.keep_missing
    )
    loader.load(feed)


def _run_connector_command(args: argparse.Namespace) -> None:
    application = build_application(args.connector, vendor=args.vendor)
    connector = application.connector
    dispatcher = application.dispatcher

    if args.command == "run":
        run_until_stopped(application, threading.Event())
    elif args.command == "sync":
        summary = dispatcher.trigger(CustomAction.TRIGGER_LOAD, args.root_id)
        log.info("Synchronisation of root record %s finished: %s", args.root_id, summary)
    elif args.command == "reload-mappings":
        tables = dispatcher.trigger(CustomAction.RELOAD_MAPPINGS)
        log.info("Mapping tables reloaded: %s", tables)
    elif args.command == "resync-all":
        report = dispatcher.trigger(CustomAction.RESYNC_ALL)
        log.info("Resync finished: %s", report)
    elif args.command == "register":
        registration = connector.registration()
        if args.create_project:
            registration.create_project(args.root_id)
        elif not registration.is_registered(args.root_id):
            raise ValueError(  # noqa: TRY301
                f"Root record {args.root_id} has no project yet; link one or pass --create-project"
            )
        state = registration.update_flags(args.root_id, **_requested_flags(args))
        log.info("Registration of root record %s: %s", args.root_id, state)
    elif args.command == "link":
        state = connector.registration().link_project(args.root_id, args.project_id)
        log.info("Registration of root record %s: %s", args.root_id, state)
    elif args.command == "unlink":
        connector.registration().unlink_project(args.root_id, args.project_id)
    elif args.command == "withdraw":
        connector.registration().withdraw(args.root_id)
    elif args.command == "projects":
        for project in connector.registration().search_projects(args.term):
            print(f"{project.external_id}\t{project.key or ''}\t{project.name}")  # noqa: T201
    else:
        raise ValueError(f"Unsupported command: {args.command}")  # noqa: TRY301


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    changes: dict[str, str] = {}
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        if parsed_args.command == "config" and parsed_args.config_command == "set":
            changes = _parse_assignments(parsed_args.assignments)
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "config":
            _run_config_command(parsed_args, changes)
        elif parsed_args.command == "load-accounts":
            _run_feed_command(parsed_args)
        else:
            _run_connector_command(parsed_args)
    except Exception:
        log.exception("Fatal error in the %s command", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
