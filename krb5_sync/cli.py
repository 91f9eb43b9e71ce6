from pathlib import Path
from typing import Annotated, Optional, TypedDict

import typer
from anystore.cli import ErrorHandler
from anystore.io import smart_open
from anystore.logging import configure_logging
from rich.console import Console

from krb5_sync import __version__
from krb5_sync.core.settings import Settings
from krb5_sync.delivery import Delivery, get_delivery
from krb5_sync.exceptions import ConfigError, DeliveryError
from krb5_sync.model import Operation, Principal
from krb5_sync.operation import ReplayOperation, SyncOperation
from krb5_sync.storage import QueueStore

settings = Settings()
cli = typer.Typer(
    no_args_is_help=True,
    pretty_exceptions_enable=settings.debug,
    name="krb5-sync",
)
queue = typer.Typer(no_args_is_help=True, pretty_exceptions_enable=settings.debug)
cli.add_typer(queue, name="queue", help="Inspect and replay the change queue")
console = Console(stderr=True)


class State(TypedDict):
    settings: Settings


STATE: State = {"settings": settings}


class Context(ErrorHandler):
    def __enter__(self) -> Settings:
        super().__enter__()
        return STATE["settings"]


def require_delivery(settings: Settings) -> Delivery:
    deliver = get_delivery(settings)
    if deliver is None:
        raise ConfigError("configuration setting delivery missing")
    return deliver


def check_actions(enable: bool, disable: bool, password: str | None) -> None:
    if enable and disable:
        raise typer.BadParameter("cannot specify both -d and -e")
    if not enable and not disable and password is None:
        raise typer.BadParameter("no action specified")


@cli.callback(invoke_without_command=True)
def cli_krb5_sync(
    version: Annotated[Optional[bool], typer.Option(..., help="Show version")] = False,
    settings: Annotated[
        Optional[bool], typer.Option(..., help="Show current settings")
    ] = False,
    queue_dir: Annotated[
        str | None, typer.Option(..., help="Queue directory (overrides settings)")
    ] = None,
):
    if version:
        console.print(__version__)
        raise typer.Exit()
    overrides = {}
    if queue_dir:
        overrides["queue_dir"] = queue_dir
    settings_ = Settings(**overrides)
    configure_logging(level=settings_.log_level)
    STATE["settings"] = settings_
    if settings:
        console.print(settings_)
        raise typer.Exit()


@cli.command("sync")
def cli_sync(
    user: Annotated[Optional[str], typer.Argument(help="Principal name")] = None,
    enable: Annotated[bool, typer.Option("-e", "--enable", help="Enable")] = False,
    disable: Annotated[bool, typer.Option("-d", "--disable", help="Disable")] = False,
    password: Annotated[
        Optional[str], typer.Option("-p", "--password", help="Set password")
    ] = None,
    file: Annotated[
        Optional[Path], typer.Option("-f", "--file", help="Replay this queue file")
    ] = None,
):
    """
    Push a change directly to Active Directory, or replay a single queue file
    (`-f`) and remove it on success
    """
    if file is not None:
        if user is not None:
            raise typer.BadParameter("Usage: krb5-sync sync -f <file>")
        if enable or disable or password is not None:
            raise typer.BadParameter("must specify queue file or action, not both")
        with Context() as settings:
            replay = ReplayOperation(
                require_delivery(settings), default_realm=settings.realm
            )
            entry = replay.replay(file)
            console.print(f"Replayed `{entry.operation}` from {entry.name}")
        return

    if user is None:
        raise typer.BadParameter("Usage: krb5-sync sync [-d | -e] [-p <pass>] <user>")
    check_actions(enable, disable, password)
    with Context() as settings:
        deliver = require_delivery(settings)
        account = Principal.parse(user, settings.realm).unparse()
        if password is not None:
            deliver(account, "password", password)
            console.print(f"AD password change for {user} succeeded")
        if enable or disable:
            operation: Operation = "enable" if enable else "disable"
            deliver(account, operation)
            console.print(f"AD status change for {user} succeeded")


@cli.command("propagate")
def cli_propagate(
    user: Annotated[str, typer.Argument(help="Principal name")],
    enable: Annotated[bool, typer.Option("-e", "--enable", help="Enable")] = False,
    disable: Annotated[bool, typer.Option("-d", "--disable", help="Disable")] = False,
    password: Annotated[
        Optional[str], typer.Option("-p", "--password", help="Set password")
    ] = None,
):
    """
    Propagate a change, queuing it if a change is already pending, queuing is
    forced or delivery fails
    """
    check_actions(enable, disable, password)
    with Context() as settings:
        operation = SyncOperation(settings, deliver=get_delivery(settings))
        principal = Principal.parse(user, settings.realm)
        if password is not None:
            result = operation.chpass(principal, password)
            console.print(f"password: {result.value}")
        if enable or disable:
            result = operation.status(principal, enable)
            console.print(f"status: {result.value}")


@queue.command("ls")
def cli_queue_ls(
    out_uri: Annotated[str, typer.Option("-o")] = "-",
):
    """
    List pending queue entries
    """
    with Context() as settings:
        store = QueueStore(settings.queue_dir)
        names = (f"{name}\n".encode() for name in store.iterate_entries())
        with smart_open(out_uri, "wb") as o:
            o.writelines(names)


@queue.command("check")
def cli_queue_check(
    user: Annotated[str, typer.Argument(help="Principal name")],
    operation: Annotated[
        str, typer.Option(help="Operation (password, enable, disable)")
    ] = "password",
    domain: Annotated[str, typer.Option(help="Downstream system")] = "ad",
):
    """
    Show whether a change for this user and operation is pending
    """
    with Context() as settings:
        store = QueueStore(settings.queue_dir)
        conflict = store.has_conflict(user, domain, operation)
        console.print(str(conflict).lower())


@queue.command("drain")
def cli_queue_drain():
    """
    Replay all pending queue entries, keeping those that fail
    """
    with Context() as settings:
        replay = ReplayOperation(
            require_delivery(settings),
            default_realm=settings.realm,
            queue=QueueStore(settings.queue_dir),
        )
        result = replay.drain()
        console.print(
            f"replayed: {len(result.replayed)}, failed: {len(result.failed)}, "
            f"skipped: {len(result.skipped)}"
        )
        if not result.ok:
            raise DeliveryError(f"{len(result.failed)} queued change(s) failed")
