"""Liftbridge command-line interface.

Administrative and data-plane commands for a Liftbridge cluster.

Usage:
    liftbridge-cli create --stream foo
    liftbridge-cli publish --stream foo --message bar --create-stream
    liftbridge-cli subscribe --stream foo
    liftbridge-cli --address 10.0.0.1:9292 metadata

Entry point configured in setup.py as 'liftbridge-cli'.
"""
import asyncio
from typing import Awaitable, List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import commands
from .config import settings
from .exceptions import LiftbridgeError
from .logging import bind_command, configure_logging, get_logger

app = typer.Typer(
    name="liftbridge-cli",
    help="Allows making requests to a Liftbridge server.",
    add_completion=False,
    no_args_is_help=True,
)

err_console = Console(stderr=True)
logger = get_logger(__name__)


def _stream_option():
    return typer.Option(settings.stream, "--stream", "-s", metavar="STREAM", help="use STREAM")


def _subject_option():
    return typer.Option(
        "", "--subject", "-u",
        show_default="same as the stream name",
        help="subject name to use when creating the stream",
    )


def _create_stream_option():
    return typer.Option(False, "--create-stream", "-c", help="create the stream if it doesn't exist")


def _split_partitions(values: Optional[List[str]]) -> List[int]:
    """Accept both -p 0 -p 2 and -p 0,2"""
    partitions = []
    for value in values or []:
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            try:
                partitions.append(int(item))
            except ValueError:
                raise typer.BadParameter(f"{item!r} is not a valid integer") from None
    return partitions


def _partitions_option():
    return typer.Option(
        None, "--partitions", "-p",
        callback=_split_partitions,
        help="targeted partitions (repeatable or comma-separated)",
    )


def _partition_option():
    return typer.Option(0, "--partition", "-p", help="targeted partition")


def _cursor_id_option():
    return typer.Option(settings.cursor_id, "--cursor-id", "-i", help="cursor id")


def _run(ctx: typer.Context, work: Awaitable, interruptible: bool = False) -> None:
    """
    Run a command coroutine; errors become one stderr line and exit code 1

    Ctrl-C ends an interruptible command (a subscription) cleanly; any other
    command exits 130.
    """
    bind_command(ctx.command.name)
    try:
        asyncio.run(work)
    except KeyboardInterrupt:
        if interruptible:
            logger.info("interrupted")
            return
        err_console.print("[red]Error:[/red] interrupted", soft_wrap=True)
        raise typer.Exit(code=130)
    except LiftbridgeError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}", soft_wrap=True)
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    address: str = typer.Option(
        settings.address, "--address", "-a",
        metavar="ADDRESS",
        help="connect to the endpoint specified by ADDRESS",
    ),
):
    """Allows making requests to a Liftbridge server."""
    configure_logging(json_output=settings.json_logs, log_level=settings.log_level)
    ctx.obj = address


@app.command()
def create(
    ctx: typer.Context,
    stream: str = _stream_option(),
    subject: str = _subject_option(),
):
    """Creates a stream"""
    _run(ctx, commands.create(ctx.obj, stream, subject))


@app.command()
def subscribe(
    ctx: typer.Context,
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
):
    """Subscribes to a stream"""
    _run(ctx, commands.subscribe(ctx.obj, stream, subject, create_stream, echo=typer.echo), interruptible=True)


@app.command("subscribe-activity-stream")
def subscribe_activity_stream(ctx: typer.Context):
    """Subscribes to the activity stream"""
    _run(ctx, commands.subscribe_activity_stream(ctx.obj, echo=typer.echo), interruptible=True)


@app.command()
def publish(
    ctx: typer.Context,
    message: str = typer.Option(
        settings.message, "--message", "-m", metavar="VALUE",
        help="send a message with a string VALUE",
    ),
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
    ack_policy: str = typer.Option(
        settings.ack_policy, "--ack-policy", "-k",
        help='ack policy, valid values are "leader", "all" or "none"',
    ),
):
    """Publishes to a stream"""
    _run(ctx, commands.publish(ctx.obj, stream, message, subject, ack_policy, create_stream))


@app.command("set-readonly")
def set_readonly(
    ctx: typer.Context,
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
    readonly: bool = typer.Option(True, "--readonly/--no-readonly", "-r", help="set the stream as readonly"),
    partitions: Optional[List[str]] = _partitions_option(),
):
    """Sets a stream as readonly"""
    _run(ctx, commands.set_readonly(ctx.obj, stream, subject, readonly, partitions, create_stream))


@app.command()
def pause(
    ctx: typer.Context,
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
    resume_all: bool = typer.Option(
        False, "--resume-all", "-r",
        help="resume all partitions if one of them is published to instead of resuming only that partition",
    ),
    partitions: Optional[List[str]] = _partitions_option(),
):
    """Pauses a stream"""
    _run(ctx, commands.pause(ctx.obj, stream, subject, resume_all, partitions, create_stream))


@app.command()
def delete(
    ctx: typer.Context,
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
):
    """Deletes a stream"""
    _run(ctx, commands.delete(ctx.obj, stream, subject, create_stream))


@app.command()
def metadata(ctx: typer.Context):
    """Fetches metadata"""
    _run(ctx, commands.metadata(ctx.obj, echo=typer.echo))


@app.command("partition-metadata")
def partition_metadata(
    ctx: typer.Context,
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
    partition: int = _partition_option(),
):
    """Fetches a partition's metadata"""
    _run(ctx, commands.partition_metadata(
        ctx.obj, stream, partition, subject, create_stream, echo=typer.echo,
    ))


@app.command("set-cursor")
def set_cursor(
    ctx: typer.Context,
    create_stream: bool = _create_stream_option(),
    stream: str = _stream_option(),
    subject: str = _subject_option(),
    cursor_id: str = _cursor_id_option(),
    partition: int = _partition_option(),
    offset: int = typer.Option(0, "--offset", "-o", help="partition offset"),
):
    """Sets a cursor's offset"""
    _run(ctx, commands.set_cursor(ctx.obj, stream, cursor_id, partition, offset, subject, create_stream))


@app.command("fetch-cursor")
def fetch_cursor(
    ctx: typer.Context,
    stream: str = _stream_option(),
    cursor_id: str = _cursor_id_option(),
    partition: int = _partition_option(),
):
    """Fetches a cursor's offset"""
    _run(ctx, commands.fetch_cursor(ctx.obj, stream, cursor_id, partition, echo=typer.echo))


ALIASES = [
    ("c", create),
    ("s", subscribe),
    ("sas", subscribe_activity_stream),
    ("p", publish),
    ("r", set_readonly),
    ("u", pause),
    ("d", delete),
    ("m", metadata),
    ("t", partition_metadata),
    ("e", set_cursor),
    ("f", fetch_cursor),
]

for _alias, _command in ALIASES:
    app.command(_alias, hidden=True)(_command)


def main():
    app()


if __name__ == "__main__":
    main()
