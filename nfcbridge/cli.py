"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer

from nfcbridge import __version__
from nfcbridge.core.config_loader import load_settings
from nfcbridge.core.dispatcher import select_reader
from nfcbridge.core.errors import NfcBridgeError
from nfcbridge.core.host import serve
from nfcbridge.core.model import CardDetectedEvent, WatchEvent, WatchSettings
from nfcbridge.core.watch import CardWatchLoop
from nfcbridge.readers.pcsc import PCSCReaderAccess

app = typer.Typer(help=f"NFC Reader Native Messaging Host {__version__}")

_TROUBLESHOOTING = """\
Troubleshooting:
  1. Check if reader is connected: lsusb | grep -i acr
  2. Check if pcscd is running: systemctl status pcscd
  3. Restart pcscd: sudo systemctl restart pcscd
  4. Check permissions: sudo usermod -aG pcscd $USER
  5. Install ccid driver: sudo apt install libccid pcscd"""


def _settings(ctx: typer.Context) -> WatchSettings:
    return load_settings(ctx.obj).settings


def _build_access(settings: WatchSettings) -> PCSCReaderAccess:
    return PCSCReaderAccess(absence_poll_s=settings.absence_poll_s)


def _run_bridge(ctx: typer.Context) -> None:
    try:
        settings = _settings(ctx)
        serve(
            _build_access(settings),
            typer.get_binary_stream("stdin"),
            typer.get_binary_stream("stdout"),
            settings=settings,
        )
    except NfcBridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
) -> None:
    """Bridge browser native messaging to PC/SC NFC readers.

    Without a command, runs as a native messaging host on stdin/stdout.
    """
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
    ctx.obj = config
    if ctx.invoked_subcommand is None:
        _run_bridge(ctx)


@app.command("list-readers")
def list_readers(ctx: typer.Context) -> None:
    """List all available NFC readers."""
    try:
        names = _build_access(_settings(ctx)).list_readers()
    except NfcBridgeError as exc:
        typer.echo(f"Error accessing smart card readers: {exc}", err=True)
        typer.echo(_TROUBLESHOOTING, err=True)
        raise typer.Exit(code=1) from None

    if not names:
        typer.echo("No readers found.", err=True)
        typer.echo(_TROUBLESHOOTING, err=True)
        raise typer.Exit(code=1)

    for index, name in enumerate(names):
        typer.echo(f"{index}: {name}")


@app.command("listen")
def listen(
    ctx: typer.Context,
    reader_index: int = typer.Argument(..., help="Index from list-readers"),
) -> None:
    """Listen for cards on the specified reader."""
    try:
        settings = _settings(ctx)
        access = _build_access(settings)
        reader = select_reader(access.list_readers(), reader_index)
    except NfcBridgeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    def _print_event(event: WatchEvent) -> None:
        if isinstance(event, CardDetectedEvent):
            typer.echo(f"Card detected - UID: {event.uid} ({event.uid_type})")
        else:
            typer.echo(f"Error: {event.message}", err=True)

    loop = CardWatchLoop(access, reader, 1, _print_event, settings=settings)
    typer.echo(f"Listening for NFC cards on reader: {reader.name}")
    typer.echo("Press Ctrl+C to stop")
    try:
        loop.run()
    except KeyboardInterrupt:
        loop.stop()
        typer.echo("Stopped listening")
        return

    if loop.gave_up:
        typer.echo(f"Stopped after {loop.consecutive_errors} consecutive reader errors", err=True)
        raise typer.Exit(code=1)


@app.command("bridge")
def bridge(ctx: typer.Context) -> None:
    """Run as a native messaging host on stdin/stdout."""
    _run_bridge(ctx)


app.command("native-messaging", hidden=True)(bridge)


@app.command("help")
def show_help(ctx: typer.Context) -> None:
    """Show this help message."""
    typer.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())


def run(argv: list[str] | None = None) -> None:
    args = list(sys.argv[1:] if argv is None else argv)
    # Browsers launch native hosts with the caller's origin as the only argument.
    if args and args[0].startswith("chrome-extension://"):
        args = []
    app(args=args, prog_name="nfcbridge")


if __name__ == "__main__":
    run()
