"""
revlink CLI entry point.

Usage:
    revlink [OPTIONS] [ADDRESS]

ADDRESS is the public relay endpoint as ``host:port`` (default
127.0.0.1:8080). The relay connects out to it, waits for a
``CONNECT <host:port> HTTP/1.1`` directive and bridges the named data
endpoint to it.
"""

from typing import Annotated

import typer
from rich.markup import escape

from revlink.cli.output import console, print_error, print_success, print_warning
from revlink.models.commands import Address
from revlink.models.enums import LogLevel
from revlink.relay.app import run as run_relay
from revlink.relay.config import config
from revlink.relay.exceptions import AddressError

app = typer.Typer(
    name="revlink",
    help="Reverse-tunnel relay",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool):
    if value:
        from revlink import __version__

        console.print(f"revlink v{__version__}")
        raise typer.Exit()


@app.command()
def main(
    address: Annotated[
        str,
        typer.Argument(
            help="Public relay endpoint (host:port)",
            envvar="REVLINK_PUBLIC_ADDRESS",
        ),
    ] = "127.0.0.1:8080",
    reconnect_interval: Annotated[
        float,
        typer.Option(
            "--reconnect-interval",
            "-r",
            min=0.0,
            help="Seconds to wait before reconnecting to the public endpoint",
        ),
    ] = 5.0,
    connect_timeout: Annotated[
        float | None,
        typer.Option(
            "--connect-timeout",
            "-t",
            min=0.0,
            help="Seconds to wait for a data endpoint connection (default: no limit)",
        ),
    ] = None,
    bus_capacity: Annotated[
        int,
        typer.Option("--bus-capacity", min=1, help="Queued commands per consumer"),
    ] = 32,
    read_limit: Annotated[
        int,
        typer.Option("--read-limit", min=1024, help="Longest accepted line in bytes"),
    ] = 64 * 1024,
    exclusive_dialing: Annotated[
        bool,
        typer.Option(
            "--exclusive-dialing/--no-exclusive-dialing",
            help="Ignore CONNECT while a data connection is still being dialed",
        ),
    ] = False,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", "-L", help="Log verbosity", case_sensitive=False),
    ] = LogLevel.INFO,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
):
    """
    Connect out to a public relay endpoint and tunnel one data session
    through it.
    """
    try:
        public_address = Address.parse(address)
    except AddressError:
        print_error(
            f"Public server address and port not valid: {escape(repr(address))}"
        )
        raise typer.Exit(1)

    config.PUBLIC_ADDRESS = str(public_address)
    config.RECONNECT_INTERVAL_SECONDS = reconnect_interval
    config.DATA_CONNECT_TIMEOUT_SECONDS = connect_timeout
    config.BUS_CAPACITY = bus_capacity
    config.READ_LIMIT = read_limit
    config.EXCLUSIVE_DIALING = exclusive_dialing
    config.LOG_LEVEL = log_level

    print_success(f"Relaying via {escape(str(public_address))}")
    console.print(f"[dim]Reconnect every {reconnect_interval:g}s[/dim]")
    if reconnect_interval == 0:
        print_warning("Reconnect interval is 0, failed connects are retried at once")
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    run_relay(config)


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
