"""
Command Line Interface for sockstun.

Provides commands for tunneling stdin/stdout over a SOCKS5 CONNECT,
sending a datagram through a UDP relay, and checking that a proxy accepts
our credentials.

Built with Typer for automatic tab completion.
"""

import asyncio
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .address import Endpoint
from .client import Socks5Client
from .config import PasswordAuth
from .core.config import Settings, get_settings
from .core.logging import setup_logging
from .errors import Socks5Error
from .negotiation import close_quietly, negotiate
from .tunnel import Socks5Tunnel

console = Console()
err_console = Console(stderr=True)

# Create the main app
app = typer.Typer(
    name="sockstun",
    help="sockstun - SOCKS5 Tunnel Client",
    add_completion=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool):
    if value:
        console.print(f"sockstun version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[bool, typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit.")] = False,
    config: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to configuration file")] = None,
    proxy_host: Annotated[Optional[str], typer.Option("--proxy-host", "-H", help="Proxy host")] = None,
    proxy_port: Annotated[Optional[int], typer.Option("--proxy-port", "-P", min=1, max=65535, help="Proxy port")] = None,
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Proxy username")] = None,
    password: Annotated[Optional[str], typer.Option("--password", "-p", help="Proxy password")] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")] = None,
):
    """
    sockstun - SOCKS5 Tunnel Client

    Routes TCP streams and UDP datagrams through a SOCKS5 proxy.
    """
    settings = get_settings(config)

    # Apply CLI overrides
    if proxy_host:
        settings.proxy.host = proxy_host
    if proxy_port:
        settings.proxy.port = proxy_port
    if username is not None:
        settings.proxy.username = username
    if password is not None:
        settings.proxy.password = password
    if log_level:
        settings.log.level = log_level.upper()

    try:
        settings.to_client_config()
    except ValueError as e:
        raise typer.BadParameter(str(e))

    setup_logging(settings.log)
    ctx.obj = settings


def _run(coro) -> None:
    """Run a command coroutine, turning proxy failures into exit codes."""
    try:
        asyncio.run(coro)
    except Socks5Error as e:
        err_console.print(f"[red]Proxy error: {e}[/red]")
        raise typer.Exit(1)
    except OSError as e:
        err_console.print(f"[red]Connection error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def connect(
    ctx: typer.Context,
    target_host: Annotated[str, typer.Argument(help="Target hostname or IP address")],
    target_port: Annotated[int, typer.Argument(min=0, max=65535, help="Target port")],
):
    """Open a TCP tunnel and pipe stdin/stdout through it (stdin must be a pipe or terminal)."""
    _run(_connect(ctx.obj, target_host, target_port))


async def _connect(settings: Settings, target_host: str, target_port: int):
    """Async implementation of connect command."""
    client = Socks5Client(settings.to_client_config())
    tunnel = await client.connect(target_port, target_host)
    err_console.print(f"[green]Tunnel open to {tunnel.remote_address} via {client.config.proxy_address}[/green]")

    async with tunnel:
        upload = asyncio.create_task(_pump_stdin(tunnel))
        try:
            while data := await tunnel.read():
                sys.stdout.buffer.write(data)
                sys.stdout.buffer.flush()
        finally:
            upload.cancel()


async def _pump_stdin(tunnel: Socks5Tunnel):
    """Copy stdin into the tunnel, then half-close it."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    while data := await reader.read(Socks5Tunnel.MAX_BUFFER_SIZE):
        await tunnel.write(data)
    tunnel.close_write()


@app.command()
def udp(
    ctx: typer.Context,
    target_host: Annotated[str, typer.Argument(help="Target hostname or IP address")],
    target_port: Annotated[int, typer.Argument(min=0, max=65535, help="Target port")],
    message: Annotated[str, typer.Argument(help="Datagram payload (UTF-8)")],
    bind_host: Annotated[str, typer.Option("--bind-host", "-b", help="Local address to bind the UDP socket to")] = "0.0.0.0",
    bind_port: Annotated[int, typer.Option("--bind-port", min=0, max=65535, help="Local UDP port (0 = any)")] = 0,
    timeout: Annotated[float, typer.Option("--timeout", "-t", help="Seconds to wait for a reply")] = 5.0,
):
    """Send one datagram through a UDP relay and print the reply."""
    _run(_udp(ctx.obj, target_host, target_port, message, bind_host, bind_port, timeout))


async def _udp(
    settings: Settings,
    target_host: str,
    target_port: int,
    message: str,
    bind_host: str,
    bind_port: int,
    timeout: float,
):
    """Async implementation of udp command."""
    client = Socks5Client(settings.to_client_config())
    relay = client.listen_datagram(bind_host, bind_port)

    async def exchange():
        await relay.send(message.encode("utf-8"), Endpoint(target_host, target_port))
        return await relay.receive()

    try:
        payload, source = await asyncio.wait_for(exchange(), timeout=timeout)
    except asyncio.TimeoutError:
        err_console.print(f"[yellow]No reply within {timeout:g}s[/yellow]")
        raise typer.Exit(1)
    finally:
        await relay.close()

    console.print(Panel(
        payload.decode("utf-8", errors="replace"),
        title=f"{len(payload)} bytes from {source} via {relay.relay_endpoint}",
        border_style="green"
    ))


@app.command()
def check(ctx: typer.Context):
    """Check that the proxy accepts a SOCKS5 handshake with the configured credentials."""
    _run(_check(ctx.obj))


async def _check(settings: Settings):
    """Async proxy check implementation."""
    config = settings.to_client_config()
    console.print(f"[cyan]Negotiating with {config.proxy_address}...[/cyan]")

    _, writer = await negotiate(config)
    await close_quietly(writer)

    auth = "username/password offered" if isinstance(config.auth, PasswordAuth) else "no authentication"
    console.print(Panel(
        f"[bold green]Handshake Successful[/bold green]\n\n"
        f"Proxy: [cyan]{config.proxy_address}[/cyan]\n"
        f"Authentication: [cyan]{auth}[/cyan]",
        title="Proxy Status",
        border_style="green"
    ))


@app.command()
def init(
    ctx: typer.Context,
    output: Annotated[Path, typer.Option("--output", "-o", help="Output path for configuration file")] = Path("config/config.yaml"),
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite an existing file")] = False,
):
    """Write the current settings to a configuration file."""
    if output.exists() and not force:
        if not typer.confirm(f"Configuration file {output} already exists. Overwrite?"):
            raise typer.Abort()

    ctx.obj.save_to_yaml(output)
    console.print(f"[green]Configuration file created: {output}[/green]")


# Entry point for the CLI
def cli():
    """Main entry point."""
    app()


if __name__ == "__main__":
    cli()
