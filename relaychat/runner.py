"""
CLI entrypoint for relaychat.
"""
import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from relaychat.client.connection_manager import ConnectionManager
from relaychat.client.session_state import SessionState
from relaychat.client.transport import WebSocketTransport
from relaychat.client.visualizer import Visualizer
from relaychat.shared.config import settings
from relaychat.shared.endpoint import resolve_endpoint

app = typer.Typer(help="relaychat: terminal client for the chat relay")
console = Console()

# Swappable so the commands can be driven without a live relay
TRANSPORT_FACTORY = WebSocketTransport

def configure_logging(level: str | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.LOG_LEVEL).upper())

def make_manager(name: str, origin: str | None) -> ConnectionManager:
    try:
        return ConnectionManager(name, origin=origin, transport_factory=TRANSPORT_FACTORY)
    except ValueError as e:
        typer.echo(f"Invalid name: {e}", err=True)
        raise typer.Exit(2)

@app.command()
def resolve(
    name: str = typer.Argument(..., help="Display name to connect as"),
    origin: str = typer.Option(None, help="Origin URL the client runs from (default: settings ORIGIN)"),
):
    """Print the WebSocket endpoint a name would connect to."""
    typer.echo(resolve_endpoint(name, origin))

@app.command()
def watch(
    name: str = typer.Option(..., help="Display name to connect as"),
    origin: str = typer.Option(None, help="Origin URL the client runs from"),
    duration: float = typer.Option(60.0, help="Duration to stay connected in seconds"),
):
    """Connect and show the session on a live dashboard."""
    configure_logging("WARNING")
    visualizer = Visualizer(make_manager(name, origin))
    try:
        asyncio.run(visualizer.run(duration))
    except KeyboardInterrupt:
        pass

async def send_once(manager: ConnectionManager, message: str, timeout: float) -> bool:
    async with manager:
        try:
            await manager.state.wait_for(lambda s: s.is_connected, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"identity={manager.identity} event=timeout reason='not connected after {timeout}s'")
            return False
        if not manager.send(message):
            return False
        try:
            await manager.flush(timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"identity={manager.identity} event=timeout reason='frame not written after {timeout}s'")
            return False
        return True

@app.command()
def send(
    message: str = typer.Argument(..., help="Text to send"),
    name: str = typer.Option(..., help="Display name to send as"),
    origin: str = typer.Option(None, help="Origin URL the client runs from"),
    timeout: float = typer.Option(10.0, help="Seconds to wait for the connection"),
):
    """Connect, send one message and disconnect."""
    configure_logging()
    manager = make_manager(name, origin)
    if not asyncio.run(send_once(manager, message, timeout)):
        typer.echo("Message not sent.", err=True)
        raise typer.Exit(1)
    typer.echo(f"Sent as {name}.")

def print_new_messages(state: SessionState, printed: int) -> int:
    for m in state.messages[printed:]:
        ts = m.received_at.astimezone().strftime("%H:%M:%S")
        console.print(f"[cyan]{ts}[/] [magenta]{escape(m.author)}[/]: {escape(m.text)}")
    return len(state.messages)

async def chat_loop(manager: ConnectionManager) -> None:
    printed = 0
    last_connectivity = None

    def on_state(state: SessionState) -> None:
        nonlocal printed, last_connectivity
        if state.connectivity is not last_connectivity:
            last_connectivity = state.connectivity
            console.print(f"[dim]-- {state.connectivity.value}[/]")
        printed = print_new_messages(state, printed)

    manager.state.subscribe(on_state)
    async with manager:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line or line.strip() == "/quit":
                break
            if line.strip() and not manager.send(line):
                console.print("[red]not connected, message dropped[/]")

@app.command()
def chat(
    name: str = typer.Option(..., help="Display name to chat as"),
    origin: str = typer.Option(None, help="Origin URL the client runs from"),
):
    """Line-mode interactive chat. Type /quit or send EOF to leave."""
    configure_logging("WARNING")
    try:
        asyncio.run(chat_loop(make_manager(name, origin)))
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    app()
