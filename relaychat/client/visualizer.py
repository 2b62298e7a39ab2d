"""
MODULE OVERVIEW:
The Rich Terminal Dashboard.

WHAT IS HAPPENING HERE:
We use Rich to render one ConnectionManager's SessionState live. The dashboard
is just another observer: it subscribes to the state, keeps a short timeline of
connectivity changes and redraws the Layout a few times per second.
It never mutates anything; it only reads.
"""

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.markup import escape
from collections import deque
from datetime import datetime
import asyncio

from relaychat.client.connection_manager import ConnectionManager
from relaychat.client.session_state import SessionState
from relaychat.shared.models import Connectivity

STATUS_COLORS = {
    Connectivity.CONNECTED: "green",
    Connectivity.CONNECTING: "yellow",
    Connectivity.DISCONNECTED: "red",
}

class Visualizer:
    def __init__(self, manager: ConnectionManager, feed_size: int = 15):
        self.manager = manager
        self.feed_size = feed_size
        self.timeline = deque(maxlen=5)
        self._last_connectivity: Connectivity | None = None

    def on_state(self, state: SessionState):
        if state.connectivity is not self._last_connectivity:
            self._last_connectivity = state.connectivity
            ts = datetime.now().strftime("%H:%M:%S")
            suffix = f" ({escape(state.last_error)})" if state.last_error else ""
            self.timeline.appendleft(f"[{ts}] State: {state.connectivity.value}{suffix}")

    def generate_layout(self) -> Layout:
        state = self.manager.state
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline"),
            Layout(name="info")
        )

        # Header
        color = STATUS_COLORS[state.connectivity]
        layout["header"].update(Panel(
            f"[{color} bold]Identity: {escape(state.identity)} | Status: {state.connectivity.value}[/]",
            style=color
        ))

        # Feed Table
        table = Table(title="Messages", expand=True)
        table.add_column("#", justify="right", style="dim", no_wrap=True)
        table.add_column("Time", justify="left", style="cyan", no_wrap=True)
        table.add_column("Author", style="magenta")
        table.add_column("Text", style="green")

        for m in state.messages[-self.feed_size:]:
            author_style = "bold" if m.author == state.identity else ""
            table.add_row(
                str(m.id),
                m.received_at.astimezone().strftime("%H:%M:%S"),
                f"[{author_style}]{escape(m.author)}[/]" if author_style else escape(m.author),
                escape(m.text)
            )

        layout["left"].update(Panel(table, title="Feed"))

        # Stats
        stats = state.stats
        stats_text = (
            f"Frames Received: {stats['frames_received']}\n"
            f"Frames Dropped: {stats['frames_dropped']}\n"
            f"Messages Sent: {stats['messages_sent']}\n"
            f"Reconnects: {stats['reconnect_count']}"
        )
        layout["stats"].update(Panel(stats_text, title="Session Stats"))

        # Timeline
        timeline_text = "\n".join(self.timeline)
        layout["timeline"].update(Panel(timeline_text, title="Timeline"))

        # Info
        info = (
            f"Endpoint: {self.manager.url or '-'}\n"
            f"Last error: {escape(state.last_error or '-')}\n"
            f"Reconnect pending: {'yes' if self.manager.reconnect_pending else 'no'}"
        )
        layout["info"].update(Panel(info, title="Connection"))

        return layout

    async def run(self, duration_s: float):
        unsubscribe = self.manager.state.subscribe(self.on_state)
        self.on_state(self.manager.state)
        self.manager.start()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration_s
        try:
            with Live(self.generate_layout(), refresh_per_second=4) as live:
                while loop.time() < deadline:
                    live.update(self.generate_layout())
                    await asyncio.sleep(0.25)
        finally:
            unsubscribe()
            await self.manager.aclose()
