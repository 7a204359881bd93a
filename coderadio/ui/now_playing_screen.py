"""Terminal now-playing screen with a live progress line."""

import threading
import logging
from typing import Optional

from pubsub import pub
from rich.console import Console, RenderableType
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from .. import __version__
from ..models.metadata import NowPlayingState
from ..models.station import Station
from ..services.publisher import TRACK_CHANGED_TOPIC
from ..services.supervisor import PlaybackSupervisor
from ..utils import format_listeners, format_progress_info, format_volume

logger = logging.getLogger(__name__)

LOGO = """
 ██████╗ ██████╗ ██████╗ ███████╗    ██████╗  █████╗ ██████╗ ██╗ ██████╗
██╔════╝██╔═══██╗██╔══██╗██╔════╝    ██╔══██╗██╔══██╗██╔══██╗██║██╔═══██╗
██║     ██║   ██║██║  ██║█████╗      ██████╔╝███████║██║  ██║██║██║   ██║
██║     ██║   ██║██║  ██║██╔══╝      ██╔══██╗██╔══██║██║  ██║██║██║   ██║
╚██████╗╚██████╔╝██████╔╝███████╗    ██║  ██║██║  ██║██████╔╝██║╚██████╔╝
 ╚═════╝ ╚═════╝ ╚═════╝ ╚══════╝    ╚═╝  ╚═╝╚═╝  ╚═╝╚═════╝ ╚═╝ ╚═════╝"""


def render_progress_line(
    state: Optional[NowPlayingState],
    volume: Optional[int],
    paused: bool = False,
) -> RenderableType:
    """Build the progress line shown under the current track.

    Looks like ``Volume 9/9  [bar] 01:14 / 05:14 - Listeners: 42``. The bar
    pulses when the track duration is unknown.
    """
    prefix = Text(format_volume(volume))
    if paused:
        prefix.append(" (paused)", style="yellow")

    if state is None or not state.has_track:
        return Text.assemble(prefix, "  ", ("Waiting for track info...", "dim italic"))

    bar = ProgressBar(total=state.duration, completed=state.elapsed)
    info = Text(f"{format_progress_info(state.elapsed, state.duration)} - {format_listeners(state.listeners)}")
    if not state.healthy:
        info.append("  reconnecting...", style="bold red")

    grid = Table.grid(expand=True, padding=(0, 1))
    grid.add_column(no_wrap=True)
    grid.add_column(ratio=1)
    grid.add_column(no_wrap=True)
    grid.add_row(prefix, bar, info)
    return grid


class NowPlayingScreen:
    """Prints track changes and keeps a live progress line at the bottom.

    Track changes arrive over pub/sub; the progress line is refreshed from
    supervisor snapshots on a UI thread.
    """

    def __init__(
        self,
        supervisor: PlaybackSupervisor,
        console: Optional[Console] = None,
        refresh_interval: float = 1.0,
        topic: str = TRACK_CHANGED_TOPIC,
    ):
        self.supervisor = supervisor
        self.console = console or Console()
        self.refresh_interval = refresh_interval
        self.topic = topic

        # UI update thread
        self.ui_thread: Optional[threading.Thread] = None
        self.stop_ui_event = threading.Event()
        self.live: Optional[Live] = None
        self.running = False

    def show_welcome(self, show_logo: bool = True) -> None:
        if show_logo:
            self.console.print(LOGO, style="bold", highlight=False)
            self.console.print()
        self.console.print(f"Code Radio CLI v{__version__}", style="bright_green")
        self.console.print("A command line music radio client for https://coderadio.freecodecamp.org")
        self.console.print()
        self.console.print(
            "Press 0-9 to adjust volume, SPACE to pause or resume, q to quit.", style="yellow"
        )
        self.console.print()

    def show_station(self, station: Station) -> None:
        self.console.print(Text.assemble(("Station:", "bright_green"), f"    {station.name}"))

    def start(self) -> None:
        """Subscribe to track changes and start refreshing the progress line."""
        if self.running:
            return
        self.running = True
        pub.subscribe(self._on_track_changed, self.topic)

        self.live = Live(
            self.render(),
            console=self.console,
            auto_refresh=False,
            transient=True,
        )
        self.live.start()

        self.stop_ui_event.clear()
        self.ui_thread = threading.Thread(target=self._ui_loop, name="now-playing-ui", daemon=True)
        self.ui_thread.start()
        logger.info("Now playing screen started")

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        self.stop_ui_event.set()
        if self.ui_thread:
            self.ui_thread.join(timeout=self.refresh_interval + 1.0)
        if self.live:
            self.live.stop()
            self.live = None
        try:
            pub.unsubscribe(self._on_track_changed, self.topic)
        except Exception as e:
            logger.warning(f"Error during unsubscribe: {e}")
        logger.info("Now playing screen stopped")

    def render(self) -> RenderableType:
        volume = self.supervisor.volume
        return render_progress_line(
            self.supervisor.snapshot(),
            volume.level if volume is not None else None,
            self.supervisor.paused,
        )

    def refresh(self) -> None:
        if self.live:
            self.live.update(self.render(), refresh=True)

    def _ui_loop(self) -> None:
        while not self.stop_ui_event.wait(self.refresh_interval):
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Error updating display: {e}")

    def _on_track_changed(self, state: NowPlayingState) -> None:
        self.console.print()
        self.console.print(Text.assemble(("Song:", "bright_green"), f"       {state.title}"))
        self.console.print(Text.assemble(("Artist:", "bright_green"), f"     {state.artist}"))
        self.console.print(Text.assemble(("Album:", "bright_green"), f"      {state.album}"))
        self.refresh()
