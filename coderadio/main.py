"""Main application entry point for the Code Radio CLI."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

import aiohttp
from rich.console import Console
from rich.prompt import Prompt

from . import __version__
from .config import CodeRadioConfig
from .errors import CodeRadioError, InvalidVolumeError
from .models.audio import VolumeLevel
from .models.station import Station
from .net.api import CodeRadioApi
from .services.catalog import StationCatalog
from .services.supervisor import PlaybackSupervisor
from .ui.keyboard_input import PlaybackKeyBindings, create_input_handler
from .ui.now_playing_screen import NowPlayingScreen

logger = logging.getLogger(__name__)


class CodeRadioApp:

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        # Load configuration
        self.config = CodeRadioConfig(config_path)
        # Set up logging (command line overrides config)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()

    async def run(self, args: argparse.Namespace) -> None:
        if args.volume is not None:
            self.config.set('audio.volume', args.volume)

        async with aiohttp.ClientSession() as http_session:
            api = CodeRadioApi(
                http_session,
                rest_url=self.config.get('api.rest_url'),
                sse_url=self.config.get('api.sse_url'),
            )
            with self.console.status("Connecting..."):
                message = await api.get_message()

            catalog = StationCatalog.from_message(message, api.sse_url)
            announced_ids = {station.id for station in catalog}
            catalog.merge_config(self.config)
            logger.info(f"Station catalog: {', '.join(s.id for s in catalog)}")

            station = await self.choose_station(catalog, args)

            # The REST message describes the same broadcast all its stations relay
            initial_event = None
            if station.id in announced_ids:
                initial_event = api.now_playing_event(message, station.id)

            supervisor = PlaybackSupervisor(catalog, self.config, http_session=http_session)
            screen = NowPlayingScreen(
                supervisor,
                console=self.console,
                refresh_interval=self.config.get('display.refresh_interval', 1.0),
            )
            bindings = PlaybackKeyBindings(supervisor, asyncio.get_running_loop())
            input_handler = create_input_handler(bindings.handle_key)

            screen.show_welcome(show_logo=not args.no_logo)
            screen.show_station(station)
            screen.start()
            try:
                await supervisor.start(station.id, initial_event)
                if input_handler:
                    input_handler.start()
                await supervisor.wait()
            finally:
                if input_handler:
                    input_handler.stop()
                screen.stop()
                await supervisor.shutdown()

    async def choose_station(self, catalog: StationCatalog, args: argparse.Namespace) -> Station:
        if args.station is not None:
            return catalog.get(args.station)
        if args.select_station:
            return await asyncio.to_thread(select_station_interactively, self.console, catalog)
        return catalog.default


def select_station_interactively(console: Console, catalog: StationCatalog) -> Station:
    """Print the catalog and prompt for a station id."""
    for station in catalog:
        details = f" ({station.bitrate} kbps)" if station.bitrate else ""
        console.print(f"  [bold]{station.id:>3}[/bold]  {station.name}{details}")
    choice = Prompt.ask(
        "Select a station",
        console=console,
        choices=[station.id for station in catalog],
        default=catalog.default.id,
        show_choices=False,
    )
    console.print()
    return catalog.get(choice)


def volume_argument(value: str) -> int:
    try:
        return VolumeLevel(int(value)).level
    except (ValueError, InvalidVolumeError):
        raise argparse.ArgumentTypeError("Volume must be between 0 and 9")


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'code-radio.log')
    console_output = config.get('logging.console_output', False)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info(f"Code Radio CLI v{__version__} starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="code-radio",
        description="A command line music radio client for https://coderadio.freecodecamp.org",
        epilog="Keys: 0-9=Volume, SPACE=Pause/Resume, q=Quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    station_group = parser.add_mutually_exclusive_group()
    station_group.add_argument(
        "-s", "--station",
        type=str,
        help="Play the station with this ID"
    )
    station_group.add_argument(
        "--select-station",
        action="store_true",
        help="Pick a station from the list of available stations"
    )

    parser.add_argument(
        "-v", "--volume",
        type=volume_argument,
        help="Initial volume, 0-9 (default: 9)"
    )

    parser.add_argument(
        "--no-logo",
        action="store_true",
        help="Do not show the welcome logo"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Code Radio CLI v{__version__}"
    )

    return parser


def main(argv: Optional[list] = None) -> None:
    """Main entry point for the Code Radio CLI."""
    args = build_parser().parse_args(argv)
    console = Console(stderr=True)

    try:
        app = CodeRadioApp(args.config, args.log_level)
        asyncio.run(app.run(args))
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    except CodeRadioError as e:
        console.print(f"[bright_red]Error:[/bright_red] {e}")
        logger.error(f"Application error: {e}")
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bright_red]Error:[/bright_red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
