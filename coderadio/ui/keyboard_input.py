"""Keyboard input handling for the terminal player."""

import asyncio
import os
import sys
import threading
import time
from typing import Optional, Callable
import logging

from ..services.supervisor import PlaybackSupervisor

logger = logging.getLogger(__name__)


class KeyboardInputHandler:
    """Read single key presses on a background thread.

    On Unix the terminal is switched to cbreak mode for as long as the
    handler runs, so each key is delivered without waiting for Enter while
    output processing (and Ctrl+C) keep working. ``stop()`` restores the
    original terminal settings.
    """

    def __init__(self, callback: Callable[[str], bool], stream=None, poll_interval: float = 0.1):
        """Initialize keyboard handler.

        Args:
            callback: Function that takes a key and returns True to continue, False to quit
            stream: Terminal to read from (defaults to sys.stdin)
            poll_interval: Seconds to wait for a key before checking for stop
        """
        self.callback = callback
        self.stream = stream if stream is not None else sys.stdin
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._saved_terminal = None

    def start(self) -> None:
        """Start the keyboard input handler."""
        if self.running:
            return

        if sys.platform != "win32":
            self._enter_cbreak_mode()
        self.running = True
        self.thread = threading.Thread(target=self._input_loop, name="keyboard-input", daemon=True)
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        """Stop the keyboard input handler and restore the terminal."""
        self.running = False
        try:
            if self.thread and self.thread is not threading.current_thread():
                self.thread.join(timeout=1.0)
        finally:
            self._restore_terminal()
        logger.info("Keyboard input handler stopped")

    def _enter_cbreak_mode(self) -> None:
        import termios
        import tty

        fd = self.stream.fileno()
        self._saved_terminal = termios.tcgetattr(fd)
        tty.setcbreak(fd, termios.TCSANOW)

    def _restore_terminal(self) -> None:
        if self._saved_terminal is None:
            return
        import termios

        termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved_terminal)
        self._saved_terminal = None

    def _input_loop(self) -> None:
        logger.debug("Starting keyboard input loop")
        while self.running:
            key = self._get_key()
            if key:
                logger.debug(f"Key detected: '{key}' (ord: {ord(key)})")
                if not self.callback(key):
                    break
        self.running = False
        logger.debug("Keyboard input loop ended")

    def _get_key(self) -> Optional[str]:
        """Get a single keypress in a cross-platform way."""
        try:
            if sys.platform == "win32":
                return self._get_key_windows()
            return self._get_key_unix()
        except Exception as e:
            logger.error(f"Error getting key: {e}")
            # Avoid spinning on a terminal that keeps failing
            time.sleep(self.poll_interval)
            return None

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt

        if msvcrt.kbhit():
            return msvcrt.getwch().lower()
        # msvcrt has no blocking wait with a timeout
        time.sleep(self.poll_interval)
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select

        fd = self.stream.fileno()
        if not select.select([fd], [], [], self.poll_interval)[0]:
            return None
        data = os.read(fd, 1)
        if not data:
            # End of input; nothing more will arrive
            self.running = False
            return None
        return data.decode(errors="ignore").lower()


class PlaybackKeyBindings:
    """Map key presses to supervisor calls on the event loop.

    0-9 set the volume, SPACE toggles pause, q (or Ctrl+C when it arrives as a key) quits.
    Called from the keyboard thread; every supervisor call is handed to the
    loop with ``call_soon_threadsafe``.
    """

    QUIT_KEYS = ("q", "\x03")

    def __init__(self, supervisor: PlaybackSupervisor, loop: asyncio.AbstractEventLoop):
        self.supervisor = supervisor
        self.loop = loop

    def handle_key(self, key: str) -> bool:
        """Handle one key. Returns True to continue, False to quit."""
        if key in self.QUIT_KEYS:
            logger.info("Quit key pressed")
            self.loop.call_soon_threadsafe(self.supervisor.request_shutdown)
            return False
        if key.isdigit():
            self.loop.call_soon_threadsafe(self._set_volume, int(key))
        elif key == " ":
            self.loop.call_soon_threadsafe(self._toggle_pause)
        else:
            logger.debug(f"Unhandled key: '{key}'")
        return True

    def _set_volume(self, level: int) -> None:
        if self.supervisor.session is None:
            return
        volume = self.supervisor.set_volume(level)
        logger.info(f"Volume set to {volume}")

    def _toggle_pause(self) -> None:
        if self.supervisor.session is None:
            return
        if self.supervisor.paused:
            self.supervisor.resume()
        else:
            self.supervisor.pause()


def create_input_handler(callback: Callable[[str], bool]) -> Optional[KeyboardInputHandler]:
    """Create a keyboard handler, or None when stdin is not an interactive terminal.

    Args:
        callback: Function that takes a key and returns True to continue, False to quit
    """
    if not sys.stdin or not sys.stdin.isatty():
        logger.warning("stdin is not a terminal; keyboard controls disabled")
        return None
    return KeyboardInputHandler(callback)
