"""Single-key terminal input for the record toggle."""

import sys
import threading
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)

KeyCallback = Callable[[str], bool]


class KeyboardInputHandler:
    """Reads single keypresses on a background thread.

    The callback receives the lower-cased key and returns False to stop
    listening.
    """

    def __init__(self, callback: KeyCallback, poll_interval: float = 0.1):
        self.callback = callback
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, name="KeyboardInput", daemon=True)
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        while self.running:
            try:
                key = self.read_key()
            except Exception as e:
                logger.error(f"Error reading key: {e}")
                break
            if key is None:
                continue
            logger.debug(f"Key detected: {key!r}")
            if not self.callback(key):
                break
        self.running = False

    def read_key(self) -> Optional[str]:
        """Return one key, or None if nothing was pressed within the poll interval."""
        if sys.platform == "win32":
            return self._read_key_windows()
        return self._read_key_unix()

    def _read_key_windows(self) -> Optional[str]:
        import msvcrt
        import time

        if msvcrt.kbhit():
            return msvcrt.getch().decode('utf-8', errors='ignore').lower()
        time.sleep(self.poll_interval)
        return None

    def _read_key_unix(self) -> Optional[str]:
        import select
        import termios
        import tty

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        try:
            # cbreak keeps output processing intact for the live display
            tty.setcbreak(fd)
            if select.select([sys.stdin], [], [], self.poll_interval)[0]:
                return sys.stdin.read(1).lower()
            return None
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


class LineInputHandler(KeyboardInputHandler):
    """Fallback for terminals without raw key support: one command per line."""

    def read_key(self) -> Optional[str]:
        try:
            line = input()
        except EOFError:
            return "q"
        line = line.strip().lower()
        return line[0] if line else " "


def create_input_handler(callback: KeyCallback) -> KeyboardInputHandler:
    """Pick the best input handler for the current terminal."""
    if sys.stdin.isatty():
        return KeyboardInputHandler(callback)
    logger.warning("stdin is not a TTY, falling back to line input")
    return LineInputHandler(callback)
