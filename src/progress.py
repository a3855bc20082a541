"""Single-line progress spinner for long-running operations."""

import logging
import sys
from typing import IO, Optional

logger = logging.getLogger(__name__)

FRAMES = '|/-\\'


class ProgressSpinner:
    """Rewrites one status line with a rotating frame and a label."""

    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream if stream is not None else sys.stdout
        self._frame = 0
        self._last_len = 0

    def next(self, label: str) -> None:
        """Advance the spinner and show label."""
        line = f"{FRAMES[self._frame % len(FRAMES)]} {label}"
        self._frame += 1
        # Blank out whatever is left of a longer previous line
        padding = ' ' * max(0, self._last_len - len(line))
        self._write(f"\r{line}{padding}")
        self._last_len = len(line)

    def finish(self) -> None:
        """End the status line."""
        if self._last_len:
            self._write('\n')
            self._last_len = 0

    def _write(self, text: str) -> None:
        try:
            self.stream.write(text)
            self.stream.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Progress output failed: {e}")
