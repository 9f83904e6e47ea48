"""Filesystem markers shared with the device-side agent.

The device agent watches the signal marker: while it exists the device
shows "waiting" and the button is live. Pressing the button creates the
confirmation marker; cancelling on the device removes the signal marker.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)

SIGNAL_MODE = 0o666


class DeviceSignal:
    def __init__(self, signal_path: Path, button_path: Path) -> None:
        self.signal_path = Path(signal_path)
        self.button_path = Path(button_path)

    def arm(self) -> None:
        """Create a fresh, world-writable signal marker and clear any old button press."""

        self._remove(self.button_path)
        self._remove(self.signal_path)
        try:
            self.signal_path.touch()
            os.chmod(self.signal_path, SIGNAL_MODE)
        except OSError as exc:
            LOGGER.error("Unable to create signal marker %s: %s", self.signal_path, exc)

    def is_armed(self) -> bool:
        return self.signal_path.exists()

    def armed_since(self) -> Optional[datetime]:
        try:
            mtime = self.signal_path.stat().st_mtime
        except OSError:
            return None
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def disarm(self) -> None:
        """Remove the signal marker, marking the device as free."""
        self._remove(self.signal_path)

    def is_confirmed(self) -> bool:
        return self.button_path.exists()

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.error("Unable to remove %s: %s", path, exc)
