"""Serial G-code feeder.

Streams a staged job file to the printer one line at a time, waiting for the
firmware's ``ok`` after each line. The blocking serial loop runs in a worker
thread; the orchestrator only reads :meth:`GcodeFeeder.progress` and
:meth:`GcodeFeeder.status` and may call :meth:`GcodeFeeder.cancel`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

import serial

from ..core import FeederStatus

LOGGER = logging.getLogger(__name__)

SerialFactory = Callable[..., Any]

# Sent after a cancelled run: hotend and bed off, fan off, motors off.
CANCEL_GCODE = ("M104 S0", "M140 S0", "M107", "M84")


class FeederError(RuntimeError):
    """Raised when a feed session cannot be created or the firmware reports an error."""


def load_gcode(path: Path) -> List[str]:
    """Read a G-code file, dropping comments and blank lines."""

    lines: List[str] = []
    with Path(path).open("r", encoding="utf-8", errors="replace") as stream:
        for raw in stream:
            line = raw.split(";", 1)[0].strip()
            if line:
                lines.append(line)
    return lines


def classify_response(line: str) -> Optional[FeederStatus]:
    """Map a firmware line to the feeder status it implies, if any.

    ``ok`` lines map to ``PRINTING``; errors to ``ERROR``; Prusa MMU and
    filament sensor pauses to their busy states.
    """

    text = line.strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered.startswith("ok"):
        return FeederStatus.PRINTING
    if text.startswith("Error:") or text.startswith("!!"):
        return FeederStatus.ERROR
    if "mmu" in lowered and any(
        marker in lowered for marker in ("paused", "busy", "not responding")
    ):
        return FeederStatus.MMU_BUSY
    if "fsensor" in lowered or "filament runout" in lowered:
        return FeederStatus.FSENSOR_BUSY
    return None


def _default_serial_factory(port: str, *, baudrate: int, timeout: float) -> Any:
    return serial.serial_for_url(
        port, baudrate=baudrate, timeout=timeout, write_timeout=10
    )


class GcodeFeeder:
    """One feed session. Not reusable: create a new feeder for every job."""

    def __init__(self, channel: Any, lines: Sequence[str], *, name: str = "") -> None:
        self._channel = channel
        self._lines = list(lines)
        self._name = name or "feeder"
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._sent = 0
        self._status = FeederStatus.IDLE
        self._task: Optional[asyncio.Task[None]] = None

    @classmethod
    def open(
        cls,
        port: str,
        job_path: Path,
        *,
        baudrate: int = 115200,
        read_timeout: float = 2.0,
        serial_factory: Optional[SerialFactory] = None,
    ) -> "GcodeFeeder":
        """Stage ``job_path`` and open the serial channel at ``port``.

        Raises:
            FeederError: If the payload cannot be read or the port cannot be opened.
        """

        try:
            lines = load_gcode(job_path)
        except OSError as exc:
            raise FeederError(f"Unable to read job file {job_path}: {exc}") from exc

        factory = serial_factory or _default_serial_factory
        try:
            channel = factory(port, baudrate=baudrate, timeout=read_timeout)
        except (serial.SerialException, ValueError, OSError) as exc:
            raise FeederError(f"Unable to open serial port {port}: {exc}") from exc

        LOGGER.info("Opened %s for %s (%d lines)", port, job_path, len(lines))
        return cls(channel, lines, name=str(job_path))

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------
    def progress(self) -> float:
        with self._lock:
            if not self._lines:
                return 100.0 if self._status == FeederStatus.FINISHED else 0.0
            return self._sent / len(self._lines) * 100.0

    def status(self) -> FeederStatus:
        with self._lock:
            return self._status

    @property
    def task(self) -> Optional[asyncio.Task[None]]:
        return self._task

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def feed(self) -> asyncio.Task[None]:
        """Start streaming in a worker thread; returns the wrapping task."""

        if self._task is None:
            self._set_status(FeederStatus.PRINTING)
            self._task = asyncio.create_task(
                asyncio.to_thread(self._run), name=f"feed:{self._name}"
            )
        return self._task

    def cancel(self) -> None:
        if not self._cancel_event.is_set():
            LOGGER.info("Cancelling feed of %s", self._name)
        self._cancel_event.set()

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------
    def _run(self) -> None:
        try:
            for index, line in enumerate(self._lines):
                if self._cancel_event.is_set():
                    break
                self._write(line)
                if not self._await_ok():
                    break
                with self._lock:
                    self._sent = index + 1
            else:
                self._set_status(FeederStatus.FINISHED)
                LOGGER.info("Feed of %s finished", self._name)
        except FeederError as exc:
            LOGGER.error("Printer reported an error: %s", exc)
            self._set_status(FeederStatus.ERROR)
        except (serial.SerialException, OSError) as exc:
            LOGGER.error("Serial failure while feeding %s: %s", self._name, exc)
            self._set_status(FeederStatus.ERROR)
        finally:
            if self._cancel_event.is_set() and self.status() not in (
                FeederStatus.ERROR,
                FeederStatus.FINISHED,
            ):
                self._send_cancel_sequence()
                self._set_status(FeederStatus.IDLE)
            self._close()

    def _write(self, line: str) -> None:
        payload = (line + "\n").encode("ascii", errors="replace")
        LOGGER.debug("Send: %s", line)
        try:
            self._channel.write(payload)
        except serial.SerialTimeoutException:
            LOGGER.warning("Serial timeout while writing to serial port, trying again.")
            self._channel.write(payload)

    def _await_ok(self) -> bool:
        """Block until the firmware acknowledges; False if cancelled meanwhile."""

        while True:
            # Firmware keeps reporting temperatures while it heats; a cancel
            # must not wait for the pending command to be acknowledged.
            if self._cancel_event.is_set():
                return False
            raw = self._channel.readline()
            if not raw:
                continue
            line = raw.decode("ascii", errors="replace").strip()
            LOGGER.debug("Recv: %s", line)
            status = classify_response(line)
            if status is None:
                continue
            if status == FeederStatus.ERROR:
                raise FeederError(line)
            self._set_status(status)
            if status == FeederStatus.PRINTING:
                return True

    def _send_cancel_sequence(self) -> None:
        for line in CANCEL_GCODE:
            try:
                self._write(line)
            except (serial.SerialException, OSError) as exc:
                LOGGER.warning("Unable to send %s after cancel: %s", line, exc)
                return

    def _close(self) -> None:
        try:
            self._channel.close()
        except (serial.SerialException, OSError):
            LOGGER.exception("Error while closing the serial port")

    def _set_status(self, status: FeederStatus) -> None:
        with self._lock:
            self._status = status
