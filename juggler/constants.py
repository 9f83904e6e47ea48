"""Constants used across the juggler package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "juggler"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path.home() / ".local" / "state" / APP_NAME / f"{APP_NAME}.log"

DEFAULT_SERIAL_PORT = "/dev/ttyACM0"
DEFAULT_BAUDRATE = 115200

DEFAULT_SIGNAL_PATH = Path("/tmp/gizmostatusfile")
DEFAULT_BUTTON_PATH = Path("/tmp/buttonpress")
DEFAULT_JOB_PATH = Path("/tmp/job")

DEFAULT_POLLING_INTERVAL_SECONDS = 15.0
DEFAULT_WAITING_FOR_BUTTON_SECONDS = 600.0

DEFAULT_SERVER_HOST = "::1"
DEFAULT_SERVER_PORT = 8888
