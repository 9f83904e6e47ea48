from configparser import ConfigParser
from pathlib import Path

import pytest

from juggler.config import (
    DeviceConfig,
    InternConfig,
    JugglerConfig,
    LoggingConfig,
    SchedulerConfig,
    ServerConfig,
)


@pytest.fixture
def juggler_config(tmp_path: Path) -> JugglerConfig:
    """Configuration pointing every device path into ``tmp_path``."""

    return JugglerConfig(
        intern=InternConfig(
            app="3djuggler",
            key="secret",
            uri="https://intern.example.com/api",
            printer_name="prusa-mk3",
            office_name="london",
        ),
        device=DeviceConfig(
            serial_port="loop://",
            signal_path=tmp_path / "gizmostatusfile",
            button_path=tmp_path / "buttonpress",
            job_path=tmp_path / "job",
        ),
        scheduler=SchedulerConfig(
            polling_interval_seconds=0.01, waiting_for_button_seconds=600
        ),
        server=ServerConfig(enabled=False),
        logging=LoggingConfig(path=None),
        raw=ConfigParser(),
        path=tmp_path / "juggler.cfg",
    )
