"""Configuration loader for juggler."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


class ConfigurationError(RuntimeError):
    """Raised when the configuration cannot be used to start the daemon."""


@dataclass(slots=True)
class InternConfig:
    app: str = ""
    key: str = ""
    uri: str = ""
    printer_name: str = ""
    office_name: str = ""
    request_timeout_seconds: float = 30.0
    verify_tls: bool = True


@dataclass(slots=True)
class DeviceConfig:
    serial_port: str = constants.DEFAULT_SERIAL_PORT
    baudrate: int = constants.DEFAULT_BAUDRATE
    read_timeout_seconds: float = 2.0
    signal_path: Path = constants.DEFAULT_SIGNAL_PATH
    button_path: Path = constants.DEFAULT_BUTTON_PATH
    job_path: Path = constants.DEFAULT_JOB_PATH


@dataclass(slots=True)
class SchedulerConfig:
    polling_interval_seconds: float = constants.DEFAULT_POLLING_INTERVAL_SECONDS
    waiting_for_button_seconds: float = constants.DEFAULT_WAITING_FOR_BUTTON_SECONDS


@dataclass(slots=True)
class ServerConfig:
    enabled: bool = True
    host: str = constants.DEFAULT_SERVER_HOST
    port: int = constants.DEFAULT_SERVER_PORT


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH


@dataclass(slots=True)
class JugglerConfig:
    intern: InternConfig
    device: DeviceConfig
    scheduler: SchedulerConfig
    server: ServerConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path

    def validate(self) -> None:
        """Ensure the remote queue credentials required for ``start`` are present."""

        missing = [
            name
            for name in ("app", "key", "uri", "printer_name", "office_name")
            if not getattr(self.intern, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing [intern] settings in {self.path}: {', '.join(missing)}"
            )


def _get_float(parser: ConfigParser, section: str, option: str, default: float) -> float:
    try:
        return parser.getfloat(section, option, fallback=default)
    except ValueError:
        return default


def _get_int(parser: ConfigParser, section: str, option: str, default: int) -> int:
    try:
        return parser.getint(section, option, fallback=default)
    except ValueError:
        return default


def load_config(path: Optional[Path] = None) -> JugglerConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "intern": {
                "request_timeout_seconds": "30",
                "verify_tls": "true",
            },
            "device": {
                "serial_port": constants.DEFAULT_SERIAL_PORT,
                "baudrate": str(constants.DEFAULT_BAUDRATE),
                "read_timeout_seconds": "2",
                "signal_path": str(constants.DEFAULT_SIGNAL_PATH),
                "button_path": str(constants.DEFAULT_BUTTON_PATH),
                "job_path": str(constants.DEFAULT_JOB_PATH),
            },
            "scheduler": {
                "polling_interval_seconds": str(
                    constants.DEFAULT_POLLING_INTERVAL_SECONDS
                ),
                "waiting_for_button_seconds": str(
                    constants.DEFAULT_WAITING_FOR_BUTTON_SECONDS
                ),
            },
            "server": {
                "enabled": "true",
                "host": constants.DEFAULT_SERVER_HOST,
                "port": str(constants.DEFAULT_SERVER_PORT),
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    intern = InternConfig(
        app=parser.get("intern", "app", fallback=""),
        key=parser.get("intern", "key", fallback=""),
        uri=parser.get("intern", "uri", fallback="").rstrip("/"),
        printer_name=parser.get("intern", "printer_name", fallback=""),
        office_name=parser.get("intern", "office_name", fallback=""),
        request_timeout_seconds=max(
            1.0, _get_float(parser, "intern", "request_timeout_seconds", 30.0)
        ),
        verify_tls=parser.getboolean("intern", "verify_tls", fallback=True),
    )

    device_defaults = DeviceConfig()
    device = DeviceConfig(
        serial_port=parser.get("device", "serial_port"),
        baudrate=_get_int(parser, "device", "baudrate", device_defaults.baudrate),
        read_timeout_seconds=max(
            0.1,
            _get_float(
                parser,
                "device",
                "read_timeout_seconds",
                device_defaults.read_timeout_seconds,
            ),
        ),
        signal_path=Path(parser.get("device", "signal_path")).expanduser(),
        button_path=Path(parser.get("device", "button_path")).expanduser(),
        job_path=Path(parser.get("device", "job_path")).expanduser(),
    )

    scheduler_defaults = SchedulerConfig()
    scheduler = SchedulerConfig(
        polling_interval_seconds=max(
            1.0,
            _get_float(
                parser,
                "scheduler",
                "polling_interval_seconds",
                scheduler_defaults.polling_interval_seconds,
            ),
        ),
        waiting_for_button_seconds=max(
            0.0,
            _get_float(
                parser,
                "scheduler",
                "waiting_for_button_seconds",
                scheduler_defaults.waiting_for_button_seconds,
            ),
        ),
    )

    server = ServerConfig(
        enabled=parser.getboolean("server", "enabled", fallback=True),
        host=parser.get("server", "host", fallback=constants.DEFAULT_SERVER_HOST),
        port=_get_int(parser, "server", "port", constants.DEFAULT_SERVER_PORT),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
    )

    return JugglerConfig(
        intern=intern,
        device=device,
        scheduler=scheduler,
        server=server,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )
