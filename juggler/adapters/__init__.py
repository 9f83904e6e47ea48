"""Adapter modules for external integrations."""

from .feeder import FeederError, GcodeFeeder
from .intern import (
    InternClient,
    InternError,
    NoJobAvailable,
    RemoteRejected,
    TransportError,
)
from .signal import DeviceSignal

__all__ = [
    "DeviceSignal",
    "FeederError",
    "GcodeFeeder",
    "InternClient",
    "InternError",
    "NoJobAvailable",
    "RemoteRejected",
    "TransportError",
]
