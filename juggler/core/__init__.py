"""Core primitives for juggler."""

from .models import FeederStatus, Job, JobStatus
from .protocols import Feeder, FeederFactory, JobQueue, Signal

__all__ = [
    "Feeder",
    "FeederFactory",
    "FeederStatus",
    "Job",
    "JobQueue",
    "JobStatus",
    "Signal",
]
