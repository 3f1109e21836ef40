"""
Core event types shared by neurons and the scheduler.
"""

from hhgap.core.event_system import (
    Connection,
    SpikeEvent,
)

__all__ = [
    "Connection",
    "SpikeEvent",
]
