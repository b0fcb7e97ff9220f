"""
Data models for the relay service.
"""
from .events import (
    BaseDTO,
    CustomBroadcast,
    Event,
    LocationRecord,
    LocationUpdate,
    RelayedBroadcast,
    SimulationIntake,
)

__all__ = [
    "BaseDTO",
    "CustomBroadcast",
    "Event",
    "LocationRecord",
    "LocationUpdate",
    "RelayedBroadcast",
    "SimulationIntake",
]
