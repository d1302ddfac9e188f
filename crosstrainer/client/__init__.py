"""Connection manager and telemetry helpers.

For protocol definitions, import from crosstrainer.protocols:
    from crosstrainer.protocols import FtmsVariant, WorkoutSample, etc.
"""

from ._manager import (
    ConnectionEvent,
    ConnectionState,
    ManagerConfig,
    TrainerManager,
)
from ._session import WorkoutSession

__all__ = [
    "ConnectionEvent",
    "ConnectionState",
    "ManagerConfig",
    "TrainerManager",
    "WorkoutSession",
]
