"""Common enums used across schemas."""

from enum import Enum


class StreamStatus(str, Enum):
    """Ingest stream states.

    State Transition Flow:

    (launch) → ACTIVE → INACTIVE → (restart) → ACTIVE
       ↓
     ERROR

    State Descriptions:
    - ACTIVE: A transcoding process was started and is attached to the entry.
    - INACTIVE: The attached process exited (crash, clean exit, or shutdown).
      The health monitor relaunches inactive streams.
    - ERROR: The transcoding process could not be started. Not retried by the
      health monitor.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


__all__ = ["StreamStatus"]
