from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RemoteState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    ABSENT = "absent"


@dataclass(frozen=True)
class RemoteStatus:
    """
    Value Object representing one describe() observation of a remote resource.
    """
    state: RemoteState
    attributes: dict[str, Any] = field(default_factory=dict)
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.state != RemoteState.PENDING

    @staticmethod
    def absent() -> 'RemoteStatus':
        return RemoteStatus(state=RemoteState.ABSENT, message="Resource not found.")
