"""Simulator device session data structures."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class LifecycleState(str, Enum):
    UNKNOWN = "Unknown"
    SHUTDOWN = "Shutdown"
    BOOTING = "Booting"
    BOOTED = "Booted"
    SHUTTING_DOWN = "ShuttingDown"

    @classmethod
    def parse(cls, raw: str | None) -> "LifecycleState":
        """Map a simctl state string ("Shutting Down", "Booted"...) to a state."""
        normalized = (raw or "").replace(" ", "")
        for state in cls:
            if state.value == normalized:
                return state
        return cls.UNKNOWN


class DeviceSession(BaseModel):
    handle: str  # simulator UDID
    display_name: str
    lifecycle_state: LifecycleState = LifecycleState.UNKNOWN
    runtime: str = ""
    # Every state change applied by the session manager, oldest first
    transitions: list[LifecycleState] = Field(default_factory=list)

    def transition(self, state: LifecycleState) -> None:
        self.lifecycle_state = state
        self.transitions.append(state)

    @property
    def is_booted(self) -> bool:
        return self.lifecycle_state == LifecycleState.BOOTED
