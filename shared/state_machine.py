from enum import Enum
from typing import Optional, Callable, List
from dataclasses import dataclass


class LobbyState(str, Enum):
    PENDING = "PENDING"
    DRAFTING = "DRAFTING"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: LobbyState
    to_state: LobbyState
    action: str
    guard: Optional[Callable] = None


def all_assigned_guard(context: dict) -> bool:
    participations = context.get("participations", [])
    return bool(participations) and all(p.team is not None for p in participations)


class LobbyStateMachine:
    """
    Lifecycle of a single lobby. Strictly forward:
    PENDING -> DRAFTING -> PLAYING -> FINISHED.
    """

    TRANSITIONS = [
        Transition(LobbyState.PENDING, LobbyState.DRAFTING, "start_draft"),
        Transition(LobbyState.DRAFTING, LobbyState.PLAYING, "start_playing", all_assigned_guard),
        Transition(LobbyState.PLAYING, LobbyState.FINISHED, "finish"),
    ]

    ALLOWED_ACTIONS = {
        LobbyState.PENDING: ["start_draft"],
        LobbyState.DRAFTING: ["draft_pick", "set_first_picker", "start_playing"],
        LobbyState.PLAYING: ["finish"],
        LobbyState.FINISHED: ["view"],
    }

    def __init__(self, initial_state: LobbyState = LobbyState.PENDING):
        self._state = initial_state

    @property
    def state(self) -> LobbyState:
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str, guard_context: dict = None) -> LobbyState:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                if t.guard and not t.guard(guard_context or {}):
                    raise TransitionError(
                        self._state.value,
                        t.to_state.value,
                        f"Guard condition failed for action '{action}'"
                    )

                self._state = t.to_state
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )

    @classmethod
    def from_state_string(cls, state_str: str) -> "LobbyStateMachine":
        try:
            state = LobbyState(state_str)
        except ValueError:
            raise TransitionError(state_str, "unknown", f"Unknown lobby state '{state_str}'")
        return cls(initial_state=state)
