from enum import Enum
from dataclasses import dataclass
from datetime import datetime
import json


class EventType(str, Enum):
    # Lobby lifecycle
    LOBBIES_CREATED = "lobbies.created"
    DRAFT_STARTED = "lobby.draft_started"
    LOBBY_PLAYING = "lobby.playing"
    LOBBY_FINISHED = "lobby.finished"

    # User notifications
    LOBBY_ASSIGNED = "notification.lobby_assigned"


@dataclass
class Event:
    type: EventType
    tournament_id: int
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat() + "Z"
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            tournament_id=data["tournament_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def lobbies_created_event(tournament_id: int, tournament_name: str, round_num: int,
                          lobby_ids: list) -> Event:
    return Event(
        type=EventType.LOBBIES_CREATED,
        tournament_id=tournament_id,
        data={
            "tournament_name": tournament_name,
            "round": round_num,
            "lobby_ids": lobby_ids
        }
    )


def lobby_assigned_event(tournament_id: int, tournament_name: str, lobby_id: int,
                         round_num: int) -> Event:
    message = (
        f"The game is about to start! You are in lobby #{lobby_id} "
        f"of round {round_num} in {tournament_name}."
    )
    return Event(
        type=EventType.LOBBY_ASSIGNED,
        tournament_id=tournament_id,
        data={
            "lobby_id": lobby_id,
            "round": round_num,
            "tournament_name": tournament_name,
            "message": message
        }
    )


def lobby_state_event(tournament_id: int, lobby_id: int, status: str) -> Event:
    event_type = {
        "DRAFTING": EventType.DRAFT_STARTED,
        "PLAYING": EventType.LOBBY_PLAYING,
        "FINISHED": EventType.LOBBY_FINISHED,
    }[status]
    return Event(
        type=event_type,
        tournament_id=tournament_id,
        data={"lobby_id": lobby_id, "status": status}
    )
