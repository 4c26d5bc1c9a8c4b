import logging
import random
from datetime import datetime
from typing import Optional

from flask import current_app

from .models import db, Lobby
from .errors import (
    NotFound, InvalidState, AlreadyPicked, InvalidTeam, TeamFull, MalformedLobby, ValidationError
)
from .transactions import transactional, lock_lobby
from shared.state_machine import LobbyState, LobbyStateMachine, TransitionError

logger = logging.getLogger(__name__)

TEAMS = (1, 2)

# Captain turns over the non-captain picks; 0 is whoever picks first
SNAKE_PATTERN = [0, 1, 1, 0, 0, 1, 1, 0]


def advance(lobby: Lobby, action: str, guard_context: dict = None) -> LobbyState:
    """Apply a lifecycle action to the lobby row, translating illegal moves to InvalidState."""
    try:
        machine = LobbyStateMachine.from_state_string(lobby.status)
        new_state = machine.transition(action, guard_context)
    except TransitionError as e:
        raise InvalidState(f"Lobby {lobby.id}: {e.reason}")
    lobby.status = new_state.value
    return new_state


def require_state(lobby: Lobby, action: str):
    try:
        machine = LobbyStateMachine.from_state_string(lobby.status)
    except TransitionError as e:
        raise InvalidState(f"Lobby {lobby.id}: {e.reason}")
    if not machine.can_perform(action):
        raise InvalidState(f"Cannot {action.replace('_', ' ')} while lobby {lobby.id} is {lobby.status}")


class DraftEngine:
    """
    Captain draft for a single lobby.

    start_draft names the two highest-MMR players captains and tosses a coin
    between them. Captains then pick the remaining players onto their teams;
    the last pick starts the match.
    """

    def __init__(self, rng: random.Random = None, lobby_size: int = None, team_size: int = None):
        self.rng = rng or random.Random()
        self._lobby_size = lobby_size
        self._team_size = team_size

    @property
    def lobby_size(self) -> int:
        return self._lobby_size or current_app.config['LOBBY_SIZE']

    @property
    def team_size(self) -> int:
        return self._team_size or current_app.config['TEAM_SIZE']

    @transactional
    def start_draft(self, lobby_id: int) -> Lobby:
        lobby = lock_lobby(lobby_id)
        require_state(lobby, 'start_draft')

        participations = lobby.participations
        if len(participations) != self.lobby_size:
            raise MalformedLobby(
                f"Lobby {lobby_id} has {len(participations)} players, expected {self.lobby_size}"
            )

        ranked = sorted(participations, key=lambda p: (-p.player.mmr, p.id))
        captains = ranked[:2]
        for team, captain in zip(TEAMS, captains):
            captain.team = team
            captain.is_captain = True
            captain.slot = 0

        lobby.lottery_winner_id = self.rng.choice(captains).player_id
        lobby.first_picker_id = None
        advance(lobby, 'start_draft')

        logger.info(
            f"Lobby {lobby_id} drafting: captains {captains[0].player_id} vs {captains[1].player_id}, "
            f"coin toss won by {lobby.lottery_winner_id}"
        )
        return lobby

    @transactional
    def draft_pick(self, lobby_id: int, player_id: int, team: int) -> Lobby:
        lobby = lock_lobby(lobby_id)
        require_state(lobby, 'draft_pick')

        participation = next((p for p in lobby.participations if p.player_id == player_id), None)
        if participation is None:
            raise NotFound(f"Player {player_id} is not in lobby {lobby_id}")
        if participation.team is not None:
            raise AlreadyPicked(f"Player {player_id} is already on team {participation.team}")
        if team not in TEAMS:
            raise InvalidTeam(f"Team must be one of {TEAMS}, got {team!r}")

        members = lobby.team_members(team)
        if len(members) >= self.team_size:
            raise TeamFull(f"Team {team} already has {self.team_size} players")

        used = {p.slot for p in members if p.slot is not None}
        participation.team = team
        participation.slot = min(set(range(self.team_size)) - used)
        participation.picked_at = datetime.utcnow()

        logger.info(f"Lobby {lobby_id}: player {player_id} picked to team {team}")

        if all(p.team is not None for p in lobby.participations):
            advance(lobby, 'start_playing', {'participations': lobby.participations})
            logger.info(f"Lobby {lobby_id} draft complete, now {lobby.status}")
        return lobby

    @transactional
    def start_playing(self, lobby_id: int) -> Lobby:
        lobby = lock_lobby(lobby_id)
        require_state(lobby, 'start_playing')

        sizes = [len(lobby.team_members(team)) for team in TEAMS]
        if any(size != self.team_size for size in sizes):
            raise InvalidState(
                f"Lobby {lobby_id} teams are incomplete: {sizes[0]} vs {sizes[1]}"
            )

        advance(lobby, 'start_playing', {'participations': lobby.participations})
        logger.info(f"Lobby {lobby_id} now {lobby.status}")
        return lobby

    @transactional
    def set_first_picker(self, lobby_id: int, player_id: int) -> Lobby:
        lobby = lock_lobby(lobby_id)
        require_state(lobby, 'set_first_picker')

        if player_id not in [c.player_id for c in lobby.captains()]:
            raise ValidationError(f"Player {player_id} is not a captain of lobby {lobby_id}")

        lobby.first_picker_id = player_id
        return lobby

    def get_current_picker(self, lobby_id: int, lobby: Lobby = None) -> Optional[int]:
        """Captain whose turn it is. Advisory only: draft_pick does not enforce it."""
        lobby = lobby or db.session.get(Lobby, lobby_id)
        if not lobby:
            raise NotFound(f"Lobby {lobby_id} not found")
        if lobby.status != LobbyState.DRAFTING.value or lobby.first_picker_id is None:
            return None

        captains = sorted(lobby.captains(), key=lambda p: p.team)
        order = [c.player_id for c in captains]
        if lobby.first_picker_id not in order:
            return None
        if order[0] != lobby.first_picker_id:
            order.reverse()

        picks = sum(1 for p in lobby.participations if not p.is_captain and p.team is not None)
        if picks >= len(SNAKE_PATTERN):
            return None
        return order[SNAKE_PATTERN[picks]]
