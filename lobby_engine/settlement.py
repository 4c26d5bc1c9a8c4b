import logging

from .models import Lobby
from .errors import InvalidTeam
from .player_registry import apply_loss
from .transactions import transactional, lock_lobby, lock_players
from .draft import TEAMS, advance, require_state
from shared.state_machine import LobbyState

logger = logging.getLogger(__name__)


class SettlementEngine:
    """Records the match result of a lobby and takes a life from every loser."""

    @transactional
    def finish_lobby(self, lobby_id: int, winning_team: int) -> Lobby:
        lobby = lock_lobby(lobby_id)

        # Settling twice must not cost the losers a second life
        if lobby.status == LobbyState.FINISHED.value:
            return lobby

        require_state(lobby, 'finish')
        if winning_team not in TEAMS:
            raise InvalidTeam(f"Winning team must be one of {TEAMS}, got {winning_team!r}")

        lock_players([p.player_id for p in lobby.participations])

        eliminated = []
        for participation in lobby.participations:
            if participation.team == winning_team:
                participation.result = 'WIN'
                continue
            participation.result = 'LOSS'
            player = apply_loss(participation.player)
            if player.status == 'eliminated':
                eliminated.append(player.id)

        advance(lobby, 'finish')

        logger.info(f"Lobby {lobby_id} finished: team {winning_team} won")
        if eliminated:
            logger.info(f"Lobby {lobby_id}: eliminated players {eliminated}")
        return lobby
