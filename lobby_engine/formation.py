import logging
import random
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .models import db, Lobby, Participation, Player
from .errors import InsufficientPlayers, RoundNotFinished, ValidationError
from .name_generator import generate_lobby_name
from .tournament_registry import TournamentRegistry
from .transactions import transactional, lock_tournament
from shared.state_machine import LobbyState

logger = logging.getLogger(__name__)


class LobbyFormationEngine:
    """
    Groups the eligible players of a tournament into lobbies, one round at a time.

    Eligible means active with at least one life. Players who waited longest
    (highest chill-zone value) go first; ties are broken by the random source.
    Whoever does not fill a complete lobby sits in the chill zone and gains
    one point of priority for the next pass.
    """

    def __init__(self, rng: random.Random = None, lobby_size: int = None,
                 tournaments: TournamentRegistry = None):
        self.rng = rng or random.Random()
        self._lobby_size = lobby_size
        self.tournaments = tournaments or TournamentRegistry()

    @property
    def lobby_size(self) -> int:
        return self._lobby_size or current_app.config['LOBBY_SIZE']

    def generate_lobbies(self, tournament_id: int, round_num: int = None) -> List[Lobby]:
        if round_num is not None and (
            not isinstance(round_num, int) or isinstance(round_num, bool) or round_num < 1
        ):
            raise ValidationError("Round must be a positive integer")

        try:
            return self._form_lobbies(tournament_id, round_num)
        except InsufficientPlayers:
            # Not enough players left to continue: the tournament is over
            if self.tournaments.mark_status_best_effort(tournament_id, 'finished'):
                logger.info(f"Tournament {tournament_id} finished: not enough players for a lobby")
            raise

    @transactional
    def _form_lobbies(self, tournament_id: int, round_num: Optional[int]) -> List[Lobby]:
        tournament = lock_tournament(tournament_id)

        eligible = self.eligible_players(tournament_id)
        if len(eligible) < self.lobby_size:
            raise InsufficientPlayers(
                f"Not enough players with lives left: need {self.lobby_size}, have {len(eligible)}"
            )

        ordered = self.order_by_priority(eligible)
        round_num = self.resolve_round(tournament_id, round_num)
        groups, leftovers = self.partition(ordered)

        lobbies = []
        for group in groups:
            lobby = Lobby(
                tournament_id=tournament_id,
                round=round_num,
                name=generate_lobby_name(round_num, self.rng),
                status=LobbyState.PENDING.value,
                participations=[Participation(player_id=p.id) for p in group]
            )
            db.session.add(lobby)
            lobbies.append(lobby)

        placed_ids = [p.id for group in groups for p in group]
        Player.query.filter(Player.id.in_(placed_ids)).update(
            {Player.chill_zone_value: 0}, synchronize_session=False
        )
        if leftovers:
            Player.query.filter(Player.id.in_([p.id for p in leftovers])).update(
                {Player.chill_zone_value: Player.chill_zone_value + 1}, synchronize_session=False
            )

        self._mark_running(tournament)
        db.session.flush()

        logger.info(
            f"Tournament {tournament_id} round {round_num}: created {len(lobbies)} lobbies, "
            f"{len(leftovers)} players in chill zone"
        )
        return lobbies

    def eligible_players(self, tournament_id: int) -> List[Player]:
        return (
            Player.query
            .filter(
                Player.tournament_id == tournament_id,
                Player.status == 'active',
                Player.lives >= 1
            )
            .order_by(Player.id)
            .all()
        )

    def order_by_priority(self, players: List[Player]) -> List[Player]:
        weighted = [(player, self.rng.random()) for player in players]
        weighted.sort(key=lambda entry: (-entry[0].chill_zone_value, entry[1]))
        return [player for player, _ in weighted]

    def partition(self, players: List[Player]) -> Tuple[List[List[Player]], List[Player]]:
        size = self.lobby_size
        full = len(players) - len(players) % size
        groups = [players[i:i + size] for i in range(0, full, size)]
        return groups, players[full:]

    def resolve_round(self, tournament_id: int, round_num: Optional[int]) -> int:
        """Pick the round to create and refuse while earlier lobbies are still open."""
        max_round = (
            db.session.query(db.func.max(Lobby.round))
            .filter(Lobby.tournament_id == tournament_id)
            .scalar()
        )

        if round_num is None:
            if max_round is None:
                return 1
            self._ensure_round_finished(tournament_id, max_round, max_round + 1)
            round_num = max_round + 1
        elif round_num > 1:
            self._ensure_round_finished(tournament_id, round_num - 1, round_num)

        # An explicit round must not overlap any open lobby, whatever its round
        open_count = (
            Lobby.query
            .filter(Lobby.tournament_id == tournament_id, Lobby.status != LobbyState.FINISHED.value)
            .count()
        )
        if open_count:
            raise RoundNotFinished(
                f"Cannot create round {round_num}: {open_count} lobbies are still in progress"
            )
        return round_num

    def _ensure_round_finished(self, tournament_id: int, previous_round: int, new_round: int):
        unfinished = (
            Lobby.query
            .filter(
                Lobby.tournament_id == tournament_id,
                Lobby.round == previous_round,
                Lobby.status != LobbyState.FINISHED.value
            )
            .count()
        )
        if unfinished:
            raise RoundNotFinished(
                f"Cannot create round {new_round}: round {previous_round} has "
                f"{unfinished} unfinished lobbies"
            )

    def _mark_running(self, tournament):
        try:
            with db.session.begin_nested():
                tournament.status = 'running'
        except SQLAlchemyError as e:
            logger.warning(f"Could not mark tournament {tournament.id} as running: {e}")
