import time
import random
import logging
from datetime import datetime
from typing import List, Optional

from flask import current_app

from .models import db, Lobby, Participation
from .formation import LobbyFormationEngine
from .draft import DraftEngine
from .settlement import SettlementEngine
from .notifier import LobbyNotifier
from .tournament_registry import TournamentRegistry

logger = logging.getLogger(__name__)


class LobbyService:
    """
    Entry point for everything lobby related: formation, draft, settlement
    and the read side used by bots and dashboards.
    """

    def __init__(self, notifier: LobbyNotifier = None, rng: random.Random = None,
                 tournaments: TournamentRegistry = None):
        self.rng = rng or random.Random()
        self.tournaments = tournaments or TournamentRegistry()
        self.notifier = notifier or LobbyNotifier()

        self.formation = LobbyFormationEngine(rng=self.rng, tournaments=self.tournaments)
        self.draft = DraftEngine(rng=self.rng)
        self.settlement = SettlementEngine()

    # ==================== Commands ====================

    def generate_lobbies(self, tournament_id: int, round_num: int = None) -> List[Lobby]:
        lobbies = self.formation.generate_lobbies(tournament_id, round_num)

        tournament = self.tournaments.get_tournament(tournament_id)
        self.notifier.notify_lobbies_created(lobbies, tournament)
        return lobbies

    def start_draft(self, lobby_id: int) -> Lobby:
        lobby = self.draft.start_draft(lobby_id)
        self.notifier.notify_lobby_state(lobby)
        return lobby

    def draft_pick(self, lobby_id: int, player_id: int, team: int) -> Lobby:
        lobby = self.draft.draft_pick(lobby_id, player_id, team)
        if lobby.status != 'DRAFTING':
            self.notifier.notify_lobby_state(lobby)
        return lobby

    def start_playing(self, lobby_id: int) -> Lobby:
        lobby = self.draft.start_playing(lobby_id)
        self.notifier.notify_lobby_state(lobby)
        return lobby

    def set_first_picker(self, lobby_id: int, player_id: int) -> Lobby:
        return self.draft.set_first_picker(lobby_id, player_id)

    def get_current_picker(self, lobby_id: int) -> Optional[int]:
        return self.draft.get_current_picker(lobby_id)

    def finish_lobby(self, lobby_id: int, winning_team: int) -> Lobby:
        current = self.get_lobby_by_id(lobby_id)
        already_finished = current is not None and current.status == 'FINISHED'

        lobby = self.settlement.finish_lobby(lobby_id, winning_team)
        # Retried settlements change nothing, so they announce nothing
        if not already_finished:
            self.notifier.notify_lobby_state(lobby)
        return lobby

    # ==================== Queries ====================

    def get_lobby_by_id(self, lobby_id: int) -> Optional[Lobby]:
        return db.session.get(Lobby, lobby_id)

    def list_lobbies_by_tournament(self, tournament_id: int) -> List[Lobby]:
        """Newest round first, then newest lobby first."""
        return (
            Lobby.query
            .filter_by(tournament_id=tournament_id)
            .order_by(Lobby.round.desc(), Lobby.created_at.desc(), Lobby.id.desc())
            .all()
        )

    def get_recent_events(self, tournament_id: int, count: int = 50) -> list:
        return self.notifier.recent_events(tournament_id, count)

    def get_latest_lobby_update(self, tournament_id: int) -> Optional[datetime]:
        """Most recent change to any lobby of the tournament, or None when there are none."""
        created, updated = (
            db.session.query(db.func.max(Lobby.created_at), db.func.max(Lobby.updated_at))
            .filter(Lobby.tournament_id == tournament_id)
            .one()
        )
        picked = (
            db.session.query(db.func.max(Participation.picked_at))
            .join(Lobby, Participation.lobby_id == Lobby.id)
            .filter(Lobby.tournament_id == tournament_id)
            .scalar()
        )

        stamps = [stamp for stamp in (created, updated, picked) if stamp is not None]
        return max(stamps) if stamps else None

    def wait_for_lobby_update(self, tournament_id: int, since: Optional[datetime] = None,
                              timeout: float = None) -> Optional[datetime]:
        """
        Block until the tournament's lobbies change after `since`, or the
        timeout elapses.

        Returns:
            The new latest-update timestamp, or None on timeout
        """
        interval = current_app.config['LONG_POLL_INTERVAL']
        if timeout is None:
            timeout = current_app.config['LONG_POLL_DEFAULT_TIMEOUT']
        deadline = time.monotonic() + timeout

        while True:
            latest = self.get_latest_lobby_update(tournament_id)
            if latest is not None and (since is None or latest > since):
                return latest
            if time.monotonic() >= deadline:
                return None

            # End the read transaction so the next poll sees fresh commits
            db.session.rollback()
            time.sleep(interval)
