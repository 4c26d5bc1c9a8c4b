from functools import wraps

from .models import db, Tournament, Lobby, Player
from .errors import NotFound


def transactional(func):
    """Run the wrapped call as one unit of work: commit on return, rollback on any error."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise
    return wrapper


def lock_tournament(tournament_id: int) -> Tournament:
    tournament = (
        Tournament.query
        .filter_by(id=tournament_id)
        .with_for_update()
        .first()
    )
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    return tournament


def lock_lobby(lobby_id: int) -> Lobby:
    lobby = (
        Lobby.query
        .filter_by(id=lobby_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not lobby:
        raise NotFound(f"Lobby {lobby_id} not found")
    return lobby


def lock_players(player_ids) -> list:
    if not player_ids:
        return []
    return (
        Player.query
        .filter(Player.id.in_(list(player_ids)))
        .order_by(Player.id)
        .with_for_update()
        .populate_existing()
        .all()
    )
