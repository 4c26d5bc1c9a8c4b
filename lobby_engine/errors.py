class LobbyError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 400
    code = "lobby_error"

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class NotFound(LobbyError):
    """Referenced resource does not exist."""
    status_code = 404
    code = "not_found"


class InvalidState(LobbyError):
    """Operation is not allowed in the lobby's current state."""
    code = "invalid_state"


class AlreadyPicked(LobbyError):
    """Player already has a team."""
    code = "already_picked"


class InvalidTeam(LobbyError):
    """Team must be 1 or 2."""
    code = "invalid_team"


class TeamFull(InvalidTeam):
    """Team already has all of its members."""
    code = "team_full"


class InsufficientPlayers(LobbyError):
    """Not enough eligible players to form a lobby."""
    code = "insufficient_players"


class RoundNotFinished(LobbyError):
    """Previous round still has unfinished lobbies."""
    code = "round_not_finished"


class MalformedLobby(LobbyError):
    """Lobby does not have the expected number of participants."""
    code = "malformed_lobby"


class ValidationError(LobbyError):
    """Invalid request data."""
    code = "validation_error"
