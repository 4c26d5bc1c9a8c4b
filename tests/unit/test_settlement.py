"""
Unit tests for SettlementEngine.finish_lobby and the apply_loss rule.
"""
import pytest
from types import SimpleNamespace

from lobby_engine.models import db, Lobby, Player
from lobby_engine.player_registry import apply_loss
from lobby_engine.settlement import SettlementEngine
from lobby_engine.errors import InvalidState, InvalidTeam, NotFound


@pytest.fixture
def settlement():
    return SettlementEngine()


def lives_by_team(lobby, team):
    return [db.session.get(Player, p.player_id).lives for p in lobby.team_members(team)]


class TestApplyLoss:

    def test_takes_one_life(self):
        player = apply_loss(SimpleNamespace(lives=3, status='active'))
        assert player.lives == 2
        assert player.status == 'active'

    def test_last_life_eliminates(self):
        player = apply_loss(SimpleNamespace(lives=1, status='active'))
        assert player.lives == 0
        assert player.status == 'eliminated'

    def test_never_below_zero(self):
        player = apply_loss(SimpleNamespace(lives=0, status='eliminated'))
        assert player.lives == 0
        assert player.status == 'eliminated'


class TestFinishLobby:

    def test_records_results(self, playing_lobby, settlement):
        lobby = settlement.finish_lobby(playing_lobby.id, 1)

        assert lobby.status == 'FINISHED'
        assert all(p.result == 'WIN' for p in lobby.team_members(1))
        assert all(p.result == 'LOSS' for p in lobby.team_members(2))

    def test_losers_lose_a_life(self, playing_lobby, settlement):
        lobby = settlement.finish_lobby(playing_lobby.id, 2)

        assert lives_by_team(lobby, 2) == [3] * 5
        assert lives_by_team(lobby, 1) == [2] * 5

    def test_last_life_eliminates(self, sample_tournament, make_players, formation, draft, settlement):
        make_players(sample_tournament, range(2000, 1000, -100), lives=1)
        lobby = formation.generate_lobbies(sample_tournament.id)[0]
        lobby = draft.start_draft(lobby.id)
        for i, player_id in enumerate([p.player_id for p in lobby.participations if p.team is None]):
            lobby = draft.draft_pick(lobby.id, player_id, 1 + i % 2)

        lobby = settlement.finish_lobby(lobby.id, 1)

        losers = [db.session.get(Player, p.player_id) for p in lobby.team_members(2)]
        assert all(p.lives == 0 and p.status == 'eliminated' for p in losers)
        winners = [db.session.get(Player, p.player_id) for p in lobby.team_members(1)]
        assert all(p.lives == 1 and p.status == 'active' for p in winners)

    def test_idempotent(self, playing_lobby, settlement):
        settlement.finish_lobby(playing_lobby.id, 1)
        lobby = settlement.finish_lobby(playing_lobby.id, 1)

        assert lobby.status == 'FINISHED'
        assert lives_by_team(lobby, 2) == [2] * 5

    def test_repeat_ignores_new_winner(self, playing_lobby, settlement):
        settlement.finish_lobby(playing_lobby.id, 1)
        lobby = settlement.finish_lobby(playing_lobby.id, 2)

        assert all(p.result == 'WIN' for p in lobby.team_members(1))
        assert lives_by_team(lobby, 1) == [3] * 5

    @pytest.mark.parametrize('team', [0, 3, None])
    def test_invalid_winning_team(self, playing_lobby, settlement, team):
        with pytest.raises(InvalidTeam):
            settlement.finish_lobby(playing_lobby.id, team)
        assert db.session.get(Lobby, playing_lobby.id).status == 'PLAYING'

    def test_requires_playing(self, drafting_lobby, settlement):
        with pytest.raises(InvalidState):
            settlement.finish_lobby(drafting_lobby.id, 1)

    def test_pending_cannot_finish(self, pending_lobby, settlement):
        with pytest.raises(InvalidState):
            settlement.finish_lobby(pending_lobby.id, 1)

    def test_unknown_lobby(self, db_session, settlement):
        with pytest.raises(NotFound):
            settlement.finish_lobby(8080, 1)
