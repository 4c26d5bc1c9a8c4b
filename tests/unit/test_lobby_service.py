"""
Unit tests for LobbyService: notification wiring, read side and long-poll waiting.
"""
import pytest
from datetime import timedelta

from lobby_engine.lobby_service import LobbyService
from lobby_engine.notifier import LobbyNotifier
from lobby_engine.models import db, Lobby, Tournament
from lobby_engine.errors import InsufficientPlayers


@pytest.fixture
def notifier(mocker):
    return mocker.MagicMock(spec=LobbyNotifier)


@pytest.fixture
def service(notifier, rng):
    return LobbyService(notifier=notifier, rng=rng)


def play_through(service, lobby, winning_team=1):
    lobby = service.start_draft(lobby.id)
    for i, player_id in enumerate([p.player_id for p in lobby.participations if p.team is None]):
        lobby = service.draft_pick(lobby.id, player_id, 1 + i % 2)
    return service.finish_lobby(lobby.id, winning_team)


class TestNotifications:

    def test_generate_notifies(self, service, notifier, sample_tournament, twelve_players):
        lobbies = service.generate_lobbies(sample_tournament.id)

        notifier.notify_lobbies_created.assert_called_once()
        sent_lobbies, tournament = notifier.notify_lobbies_created.call_args.args
        assert sent_lobbies == lobbies
        assert tournament.id == sample_tournament.id

    def test_failed_generation_does_not_notify(self, service, notifier, sample_tournament, make_players):
        make_players(sample_tournament, [1000] * 3)

        with pytest.raises(InsufficientPlayers):
            service.generate_lobbies(sample_tournament.id)

        notifier.notify_lobbies_created.assert_not_called()

    def test_notifier_failure_keeps_lobbies(self, sample_tournament, ten_players, rng):
        class BrokenPubSub:
            def publish_tournament_event(self, *args):
                raise ConnectionError('redis down')

            def publish_user_notification(self, *args):
                raise ConnectionError('redis down')

        service = LobbyService(notifier=LobbyNotifier(pubsub=BrokenPubSub()), rng=rng)

        lobbies = service.generate_lobbies(sample_tournament.id)

        assert len(lobbies) == 1
        assert Lobby.query.count() == 1

    def test_state_changes_notify(self, service, notifier, sample_tournament, ten_players):
        statuses = []
        notifier.notify_lobby_state.side_effect = lambda lobby: statuses.append(lobby.status)

        lobby = service.generate_lobbies(sample_tournament.id)[0]
        play_through(service, lobby)

        assert statuses == ['DRAFTING', 'PLAYING', 'FINISHED']

    def test_repeat_finish_announces_once(self, service, notifier, sample_tournament, ten_players):
        lobby = service.generate_lobbies(sample_tournament.id)[0]
        play_through(service, lobby)
        notifier.notify_lobby_state.reset_mock()

        lobby = service.finish_lobby(lobby.id, 1)
        service.finish_lobby(lobby.id, 2)

        assert lobby.status == 'FINISHED'
        notifier.notify_lobby_state.assert_not_called()


class TestFullTournament:
    """Rounds repeat until fewer than ten players have lives left."""

    def test_runs_to_completion(self, service, sample_tournament, make_players):
        make_players(sample_tournament, range(2000, 800, -100), lives=1)

        lobby = service.generate_lobbies(sample_tournament.id)[0]
        play_through(service, lobby)

        # 5 losers eliminated, 7 left
        with pytest.raises(InsufficientPlayers):
            service.generate_lobbies(sample_tournament.id)

        assert db.session.get(Tournament, sample_tournament.id).status == 'finished'


class TestReads:

    def test_get_lobby_by_id(self, service, pending_lobby):
        assert service.get_lobby_by_id(pending_lobby.id).id == pending_lobby.id
        assert service.get_lobby_by_id(987654) is None

    def test_list_newest_round_first(self, service, sample_tournament, make_players):
        make_players(sample_tournament, [1000] * 20)
        service.generate_lobbies(sample_tournament.id)
        Lobby.query.update({'status': 'FINISHED'})
        db.session.commit()
        service.generate_lobbies(sample_tournament.id)

        lobbies = service.list_lobbies_by_tournament(sample_tournament.id)

        assert [lobby.round for lobby in lobbies] == [2, 2, 1, 1]
        assert lobbies[0].id > lobbies[1].id

    def test_list_empty(self, service, sample_tournament):
        assert service.list_lobbies_by_tournament(sample_tournament.id) == []

    def test_latest_update_none_without_lobbies(self, service, sample_tournament):
        assert service.get_latest_lobby_update(sample_tournament.id) is None

    def test_latest_update_tracks_picks(self, service, drafting_lobby):
        before = service.get_latest_lobby_update(drafting_lobby.tournament_id)
        player_id = next(p.player_id for p in drafting_lobby.participations if p.team is None)

        lobby = service.draft_pick(drafting_lobby.id, player_id, 1)

        after = service.get_latest_lobby_update(lobby.tournament_id)
        picked = next(p.picked_at for p in lobby.participations if p.player_id == player_id)
        assert after >= before
        assert after >= picked


class TestWaitForLobbyUpdate:

    def test_returns_immediately_when_newer(self, service, pending_lobby):
        latest = service.get_latest_lobby_update(pending_lobby.tournament_id)
        since = latest - timedelta(seconds=5)

        assert service.wait_for_lobby_update(pending_lobby.tournament_id, since, timeout=1) == latest

    def test_no_since_returns_latest(self, service, pending_lobby):
        assert service.wait_for_lobby_update(pending_lobby.tournament_id, None, timeout=1) is not None

    def test_times_out(self, service, pending_lobby):
        latest = service.get_latest_lobby_update(pending_lobby.tournament_id)

        result = service.wait_for_lobby_update(pending_lobby.tournament_id, latest, timeout=0.05)

        assert result is None

    def test_times_out_without_lobbies(self, service, sample_tournament):
        assert service.wait_for_lobby_update(sample_tournament.id, None, timeout=0.05) is None
