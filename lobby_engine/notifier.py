import logging
from typing import List

from shared.events import lobbies_created_event, lobby_assigned_event, lobby_state_event
from shared.pubsub import PubSubClient

logger = logging.getLogger(__name__)


class LobbyNotifier:
    """
    Tells the outside world about lobby changes over redis pub/sub.

    Notifications are fire-and-forget: every failure is logged and swallowed,
    so a broken redis never fails or rolls back the lobby operation itself.
    Without a redis URL the notifier runs in local mode and only logs.
    """

    def __init__(self, redis_url: str = None, pubsub: PubSubClient = None):
        self.is_local = pubsub is None and not redis_url

        if self.is_local:
            self.pubsub = None
            logger.info("LobbyNotifier running in local mode (no redis)")
        else:
            self.pubsub = pubsub or PubSubClient(redis_url)

    def notify_lobbies_created(self, lobbies: List, tournament) -> int:
        """
        Announce a formation pass on the tournament channel and send every
        placed player a personal notification.

        Returns:
            Number of user notifications published
        """
        if not lobbies:
            return 0

        try:
            round_num = lobbies[0].round
            lobby_ids = [lobby.id for lobby in lobbies]
            assignments = [
                (participation.player.user_id, lobby.id)
                for lobby in lobbies
                for participation in lobby.participations
            ]
        except Exception as e:
            logger.error(f"Failed to collect lobby assignments for tournament {tournament.id}: {e}")
            return 0

        if self.is_local:
            logger.info(
                f"Local mode: {len(lobby_ids)} lobbies created in round {round_num} "
                f"of {tournament.name}, {len(assignments)} players to notify"
            )
            return 0

        try:
            self.pubsub.publish_tournament_event(
                tournament.id,
                lobbies_created_event(tournament.id, tournament.name, round_num, lobby_ids)
            )
        except Exception as e:
            logger.error(f"Failed to publish lobbies created for tournament {tournament.id}: {e}")

        sent = 0
        for user_id, lobby_id in assignments:
            try:
                self.pubsub.publish_user_notification(
                    user_id,
                    lobby_assigned_event(tournament.id, tournament.name, lobby_id, round_num)
                )
                sent += 1
            except Exception as e:
                logger.error(f"Failed to notify user {user_id} about lobby {lobby_id}: {e}")

        logger.info(f"Notified {sent}/{len(assignments)} players of round {round_num} lobbies")
        return sent

    def notify_lobby_state(self, lobby) -> bool:
        if self.is_local:
            logger.debug(f"Local mode: lobby {lobby.id} is {lobby.status}")
            return False

        try:
            event = lobby_state_event(lobby.tournament_id, lobby.id, lobby.status)
            self.pubsub.publish_tournament_event(lobby.tournament_id, event)
            return True
        except Exception as e:
            logger.error(f"Failed to publish state of lobby {lobby.id}: {e}")
            return False

    def recent_events(self, tournament_id: int, count: int = 50) -> List:
        """Newest first, from the capped tournament event log. Empty in local mode."""
        if self.is_local:
            return []

        try:
            return self.pubsub.get_recent_events(tournament_id, count)
        except Exception as e:
            logger.error(f"Failed to read event log of tournament {tournament_id}: {e}")
            return []
