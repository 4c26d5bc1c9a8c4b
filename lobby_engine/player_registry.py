from typing import Optional, List

from flask import current_app

from .models import db, User, Tournament, Player, Lobby, Participation, Application
from .errors import NotFound, ValidationError, InvalidState


PLAYER_STATUSES = ('active', 'eliminated')
UPDATABLE_FIELDS = ('nickname', 'game_roles', 'mmr', 'lives', 'chill_zone_value', 'status')


def apply_loss(player: Player) -> Player:
    """Take one life, never below zero; elimination follows lives exactly."""
    player.lives = max(0, (player.lives or 0) - 1)
    player.status = 'eliminated' if player.lives == 0 else 'active'
    return player


class PlayerRegistry:
    """
    Standing of every player per tournament: lives, elimination status,
    MMR and chill-zone priority. Also owns users and tournament applications,
    since an approved application is what turns a user into a player.
    """

    # ==================== Users ====================

    def get_or_create_user(
        self,
        telegram_id: str,
        username: str = None,
        nickname: str = None,
        discord_username: str = None,
        steam_id64: str = None
    ) -> User:
        if not telegram_id:
            raise ValidationError("telegram_id is required")

        user = User.query.filter_by(telegram_id=str(telegram_id)).first()
        if user:
            return user

        user = User(
            telegram_id=str(telegram_id),
            username=username,
            nickname=nickname or username,
            discord_username=discord_username,
            steam_id64=steam_id64
        )
        db.session.add(user)
        db.session.commit()
        return user

    # ==================== Players ====================

    def create_player(
        self,
        user_id: int,
        tournament_id: int,
        nickname: str,
        mmr: int = None,
        lives: int = None,
        game_roles: str = 'flex',
        chill_zone_value: int = 0
    ) -> Player:
        mmr = current_app.config['DEFAULT_MMR'] if mmr is None else mmr
        lives = current_app.config['DEFAULT_LIVES'] if lives is None else lives
        self._validate_counters(mmr=mmr, lives=lives, chill_zone_value=chill_zone_value)
        if not nickname:
            raise ValidationError("Nickname is required")
        if not db.session.get(User, user_id):
            raise NotFound(f"User {user_id} not found")
        if not db.session.get(Tournament, tournament_id):
            raise NotFound(f"Tournament {tournament_id} not found")
        if Player.query.filter_by(user_id=user_id, tournament_id=tournament_id).first():
            raise ValidationError(f"User {user_id} is already a player in tournament {tournament_id}")

        player = Player(
            user_id=user_id,
            tournament_id=tournament_id,
            nickname=nickname,
            mmr=mmr,
            lives=lives,
            game_roles=game_roles,
            chill_zone_value=chill_zone_value,
            status='active' if lives > 0 else 'eliminated'
        )
        db.session.add(player)
        db.session.commit()
        return player

    def get_player(self, player_id: int) -> Optional[Player]:
        return db.session.get(Player, player_id)

    def require_player(self, player_id: int) -> Player:
        player = self.get_player(player_id)
        if not player:
            raise NotFound(f"Player {player_id} not found")
        return player

    def list_players(self, tournament_id: int) -> List[Player]:
        return (
            Player.query
            .filter_by(tournament_id=tournament_id)
            .order_by(Player.created_at.asc(), Player.id.asc())
            .all()
        )

    def update_player(self, player_id: int, **fields) -> Player:
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if 'status' in fields and fields['status'] not in PLAYER_STATUSES:
            raise ValidationError(f"Unknown player status '{fields['status']}'")
        self._validate_counters(**{k: v for k, v in fields.items()
                                   if k in ('mmr', 'lives', 'chill_zone_value')})

        player = self.require_player(player_id)

        # lives is authoritative for elimination
        if 'lives' in fields:
            fields['status'] = 'eliminated' if fields['lives'] == 0 else 'active'
        elif fields.get('status') == 'eliminated':
            fields['lives'] = 0
        elif 'status' in fields and player.lives == 0:
            raise ValidationError("A player with no lives cannot be active")

        for key, value in fields.items():
            setattr(player, key, value)

        db.session.commit()
        return player

    def list_chill_zone_players(self, tournament_id: int, round_num: int = None) -> List[Player]:
        """Active players that were not placed in any lobby of the round (latest by default)."""
        if round_num is None:
            round_num = (
                db.session.query(db.func.max(Lobby.round))
                .filter(Lobby.tournament_id == tournament_id)
                .scalar()
            )
        if round_num is None:
            return []

        in_round = (
            db.select(Participation.player_id)
            .join(Lobby, Participation.lobby_id == Lobby.id)
            .where(Lobby.tournament_id == tournament_id, Lobby.round == round_num)
        )

        return (
            Player.query
            .filter(
                Player.tournament_id == tournament_id,
                Player.status == 'active',
                Player.id.notin_(in_round)
            )
            .order_by(Player.chill_zone_value.desc(), Player.id.asc())
            .all()
        )

    # ==================== Applications ====================

    def create_application(self, user_id: int, tournament_id: int, mmr: int,
                           game_roles: str = 'flex') -> Application:
        self._validate_counters(mmr=mmr)
        if not db.session.get(User, user_id):
            raise NotFound(f"User {user_id} not found")
        if not db.session.get(Tournament, tournament_id):
            raise NotFound(f"Tournament {tournament_id} not found")

        application = Application(
            user_id=user_id,
            tournament_id=tournament_id,
            mmr=mmr,
            game_roles=game_roles,
            status='pending'
        )
        db.session.add(application)
        db.session.commit()
        return application

    def list_applications(self, tournament_id: int = None, status: str = None) -> List[Application]:
        query = Application.query
        if tournament_id is not None:
            query = query.filter_by(tournament_id=tournament_id)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(Application.created_at.asc(), Application.id.asc()).all()

    def approve_application(self, application_id: int) -> Player:
        """Approve a pending application and register the applicant as a player."""
        try:
            application = self._lock_application(application_id)
            if application.status not in ('pending', 'approved'):
                raise InvalidState(f"Application {application_id} is {application.status}")

            player = Player.query.filter_by(
                user_id=application.user_id,
                tournament_id=application.tournament_id
            ).first()
            if player:
                application.status = 'approved'
                db.session.commit()
                return player

            user = application.user
            player = Player(
                user_id=application.user_id,
                tournament_id=application.tournament_id,
                nickname=user.nickname or user.username or f"player_{user.id}",
                game_roles=application.game_roles,
                mmr=application.mmr,
                lives=current_app.config['DEFAULT_LIVES'],
                status='active',
                chill_zone_value=0
            )
            application.status = 'approved'
            db.session.add(player)
            db.session.commit()
            return player
        except Exception:
            db.session.rollback()
            raise

    def reject_application(self, application_id: int) -> Application:
        try:
            application = self._lock_application(application_id)
            if application.status == 'rejected':
                db.session.commit()
                return application
            if application.status != 'pending':
                raise InvalidState(f"Application {application_id} is {application.status}")
            application.status = 'rejected'
            db.session.commit()
            return application
        except Exception:
            db.session.rollback()
            raise

    def _lock_application(self, application_id: int) -> Application:
        application = (
            Application.query
            .filter_by(id=application_id)
            .with_for_update()
            .first()
        )
        if not application:
            raise NotFound(f"Application {application_id} not found")
        return application

    @staticmethod
    def _validate_counters(**values):
        for name, value in values.items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer")
