from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    telegram_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    username = db.Column(db.String(100), nullable=True)
    nickname = db.Column(db.String(100), nullable=True)
    discord_username = db.Column(db.String(100), nullable=True)
    steam_id64 = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    players = db.relationship('Player', back_populates='user', cascade='all, delete-orphan')
    applications = db.relationship('Application', back_populates='user', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'telegram_id': self.telegram_id,
            'username': self.username,
            'nickname': self.nickname,
            'discord_username': self.discord_username,
            'steam_id64': self.steam_id64,
            'created_at': _iso(self.created_at),
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    STATUSES = ('draft', 'collecting', 'running', 'finished')

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='draft')
    price = db.Column(db.Integer, nullable=False, default=0)
    prize_pool = db.Column(db.Integer, nullable=True)
    event_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    players = db.relationship('Player', back_populates='tournament', cascade='all, delete-orphan')
    applications = db.relationship('Application', back_populates='tournament', cascade='all, delete-orphan')
    lobbies = db.relationship('Lobby', back_populates='tournament', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'price': self.price,
            'prize_pool': self.prize_pool,
            'event_date': _iso(self.event_date),
            'player_count': len(self.players),
            'created_at': _iso(self.created_at),
        }


class Application(db.Model):
    __tablename__ = 'applications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False)
    mmr = db.Column(db.Integer, nullable=False)
    game_roles = db.Column(db.String(100), nullable=False, default='flex')
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, approved, rejected
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', back_populates='applications')
    tournament = db.relationship('Tournament', back_populates='applications')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'tournament_id': self.tournament_id,
            'mmr': self.mmr,
            'game_roles': self.game_roles,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }


class Player(db.Model):
    __tablename__ = 'players'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False)
    nickname = db.Column(db.String(100), nullable=False)
    game_roles = db.Column(db.String(100), nullable=False, default='flex')
    mmr = db.Column(db.Integer, nullable=False, default=1000)
    lives = db.Column(db.Integer, nullable=False, default=3)
    status = db.Column(db.String(20), nullable=False, default='active')  # active, eliminated
    chill_zone_value = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', back_populates='players')
    tournament = db.relationship('Tournament', back_populates='players')
    participations = db.relationship('Participation', back_populates='player')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'tournament_id', name='unique_player_per_tournament'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'tournament_id': self.tournament_id,
            'nickname': self.nickname,
            'game_roles': self.game_roles,
            'mmr': self.mmr,
            'lives': self.lives,
            'status': self.status,
            'chill_zone_value': self.chill_zone_value,
        }


class Lobby(db.Model):
    __tablename__ = 'lobbies'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False, index=True)
    round = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='PENDING')  # PENDING, DRAFTING, PLAYING, FINISHED

    # Coin toss between the two captains, and who the captains agreed picks first
    lottery_winner_id = db.Column(db.Integer, nullable=True)
    first_picker_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='lobbies')
    participations = db.relationship(
        'Participation',
        back_populates='lobby',
        cascade='all, delete-orphan',
        order_by='Participation.id'
    )

    def team_members(self, team: int):
        members = [p for p in self.participations if p.team == team]
        members.sort(key=lambda p: (p.slot if p.slot is not None else 999, p.id))
        return members

    def captains(self):
        return [p for p in self.participations if p.is_captain]

    def to_dict(self, include_players: bool = True):
        data = {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'round': self.round,
            'name': self.name,
            'status': self.status,
            'lottery_winner_id': self.lottery_winner_id,
            'first_picker_id': self.first_picker_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_players:
            data['participations'] = [p.to_dict() for p in self.participations]
            data['teams'] = {
                str(team): [p.player_id for p in self.team_members(team)]
                for team in (1, 2)
            }
        return data


class Participation(db.Model):
    __tablename__ = 'participations'

    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.Integer, db.ForeignKey('lobbies.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    team = db.Column(db.Integer, nullable=True)  # 1 or 2
    is_captain = db.Column(db.Boolean, nullable=False, default=False)
    slot = db.Column(db.Integer, nullable=True)  # 0..4, captain holds 0
    picked_at = db.Column(db.DateTime, nullable=True)
    result = db.Column(db.String(10), nullable=True)  # WIN, LOSS

    lobby = db.relationship('Lobby', back_populates='participations')
    player = db.relationship('Player', back_populates='participations')

    __table_args__ = (
        db.UniqueConstraint('lobby_id', 'player_id', name='unique_player_per_lobby'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'lobby_id': self.lobby_id,
            'player_id': self.player_id,
            'team': self.team,
            'is_captain': self.is_captain,
            'slot': self.slot,
            'picked_at': _iso(self.picked_at),
            'result': self.result,
            'player': self.player.to_dict() if self.player else None,
        }
