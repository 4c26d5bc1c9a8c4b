import os
import logging
from datetime import datetime, timezone

from flask import Flask, request, jsonify

from .config import config
from .models import db
from .errors import LobbyError, ValidationError
from .tournament_registry import TournamentRegistry
from .player_registry import PlayerRegistry
from .lobby_service import LobbyService
from .notifier import LobbyNotifier

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, lobby_service: LobbyService = None) -> Flask:
    """Application factory for the lobby engine service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Initialize extensions
    db.init_app(app)

    # Initialize services
    registry = TournamentRegistry()
    players = PlayerRegistry()
    if lobby_service is None:
        notifier = LobbyNotifier(redis_url=app.config['REDIS_URL'])
        lobby_service = LobbyService(notifier=notifier, tournaments=registry)

    # Create tables
    with app.app_context():
        db.create_all()

    # Store services on app for access in routes
    app.registry = registry
    app.players = players
    app.lobbies = lobby_service

    register_error_handlers(app)
    register_api_routes(app)

    from .routes import lobbies
    app.register_blueprint(lobbies.bp)

    return app


def register_error_handlers(app: Flask):

    @app.errorhandler(LobbyError)
    def handle_lobby_error(error: LobbyError):
        logger.info(f"{request.method} {request.path} -> {error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def int_field(data: dict, key: str, required: bool = True, default: int = None):
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


def parse_datetime(value: str, key: str):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).rstrip('Z'))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO 8601 timestamp")
    # Stored timestamps are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def register_api_routes(app: Flask):
    """Register API routes."""

    # ==================== Tournaments ====================

    @app.route('/api/v1/tournaments', methods=['GET'])
    def api_list_tournaments():
        """List tournaments with optional filtering."""
        status = request.args.get('status')
        limit = request.args.get('limit', 50, type=int)
        offset = request.args.get('offset', 0, type=int)

        tournaments = app.registry.list_tournaments(
            status=status,
            limit=limit,
            offset=offset
        )

        return jsonify({
            'tournaments': [t.to_dict() for t in tournaments],
            'count': len(tournaments),
            'limit': limit,
            'offset': offset
        })

    @app.route('/api/v1/tournaments', methods=['POST'])
    def api_create_tournament():
        data = json_body()

        tournament = app.registry.create_tournament(
            name=data.get('name'),
            price=int_field(data, 'price', required=False, default=0),
            prize_pool=int_field(data, 'prize_pool', required=False),
            event_date=parse_datetime(data.get('event_date'), 'event_date')
        )

        return jsonify({
            'message': 'Tournament created',
            'tournament': tournament.to_dict()
        }), 201

    @app.route('/api/v1/tournaments/<int:tournament_id>', methods=['GET'])
    def api_get_tournament(tournament_id: int):
        tournament = app.registry.require_tournament(tournament_id)
        return jsonify(tournament.to_dict())

    @app.route('/api/v1/tournaments/<int:tournament_id>/status', methods=['PATCH'])
    def api_update_tournament_status(tournament_id: int):
        data = json_body()
        tournament = app.registry.update_status(tournament_id, data.get('status'))
        return jsonify({
            'message': f'Tournament is now {tournament.status}',
            'tournament': tournament.to_dict()
        })

    # ==================== Players ====================

    @app.route('/api/v1/tournaments/<int:tournament_id>/players', methods=['GET'])
    def api_list_players(tournament_id: int):
        app.registry.require_tournament(tournament_id)
        players = app.players.list_players(tournament_id)
        return jsonify({
            'players': [p.to_dict() for p in players],
            'count': len(players)
        })

    @app.route('/api/v1/tournaments/<int:tournament_id>/players', methods=['POST'])
    def api_create_player(tournament_id: int):
        """Register a user as a player directly, bypassing the application flow."""
        data = json_body()

        player = app.players.create_player(
            user_id=int_field(data, 'user_id'),
            tournament_id=tournament_id,
            nickname=data.get('nickname'),
            mmr=int_field(data, 'mmr', required=False),
            lives=int_field(data, 'lives', required=False),
            game_roles=data.get('game_roles') or 'flex',
            chill_zone_value=int_field(data, 'chill_zone_value', required=False, default=0)
        )

        return jsonify({
            'message': 'Player registered',
            'player': player.to_dict()
        }), 201

    @app.route('/api/v1/players/<int:player_id>', methods=['GET'])
    def api_get_player(player_id: int):
        return jsonify(app.players.require_player(player_id).to_dict())

    @app.route('/api/v1/players/<int:player_id>', methods=['PATCH'])
    def api_update_player(player_id: int):
        data = json_body()
        player = app.players.update_player(player_id, **data)
        return jsonify(player.to_dict())

    @app.route('/api/v1/tournaments/<int:tournament_id>/chill-zone', methods=['GET'])
    def api_chill_zone(tournament_id: int):
        """Active players left out of the latest (or given) round."""
        app.registry.require_tournament(tournament_id)
        round_num = request.args.get('round', type=int)
        players = app.players.list_chill_zone_players(tournament_id, round_num)
        return jsonify({
            'players': [p.to_dict() for p in players],
            'count': len(players)
        })

    # ==================== Users & Applications ====================

    @app.route('/api/v1/users', methods=['POST'])
    def api_register_user():
        data = json_body()
        user = app.players.get_or_create_user(
            telegram_id=data.get('telegram_id'),
            username=data.get('username'),
            nickname=data.get('nickname'),
            discord_username=data.get('discord_username'),
            steam_id64=data.get('steam_id64')
        )
        return jsonify(user.to_dict()), 201

    @app.route('/api/v1/tournaments/<int:tournament_id>/applications', methods=['GET'])
    def api_list_applications(tournament_id: int):
        applications = app.players.list_applications(
            tournament_id=tournament_id,
            status=request.args.get('status')
        )
        return jsonify({
            'applications': [a.to_dict() for a in applications],
            'count': len(applications)
        })

    @app.route('/api/v1/tournaments/<int:tournament_id>/applications', methods=['POST'])
    def api_apply(tournament_id: int):
        data = json_body()
        application = app.players.create_application(
            user_id=int_field(data, 'user_id'),
            tournament_id=tournament_id,
            mmr=int_field(data, 'mmr'),
            game_roles=data.get('game_roles') or 'flex'
        )
        return jsonify({
            'message': 'Application submitted',
            'application': application.to_dict()
        }), 201

    @app.route('/api/v1/applications/<int:application_id>/approve', methods=['POST'])
    def api_approve_application(application_id: int):
        player = app.players.approve_application(application_id)
        return jsonify({
            'message': 'Application approved',
            'player': player.to_dict()
        })

    @app.route('/api/v1/applications/<int:application_id>/reject', methods=['POST'])
    def api_reject_application(application_id: int):
        application = app.players.reject_application(application_id)
        return jsonify({
            'message': 'Application rejected',
            'application': application.to_dict()
        })

    # ==================== Health Check ====================

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        notifier = app.lobbies.notifier
        redis_ok = None
        if not notifier.is_local:
            try:
                notifier.pubsub.redis.ping()
                redis_ok = True
            except Exception:
                redis_ok = False

        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception:
            db.session.rollback()
            db_ok = False

        status = 'healthy' if (db_ok and redis_ok is not False) else 'unhealthy'
        code = 200 if status == 'healthy' else 503

        return jsonify({
            'status': status,
            'database': db_ok,
            'redis': redis_ok
        }), code
