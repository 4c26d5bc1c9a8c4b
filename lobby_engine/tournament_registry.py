import logging
from datetime import datetime
from typing import Optional, List

from sqlalchemy.exc import SQLAlchemyError

from .models import db, Tournament
from .errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


class TournamentRegistry:
    """
    Tournament records and their coarse status:
    draft -> collecting -> running -> finished.
    """

    def create_tournament(
        self,
        name: str,
        price: int = 0,
        prize_pool: int = None,
        event_date: datetime = None
    ) -> Tournament:
        """Create a new tournament in draft state."""
        if not name:
            raise ValidationError("Tournament name is required")
        if price is None or price < 0:
            raise ValidationError("Price must be a non-negative integer")

        tournament = Tournament(
            name=name,
            status='draft',
            price=price,
            prize_pool=prize_pool,
            event_date=event_date
        )

        db.session.add(tournament)
        db.session.commit()

        return tournament

    def get_tournament(self, tournament_id: int) -> Optional[Tournament]:
        return db.session.get(Tournament, tournament_id)

    def require_tournament(self, tournament_id: int) -> Tournament:
        tournament = self.get_tournament(tournament_id)
        if not tournament:
            raise NotFound(f"Tournament {tournament_id} not found")
        return tournament

    def list_tournaments(
        self,
        status: str = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Tournament]:
        """List tournaments with optional filtering."""
        query = Tournament.query

        if status:
            query = query.filter_by(status=status)

        query = query.order_by(Tournament.created_at.desc(), Tournament.id.desc())
        return query.offset(offset).limit(limit).all()

    def update_status(self, tournament_id: int, status: str) -> Tournament:
        if status not in Tournament.STATUSES:
            raise ValidationError(f"Unknown tournament status '{status}'")

        tournament = self.require_tournament(tournament_id)
        tournament.status = status
        db.session.commit()
        return tournament

    def mark_status_best_effort(self, tournament_id: int, status: str) -> bool:
        """
        Set the status in its own commit and report failure instead of raising.
        Used for side effects that must never mask the primary outcome.
        """
        try:
            updated = Tournament.query.filter_by(id=tournament_id).update({'status': status})
            db.session.commit()
            return bool(updated)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"Could not set tournament {tournament_id} status to {status}: {e}")
            return False
