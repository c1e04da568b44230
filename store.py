"""Unit-of-work access to the relational store used by the standings core."""

from contextlib import contextmanager

from flask import g
from sqlalchemy import update
from sqlalchemy.orm import joinedload

from errors import NotFoundError
from models import (
    db,
    Match,
    MatchEvent,
    Standing,
    EVENT_GOAL,
    FINISHED_STATUSES,
    CLOSED_STATUSES,
    MATCH_FULL_TIME,
)


class DataStore:
    """Wraps a SQLAlchemy session; only the outermost unit of work commits."""

    def __init__(self, session):
        self.session = session
        self._depth = 0

    @contextmanager
    def unit_of_work(self):
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self
            if outermost:
                self.session.commit()
        except Exception:
            if outermost:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1

    def require(self, model, ident, label: str | None = None):
        instance = self.session.get(model, ident) if ident is not None else None
        if instance is None:
            raise NotFoundError(f'{label or model.__name__} {ident} not found')
        return instance

    def add(self, instance):
        self.session.add(instance)
        return instance

    def add_all(self, instances) -> None:
        self.session.add_all(instances)

    def delete(self, instance) -> None:
        self.session.delete(instance)

    def flush(self) -> None:
        self.session.flush()

    # ------------------------------------------------------------------
    # Standings
    # ------------------------------------------------------------------
    def find_standing(self, competition_id: int, team_id: int) -> Standing | None:
        return (
            self.session.query(Standing)
            .filter_by(competition_id=competition_id, team_id=team_id)
            .first()
        )

    def standings_for(self, competition_id: int) -> list[Standing]:
        return (
            self.session.query(Standing)
            .filter_by(competition_id=competition_id)
            .order_by(Standing.position.asc(), Standing.id.asc())
            .all()
        )

    def delete_standings(self, competition_id: int) -> int:
        rows = self.standings_for(competition_id)
        for row in rows:
            self.session.delete(row)
        self.session.flush()
        return len(rows)

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------
    def claim_match_result(self, match_id: int, home_score: int, away_score: int) -> Match | None:
        """Record the final score only if nobody has closed or counted the match yet.

        Returns the refreshed match, or None when the guard matched no row.
        """
        result = self.session.execute(
            update(Match)
            .where(
                Match.id == match_id,
                Match.status.notin_(CLOSED_STATUSES),
                Match.standings_applied.is_(False),
            )
            .values(
                home_score=home_score,
                away_score=away_score,
                status=MATCH_FULL_TIME,
                standings_applied=True,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self._refreshed(match_id)

    def mark_standings_applied(self, match_id: int) -> Match | None:
        """Flip the applied flag on a finished match that has not been counted."""
        result = self.session.execute(
            update(Match)
            .where(
                Match.id == match_id,
                Match.status.in_(FINISHED_STATUSES),
                Match.standings_applied.is_(False),
            )
            .values(standings_applied=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return self._refreshed(match_id)

    def finished_matches(self, competition_id: int) -> list[Match]:
        return (
            self.session.query(Match)
            .filter(
                Match.competition_id == competition_id,
                Match.status.in_(FINISHED_STATUSES),
                Match.home_score.isnot(None),
                Match.away_score.isnot(None),
            )
            .order_by(Match.scheduled_at.asc(), Match.id.asc())
            .all()
        )

    def unapplied_matches(self, competition_id: int | None = None) -> list[Match]:
        query = self.session.query(Match).filter(
            Match.status.in_(FINISHED_STATUSES),
            Match.standings_applied.is_(False),
        )
        if competition_id is not None:
            query = query.filter(Match.competition_id == competition_id)
        return query.order_by(Match.scheduled_at.asc(), Match.id.asc()).all()

    def goal_events(self, competition_id: int | None = None) -> list[MatchEvent]:
        query = (
            self.session.query(MatchEvent)
            .options(joinedload(MatchEvent.player))
            .filter(MatchEvent.type == EVENT_GOAL)
        )
        if competition_id is not None:
            query = query.join(Match, Match.id == MatchEvent.match_id).filter(
                Match.competition_id == competition_id
            )
        return query.order_by(MatchEvent.id.asc()).all()

    def _refreshed(self, match_id: int) -> Match:
        match = self.session.get(Match, match_id)
        self.session.refresh(match)
        return match


def current_store() -> DataStore:
    """Request-scoped store bound to the Flask-SQLAlchemy session."""
    if 'store' not in g:
        g.store = DataStore(db.session)
    return g.store
