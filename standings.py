"""League standings and statistics recomputation.

Each piece takes the same :class:`store.DataStore`:

* :class:`StandingsUpdater` folds a single final score into the two teams' rows.
* :class:`PositionRanker` renumbers a competition's table.
* :class:`TopScorerAggregator` builds the scorers leaderboard from goal events.
* :class:`ResultRecorder` runs score, events, standings and ranking as one unit of work.
"""

import logging
from dataclasses import dataclass

from errors import ConsistencyError, ValidationError
from models import (
    Competition,
    Match,
    MatchEvent,
    Player,
    Team,
    Standing,
    EVENT_TYPES,
    MAX_EVENT_MINUTE,
    MATCH_CANCELLED,
    POINTS_WIN,
    POINTS_DRAW,
    POINTS_LOSS,
)
from validators import parse_choice, parse_int, parse_optional_int, parse_score

logger = logging.getLogger(__name__)

TOP_SCORER_LIMIT = 20


@dataclass(frozen=True)
class MatchResult:
    competition_id: int
    home_team_id: int
    away_team_id: int
    home_score: int
    away_score: int

    @classmethod
    def from_match(cls, match: Match) -> 'MatchResult':
        return cls(
            competition_id=match.competition_id,
            home_team_id=match.home_team_id,
            away_team_id=match.away_team_id,
            home_score=match.home_score,
            away_score=match.away_score,
        )


@dataclass(frozen=True)
class StandingDelta:
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    points: int


def result_deltas(home_score: int, away_score: int) -> tuple[StandingDelta, StandingDelta]:
    """Per-team contribution of one final score, home first."""
    if home_score > away_score:
        home = (1, 0, 0, POINTS_WIN)
        away = (0, 0, 1, POINTS_LOSS)
    elif home_score < away_score:
        home = (0, 0, 1, POINTS_LOSS)
        away = (1, 0, 0, POINTS_WIN)
    else:
        home = away = (0, 1, 0, POINTS_DRAW)

    return (
        StandingDelta(home[0], home[1], home[2], home_score, away_score, home[3]),
        StandingDelta(away[0], away[1], away[2], away_score, home_score, away[3]),
    )


class StandingsUpdater:
    def __init__(self, store):
        self.store = store

    def apply_result(self, result: MatchResult) -> tuple[Standing, Standing]:
        """Upsert both teams' rows for one finished match; returns (home, away)."""
        if result.home_score is None or result.away_score is None:
            raise ValidationError('Both scores are required to update standings')
        home_score = parse_score(result.home_score, 'homeScore')
        away_score = parse_score(result.away_score, 'awayScore')

        self.store.require(Competition, result.competition_id, 'Competition')
        self.store.require(Team, result.home_team_id, 'Team')
        self.store.require(Team, result.away_team_id, 'Team')
        if result.home_team_id == result.away_team_id:
            raise ValidationError('A team cannot play against itself')

        home_delta, away_delta = result_deltas(home_score, away_score)
        home_row = self._upsert(result.competition_id, result.home_team_id, home_delta)
        away_row = self._upsert(result.competition_id, result.away_team_id, away_delta)
        self.store.flush()
        return home_row, away_row

    def _upsert(self, competition_id: int, team_id: int, delta: StandingDelta) -> Standing:
        row = self.store.find_standing(competition_id, team_id)
        if row is None:
            row = self.store.add(Standing.empty(competition_id, team_id))
        row.apply(delta)

        problems = row.invariant_violations()
        if problems:
            raise ConsistencyError(
                f"Standing for team {team_id} in competition {competition_id} is inconsistent: "
                + '; '.join(problems)
            )
        return row


class PositionRanker:
    def __init__(self, store):
        self.store = store

    def rerank(self, competition_id: int) -> list[Standing]:
        """Sort by points, goal difference, goals scored and renumber from 1.

        Rows still level on all three keys keep the order they were fetched in
        (previous position, then insertion order); there is no head-to-head rule.
        """
        self.store.require(Competition, competition_id, 'Competition')
        rows = self.store.standings_for(competition_id)
        ranked = sorted(rows, key=Standing.sort_key)

        for index, row in enumerate(ranked, start=1):
            if row.position != index:
                row.position = index
        self.store.flush()
        return ranked


@dataclass
class TopScorer:
    player: Player
    goals: int
    matches_appeared_in: int

    def to_dict(self) -> dict:
        return {
            'player': self.player.to_dict(),
            'team': self.player.team.to_dict(),
            'goals': self.goals,
            'matchesAppearedIn': self.matches_appeared_in,
        }


class TopScorerAggregator:
    def __init__(self, store):
        self.store = store

    def top_scorers(self, competition_id: int | None = None, limit: int = TOP_SCORER_LIMIT) -> list[TopScorer]:
        if competition_id is not None:
            self.store.require(Competition, competition_id, 'Competition')

        goals: dict[int, int] = {}
        matches: dict[int, set] = {}
        players: dict[int, Player] = {}
        for event in self.store.goal_events(competition_id):
            if event.player is None:
                continue
            player_id = event.player.id
            players[player_id] = event.player
            goals[player_id] = goals.get(player_id, 0) + 1
            matches.setdefault(player_id, set()).add(event.match_id)

        # equal goal counts are ordered by player id
        ordered = sorted(goals, key=lambda player_id: (-goals[player_id], player_id))
        return [
            TopScorer(
                player=players[player_id],
                goals=goals[player_id],
                matches_appeared_in=len(matches[player_id]),
            )
            for player_id in ordered[:limit]
        ]


def build_event(store, match: Match, payload: dict) -> MatchEvent:
    """Validate one event payload against its match and build the row."""
    if not isinstance(payload, dict):
        raise ValidationError('Each event must be an object')

    team_id = parse_int(payload.get('teamId', payload.get('team_id')), 'teamId')
    if not match.involves(team_id):
        raise ValidationError(f'Team {team_id} is not playing in match {match.id}')

    event_type = parse_choice(payload.get('type'), 'type', EVENT_TYPES)
    minute = parse_int(payload.get('minute'), 'minute', minimum=0, maximum=MAX_EVENT_MINUTE)

    player_id = parse_optional_int(payload.get('playerId', payload.get('player_id')), 'playerId')
    if player_id is not None:
        player = store.require(Player, player_id, 'Player')
        if player.team_id != team_id:
            raise ValidationError(f'Player {player_id} does not belong to team {team_id}')

    details = payload.get('details')
    return MatchEvent(
        match_id=match.id,
        team_id=team_id,
        player_id=player_id,
        type=event_type,
        minute=minute,
        details=str(details).strip() if details else None,
    )


class ResultRecorder:
    """Turns a final score into ranked standings, counting each match exactly once."""

    def __init__(self, store, updater=None, ranker=None):
        self.store = store
        self.updater = updater or StandingsUpdater(store)
        self.ranker = ranker or PositionRanker(store)

    def record_match_result(self, match_id: int, home_score, away_score, events=None) -> Match:
        home_score = parse_score(home_score, 'homeScore')
        away_score = parse_score(away_score, 'awayScore')
        if events is not None and not isinstance(events, (list, tuple)):
            raise ValidationError('events must be a list')

        with self.store.unit_of_work():
            match = self.store.require(Match, match_id, 'Match')
            self._ensure_open(match)
            event_rows = [build_event(self.store, match, payload) for payload in events or ()]

            # guard and status flip are a single UPDATE; a concurrent claim matches no row
            claimed = self.store.claim_match_result(match.id, home_score, away_score)
            if claimed is None:
                raise ConsistencyError(f'Result for match {match_id} has already been recorded')

            if event_rows:
                self.store.add_all(event_rows)
            self._count(claimed)

        logger.info(
            'Recorded result %s-%s for match %s (competition %s, %d events)',
            home_score, away_score, claimed.id, claimed.competition_id, len(event_rows),
        )
        return claimed

    def repair_match(self, match_id: int) -> Match:
        """Count a finished match whose result never reached the standings."""
        with self.store.unit_of_work():
            match = self.store.require(Match, match_id, 'Match')
            if match.standings_applied:
                raise ConsistencyError(f'Match {match_id} is already counted in the standings')
            if not match.is_finished:
                raise ConsistencyError(f'Match {match_id} is not finished')
            if match.home_score is None or match.away_score is None:
                raise ValidationError(f'Match {match_id} has no recorded score')

            claimed = self.store.mark_standings_applied(match.id)
            if claimed is None:
                raise ConsistencyError(f'Match {match_id} is already counted in the standings')
            self._count(claimed)

        logger.info('Repaired standings for match %s', match_id)
        return claimed

    def rebuild_competition(self, competition_id: int) -> list[Standing]:
        """Recompute a competition's table from scratch out of its finished matches."""
        with self.store.unit_of_work():
            self.store.require(Competition, competition_id, 'Competition')
            self.store.delete_standings(competition_id)

            replayed = 0
            for match in self.store.finished_matches(competition_id):
                self.updater.apply_result(MatchResult.from_match(match))
                match.standings_applied = True
                replayed += 1
            ranked = self.ranker.rerank(competition_id)

        logger.info('Rebuilt standings for competition %s from %d matches', competition_id, replayed)
        return ranked

    def pending_matches(self, competition_id: int | None = None) -> list[Match]:
        return self.store.unapplied_matches(competition_id)

    def _ensure_open(self, match: Match) -> None:
        if match.is_finished or match.standings_applied:
            raise ConsistencyError(f'Result for match {match.id} has already been recorded')
        if match.status == MATCH_CANCELLED:
            raise ConsistencyError(f'Match {match.id} was cancelled')

    def _count(self, match: Match) -> None:
        try:
            self.updater.apply_result(MatchResult.from_match(match))
            self.ranker.rerank(match.competition_id)
        except Exception:
            logger.exception(
                'Standings update failed for match %s; its result is rolled back and can be re-recorded',
                match.id,
            )
            raise
