"""Public-facing routes for viewing competitions, fixtures, standings and scorers."""

from dataclasses import dataclass

from flask import Blueprint, jsonify, request
from sqlalchemy.orm import joinedload

from models import (
    Competition,
    Team,
    Match,
    current_time,
    MATCH_LIVE,
    MATCH_SCHEDULED,
    FINISHED_STATUSES,
    MATCH_STATUSES,
)
from standings import TopScorerAggregator
from store import current_store
from validators import parse_choice, parse_optional_int

public_bp = Blueprint("public", __name__, url_prefix="/public")


@dataclass
class CompetitionSummary:
    competition: Competition
    live_matches: list[Match]
    upcoming_matches: list[Match]
    recent_results: list[Match]

    def to_dict(self) -> dict:
        payload = self.competition.to_dict()
        payload.update(
            {
                "liveMatches": [match.to_dict() for match in self.live_matches],
                "upcomingMatches": [match.to_dict() for match in self.upcoming_matches],
                "recentResults": [match.to_dict() for match in self.recent_results],
            }
        )
        return payload


def _with_teams(query):
    return query.options(joinedload(Match.home_team), joinedload(Match.away_team))


@public_bp.route("/competitions")
def competitions_listing():
    now = current_time()
    competitions = (
        Competition.query.options(joinedload(Competition.matches))
        .order_by(Competition.start_date.desc())
        .all()
    )

    summaries: list[CompetitionSummary] = []
    for competition in competitions:
        matches = competition.matches
        live_matches = [m for m in matches if m.status == MATCH_LIVE]
        upcoming_matches = [
            m
            for m in matches
            if m.status == MATCH_SCHEDULED and m.scheduled_at >= now
        ]
        upcoming_matches.sort(key=lambda match: match.scheduled_at)

        completed_matches = [m for m in matches if m.status in FINISHED_STATUSES]
        completed_matches.sort(key=lambda match: match.scheduled_at, reverse=True)

        summaries.append(
            CompetitionSummary(
                competition=competition,
                live_matches=live_matches[:3],
                upcoming_matches=upcoming_matches[:5],
                recent_results=completed_matches[:5],
            )
        )

    return jsonify([summary.to_dict() for summary in summaries])


@public_bp.route("/competitions/<int:competition_id>")
def competition_detail(competition_id: int):
    competition = current_store().require(Competition, competition_id, "Competition")
    payload = competition.to_dict(include_standings=True)
    payload["matches"] = [
        match.to_dict()
        for match in sorted(competition.matches, key=lambda match: (match.scheduled_at, match.id))
    ]
    return jsonify(payload)


@public_bp.route("/competitions/<int:competition_id>/standings")
def competition_standings(competition_id: int):
    store = current_store()
    store.require(Competition, competition_id, "Competition")
    return jsonify([row.to_dict() for row in store.standings_for(competition_id)])


@public_bp.route("/top-scorers")
def top_scorers():
    competition_id = parse_optional_int(request.args.get("competitionId"), "competitionId")
    scorers = TopScorerAggregator(current_store()).top_scorers(competition_id)
    return jsonify([scorer.to_dict() for scorer in scorers])


@public_bp.route("/matches")
def match_hub():
    query = _with_teams(Match.query)

    status = request.args.get("status")
    if status:
        query = query.filter(Match.status == parse_choice(status, "status", MATCH_STATUSES))

    competition_id = parse_optional_int(request.args.get("competitionId"), "competitionId")
    if competition_id is not None:
        query = query.filter(Match.competition_id == competition_id)

    if request.args.get("upcoming") == "true":
        query = query.filter(Match.scheduled_at >= current_time()).order_by(Match.scheduled_at.asc())
    else:
        query = query.order_by(Match.scheduled_at.desc())

    return jsonify([match.to_dict() for match in query.limit(100).all()])


@public_bp.route("/matches/live")
def live_matches():
    matches = (
        _with_teams(Match.query)
        .filter(Match.status == MATCH_LIVE)
        .order_by(Match.scheduled_at.asc())
        .all()
    )
    return jsonify([match.to_dict() for match in matches])


@public_bp.route("/matches/<int:match_id>")
def match_detail(match_id: int):
    match = current_store().require(Match, match_id, "Match")
    payload = match.to_dict(include_events=True)
    payload["assignments"] = [assignment.to_dict() for assignment in match.assignments]
    return jsonify(payload)


@public_bp.route("/teams")
def teams_listing():
    teams = (
        Team.query.options(joinedload(Team.players))
        .filter(Team.is_active.is_(True))
        .order_by(Team.name.asc())
        .all()
    )
    return jsonify([team.to_dict(include_players=True) for team in teams])


@public_bp.route("/teams/<int:team_id>")
def team_profile(team_id: int):
    team = current_store().require(Team, team_id, "Team")
    payload = team.to_dict(include_players=True)
    payload["upcomingMatches"] = [match.to_dict() for match in team.get_upcoming_matches()]
    return jsonify(payload)
