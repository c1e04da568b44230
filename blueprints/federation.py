"""Federation official workflows: national squad selection."""

from flask import Blueprint, jsonify, g

from blueprints.auth import require_role, json_payload
from errors import ValidationError
from models import NationalSquad, Player, Team
from store import current_store
from validators import parse_int, require_fields

federation_bp = Blueprint('federation', __name__, url_prefix='/federation')


def _selected_players(store, value) -> list:
    if not isinstance(value, list):
        raise ValidationError('playerIds must be a list')

    players = []
    seen = set()
    for raw in value:
        player_id = parse_int(raw, 'playerIds')
        if player_id in seen:
            continue
        seen.add(player_id)
        player = store.require(Player, player_id, 'Player')
        if not player.is_active:
            raise ValidationError(f'Player {player_id} is not active')
        players.append(player)
    return players


def _clean_name(value) -> str:
    name = str(value).strip()
    if not name:
        raise ValidationError('name cannot be empty')
    return name


@federation_bp.route('/squads', methods=['POST'])
@require_role('FEDERATION_OFFICIAL')
def create_squad():
    payload = json_payload()
    require_fields(payload, 'name')

    with current_store().unit_of_work() as store:
        squad = NationalSquad(
            name=_clean_name(payload['name']),
            description=payload.get('description'),
            created_by=g.current_user.id,
        )
        squad.players = _selected_players(store, payload.get('playerIds', []))
        store.add(squad)

    return jsonify(squad.to_dict()), 201


@federation_bp.route('/squads')
@require_role('FEDERATION_OFFICIAL', 'ADMIN')
def list_squads():
    squads = NationalSquad.query.order_by(
        NationalSquad.created_at.desc(), NationalSquad.id.desc()
    ).all()
    return jsonify([squad.to_dict() for squad in squads])


@federation_bp.route('/squads/<int:squad_id>')
@require_role('FEDERATION_OFFICIAL', 'ADMIN')
def get_squad(squad_id):
    squad = current_store().require(NationalSquad, squad_id, 'Squad')
    return jsonify(squad.to_dict())


@federation_bp.route('/squads/<int:squad_id>', methods=['PUT'])
@require_role('FEDERATION_OFFICIAL')
def update_squad(squad_id):
    """Rename a squad or replace its selection; ``playerIds`` is the full new list."""
    payload = json_payload()
    with current_store().unit_of_work() as store:
        squad = store.require(NationalSquad, squad_id, 'Squad')
        if 'name' in payload:
            squad.name = _clean_name(payload['name'])
        if 'description' in payload:
            squad.description = payload['description']
        if 'playerIds' in payload:
            squad.players = _selected_players(store, payload['playerIds'])

    return jsonify(squad.to_dict())


@federation_bp.route('/squads/available-players')
@require_role('FEDERATION_OFFICIAL', 'ADMIN')
def available_players():
    players = (
        Player.query.join(Team)
        .filter(Player.is_active.is_(True), Team.is_active.is_(True))
        .order_by(Team.name, Player.first_name, Player.id)
        .all()
    )
    return jsonify([dict(player.to_dict(), team=player.team.to_dict()) for player in players])
