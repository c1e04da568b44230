from flask import Blueprint, jsonify, request, session, g
from functools import wraps

from errors import AuthenticationError, AuthorizationError, ValidationError
from models import db, User
from store import current_store

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


# Helper function - load current user
def load_current_user():
    """Load user into g.current_user for easy access"""
    user_id = session.get('user_id')
    user = db.session.get(User, user_id) if user_id is not None else None
    g.current_user = user if user and user.is_active else None


def require_role(*roles):
    """Allow the request through only for logged-in users holding one of ``roles``."""

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, 'current_user', None)
            if not user:
                raise AuthenticationError('Please log in to access this resource.')
            if not user.has_role(*roles):
                raise AuthorizationError('Permission denied. You do not have the required privileges.')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def login_required(f):
    """Require any logged-in user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, 'current_user', None):
            raise AuthenticationError('Please log in to access this resource.')
        return f(*args, **kwargs)
    return decorated_function


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def check_user_uniqueness(email, license_number=None, exclude_id=None):
    """
    Check if email or license number already exists in database.
    Returns list of errors. Requires Flask app context.
    """
    errors = []

    existing = User.query.filter_by(email=email).first()
    if existing and existing.id != exclude_id:
        errors.append("Email already registered")

    if license_number:
        existing = User.query.filter_by(license_number=license_number).first()
        if existing and existing.id != exclude_id:
            errors.append("License number already registered")

    return errors


def _clean(value):
    if value is None:
        return None
    return str(value).strip() or None


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(g.current_user.to_dict())


@auth_bp.route('/users')
@require_role('ADMIN')
def list_users():
    query = User.query
    role = request.args.get('role')
    if role:
        query = query.filter_by(role=role.upper())
    users = query.order_by(User.last_name.asc(), User.first_name.asc()).all()
    return jsonify([user.to_dict() for user in users])


@auth_bp.route('/users', methods=['POST'])
@require_role('ADMIN')
def create_user():
    """Create a staff account with a federation role"""
    payload = json_payload()
    email = _clean(payload.get('email'))
    first_name = _clean(payload.get('firstName'))
    last_name = _clean(payload.get('lastName'))
    role = (_clean(payload.get('role')) or '').upper()
    phone_number = _clean(payload.get('phoneNumber'))
    license_number = _clean(payload.get('licenseNumber'))

    # Validate format (no DB queries)
    errors = User.validate_format(email, first_name, last_name, role, phone_number, license_number)

    # Check uniqueness (requires DB queries)
    if not errors:
        errors.extend(check_user_uniqueness(email, license_number))

    if errors:
        raise ValidationError('; '.join(errors))

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        phone_number=phone_number,
        license_number=license_number,
    )
    with current_store().unit_of_work() as store:
        store.add(user)

    return jsonify(user.to_dict()), 201


@auth_bp.route('/users/<int:user_id>')
@require_role('ADMIN')
def get_user(user_id):
    return jsonify(current_store().require(User, user_id, 'User').to_dict())


@auth_bp.route('/users/<int:user_id>', methods=['PUT'])
@require_role('ADMIN')
def update_user(user_id):
    payload = json_payload()
    with current_store().unit_of_work() as store:
        user = store.require(User, user_id, 'User')

        first_name = _clean(payload.get('firstName')) or user.first_name
        last_name = _clean(payload.get('lastName')) or user.last_name
        role = (_clean(payload.get('role')) or user.role).upper()
        phone_number = _clean(payload.get('phoneNumber', user.phone_number))
        license_number = _clean(payload.get('licenseNumber', user.license_number))
        if role != 'REFEREE' and 'licenseNumber' not in payload:
            license_number = None

        errors = User.validate_format(user.email, first_name, last_name, role, phone_number, license_number)
        if not errors:
            errors.extend(check_user_uniqueness(user.email, license_number, exclude_id=user.id))
        if errors:
            raise ValidationError('; '.join(errors))

        if user.id == g.current_user.id and role != 'ADMIN':
            raise ValidationError('Administrators cannot remove their own ADMIN role')
        if user.id == g.current_user.id and 'isActive' in payload and not payload['isActive']:
            raise ValidationError('You cannot deactivate your own account')

        user.first_name = first_name
        user.last_name = last_name
        user.role = role
        user.phone_number = phone_number
        user.license_number = license_number
        if 'isActive' in payload:
            user.is_active = bool(payload['isActive'])

    return jsonify(user.to_dict())


@auth_bp.route('/users/<int:user_id>', methods=['DELETE'])
@require_role('ADMIN')
def deactivate_user(user_id):
    """Deactivate an account; matches and reports keep referring to it."""
    with current_store().unit_of_work() as store:
        user = store.require(User, user_id, 'User')
        if user.id == g.current_user.id:
            raise ValidationError('You cannot deactivate your own account')
        user.is_active = False

    return jsonify({'message': 'User deactivated', 'user': user.to_dict()})
