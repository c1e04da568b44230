from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
import logging
import os

import click
import pytz

from errors import BifaError
from models import (
    db,
    Competition,
    Match,
    User,
    DEFAULT_TIMEZONE,
    init_default_data,
    ensure_schema_integrity,
)
from store import DataStore
from standings import ResultRecorder
from blueprints.auth import auth_bp, load_current_user
from blueprints.federation import federation_bp
from blueprints.public import public_bp
from blueprints.referee import referee_bp
from blueprints.secretariat import secretariat_bp

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _database_uri():
    # Database configuration - supports both local SQLite and remote PostgreSQL
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # Heroku PostgreSQL URL fix (postgres:// → postgresql://)
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url, None

    default_sqlite_dir = os.path.join(BASE_DIR, 'instance')
    sqlite_path = os.environ.get('SQLITE_PATH', os.path.join(default_sqlite_dir, 'bifa.db'))
    return f'sqlite:///{sqlite_path}', sqlite_path


def create_app(test_config=None):
    app = Flask(__name__)

    database_uri, sqlite_path = _database_uri()
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'bifa')
    app.config['SQLALCHEMY_DATABASE_URI'] = database_uri
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    app.config['MATCH_RETENTION_DAYS'] = int(os.environ.get('MATCH_RETENTION_DAYS', '365'))
    app.config['BIFA_TIMEZONE'] = os.environ.get('BIFA_TIMEZONE', DEFAULT_TIMEZONE)
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')

    if test_config:
        app.config.update(test_config)
        if test_config.get('SQLALCHEMY_DATABASE_URI'):
            sqlite_path = None

    # raises UnknownTimeZoneError for a bad zone name
    pytz.timezone(app.config['BIFA_TIMEZONE'])

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if sqlite_path:
        os.makedirs(os.path.dirname(sqlite_path), exist_ok=True)

    db.init_app(app)

    with app.app_context():
        db.create_all()
        ensure_schema_integrity()

        # Seed defaults only if the bootstrap administrator is missing
        if not User.query.filter_by(role='ADMIN').first():
            init_default_data()

        app.logger.info('Database initialized at %s', app.config['SQLALCHEMY_DATABASE_URI'])

    app.register_blueprint(auth_bp)
    app.register_blueprint(federation_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(referee_bp)
    app.register_blueprint(secretariat_bp)

    app.before_request(load_current_user)
    _register_error_handlers(app)
    _register_commands(app)

    @app.route('/')
    def index():
        return jsonify(
            {
                'name': 'BIFA administration API',
                'competitions': Competition.query.count(),
                'liveMatches': Match.query.filter_by(status='LIVE').count(),
            }
        )

    return app


def _register_error_handlers(app):
    @app.errorhandler(BifaError)
    def handle_bifa_error(error):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        app.logger.warning('Integrity error: %s', error.orig)
        return jsonify({'error': 'The change conflicts with existing data'}), 409

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description}), error.code


def _register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create tables and seed the bootstrap administrator."""
        db.create_all()
        init_default_data()
        click.echo('Database initialized. Bootstrap admin: admin@bifa.local')

    @app.cli.command('rebuild-standings')
    @click.argument('competition_id', type=int)
    def rebuild_standings_command(competition_id):
        """Recompute a competition's table from its finished matches."""
        ranked = ResultRecorder(DataStore(db.session)).rebuild_competition(competition_id)
        for row in ranked:
            click.echo(f'{row.position:>3}  {row.team.name:<30} {row.played:>3} {row.goal_diff:>4} {row.points:>4}')

    @app.cli.command('prune-matches')
    @click.option('--days', type=int, default=None, help='Retention window in days.')
    def prune_matches_command(days):
        """Delete cancelled and archived finished matches past the retention window."""
        retention = days if days is not None else app.config['MATCH_RETENTION_DAYS']
        removed = Match.prune_expired(retention)
        click.echo(f'Pruned {removed} match(es) older than {retention} days')


if __name__ == "__main__":
    create_app().run(debug=True, port=5000)
