from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from rankparty.config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from rankparty.services.games.notifications import SocketIONotifier
    flask_app.extensions['rankparty.notifier'] = SocketIONotifier(socketio)

    from rankparty.main import main
    flask_app.register_blueprint(main)

    from rankparty.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from rankparty.api.topics import topics
    flask_app.register_blueprint(topics, url_prefix='/api/topics')

    from rankparty.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        flask_app.logger.warning(
            f"[rejected] kind={exc.kind} entity={exc.entity} id={exc.entity_id} msg={exc.message}"
        )
        return jsonify(exc.to_dict()), exc.status_code

    from rankparty.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from rankparty.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'kind': 'unauthorized'}), 401

    from rankparty.seed import seed_topics, seed_users

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            seed_users(['testuser1', 'testuser2', 'testuser3'], 'password')
            seed_topics()
            print('Database has been reset and seeded!')

    @click.command('seed-topics')
    def seed_topics_command():
        """Adds the default topic catalogue, skipping topics that exist."""
        with flask_app.app_context():
            created = seed_topics()
            print(f'Seeded {created} topics.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_topics_command)

    return flask_app
