import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One coordinator (and one registry) per app instance
    from poker.services.session import SessionCoordinator
    flask_app.extensions['poker_session'] = SessionCoordinator(flask_app, socketio)

    # Import and register blueprints here
    from poker.main import main
    flask_app.register_blueprint(main)

    from poker.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from poker.api.stories import stories
    flask_app.register_blueprint(stories, url_prefix='/api/stories')

    # Register Socket.IO event handlers
    # Importing here ensures the handlers bind to the initialized socketio instance
    from poker.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo room."""
        from poker.services.rooms import room_service
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            room = room_service.create_room(
                'Demo room',
                description='Seeded by db-reset',
                owner={'id': 'demo-owner', 'name': 'Demo Owner'},
            )
            print(f"Database has been reset and seeded! Demo room: {room.id}")

    flask_app.cli.add_command(db_reset_command)

    return flask_app
