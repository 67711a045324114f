from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from tally.api.store import store
    # Generic table endpoints backing the device-side RemoteStore
    flask_app.register_blueprint(store, url_prefix='/api/tables')

    from tally.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database."""
        import tally.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('end-room')
    @click.argument('code')
    def end_room_command(code):
        """Marks a room as ended."""
        from tally.models import Room
        with flask_app.app_context():
            room = db.session.get(Room, code)
            if room is None:
                raise click.ClickException(f'Room {code} not found')
            room.status = 'ended'
            db.session.commit()
            print(f'Room {code} ended.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(end_room_command)

    return flask_app
