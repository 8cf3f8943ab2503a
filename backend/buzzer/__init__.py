import logging

import click
from flask import Flask, current_app
from flask_cors import CORS
from flask_socketio import SocketIO

from buzzer.config import Config

socketio = SocketIO(async_mode=None)

SOCKET_NAMESPACE = '/ws'


def _room_broadcaster():
    # Timer callbacks run outside any request context, so emit on the server
    def _broadcast(session_id, message):
        socketio.emit('session_update', message, to=session_id, namespace=SOCKET_NAMESPACE)
    return _broadcast


def create_app(config_class=Config, timers=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    level = getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    flask_app.logger.setLevel(level)
    logging.getLogger('buzzer').setLevel(level)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from buzzer.services.sessions import BackgroundTimerService, SessionEngine
    if timers is None:
        timers = BackgroundTimerService(socketio)
    engine = SessionEngine.from_config(flask_app.config, timers, _room_broadcaster())
    flask_app.extensions['session_engine'] = engine
    if flask_app.config.get('BACKUP_SWEEP_ENABLED', True):
        engine.start()

    from buzzer.main import main
    flask_app.register_blueprint(main)

    from buzzer.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/sessions')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from buzzer.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('sessions')
    def list_sessions_command():
        """Lists the live sessions held by this process."""
        snapshots = engine.list_sessions()
        if not snapshots:
            click.echo('No live sessions.')
            return
        for snapshot in sorted(snapshots, key=lambda s: s['code']):
            click.echo(
                f"{snapshot['code']}  {snapshot['name']}  "
                f"players={len(snapshot['players'])}  phase={snapshot['phase']}"
            )

    flask_app.cli.add_command(list_sessions_command)

    return flask_app


def get_engine(app=None):
    return (app or current_app).extensions['session_engine']
