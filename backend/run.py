import atexit

from buzzer import create_app, get_engine, socketio

app = create_app()
atexit.register(get_engine(app).shutdown)

if __name__ == '__main__':
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True, use_reloader=False)
