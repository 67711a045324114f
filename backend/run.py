import os

from tally import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # SocketIO server carries both the HTTP API and the /ws change feed
    socketio.run(
        app,
        host=os.environ.get('TALLY_HOST', '127.0.0.1'),
        port=int(os.environ.get('TALLY_PORT', '5000')),
        debug=bool(os.environ.get('FLASK_DEBUG')),
    )
