from flask_socketio import join_room, leave_room, emit
from flask import current_app, request


def _room_name(data):
    room_code = str((data or {}).get('room_code') or '').strip()
    return room_code, (f"room:{room_code}" if room_code else None)


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Socket.IO drops the sid from its rooms on its own
    current_app.logger.debug(f"[ws-disconnect] sid={request.sid}")


def handle_subscribe_room(data):
    room_code, room = _room_name(data)
    if not room:
        emit('error', {'message': 'room_code is required'})
        return
    join_room(room)
    current_app.logger.info(f"[ws-subscribe] sid={request.sid} room={room_code}")
    emit('subscribed', {'room': room})


def handle_unsubscribe_room(data):
    room_code, room = _room_name(data)
    if not room:
        emit('error', {'message': 'room_code is required'})
        return
    leave_room(room)
    emit('unsubscribed', {'room': room})


def handle_broadcast(data):
    """Relay an application message to everyone else subscribed to the room."""
    room_code, room = _room_name(data)
    event = (data or {}).get('event')
    if not room or not event:
        emit('error', {'message': 'room_code and event are required'})
        return
    emit(
        'broadcast',
        {'room_code': room_code, 'event': event, 'payload': (data or {}).get('payload') or {}},
        to=room,
        include_self=False,
    )
    current_app.logger.info(f"[ws-broadcast] room={room_code} event={event}")


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from tally import socketio

    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'subscribe_room': handle_subscribe_room,
        'unsubscribe_room': handle_unsubscribe_room,
        'broadcast': handle_broadcast,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for name, handler in handlers.items():
            socketio.on_event(name, handler, namespace=namespace)
