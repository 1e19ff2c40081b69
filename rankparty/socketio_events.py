from flask_socketio import join_room, leave_room, emit
from rankparty import socketio
from rankparty.errors import GameError
from rankparty.services.games import get_game_by_code
from rankparty.services.games.notifications import GAME_UPDATED, room_for


def _game_code(data):
    game_code = (data or {}).get('game_code')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
    return game_code


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_game(data):
    game_code = _game_code(data)
    if not game_code:
        return
    room = room_for(game_code)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_game(data):
    game_code = _game_code(data)
    if not game_code:
        return
    room = room_for(game_code)
    leave_room(room)
    emit('left', {'room': room})


def handle_sync_game(data):
    """Send the current game snapshot to this socket only, e.g. after a reconnect."""
    game_code = _game_code(data)
    if not game_code:
        return
    try:
        game = get_game_by_code(game_code)
    except GameError as exc:
        emit('error', exc.to_dict())
        return
    emit(GAME_UPDATED, game.to_dict())


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'.

    Clients join the room of a game code and then receive ``game_updated``,
    ``players_updated`` and ``round_updated`` pushes for that game.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_game', handle_join_game, namespace='/ws')
    socketio.on_event('leave_game', handle_leave_game, namespace='/ws')
    socketio.on_event('sync_game', handle_sync_game, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')
