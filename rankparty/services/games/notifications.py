from flask import current_app

GAME_UPDATED = 'game_updated'
PLAYERS_UPDATED = 'players_updated'
ROUND_UPDATED = 'round_updated'


def room_for(game_code: str) -> str:
    return f"game:{game_code.upper()}"


class Notifier:
    """Publishes committed state changes to observers.

    Delivery is fire-and-forget; subscribers re-read state on each event.
    """

    def publish(self, event: str, game_code: str, payload: dict) -> None:
        raise NotImplementedError


class SocketIONotifier(Notifier):
    def __init__(self, socketio, namespace='/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def publish(self, event, game_code, payload):
        self.socketio.emit(event, payload, to=room_for(game_code), namespace=self.namespace)


def get_notifier() -> Notifier:
    return current_app.extensions['rankparty.notifier']


def _publish(event, game_code, payload):
    # Callers have already committed; a failed emit must not undo that.
    try:
        get_notifier().publish(event, game_code, payload)
    except Exception:
        current_app.logger.exception(f"[notify-failed] event={event} game={game_code}")


def game_updated(game):
    _publish(GAME_UPDATED, game.code, game.to_dict(include_players=False))


def players_updated(game):
    _publish(PLAYERS_UPDATED, game.code, {
        'game_id': game.id,
        'players': [p.to_dict() for p in game.players],
    })


def round_updated(game, rnd):
    _publish(ROUND_UPDATED, game.code, rnd.to_dict())
