"""Row-level locks for the game aggregate.

``SELECT ... FOR UPDATE`` keeps concurrent requests for the same game or
round serialized until the surrounding transaction commits or rolls back.
Backends without row locks (SQLite) ignore the clause.
"""
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from rankparty import db
from rankparty.errors import ConflictError
from rankparty.models import Game, Round


def with_game_lock(game_id):
    """Query for a game row locked for the current transaction.

    Call ``.first()`` on the result.
    """
    return Game.query.filter(Game.id == game_id).with_for_update(nowait=False)


def with_round_lock(round_id):
    """Query for a round row locked for the current transaction.

    Used by every round transition and when scoring, so a round is never
    scored twice.
    """
    return Round.query.filter(Round.id == round_id).with_for_update(nowait=False)


@contextmanager
def atomic(entity=None, entity_id=None, conflict_message='Conflicting update'):
    """Commit the enclosed writes as one unit or not at all.

    Uniqueness violations become ``ConflictError``; any other failure rolls
    back and propagates unchanged.
    """
    try:
        yield
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message, entity, entity_id) from exc
    except Exception:
        db.session.rollback()
        raise
