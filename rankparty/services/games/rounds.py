"""Round lifecycle: topic selection, VIP ranking, guessing, reveal, completion.

Transitions only ever move one step forward::

    topic_selection -> vip_ranking -> player_guessing -> revealing -> complete

``revealing`` may also step to itself while the reveal index advances. Every
operation locks the round row, validates, writes, and commits once; a
rejected operation raises a typed error and leaves nothing behind.
Positions in rankings and guesses are 0-based.
"""
from collections.abc import Mapping

from flask import current_app
from sqlalchemy import update

from rankparty import db
from rankparty.errors import (
    ConflictError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError,
)
from rankparty.models import GameStatus, Guess, Ranking, Round, RoundStatus, Topic, utcnow
from . import notifications
from .coordinator import (
    ensure_can_start, get_game, require_player, score_completed_round,
)
from .locks import atomic, with_game_lock, with_round_lock

MIN_TOPIC_ITEMS = 2


def get_round(round_id):
    rnd = db.session.get(Round, round_id)
    if not rnd:
        raise NotFoundError('round', round_id)
    return rnd


def get_current_round(game_id):
    return get_game(game_id).current_round


def _lock_round(round_id):
    rnd = with_round_lock(round_id).first()
    if not rnd:
        raise NotFoundError('round', round_id)
    return rnd


def _check_transition(rnd, target):
    if not RoundStatus.is_next(rnd.status, target):
        raise InvalidStateError(f'Round cannot move from {rnd.status} to {target}', 'round', rnd.id)


def _advance(rnd, target):
    _check_transition(rnd, target)
    rnd.status = target


def _require_status(rnd, status, message=None):
    if rnd.status != status:
        raise InvalidStateError(
            message or f'Round {rnd.round_number} is in {rnd.status}, expected {status}', 'round', rnd.id
        )


def _require_vip(rnd, user_id, action):
    if rnd.vip_id != user_id:
        raise UnauthorizedError(f'Only the VIP may {action}', 'round', rnd.id)


def _strict_int(value):
    # int() would truncate 1.5 and accept True
    if isinstance(value, bool):
        raise TypeError(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value)
    raise TypeError(value)


def parse_permutation(entries, items, round_id):
    """Validate a full ordering of ``items``; returns {item_id: position}.

    ``entries`` is a list of ``{'item_id': .., 'position': ..}`` mappings or
    ``(item_id, position)`` pairs. Positions must be exactly 0..N-1.
    """
    if not isinstance(entries, (list, tuple)):
        raise ValidationError('Expected a list of {item_id, position} entries', 'round', round_id)
    count = len(items)
    if len(entries) != count:
        raise ValidationError(f'Expected {count} entries, got {len(entries)}', 'round', round_id)
    known = {item.id for item in items}
    result = {}
    taken = set()
    for entry in entries:
        try:
            if isinstance(entry, Mapping):
                item_id, position = entry['item_id'], entry['position']
            else:
                item_id, position = entry
            item_id, position = _strict_int(item_id), _strict_int(position)
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f'Malformed entry: {entry!r}', 'round', round_id)
        if item_id not in known:
            raise ValidationError(f'Item {item_id} is not part of this topic', 'topic_item', item_id)
        if item_id in result:
            raise ValidationError(f'Item {item_id} appears more than once', 'topic_item', item_id)
        if not 0 <= position < count:
            raise ValidationError(f'Position {position} is outside 0..{count - 1}', 'round', round_id)
        if position in taken:
            raise ValidationError(f'Position {position} is used more than once', 'round', round_id)
        result[item_id] = position
        taken.add(position)
    return result


def select_topic(game_id, user_id, topic_id):
    """VIP picks a topic, creating the next round in ``vip_ranking``."""
    with atomic('game', game_id, 'A round was started concurrently'):
        game = with_game_lock(game_id).first()
        if not game:
            raise NotFoundError('game', game_id)
        if game.status == GameStatus.FINISHED:
            raise InvalidStateError('Game is finished', 'game', game.id)
        if game.current_vip_id != user_id:
            raise UnauthorizedError('Only the VIP may choose the topic', 'game', game.id)
        previous = game.current_round
        if previous is not None and previous.status != RoundStatus.COMPLETE:
            raise InvalidStateError(f'Round {previous.round_number} is still in progress', 'round', previous.id)
        topic = db.session.get(Topic, topic_id)
        if not topic:
            raise NotFoundError('topic', topic_id)
        if len(topic.items) < MIN_TOPIC_ITEMS:
            raise ValidationError(f'Topic needs at least {MIN_TOPIC_ITEMS} items', 'topic', topic.id)
        if game.status == GameStatus.WAITING:
            ensure_can_start(game)
            game.status = GameStatus.PLAYING
        rnd = Round(
            game_id=game.id,
            round_number=(previous.round_number if previous else 0) + 1,
            topic_id=topic.id,
            vip_id=user_id,
            status=RoundStatus.TOPIC_SELECTION,
            reveal_index=0,
        )
        _advance(rnd, RoundStatus.VIP_RANKING)
        db.session.add(rnd)
    current_app.logger.info(
        f"[round-started] game={game.id} round={rnd.round_number} topic={topic_id} vip={user_id}"
    )
    notifications.round_updated(game, rnd)
    notifications.game_updated(game)
    return rnd


start_round = select_topic


def submit_ranking(round_id, user_id, entries):
    """Store the VIP's ranking and open guessing."""
    with atomic('round', round_id, 'A ranking was already submitted for this round'):
        rnd = _lock_round(round_id)
        _require_vip(rnd, user_id, 'submit the ranking')
        if rnd.rankings:
            raise ConflictError('A ranking was already submitted for this round', 'round', rnd.id)
        _require_status(rnd, RoundStatus.VIP_RANKING)
        ranking = parse_permutation(entries, rnd.topic.items, rnd.id)
        for item_id, position in ranking.items():
            db.session.add(Ranking(round_id=rnd.id, item_id=item_id, position=position))
        _advance(rnd, RoundStatus.PLAYER_GUESSING)
    current_app.logger.info(f"[ranking] game={rnd.game_id} round={rnd.round_number} items={len(ranking)}")
    notifications.round_updated(rnd.game, rnd)
    return rnd


def submit_guess(round_id, user_id, entries):
    """Store one player's full guess; each player guesses once per round."""
    with atomic('round', round_id, 'You have already guessed this round'):
        rnd = _lock_round(round_id)
        _require_status(rnd, RoundStatus.PLAYER_GUESSING, 'Not accepting guesses at this time')
        require_player(rnd.game, user_id)
        if rnd.vip_id == user_id:
            raise UnauthorizedError('The VIP cannot guess', 'round', rnd.id)
        if Guess.query.filter_by(round_id=rnd.id, user_id=user_id).first():
            raise ConflictError('You have already guessed this round', 'round', rnd.id)
        guess = parse_permutation(entries, rnd.topic.items, rnd.id)
        for item_id, position in guess.items():
            db.session.add(Guess(round_id=rnd.id, user_id=user_id, item_id=item_id, position=position))
    current_app.logger.info(f"[guess] game={rnd.game_id} round={rnd.round_number} user={user_id}")
    notifications.round_updated(rnd.game, rnd)
    return rnd


def start_reveal(round_id, user_id):
    """Close guessing; the first ranked item becomes visible (reveal_index 1)."""
    with atomic('round', round_id):
        rnd = _lock_round(round_id)
        _require_vip(rnd, user_id, 'start the reveal')
        _require_status(rnd, RoundStatus.PLAYER_GUESSING)
        _advance(rnd, RoundStatus.REVEALING)
        rnd.reveal_index = 1
    current_app.logger.info(f"[reveal-start] game={rnd.game_id} round={rnd.round_number}")
    notifications.round_updated(rnd.game, rnd)
    return rnd


def advance_reveal(round_id, user_id):
    """Disclose the next ranked item, or complete the round once all are shown.

    At ``reveal_index == item_count`` the index never grows further: the call
    completes and scores the round instead.
    """
    with atomic('round', round_id):
        rnd = _lock_round(round_id)
        _require_vip(rnd, user_id, 'advance the reveal')
        _require_status(rnd, RoundStatus.REVEALING)
        current = rnd.reveal_index
        total = rnd.item_count
        if current >= total:
            completing = True
        else:
            completing = False
            _check_transition(rnd, RoundStatus.REVEALING)
            result = db.session.execute(
                update(Round)
                .where(Round.id == rnd.id, Round.status == RoundStatus.REVEALING, Round.reveal_index == current)
                .values(reveal_index=current + 1)
            )
            if result.rowcount != 1:
                raise InvalidStateError('Reveal was advanced concurrently', 'round', rnd.id)
    if completing:
        return complete_round(round_id, user_id)
    current_app.logger.info(f"[reveal] game={rnd.game_id} round={rnd.round_number} index={rnd.reveal_index}/{total}")
    notifications.round_updated(rnd.game, rnd)
    return rnd


def complete_round(round_id, user_id=None):
    """Move a fully revealed round to ``complete`` and score it, atomically.

    The status change is a compare-and-swap on (revealing, reveal_index ==
    item_count), so concurrent callers cannot score a round twice.
    """
    with atomic('round', round_id, 'Round result was already applied'):
        rnd = _lock_round(round_id)
        if user_id is not None:
            _require_vip(rnd, user_id, 'complete the round')
        _require_status(rnd, RoundStatus.REVEALING)
        total = rnd.item_count
        if rnd.reveal_index < total:
            raise InvalidStateError(
                f'Only {rnd.reveal_index} of {total} items have been revealed', 'round', rnd.id
            )
        game = with_game_lock(rnd.game_id).first()
        _check_transition(rnd, RoundStatus.COMPLETE)
        result = db.session.execute(
            update(Round)
            .where(Round.id == rnd.id, Round.status == RoundStatus.REVEALING, Round.reveal_index == total)
            .values(status=RoundStatus.COMPLETE, completed_at=utcnow())
        )
        if result.rowcount != 1:
            raise InvalidStateError('Round was completed concurrently', 'round', rnd.id)
        score_completed_round(game, rnd)
    current_app.logger.info(f"[round-complete] game={game.id} round={rnd.round_number} status={game.status}")
    notifications.round_updated(game, rnd)
    notifications.players_updated(game)
    notifications.game_updated(game)
    return rnd
