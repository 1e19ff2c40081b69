"""Game-level operations: games, players, VIP rotation and the win condition."""
import random
import string
from collections import defaultdict

from flask import current_app
from sqlalchemy.exc import IntegrityError

from rankparty import db
from rankparty.errors import (
    ConflictError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError,
)
from rankparty.models import Game, GameStatus, Player, Round, RoundScore, RoundStatus, utcnow
from . import notifications
from .locks import atomic, with_game_lock, with_round_lock
from .scoring import ScoringConfig, score_round

CODE_ALPHABET = string.ascii_uppercase + string.digits
SETTING_KEYS = ('target_score', 'points_per_correct', 'bonus_all_correct', 'penalty_all_wrong')


def generate_game_code(length=6):
    return ''.join(random.choices(CODE_ALPHABET, k=length))


def default_settings():
    cfg = current_app.config
    return {
        'target_score': int(cfg.get('DEFAULT_TARGET_SCORE', 1000)),
        'points_per_correct': int(cfg.get('DEFAULT_POINTS_PER_CORRECT', 100)),
        'bonus_all_correct': int(cfg.get('DEFAULT_BONUS_ALL_CORRECT', 200)),
        'penalty_all_wrong': int(cfg.get('DEFAULT_PENALTY_ALL_WRONG', -50)),
    }


def validate_settings(settings, game_id=None):
    unknown = set(settings) - set(SETTING_KEYS)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}", 'game', game_id)
    clean = {}
    for key, value in settings.items():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{key} must be an integer", 'game', game_id)
        clean[key] = value
    if clean.get('target_score', 1) <= 0:
        raise ValidationError('target_score must be positive', 'game', game_id)
    if clean.get('points_per_correct', 0) < 0:
        raise ValidationError('points_per_correct cannot be negative', 'game', game_id)
    return clean


def next_vip_id(game, from_user_id):
    """Next user in join order after ``from_user_id``, wrapping around."""
    order = [p.user_id for p in game.players]
    if not order:
        return None
    if from_user_id not in order:
        return order[0]
    return order[(order.index(from_user_id) + 1) % len(order)]


def get_game(game_id):
    game = db.session.get(Game, game_id)
    if not game:
        raise NotFoundError('game', game_id)
    return game


def get_game_by_code(code):
    code = (code or '').strip().upper()
    game = Game.query.filter_by(code=code).first()
    if not game:
        raise NotFoundError('game', code)
    return game


def list_players(game_id):
    return list(get_game(game_id).players)


def list_active_games(user_id):
    return (
        Game.query.join(Player)
        .filter(Player.user_id == user_id, Game.status.in_(GameStatus.ACTIVE))
        .order_by(Game.created_at.desc())
        .all()
    )


def require_player(game, user_id):
    player = Player.query.filter_by(game_id=game.id, user_id=user_id).first()
    if not player:
        raise UnauthorizedError('You are not a player in this game', 'game', game.id)
    return player


def _lock_game(game_id):
    game = with_game_lock(game_id).first()
    if not game:
        raise NotFoundError('game', game_id)
    return game


def _require_creator(game, user_id, action):
    if game.creator_id != user_id:
        raise UnauthorizedError(f'Only the game creator may {action}', 'game', game.id)


def ensure_can_start(game):
    min_players = current_app.config['MIN_PLAYERS']
    if len(game.players) < min_players:
        raise InvalidStateError(f'At least {min_players} players are required to start', 'game', game.id)


def create_game(creator_id, creator_name, **settings):
    """Create a waiting game; the creator is its first player and VIP."""
    values = default_settings()
    values.update(validate_settings(settings))
    length = int(current_app.config.get('JOIN_CODE_LENGTH', 6))
    attempts = int(current_app.config.get('JOIN_CODE_MAX_ATTEMPTS', 10))
    for attempt in range(1, attempts + 1):
        code = generate_game_code(length)
        if Game.query.filter_by(code=code).first():
            current_app.logger.info(f"[code-collision] code={code} attempt={attempt}")
            continue
        game = Game(code=code, creator_id=creator_id, current_vip_id=creator_id,
                    status=GameStatus.WAITING, **values)
        game.players.append(Player(user_id=creator_id, name=creator_name))
        db.session.add(game)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race for the same code
            db.session.rollback()
            current_app.logger.info(f"[code-collision] code={code} attempt={attempt} on commit")
            continue
        current_app.logger.info(f"[game-created] game={game.id} code={game.code} creator={creator_id}")
        return game
    raise ConflictError(f'Could not allocate a unique join code after {attempts} attempts', 'game', None)


def join_game(code, user_id, name):
    """Join by code. Re-joining returns the existing membership unchanged."""
    game = get_game_by_code(code)
    existing = Player.query.filter_by(game_id=game.id, user_id=user_id).first()
    if existing:
        return game, existing
    if game.status == GameStatus.FINISHED:
        raise InvalidStateError('This game has finished', 'game', game.id)
    player = Player(game_id=game.id, user_id=user_id, name=name)
    db.session.add(player)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = Player.query.filter_by(game_id=game.id, user_id=user_id).first()
        if existing:
            return game, existing
        raise ConflictError('Could not join game', 'game', game.id)
    current_app.logger.info(f"[player-joined] game={game.id} user={user_id} player={player.id}")
    notifications.players_updated(game)
    return game, player


def start_game(game_id, user_id):
    with atomic('game', game_id):
        game = _lock_game(game_id)
        _require_creator(game, user_id, 'start the game')
        if game.status != GameStatus.WAITING:
            raise InvalidStateError('Game has already started or is finished', 'game', game.id)
        ensure_can_start(game)
        game.status = GameStatus.PLAYING
    current_app.logger.info(f"[game-started] game={game.id} players={len(game.players)}")
    notifications.game_updated(game)
    return game


def update_settings(game_id, user_id, **settings):
    with atomic('game', game_id):
        game = _lock_game(game_id)
        _require_creator(game, user_id, 'change settings')
        if game.status != GameStatus.WAITING:
            raise InvalidStateError('Settings can only change before the game starts', 'game', game.id)
        for key, value in validate_settings(settings, game.id).items():
            setattr(game, key, value)
    current_app.logger.info(f"[settings] game={game.id} {game.settings()}")
    notifications.game_updated(game)
    return game


def rotate_vip(game_id, user_id):
    """Pass the VIP role to the next player between rounds."""
    with atomic('game', game_id):
        game = _lock_game(game_id)
        if game.status == GameStatus.FINISHED:
            raise InvalidStateError('Game is finished', 'game', game.id)
        if user_id not in (game.current_vip_id, game.creator_id):
            raise UnauthorizedError('Only the VIP or the creator may pass the VIP role', 'game', game.id)
        rnd = game.current_round
        if rnd is not None and rnd.status != RoundStatus.COMPLETE:
            raise InvalidStateError(f'Round {rnd.round_number} is still in progress', 'round', rnd.id)
        previous = game.current_vip_id
        game.current_vip_id = next_vip_id(game, previous)
    current_app.logger.info(f"[vip-rotated] game={game.id} from={previous} to={game.current_vip_id}")
    notifications.game_updated(game)
    return game


def end_game(game_id, user_id):
    """Force-finish a game regardless of scores."""
    with atomic('game', game_id):
        game = _lock_game(game_id)
        _require_creator(game, user_id, 'end the game')
        if game.status == GameStatus.FINISHED:
            raise InvalidStateError('Game is already finished', 'game', game.id)
        game.status = GameStatus.FINISHED
        game.finished_at = utcnow()
    current_app.logger.info(f"[game-ended] game={game.id} by={user_id}")
    notifications.game_updated(game)
    return game


def score_completed_round(game, rnd):
    """Apply a completed round's scores, then the win check or VIP rotation.

    Runs inside the caller's transaction, once per round: it refuses rounds
    that were already scored.
    """
    if rnd.status != RoundStatus.COMPLETE:
        raise InvalidStateError(f'Round {rnd.round_number} is not complete', 'round', rnd.id)
    if rnd.scored_at is not None:
        raise ConflictError(f'Round {rnd.round_number} was already scored', 'round', rnd.id)

    ranking = {r.item_id: r.position for r in rnd.rankings}
    guesses = defaultdict(dict)
    for g in rnd.guesses:
        guesses[g.user_id][g.item_id] = g.position
    results = score_round(ranking, guesses, ScoringConfig.for_game(game))

    for g in rnd.guesses:
        g.is_correct = results[g.user_id].correctness[g.item_id]
    players_by_user = {p.user_id: p for p in game.players}
    for user_id, result in results.items():
        player = players_by_user[user_id]
        player.score += result.delta
        db.session.add(RoundScore(
            round_id=rnd.id,
            player_id=player.id,
            user_id=user_id,
            delta=result.delta,
            correct_count=result.correct_count,
            guess_count=result.guess_count,
            score_after=player.score,
        ))
    rnd.scored_at = utcnow()

    if any(p.score >= game.target_score for p in game.players):
        game.status = GameStatus.FINISHED
        game.finished_at = utcnow()
        current_app.logger.info(f"[game-won] game={game.id} round={rnd.round_number} target={game.target_score}")
    else:
        game.current_vip_id = next_vip_id(game, rnd.vip_id)
    current_app.logger.info(
        f"[round-scored] game={game.id} round={rnd.round_number} scored={len(results)} next_vip={game.current_vip_id}"
    )
    return results


def apply_round_result(round_id):
    """Make sure a completed round's result is applied; safe to call repeatedly.

    Completion already scores the round in the same transaction, so this
    normally just returns the stored per-player scores.
    """
    with atomic('round', round_id, 'Round result was already applied'):
        rnd = with_round_lock(round_id).first()
        if not rnd:
            raise NotFoundError('round', round_id)
        if rnd.status != RoundStatus.COMPLETE:
            raise InvalidStateError(f'Round {rnd.round_number} is not complete', 'round', rnd.id)
        applied = rnd.scored_at is None
        if applied:
            game = _lock_game(rnd.game_id)
            score_completed_round(game, rnd)
    if applied:
        notifications.round_updated(rnd.game, rnd)
        notifications.players_updated(rnd.game)
        notifications.game_updated(rnd.game)
    return list(rnd.scores)


def get_round_results(round_id):
    rnd = db.session.get(Round, round_id)
    if not rnd:
        raise NotFoundError('round', round_id)
    if rnd.scored_at is None:
        raise InvalidStateError(f'Round {rnd.round_number} has not been scored yet', 'round', rnd.id)
    return list(rnd.scores)
