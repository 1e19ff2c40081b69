"""Game domain services: scoring, round lifecycle and game coordination.

This package contains the core game mechanics. HTTP routes and socket
handlers import from here, keeping transport concerns separated from the
rules of the game.
"""
from .coordinator import (  # noqa: F401
    apply_round_result, create_game, end_game, get_game, get_game_by_code,
    get_round_results, join_game, list_active_games, list_players, rotate_vip,
    start_game, update_settings,
)
from .rounds import (  # noqa: F401
    advance_reveal, complete_round, get_current_round, get_round, select_topic,
    start_reveal, start_round, submit_guess, submit_ranking,
)
from .scoring import PlayerScore, ScoringConfig, score_round  # noqa: F401
