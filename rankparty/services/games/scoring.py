from dataclasses import dataclass, field
from typing import Dict, Hashable, Mapping


@dataclass(frozen=True)
class ScoringConfig:
    points_per_correct: int = 100
    bonus_all_correct: int = 200
    penalty_all_wrong: int = -50

    @classmethod
    def for_game(cls, game) -> 'ScoringConfig':
        return cls(
            points_per_correct=game.points_per_correct,
            bonus_all_correct=game.bonus_all_correct,
            penalty_all_wrong=game.penalty_all_wrong,
        )


@dataclass(frozen=True)
class PlayerScore:
    delta: int
    correct_count: int
    guess_count: int
    correctness: Dict[Hashable, bool] = field(default_factory=dict)

    @property
    def all_correct(self) -> bool:
        return self.guess_count > 0 and self.correct_count == self.guess_count

    @property
    def all_wrong(self) -> bool:
        return self.guess_count > 0 and self.correct_count == 0


def score_guess(ranking: Mapping[Hashable, int], guess: Mapping[Hashable, int],
                config: ScoringConfig) -> PlayerScore:
    """Score one player's guess against the true ranking.

    Each item whose guessed position equals its ranked position earns
    ``points_per_correct``. On top of that, a guess that is entirely correct
    earns ``bonus_all_correct`` and one that is entirely wrong gets
    ``penalty_all_wrong``; partially correct guesses get neither.
    """
    correctness = {item: ranking.get(item) == position for item, position in guess.items()}
    correct_count = sum(1 for ok in correctness.values() if ok)
    guess_count = len(correctness)
    delta = correct_count * config.points_per_correct
    if guess_count and correct_count == guess_count:
        delta += config.bonus_all_correct
    elif guess_count and correct_count == 0:
        delta += config.penalty_all_wrong
    return PlayerScore(delta, correct_count, guess_count, correctness)


def score_round(ranking: Mapping[Hashable, int],
                guesses: Mapping[Hashable, Mapping[Hashable, int]],
                config: ScoringConfig) -> Dict[Hashable, PlayerScore]:
    """Compute per-player round deltas.

    ``ranking`` maps item -> true position, ``guesses`` maps player ->
    (item -> guessed position). Players with an empty guess are left out of
    the result. Pure: touches neither the database nor the app.
    """
    return {
        player: score_guess(ranking, guess, config)
        for player, guess in guesses.items()
        if guess
    }
