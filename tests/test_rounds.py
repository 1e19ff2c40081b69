import pytest

from rankparty import db
from rankparty.errors import (
    ConflictError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError,
)
from rankparty.models import Game, GameStatus, Guess, Ranking, Round, RoundScore, RoundStatus, Topic
from rankparty.seed import seed_topics
from rankparty.services import games as svc
from rankparty.services.games import coordinator
from rankparty.services.games.locks import atomic
from rankparty.services.games.rounds import parse_permutation


@pytest.fixture()
def ranked_round(game_with_players, users, topic, ranking_of):
    """Round 1 with alice's ranking A, B, C stored; guessing is open."""
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    svc.submit_ranking(rnd.id, users['alice'], ranking_of([items['A'], items['B'], items['C']]))
    return rnd


def test_select_topic_creates_round_and_starts_game(game_with_players, users, topic, notifier):
    game = game_with_players()
    topic_id, _ = topic
    notifier.events.clear()
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    assert rnd.round_number == 1
    assert rnd.status == RoundStatus.VIP_RANKING
    assert rnd.vip_id == users['alice']
    assert rnd.reveal_index == 0
    assert db.session.get(Game, game.id).status == GameStatus.PLAYING
    assert svc.get_current_round(game.id).id == rnd.id
    assert notifier.names() == ['round_updated', 'game_updated']


def test_select_topic_guards(game_with_players, users, topic):
    game = game_with_players()
    topic_id, _ = topic
    with pytest.raises(UnauthorizedError):
        svc.select_topic(game.id, users['bob'], topic_id)
    with pytest.raises(NotFoundError):
        svc.select_topic(game.id, users['alice'], 9999)
    with pytest.raises(NotFoundError):
        svc.select_topic(9999, users['alice'], topic_id)
    svc.select_topic(game.id, users['alice'], topic_id)
    with pytest.raises(InvalidStateError):
        svc.select_topic(game.id, users['alice'], topic_id)
    assert Round.query.filter_by(game_id=game.id).count() == 1


def test_select_topic_needs_enough_items(game_with_players, users):
    game = game_with_players()
    seed_topics({'Solo': ['Only']})
    solo = Topic.query.filter_by(name='Solo').first()
    with pytest.raises(ValidationError):
        svc.select_topic(game.id, users['alice'], solo.id)
    assert db.session.get(Game, game.id).status == GameStatus.WAITING


def test_select_topic_needs_min_players(users, topic):
    game = svc.create_game(users['alice'], 'alice')
    topic_id, _ = topic
    with pytest.raises(InvalidStateError):
        svc.select_topic(game.id, users['alice'], topic_id)
    game = db.session.get(Game, game.id)
    assert game.status == GameStatus.WAITING
    assert game.rounds == []


def test_select_topic_on_finished_game(game_with_players, users, topic):
    game = game_with_players()
    svc.end_game(game.id, users['alice'])
    with pytest.raises(InvalidStateError):
        svc.select_topic(game.id, users['alice'], topic[0])


def test_submit_ranking_opens_guessing(game_with_players, users, topic, ranking_of):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    rnd = svc.submit_ranking(rnd.id, users['alice'], ranking_of([items['C'], items['A'], items['B']]))
    assert rnd.status == RoundStatus.PLAYER_GUESSING
    stored = {r.item_id: r.position for r in Ranking.query.filter_by(round_id=rnd.id)}
    assert stored == {items['C']: 0, items['A']: 1, items['B']: 2}


def test_submit_ranking_accepts_pairs(game_with_players, users, topic):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    rnd = svc.submit_ranking(rnd.id, users['alice'], [(items['B'], 1), (items['A'], 0), (items['C'], 2)])
    assert [r.item_id for r in rnd.rankings] == [items['A'], items['B'], items['C']]


@pytest.mark.parametrize('build', [
    lambda i: [{'item_id': i['A'], 'position': 0}, {'item_id': i['B'], 'position': 1}],
    lambda i: [{'item_id': i['A'], 'position': 0}, {'item_id': i['A'], 'position': 1},
               {'item_id': i['C'], 'position': 2}],
    lambda i: [{'item_id': i['A'], 'position': 0}, {'item_id': i['B'], 'position': 1},
               {'item_id': 99999, 'position': 2}],
    lambda i: [{'item_id': i['A'], 'position': 0}, {'item_id': i['B'], 'position': 1},
               {'item_id': i['C'], 'position': 3}],
    lambda i: [{'item_id': i['A'], 'position': 0}, {'item_id': i['B'], 'position': 0},
               {'item_id': i['C'], 'position': 2}],
    lambda i: [{'item_id': i['A'], 'position': -1}, {'item_id': i['B'], 'position': 1},
               {'item_id': i['C'], 'position': 2}],
    lambda i: [{'item_id': i['A']}, {'item_id': i['B'], 'position': 1}, {'item_id': i['C'], 'position': 2}],
    lambda i: None,
    lambda i: 'A,B,C',
], ids=['short', 'duplicate-item', 'foreign-item', 'out-of-range', 'duplicate-position',
        'negative', 'missing-position', 'missing', 'not-a-list'])
def test_submit_ranking_rejects_invalid_permutations(game_with_players, users, topic, build):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    with pytest.raises(ValidationError):
        svc.submit_ranking(rnd.id, users['alice'], build(items))
    assert Ranking.query.filter_by(round_id=rnd.id).count() == 0
    assert db.session.get(Round, rnd.id).status == RoundStatus.VIP_RANKING


def test_only_vip_submits_ranking(game_with_players, users, topic, ranking_of):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    with pytest.raises(UnauthorizedError):
        svc.submit_ranking(rnd.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))


def test_second_ranking_conflicts_and_keeps_first(ranked_round, users, topic, ranking_of):
    _, items = topic
    with pytest.raises(ConflictError):
        svc.submit_ranking(ranked_round.id, users['alice'], ranking_of([items['C'], items['B'], items['A']]))
    stored = {r.item_id: r.position for r in Ranking.query.filter_by(round_id=ranked_round.id)}
    assert stored == {items['A']: 0, items['B']: 1, items['C']: 2}


def test_ranking_for_unknown_round(users, ranking_of):
    with pytest.raises(NotFoundError):
        svc.submit_ranking(4242, users['alice'], ranking_of([1, 2, 3]))


def test_submit_guess_stores_full_permutation(ranked_round, users, topic, ranking_of):
    _, items = topic
    svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['B'], items['A'], items['C']]))
    rows = Guess.query.filter_by(round_id=ranked_round.id, user_id=users['bob']).all()
    assert {g.item_id: g.position for g in rows} == {items['B']: 0, items['A']: 1, items['C']: 2}
    assert all(g.is_correct is None for g in rows)
    assert db.session.get(Round, ranked_round.id).guessed_user_ids() == [users['bob']]


def test_guess_rejected_before_ranking(game_with_players, users, topic, ranking_of):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    with pytest.raises(InvalidStateError) as exc:
        svc.submit_guess(rnd.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))
    assert exc.value.message == 'Not accepting guesses at this time'
    assert Guess.query.filter_by(round_id=rnd.id).count() == 0


def test_guess_rejected_once_reveal_started(ranked_round, users, topic, ranking_of):
    _, items = topic
    svc.start_reveal(ranked_round.id, users['alice'])
    with pytest.raises(InvalidStateError):
        svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))
    assert Guess.query.filter_by(round_id=ranked_round.id).count() == 0


def test_guess_guards(ranked_round, users, topic, ranking_of):
    _, items = topic
    guess = ranking_of([items['A'], items['B'], items['C']])
    with pytest.raises(UnauthorizedError):
        svc.submit_guess(ranked_round.id, users['alice'], guess)
    with pytest.raises(UnauthorizedError):
        svc.submit_guess(ranked_round.id, users['dave'], guess)
    with pytest.raises(ValidationError):
        svc.submit_guess(ranked_round.id, users['bob'], guess[:2])
    svc.submit_guess(ranked_round.id, users['bob'], guess)
    with pytest.raises(ConflictError):
        svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['C'], items['B'], items['A']]))
    assert Guess.query.filter_by(round_id=ranked_round.id).count() == 3


def test_guesses_hidden_from_other_players_until_reveal(ranked_round, users, topic, ranking_of):
    _, items = topic
    svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))
    rnd = db.session.get(Round, ranked_round.id)
    assert rnd.to_dict(viewer_id=users['cara'])['guesses'] == []
    assert len(rnd.to_dict(viewer_id=users['bob'])['guesses']) == 3
    assert rnd.to_dict(viewer_id=users['cara'])['rankings'] == []
    svc.start_reveal(rnd.id, users['alice'])
    assert len(rnd.to_dict(viewer_id=users['cara'])['guesses']) == 3


def test_start_reveal_guards(game_with_players, users, topic, ranking_of):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    with pytest.raises(InvalidStateError):
        svc.start_reveal(rnd.id, users['alice'])
    svc.submit_ranking(rnd.id, users['alice'], ranking_of([items['A'], items['B'], items['C']]))
    with pytest.raises(UnauthorizedError):
        svc.start_reveal(rnd.id, users['bob'])
    rnd = svc.start_reveal(rnd.id, users['alice'])
    assert rnd.status == RoundStatus.REVEALING
    assert rnd.reveal_index == 1
    with pytest.raises(InvalidStateError):
        svc.start_reveal(rnd.id, users['alice'])


def test_reveal_discloses_one_item_at_a_time(ranked_round, users, topic):
    _, items = topic
    rnd = svc.start_reveal(ranked_round.id, users['alice'])
    assert [r.item_id for r in rnd.visible_rankings()] == [items['A']]
    with pytest.raises(UnauthorizedError):
        svc.advance_reveal(rnd.id, users['bob'])
    rnd = svc.advance_reveal(rnd.id, users['alice'])
    assert rnd.reveal_index == 2
    assert [r.item_id for r in rnd.visible_rankings()] == [items['A'], items['B']]
    rnd = svc.advance_reveal(rnd.id, users['alice'])
    assert rnd.reveal_index == 3
    assert rnd.status == RoundStatus.REVEALING


def test_reveal_index_never_passes_item_count(ranked_round, users):
    rnd = svc.start_reveal(ranked_round.id, users['alice'])
    svc.advance_reveal(rnd.id, users['alice'])
    svc.advance_reveal(rnd.id, users['alice'])
    rnd = svc.advance_reveal(rnd.id, users['alice'])
    assert rnd.status == RoundStatus.COMPLETE
    assert rnd.reveal_index == 3
    assert rnd.completed_at is not None
    with pytest.raises(InvalidStateError):
        svc.advance_reveal(rnd.id, users['alice'])
    assert db.session.get(Round, rnd.id).reveal_index == 3


def test_complete_round_requires_full_reveal(ranked_round, users):
    svc.start_reveal(ranked_round.id, users['alice'])
    with pytest.raises(InvalidStateError):
        svc.complete_round(ranked_round.id, users['alice'])
    rnd = db.session.get(Round, ranked_round.id)
    assert rnd.status == RoundStatus.REVEALING
    assert rnd.scored_at is None


def test_complete_round_only_once(ranked_round, users, reveal_all):
    reveal_all(ranked_round.id, users['alice'])
    with pytest.raises(InvalidStateError):
        svc.complete_round(ranked_round.id, users['alice'])


def test_completion_scores_and_marks_guesses(ranked_round, users, topic, ranking_of, reveal_all, notifier):
    _, items = topic
    svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['A'], items['C'], items['B']]))
    svc.submit_guess(ranked_round.id, users['cara'], ranking_of([items['A'], items['B'], items['C']]))
    notifier.events.clear()
    rnd = reveal_all(ranked_round.id, users['alice'])

    marks = {g.item_id: g.is_correct for g in rnd.guesses if g.user_id == users['bob']}
    assert marks == {items['A']: True, items['B']: False, items['C']: False}
    assert {s.user_id: s.delta for s in rnd.scores} == {users['bob']: 100, users['cara']: 500}
    assert rnd.scored_at is not None
    assert rnd.to_dict()['scored'] is True
    assert notifier.names()[-3:] == ['round_updated', 'players_updated', 'game_updated']


def test_next_round_follows_completed_round(ranked_round, users, topic, reveal_all):
    topic_id, _ = topic
    reveal_all(ranked_round.id, users['alice'])
    game = db.session.get(Game, ranked_round.game_id)
    assert game.current_vip_id == users['bob']
    with pytest.raises(UnauthorizedError):
        svc.select_topic(game.id, users['alice'], topic_id)
    rnd = svc.select_topic(game.id, users['bob'], topic_id)
    assert rnd.round_number == 2
    assert rnd.vip_id == users['bob']


def test_parse_permutation_returns_positions(topic):
    topic_id, items = topic
    topic_items = db.session.get(Topic, topic_id).items
    parsed = parse_permutation(
        [{'item_id': str(items['B']), 'position': '0'}, (items['A'], 1), [items['C'], 2]],
        topic_items, None,
    )
    assert parsed == {items['B']: 0, items['A']: 1, items['C']: 2}


@pytest.mark.parametrize('positions', [
    [0.9, 1.5, 2.99],
    [0.0, 1.0, 2.0],
    [True, 0, 2],
    ['0', '1.5', '2'],
], ids=['fractional', 'float', 'bool', 'fractional-string'])
def test_submit_ranking_rejects_non_integer_positions(game_with_players, users, topic, positions):
    game = game_with_players()
    topic_id, items = topic
    rnd = svc.select_topic(game.id, users['alice'], topic_id)
    entries = [{'item_id': items[name], 'position': pos} for name, pos in zip('ABC', positions)]
    with pytest.raises(ValidationError):
        svc.submit_ranking(rnd.id, users['alice'], entries)
    assert Ranking.query.filter_by(round_id=rnd.id).count() == 0


def test_guess_rejects_bool_item_id(ranked_round, users, topic):
    _, items = topic
    entries = [{'item_id': True, 'position': 0},
               {'item_id': items['B'], 'position': 1},
               {'item_id': items['C'], 'position': 2}]
    with pytest.raises(ValidationError):
        svc.submit_guess(ranked_round.id, users['bob'], entries)


class _NoPriorGuess:
    """Stands in for ``Guess.query`` when the duplicate lookup loses a race."""

    def filter_by(self, **kwargs):
        return self

    def first(self):
        return None


def test_racing_duplicate_guess_becomes_conflict(ranked_round, users, topic, ranking_of, monkeypatch):
    _, items = topic
    svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))

    with monkeypatch.context() as m:
        m.setattr(Guess, 'query', _NoPriorGuess())
        with pytest.raises(ConflictError) as exc:
            svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['C'], items['B'], items['A']]))
    assert exc.value.entity == 'round'

    rows = Guess.query.filter_by(round_id=ranked_round.id, user_id=users['bob']).all()
    assert {g.item_id: g.position for g in rows} == {items['A']: 0, items['B']: 1, items['C']: 2}


def test_duplicate_insert_inside_atomic_rolls_back(ranked_round, users, topic, ranking_of):
    _, items = topic
    svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))
    with pytest.raises(ConflictError):
        with atomic('round', ranked_round.id, 'You have already guessed this round'):
            db.session.add(Guess(round_id=ranked_round.id, user_id=users['cara'], item_id=items['A'], position=0))
            db.session.add(Guess(round_id=ranked_round.id, user_id=users['bob'], item_id=items['A'], position=2))
    assert Guess.query.filter_by(round_id=ranked_round.id).count() == 3
    assert Guess.query.filter_by(round_id=ranked_round.id, user_id=users['cara']).count() == 0


def test_failed_scoring_leaves_round_untouched(ranked_round, users, topic, ranking_of, monkeypatch):
    _, items = topic
    svc.submit_guess(ranked_round.id, users['bob'], ranking_of([items['A'], items['B'], items['C']]))
    svc.submit_guess(ranked_round.id, users['cara'], ranking_of([items['C'], items['A'], items['B']]))
    svc.start_reveal(ranked_round.id, users['alice'])
    svc.advance_reveal(ranked_round.id, users['alice'])
    svc.advance_reveal(ranked_round.id, users['alice'])

    def broken_rotation(game, from_user_id):
        raise RuntimeError('rotation failed')

    with monkeypatch.context() as m:
        m.setattr(coordinator, 'next_vip_id', broken_rotation)
        with pytest.raises(RuntimeError):
            svc.advance_reveal(ranked_round.id, users['alice'])

    rnd = db.session.get(Round, ranked_round.id)
    assert rnd.status == RoundStatus.REVEALING
    assert rnd.reveal_index == 3
    assert rnd.completed_at is None
    assert rnd.scored_at is None
    assert all(g.is_correct is None for g in rnd.guesses)
    assert RoundScore.query.filter_by(round_id=rnd.id).count() == 0
    game = db.session.get(Game, rnd.game_id)
    assert [p.score for p in game.players] == [0, 0, 0]
    assert game.current_vip_id == users['alice']

    rnd = svc.advance_reveal(ranked_round.id, users['alice'])
    assert rnd.status == RoundStatus.COMPLETE
    assert {s.user_id: s.delta for s in rnd.scores} == {users['bob']: 500, users['cara']: -50}
