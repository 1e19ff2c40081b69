from datetime import datetime, timezone

from flask_login import UserMixin

from rankparty import db, bcrypt


def utcnow():
    return datetime.now(timezone.utc)


class GameStatus:
    WAITING = 'waiting'
    PLAYING = 'playing'
    FINISHED = 'finished'
    ORDER = (WAITING, PLAYING, FINISHED)
    ACTIVE = (WAITING, PLAYING)


class RoundStatus:
    TOPIC_SELECTION = 'topic_selection'
    VIP_RANKING = 'vip_ranking'
    PLAYER_GUESSING = 'player_guessing'
    REVEALING = 'revealing'
    COMPLETE = 'complete'
    ORDER = (TOPIC_SELECTION, VIP_RANKING, PLAYER_GUESSING, REVEALING, COMPLETE)

    @classmethod
    def is_next(cls, current, target):
        """True when ``target`` is ``current`` or the single state after it."""
        if current == target:
            return current == cls.REVEALING
        return cls.ORDER.index(target) == cls.ORDER.index(current) + 1


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Topic(db.Model):
    __tablename__ = 'topic'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False)
    is_editable = db.Column(db.Boolean, default=False, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    items = db.relationship(
        'TopicItem', back_populates='topic', order_by='TopicItem.position',
        cascade='all, delete-orphan',
    )

    def to_dict(self, include_items=False):
        data = {
            'id': self.id,
            'name': self.name,
            'is_editable': self.is_editable,
            'created_by': self.created_by,
            'item_count': len(self.items),
        }
        if include_items:
            data['items'] = [i.to_dict() for i in self.items]
        return data


class TopicItem(db.Model):
    __tablename__ = 'topic_item'
    __table_args__ = (
        db.UniqueConstraint('topic_id', 'position', name='uq_topic_item_position'),
    )
    id = db.Column(db.Integer, primary_key=True)
    topic_id = db.Column(db.Integer, db.ForeignKey('topic.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    position = db.Column(db.Integer, nullable=False)  # 1-based catalogue order
    topic = db.relationship('Topic', back_populates='items')

    def to_dict(self):
        return {
            'id': self.id,
            'topic_id': self.topic_id,
            'name': self.name,
            'position': self.position,
        }


class Game(db.Model):
    __tablename__ = 'game'
    __table_args__ = (
        db.CheckConstraint("status IN ('waiting', 'playing', 'finished')", name='ck_game_status'),
    )
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    current_vip_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=GameStatus.WAITING)
    target_score = db.Column(db.Integer, nullable=False, default=1000)
    points_per_correct = db.Column(db.Integer, nullable=False, default=100)
    bonus_all_correct = db.Column(db.Integer, nullable=False, default=200)
    penalty_all_wrong = db.Column(db.Integer, nullable=False, default=-50)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    players = db.relationship(
        'Player', back_populates='game', order_by=lambda: [Player.joined_at, Player.id],
        cascade='all, delete-orphan',
    )
    rounds = db.relationship(
        'Round', back_populates='game', order_by='Round.round_number',
        cascade='all, delete-orphan',
    )

    @property
    def current_round(self):
        return self.rounds[-1] if self.rounds else None

    @property
    def phase(self):
        """Status of the round in play, or topic selection between rounds."""
        rnd = self.current_round
        if rnd is None or rnd.status == RoundStatus.COMPLETE:
            return RoundStatus.TOPIC_SELECTION
        return rnd.status

    def settings(self):
        return {
            'target_score': self.target_score,
            'points_per_correct': self.points_per_correct,
            'bonus_all_correct': self.bonus_all_correct,
            'penalty_all_wrong': self.penalty_all_wrong,
        }

    def to_dict(self, include_players=True, viewer_id=None):
        data = {
            'id': self.id,
            'code': self.code,
            'creator_id': self.creator_id,
            'current_vip_id': self.current_vip_id,
            'status': self.status,
            'phase': self.phase if self.status != GameStatus.FINISHED else None,
            'settings': self.settings(),
            'round_count': len(self.rounds),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }
        if include_players:
            data['players'] = [p.to_dict() for p in self.players]
            rnd = self.current_round
            data['current_round'] = rnd.to_dict(viewer_id=viewer_id) if rnd else None
        return data


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'user_id', name='uq_player_game_user'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    game = db.relationship('Game', back_populates='players')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'name': self.name,
            'score': self.score,
            'joined_at': self.joined_at.isoformat() if self.joined_at else None,
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'round_number', name='uq_round_game_number'),
        db.CheckConstraint(
            "status IN ('topic_selection', 'vip_ranking', 'player_guessing', 'revealing', 'complete')",
            name='ck_round_status',
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id', ondelete='CASCADE'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    topic_id = db.Column(db.Integer, db.ForeignKey('topic.id'), nullable=False)
    vip_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=RoundStatus.TOPIC_SELECTION)
    reveal_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    scored_at = db.Column(db.DateTime(timezone=True), nullable=True)

    game = db.relationship('Game', back_populates='rounds')
    topic = db.relationship('Topic')
    rankings = db.relationship(
        'Ranking', back_populates='round', order_by='Ranking.position',
        cascade='all, delete-orphan',
    )
    guesses = db.relationship(
        'Guess', back_populates='round', order_by=lambda: [Guess.user_id, Guess.position],
        cascade='all, delete-orphan',
    )
    scores = db.relationship(
        'RoundScore', back_populates='round', order_by='RoundScore.player_id',
        cascade='all, delete-orphan',
    )

    @property
    def item_count(self):
        return len(self.topic.items)

    def guessed_user_ids(self):
        return sorted({g.user_id for g in self.guesses})

    def visible_rankings(self):
        """Ranking entries disclosed so far: the first ``reveal_index`` positions."""
        if self.status == RoundStatus.COMPLETE:
            return list(self.rankings)
        if self.status == RoundStatus.REVEALING:
            return [r for r in self.rankings if r.position < self.reveal_index]
        return []

    def to_dict(self, viewer_id=None):
        disclosed = self.status in (RoundStatus.REVEALING, RoundStatus.COMPLETE)
        if disclosed:
            guesses = [g.to_dict() for g in self.guesses]
        else:
            # Before the reveal a player only sees their own guess
            guesses = [g.to_dict() for g in self.guesses if viewer_id is not None and g.user_id == viewer_id]
        return {
            'id': self.id,
            'game_id': self.game_id,
            'round_number': self.round_number,
            'topic_id': self.topic_id,
            'topic': self.topic.to_dict(include_items=True) if self.topic else None,
            'vip_id': self.vip_id,
            'status': self.status,
            'reveal_index': self.reveal_index,
            'item_count': self.item_count,
            'has_ranking': bool(self.rankings),
            'rankings': [r.to_dict() for r in self.visible_rankings()],
            'guessed_user_ids': self.guessed_user_ids(),
            'guesses': guesses,
            'scores': [s.to_dict() for s in self.scores],
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'scored': self.scored_at is not None,
        }


class Ranking(db.Model):
    __tablename__ = 'ranking'
    __table_args__ = (
        db.UniqueConstraint('round_id', 'item_id', name='uq_ranking_round_item'),
        db.UniqueConstraint('round_id', 'position', name='uq_ranking_round_position'),
    )
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id', ondelete='CASCADE'), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey('topic_item.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)  # 0-based
    round = db.relationship('Round', back_populates='rankings')

    def to_dict(self):
        return {
            'item_id': self.item_id,
            'position': self.position,
        }


class Guess(db.Model):
    __tablename__ = 'guess'
    __table_args__ = (
        db.UniqueConstraint('round_id', 'user_id', 'item_id', name='uq_guess_round_user_item'),
        db.UniqueConstraint('round_id', 'user_id', 'position', name='uq_guess_round_user_position'),
    )
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey('topic_item.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)  # 0-based
    is_correct = db.Column(db.Boolean, nullable=True)  # set when the round is scored
    round = db.relationship('Round', back_populates='guesses')

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'item_id': self.item_id,
            'position': self.position,
            'is_correct': self.is_correct,
        }


class RoundScore(db.Model):
    """Points one player earned in one completed round."""
    __tablename__ = 'round_score'
    __table_args__ = (
        db.UniqueConstraint('round_id', 'player_id', name='uq_round_score_round_player'),
    )
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    delta = db.Column(db.Integer, nullable=False)
    correct_count = db.Column(db.Integer, nullable=False)
    guess_count = db.Column(db.Integer, nullable=False)
    score_after = db.Column(db.Integer, nullable=False)
    round = db.relationship('Round', back_populates='scores')

    def to_dict(self):
        return {
            'round_id': self.round_id,
            'player_id': self.player_id,
            'user_id': self.user_id,
            'delta': self.delta,
            'correct_count': self.correct_count,
            'guess_count': self.guess_count,
            'score_after': self.score_after,
        }
