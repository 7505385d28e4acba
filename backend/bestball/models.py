from bestball import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import secrets

MATCH_STATUSES = ('pending', 'in_progress', 'completed')


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def generate_user_token():
    """Generate an opaque identity token for the live channel."""
    while True:
        token = secrets.token_urlsafe(32)
        if not User.query.filter_by(token=token).first():
            return token


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    token = db.Column(db.String(64), unique=True, index=True)

    def __init__(self, **kwargs):
        super(User, self).__init__(**kwargs)
        if not self.token:
            self.token = generate_user_token()

    @classmethod
    def from_token(cls, token):
        if not token:
            return None
        return cls.query.filter_by(token=token).first()

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self, include_token=False):
        data = {
            'id': self.id,
            'username': self.username,
            'is_admin': self.is_admin,
        }
        if include_token:
            data['token'] = self.token
        return data


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    short_name = db.Column(db.String(16), nullable=False)
    color_code = db.Column(db.String(16), nullable=False, default='#000000')
    players = db.relationship('Player', back_populates='team')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'short_name': self.short_name,
            'color_code': self.color_code,
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    team = db.relationship('Team', back_populates='players')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'team_id': self.team_id,
        }


class Round(db.Model):
    __tablename__ = 'round'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    course_name = db.Column(db.String(128), nullable=True)
    matches = db.relationship('BestBallMatch', back_populates='round', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'course_name': self.course_name,
        }


class BestBallMatch(db.Model):
    __tablename__ = 'best_ball_match'
    __table_args__ = (
        db.CheckConstraint('team1_id <> team2_id', name='ck_best_ball_match_distinct_teams'),
        db.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed')",
            name='ck_best_ball_match_status',
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    team1_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    team2_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    # Cached aggregation output; only the match service writes these
    team1_score = db.Column(db.Integer, nullable=False, default=0)
    team2_score = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default='pending')
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    round = db.relationship('Round', back_populates='matches')
    team1 = db.relationship('Team', foreign_keys=[team1_id])
    team2 = db.relationship('Team', foreign_keys=[team2_id])
    scores = db.relationship('BestBallPlayerScore', back_populates='match', lazy='dynamic')

    def team_ids(self):
        return (self.team1_id, self.team2_id)

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'team1_id': self.team1_id,
            'team2_id': self.team2_id,
            'team1_name': self.team1.name if self.team1 else None,
            'team2_name': self.team2.name if self.team2 else None,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class BestBallPlayerScore(db.Model):
    __tablename__ = 'best_ball_player_score'
    __table_args__ = (
        db.UniqueConstraint('match_id', 'player_id', 'hole_number', name='uq_best_ball_player_score_key'),
    )
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('best_ball_match.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    hole_number = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, nullable=True)  # NULL: not yet recorded
    handicap_strokes = db.Column(db.Integer, nullable=False, default=0)
    net_score = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    match = db.relationship('BestBallMatch', back_populates='scores')
    player = db.relationship('Player')

    @property
    def team_id(self):
        return self.player.team_id if self.player else None

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'player_id': self.player_id,
            'player_name': self.player.name if self.player else None,
            'team_id': self.team_id,
            'hole_number': self.hole_number,
            'score': self.score,
            'handicap_strokes': self.handicap_strokes,
            'net_score': self.net_score,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
