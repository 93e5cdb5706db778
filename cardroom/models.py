from cardroom import db
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


class GameRecord(db.Model):
    """One live game session, stored as a single JSON document keyed by game id."""
    __tablename__ = 'game_session'
    id = db.Column(db.String(8), primary_key=True)
    state = db.Column(db.Text, nullable=False)  # JSON-encoded Game.to_dict()
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
