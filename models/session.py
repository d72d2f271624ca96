from datetime import datetime, timedelta
from models.db import db

class AuthSession(db.Model):
    """Server-side login session behind the auth cookie."""
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked = db.Column(db.Boolean, default=False, nullable=False)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    user = db.relationship("User")

    def idle_deadline(self, idle_seconds: int) -> datetime:
        return (self.last_seen_at or self.created_at) + timedelta(seconds=idle_seconds)

    def is_live(self, now: datetime, idle_seconds: int) -> bool:
        return not self.revoked and now < self.expires_at and now < self.idle_deadline(idle_seconds)
