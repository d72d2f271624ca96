import json
from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # webhook and cron events have no user
    action = db.Column(db.String(80), nullable=False)  # BOOKING_CREATE, PAYMENT_STATUS_UPDATED, ...
    entity = db.Column(db.String(80), nullable=True)  # booking, court
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
    )

    @classmethod
    def trail(cls, entity: str, entity_id, limit: int = 20):
        """Most recent events for one entity, newest first."""
        return (
            cls.query
            .filter_by(entity=entity, entity_id=str(entity_id))
            .order_by(cls.timestamp.desc(), cls.id.desc())
            .limit(limit)
            .all()
        )

    def to_dict(self):
        return {
            "action": self.action,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": json.loads(self.metadata_json) if self.metadata_json else None,
        }
