from app.extensions import db
from sqlalchemy.sql import func

class Notification(db.Model):
    __tablename__ = "notification"
    id = db.Column(db.Integer, primary_key=True)
    # backend user ids (UUID strings); users live in the hosted backend, not here
    caretaker_id = db.Column(db.String(64), nullable=False, index=True)
    patient_id = db.Column(db.String(64), nullable=False, index=True)

    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(40), nullable=True)  # e.g., "reminder", "missed_dose"
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True, server_default=func.now())
    delivered = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "message": self.message,
            "type": self.type,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "delivered": self.delivered,
        }
