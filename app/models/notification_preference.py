from datetime import datetime
from app.extensions import db

class NotificationPreference(db.Model):
    __tablename__ = "notification_preferences"

    id = db.Column(db.Integer, primary_key=True)
    caretaker_id = db.Column(db.String(64), nullable=False, index=True)
    patient_id = db.Column(db.String(64), nullable=False, index=True)

    email_enabled = db.Column(db.Boolean, nullable=False, default=True)
    email_address = db.Column(db.String(255), nullable=True)
    reminder_time = db.Column(db.Time(timezone=False), nullable=True)   # e.g., 08:00

    missed_alerts_enabled = db.Column(db.Boolean, nullable=False, default=True)
    missed_alert_delay_hours = db.Column(db.Integer, nullable=False, default=2)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("caretaker_id", "patient_id", name="uq_notification_pref_caretaker_patient"),
    )

    def to_dict(self):
        return {
            "patient_id": self.patient_id,
            "email_enabled": self.email_enabled,
            "email_address": self.email_address,
            "reminder_time": self.reminder_time.strftime("%H:%M") if self.reminder_time else None,
            "missed_alerts_enabled": self.missed_alerts_enabled,
            "missed_alert_delay_hours": self.missed_alert_delay_hours,
        }
