# app/utils/validators.py
import re
from datetime import date

from app.errors import ValidationError
from app.services.adherence import parse_day

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
USER_TYPES = ("patient", "caretaker")


def _text(data, key):
    return (data.get(key) or "").strip() if isinstance(data.get(key), str) else ""


class LoginForm:
    def __init__(self, data):
        data = data or {}
        self.email = _text(data, "email").lower()
        self.password = data.get("password") or ""

    def validate(self):
        if not self.email:
            raise ValidationError("Email Required")
        if not self.password:
            raise ValidationError("Password Required")
        return self


class SignupForm:
    def __init__(self, data):
        data = data or {}
        self.username = _text(data, "username")
        self.email = _text(data, "email").lower()
        self.password = _text(data, "password")
        self.user_type = _text(data, "user_type") or "patient"

    def validate(self):
        if not EMAIL_RE.match(self.email):
            raise ValidationError("Please enter a valid email address.")
        if len(self.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 6 characters long.")
        if not self.username:
            raise ValidationError("Username Required")
        if self.user_type not in USER_TYPES:
            raise ValidationError("User type must be patient or caretaker.")
        return self


class PatientForm(SignupForm):
    """Caretaker's "add patient" form; the role is always patient."""

    def __init__(self, data):
        super().__init__(data)
        self.user_type = "patient"


class MedicationForm:
    REQUIRED = ("medication_name", "dosage", "frequency", "start_date", "end_date")

    def __init__(self, data):
        data = data or {}
        self.fields = {key: _text(data, key) for key in self.REQUIRED}
        time_of_day = _text(data, "time_of_day")
        if time_of_day:
            self.fields["time_of_day"] = time_of_day

    @classmethod
    def from_record(cls, record):
        return cls({k: record.get(k) for k in cls.REQUIRED + ("time_of_day",)})

    def validate(self):
        if not all(self.fields[key] for key in self.REQUIRED):
            raise ValidationError("Please fill in all medication fields.")
        start = parse_day(self.fields["start_date"])
        end = parse_day(self.fields["end_date"])
        if start is None or end is None:
            raise ValidationError("Dates must be in YYYY-MM-DD format.")
        if end < start:
            raise ValidationError("End date cannot be before start date.")
        self.fields["start_date"] = start.isoformat()
        self.fields["end_date"] = end.isoformat()
        return self


def parse_month(value, default):
    """First day of a "YYYY-MM" month, or ``default`` when absent."""
    if not value:
        return default
    try:
        year, month = value.split("-")[:2]
        return date(int(year), int(month), 1)
    except ValueError:
        raise ValidationError("Month must be in YYYY-MM format.")
