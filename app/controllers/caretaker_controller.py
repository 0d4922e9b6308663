# app/controllers/caretaker_controller.py
import smtplib
from datetime import datetime

from flask import current_app, jsonify, request

from app.errors import Conflict, NotFound, PermissionDenied, ValidationError
from app.extensions import db
from app.models import Notification, NotificationPreference
from app.services.adherence import (
    AdherencePolicy, calculate_adherence, calendar_days, recent_activity,
)
from app.services.backend_client import BackendError, get_backend
from app.services.medication_editor import IDLE, MedicationEditor
from app.services.medication_service import ProfileRepository, medication_repository
from app.utils import clock
from app.utils.auth_utils import authorized_backend, current_user_id, role_required
from app.utils.email_utils import send_reminder_email
from app.utils.validators import EMAIL_RE, MedicationForm, PatientForm, parse_month


def _policy():
    return AdherencePolicy.from_config(current_app.config)


def _patient_context(patient_id):
    """(caretaker_id, backend, patient profile) for a patient assigned to the caller."""
    caretaker_id = current_user_id()
    backend = authorized_backend(caretaker_id)
    patient = ProfileRepository(backend).by_id(patient_id)
    if not patient or patient.get("user_type") != "patient":
        raise NotFound("Patient not found")
    if str(patient.get("Assigned")) != caretaker_id:
        raise PermissionDenied("This patient is not assigned to you")
    return caretaker_id, backend, patient


def _summary(repo, patient_id):
    records = repo.list_for_patient(patient_id)
    return calculate_adherence(records, clock.today(), policy=_policy())


def _patient_payload(profile):
    return {"id": profile.get("id"), "email": profile.get("email"), "username": profile.get("username")}


# ---------------------------------------------------------------- patients

@role_required("caretaker")
def list_patients():
    caretaker_id = current_user_id()
    patients = ProfileRepository(authorized_backend(caretaker_id)).patients_of(caretaker_id)
    return jsonify({"success": True, "patients": [_patient_payload(p) for p in patients]}), 200


@role_required("caretaker")
def add_patient():
    caretaker_id = current_user_id()
    form = PatientForm(request.get_json() or {}).validate()

    try:
        created = get_backend().sign_up(form.email, form.password, metadata={"user_type": "patient"})
    except BackendError as e:
        current_app.logger.error(f"Auth error creating patient {form.email}: {e.message}")
        return jsonify({"success": False, "message": e.message}), 400

    patient_id = (created.get("user") or created).get("id")
    if not patient_id:
        return jsonify({"success": False, "message": "Patient ID missing after signup"}), 502

    profile = ProfileRepository(authorized_backend(caretaker_id)).create(
        patient_id, form.username, form.email, "patient", assigned=caretaker_id,
    )
    current_app.logger.info(f"Caretaker {caretaker_id} added patient {patient_id}")
    return jsonify({
        "success": True,
        "message": "Patient added",
        "patient": _patient_payload(profile or {"id": patient_id, "email": form.email, "username": form.username}),
    }), 201


@role_required("caretaker")
def patient_dashboard(patient_id):
    _, backend, patient = _patient_context(patient_id)
    records = medication_repository(backend).list_for_patient(patient_id)
    summary = calculate_adherence(records, clock.today(), policy=_policy())
    return jsonify({
        "success": True,
        "patient": _patient_payload(patient),
        "today_status": "completed" if summary["taken_today"] else "pending",
        "summary": summary,
        "recent_activity": recent_activity(records),
    }), 200


# ------------------------------------------------------------- medications

@role_required("caretaker")
def list_medications(patient_id):
    _, backend, _patient = _patient_context(patient_id)
    records = medication_repository(backend).list_for_patient(patient_id, refresh=True)
    return jsonify({"success": True, "medications": records}), 200


@role_required("caretaker")
def create_medication(patient_id):
    _, backend, _patient = _patient_context(patient_id)
    form = MedicationForm(request.get_json() or {}).validate()
    repo = medication_repository(backend)
    medication = repo.create(patient_id, form.fields)
    return jsonify({
        "success": True,
        "message": "Medication added",
        "medication": medication,
        "summary": _summary(repo, patient_id),
    }), 201


@role_required("caretaker")
def begin_edit(patient_id, medication_id):
    caretaker_id, backend, _patient = _patient_context(patient_id)
    record = medication_repository(backend).get(patient_id, medication_id)
    editing = MedicationEditor(current_app.extensions["medtrack.state"], caretaker_id).begin(record)
    return jsonify({"success": True, "edit": editing}), 200


@role_required("caretaker")
def cancel_edit(patient_id):
    caretaker_id, _, _patient = _patient_context(patient_id)
    editor = MedicationEditor(current_app.extensions["medtrack.state"], caretaker_id)
    state = editor.current()
    # an edit open on another patient is left alone
    if str(state.get("patient_id")) == str(patient_id):
        state = editor.cancel()
    elif state["status"] != IDLE:
        raise Conflict("A medication of another patient is being edited.")
    return jsonify({"success": True, "edit": state}), 200


@role_required("caretaker")
def update_medication(patient_id, medication_id):
    caretaker_id, backend, _patient = _patient_context(patient_id)
    repo = medication_repository(backend)
    editor = MedicationEditor(current_app.extensions["medtrack.state"], caretaker_id)
    medication = editor.submit(
        medication_id,
        MedicationForm(request.get_json() or {}),
        lambda fields: repo.update(patient_id, medication_id, fields),
    )
    return jsonify({
        "success": True,
        "message": "Medication updated",
        "medication": medication,
        "summary": _summary(repo, patient_id),
    }), 200


@role_required("caretaker")
def delete_medication(patient_id, medication_id):
    caretaker_id, backend, _patient = _patient_context(patient_id)
    editor = MedicationEditor(current_app.extensions["medtrack.state"], caretaker_id)
    if str(editor.current().get("medication_id")) == str(medication_id):
        editor.cancel()

    repo = medication_repository(backend)
    repo.delete(patient_id, medication_id)
    return jsonify({
        "success": True,
        "message": "Medication deleted",
        "summary": _summary(repo, patient_id),
    }), 200


@role_required("caretaker")
def calendar(patient_id):
    _, backend, _patient = _patient_context(patient_id)
    today = clock.today()
    month = parse_month(request.args.get("month"), today)
    records = medication_repository(backend).list_for_patient(patient_id)
    return jsonify({
        "success": True,
        "month": month.strftime("%Y-%m"),
        "days": calendar_days(records, today, month=month, policy=_policy()),
    }), 200


@role_required("caretaker")
def activity(patient_id):
    _, backend, _patient = _patient_context(patient_id)
    records = medication_repository(backend).list_for_patient(patient_id)
    return jsonify({"success": True, "activity": recent_activity(records)}), 200


# ----------------------------------------------------------- notifications

def _preferences(caretaker_id, patient_id):
    return NotificationPreference.query.filter_by(caretaker_id=caretaker_id, patient_id=patient_id).first()


@role_required("caretaker")
def get_notifications(patient_id):
    caretaker_id, _, patient = _patient_context(patient_id)
    prefs = _preferences(caretaker_id, patient_id)
    if prefs is None:
        prefs = NotificationPreference(
            caretaker_id=caretaker_id, patient_id=patient_id,
            email_enabled=True, email_address=patient.get("email"),
            missed_alerts_enabled=True, missed_alert_delay_hours=2,
        )
    history = (
        Notification.query.filter_by(caretaker_id=caretaker_id, patient_id=patient_id)
        .order_by(Notification.id.desc())
        .limit(10)
        .all()
    )
    return jsonify({
        "success": True,
        "preferences": prefs.to_dict(),
        "history": [n.to_dict() for n in history],
    }), 200


@role_required("caretaker")
def update_notifications(patient_id):
    caretaker_id, _, _patient = _patient_context(patient_id)
    data = request.get_json() or {}

    email_address = (data.get("email_address") or "").strip() or None
    if email_address and not EMAIL_RE.match(email_address):
        raise ValidationError("Please enter a valid email address.")

    reminder_time = None
    if data.get("reminder_time"):
        try:
            reminder_time = datetime.strptime(data["reminder_time"], "%H:%M").time()
        except (TypeError, ValueError):
            raise ValidationError("Reminder time must be in HH:MM format.")

    try:
        delay = int(data.get("missed_alert_delay_hours", 2))
    except (TypeError, ValueError):
        raise ValidationError("Alert delay must be a number of hours.")
    if not 1 <= delay <= 24:
        raise ValidationError("Alert delay must be between 1 and 24 hours.")

    prefs = _preferences(caretaker_id, patient_id)
    if prefs is None:
        prefs = NotificationPreference(caretaker_id=caretaker_id, patient_id=patient_id)

    prefs.email_enabled = bool(data.get("email_enabled", True))
    prefs.email_address = email_address
    prefs.reminder_time = reminder_time
    prefs.missed_alerts_enabled = bool(data.get("missed_alerts_enabled", True))
    prefs.missed_alert_delay_hours = delay

    try:
        db.session.add(prefs)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({"success": True, "message": "Notification settings saved", "preferences": prefs.to_dict()}), 200


@role_required("caretaker")
def send_reminder(patient_id):
    caretaker_id, backend, patient = _patient_context(patient_id)
    prefs = _preferences(caretaker_id, patient_id)
    if prefs is not None and not prefs.email_enabled:
        raise Conflict("Email notifications are disabled for this patient.")

    to_email = (prefs.email_address if prefs else None) or patient.get("email")
    if not to_email:
        raise ValidationError("Patient has no email address.")

    meds = medication_repository(backend).active_on(patient_id, clock.today())
    message = f"Reminder sent to {to_email} for {len(meds)} medication(s)"

    try:
        delivered = send_reminder_email(to_email, patient.get("username") or "there", meds)
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error(f"Failed to send reminder email to {to_email}: {str(e)}")
        delivered = None

    db.session.add(Notification(
        caretaker_id=caretaker_id, patient_id=patient_id,
        message=message, type="reminder", delivered=bool(delivered),
    ))
    db.session.commit()

    if delivered is None:
        return jsonify({"success": False, "message": "Failed to send reminder email"}), 502
    return jsonify({
        "success": True,
        "message": "Reminder email sent to patient" if delivered else "Email is disabled; reminder logged",
        "delivered": delivered,
    }), 200
