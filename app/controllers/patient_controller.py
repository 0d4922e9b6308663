# app/controllers/patient_controller.py
from flask import current_app, jsonify, request

from app.errors import ValidationError
from app.services.adherence import (
    AdherencePolicy, calculate_adherence, calendar_days, parse_day, recent_activity, taken_days,
)
from app.services.medication_service import ProfileRepository, medication_repository
from app.services.session_store import get_profile_cache
from app.utils import clock
from app.utils.auth_utils import authorized_backend, current_user_id, role_required
from app.utils.validators import parse_month


def _policy():
    return AdherencePolicy.from_config(current_app.config)


def _greeting(hour):
    if hour < 12:
        return "Good Morning!"
    if hour < 18:
        return "Good Afternoon!"
    return "Good Evening!"


def _profile(user_id, backend):
    """Cached profile blob, filled from the backend on first read."""
    cache = get_profile_cache()
    profile = cache.get(user_id)
    if not profile.get("username"):
        fetched = ProfileRepository(backend).by_id(user_id)
        if fetched:
            profile = cache.put(user_id, fetched)
    return profile


@role_required("patient")
def dashboard():
    user_id = current_user_id()
    backend = authorized_backend(user_id)
    records = medication_repository(backend).list_for_patient(user_id)
    today = clock.today()
    summary = calculate_adherence(records, today, policy=_policy())
    profile = _profile(user_id, backend)

    return jsonify({
        "success": True,
        "username": profile.get("username"),
        "greeting": _greeting(clock.now().hour),
        "today": today.isoformat(),
        "today_status": "taken" if summary["taken_today"] else "pending",
        "streak": summary["current_streak"],
        "monthly_rate": summary["adherence_rate"],
        "summary": summary,
    }), 200


@role_required("patient")
def medications_for_date():
    user_id = current_user_id()
    today = clock.today()
    day = parse_day(request.args.get("date")) or today
    repo = medication_repository(authorized_backend(user_id))
    policy = _policy()

    meds = []
    for record in repo.active_on(user_id, day):
        meds.append(dict(record, taken_on_date=day in taken_days(record, policy)))

    return jsonify({
        "success": True,
        "date": day.isoformat(),
        "is_today": day == today,
        "can_mark_taken": day == today,
        "medications": meds,
    }), 200


@role_required("patient")
def mark_taken():
    user_id = current_user_id()
    today = clock.today()

    raw_date = request.form.get("date")
    day = parse_day(raw_date) if raw_date else today
    if day is None:
        raise ValidationError("Date must be in YYYY-MM-DD format.")
    if day != today:
        return jsonify({"success": False, "message": "You can only mark today's medication as taken"}), 422

    photo = request.files.get("photo")
    if photo is not None and not photo.filename:
        photo = None

    repo = medication_repository(authorized_backend(user_id))
    updated, image_url = repo.mark_taken(user_id, day, photo=photo)
    current_app.logger.info(f"Patient {user_id} marked {len(updated)} medication(s) taken on {day}")

    records = repo.list_for_patient(user_id)
    return jsonify({
        "success": True,
        "message": "Medication marked as taken.",
        "date": day.isoformat(),
        "updated": len(updated),
        "image_url": image_url,
        "summary": calculate_adherence(records, today, policy=_policy()),
    }), 200


@role_required("patient")
def calendar():
    user_id = current_user_id()
    today = clock.today()
    month = parse_month(request.args.get("month"), today)
    records = medication_repository(authorized_backend(user_id)).list_for_patient(user_id)
    return jsonify({
        "success": True,
        "month": month.strftime("%Y-%m"),
        "days": calendar_days(records, today, month=month, policy=_policy()),
    }), 200


@role_required("patient")
def activity():
    user_id = current_user_id()
    records = medication_repository(authorized_backend(user_id)).list_for_patient(user_id)
    return jsonify({"success": True, "activity": recent_activity(records)}), 200
