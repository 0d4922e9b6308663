# app/services/medication_service.py
import logging
import time

from flask import current_app
from werkzeug.utils import secure_filename

from app.errors import NotFound, PhotoUploadError
from app.services.adherence import is_active, parse_day
from app.services.backend_client import BackendError

logger = logging.getLogger(__name__)

MEDICATIONS_TABLE = "medications"
PROFILES_TABLE = "UsersData"

EDITABLE_FIELDS = ("medication_name", "dosage", "frequency", "start_date", "end_date", "time_of_day")


class MedicationRepository:
    """
    Medication rows of one backend (as the signed-in user), with a read-through
    cache per patient id. Every mutation invalidates that patient's entry so
    the next read on any dashboard re-fetches.

    Concurrent writers are last-write-wins; the backend offers no version check.
    """
    CACHE_SUFFIX = "medications"

    def __init__(self, backend, state_store, cache_ttl=60, photo_bucket="medication-images"):
        self.backend = backend
        self.state = state_store
        self.cache_ttl = cache_ttl
        self.photo_bucket = photo_bucket

    # --- reads ---
    def list_for_patient(self, patient_id, refresh=False):
        if not refresh:
            cached = self.state.get_json(patient_id, suffix=self.CACHE_SUFFIX)
            if cached is not None:
                return cached

        rows = (
            self.backend.table(MEDICATIONS_TABLE)
            .select("*")
            .eq("patient_id", patient_id)
            .order("created_at", desc=True)
            .execute()
        ) or []
        self.state.set_json(patient_id, rows, suffix=self.CACHE_SUFFIX, ttl=self.cache_ttl)
        return rows

    def invalidate(self, patient_id):
        self.state.delete(patient_id, suffix=self.CACHE_SUFFIX)

    def get(self, patient_id, medication_id):
        for row in self.list_for_patient(patient_id):
            if str(row.get("id")) == str(medication_id):
                return row
        raise NotFound("Medication not found")

    def active_on(self, patient_id, day):
        return [r for r in self.list_for_patient(patient_id) if is_active(r, day)]

    # --- writes ---
    def create(self, patient_id, fields):
        row = {"patient_id": patient_id}
        row.update({k: fields.get(k) for k in EDITABLE_FIELDS if k in fields})
        created = self.backend.table(MEDICATIONS_TABLE).insert([row]).single().execute()
        self.invalidate(patient_id)
        logger.info("Created medication id=%s for patient_id=%s", (created or {}).get("id"), patient_id)
        return created

    def update(self, patient_id, medication_id, fields):
        values = {k: fields.get(k) for k in EDITABLE_FIELDS if k in fields}
        rows = (
            self.backend.table(MEDICATIONS_TABLE)
            .update(values)
            .eq("id", medication_id)
            .eq("patient_id", patient_id)
            .execute()
        )
        self.invalidate(patient_id)
        if not rows:
            raise NotFound("Medication not found")
        return rows[0]

    def delete(self, patient_id, medication_id):
        deleted = (
            self.backend.table(MEDICATIONS_TABLE)
            .delete()
            .eq("id", medication_id)
            .eq("patient_id", patient_id)
            .execute()
        )
        self.invalidate(patient_id)
        if not deleted:
            raise NotFound("Medication not found")
        logger.info("Deleted medication id=%s for patient_id=%s", medication_id, patient_id)

    # --- mark taken ---
    def upload_photo(self, photo):
        """Store the proof photo; returns its public URL. Uploaded objects are never deleted."""
        name = secure_filename(photo.filename or "")
        ext = name.rsplit(".", 1)[-1].lower() if "." in name else "jpg"
        path = f"medication-images/{int(time.time() * 1000)}.{ext}"
        bucket = self.backend.storage(self.photo_bucket)
        try:
            bucket.upload(path, photo.read(), content_type=photo.mimetype or "application/octet-stream")
        except BackendError as e:
            logger.error("Error uploading image %s: %s", path, e.message)
            raise PhotoUploadError("Failed to upload image. Please try again.") from e
        return bucket.get_public_url(path)

    def mark_taken(self, patient_id, day, photo=None):
        """
        Append ``day`` to taken_date on every medication active that day.

        The photo, when given, is uploaded first and a failed upload aborts
        the action. Upload and row updates are separate calls: a failure
        after the upload leaves the stored object orphaned.
        """
        meds = self.active_on(patient_id, day)
        if not meds:
            raise NotFound("No medication found for this date.")

        image_url = self.upload_photo(photo) if photo is not None else None
        day_str = day.isoformat()

        updated = []
        try:
            for med in meds:
                # stored entries are kept verbatim, even ones we cannot parse
                taken = list(med.get("taken_date") or [])
                if not any(parse_day(v) == day for v in taken):
                    taken.append(day_str)
                values = {"taken": True, "taken_date": taken}
                if image_url:
                    values["image_url"] = image_url
                row = (
                    self.backend.table(MEDICATIONS_TABLE)
                    .update(values)
                    .eq("id", med["id"])
                    .single()
                    .execute()
                )
                updated.append(row)
        finally:
            self.invalidate(patient_id)

        logger.info("Marked %d medication(s) taken on %s for patient_id=%s", len(updated), day_str, patient_id)
        return updated, image_url


class ProfileRepository:
    def __init__(self, backend):
        self.backend = backend

    def by_email(self, email):
        rows = self.backend.table(PROFILES_TABLE).select("*").eq("email", email).execute() or []
        return rows[0] if rows else None

    def by_id(self, user_id):
        rows = self.backend.table(PROFILES_TABLE).select("*").eq("id", user_id).execute() or []
        return rows[0] if rows else None

    def create(self, user_id, username, email, user_type, assigned=None):
        row = {"id": user_id, "username": username, "email": email, "user_type": user_type}
        if assigned:
            row["Assigned"] = assigned
        return self.backend.table(PROFILES_TABLE).insert([row]).single().execute()

    def patients_of(self, caretaker_id):
        return (
            self.backend.table(PROFILES_TABLE)
            .select("*")
            .eq("Assigned", caretaker_id)
            .eq("user_type", "patient")
            .execute()
        ) or []


def medication_repository(backend):
    cfg = current_app.config
    return MedicationRepository(
        backend,
        current_app.extensions["medtrack.state"],
        cache_ttl=int(cfg.get("MEDICATION_CACHE_TTL", 60)),
        photo_bucket=cfg.get("PHOTO_BUCKET", "medication-images"),
    )
