# app/services/medication_editor.py
import logging

from app.errors import Conflict
from app.utils.validators import MedicationForm

logger = logging.getLogger(__name__)

IDLE = "idle"
EDITING = "editing"
SUBMITTING = "submitting"


class MedicationEditor:
    """
    Edit-form state for one caretaker: idle -> editing -> submitting -> idle,
    or editing -> idle on cancel. Only one medication may be open at a time.
    """
    SUFFIX = "medication_edit"

    def __init__(self, state_store, caretaker_id):
        self.state = state_store
        self.caretaker_id = caretaker_id

    def current(self):
        return self.state.get_json(self.caretaker_id, suffix=self.SUFFIX) or {"status": IDLE}

    def _save(self, payload):
        self.state.set_json(self.caretaker_id, payload, suffix=self.SUFFIX)

    def begin(self, record):
        current = self.current()
        if current["status"] != IDLE and str(current.get("medication_id")) != str(record.get("id")):
            raise Conflict("Another medication is already being edited.")
        if current["status"] == SUBMITTING:
            raise Conflict("This medication is being saved.")
        payload = {
            "status": EDITING,
            "medication_id": record.get("id"),
            "patient_id": record.get("patient_id"),
            "fields": MedicationForm.from_record(record).fields,
        }
        self._save(payload)
        return payload

    def cancel(self):
        self.state.delete(self.caretaker_id, suffix=self.SUFFIX)
        return {"status": IDLE}

    def submit(self, medication_id, form, save):
        """Run ``save(fields)`` for the open record. Success returns the form to idle; a failed save leaves it open."""
        current = self.current()
        if current["status"] != EDITING or str(current.get("medication_id")) != str(medication_id):
            raise Conflict("Medication is not being edited.")

        form.validate()
        current["status"] = SUBMITTING
        current["fields"] = form.fields
        self._save(current)
        try:
            result = save(form.fields)
        except Exception:
            current["status"] = EDITING
            self._save(current)
            raise
        self.cancel()
        logger.info("Caretaker %s saved medication id=%s", self.caretaker_id, medication_id)
        return result
