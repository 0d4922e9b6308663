# app/routes/caretaker_routes.py
from flask import Blueprint
from app.controllers import caretaker_controller

caretaker_bp = Blueprint("caretaker", __name__, url_prefix="/api/v1/caretaker")

caretaker_bp.route("/patients", methods=["GET"])(caretaker_controller.list_patients)
caretaker_bp.route("/patients", methods=["POST"])(caretaker_controller.add_patient)
caretaker_bp.route("/patients/<patient_id>/dashboard", methods=["GET"])(caretaker_controller.patient_dashboard)

# Medications
caretaker_bp.route("/patients/<patient_id>/medications", methods=["GET"])(caretaker_controller.list_medications)
caretaker_bp.route("/patients/<patient_id>/medications", methods=["POST"])(caretaker_controller.create_medication)
caretaker_bp.route("/patients/<patient_id>/medications/edit", methods=["DELETE"])(caretaker_controller.cancel_edit)
caretaker_bp.route("/patients/<patient_id>/medications/<medication_id>/edit", methods=["POST"])(caretaker_controller.begin_edit)
caretaker_bp.route("/patients/<patient_id>/medications/<medication_id>", methods=["PUT"])(caretaker_controller.update_medication)
caretaker_bp.route("/patients/<patient_id>/medications/<medication_id>", methods=["DELETE"])(caretaker_controller.delete_medication)

caretaker_bp.route("/patients/<patient_id>/calendar", methods=["GET"])(caretaker_controller.calendar)
caretaker_bp.route("/patients/<patient_id>/activity", methods=["GET"])(caretaker_controller.activity)

# Notifications
caretaker_bp.route("/patients/<patient_id>/notifications", methods=["GET"])(caretaker_controller.get_notifications)
caretaker_bp.route("/patients/<patient_id>/notifications", methods=["PUT"])(caretaker_controller.update_notifications)
caretaker_bp.route("/patients/<patient_id>/reminders", methods=["POST"])(caretaker_controller.send_reminder)
