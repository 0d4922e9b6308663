# app/routes/patient_routes.py
from flask import Blueprint
from app.controllers import patient_controller

patient_bp = Blueprint("patient", __name__, url_prefix="/api/v1/patient")

patient_bp.route("/dashboard", methods=["GET"])(patient_controller.dashboard)
patient_bp.route("/medications", methods=["GET"])(patient_controller.medications_for_date)
patient_bp.route("/medications/taken", methods=["POST"])(patient_controller.mark_taken)
patient_bp.route("/calendar", methods=["GET"])(patient_controller.calendar)
patient_bp.route("/activity", methods=["GET"])(patient_controller.activity)
