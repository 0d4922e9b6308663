# app/routes/auth_routes.py
from flask import Blueprint
from app.controllers import auth_controller

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

auth_bp.route("/signup", methods=["POST"])(auth_controller.signup)
auth_bp.route("/login", methods=["POST"])(auth_controller.login)
auth_bp.route("/logout", methods=["POST"])(auth_controller.logout)
auth_bp.route("/session", methods=["GET"])(auth_controller.current_session)
auth_bp.route("/view", methods=["GET", "POST"])(auth_controller.view)
