# app/__init__.py
from flask import Flask, jsonify
from .extensions import db
from flask_migrate import Migrate
from dotenv import load_dotenv
from flask_jwt_extended import JWTManager
from flask_cors import CORS
import logging
import os

load_dotenv()


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() == "true"


def create_app(test_config=None, backend=None, state_store=None):
    app = Flask(__name__)

    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///medtrack.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'super-secret')
    app.config['FRONTEND_URL'] = os.getenv('FRONTEND_URL', 'http://localhost:5173')

    # hosted backend (auth, tables, storage)
    app.config['BACKEND_URL'] = os.getenv('BACKEND_URL')
    app.config['BACKEND_API_KEY'] = os.getenv('BACKEND_API_KEY')
    app.config['BACKEND_TIMEOUT'] = int(os.getenv('BACKEND_TIMEOUT', '10'))
    app.config['PHOTO_BUCKET'] = os.getenv('PHOTO_BUCKET', 'medication-images')

    app.config["EMAIL_ENABLED"] = _env_flag("EMAIL_ENABLED", "true")
    app.config['SMTP_HOST'] = os.getenv('SMTP_HOST')
    app.config['SMTP_PORT'] = os.getenv('SMTP_PORT')
    app.config['SMTP_USER'] = os.getenv('SMTP_USER')
    app.config['SMTP_PASS'] = os.getenv('SMTP_PASS')

    app.config['REDIS_URL'] = os.getenv('REDIS_URL')
    app.config['MEDICATION_CACHE_TTL'] = int(os.getenv('MEDICATION_CACHE_TTL', '60'))
    app.config['ADHERENCE_COUNT_OUT_OF_WINDOW'] = _env_flag('ADHERENCE_COUNT_OUT_OF_WINDOW')
    app.config['STREAK_CAP_DAYS'] = int(os.getenv('STREAK_CAP_DAYS', '30'))

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    Migrate(app, db)
    jwt = JWTManager(app)

    CORS(app,
         origins=[app.config['FRONTEND_URL'], "http://127.0.0.1:5173"],
         supports_credentials=True,
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"])

    _init_services(app, backend, state_store)
    _register_error_handlers(app, jwt)

    from .routes.auth_routes import auth_bp
    from .routes.patient_routes import patient_bp
    from .routes.caretaker_routes import caretaker_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(patient_bp)
    app.register_blueprint(caretaker_bp)

    return app


def _init_services(app, backend=None, state=None):
    from .services.backend_client import BackendClient
    from .services.session_store import ProfileCache, SessionStore
    from .utils.state_store import StateStore

    state = state or StateStore(redis_url=app.config['REDIS_URL'])
    backend = backend or BackendClient(
        app.config['BACKEND_URL'],
        app.config['BACKEND_API_KEY'],
        timeout=app.config['BACKEND_TIMEOUT'],
    )
    sessions = SessionStore(backend, state)
    profiles = ProfileCache(state)
    sessions.subscribe(profiles.on_session_event)

    app.extensions["medtrack.state"] = state
    app.extensions["medtrack.backend"] = backend
    app.extensions["medtrack.sessions"] = sessions
    app.extensions["medtrack.profiles"] = profiles


def _register_error_handlers(app, jwt):
    from werkzeug.exceptions import HTTPException
    from .errors import ApiError
    from .services.backend_client import BackendError

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        return jsonify(success=False, message=e.message), e.status_code

    @app.errorhandler(BackendError)
    def handle_backend_error(e):
        app.logger.error(f"Backend call failed ({e.status_code}): {e.message}")
        return jsonify(success=False, message="Something went wrong. Please try again."), 502

    @app.errorhandler(Exception)
    def handle_error(e):
        if isinstance(e, HTTPException):
            return jsonify(success=False, message=e.description), e.code
        app.logger.exception("Unhandled error")
        return jsonify(success=False, message=str(e)), 500

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"success": False, "message": "Token expired"}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(err_msg):
        return jsonify({"success": False, "message": f"Invalid token: {err_msg}"}), 422

    @jwt.unauthorized_loader
    def missing_token_callback(err_msg):
        return jsonify({"success": False, "message": f"Missing token: {err_msg}"}), 401
