from flask import current_app, jsonify, request
from flask_jwt_extended import (
    create_access_token, get_jwt, get_jwt_identity, jwt_required, verify_jwt_in_request,
)

from app.errors import ValidationError
from app.services.backend_client import BackendError, get_backend
from app.services.medication_service import ProfileRepository
from app.services.navigation import LOGIN, RootViewState
from app.services.session_store import AuthSession, get_profile_cache, get_session_store
from app.utils.auth_utils import current_user_id
from app.utils.validators import LoginForm, SignupForm


def _user_payload(user_id, profile):
    return {
        "id": user_id,
        "email": profile.get("email"),
        "username": profile.get("username"),
        "user_type": profile.get("user_type"),
    }


def signup():
    form = SignupForm(request.get_json() or {}).validate()
    backend = get_backend()

    try:
        created = backend.sign_up(
            form.email, form.password,
            metadata={"user_type": form.user_type, "username": form.username},
        )
    except BackendError as e:
        current_app.logger.error(f"Signup error for {form.email}: {e.message}")
        return jsonify({"success": False, "message": e.message}), 400

    user = created.get("user") or created
    user_id = user.get("id")
    if not user_id:
        return jsonify({"success": False, "message": "Signup did not return a user"}), 502

    # sign in so the profile row is written as the new user
    session = None
    try:
        session = AuthSession.from_token_response(backend.sign_in_with_password(form.email, form.password))
    except BackendError as e:
        current_app.logger.info(f"Sign in after signup failed for {form.email}: {e.message}")

    profiles = ProfileRepository(backend.authorized(session.access_token) if session else backend)
    profile = profiles.create(user_id, form.username, form.email, form.user_type)

    view = RootViewState(onboarded=True).signup(form.user_type)
    message = "User registered. Please sign in." if session else \
        "User registered. Please confirm your email before logging in."
    return jsonify({
        "success": True,
        "message": message,
        "user": _user_payload(user_id, profile or {"email": form.email, "username": form.username,
                                                    "user_type": form.user_type}),
        "view": view.to_dict(),
    }), 201


def login():
    form = LoginForm(request.get_json() or {}).validate()
    backend = get_backend()

    try:
        payload = backend.sign_in_with_password(form.email, form.password)
    except BackendError as e:
        if "Email not confirmed" in e.message:
            return jsonify({"success": False, "message": "Please confirm your email before logging in."}), 403
        current_app.logger.info(f"Login failed for {form.email}: {e.message}")
        return jsonify({"success": False, "message": e.message}), 401

    session = AuthSession.from_token_response(payload)
    if session is None or not session.user_id:
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    profile = ProfileRepository(backend.authorized(session.access_token)).by_email(form.email) or {}
    user_type = profile.get("user_type") or session.user_type
    if not user_type:
        return jsonify({"success": False, "message": "No profile found for this account"}), 404

    get_session_store().start(session)
    get_profile_cache().put(session.user_id, dict(profile, id=session.user_id, user_type=user_type))

    access_token = create_access_token(identity=session.user_id, additional_claims={"user_type": user_type})
    return jsonify({
        "message": "Login successful",
        "success": True,
        "user": _user_payload(session.user_id, dict(profile, email=form.email, user_type=user_type)),
        "access_token": access_token,
        "view": RootViewState.for_session(user_type).to_dict(),
    }), 200


@jwt_required()
def logout():
    user_id = current_user_id()
    sessions = get_session_store()
    session = sessions.init(user_id)
    if session is not None:
        try:
            get_backend().sign_out(session.access_token)
        except BackendError as e:
            current_app.logger.warning(f"Backend sign-out failed for {user_id}: {e.message}")
    sessions.teardown(user_id)

    return jsonify({
        "success": True,
        "message": "Successfully logged out",
        "view": RootViewState().logout().to_dict(),
    }), 200


@jwt_required()
def current_session():
    user_id = current_user_id()
    session = get_session_store().current(user_id)
    if session is None:
        return jsonify({"success": False, "message": "Session expired, please log in again"}), 401

    cache = get_profile_cache()
    profile = cache.get(user_id)
    if not profile:
        fetched = ProfileRepository(get_backend().authorized(session.access_token)).by_id(user_id)
        if fetched:
            profile = cache.put(user_id, fetched)

    return jsonify({
        "success": True,
        "user": _user_payload(user_id, dict(profile, email=profile.get("email") or session.email)),
        "expires_at": session.expires_at,
    }), 200


_TRANSITIONS = ("complete_onboarding", "switch_user_type", "login", "signup", "logout")


def view():
    """
    GET: resolve the screen from the caller's token, or from query state.
    POST: apply one transition to the posted state.
    """
    verify_jwt_in_request(optional=True)

    if request.method == "GET":
        if get_jwt_identity() and get_session_store().init(str(get_jwt_identity())):
            state = RootViewState.for_session(get_jwt().get("user_type"))
        else:
            state = RootViewState(
                user_type=request.args.get("user_type") or None,
                onboarded=request.args.get("onboarded", "false").lower() == "true",
                auth_mode=request.args.get("mode", LOGIN),
            )
        return jsonify({"success": True, "view": state.to_dict()}), 200

    data = request.get_json() or {}
    raw = data.get("state") or {}
    state = RootViewState(
        user_type=raw.get("user_type"),
        onboarded=bool(raw.get("onboarded")),
        logged_in=bool(raw.get("logged_in")),
        auth_mode=raw.get("auth_mode", LOGIN),
    )
    action = data.get("action")
    if action not in _TRANSITIONS:
        raise ValidationError(f"Unknown action: {action}")
    if action in ("complete_onboarding", "login", "signup"):
        user_type = data.get("user_type")
        if user_type not in ("patient", "caretaker"):
            raise ValidationError("User type must be patient or caretaker.")
        getattr(state, action)(user_type)
    else:
        getattr(state, action)()
    return jsonify({"success": True, "view": state.to_dict()}), 200
