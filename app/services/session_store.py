# app/services/session_store.py
import logging
import time

from flask import current_app

from app.services.backend_client import BackendError

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
SIGNED_OUT = "SIGNED_OUT"

# refresh a little before the backend would reject the token
EXPIRY_LEEWAY_SECS = 30


class AuthSession:
    def __init__(self, access_token, refresh_token=None, expires_at=None, user=None):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = expires_at
        self.user = user or {}

    @property
    def user_id(self):
        return self.user.get("id")

    @property
    def email(self):
        return self.user.get("email")

    @property
    def user_type(self):
        return (self.user.get("user_metadata") or {}).get("user_type")

    def is_expired(self, now=None):
        if not self.expires_at:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at - EXPIRY_LEEWAY_SECS

    @classmethod
    def from_token_response(cls, payload):
        """Build a session from a backend token/sign-in response, or None if it carries no token."""
        if not payload or not payload.get("access_token"):
            return None
        expires_at = payload.get("expires_at")
        if not expires_at and payload.get("expires_in"):
            expires_at = int(time.time()) + int(payload["expires_in"])
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            user=payload.get("user") or {},
        )

    @classmethod
    def from_dict(cls, data):
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
            user=data.get("user") or {},
        )

    def to_dict(self):
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user": self.user,
        }


class SessionStore:
    """
    Owns the signed-in backend sessions, one per user id.

    Sessions are persisted in the StateStore so any worker can restore them
    (init), are refreshed when the access token has expired (refresh) and
    removed on logout (teardown). Interested parties subscribe to the
    SIGNED_IN / TOKEN_REFRESHED / SIGNED_OUT events.
    """
    SUFFIX = "session"

    def __init__(self, backend, state_store):
        self.backend = backend
        self.state = state_store
        self._listeners = []

    def subscribe(self, callback):
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _emit(self, event, user_id, session):
        for listener in list(self._listeners):
            listener(event, user_id, session)

    def _persist(self, session):
        self.state.set_json(session.user_id, session.to_dict(), suffix=self.SUFFIX)

    def start(self, session):
        self._persist(session)
        logger.info("Session started for user_id=%s", session.user_id)
        self._emit(SIGNED_IN, session.user_id, session)
        return session

    def init(self, user_id):
        data = self.state.get_json(user_id, suffix=self.SUFFIX)
        if not data:
            return None
        return AuthSession.from_dict(data)

    def refresh(self, user_id):
        session = self.init(user_id)
        if session is None or not session.refresh_token:
            return None
        try:
            payload = self.backend.refresh_session(session.refresh_token)
        except BackendError as e:
            # 4xx: the refresh token was revoked or has expired
            if e.status_code is None or e.status_code >= 500:
                raise
            logger.warning("Refresh rejected for user_id=%s: %s", user_id, e.message)
            self.teardown(user_id)
            return None
        refreshed = AuthSession.from_token_response(payload)
        if refreshed is None:
            return None
        if not refreshed.user:
            refreshed.user = session.user
        self._persist(refreshed)
        logger.info("Session refreshed for user_id=%s", user_id)
        self._emit(TOKEN_REFRESHED, user_id, refreshed)
        return refreshed

    def current(self, user_id):
        """Restored session for user_id, refreshed first when expired."""
        session = self.init(user_id)
        if session is not None and session.is_expired():
            session = self.refresh(user_id)
        return session

    def teardown(self, user_id):
        session = self.init(user_id)
        self.state.delete(user_id, suffix=self.SUFFIX)
        logger.info("Session torn down for user_id=%s", user_id)
        self._emit(SIGNED_OUT, user_id, session)


class ProfileCache:
    """Cached profile fields for a signed-in user, cleared on sign-out."""
    SUFFIX = "profile"
    FIELDS = ("id", "email", "username", "user_type", "Assigned")

    def __init__(self, state_store):
        self.state = state_store

    def get(self, user_id):
        return self.state.get_json(user_id, suffix=self.SUFFIX) or {}

    def put(self, user_id, profile):
        blob = {k: profile.get(k) for k in self.FIELDS if k in profile}
        self.state.set_json(user_id, blob, suffix=self.SUFFIX)
        return blob

    def clear(self, user_id):
        self.state.delete(user_id, suffix=self.SUFFIX)

    def on_session_event(self, event, user_id, session):
        if event == SIGNED_OUT:
            self.clear(user_id)


def get_session_store() -> SessionStore:
    return current_app.extensions["medtrack.sessions"]


def get_profile_cache() -> ProfileCache:
    return current_app.extensions["medtrack.profiles"]
