# app/services/navigation.py
ONBOARDING = "onboarding"
LOGIN = "login"
SIGNUP = "signup"
PATIENT_DASHBOARD = "patient_dashboard"
CARETAKER_DASHBOARD = "caretaker_dashboard"

AUTH_MODES = (LOGIN, SIGNUP)


class RootViewState:
    """Which top-level screen the client should show."""

    def __init__(self, user_type=None, onboarded=False, logged_in=False, auth_mode=LOGIN):
        self.user_type = user_type
        self.onboarded = onboarded
        self.logged_in = logged_in
        self.auth_mode = auth_mode if auth_mode in AUTH_MODES else LOGIN

    @classmethod
    def for_session(cls, user_type):
        """A restored session skips onboarding and lands on the role's dashboard."""
        return cls(user_type=user_type, onboarded=True, logged_in=True)

    def complete_onboarding(self, user_type):
        self.user_type = user_type
        self.onboarded = True
        return self

    def switch_user_type(self):
        self.user_type = "caretaker" if self.user_type == "patient" else "patient"
        self.logged_in = False
        self.auth_mode = LOGIN
        return self

    def login(self, user_type):
        self.user_type = user_type
        self.logged_in = True
        return self

    def signup(self, user_type):
        self.user_type = user_type
        self.logged_in = False
        self.auth_mode = LOGIN
        return self

    def logout(self):
        self.user_type = None
        self.onboarded = False
        self.logged_in = False
        self.auth_mode = LOGIN
        return self

    def current_view(self):
        if not self.onboarded or self.user_type is None:
            return ONBOARDING
        if not self.logged_in:
            return self.auth_mode
        if self.user_type == "caretaker":
            return CARETAKER_DASHBOARD
        return PATIENT_DASHBOARD

    def to_dict(self):
        return {
            "view": self.current_view(),
            "user_type": self.user_type,
            "onboarded": self.onboarded,
            "logged_in": self.logged_in,
            "auth_mode": self.auth_mode,
        }
