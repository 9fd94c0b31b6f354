from secrets import compare_digest

from fastapi import Request

from app.config import Settings
from app.errors import Unauthorized

SESSION_USER_KEY = "user"
API_KEY_HEADER = "x-api-key"


def verify_credentials(settings: Settings, username: str, password: str) -> bool:
    if not settings.admin_password:
        return False
    user_ok = compare_digest(username.encode("utf-8"), settings.admin_username.encode("utf-8"))
    password_ok = compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))
    return user_ok and password_ok


class AuthGate:
    """Route dependency: a signed-in session or the shared API key."""

    def __init__(self, settings: Settings):
        self.api_key = settings.api_key

    def __call__(self, request: Request) -> str:
        user = request.session.get(SESSION_USER_KEY)
        if user:
            return user
        supplied = request.headers.get(API_KEY_HEADER)
        if self.api_key and supplied and compare_digest(supplied.encode("utf-8"), self.api_key.encode("utf-8")):
            return "api-key"
        raise Unauthorized()
