"""Browser session and cookie handling for the licensing platform."""

from .cookies import CookieJar
from .session import SessionCheck, SessionManager

__all__ = ["CookieJar", "SessionCheck", "SessionManager"]
