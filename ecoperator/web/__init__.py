from .client import MetricsWebClient
from .error import AuthenticationError, NotFoundError
from .session import SessionManager

__all__ = ["MetricsWebClient", "SessionManager", "AuthenticationError", "NotFoundError"]
