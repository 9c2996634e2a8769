class NotFoundError(Exception):
    """Resource not found"""
    pass


class AuthenticationError(Exception):
    """Remote endpoint rejected the credentials."""
    pass
