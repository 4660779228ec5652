"""Service-level exceptions.

Services raise these; ``middleware.error_handler`` turns them into
``{"success": false, "message": ...}`` responses with the matching status.
"""

from __future__ import annotations


class GameError(Exception):
    """A request that breaks a game rule (already claimed, not complete, ...)."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(GameError):
    """Missing or invalid settings, or an empty catalog the operation needs."""

    status_code = 500


class NotFoundError(GameError):
    status_code = 404


class AuthenticationError(GameError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationError(GameError):
    """Caller lacks the role. The message never says why."""

    status_code = 403

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class InsufficientBalanceError(GameError):
    pass
