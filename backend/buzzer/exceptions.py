"""
Domain exceptions for the buzzer server.

Kept in one place so the HTTP blueprints and the Socket.IO gateway can
translate them into client-facing errors the same way.
"""


class BuzzerError(Exception):
    """Base class for every rejection raised by the session layer."""

    message = 'Request failed'

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ============ Input ============

class ValidationError(BuzzerError):
    """Missing or malformed input; nothing was changed."""
    message = 'Invalid request'


class UnknownAction(ValidationError):
    def __init__(self, action_type):
        self.action_type = action_type
        super().__init__(f"Unknown host action: {action_type!r}")


# ============ Lookup ============

class NotFoundError(BuzzerError):
    message = 'Not found'


class SessionNotFound(NotFoundError):
    def __init__(self, key):
        self.key = key
        super().__init__(f"Session {key} not found")


class PlayerNotFound(NotFoundError):
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


# ============ Rejections ============

class Unauthorized(BuzzerError):
    """A non-host attempted a host action."""
    message = 'Only the host can do that'


class InvalidTransition(BuzzerError):
    """The session is not in a state that allows the request."""
    message = 'Not allowed right now'
