class ChatError(Exception):
    """Recoverable protocol error, reported to the originating connection only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    pass


class ConflictError(ChatError):
    pass


class NotFoundError(ChatError):
    pass


class AuthorizationError(ChatError):
    pass


class AgeGateError(ChatError):
    pass
