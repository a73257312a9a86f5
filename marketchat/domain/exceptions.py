# marketchat/domain/exceptions.py


class ChatServiceError(Exception):
    status_code: int = 500
    default_message: str = "Chat service error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        return self.message


class NotFound(ChatServiceError):
    status_code = 404
    default_message = "Chat not found"


class Forbidden(ChatServiceError):
    # rendered exactly like NotFound so callers cannot probe for chat ids
    status_code = 404
    default_message = "You are not a participant of this chat"

    @property
    def public_message(self) -> str:
        return NotFound.default_message


class InvalidState(ChatServiceError):
    status_code = 409
    default_message = "Chat is not active"


class InvalidTransition(InvalidState):
    default_message = "Chat status does not allow this action"


class InvalidRequest(ChatServiceError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(ChatServiceError):
    status_code = 401
    default_message = "Could not validate credentials"


class Unavailable(ChatServiceError):
    status_code = 503
    default_message = "Service temporarily unavailable, please retry"
