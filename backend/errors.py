"""Errors raised by room event handlers and reported back to the sender."""


class GameError(Exception):
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationFailed(GameError):
    code = "validation"


class NotFoundError(GameError):
    code = "not_found"


class PreconditionError(GameError):
    code = "precondition"


class TransientDependencyError(GameError):
    code = "dependency"
