"""Error codes raised by procedures and mapped to HTTP responses."""

from enum import Enum


class ErrorCode(Enum):
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL_SERVER_ERROR"


HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.INTERNAL: 500,
}


class ProcedureError(Exception):
    """Base procedure error with code and user-safe message."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.code]


class NotFound(ProcedureError):
    def __init__(self, what: str) -> None:
        super().__init__(code=ErrorCode.NOT_FOUND, message=f"{what} not found")


class BadRequest(ProcedureError):
    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.BAD_REQUEST, message=message)


class Conflict(ProcedureError):
    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.CONFLICT, message=message)


class Unauthorized(ProcedureError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.UNAUTHORIZED, message="Admin login required"
        )
