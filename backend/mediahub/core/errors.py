"""
Error kinds raised by the core and translated to responses in ``main.py``.

A single exception type carries a tagged ``ErrorKind``. Every kind knows its
HTTP status code and the message that is safe to show to a client; the
message passed at raise time is for logs only unless the kind is marked
``expose``.
"""
from enum import Enum
from typing import Any, List, Optional

GENERIC_AUTH_MESSAGE = "Invalid credentials"


class ErrorKind(Enum):
    # name = (code, status_code, public message, expose raise-time message)
    VALIDATION = ("validation_error", 422, "Invalid request", True)
    AUTHENTICATION = ("authentication_error", 401, GENERIC_AUTH_MESSAGE, False)
    CONFLICT = ("conflict", 409, "Resource already exists", True)
    TOKEN_EXPIRED = ("token_expired", 401, "Token expired", False)
    TOKEN_INVALID = ("token_invalid", 401, "Invalid token", False)
    TOKEN_KIND_MISMATCH = ("token_kind_mismatch", 401, "Invalid token", False)
    SESSION_COMPROMISED = ("session_compromised", 401, GENERIC_AUTH_MESSAGE, False)
    NOT_FOUND = ("not_found", 404, "Not found", True)
    INTERNAL = ("internal_error", 500, "Internal server error", False)

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def status_code(self) -> int:
        return self.value[1]

    @property
    def public_message(self) -> str:
        return self.value[2]

    @property
    def expose(self) -> bool:
        return self.value[3]


class AppError(Exception):
    """Tagged application error: ``kind`` decides status and public message."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None, details: Optional[List[Any]] = None):
        self.kind = kind
        self.message = message or kind.public_message
        self.details = list(details or [])
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def public_message(self) -> str:
        # Auth-related kinds always surface the same generic text
        if self.kind.expose:
            return self.message
        return self.kind.public_message

    @property
    def public_details(self) -> List[Any]:
        return self.details if self.kind.expose else []

    def __repr__(self) -> str:
        return f"AppError({self.kind.name}, {self.message!r})"
