"""Domain errors raised by the service layer.

Every error carries a stable ``kind`` (the family a client switches on) and
the HTTP status it maps to. The concrete class name goes out as ``reason``.
"""


class RenrakuError(Exception):
    kind = "Error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        self.message = message or self.kind
        super().__init__(self.message)

    @property
    def reason(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.kind, "reason": self.reason, "detail": self.message}


class ValidationError(RenrakuError):
    kind = "ValidationError"
    status_code = 422


class CodeInvalid(ValidationError):
    pass


class CodeExpired(ValidationError):
    pass


class Unauthorized(RenrakuError):
    kind = "Unauthorized"
    status_code = 401


class CredentialInvalid(Unauthorized):
    pass


class CredentialExpired(Unauthorized):
    pass


class Forbidden(RenrakuError):
    kind = "Forbidden"
    status_code = 403


class NotFound(RenrakuError):
    kind = "NotFound"
    status_code = 404


class Conflict(RenrakuError):
    kind = "Conflict"
    status_code = 409


class CodeAlreadyUsed(Conflict):
    pass


class InvalidMembership(Conflict):
    pass


class Unavailable(RenrakuError):
    kind = "Unavailable"
    status_code = 503
