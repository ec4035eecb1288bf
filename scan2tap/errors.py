"""
Error taxonomy shared by the service modules.

Every error maps to an HTTP status and a short machine code; main.py renders
them as {"detail", "code", "upgrade"}.
"""


class Scan2TapError(Exception):
    status_code = 400
    code = "error"
    upgrade = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"detail": self.message, "code": self.code, "upgrade": self.upgrade}


class ValidationFailed(Scan2TapError):
    status_code = 400
    code = "validation_error"


class UsernameTaken(Scan2TapError):
    status_code = 409
    code = "username_taken"

    def __init__(self, message: str = "This username is already taken. Try another one!"):
        super().__init__(message)


class PlanLimitReached(Scan2TapError):
    """Soft error: the caller should show an upgrade prompt."""
    status_code = 403
    code = "plan_limit"
    upgrade = True


class NotFound(Scan2TapError):
    status_code = 404
    code = "not_found"


class AuthenticationFailed(Scan2TapError):
    status_code = 401
    code = "unauthorized"


class ExternalServiceError(Scan2TapError):
    status_code = 502
    code = "external_service_error"


class Conflict(Scan2TapError):
    status_code = 409
    code = "conflict"
