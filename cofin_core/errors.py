"""Exception hierarchy for the back-office core."""


class CofinError(Exception):
    """Base exception for all back-office errors."""


class MissingFieldError(CofinError):
    """Raised when a required field is absent or empty."""

    def __init__(self, field: str, message: str = ""):
        self.field = field
        super().__init__(message or f"Missing required field: {field}")


class NotFoundError(CofinError):
    """Raised when a referenced record does not exist."""


class ExpiredError(CofinError):
    """Raised when an OTP is used after its expiry time."""


class CodeMismatchError(CofinError):
    """Raised when a submitted OTP code differs from the stored one."""


class OtpNotVerifiedError(CofinError):
    """Raised when an account confirmation references an unverified OTP."""


class PurposeDisabledError(CofinError):
    """Raised when OTP issuance is disabled for the requested purpose."""


class UnknownOperationTypeError(CofinError):
    """Raised in strict mode when an operation type has no posting rule."""


class UnknownSettingError(CofinError):
    """Raised when a settings update names a field that does not exist."""


class InvalidSettingError(CofinError):
    """Raised when a settings update carries a value of the wrong kind."""
