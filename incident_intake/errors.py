class IncidentIntakeError(Exception):
    """Base error; ``message`` is safe to show to the form user."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(IncidentIntakeError):
    status_code = 400

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class ConfigError(IncidentIntakeError):
    pass


class CredentialFormatError(IncidentIntakeError):
    pass


class AuthError(IncidentIntakeError):
    pass


class UpstreamError(IncidentIntakeError):
    pass
