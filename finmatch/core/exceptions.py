"""Custom exception classes for the engine."""


class FinMatchError(Exception):
    """Base class for engine errors."""

    def __init__(self, detail: str = "Engine error"):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(FinMatchError):
    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ForbiddenError(FinMatchError):
    def __init__(self, detail: str = "You don't have permission to access this resource"):
        super().__init__(detail)


class ValidationError(FinMatchError):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(detail)


class AlreadyProcessedError(FinMatchError):
    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} has already been processed")
        self.resource = resource


class ConfigurationError(FinMatchError):
    """Caller setup mistake. Never demoted to a missing signal."""

    def __init__(self, detail: str = "Invalid configuration"):
        super().__init__(detail)
