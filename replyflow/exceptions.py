from typing import Optional


class FlowError(Exception):
    """Base error for the flow engine."""


class FlowConfigurationError(FlowError):
    """A node or listener is missing configuration it needs."""


class PlatformError(FlowError):
    """The Instagram Graph API rejected a call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AIGenerationError(FlowError):
    """No provider produced a usable reply."""
