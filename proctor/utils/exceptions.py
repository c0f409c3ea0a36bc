"""Custom exceptions for the assessment session engine."""


class ProctorError(Exception):
    """Base exception for assessment session errors."""

    pass


class CapabilityUnsupported(ProctorError):
    """Full-screen capability is not available on this surface."""

    pass


class FullscreenError(ProctorError):
    """Full-screen request or exit was refused."""

    pass


class ApiError(ProctorError):
    """Assessment backend request failed."""

    pass


class SubmissionTransportError(ApiError):
    """Answer submission did not reach the backend or came back unusable."""

    pass


class InvalidTestError(ProctorError):
    """Assigned test cannot be started."""

    pass


class SessionStateError(ProctorError):
    """Operation is not valid in the current session state."""

    pass
