"""
Exceptions for the App Center release upload workflow.

Every component raises one of these; the orchestrator is the single place
that turns them into an UploadOutcome.
"""


class AppCenterException(Exception):
    """Base App Center error."""

    def __init__(self, message, **kwargs):
        super().__init__(message)
        self.message = message
        self.endpoint = kwargs.get('endpoint')
        self.status_code = kwargs.get('status_code')


class TransportError(AppCenterException):
    """Connectivity, timeout or unexpected HTTP status."""

    def __init__(self, message, retryable=True, **kwargs):
        super().__init__(message, **kwargs)
        self.retryable = retryable


class AuthError(AppCenterException):
    """API token rejected (401/403). Never retried."""
    pass


class SessionError(AppCenterException):
    """Release upload session could not be created or is malformed."""
    pass


class SessionStateError(SessionError):
    """Illegal release session state transition."""
    pass


class UploadError(AppCenterException):
    """A chunk transfer failed."""

    def __init__(self, message, chunk_number=None, **kwargs):
        super().__init__(message, **kwargs)
        self.chunk_number = chunk_number


class ProcessingError(AppCenterException):
    """Server-side processing did not produce a release."""
    pass


class ProcessingFailedError(ProcessingError):
    """Server reported a terminal failure while processing the upload."""
    pass


class ProcessingTimeoutError(ProcessingError):
    """Processing did not finish within the polling ceiling."""

    def __init__(self, message, waited_seconds=None, **kwargs):
        super().__init__(message, **kwargs)
        self.waited_seconds = waited_seconds


class DistributionError(AppCenterException):
    """Release exists on the server but could not be distributed."""
    pass


class UnknownGroupError(DistributionError):
    """A distribution group name did not resolve."""

    def __init__(self, message, group_name=None, **kwargs):
        super().__init__(message, **kwargs)
        self.group_name = group_name


class ServerRejectedError(DistributionError):
    """Server refused the distribution request."""
    pass


class UploadCancelledError(AppCenterException):
    """Operation was cancelled from outside."""
    pass


class EnvironmentValidationError(AppCenterException):
    """Required environment configuration is missing or invalid."""

    def __init__(self, message, missing_vars=None, **kwargs):
        super().__init__(message, **kwargs)
        self.missing_vars = missing_vars or []


class ConfigurationError(AppCenterException):
    """A settings file is unreadable or holds invalid values."""

    def __init__(self, message, errors=None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
