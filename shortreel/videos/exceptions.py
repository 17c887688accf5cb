"""
Errors raised while resolving and streaming video sources.

Every error carries the HTTP status the streaming view answers with and a
short machine-readable code; ``as_payload()`` renders the JSON error body.
"""


class StreamError(Exception):
    """Base class for failures that end a stream request."""
    status = 500
    code = "stream_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.details = details

    def as_payload(self) -> dict:
        payload = {"error": self.code, "details": str(self)}
        payload.update(self.details)
        return payload


class SourceNotAvailable(StreamError):
    """The video has no populated backend, or does not exist."""
    status = 404
    code = "source_not_available"


class LocalFileMissing(StreamError):
    """The local file referenced by the video cannot be found under MEDIA_ROOT."""
    status = 404
    code = "local_file_missing"


class RangeUnsatisfiable(StreamError):
    """The Range header is malformed or outside the file."""
    status = 416
    code = "range_unsatisfiable"

    def __init__(self, message: str = "", size: int = None):
        super().__init__(message, size=size)
        self.size = size


class UpstreamUnreachable(StreamError):
    """Every upstream candidate failed or returned something unplayable."""
    status = 502
    code = "upstream_unreachable"

    def __init__(self, message: str = "", attempts: int = 0, last_error: str = None):
        super().__init__(message, attempts=attempts, last_error=last_error)
        self.attempts = attempts
        self.last_error = last_error


class ConfigurationMissing(StreamError):
    """Credentials or settings required for a backend are not configured."""
    status = 503
    code = "configuration_missing"

    def __init__(self, message: str = "", missing=()):
        super().__init__(message, missing=list(missing))
        self.missing = list(missing)
