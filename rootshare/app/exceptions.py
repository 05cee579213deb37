"""Error types raised by the transfer engines.

Service code stays HTTP-agnostic; the exception handler in ``main`` maps
each type to its status code and response body.
"""


class FileServerError(Exception):
    """Base class for errors that end a request with a known status."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFoundError(FileServerError):
    """Target path is missing or could not be canonicalized."""

    status_code = 404


class ForbiddenError(FileServerError):
    """Target escapes the root, or the operation is refused on the root."""

    status_code = 403


class BadRequestError(FileServerError):
    """Malformed range, multipart body or chunk headers."""

    status_code = 400


class RangeUnsatisfiableError(FileServerError):
    status_code = 416

    def __init__(self, file_size: int):
        super().__init__(f"Range not satisfiable for size {file_size}")
        self.file_size = file_size


class IOFailureError(FileServerError):
    """Disk read, write or rename failed."""

    status_code = 500

    @classmethod
    def from_os_error(cls, action: str, error: OSError) -> "IOFailureError":
        # strerror only, the full str() carries absolute paths
        reason = error.strerror or type(error).__name__
        return cls(f"{action} failed: {reason}")
