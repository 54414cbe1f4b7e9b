from __future__ import annotations


class ContentError(Exception):
    """Base for errors that map onto an HTTP status."""

    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class PathTraversalError(ContentError):
    status_code = 403
    message = "Access denied"


class ContentNotFoundError(ContentError):
    status_code = 404
    message = "Not Found"


class UnsupportedFileTypeError(ContentError):
    status_code = 400
    message = "File type not supported"


class MimeTypeUnresolvedError(ContentError):
    status_code = 415
    message = "Unable to determine MIME type"


class FeedUnavailableError(ContentError):
    status_code = 503
    message = "RSS feed temporarily unavailable"
