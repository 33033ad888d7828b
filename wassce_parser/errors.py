# wassce_parser/errors.py
"""
Error taxonomy for the document-to-grades pipeline.

Only ExtractionFailed (and the upload checks) ever reach the caller. Matching
errors are recovered inside the matcher, and an unmatched subject is a normal
outcome rather than an exception.
"""
from typing import Optional


class ParserError(Exception):
    """Base class for every error raised by the parser."""


class UnsupportedMediaType(ParserError):
    def __init__(self, media_type: Optional[str]):
        self.media_type = media_type
        super().__init__(f"Unsupported media type: {media_type}")


class FileTooLarge(ParserError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"File too large ({size} bytes). Max {limit} bytes allowed.")


class MalformedServiceResponse(ParserError):
    """A generative service reply could not be parsed or had the wrong shape."""


class MatchingTransportFailed(ParserError):
    """The batched AI matching call itself errored (network, quota, non-2xx)."""


class InvalidGradeToken(ParserError, ValueError):
    def __init__(self, raw: object):
        self.raw = raw
        super().__init__(f"Unrecognized grade: {raw!r}")


class ExtractionFailed(ParserError):
    """Both extraction backends were exhausted."""

    def __init__(self, primary_error: Optional[str], fallback_error: Optional[str]):
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Extraction failed. primary: {primary_error or 'not attempted'}; "
            f"fallback: {fallback_error or 'not attempted'}"
        )
