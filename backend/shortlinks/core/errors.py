"""Error taxonomy for link creation and resolution.

Each error carries the HTTP status it maps to at the boundary. None of them
is fatal to the service process.
"""

from typing import Optional


class ShortLinkError(Exception):
    """Base class for all recoverable service errors"""

    status_code = 500
    error_code = "internal_error"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ResolutionError(ShortLinkError):
    """A resolution request was denied"""

    # Resolution step that produced the denial
    state = None


class NotFound(ResolutionError):
    # Deleted and never-existing links are indistinguishable
    status_code = 404
    error_code = "not_found"
    default_message = "Link not found"


class Gone(ResolutionError):
    status_code = 410
    error_code = "gone"
    default_message = "Link has expired"


class PasswordRequired(ResolutionError):
    status_code = 401
    error_code = "password_required"
    default_message = "This link is password protected"


class AliasConflict(ShortLinkError):
    status_code = 400
    error_code = "alias_conflict"
    default_message = "Alias is already taken"


class GenerationExhausted(ShortLinkError):
    status_code = 503
    error_code = "generation_exhausted"
    default_message = "Unable to generate a unique short code"


class LinkValidationError(ShortLinkError):
    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid link data"


class QuotaExceeded(ShortLinkError):
    status_code = 429
    error_code = "quota_exceeded"
    default_message = "Daily link limit reached"


class Unavailable(ShortLinkError):
    status_code = 503
    error_code = "unavailable"
    default_message = "Link store is unavailable"


class DuplicateKey(ShortLinkError):
    """An active link already holds the (domain, short code) key"""

    status_code = 400
    error_code = "duplicate_key"
    default_message = "Short code already exists"

    def __init__(self, domain: str, short_code: str):
        self.domain = domain
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' already exists")
