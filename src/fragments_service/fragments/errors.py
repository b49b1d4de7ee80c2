"""Typed errors raised by the fragments domain layer.

Each error carries a short machine-readable ``code``. Front-ends map the
error class to their own status codes; the domain layer never does.
"""


class FragmentError(Exception):
    """Base exception for all fragment errors."""

    code = "fragment_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(FragmentError):
    """Raised for malformed construction input or a non-bytes data payload."""

    code = "validation_error"


class UnsupportedTypeError(ValidationError):
    """Raised when a fragment is constructed with an unsupported media type."""

    code = "unsupported_type"

    def __init__(self, media_type: str) -> None:
        self.media_type = media_type
        super().__init__(f"Unsupported type: {media_type}")


class NotFoundError(FragmentError):
    """Raised when no metadata or data exists for an owner/id pair."""

    code = "not_found"

    def __init__(self, owner_id: str, fragment_id: str, what: str = "fragment") -> None:
        self.owner_id = owner_id
        self.fragment_id = fragment_id
        super().__init__(f"{what.capitalize()} not found: ID {fragment_id}")


class UnsupportedFormatError(FragmentError):
    """Raised when a requested extension is not a compatible target for a fragment."""

    code = "unsupported_format"

    def __init__(self, source_type: str, extension: str) -> None:
        self.source_type = source_type
        self.extension = extension
        super().__init__(f"Format .{extension} is not available for {source_type} fragments")


class ConversionError(FragmentError):
    """Raised when fragment bytes do not parse under their declared type."""

    code = "conversion_error"


class UnsupportedConversionError(FragmentError):
    """Raised when no transform exists from a source family to a target extension."""

    code = "unsupported_conversion"

    def __init__(self, source_type: str, extension: str) -> None:
        self.source_type = source_type
        self.extension = extension
        super().__init__(f"Unsupported conversion for {source_type} to .{extension}")
