"""Supported media types, the format compatibility matrix and extension resolution."""

from .errors import UnsupportedFormatError, ValidationError

TEXT_PREFIX = "text/"

IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif", "image/avif")

SUPPORTED_TYPES = frozenset(
    {
        "text/plain",
        "text/markdown",
        "text/html",
        "text/csv",
        "application/json",
        "application/yaml",
        *IMAGE_TYPES,
    }
)

# Source base type -> ordered compatible targets. The source is always first.
COMPATIBLE_TYPES: dict[str, tuple[str, ...]] = {
    "text/plain": ("text/plain",),
    "text/markdown": ("text/markdown", "text/html", "text/plain"),
    "text/html": ("text/html", "text/plain"),
    "text/csv": ("text/csv", "application/json", "text/plain"),
    "application/json": ("application/json", "application/yaml", "text/csv", "text/plain"),
    "application/yaml": ("application/yaml", "application/json", "text/plain"),
}
for _image_type in IMAGE_TYPES:
    COMPATIBLE_TYPES[_image_type] = (_image_type,) + tuple(t for t in IMAGE_TYPES if t != _image_type)

EXTENSION_TYPES: dict[str, str] = {
    "txt": "text/plain",
    "html": "text/html",
    "md": "text/markdown",
    "csv": "text/csv",
    "json": "application/json",
    "yaml": "application/yaml",
    "yml": "application/yaml",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
    "avif": "image/avif",
}


def parse_media_type(value: str) -> tuple[str, dict[str, str]]:
    """Split a media type string into its lower-cased base type and parameters.

    ``"text/plain; charset=UTF-8"`` -> ``("text/plain", {"charset": "UTF-8"})``
    """
    if not isinstance(value, str):
        raise ValidationError(f"media type must be a string, got {type(value).__name__}")
    base, *raw_params = value.split(";")
    base = base.strip().lower()
    major, _, minor = base.partition("/")
    if not major or not minor or "/" in minor or " " in base:
        raise ValidationError(f"invalid media type: {value!r}")
    params: dict[str, str] = {}
    for raw in raw_params:
        name, sep, val = raw.strip().partition("=")
        if not sep or not name.strip():
            if raw.strip():
                raise ValidationError(f"invalid media type parameter: {raw.strip()!r}")
            continue
        params[name.strip().lower()] = val.strip().strip('"')
    return base, params


def base_type_of(value: str) -> str:
    return parse_media_type(value)[0]


def is_supported_type(value: str) -> bool:
    try:
        return base_type_of(value) in SUPPORTED_TYPES
    except ValidationError:
        return False


def compatible_types(base_type: str) -> list[str]:
    """Return the ordered compatible targets for a base type.

    Unknown base types map to a singleton list containing only themselves.
    """
    return list(COMPATIBLE_TYPES.get(base_type, (base_type,)))


def media_type_for_extension(extension: str) -> str | None:
    return EXTENSION_TYPES.get(extension.lower())


def resolve_extension(base_type: str, extension: str) -> str:
    """Map an extension to a media type the given source type can be converted to.

    Raises UnsupportedFormatError when the extension is unknown or its media
    type is not among the source's compatible targets.
    """
    target = media_type_for_extension(extension)
    if target is None or target not in COMPATIBLE_TYPES.get(base_type, (base_type,)):
        raise UnsupportedFormatError(base_type, extension)
    return target


def split_extension(identifier: str) -> tuple[str, str | None]:
    """Split ``"<id>.<ext>"`` on the last dot. Identifiers without a dot have no extension."""
    fragment_id, sep, extension = identifier.rpartition(".")
    if not sep:
        return identifier, None
    return fragment_id, extension
