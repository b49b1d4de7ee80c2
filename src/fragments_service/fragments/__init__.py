"""
Domain layer for fragments.
Provides the fragment record, the storage and image codec gateways, the
format compatibility matrix and the conversion engine, plus a service that
ties them together so front-ends (HTTP or others) share the same core logic.
"""

from .converters import ConversionEngine, ConversionResult
from .errors import (
    ConversionError,
    FragmentError,
    NotFoundError,
    UnsupportedConversionError,
    UnsupportedFormatError,
    UnsupportedTypeError,
    ValidationError,
)
from .interfaces import ImageCodecGateway, StorageGateway
from .model import Fragment
from .service import FragmentService
