"""Conversion engine.

Turns the raw bytes of one supported media type into bytes of a compatible
type. Dispatch happens on the source base type through a fixed table, then
on the requested target extension inside each family function. Everything
here is a pure function of its inputs, except the image family which
delegates to an image codec gateway.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable

import markdown
import yaml

from .errors import ConversionError, UnsupportedConversionError
from .formats import IMAGE_TYPES, media_type_for_extension
from .interfaces import ImageCodecGateway

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ("fenced_code", "tables")


@dataclass(frozen=True)
class ConversionResult:
    type: str
    data: bytes


def _decode(data: bytes, source_type: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ConversionError(f"{source_type} payload is not valid UTF-8: {e}") from e


def _load_json(data: bytes) -> object:
    try:
        return json.loads(_decode(data, "application/json"))
    except json.JSONDecodeError as e:
        raise ConversionError(f"malformed JSON: {e}") from e


def _dump_json(value: object) -> bytes:
    # default=str covers YAML scalars JSON has no literal for (dates, timestamps)
    return json.dumps(value, indent=2, ensure_ascii=False, default=str).encode("utf-8")


def _csv_field(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse comma-separated text into ordered string records.

    The first line is the header. Quoting is not interpreted: a field that
    contains a comma or a newline is split like any other.
    """
    lines = [line.rstrip("\r") for line in text.split("\n")]
    lines = [line for line in lines if line]
    if not lines:
        return []
    keys = lines[0].split(",")
    records = []
    for line in lines[1:]:
        values = line.split(",")
        records.append({key: value for key, value in zip(keys, values)})
    return records


def records_to_csv(value: object) -> str:
    if not isinstance(value, list):
        raise ConversionError("JSON to CSV requires an array of objects")
    if not value:
        raise ConversionError("JSON to CSV requires at least one record to derive the header")
    first = value[0]
    if not isinstance(first, dict):
        raise ConversionError("JSON to CSV requires an array of objects")
    keys = list(first.keys())
    rows = [",".join(keys)]
    for index, record in enumerate(value):
        if not isinstance(record, dict) or set(record.keys()) != set(keys):
            raise ConversionError(f"record {index} does not match the shape of the first record")
        rows.append(",".join(_csv_field(record[key]) for key in keys))
    return "\n".join(rows)


def convert_markdown(extension: str, data: bytes) -> ConversionResult:
    if extension == "html":
        html = markdown.markdown(_decode(data, "text/markdown"), extensions=list(MARKDOWN_EXTENSIONS))
        return ConversionResult("text/html", html.encode("utf-8"))
    if extension == "txt":
        return ConversionResult("text/plain", data)
    raise UnsupportedConversionError("text/markdown", extension)


def convert_json(extension: str, data: bytes) -> ConversionResult:
    if extension not in ("yaml", "yml", "txt", "csv"):
        raise UnsupportedConversionError("application/json", extension)
    value = _load_json(data)
    if extension in ("yaml", "yml"):
        text = yaml.safe_dump(value, sort_keys=False, allow_unicode=True)
        return ConversionResult("application/yaml", text.encode("utf-8"))
    if extension == "txt":
        return ConversionResult("text/plain", _dump_json(value))
    return ConversionResult("text/csv", records_to_csv(value).encode("utf-8"))


def convert_yaml(extension: str, data: bytes) -> ConversionResult:
    if extension == "json":
        try:
            value = yaml.safe_load(_decode(data, "application/yaml"))
        except yaml.YAMLError as e:
            raise ConversionError(f"malformed YAML: {e}") from e
        return ConversionResult("application/json", _dump_json(value))
    if extension == "txt":
        return ConversionResult("text/plain", data)
    raise UnsupportedConversionError("application/yaml", extension)


def convert_csv(extension: str, data: bytes) -> ConversionResult:
    if extension == "json":
        records = parse_csv(_decode(data, "text/csv"))
        return ConversionResult("application/json", _dump_json(records))
    if extension == "txt":
        return ConversionResult("text/plain", data)
    raise UnsupportedConversionError("text/csv", extension)


def _verbatim_text(source_type: str) -> Callable[[str, bytes], ConversionResult]:
    def convert(extension: str, data: bytes) -> ConversionResult:
        if extension == "txt":
            return ConversionResult("text/plain", data)
        raise UnsupportedConversionError(source_type, extension)

    return convert


class ConversionEngine:
    """Dispatches a conversion request to the converter for the source family."""

    def __init__(self, image_codec: ImageCodecGateway) -> None:
        self._image_codec = image_codec
        self._converters: dict[str, Callable[[str, bytes], ConversionResult]] = {
            "text/plain": _verbatim_text("text/plain"),
            "text/html": _verbatim_text("text/html"),
            "text/csv": convert_csv,
            "text/markdown": convert_markdown,
            "application/json": convert_json,
            "application/yaml": convert_yaml,
        }
        for image_type in IMAGE_TYPES:
            self._converters[image_type] = self._image_converter(image_type)

    def _image_converter(self, source_type: str) -> Callable[[str, bytes], ConversionResult]:
        def convert(extension: str, data: bytes) -> ConversionResult:
            target = media_type_for_extension(extension)
            if target not in IMAGE_TYPES:
                raise UnsupportedConversionError(source_type, extension)
            return ConversionResult(target, self._image_codec.transcode(data, target))

        return convert

    def supports(self, base_type: str) -> bool:
        return base_type in self._converters

    def convert(self, base_type: str, extension: str, data: bytes) -> ConversionResult:
        converter = self._converters.get(base_type)
        if converter is None:
            raise UnsupportedConversionError(base_type, extension)
        result = converter(extension.lower(), bytes(data))
        logger.debug(
            "Converted %s (%d bytes) to %s (%d bytes)",
            base_type, len(data), result.type, len(result.data),
        )
        return result
