"""Tests for the Fragment record."""

import re

import pytest

from fragments_service.fragments import Fragment, UnsupportedTypeError, ValidationError
from fragments_service.fragments.model import parse_timestamp

VALID_TYPES = [
    "text/plain",
    "text/markdown",
    "text/html",
    "application/json",
    "application/yaml",
    "text/csv",
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/gif",
    "image/avif",
]


def test_owner_id_and_type_are_required() -> None:
    with pytest.raises(ValidationError):
        Fragment.create(owner_id=None, type=None)
    with pytest.raises(ValidationError):
        Fragment.create(owner_id=None, type="text/plain", size=1)
    with pytest.raises(ValidationError):
        Fragment.create(owner_id="1234", type=None, size=1)


def test_type_can_include_a_charset() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain; charset=utf-8")
    assert fragment.type == "text/plain; charset=utf-8"
    assert fragment.base_type == "text/plain"


def test_size_defaults_to_zero() -> None:
    assert Fragment.create(owner_id="1234", type="text/plain").size == 0


@pytest.mark.parametrize("size", [-1, "1", "large", 1.5, True, None])
def test_size_must_be_a_non_negative_integer(size) -> None:
    with pytest.raises(ValidationError, match="size must be a non-negative integer byte count"):
        Fragment.create(owner_id="1234", type="text/plain", size=size)


@pytest.mark.parametrize("media_type", VALID_TYPES)
def test_valid_types_can_be_set(media_type) -> None:
    fragment = Fragment.create(owner_id="1234", type=media_type, size=1)
    assert fragment.type == media_type
    assert fragment.formats[0] == media_type


@pytest.mark.parametrize("media_type", ["application/msword", "application/octet-stream", "audio/webm", "video/ogg"])
def test_unsupported_types_raise(media_type) -> None:
    with pytest.raises(UnsupportedTypeError, match=f"Unsupported type: {media_type}"):
        Fragment.create(owner_id="1234", type=media_type)


def test_unsupported_type_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        Fragment.create(owner_id="1234", type="application/msword")


def test_malformed_type_raises_validation_error() -> None:
    with pytest.raises(ValidationError):
        Fragment.create(owner_id="1234", type="plain")


def test_fragments_get_a_uuid_id() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain")
    assert re.fullmatch(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", fragment.id)


def test_fragments_use_id_passed_in() -> None:
    assert Fragment.create(id="id", owner_id="1234", type="text/plain").id == "id"


def test_created_and_updated_are_set() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain")
    assert fragment.created.endswith("Z")
    assert fragment.created <= fragment.updated


def test_updated_before_created_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Fragment.create(
            owner_id="1234",
            type="text/plain",
            created="2024-01-02T00:00:00Z",
            updated="2024-01-01T00:00:00Z",
        )


def test_touch_strictly_advances_updated() -> None:
    fragment = Fragment.create(
        owner_id="1234",
        type="text/plain",
        created="2999-01-01T00:00:00Z",
    )
    before = fragment.updated
    fragment.touch()
    assert parse_timestamp(fragment.updated) > parse_timestamp(before)


def test_is_text() -> None:
    assert Fragment.create(owner_id="1234", type="text/plain; charset=utf-8").is_text is True
    assert Fragment.create(owner_id="1234", type="application/json").is_text is False


def test_formats_for_plain_text() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain; charset=utf-8")
    assert fragment.formats == ["text/plain"]


def test_formats_for_json() -> None:
    fragment = Fragment.create(owner_id="1234", type="application/json")
    assert fragment.formats == ["application/json", "application/yaml", "text/csv", "text/plain"]


def test_formats_for_png() -> None:
    fragment = Fragment.create(owner_id="1234", type="image/png")
    assert fragment.formats == ["image/png", "image/jpeg", "image/webp", "image/gif", "image/avif"]


def test_record_round_trip() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/markdown", size=4)
    record = fragment.to_record()
    assert record["ownerId"] == "1234"
    assert Fragment.from_record(record) == fragment


def test_next_updated_is_later_than_a_newer_stored_value() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain")
    stored = "2999-01-01T00:00:00.000000Z"
    assert fragment.next_updated(after=stored) == "2999-01-01T00:00:00.000001Z"


@pytest.mark.parametrize("field", ["id", "owner_id", "type"])
def test_identity_fields_cannot_be_reassigned(field) -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain")
    with pytest.raises(AttributeError):
        setattr(fragment, field, "other")


def test_size_and_updated_can_change() -> None:
    fragment = Fragment.create(owner_id="1234", type="text/plain")
    fragment.size = 3
    fragment.touch()
    assert fragment.size == 3
