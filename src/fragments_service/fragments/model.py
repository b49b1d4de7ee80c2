import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import UnsupportedTypeError, ValidationError
from .formats import TEXT_PREFIX, SUPPORTED_TYPES, base_type_of, compatible_types


def utc_now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


_FIXED_FIELDS = frozenset({"id", "owner_id", "type"})


@dataclass
class Fragment:
    """Metadata record for one owned, typed, sized unit of content.

    Build instances with ``Fragment.create`` (or ``Fragment.from_record`` for
    stored records); both validate. ``size`` is an integer byte count, so
    fractional sizes are rejected like negative ones. ``id``, ``owner_id``
    and ``type`` are fixed once set; reassigning them raises AttributeError.
    """

    id: str
    owner_id: str
    type: str
    size: int
    created: str
    updated: str

    def __setattr__(self, name: str, value: object) -> None:
        if name in _FIXED_FIELDS and name in self.__dict__:
            raise AttributeError(f"Fragment.{name} cannot be changed")
        super().__setattr__(name, value)

    @classmethod
    def create(
        cls,
        owner_id: str | None,
        type: str | None,
        size: int = 0,
        id: str | None = None,
        created: str | None = None,
        updated: str | None = None,
    ) -> "Fragment":
        if not owner_id or not type:
            raise ValidationError("owner_id and type are required")
        if not isinstance(owner_id, str) or not isinstance(type, str):
            raise ValidationError("owner_id and type must be strings")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValidationError("size must be a non-negative integer byte count")
        if base_type_of(type) not in SUPPORTED_TYPES:
            raise UnsupportedTypeError(type)

        now = utc_now()
        created = created or now
        updated = updated or created
        try:
            if parse_timestamp(updated) < parse_timestamp(created):
                raise ValidationError("updated must not precede created")
        except (AttributeError, ValueError) as e:
            raise ValidationError(f"invalid timestamp: {e}") from e

        return cls(
            id=id or str(uuid.uuid4()),
            owner_id=owner_id,
            type=type,
            size=size,
            created=created,
            updated=updated,
        )

    @classmethod
    def from_record(cls, record: dict[str, object]) -> "Fragment":
        return cls.create(
            owner_id=record.get("ownerId"),  # type: ignore[arg-type]
            type=record.get("type"),  # type: ignore[arg-type]
            size=record.get("size", 0),  # type: ignore[arg-type]
            id=record.get("id"),  # type: ignore[arg-type]
            created=record.get("created"),  # type: ignore[arg-type]
            updated=record.get("updated"),  # type: ignore[arg-type]
        )

    def to_record(self) -> dict[str, object]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "created": self.created,
            "updated": self.updated,
            "type": self.type,
            "size": self.size,
        }

    @property
    def base_type(self) -> str:
        """The media type with parameters such as ``charset`` stripped."""
        return base_type_of(self.type)

    @property
    def is_text(self) -> bool:
        return self.base_type.startswith(TEXT_PREFIX)

    @property
    def formats(self) -> list[str]:
        """Media types this fragment can be converted to, its own base type first."""
        return compatible_types(self.base_type)

    def next_updated(self, after: str | None = None) -> str:
        """Return a fresh ``updated`` value strictly later than the current one and ``after``."""
        now = datetime.now(timezone.utc)
        previous = parse_timestamp(self.updated)
        if after is not None:
            previous = max(previous, parse_timestamp(after))
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        return format_timestamp(now)

    def touch(self) -> None:
        self.updated = self.next_updated()
