from typing import Protocol


class StorageGateway(Protocol):
    """Persistence contract for fragment metadata and raw bytes.

    Every accessor is keyed by ``(owner_id, fragment_id)``. Listing returns
    keys in insertion order; re-putting an existing key keeps its position.
    """

    def put_metadata(self, owner_id: str, fragment_id: str, record: dict[str, object]) -> None:
        ...

    def get_metadata(self, owner_id: str, fragment_id: str) -> dict[str, object] | None:
        """Return the stored record, or ``None`` when the key is unknown."""

    def list_ids(self, owner_id: str) -> list[str]:
        ...

    def list_records(self, owner_id: str) -> list[dict[str, object]]:
        ...

    def put_data(self, owner_id: str, fragment_id: str, data: bytes) -> None:
        ...

    def get_data(self, owner_id: str, fragment_id: str) -> bytes | None:
        """Return the stored bytes, or ``None`` when the key has no data."""

    def delete_data(self, owner_id: str, fragment_id: str) -> None:
        ...

    def delete_all(self, owner_id: str, fragment_id: str) -> bool:
        """Remove metadata and data for the key. Return ``False`` if nothing existed."""


class ImageCodecGateway(Protocol):
    def transcode(self, data: bytes, media_type: str) -> bytes:
        """Decode a raster image and re-encode it as ``media_type``.

        This is a blocking call; callers should offload to threads if needed.
        """
