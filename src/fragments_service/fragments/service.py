import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from .converters import ConversionEngine, ConversionResult
from .errors import NotFoundError, ValidationError
from .formats import base_type_of, resolve_extension, split_extension
from .interfaces import ImageCodecGateway, StorageGateway
from .model import Fragment

logger = logging.getLogger(__name__)


def _stored_updated(record: dict[str, object] | None) -> str | None:
    return record.get("updated") if record else None  # type: ignore[return-value]


class KeyedLocks:
    """One lock per ``(owner_id, fragment_id)``, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, owner_id: str, fragment_id: str) -> Iterator[None]:
        key = (owner_id, fragment_id)
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class FragmentService:
    """Fragment lifecycle operations and format conversion.

    The storage gateway and image codec are injected so front-ends and tests
    choose the persistence and codec implementations. Storage calls and
    conversions are blocking and run in worker threads. Writes to one
    fragment are serialized per key inside the worker thread, so a metadata
    record and its bytes always advance together even if the awaiting caller
    is cancelled.
    """

    def __init__(self, storage: StorageGateway, image_codec: ImageCodecGateway | None = None) -> None:
        if image_codec is None:
            from .adapters import PillowImageCodec

            image_codec = PillowImageCodec()
        self._storage = storage
        self._engine = ConversionEngine(image_codec)
        self._locks = KeyedLocks()

    @property
    def engine(self) -> ConversionEngine:
        return self._engine

    async def list_by_owner(self, owner_id: str, expand: bool = False) -> list[str] | list[Fragment]:
        if not expand:
            return await asyncio.to_thread(self._storage.list_ids, owner_id)
        records = await asyncio.to_thread(self._storage.list_records, owner_id)
        return [Fragment.from_record(r) for r in records]

    async def load_by_id(self, owner_id: str, fragment_id: str) -> Fragment:
        record = await asyncio.to_thread(self._storage.get_metadata, owner_id, fragment_id)
        if record is None:
            raise NotFoundError(owner_id, fragment_id)
        return Fragment.from_record(record)

    async def save(self, fragment: Fragment) -> None:
        def commit() -> tuple[int, str]:
            with self._locks.hold(fragment.owner_id, fragment.id):
                stored_record = self._storage.get_metadata(fragment.owner_id, fragment.id)
                updated = fragment.next_updated(after=_stored_updated(stored_record))
                record = {**fragment.to_record(), "updated": updated}
                # size must keep matching whatever bytes are already stored
                stored = self._storage.get_data(fragment.owner_id, fragment.id)
                if stored is not None:
                    record["size"] = len(stored)
                self._storage.put_metadata(fragment.owner_id, fragment.id, record)
                return record["size"], updated  # type: ignore[return-value]

        fragment.size, fragment.updated = await asyncio.to_thread(commit)
        logger.debug("Saved fragment %s for owner %s", fragment.id, fragment.owner_id)

    async def read_data(self, fragment: Fragment) -> bytes:
        data = await asyncio.to_thread(self._storage.get_data, fragment.owner_id, fragment.id)
        if data is None:
            raise NotFoundError(fragment.owner_id, fragment.id, what="fragment data")
        return data

    async def write_data(self, fragment: Fragment, data: bytes) -> None:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ValidationError(f"data must be bytes, got {type(data).__name__}")
        payload = bytes(data)
        updated = await asyncio.to_thread(self._commit_data, fragment, payload)
        fragment.size = len(payload)
        fragment.updated = updated
        logger.info("Wrote %d bytes to fragment %s", len(payload), fragment.id)

    def _commit_data(self, fragment: Fragment, payload: bytes) -> str:
        owner_id, fragment_id = fragment.owner_id, fragment.id
        with self._locks.hold(owner_id, fragment_id):
            stored_record = self._storage.get_metadata(owner_id, fragment_id)
            updated = fragment.next_updated(after=_stored_updated(stored_record))
            record = {**fragment.to_record(), "size": len(payload), "updated": updated}
            previous = self._storage.get_data(owner_id, fragment_id)
            self._storage.put_data(owner_id, fragment_id, payload)
            try:
                self._storage.put_metadata(owner_id, fragment_id, record)
            except Exception:
                logger.warning("Metadata write failed for fragment %s, restoring previous data", fragment_id)
                if previous is None:
                    self._storage.delete_data(owner_id, fragment_id)
                else:
                    self._storage.put_data(owner_id, fragment_id, previous)
                raise
        return updated

    async def delete(self, owner_id: str, fragment_id: str) -> None:
        def remove() -> bool:
            with self._locks.hold(owner_id, fragment_id):
                return self._storage.delete_all(owner_id, fragment_id)

        if not await asyncio.to_thread(remove):
            raise NotFoundError(owner_id, fragment_id)
        logger.info("Deleted fragment %s for owner %s", fragment_id, owner_id)

    async def convert(self, fragment: Fragment, extension: str, data: bytes | None = None) -> ConversionResult:
        """Convert the fragment's bytes to the media type named by ``extension``.

        Requesting the fragment's own type returns the stored bytes unchanged.
        The source fragment is never modified.
        """
        target = resolve_extension(fragment.base_type, extension)
        if data is None:
            data = await self.read_data(fragment)
        if target == fragment.base_type:
            return ConversionResult(fragment.base_type, data)
        logger.info("Converting fragment %s from %s to .%s", fragment.id, fragment.base_type, extension)
        return await asyncio.to_thread(self._engine.convert, fragment.base_type, extension, data)

    async def create_fragment(self, owner_id: str, media_type: str, data: bytes) -> Fragment:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ValidationError(f"data must be bytes, got {type(data).__name__}")
        fragment = Fragment.create(owner_id=owner_id, type=media_type, size=0)
        await self.save(fragment)
        await self.write_data(fragment, data)
        logger.info("Created fragment %s (%s) for owner %s", fragment.id, fragment.type, owner_id)
        return fragment

    async def replace_data(self, owner_id: str, fragment_id: str, media_type: str, data: bytes) -> Fragment:
        fragment = await self.load_by_id(owner_id, fragment_id)
        if base_type_of(media_type) != fragment.base_type:
            raise ValidationError(
                f"Content-Type {media_type} does not match the fragment's type {fragment.type}"
            )
        await self.write_data(fragment, data)
        return fragment

    async def fetch(self, owner_id: str, identifier: str) -> tuple[Fragment, ConversionResult]:
        """Return a fragment and its bytes, converted when ``identifier`` ends in an extension."""
        fragment_id, extension = split_extension(identifier)

        def snapshot() -> tuple[dict[str, object] | None, bytes | None]:
            with self._locks.hold(owner_id, fragment_id):
                return (
                    self._storage.get_metadata(owner_id, fragment_id),
                    self._storage.get_data(owner_id, fragment_id),
                )

        record, data = await asyncio.to_thread(snapshot)
        if record is None:
            raise NotFoundError(owner_id, fragment_id)
        fragment = Fragment.from_record(record)
        if data is None:
            raise NotFoundError(owner_id, fragment_id, what="fragment data")
        if extension is None:
            return fragment, ConversionResult(fragment.type, data)
        return fragment, await self.convert(fragment, extension, data=data)
