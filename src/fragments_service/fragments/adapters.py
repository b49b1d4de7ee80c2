import copy
import io
import json
import os
import tempfile
import threading
from pathlib import Path

from .errors import ConversionError, ValidationError
from .interfaces import ImageCodecGateway, StorageGateway


class InMemoryStorage(StorageGateway):
    """Dict-backed storage for development and testing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, dict[str, dict[str, object]]] = {}
        self._data: dict[str, dict[str, bytes]] = {}

    def put_metadata(self, owner_id: str, fragment_id: str, record: dict[str, object]) -> None:
        with self._lock:
            self._records.setdefault(owner_id, {})[fragment_id] = copy.deepcopy(record)

    def get_metadata(self, owner_id: str, fragment_id: str) -> dict[str, object] | None:
        with self._lock:
            record = self._records.get(owner_id, {}).get(fragment_id)
            return copy.deepcopy(record) if record is not None else None

    def list_ids(self, owner_id: str) -> list[str]:
        with self._lock:
            return list(self._records.get(owner_id, {}))

    def list_records(self, owner_id: str) -> list[dict[str, object]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.get(owner_id, {}).values()]

    def put_data(self, owner_id: str, fragment_id: str, data: bytes) -> None:
        with self._lock:
            self._data.setdefault(owner_id, {})[fragment_id] = bytes(data)

    def get_data(self, owner_id: str, fragment_id: str) -> bytes | None:
        with self._lock:
            return self._data.get(owner_id, {}).get(fragment_id)

    def delete_data(self, owner_id: str, fragment_id: str) -> None:
        with self._lock:
            self._data.get(owner_id, {}).pop(fragment_id, None)

    def delete_all(self, owner_id: str, fragment_id: str) -> bool:
        with self._lock:
            record = self._records.get(owner_id, {}).pop(fragment_id, None)
            data = self._data.get(owner_id, {}).pop(fragment_id, None)
            return record is not None or data is not None


class LocalStorage(StorageGateway):
    """Directory-backed storage.

    Layout under ``data_dir``::

        owners/<owner_id>/index.json          ids in insertion order
        owners/<owner_id>/<id>/fragment.json  metadata record
        owners/<owner_id>/<id>/data.bin       raw bytes
    """

    def __init__(self, data_dir: str) -> None:
        self._base = Path(data_dir).resolve()
        self._owners = self._base / "owners"
        self._owners.mkdir(parents=True, exist_ok=True)
        self._index_lock = threading.Lock()

    def _owner_dir(self, owner_id: str) -> Path:
        return self._resolve(self._owners, owner_id)

    def _fragment_dir(self, owner_id: str, fragment_id: str) -> Path:
        return self._resolve(self._owner_dir(owner_id), fragment_id)

    @staticmethod
    def _resolve(parent: Path, name: str) -> Path:
        # The key must name a direct child of parent
        candidate = (parent / name).resolve()
        if not name or candidate.parent != parent.resolve():
            raise ValidationError(f"storage key {name!r} is not a valid path segment")
        return candidate

    @staticmethod
    def _write_atomic(path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read_index(self, owner_id: str) -> list[str]:
        p = self._owner_dir(owner_id) / "index.json"
        if not p.exists():
            return []
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write_index(self, owner_id: str, ids: list[str]) -> None:
        p = self._owner_dir(owner_id) / "index.json"
        self._write_atomic(p, json.dumps(ids).encode("utf-8"))

    def put_metadata(self, owner_id: str, fragment_id: str, record: dict[str, object]) -> None:
        p = self._fragment_dir(owner_id, fragment_id) / "fragment.json"
        self._write_atomic(p, json.dumps(record, ensure_ascii=False, indent=2).encode("utf-8"))
        with self._index_lock:
            ids = self._read_index(owner_id)
            if fragment_id not in ids:
                ids.append(fragment_id)
                self._write_index(owner_id, ids)

    def get_metadata(self, owner_id: str, fragment_id: str) -> dict[str, object] | None:
        p = self._fragment_dir(owner_id, fragment_id) / "fragment.json"
        if not p.exists():
            return None
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)

    def list_ids(self, owner_id: str) -> list[str]:
        with self._index_lock:
            return self._read_index(owner_id)

    def list_records(self, owner_id: str) -> list[dict[str, object]]:
        records = []
        for fragment_id in self.list_ids(owner_id):
            record = self.get_metadata(owner_id, fragment_id)
            if record is not None:
                records.append(record)
        return records

    def put_data(self, owner_id: str, fragment_id: str, data: bytes) -> None:
        self._write_atomic(self._fragment_dir(owner_id, fragment_id) / "data.bin", bytes(data))

    def get_data(self, owner_id: str, fragment_id: str) -> bytes | None:
        p = self._fragment_dir(owner_id, fragment_id) / "data.bin"
        if not p.exists():
            return None
        return p.read_bytes()

    def delete_data(self, owner_id: str, fragment_id: str) -> None:
        (self._fragment_dir(owner_id, fragment_id) / "data.bin").unlink(missing_ok=True)

    def delete_all(self, owner_id: str, fragment_id: str) -> bool:
        d = self._fragment_dir(owner_id, fragment_id)
        existed = False
        for name in ("data.bin", "fragment.json"):
            p = d / name
            if p.exists():
                p.unlink()
                existed = True
        if d.exists() and not any(d.iterdir()):
            d.rmdir()
        with self._index_lock:
            ids = self._read_index(owner_id)
            if fragment_id in ids:
                ids.remove(fragment_id)
                self._write_index(owner_id, ids)
        return existed


class PillowImageCodec(ImageCodecGateway):
    """Raster transcoding with Pillow."""

    FORMATS = {
        "image/png": "PNG",
        "image/jpeg": "JPEG",
        "image/webp": "WEBP",
        "image/gif": "GIF",
        "image/avif": "AVIF",
    }
    ANIMATED = {"PNG", "WEBP", "GIF", "AVIF"}

    def transcode(self, data: bytes, media_type: str) -> bytes:
        from PIL import Image, UnidentifiedImageError

        fmt = self.FORMATS.get(media_type)
        if fmt is None:
            raise ValueError(f"no image format for {media_type}")
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                options: dict[str, object] = {}
                frames = getattr(img, "n_frames", 1)
                if frames > 1 and fmt in self.ANIMATED:
                    options["save_all"] = True
                if fmt == "JPEG":
                    out = img.convert("RGB")
                elif fmt in ("WEBP", "AVIF") and img.mode not in ("RGB", "RGBA"):
                    out = img.convert("RGBA")
                else:
                    out = img
                if fmt == "WEBP":
                    options["lossless"] = True
                buf = io.BytesIO()
                out.save(buf, format=fmt, **options)
                return buf.getvalue()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, KeyError, ValueError) as e:
            raise ConversionError(f"cannot transcode image to {media_type}: {e}") from e
