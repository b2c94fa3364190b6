"""
Local persistence for folders, image records and image bytes.

Three small repository interfaces (FolderStore, ImageStore, BlobStore) are
handed to the library service; nothing in here is a module-level singleton.
Two record backends ship with the package: in-memory, and JSON files in a
data directory. FileBlobStore keeps the bytes on disk next to a 300x300
thumbnail; the Cloudinary client implements the same BlobStore interface.
"""
from __future__ import annotations

import io
import json
import logging
import os
import re
import tempfile
import time
import uuid
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Generic, List, Optional, Protocol, Type, TypeVar

from PIL import Image as PILImage, ImageOps, UnidentifiedImageError

from .errors import NotFound, StorageError


log = logging.getLogger(__name__)

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 80


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Folder:
    id: str
    name: str
    created_at: str
    image_count: int = 0


@dataclass(frozen=True)
class Image:
    id: str
    url: str
    thumbnail_url: str
    public_id: str
    folder_id: str
    name: str
    size: int
    width: int
    height: int
    created_at: str


@dataclass(frozen=True)
class StoredBlob:
    """What a blob store hands back after a put/move."""
    public_id: str
    url: str
    thumbnail_url: str
    width: int
    height: int
    size: int


class FolderStore(Protocol):
    def list(self) -> List[Folder]: ...

    def get(self, folder_id: str) -> Folder: ...

    def add(self, folder: Folder) -> Folder: ...

    def update(self, folder_id: str, **changes) -> Folder: ...

    def remove(self, folder_id: str) -> None: ...

    def replace_all(self, folders: List[Folder]) -> None: ...


class ImageStore(Protocol):
    def list(self, folder_id: Optional[str] = None) -> List[Image]: ...

    def get(self, image_id: str) -> Image: ...

    def add(self, image: Image) -> Image: ...

    def update(self, image_id: str, **changes) -> Image: ...

    def remove(self, image_id: str) -> None: ...

    def remove_folder(self, folder_id: str) -> int: ...

    def replace_all(self, images: List[Image]) -> None: ...


class BlobStore(Protocol):
    def put(self, data: bytes, folder_name: str, file_name: str) -> StoredBlob: ...

    def delete(self, public_id: str) -> None: ...

    def move(self, public_id: str, new_folder_name: str) -> StoredBlob: ...

    def delete_folder(self, folder_name: str) -> None: ...


R = TypeVar("R", Folder, Image)


class _MemoryRecords(Generic[R]):
    """Ordered id -> record table. Subclasses hook _persist() to save."""

    kind = "record"

    def __init__(self, records: Optional[List[R]] = None) -> None:
        self._rows: Dict[str, R] = {}
        for r in records or []:
            self._rows[r.id] = r

    def _persist(self) -> None:
        pass

    def _list_all(self) -> List[R]:
        return list(self._rows.values())

    def get(self, record_id: str) -> R:
        try:
            return self._rows[record_id]
        except KeyError:
            raise NotFound(f"{self.kind} not found: {record_id}") from None

    def add(self, record: R) -> R:
        if record.id in self._rows:
            raise StorageError(f"duplicate {self.kind} id: {record.id}")
        self._rows[record.id] = record
        self._persist()
        return record

    def update(self, record_id: str, **changes) -> R:
        current = self.get(record_id)
        updated = replace(current, **changes)
        self._rows[record_id] = updated
        self._persist()
        return updated

    def remove(self, record_id: str) -> None:
        self.get(record_id)
        del self._rows[record_id]
        self._persist()

    def replace_all(self, records: List[R]) -> None:
        self._rows = {r.id: r for r in records}
        self._persist()


class MemoryFolderStore(_MemoryRecords[Folder]):
    kind = "Folder"

    def list(self) -> List[Folder]:
        return self._list_all()


class MemoryImageStore(_MemoryRecords[Image]):
    kind = "Image"

    def list(self, folder_id: Optional[str] = None) -> List[Image]:
        rows = self._list_all()
        if folder_id is None:
            return rows
        return [r for r in rows if r.folder_id == folder_id]

    def remove_folder(self, folder_id: str) -> int:
        doomed = [r.id for r in self._list_all() if r.folder_id == folder_id]
        for rid in doomed:
            del self._rows[rid]
        if doomed:
            self._persist()
        return len(doomed)


def _read_json_rows(path: Path, cls: Type[R]) -> List[R]:
    if not path.exists():
        return []

    try:
        with path.open("r", encoding="utf-8") as f:
            rows = json.load(f)
    except (OSError, ValueError) as ex:
        raise StorageError(f"could not read {path}: {ex}") from ex

    known = {f.name for f in fields(cls)}
    try:
        return [cls(**{k: v for k, v in row.items() if k in known}) for row in rows]
    except TypeError as ex:
        raise StorageError(f"bad record in {path}: {ex}") from ex


def _write_json_rows(path: Path, rows: List) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    # Write next to the target, then swap in, so a crash never leaves half a file.
    fd, tmp_name = tempfile.mkstemp(prefix=".imglib_", suffix=".json", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump([asdict(r) for r in rows], f, indent=2, ensure_ascii=False)
        tmp_path.replace(path)
    except OSError as ex:
        tmp_path.unlink(missing_ok=True)
        raise StorageError(f"could not write {path}: {ex}") from ex


class JsonFolderStore(MemoryFolderStore):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(_read_json_rows(self.path, Folder))

    def _persist(self) -> None:
        _write_json_rows(self.path, self._list_all())


class JsonImageStore(MemoryImageStore):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(_read_json_rows(self.path, Image))

    def _persist(self) -> None:
        _write_json_rows(self.path, self._list_all())


def generate_file_name(original_name: str) -> str:
    """
    'My Photo.JPG' -> 'my-photo-1718000000000-3f9c2a1b7d4e.JPG'

    Timestamp plus a random token keeps two uploads of the same file apart.
    """
    p = Path(original_name)
    stem = re.sub(r"[^a-z0-9]", "-", p.stem, flags=re.IGNORECASE).lower() or "image"
    ext = p.suffix or ".jpg"
    return f"{stem}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{ext}"


def make_thumbnail(data: bytes) -> bytes:
    try:
        with PILImage.open(io.BytesIO(data)) as im:
            im.load()
            thumb = ImageOps.fit(im.convert("RGB"), THUMBNAIL_SIZE, PILImage.Resampling.LANCZOS)
    except (UnidentifiedImageError, OSError, ValueError) as ex:
        raise StorageError(f"could not build thumbnail: {ex}") from ex

    buf = io.BytesIO()
    thumb.save(buf, format="JPEG", quality=THUMBNAIL_QUALITY)
    return buf.getvalue()


class FileBlobStore:
    """
    Image bytes under <root>/<folder>/<file>, thumbnails under
    <root>/<folder>/thumbnails/<file>. public_id is '<folder>/<file>'.
    """

    def __init__(self, root: Path, base_url: str = "/uploads") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, public_id: str) -> Path:
        path = (self.root / public_id).resolve()
        root = self.root.resolve()
        if root not in path.parents:
            raise StorageError(f"public id escapes the store: {public_id}")
        return path

    @staticmethod
    def _thumb_path(path: Path) -> Path:
        return path.parent / "thumbnails" / path.name

    def url_for(self, public_id: str) -> str:
        return f"{self.base_url}/{public_id}"

    def thumbnail_url(self, public_id: str) -> str:
        folder, _, name = public_id.rpartition("/")
        return f"{self.base_url}/{folder}/thumbnails/{name}"

    def _blob(self, public_id: str, path: Path) -> StoredBlob:
        try:
            with PILImage.open(path) as im:
                width, height = im.size
            size = path.stat().st_size
        except (UnidentifiedImageError, OSError) as ex:
            raise StorageError(f"could not read {public_id}: {ex}") from ex

        return StoredBlob(
            public_id=public_id,
            url=self.url_for(public_id),
            thumbnail_url=self.thumbnail_url(public_id),
            width=width,
            height=height,
            size=size,
        )

    def put(self, data: bytes, folder_name: str, file_name: str) -> StoredBlob:
        public_id = f"{folder_name}/{generate_file_name(file_name)}"
        path = self._path(public_id)
        thumb = make_thumbnail(data)

        try:
            self._thumb_path(path).parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            self._thumb_path(path).write_bytes(thumb)
        except OSError as ex:
            raise StorageError(f"could not write {public_id}: {ex}") from ex

        log.debug("Stored %s (%d bytes)", public_id, len(data))
        return self._blob(public_id, path)

    def delete(self, public_id: str) -> None:
        path = self._path(public_id)
        try:
            path.unlink(missing_ok=True)
            self._thumb_path(path).unlink(missing_ok=True)
        except OSError as ex:
            raise StorageError(f"could not delete {public_id}: {ex}") from ex

    def move(self, public_id: str, new_folder_name: str) -> StoredBlob:
        name = public_id.rpartition("/")[2]
        new_public_id = f"{new_folder_name}/{name}"

        src = self._path(public_id)
        dst = self._path(new_public_id)

        if not src.exists():
            raise NotFound(f"Blob not found: {public_id}")

        try:
            self._thumb_path(dst).parent.mkdir(parents=True, exist_ok=True)
            src.replace(dst)
            if self._thumb_path(src).exists():
                self._thumb_path(src).replace(self._thumb_path(dst))
        except OSError as ex:
            raise StorageError(f"could not move {public_id}: {ex}") from ex

        return self._blob(new_public_id, dst)

    def delete_folder(self, folder_name: str) -> None:
        """Remove an empty folder. A folder that still holds images is an error."""
        folder = self._path(folder_name)
        if not folder.exists():
            return

        thumbs = folder / "thumbnails"
        try:
            if thumbs.exists():
                thumbs.rmdir()
            folder.rmdir()
        except OSError as ex:
            raise StorageError(f"could not remove folder {folder_name}: {ex}") from ex


class LocalStore:
    """The three stores backed by one data directory."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.folders = JsonFolderStore(self.data_dir / "folders.json")
        self.images = JsonImageStore(self.data_dir / "images.json")
        self.blobs = FileBlobStore(self.data_dir / "uploads")
