"""
Folder and image operations on top of the stores.

Blob calls go first (the blob store may be the remote media host) and the
local records follow, so the records act as a cache of what the blob store
holds. Folder rename/delete touch many blobs; a failure on one of them is
recorded in the returned OperationReport and the rest carry on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Sequence

from .batch import iter_compress
from .engine import compress_image, output_name
from .errors import ImageLibraryError, InvalidConfiguration, RemoteError, StorageError
from .results import CompressionResult
from .settings import UploadOptions
from .storage import BlobStore, Folder, FolderStore, Image, ImageStore, new_id, utc_now

if TYPE_CHECKING:
    from .cloudinary import CloudinaryClient


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobFailure:
    """A blob-store side call that failed without stopping the operation."""
    operation: str  # "move", "delete", "delete_folder"
    target: str  # public id or folder name
    error: ImageLibraryError


@dataclass(frozen=True)
class OperationReport:
    folder: Optional[Folder]
    images: List[Image] = field(default_factory=list)
    failures: List[BlobFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class UploadItem:
    index: int
    total: int
    source: Path
    image: Optional[Image] = None
    compression: Optional[CompressionResult] = None
    error: Optional[ImageLibraryError] = None

    @property
    def ok(self) -> bool:
        return self.image is not None


def _clean_name(name: str, what: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidConfiguration(f"{what} name is required")
    return cleaned


def _clean_folder_name(name: str) -> str:
    cleaned = _clean_name(name, "Folder")
    if "/" in cleaned or "\\" in cleaned or cleaned in (".", ".."):
        raise InvalidConfiguration(f"Folder name cannot contain path separators: {name!r}")
    return cleaned


class Library:
    def __init__(
        self,
        folders: FolderStore,
        images: ImageStore,
        blobs: BlobStore,
        options: Optional[UploadOptions] = None,
    ) -> None:
        self.folders = folders
        self.images = images
        self.blobs = blobs
        self.options = options or UploadOptions()

    # ---------------- Folders ----------------
    def _with_count(self, folder: Folder) -> Folder:
        # Counted from the records every time; no stored counter to drift.
        return replace(folder, image_count=len(self.images.list(folder.id)))

    def list_folders(self) -> List[Folder]:
        return [self._with_count(f) for f in self.folders.list()]

    def get_folder(self, folder_id: str) -> Folder:
        return self._with_count(self.folders.get(folder_id))

    def create_folder(self, name: str) -> Folder:
        name = _clean_folder_name(name)

        if any(f.name == name for f in self.folders.list()):
            raise InvalidConfiguration(f"A folder named {name!r} already exists")

        folder = self.folders.add(Folder(id=new_id(), name=name, created_at=utc_now()))
        log.info("Created folder %s (%s)", folder.name, folder.id)
        return folder

    def rename_folder(self, folder_id: str, new_name: str) -> OperationReport:
        folder = self.folders.get(folder_id)
        new_name = _clean_folder_name(new_name)

        if new_name == folder.name:
            return OperationReport(folder=self._with_count(folder), images=self.images.list(folder_id))

        if any(f.name == new_name and f.id != folder_id for f in self.folders.list()):
            raise InvalidConfiguration(f"A folder named {new_name!r} already exists")

        log.info("Renaming folder %s -> %s", folder.name, new_name)

        failures: List[BlobFailure] = []
        renamed: List[Image] = []

        for image in self.images.list(folder_id):
            try:
                blob = self.blobs.move(image.public_id, new_name)
            except ImageLibraryError as ex:
                log.error("Failed to move %s: %s", image.public_id, ex)
                failures.append(BlobFailure("move", image.public_id, ex))
                renamed.append(image)
                continue

            renamed.append(
                self.images.update(
                    image.id,
                    public_id=blob.public_id,
                    url=blob.url,
                    thumbnail_url=blob.thumbnail_url,
                )
            )

        failures.extend(self._drop_blob_folder(folder.name))

        folder = self.folders.update(folder_id, name=new_name)
        log.info("Folder rename complete, %d images, %d failures", len(renamed), len(failures))
        return OperationReport(folder=self._with_count(folder), images=renamed, failures=failures)

    def delete_folder(self, folder_id: str) -> OperationReport:
        folder = self.folders.get(folder_id)
        images = self.images.list(folder_id)

        log.info("Deleting folder %s with %d images", folder.name, len(images))

        failures: List[BlobFailure] = []
        for image in images:
            try:
                self.blobs.delete(image.public_id)
            except ImageLibraryError as ex:
                log.error("Failed to delete %s: %s", image.public_id, ex)
                failures.append(BlobFailure("delete", image.public_id, ex))

        failures.extend(self._drop_blob_folder(folder.name))

        self.images.remove_folder(folder_id)
        self.folders.remove(folder_id)

        return OperationReport(folder=replace(folder, image_count=0), images=images, failures=failures)

    def _drop_blob_folder(self, folder_name: str) -> List[BlobFailure]:
        try:
            self.blobs.delete_folder(folder_name)
        except (RemoteError, StorageError) as ex:
            # Usually the folder still holds something we failed to move/delete.
            log.warning("Failed to delete folder %s: %s", folder_name, ex)
            return [BlobFailure("delete_folder", folder_name, ex)]
        return []

    # ---------------- Images ----------------
    def list_images(self, folder_id: Optional[str] = None) -> List[Image]:
        if folder_id is not None:
            self.folders.get(folder_id)
        return self.images.list(folder_id)

    def _store(self, result: CompressionResult, folder: Folder) -> Image:
        file_name = output_name(result.file_name, result.format)
        blob = self.blobs.put(result.compressed, folder.name, file_name)

        image = Image(
            id=new_id(),
            url=blob.url,
            thumbnail_url=blob.thumbnail_url,
            public_id=blob.public_id,
            folder_id=folder.id,
            name=Path(result.file_name).stem,
            size=blob.size,
            width=blob.width,
            height=blob.height,
            created_at=utc_now(),
        )
        return self.images.add(image)

    def upload_bytes(
        self,
        data: bytes,
        file_name: str,
        folder_id: str,
        options: Optional[UploadOptions] = None,
    ) -> Image:
        folder = self.folders.get(folder_id)
        result = compress_image(data, file_name, options or self.options)
        image = self._store(result, folder)
        log.info("Upload successful: %s -> %s", file_name, image.public_id)
        return image

    def upload(
        self,
        sources: Sequence[Path],
        folder_id: str,
        options: Optional[UploadOptions] = None,
    ) -> Iterator[UploadItem]:
        """
        Compress and store files one after another, yielding as each lands.

        File i is stored before file i+1 is compressed. A file that fails
        (decode, encode or store) yields an item with `error` set; the rest
        of the batch still runs.
        """
        folder = self.folders.get(folder_id)

        for item in iter_compress(sources, options or self.options):
            if item.result is None:
                yield UploadItem(index=item.index, total=item.total, source=item.source, error=item.error)
                continue

            try:
                image = self._store(item.result, folder)
            except (RemoteError, StorageError) as ex:
                log.error("Failed to store %s: %s", item.source.name, ex)
                yield UploadItem(
                    index=item.index,
                    total=item.total,
                    source=item.source,
                    compression=item.result,
                    error=ex,
                )
                continue

            yield UploadItem(
                index=item.index,
                total=item.total,
                source=item.source,
                image=image,
                compression=item.result,
            )

    def rename_image(self, image_id: str, new_name: str) -> Image:
        """Display name only; the stored blob keeps its public id."""
        new_name = _clean_name(new_name, "Image")
        self.images.get(image_id)
        return self.images.update(image_id, name=new_name)

    def delete_image(self, image_id: str) -> Image:
        image = self.images.get(image_id)
        self.blobs.delete(image.public_id)
        self.images.remove(image_id)
        log.info("Image deleted: %s", image.public_id)
        return image

    # ---------------- Sync ----------------
    def sync(self, remote: "CloudinaryClient") -> List[Folder]:
        """
        Rebuild the local records from the remote host's listing.

        Folder ids survive a sync when the name is unchanged. Resources
        outside <root>/<folder>/ are ignored.
        """
        root_folder = remote.config.root_folder
        existing = {f.name: f for f in self.folders.list()}
        folders: Dict[str, Folder] = {}
        images: List[Image] = []

        for res in remote.iter_resources():
            parts = str(res.get("public_id", "")).split("/")
            if len(parts) < 3 or parts[0] != root_folder:
                continue

            folder_name = parts[1]
            folder = folders.get(folder_name)
            if folder is None:
                folder = existing.get(folder_name) or Folder(id=new_id(), name=folder_name, created_at=utc_now())
                folders[folder_name] = folder

            public_id = res["public_id"]
            images.append(
                Image(
                    id=new_id(),
                    url=res.get("secure_url", ""),
                    thumbnail_url=remote.thumbnail_url(public_id),
                    public_id=public_id,
                    folder_id=folder.id,
                    name=parts[-1] or "Untitled",
                    size=int(res.get("bytes") or 0),
                    width=int(res.get("width") or 0),
                    height=int(res.get("height") or 0),
                    created_at=res.get("created_at") or utc_now(),
                )
            )

        self.folders.replace_all([replace(f, image_count=0) for f in folders.values()])
        self.images.replace_all(images)

        log.info("Sync complete: %d folders, %d images", len(folders), len(images))
        return self.list_folders()
