import json
import re

import pytest

from imglib.errors import NotFound, StorageError
from imglib.storage import (
    FileBlobStore,
    Folder,
    Image,
    JsonFolderStore,
    JsonImageStore,
    LocalStore,
    MemoryFolderStore,
    MemoryImageStore,
    generate_file_name,
    make_thumbnail,
)


def _image(image_id, folder_id, name="pic"):
    return Image(
        id=image_id,
        url=f"/uploads/{name}.jpg",
        thumbnail_url=f"/uploads/thumbnails/{name}.jpg",
        public_id=f"f/{name}.jpg",
        folder_id=folder_id,
        name=name,
        size=10,
        width=2,
        height=3,
        created_at="2024-01-01T00:00:00Z",
    )


def test_memory_folder_crud():
    store = MemoryFolderStore()
    store.add(Folder(id="1", name="trips", created_at="t"))
    store.add(Folder(id="2", name="pets", created_at="t"))

    assert [f.name for f in store.list()] == ["trips", "pets"]
    assert store.update("1", name="travel").name == "travel"
    assert store.get("1").name == "travel"

    store.remove("2")
    assert [f.id for f in store.list()] == ["1"]


def test_missing_records_raise_not_found():
    store = MemoryFolderStore()
    with pytest.raises(NotFound, match="Folder not found: x"):
        store.get("x")
    with pytest.raises(NotFound):
        store.update("x", name="y")
    with pytest.raises(NotFound):
        store.remove("x")


def test_duplicate_ids_rejected():
    store = MemoryFolderStore([Folder(id="1", name="a", created_at="t")])
    with pytest.raises(StorageError):
        store.add(Folder(id="1", name="b", created_at="t"))


def test_image_store_by_folder_and_cascade():
    store = MemoryImageStore()
    store.add(_image("a", "f1"))
    store.add(_image("b", "f2"))
    store.add(_image("c", "f1"))

    assert [i.id for i in store.list("f1")] == ["a", "c"]
    assert len(store.list()) == 3

    assert store.remove_folder("f1") == 2
    assert [i.id for i in store.list()] == ["b"]
    assert store.remove_folder("f1") == 0


def test_json_stores_persist(tmp_path):
    folders = JsonFolderStore(tmp_path / "folders.json")
    images = JsonImageStore(tmp_path / "images.json")

    folders.add(Folder(id="1", name="trips", created_at="t"))
    images.add(_image("a", "1"))
    images.update("a", name="beach")

    raw = json.loads((tmp_path / "folders.json").read_text(encoding="utf-8"))
    assert raw[0]["name"] == "trips"

    assert JsonFolderStore(tmp_path / "folders.json").get("1").name == "trips"
    assert JsonImageStore(tmp_path / "images.json").get("a").name == "beach"


def test_json_store_ignores_unknown_keys(tmp_path):
    path = tmp_path / "folders.json"
    path.write_text(json.dumps([{"id": "1", "name": "x", "created_at": "t", "updated_at": "t"}]))

    assert JsonFolderStore(path).get("1").name == "x"


def test_json_store_reports_corrupt_file(tmp_path):
    path = tmp_path / "images.json"
    path.write_text("{not json")

    with pytest.raises(StorageError):
        JsonImageStore(path)


def test_generate_file_name():
    name = generate_file_name("My Holiday Photo!.JPG")
    assert re.fullmatch(r"my-holiday-photo--\d+-[0-9a-f]{12}\.JPG", name)
    assert generate_file_name("a.png") != generate_file_name("a.png")


def test_make_thumbnail(make_image):
    from PIL import Image as PILImage
    import io

    thumb = make_thumbnail(make_image(900, 300, fmt="PNG", mode="RGBA"))
    with PILImage.open(io.BytesIO(thumb)) as im:
        assert im.size == (300, 300)
        assert im.format == "JPEG"


def test_file_blob_store_lifecycle(tmp_path, make_image):
    blobs = FileBlobStore(tmp_path / "uploads")
    blob = blobs.put(make_image(120, 80), "trips", "beach.jpg")

    assert blob.public_id.startswith("trips/beach-")
    assert blob.url == f"/uploads/{blob.public_id}"
    assert "/thumbnails/" in blob.thumbnail_url
    assert (blob.width, blob.height) == (120, 80)

    path = tmp_path / "uploads" / blob.public_id
    assert path.exists()
    assert blob.size == path.stat().st_size
    assert (path.parent / "thumbnails" / path.name).exists()

    moved = blobs.move(blob.public_id, "travel")
    assert moved.public_id.startswith("travel/")
    assert not path.exists()
    assert (tmp_path / "uploads" / moved.public_id).exists()

    blobs.delete_folder("trips")
    assert not (tmp_path / "uploads" / "trips").exists()

    blobs.delete(moved.public_id)
    assert not (tmp_path / "uploads" / moved.public_id).exists()
    blobs.delete(moved.public_id)  # already gone is fine


def test_file_blob_store_refuses_non_empty_folder(tmp_path, make_image):
    blobs = FileBlobStore(tmp_path / "uploads")
    blobs.put(make_image(10, 10), "trips", "a.jpg")

    with pytest.raises(StorageError):
        blobs.delete_folder("trips")


def test_file_blob_store_blocks_escaping_paths(tmp_path):
    blobs = FileBlobStore(tmp_path / "uploads")
    with pytest.raises(StorageError):
        blobs.delete("../../etc/passwd")


def test_file_blob_store_move_missing(tmp_path):
    with pytest.raises(NotFound):
        FileBlobStore(tmp_path).move("trips/none.jpg", "other")


def test_local_store_layout(tmp_path):
    store = LocalStore(tmp_path / "data")
    store.folders.add(Folder(id="1", name="x", created_at="t"))

    assert (tmp_path / "data" / "folders.json").exists()
    assert store.blobs.root == tmp_path / "data" / "uploads"
