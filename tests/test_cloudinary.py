import base64
import hashlib
from urllib.parse import parse_qs

import httpx
import pytest

from imglib.cloudinary import CloudinaryClient
from imglib.config import CloudinaryConfig
from imglib.errors import CredentialsMissing, RemoteError


CONFIG = CloudinaryConfig(cloud_name="demo", api_key="key123", api_secret="s3cret")


def _client(handler, config=CONFIG):
    return CloudinaryClient(config, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def _form(request):
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_sign_sorts_params_and_appends_secret():
    client = CloudinaryClient(CONFIG, http_client=httpx.Client())
    expected = hashlib.sha1(b"public_id=purindo/a/b&timestamp=1700000000s3cret").hexdigest()

    assert client.sign({"timestamp": "1700000000", "public_id": "purindo/a/b"}) == expected


def test_upload_with_file_name():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(
            200,
            json={
                "public_id": "purindo/trips/beach",
                "secure_url": "https://res.cloudinary.com/demo/image/upload/v1/purindo/trips/beach.jpg",
                "width": 640,
                "height": 480,
                "bytes": 12345,
                "format": "jpg",
            },
        )

    with _client(handler) as client:
        blob = client.upload(b"\xff\xd8jpegbytes", "trips", "beach.jpg")

    assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/image/upload"
    body = seen["body"]
    assert b'name="public_id"' in body
    assert b"purindo/trips/beach" in body
    assert b'name="signature"' in body
    assert b'name="api_key"' in body
    assert b"\xff\xd8jpegbytes" in body

    assert blob.public_id == "purindo/trips/beach"
    assert blob.url.endswith("beach.jpg")
    assert blob.thumbnail_url == (
        "https://res.cloudinary.com/demo/image/upload/w_400,h_400,c_fill,q_auto,f_auto/purindo/trips/beach"
    )
    assert (blob.width, blob.height, blob.size) == (640, 480, 12345)


def test_upload_without_file_name_uses_folder_param():
    bodies = []

    def handler(request):
        bodies.append(request.read())
        return httpx.Response(200, json={"public_id": "purindo/trips/xyz", "secure_url": "u"})

    with _client(handler) as client:
        client.upload(b"data", "trips")

    assert b'name="folder"' in bodies[0]
    assert b'name="public_id"' not in bodies[0]


def test_error_status_raises_remote_error():
    def handler(request):
        return httpx.Response(401, text="Invalid Signature")

    with _client(handler) as client:
        with pytest.raises(RemoteError, match="Invalid Signature") as info:
            client.upload(b"data", "trips", "a.jpg")

    assert info.value.status_code == 401


def test_transport_error_raises_remote_error():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with _client(handler) as client:
        with pytest.raises(RemoteError, match="boom"):
            client.destroy("purindo/a/b")


def test_missing_credentials():
    client = _client(lambda r: httpx.Response(200), CloudinaryConfig(cloud_name="demo"))
    with pytest.raises(CredentialsMissing):
        client.upload(b"x", "trips", "a.jpg")


def test_destroy_signs_public_id():
    forms = []

    def handler(request):
        forms.append(_form(request))
        return httpx.Response(200, json={"result": "ok"})

    with _client(handler) as client:
        client.destroy("purindo/trips/beach")

    form = forms[0]
    assert form["public_id"] == "purindo/trips/beach"
    assert form["api_key"] == "key123"
    expected = hashlib.sha1(
        f"public_id=purindo/trips/beach&timestamp={form['timestamp']}s3cret".encode()
    ).hexdigest()
    assert form["signature"] == expected


def test_destroy_not_found_is_fine_but_other_results_fail():
    results = iter(["not found", "error"])

    def handler(request):
        return httpx.Response(200, json={"result": next(results)})

    with _client(handler) as client:
        client.destroy("purindo/a/gone")
        with pytest.raises(RemoteError):
            client.destroy("purindo/a/weird")


def test_move_renames_into_new_folder():
    forms = []

    def handler(request):
        form = _form(request)
        forms.append(form)
        return httpx.Response(200, json={"public_id": form["to_public_id"], "width": 1, "height": 2, "bytes": 3})

    with _client(handler) as client:
        blob = client.move("purindo/trips/beach", "travel")

    assert forms[0]["from_public_id"] == "purindo/trips/beach"
    assert forms[0]["to_public_id"] == "purindo/travel/beach"
    assert blob.public_id == "purindo/travel/beach"
    assert blob.url == "https://res.cloudinary.com/demo/image/upload/q_auto,f_auto/purindo/travel/beach"


def test_delete_folder_uses_basic_auth():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"deleted": ["purindo/trips"]})

    with _client(handler) as client:
        client.delete_folder("trips")

    assert seen["method"] == "DELETE"
    assert seen["url"] == "https://api.cloudinary.com/v1_1/demo/folders/purindo/trips"
    assert seen["auth"] == "Basic " + base64.b64encode(b"key123:s3cret").decode()


def test_iter_resources_follows_cursor():
    pages = {
        None: {"resources": [{"public_id": "purindo/a/1"}], "next_cursor": "abc"},
        "abc": {"resources": [{"public_id": "purindo/b/2"}]},
    }
    seen = []

    def handler(request):
        cursor = request.url.params.get("next_cursor")
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=pages[cursor])

    with _client(handler) as client:
        ids = [r["public_id"] for r in client.list_resources()]

    assert ids == ["purindo/a/1", "purindo/b/2"]
    assert seen[0]["prefix"] == "purindo/"
    assert seen[0]["type"] == "upload"


def test_url_helpers():
    client = CloudinaryClient(CONFIG, http_client=httpx.Client())

    assert client.url_for("purindo/a/b", width=800) == (
        "https://res.cloudinary.com/demo/image/upload/w_800,c_limit,q_auto,f_auto/purindo/a/b"
    )
    assert client.public_id_for("trips", "beach.final.jpg") == "purindo/trips/beach.final"
