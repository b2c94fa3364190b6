"""
Thin client for the Cloudinary upload and admin REST APIs.

Only what the library needs: signed upload/destroy/rename, folder removal
and a resource listing for sync. Every library folder lives under
`<root_folder>/` on the remote side, so a folder 'trips' holding
'beach.jpg' maps to the public id 'purindo/trips/beach'.
"""
from __future__ import annotations

import hashlib
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import httpx

from .config import CloudinaryConfig
from .errors import CredentialsMissing, RemoteError
from .storage import StoredBlob, generate_file_name


log = logging.getLogger(__name__)

THUMBNAIL_TRANSFORM = "w_400,h_400,c_fill,q_auto,f_auto"
PAGE_SIZE = 500


class CloudinaryClient:
    def __init__(self, config: CloudinaryConfig, http_client: Optional[httpx.Client] = None) -> None:
        self.config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=config.timeout)

    def __enter__(self) -> "CloudinaryClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    # ---------------- Helpers ----------------
    def _require_credentials(self) -> None:
        if not self.config.is_configured:
            raise CredentialsMissing("Cloudinary credentials not configured")

    def _endpoint(self, path: str) -> str:
        return f"{self.config.api_base}/{self.config.cloud_name}/{path.lstrip('/')}"

    def sign(self, params: Dict[str, str]) -> str:
        """SHA-1 over 'a=1&b=2' (keys sorted) followed by the API secret."""
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.config.api_secret}".encode("utf-8")).hexdigest()

    def _signed_form(self, params: Dict[str, str]) -> Dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {
            **params,
            "api_key": self.config.api_key,
            "signature": self.sign(params),
        }

    def _send(self, what: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as ex:
            raise RemoteError(f"{what} failed: {ex}") from ex

        if resp.is_error:
            raise RemoteError(f"{what} failed: {resp.text}", status_code=resp.status_code)
        return resp

    @staticmethod
    def _json(what: str, resp: httpx.Response) -> Dict[str, Any]:
        try:
            return resp.json()
        except ValueError as ex:
            raise RemoteError(f"{what} returned invalid JSON: {ex}", status_code=resp.status_code) from ex

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.config.api_key, self.config.api_secret)

    def public_id_for(self, folder_name: str, file_name: str) -> str:
        return f"{self.config.root_folder}/{folder_name}/{Path(file_name).stem}"

    def url_for(self, public_id: str, width: Optional[int] = None) -> str:
        transform = f"w_{width},c_limit,q_auto,f_auto" if width else "q_auto,f_auto"
        return f"{self.config.delivery_base}/{self.config.cloud_name}/image/upload/{transform}/{public_id}"

    def thumbnail_url(self, public_id: str) -> str:
        return f"{self.config.delivery_base}/{self.config.cloud_name}/image/upload/{THUMBNAIL_TRANSFORM}/{public_id}"

    def _blob(self, payload: Dict[str, Any], url: Optional[str] = None) -> StoredBlob:
        public_id = payload["public_id"]
        return StoredBlob(
            public_id=public_id,
            url=url or payload.get("secure_url") or self.url_for(public_id),
            thumbnail_url=self.thumbnail_url(public_id),
            width=int(payload.get("width") or 0),
            height=int(payload.get("height") or 0),
            size=int(payload.get("bytes") or 0),
        )

    # ---------------- Upload API ----------------
    def upload(self, data: bytes, folder_name: Optional[str], file_name: Optional[str] = None) -> StoredBlob:
        """
        With a file name the public id is fixed (<root>/<folder>/<stem>);
        without one Cloudinary picks a name inside <root>/<folder>.
        """
        self._require_credentials()

        params: Dict[str, str] = {}
        if file_name:
            params["public_id"] = self.public_id_for(folder_name or "", file_name)
        elif folder_name:
            params["folder"] = f"{self.config.root_folder}/{folder_name}"

        log.info("Uploading %s to Cloudinary (%d bytes)", file_name or "<unnamed>", len(data))

        resp = self._send(
            "Upload",
            "POST",
            self._endpoint("image/upload"),
            data=self._signed_form(params),
            files={"file": (file_name or "upload", data)},
        )
        blob = self._blob(self._json("Upload", resp))
        log.info("Cloudinary upload successful: %s", blob.public_id)
        return blob

    def put(self, data: bytes, folder_name: str, file_name: str) -> StoredBlob:
        # Same-named uploads into one folder must not overwrite each other.
        return self.upload(data, folder_name, generate_file_name(file_name))

    def destroy(self, public_id: str) -> None:
        self._require_credentials()

        resp = self._send(
            "Delete",
            "POST",
            self._endpoint("image/destroy"),
            data=self._signed_form({"public_id": public_id}),
        )
        result = self._json("Delete", resp).get("result")
        if result not in ("ok", "not found"):
            raise RemoteError(f"Delete failed: {result}", status_code=resp.status_code)

        log.debug("Deleted %s (%s)", public_id, result)

    def delete(self, public_id: str) -> None:
        self.destroy(public_id)

    def rename(self, from_public_id: str, to_public_id: str) -> StoredBlob:
        self._require_credentials()

        resp = self._send(
            "Rename",
            "POST",
            self._endpoint("image/rename"),
            data=self._signed_form({
                "from_public_id": from_public_id,
                "to_public_id": to_public_id,
            }),
        )
        payload = self._json("Rename", resp)
        return self._blob(payload, url=self.url_for(payload["public_id"]))

    def move(self, public_id: str, new_folder_name: str) -> StoredBlob:
        name = public_id.rpartition("/")[2]
        return self.rename(public_id, f"{self.config.root_folder}/{new_folder_name}/{name}")

    # ---------------- Admin API ----------------
    def delete_folder(self, folder_name: str) -> None:
        """Cloudinary only removes empty folders."""
        self._require_credentials()

        self._send(
            "Folder delete",
            "DELETE",
            self._endpoint(f"folders/{self.config.root_folder}/{folder_name}"),
            auth=self._auth(),
        )

    def iter_resources(self) -> Iterator[Dict[str, Any]]:
        self._require_credentials()

        params: Dict[str, Any] = {
            "type": "upload",
            "prefix": f"{self.config.root_folder}/",
            "max_results": PAGE_SIZE,
        }

        while True:
            resp = self._send(
                "Resource listing",
                "GET",
                self._endpoint("resources/image"),
                params=params,
                auth=self._auth(),
            )
            payload = self._json("Resource listing", resp)

            for resource in payload.get("resources", []):
                yield resource

            cursor = payload.get("next_cursor")
            if not cursor:
                return
            params = {**params, "next_cursor": cursor}

    def list_resources(self) -> List[Dict[str, Any]]:
        return list(self.iter_resources())
