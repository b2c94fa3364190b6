"""
Runtime configuration, read once from the environment.

Environment variables:
    CLOUDINARY_CLOUD_NAME: cloud name (NEXT_PUBLIC_CLOUDINARY_CLOUD_NAME
        is accepted as a fallback).
    CLOUDINARY_API_KEY / CLOUDINARY_API_SECRET: signing credentials.
    CLOUDINARY_ROOT_FOLDER: remote folder all library folders live under
        (default 'purindo').
    IMGLIB_DATA_DIR: where the local store keeps its JSON files and blobs
        (default './image_library').
    IMGLIB_PRESET: default preset (default 'balanced').
    IMGLIB_PROGRESSIVE: 'true'/'false', default 'true'.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import InvalidConfiguration
from .settings import UploadOptions


DEFAULT_ROOT_FOLDER = "purindo"
DEFAULT_DATA_DIR = "./image_library"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise InvalidConfiguration(f"{name} must be true or false, got {value!r}")


@dataclass(frozen=True)
class CloudinaryConfig:
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    root_folder: str = DEFAULT_ROOT_FOLDER
    api_base: str = "https://api.cloudinary.com/v1_1"
    delivery_base: str = "https://res.cloudinary.com"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        root = self.root_folder.strip("/")
        if not root:
            raise InvalidConfiguration("root_folder cannot be empty")
        object.__setattr__(self, "root_folder", root)

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CloudinaryConfig":
        env = os.environ if environ is None else environ

        cloud_name = env.get("CLOUDINARY_CLOUD_NAME") or env.get("NEXT_PUBLIC_CLOUDINARY_CLOUD_NAME") or ""

        return cls(
            cloud_name=cloud_name.strip(),
            api_key=env.get("CLOUDINARY_API_KEY", "").strip(),
            api_secret=env.get("CLOUDINARY_API_SECRET", "").strip(),
            root_folder=env.get("CLOUDINARY_ROOT_FOLDER", DEFAULT_ROOT_FOLDER),
        )


@dataclass(frozen=True)
class LibraryConfig:
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    upload: UploadOptions = UploadOptions()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LibraryConfig":
        env = os.environ if environ is None else environ

        progressive = _parse_bool("IMGLIB_PROGRESSIVE", env.get("IMGLIB_PROGRESSIVE", "true"))

        return cls(
            data_dir=Path(env.get("IMGLIB_DATA_DIR", DEFAULT_DATA_DIR)).expanduser(),
            upload=UploadOptions(
                preset=env.get("IMGLIB_PRESET", "balanced"),
                progressive=progressive,
            ),
        )
