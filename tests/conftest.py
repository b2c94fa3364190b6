"""Shared fixtures: images are generated in memory with Pillow."""
import io
from pathlib import Path

import pytest
from PIL import Image


def _make_image(width, height, fmt="JPEG", mode="RGB", noise=False, color=(200, 80, 40), **save_kwargs):
    if noise:
        img = Image.effect_noise((width, height), 64).convert(mode)
    else:
        if mode == "RGBA" and len(color) == 3:
            color = color + (128,)
        img = Image.new(mode, (width, height), color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture
def make_image():
    return _make_image


@pytest.fixture
def write_image(tmp_path):
    def _write(name, width=64, height=48, fmt="JPEG", **kwargs) -> Path:
        path = tmp_path / "in" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_make_image(width, height, fmt=fmt, **kwargs))
        return path

    return _write


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "IMGLIB_DATA_DIR",
        "IMGLIB_PRESET",
        "IMGLIB_PROGRESSIVE",
        "CLOUDINARY_CLOUD_NAME",
        "NEXT_PUBLIC_CLOUDINARY_CLOUD_NAME",
        "CLOUDINARY_API_KEY",
        "CLOUDINARY_API_SECRET",
        "CLOUDINARY_ROOT_FOLDER",
    ):
        monkeypatch.delenv(key, raising=False)
