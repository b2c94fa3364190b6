from __future__ import annotations

import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import ProbeError
from .results import Dimensions


log = logging.getLogger(__name__)


def probe_dimensions(data: bytes) -> Dimensions:
    """
    Read width/height from the image header.

    Pillow only parses the header on open; pixel data is never decoded here.
    """
    try:
        with Image.open(io.BytesIO(data)) as im:
            width, height = im.size
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as ex:
        raise ProbeError(f"Failed to read image dimensions: {ex}") from ex

    return Dimensions(width=int(width), height=int(height))


def try_probe_dimensions(data: bytes) -> Optional[Dimensions]:
    try:
        dims = probe_dimensions(data)
    except ProbeError as ex:
        log.warning("Could not get image dimensions, using default settings (%s)", ex)
        return None

    log.debug("Image dimensions: %s", dims)
    return dims
