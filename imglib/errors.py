from __future__ import annotations

from typing import Optional


class ImageLibraryError(Exception):
    """Base class for everything imglib raises on purpose."""


class InvalidConfiguration(ImageLibraryError, ValueError):
    """Unknown preset name or an out-of-range compression value."""


class ProbeError(ImageLibraryError):
    """Width/height could not be read. Never fatal to a compression."""


class CodecError(ImageLibraryError):
    """Source bytes could not be decoded or re-encoded."""


class NotFound(ImageLibraryError, KeyError):
    """Unknown folder or image id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; we want the plain message.
        return str(self.args[0]) if self.args else ""


class StorageError(ImageLibraryError):
    """Local store could not be read or written."""


class RemoteError(ImageLibraryError):
    """The remote media host rejected a call or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CredentialsMissing(RemoteError):
    pass
