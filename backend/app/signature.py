from __future__ import annotations

import base64
import binascii
from typing import Optional, Protocol

DATA_URI_PREFIX = "data:image/"
BASE64_MARKER = ";base64,"


class SignatureCapture(Protocol):
    def clear(self) -> None: ...

    def is_empty(self) -> bool: ...

    def export_image(self) -> str: ...

    def import_image(self, data_uri: str) -> None: ...


class DataUriSignature:
    """Signature captured by the browser canvas, held as an image data URI."""

    def __init__(self, data_uri: Optional[str] = None) -> None:
        self._data_uri: Optional[str] = None
        if data_uri:
            self.import_image(data_uri)

    def clear(self) -> None:
        self._data_uri = None

    def is_empty(self) -> bool:
        return self._data_uri is None

    def export_image(self) -> str:
        if self._data_uri is None:
            raise ValueError("No signature has been captured")
        return self._data_uri

    def import_image(self, data_uri: str) -> None:
        self._data_uri = validate_data_uri(data_uri)


def validate_data_uri(data_uri: str) -> str:
    value = (data_uri or "").strip()
    if not value.startswith(DATA_URI_PREFIX) or BASE64_MARKER not in value:
        raise ValueError("Signature must be a base64 encoded image data URI")
    payload = value.split(BASE64_MARKER, 1)[1]
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Signature image data is not valid base64") from exc
    if not decoded:
        raise ValueError("Signature image is empty")
    return value
