from __future__ import annotations

import base64
import binascii
import re

from .errors import MalformedInputError

__all__ = ["encode", "decode"]

_ALPHABET_RE = re.compile(r"[A-Za-z0-9_-]*")


def encode(data: bytes) -> str:
    """Return URL-safe base64 for *data* with the ``=`` padding removed."""
    return base64.urlsafe_b64encode(bytes(data)).decode("ascii").rstrip("=")


def decode(text: str) -> bytes:
    """
    Decode unpadded URL-safe base64.

    Padding is rebuilt from ``len(text) % 4``. A remainder of 1 can never come
    out of :func:`encode`, so it is rejected along with any character outside
    ``A-Za-z0-9-_``.
    """
    if not isinstance(text, str):
        raise MalformedInputError("Token must be a string")
    if _ALPHABET_RE.fullmatch(text) is None:
        raise MalformedInputError("Token contains characters outside the URL-safe base64 alphabet")
    remainder = len(text) % 4
    if remainder == 1:
        raise MalformedInputError(f"Token length {len(text)} is not a valid base64 length")
    padded = text + "=" * ((4 - remainder) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError) as exc:
        raise MalformedInputError("Token is not valid base64") from exc
