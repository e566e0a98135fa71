from __future__ import annotations

__all__ = [
    "TroubleCodeError",
    "DecodeError",
    "MalformedInputError",
    "ParseFailedError",
    "DecompressionFailedError",
    "NonSerializableError",
    "PathSyntaxError",
]


class TroubleCodeError(Exception):
    """Base class for every error raised by troublecode."""


class DecodeError(TroubleCodeError, ValueError):
    """Raised when a TroubleCode cannot be turned back into a bundle."""


class MalformedInputError(DecodeError):
    """Raised when a token is not valid unpadded URL-safe base64."""


class ParseFailedError(DecodeError):
    """Raised when decoded bytes are not a well-formed serialized bundle."""


class DecompressionFailedError(TroubleCodeError):
    """Raised when the gzip transform rejects its input.

    The compression adapter recovers from this locally; callers of the codec
    never see it.
    """


class NonSerializableError(TroubleCodeError, TypeError):
    """Raised when a value cannot be encoded as a bundle (cycles, unsupported types)."""


class PathSyntaxError(TroubleCodeError, ValueError):
    """Raised when a path string falls outside the key(.key|[index])* grammar."""
