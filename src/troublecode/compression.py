from __future__ import annotations

import asyncio
from dataclasses import dataclass

try:
    import zlib
except ImportError:  # pragma: no cover - interpreter built without zlib
    zlib = None  # type: ignore[assignment]

from .errors import DecompressionFailedError

__all__ = [
    "CompressionAdapter",
    "DEFAULT_ADAPTER",
    "compression_available",
    "gzip_bytes",
    "gunzip_single_member",
    "set_debug_logging",
]

_DEBUG_LOG = False
_GZIP_WBITS = 31  # zlib container selector for a gzip header/trailer
_CHUNK_SIZE = 64 * 1024
DEFAULT_LEVEL = 9


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def _debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[troublecode debug] {message}")


def compression_available() -> bool:
    return zlib is not None


def _iter_chunks(data: bytes):
    view = memoryview(data)
    for offset in range(0, len(view), _CHUNK_SIZE):
        yield view[offset : offset + _CHUNK_SIZE]


def gzip_bytes(data: bytes, *, level: int = DEFAULT_LEVEL) -> bytes:
    """
    Compress *data* into a single gzip member.

    The header carries mtime 0, so equal inputs give equal output on the same
    zlib build.
    """
    if zlib is None:
        raise RuntimeError("gzip transform is unavailable in this interpreter")
    compressor = zlib.compressobj(level, zlib.DEFLATED, _GZIP_WBITS)
    parts = [compressor.compress(chunk) for chunk in _iter_chunks(data)]
    parts.append(compressor.flush())
    return b"".join(parts)


def gunzip_single_member(data: bytes) -> bytes:
    """
    Decompress exactly one gzip member.

    Raises DecompressionFailedError for a bad header or CRC, a truncated
    stream, or bytes trailing the member.
    """
    if zlib is None:
        raise DecompressionFailedError("gzip transform is unavailable in this interpreter")
    decompressor = zlib.decompressobj(_GZIP_WBITS)
    try:
        parts = [decompressor.decompress(chunk) for chunk in _iter_chunks(data)]
        parts.append(decompressor.flush())
    except zlib.error as exc:
        raise DecompressionFailedError(f"gzip stream rejected: {exc}") from exc
    if not decompressor.eof:
        raise DecompressionFailedError("gzip stream is truncated")
    if decompressor.unused_data:
        raise DecompressionFailedError(
            f"{len(decompressor.unused_data)} bytes trail the gzip member"
        )
    return b"".join(parts)


@dataclass(frozen=True, slots=True)
class CompressionAdapter:
    """
    Optional gzip transform with identity fallback.

    ``enabled=None`` follows the interpreter's capability; ``enabled=False``
    behaves as if the transform did not exist. Tokens do not record whether
    compression was applied, so :meth:`decompress` always tries gunzip first
    and hands back the literal bytes when that fails.
    """

    enabled: bool | None = None
    level: int = DEFAULT_LEVEL

    @property
    def available(self) -> bool:
        if self.enabled is False:
            return False
        return compression_available()

    async def compress(self, data: bytes) -> bytes:
        payload = bytes(data)
        if not self.available:
            _debug_log("compression unavailable; passing payload through")
            return payload
        return await asyncio.to_thread(gzip_bytes, payload, level=self.level)

    async def decompress(self, data: bytes) -> bytes:
        payload = bytes(data)
        if not self.available:
            return payload
        try:
            return await asyncio.to_thread(gunzip_single_member, payload)
        except DecompressionFailedError as exc:
            _debug_log(f"{exc}; treating {len(payload)} bytes as literal payload")
            return payload


DEFAULT_ADAPTER = CompressionAdapter()
