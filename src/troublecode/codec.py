from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass

from . import b64url
from .bundle import MAX_BUNDLE_DEPTH, Bundle, bundle_depth, validate_bundle
from .compression import DEFAULT_ADAPTER, CompressionAdapter, _debug_log
from .errors import DecodeError, NonSerializableError, ParseFailedError

__all__ = [
    "TokenStats",
    "encode_bundle",
    "decode_bundle",
    "encode_bundle_sync",
    "decode_bundle_sync",
    "serialize_bundle",
    "parse_bundle_bytes",
    "measure_token",
    "token_stats",
]


@dataclass(frozen=True, slots=True)
class TokenStats:
    token_length: int
    payload_bytes: int
    json_bytes: int

    @property
    def compressed(self) -> bool:
        return self.payload_bytes != self.json_bytes


def serialize_bundle(value: object) -> bytes:
    """Canonical flat JSON for a bundle: insertion order, no whitespace, UTF-8."""
    validate_bundle(value)
    try:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as exc:
        raise NonSerializableError(f"Bundle cannot be serialized: {exc}") from exc
    return text.encode("utf-8")


def _reject_duplicate_keys(pairs: list[tuple[str, object]]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"Duplicate key {key!r} in serialized bundle")
        result[key] = value
    return result


def _reject_constant(name: str) -> object:
    raise ValueError(f"Non-finite constant {name} in serialized bundle")


def parse_bundle_bytes(payload: bytes) -> Bundle:
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseFailedError("Decoded payload is not valid UTF-8") from exc
    try:
        bundle = json.loads(
            text,
            object_pairs_hook=_reject_duplicate_keys,
            parse_constant=_reject_constant,
        )
    except (ValueError, RecursionError) as exc:
        raise ParseFailedError(f"Decoded payload is not a valid bundle: {exc}") from exc
    if bundle_depth(bundle) > MAX_BUNDLE_DEPTH:
        raise ParseFailedError(f"Decoded bundle nests deeper than {MAX_BUNDLE_DEPTH} levels")
    return bundle


async def encode_bundle(value: object, *, adapter: CompressionAdapter | None = None) -> str:
    """
    Encode a bundle into a TroubleCode token.

    Raises NonSerializableError before any work is done when the value is
    cyclic or holds something JSON cannot represent.
    """
    adapter = adapter or DEFAULT_ADAPTER
    raw = serialize_bundle(value)
    payload = await adapter.compress(raw)
    token = b64url.encode(payload)
    _debug_log(f"encoded {len(raw)} JSON bytes into a {len(token)} character token")
    return token


async def decode_bundle(token: str, *, adapter: CompressionAdapter | None = None) -> Bundle:
    """
    Decode a TroubleCode token back into its bundle.

    Either the whole bundle is returned or a DecodeError is raised;
    MalformedInputError when the token is not URL-safe base64 and
    ParseFailedError when the payload does not parse.
    """
    adapter = adapter or DEFAULT_ADAPTER
    if not isinstance(token, str):
        raise DecodeError("Token must be a string")
    data = b64url.decode(token.strip())
    payload = await adapter.decompress(data)
    return parse_bundle_bytes(payload)


def encode_bundle_sync(value: object, *, adapter: CompressionAdapter | None = None) -> str:
    return asyncio.run(encode_bundle(value, adapter=adapter))


def decode_bundle_sync(token: str, *, adapter: CompressionAdapter | None = None) -> Bundle:
    return asyncio.run(decode_bundle(token, adapter=adapter))


async def measure_token(token: str, *, adapter: CompressionAdapter | None = None) -> TokenStats:
    adapter = adapter or DEFAULT_ADAPTER
    cleaned = token.strip()
    data = b64url.decode(cleaned)
    payload = await adapter.decompress(data)
    return TokenStats(token_length=len(cleaned), payload_bytes=len(data), json_bytes=len(payload))


def token_stats(token: str, *, adapter: CompressionAdapter | None = None) -> TokenStats:
    return asyncio.run(measure_token(token, adapter=adapter))
