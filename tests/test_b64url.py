from __future__ import annotations

import pytest

from troublecode import b64url
from troublecode.errors import DecodeError, MalformedInputError


def test_encode_strips_padding_and_uses_url_alphabet() -> None:
    token = b64url.encode(b"\xfb\xff\xfe")
    assert token == "-__-"
    assert b64url.encode(b"a") == "YQ"
    assert "=" not in b64url.encode(b"ab")


def test_decode_restores_padding() -> None:
    assert b64url.decode("YQ") == b"a"
    assert b64url.decode("YWI") == b"ab"
    assert b64url.decode("YWJj") == b"abc"
    assert b64url.decode("") == b""


def test_every_byte_value_survives() -> None:
    data = bytes(range(256))
    assert b64url.decode(b64url.encode(data)) == data


@pytest.mark.parametrize("text", ["not-valid-base64!!", "ab+c", "ab/c", "YQ==", "Y Q"])
def test_decode_rejects_characters_outside_alphabet(text: str) -> None:
    with pytest.raises(MalformedInputError):
        b64url.decode(text)


def test_decode_rejects_impossible_length() -> None:
    with pytest.raises(MalformedInputError):
        b64url.decode("YWJjZ")


def test_malformed_input_is_a_decode_error() -> None:
    with pytest.raises(DecodeError):
        b64url.decode(123)  # type: ignore[arg-type]
