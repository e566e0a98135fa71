from __future__ import annotations

import dataclasses
import json
import math
import traceback
from datetime import date, datetime, time
from enum import Enum
from pathlib import PurePath
from typing import Any, Union

from . import b64url
from .errors import NonSerializableError

__all__ = [
    "Bundle",
    "NodeKind",
    "kind_of",
    "validate_bundle",
    "safe_json_clone",
    "display_value",
    "CIRCULAR_MARKER",
    "MAX_BUNDLE_DEPTH",
    "bundle_depth",
]

Bundle = Union[None, bool, int, float, str, list["Bundle"], tuple["Bundle", ...], dict[str, "Bundle"]]

CIRCULAR_MARKER = "[Circular]"
# nesting levels of mappings and sequences; every traversal recurses once per level
MAX_BUNDLE_DEPTH = 64


class NodeKind(str, Enum):
    """Tag of one bundle value; every traversal matches on this."""

    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"

    @property
    def is_composite(self) -> bool:
        return self in (NodeKind.SEQUENCE, NodeKind.MAPPING)


def kind_of(value: object) -> NodeKind:
    if value is None:
        return NodeKind.NULL
    # bool is an int subclass; test it first
    if isinstance(value, bool):
        return NodeKind.BOOL
    if isinstance(value, (int, float)):
        return NodeKind.NUMBER
    if isinstance(value, str):
        return NodeKind.STRING
    if isinstance(value, (list, tuple)):
        return NodeKind.SEQUENCE
    if isinstance(value, dict):
        return NodeKind.MAPPING
    raise NonSerializableError(f"Unsupported bundle value of type {type(value).__name__}")


def validate_bundle(value: object) -> None:
    """
    Check that *value* is a cycle-free bundle.

    Raises NonSerializableError for cycles, unsupported types, non-string
    mapping keys, non-finite floats and nesting deeper than MAX_BUNDLE_DEPTH.
    Nothing is copied or modified.
    """
    _validate(value, set(), "", 1)


def _validate(value: object, active: set[int], where: str, level: int) -> None:
    try:
        kind = kind_of(value)
    except NonSerializableError as exc:
        raise NonSerializableError(f"{exc} at {where or '<root>'}") from None
    if kind is NodeKind.NUMBER and isinstance(value, float) and not math.isfinite(value):
        raise NonSerializableError(f"Non-finite number {value!r} at {where or '<root>'}")
    if not kind.is_composite:
        return
    marker = id(value)
    if marker in active:
        raise NonSerializableError(f"Cyclic reference at {where or '<root>'}")
    if level > MAX_BUNDLE_DEPTH:
        raise NonSerializableError(
            f"Bundle nests deeper than {MAX_BUNDLE_DEPTH} levels at {where or '<root>'}"
        )
    active.add(marker)
    if kind is NodeKind.MAPPING:
        for key, child in value.items():  # type: ignore[union-attr]
            if not isinstance(key, str):
                raise NonSerializableError(
                    f"Mapping key {key!r} at {where or '<root>'} is not a string"
                )
            _validate(child, active, f"{where}.{key}" if where else key, level + 1)
    else:
        for index, child in enumerate(value):  # type: ignore[arg-type]
            _validate(child, active, f"{where}[{index}]", level + 1)
    active.discard(marker)


def bundle_depth(value: Bundle) -> int:
    """Deepest nesting of mappings and sequences in an acyclic value; scalars are 0."""
    deepest = 0
    pending: list[tuple[object, int]] = [(value, 1)]
    while pending:
        item, level = pending.pop()
        if isinstance(item, dict):
            children = item.values()
        elif isinstance(item, (list, tuple)):
            children = item
        else:
            continue
        deepest = max(deepest, level)
        pending.extend((child, level + 1) for child in children)
    return deepest


def display_value(value: Bundle) -> str:
    """Short text for a scalar as a report would show it."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def safe_json_clone(value: Any) -> Bundle:
    """
    Return a bundle-shaped copy of an arbitrary Python object.

    Cycles become ``"[Circular]"``; exceptions, sets, bytes, callables and
    dataclasses are turned into tagged mappings so log arguments can always be
    encoded.
    """
    return _clone(value, set())


def _clone(value: Any, active: set[int]) -> Bundle:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Enum):
        return _clone(value.value, active)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        return {"__type": "Bytes", "length": len(raw), "base64url": b64url.encode(raw)}

    marker = id(value)
    if marker in active:
        return CIRCULAR_MARKER
    active.add(marker)
    try:
        if isinstance(value, BaseException):
            stack = "".join(traceback.format_exception(type(value), value, value.__traceback__))
            return {
                "__type": "Error",
                "name": type(value).__name__,
                "message": str(value),
                "stack": stack if value.__traceback__ is not None else None,
            }
        if isinstance(value, dict):
            return {str(key): _clone(child, active) for key, child in value.items()}
        if isinstance(value, (list, tuple)):
            return [_clone(child, active) for child in value]
        if isinstance(value, (set, frozenset)):
            return {"__type": "Set", "values": [_clone(child, active) for child in value]}
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return {
                field.name: _clone(getattr(value, field.name), active)
                for field in dataclasses.fields(value)
            }
        if callable(value):
            name = getattr(value, "__qualname__", None) or getattr(value, "__name__", None)
            return {"__type": "Function", "name": name or "(anonymous)"}
        return str(value)
    finally:
        active.discard(marker)
