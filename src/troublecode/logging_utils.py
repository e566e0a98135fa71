from __future__ import annotations

import re
from copy import copy, deepcopy
from typing import Any
from urllib.parse import unquote

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

MAX_LOGGED_TOKEN_CHARS = 24

_CODE_PARAM_RE = re.compile(r"([?&]code=)([^&#]*)")


def _decode_path(value: str) -> str:
    try:
        return unquote(value, encoding="utf-8", errors="replace")
    except Exception:
        return value


def redact_tokens(path: str, limit: int = MAX_LOGGED_TOKEN_CHARS) -> str:
    """Shorten ``code=`` query values so shared tokens stay out of access logs."""

    def _shorten(match: re.Match[str]) -> str:
        token = match.group(2)
        if len(token) <= limit:
            return match.group(0)
        return f"{match.group(1)}{token[:limit]}…({len(token)} chars)"

    return _CODE_PARAM_RE.sub(_shorten, path)


class TokenRedactingAccessFormatter(UvicornAccessFormatter):
    """Uvicorn access log formatter with decoded paths and shortened tokens."""

    def formatMessage(self, record):  # type: ignore[override]
        try:
            client_addr, method, full_path, http_version, status_code = record.args
        except Exception:
            return super().formatMessage(record)
        if isinstance(full_path, str):
            full_path = redact_tokens(_decode_path(full_path))
        new_record = copy(record)
        new_record.args = (client_addr, method, full_path, http_version, status_code)
        return super().formatMessage(new_record)


def build_uvicorn_log_config() -> dict[str, Any]:
    """Return a uvicorn logging config that uses TokenRedactingAccessFormatter."""
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "troublecode.logging_utils.TokenRedactingAccessFormatter"
    return config
