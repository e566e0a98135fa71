from __future__ import annotations

import json
import os
from typing import Literal, Mapping
from urllib.parse import quote

import requests

from .bundle import Bundle
from .compression import _debug_log

__all__ = [
    "DEFAULT_TEXTGEN_URL",
    "DEFAULT_TEXTGEN_MODEL",
    "AI_UNAVAILABLE_MESSAGE",
    "MISSING_ISSUE_MESSAGE",
    "TextGenError",
    "TextGenUnavailableError",
    "TextGenClient",
    "build_prompt",
    "report_json_for_prompt",
]

DEFAULT_TEXTGEN_URL = "https://gen.pollinations.ai/text"
DEFAULT_TEXTGEN_MODEL = "gemini-fast"
AI_UNAVAILABLE_MESSAGE = "Unable to reach the AI service right now."
MISSING_ISSUE_MESSAGE = "Add an issue description first."

ENV_TEXTGEN_URL = "TROUBLECODE_TEXTGEN_URL"
ENV_TEXTGEN_MODEL = "TROUBLECODE_TEXTGEN_MODEL"
ENV_TEXTGEN_KEY = "TROUBLECODE_TEXTGEN_KEY"

PromptMode = Literal["triage", "troubleshoot"]

_PROMPT_BASE = (
    "You are a troubleshooting assistant. Analyze the TroubleCode report. "
    "When referencing specific fields, include a callback token in the form [[ref:path.to.field]]."
)


class TextGenError(RuntimeError):
    """Raised when the text generation service returns an error."""


class TextGenUnavailableError(ConnectionError):
    """Raised when the text generation service cannot be reached."""


def report_json_for_prompt(bundle: Bundle) -> str:
    return json.dumps(bundle, indent=2, ensure_ascii=False)


def build_prompt(mode: PromptMode, report_json: str, issue: str | None = None) -> str:
    """
    Build the prompt for a triage pass or an issue-driven troubleshoot pass.

    Both ask the model to cite report fields with ``[[ref:...]]`` tokens so
    the reply can be rendered with live references.
    """
    if mode == "triage":
        return (
            f"{_PROMPT_BASE}\n\n"
            "Provide: 1) quick summary, 2) likely issues, 3) next checks.\n\n"
            f"Report JSON:\n{report_json}"
        )
    if mode == "troubleshoot":
        issue_text = (issue or "").strip()
        if not issue_text:
            raise ValueError(MISSING_ISSUE_MESSAGE)
        return (
            f"{_PROMPT_BASE}\n\n"
            f"User issue description:\n{issue_text}\n\n"
            "Provide: 1) possible reasons, 2) suspected fields with callbacks, "
            "3) suggested next actions.\n\n"
            f"Report JSON:\n{report_json}"
        )
    raise ValueError(f"Unknown prompt mode: {mode!r}")


class TextGenClient:
    """
    Thin wrapper around a GET-style text generation endpoint.

    The prompt travels URL-encoded in the path: ``{base_url}/{prompt}``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_TEXTGEN_URL,
        model: str | None = DEFAULT_TEXTGEN_MODEL,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._session = requests.Session()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        timeout: float = 60.0,
    ) -> "TextGenClient":
        env = os.environ if environ is None else environ
        return cls(
            base_url=env.get(ENV_TEXTGEN_URL) or DEFAULT_TEXTGEN_URL,
            model=env.get(ENV_TEXTGEN_MODEL) or DEFAULT_TEXTGEN_MODEL,
            api_key=env.get(ENV_TEXTGEN_KEY) or None,
            timeout=timeout,
        )

    def generate(self, prompt: str) -> str:
        params: dict[str, str] = {}
        if self.model:
            params["model"] = self.model
        if self.api_key:
            params["key"] = self.api_key
        url = f"{self.base_url}/{quote(prompt, safe='')}"
        _debug_log(f"textgen request model={self.model} prompt_chars={len(prompt)}")
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TextGenUnavailableError(
                f"Failed to contact text generation service at {self.base_url}"
            ) from exc
        if response.status_code != 200:
            raise TextGenError(
                f"Text generation failed with status {response.status_code}: {response.text}"
            )
        return response.text

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "TextGenClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
