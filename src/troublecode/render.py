from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import ClassVar, Iterable, Iterator, Union
from urllib.parse import urlsplit

from .pathindex import PathIndex, RevealHost, activate_reference

__all__ = [
    "Text",
    "LineBreak",
    "Code",
    "Strong",
    "Emphasis",
    "Link",
    "Reference",
    "Paragraph",
    "Heading",
    "BulletList",
    "CodeBlock",
    "Document",
    "MAX_HEADING_LEVEL",
    "MAX_REFERENCE_LENGTH",
    "parse_inline",
    "render_annotated_text",
]

MAX_HEADING_LEVEL = 4
MAX_REFERENCE_LENGTH = 256
SAFE_LINK_SCHEMES = frozenset({"", "http", "https", "mailto"})

_FENCE = "```"
_REF_OPEN = "[[ref:"
_REF_CLOSE = "]]"
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(\S.*)$")
_BULLET_RE = re.compile(r"^[-*][ \t]+")
_FENCE_LANG_RE = re.compile(r"[\w+#.-]+")
_REF_BODY_RE = re.compile(r"(?:\[\d+\]|[^\]])*")
_BACKTICK_RE = re.compile(r"`")
_LABEL_STOP_RE = re.compile(r"[\]\n]")
_URL_STOP_RE = re.compile(r"[)\s]")


@dataclass(frozen=True, slots=True)
class Text:
    text: str


@dataclass(frozen=True, slots=True)
class LineBreak:
    pass


@dataclass(frozen=True, slots=True)
class Code:
    text: str


@dataclass(frozen=True, slots=True)
class Strong:
    children: tuple["Inline", ...]


@dataclass(frozen=True, slots=True)
class Emphasis:
    children: tuple["Inline", ...]


@dataclass(frozen=True, slots=True)
class Link:
    children: tuple["Inline", ...]
    url: str

    target: ClassVar[str] = "_blank"
    rel: ClassVar[str] = "noopener noreferrer"


@dataclass(frozen=True, slots=True)
class Reference:
    """A ``[[ref:path]]`` binding. The path is not checked until activation."""

    label: str
    path: str


Inline = Union[Text, LineBreak, Code, Strong, Emphasis, Link, Reference]


@dataclass(frozen=True, slots=True)
class Paragraph:
    children: tuple[Inline, ...]


@dataclass(frozen=True, slots=True)
class Heading:
    level: int
    children: tuple[Inline, ...]


@dataclass(frozen=True, slots=True)
class BulletList:
    items: tuple[tuple[Inline, ...], ...]


@dataclass(frozen=True, slots=True)
class CodeBlock:
    code: str
    language: str | None = None


Block = Union[Paragraph, Heading, BulletList, CodeBlock]


@dataclass(frozen=True, slots=True)
class Document:
    blocks: tuple[Block, ...]
    index: PathIndex | None = field(default=None, compare=False, repr=False)

    def references(self) -> list[Reference]:
        found: list[Reference] = []
        for block in self.blocks:
            if isinstance(block, BulletList):
                for item in block.items:
                    found.extend(_iter_references(item))
            elif isinstance(block, (Paragraph, Heading)):
                found.extend(_iter_references(block.children))
        return found

    def activate(self, target: Reference | str, host: RevealHost) -> bool:
        """Resolve a binding against the bound index; unknown paths are a no-op."""
        if self.index is None:
            return False
        path = target.path if isinstance(target, Reference) else target
        return activate_reference(self.index, path, host)


def _iter_references(spans: Iterable[Inline]) -> Iterator[Reference]:
    for span in spans:
        if isinstance(span, Reference):
            yield span
        elif isinstance(span, (Strong, Emphasis, Link)):
            yield from _iter_references(span.children)


# ---------- block segmentation ----------


def _consume_fence(lines: list[str], start: int) -> tuple[CodeBlock, int]:
    """
    Read a fenced block opening at ``lines[start]``.

    Returns the block and the index of the first unconsumed line. Text after
    a closing fence on the same line is written back into ``lines`` so it is
    segmented like any other line.
    """
    opening = lines[start].lstrip()[len(_FENCE):]
    inline_close = opening.find(_FENCE)
    if inline_close != -1:
        code = opening[:inline_close].strip()
        leftover = opening[inline_close + len(_FENCE):]
        if leftover.strip():
            lines[start] = leftover
            return CodeBlock(code=code), start
        return CodeBlock(code=code), start + 1

    lang_match = _FENCE_LANG_RE.match(opening.strip())
    language = lang_match.group(0) if lang_match else None
    body: list[str] = []
    pos = start + 1
    while pos < len(lines):
        line = lines[pos]
        close = line.find(_FENCE)
        if close == -1:
            body.append(line)
            pos += 1
            continue
        if line[:close].strip():
            body.append(line[:close])
        leftover = line[close + len(_FENCE):]
        code = "\n".join(body).strip("\n")
        if leftover.strip():
            lines[pos] = leftover
            return CodeBlock(code=code, language=language), pos
        return CodeBlock(code=code, language=language), pos + 1
    # unclosed fence runs to the end of the text
    return CodeBlock(code="\n".join(body).strip("\n"), language=language), pos


def _segment(text: str) -> list[CodeBlock | list[str]]:
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    segments: list[CodeBlock | list[str]] = []
    current: list[str] = []
    pos = 0
    while pos < len(lines):
        line = lines[pos]
        if line.lstrip().startswith(_FENCE):
            # a fence always opens a new block, even without a blank line before it
            if current:
                segments.append(current)
                current = []
            block, pos = _consume_fence(lines, pos)
            segments.append(block)
            continue
        if not line.strip():
            if current:
                segments.append(current)
                current = []
            pos += 1
            continue
        current.append(line)
        pos += 1
    if current:
        segments.append(current)
    return segments


def _classify(lines: list[str]) -> list[Block]:
    blocks: list[Block] = []
    first = 0
    while first < len(lines):
        heading = _HEADING_RE.match(lines[first])
        if heading:
            level = min(len(heading.group(1)), MAX_HEADING_LEVEL)
            blocks.append(Heading(level=level, children=parse_inline(heading.group(2).rstrip())))
            first += 1
            continue
        lines = lines[first:]
        if all(_BULLET_RE.match(line) for line in lines):
            items = tuple(parse_inline(_BULLET_RE.sub("", line, count=1)) for line in lines)
            blocks.append(BulletList(items=items))
        else:
            blocks.append(Paragraph(children=parse_inline("\n".join(lines))))
        break
    return blocks


# ---------- inline scanning ----------


@dataclass(slots=True)
class _Delim:
    marker: str
    can_open: bool


class _NextMatch:
    """Cached forward search; repeated queries between two hits cost nothing."""

    def __init__(self, text: str, pattern: re.Pattern[str]) -> None:
        self._text = text
        self._pattern = pattern
        self._start = -1
        self._hit = -1

    def find(self, pos: int) -> int:
        if 0 <= self._start <= pos and (self._hit == -1 or pos <= self._hit):
            return self._hit
        match = self._pattern.search(self._text, pos)
        self._start = pos
        self._hit = match.start() if match else -1
        return self._hit


class _InlineScanner:
    """
    Two passes over one run of inline text.

    The first pass walks left to right once and turns the text into items:
    finished spans (text, code, references, links) and ``*``/``**``
    delimiters. The second pass pairs each opening delimiter with the nearest
    closing one of the same kind. Both passes are linear in the input.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.items: list[Inline | _Delim] = []
        self.closers: dict[str, list[int]] = {"*": [], "**": []}
        self._backtick = _NextMatch(text, _BACKTICK_RE)
        self._label_stop = _NextMatch(text, _LABEL_STOP_RE)
        self._url_stop = _NextMatch(text, _URL_STOP_RE)

    def parse(self) -> list[Inline]:
        self._tokenize()
        return _merge_text(self._build(0, len(self.items)))

    def _tokenize(self) -> None:
        text = self.text
        buffer: list[str] = []

        def flush() -> None:
            if buffer:
                self.items.append(Text("".join(buffer)))
                buffer.clear()

        pos = 0
        while pos < len(text):
            char = text[pos]

            if char == "[":
                ref = _match_reference(text, pos)
                if ref is not None:
                    flush()
                    self.items.append(ref[0])
                    pos = ref[1]
                    continue
                link = self._match_link(pos)
                if link is not None:
                    label, url, end = link
                    flush()
                    label_spans = _InlineScanner(label).parse()
                    if _safe_url(url):
                        self.items.append(Link(children=tuple(label_spans), url=url))
                    else:
                        self.items.extend(label_spans)
                    pos = end
                    continue

            elif char == "\n":
                flush()
                self.items.append(LineBreak())
                pos += 1
                continue

            elif char == "`":
                close = self._backtick.find(pos + 1)
                if close > pos + 1:
                    flush()
                    self.items.append(Code(text[pos + 1 : close]))
                    pos = close + 1
                    continue

            elif char == "*":
                marker = "**" if text.startswith("**", pos) else "*"
                after = pos + len(marker)
                flush()
                if pos > 0 and not text[pos - 1].isspace():
                    self.closers[marker].append(len(self.items))
                self.items.append(_Delim(marker, can_open=after < len(text) and not text[after].isspace()))
                pos = after
                continue

            buffer.append(char)
            pos += 1

        flush()

    def _match_link(self, pos: int) -> tuple[str, str, int] | None:
        text = self.text
        stop = self._label_stop.find(pos + 1)
        if stop <= pos + 1 or text[stop] != "]" or not text.startswith("(", stop + 1):
            return None
        url_start = stop + 2
        url_stop = self._url_stop.find(url_start)
        if url_stop <= url_start or text[url_stop] != ")":
            return None
        return text[pos + 1 : stop], text[url_start:url_stop], url_stop + 1

    def _closer(self, marker: str, opener: int, end: int) -> int | None:
        # a closer directly after its opener would leave an empty run
        candidates = self.closers[marker]
        slot = bisect_right(candidates, opener + 1)
        if slot < len(candidates) and candidates[slot] < end:
            return candidates[slot]
        return None

    def _build(self, start: int, end: int) -> list[Inline]:
        spans: list[Inline] = []
        cursor = start
        while cursor < end:
            item = self.items[cursor]
            if isinstance(item, _Delim):
                close = self._closer(item.marker, cursor, end) if item.can_open else None
                if close is not None:
                    children = tuple(_merge_text(self._build(cursor + 1, close)))
                    spans.append(Strong(children) if item.marker == "**" else Emphasis(children))
                    cursor = close + 1
                    continue
                spans.append(Text(item.marker))
            else:
                spans.append(item)
            cursor += 1
        return spans


def _reference_end(text: str, pos: int) -> tuple[str, int] | None:
    """
    Match ``[[ref:<identifier>]]`` at *pos*; return (identifier, end).

    Bracketed sequence indexes such as ``logs[0]`` are allowed inside the
    identifier; otherwise the identifier stops at the first ``]``. Identifiers
    longer than MAX_REFERENCE_LENGTH are left as text.
    """
    if not text.startswith(_REF_OPEN, pos):
        return None
    start = pos + len(_REF_OPEN)
    limit = min(len(text), start + MAX_REFERENCE_LENGTH)
    cursor = _REF_BODY_RE.match(text, start, limit).end()
    if text.startswith(_REF_CLOSE, cursor):
        return text[start:cursor], cursor + len(_REF_CLOSE)
    plain_close = text.find("]", start, limit)
    if plain_close != -1 and text.startswith(_REF_CLOSE, plain_close):
        return text[start:plain_close], plain_close + len(_REF_CLOSE)
    return None


def _match_reference(text: str, pos: int) -> tuple[Reference, int] | None:
    matched = _reference_end(text, pos)
    if matched is None:
        return None
    identifier, end = matched
    identifier = identifier.strip()
    if not identifier:
        return None
    return Reference(label=identifier, path=identifier), end


def _safe_url(url: str) -> bool:
    try:
        scheme = urlsplit(url).scheme.lower()
    except ValueError:
        return False
    return scheme in SAFE_LINK_SCHEMES


def _merge_text(spans: list[Inline]) -> list[Inline]:
    merged: list[Inline] = []
    run: list[str] = []
    for span in spans:
        if isinstance(span, Text):
            run.append(span.text)
            continue
        if run:
            merged.append(Text("".join(run)))
            run = []
        merged.append(span)
    if run:
        merged.append(Text("".join(run)))
    return merged


def parse_inline(text: str) -> tuple[Inline, ...]:
    """Parse emphasis, code, links and reference tokens in one line-or-paragraph."""
    return tuple(_InlineScanner(text).parse())


def render_annotated_text(text: str | None, index: PathIndex | None = None) -> Document:
    """
    Turn free-text commentary into a Document.

    Fenced code blocks are kept verbatim; everything else is classified into
    headings, bullet lists and paragraphs and inline-parsed. Malformed markup
    degrades to literal text, so this never raises for any string input.
    """
    blocks: list[Block] = []
    for segment in _segment(text or ""):
        if isinstance(segment, CodeBlock):
            blocks.append(segment)
        else:
            blocks.extend(_classify(segment))
    return Document(blocks=tuple(blocks), index=index)
