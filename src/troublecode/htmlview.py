from __future__ import annotations

import json
from typing import Iterable

from bs4 import BeautifulSoup, NavigableString, Tag

from .bundle import Bundle, NodeKind, display_value
from .pathindex import PathIndex, TreeNode, build_path_index
from .render import (
    BulletList,
    Code,
    CodeBlock,
    Document,
    Emphasis,
    Heading,
    Inline,
    LineBreak,
    Link,
    Paragraph,
    Reference,
    Strong,
    Text,
)

__all__ = [
    "HEADING_LEVEL_OFFSET",
    "IMPORTANT_SECTIONS",
    "document_to_html",
    "report_to_html",
]

# commentary headings sit below the page's own h1/h2
HEADING_LEVEL_OFFSET = 2
IMPORTANT_SECTIONS = ("userError", "logs", "location")


def _new_soup() -> BeautifulSoup:
    return BeautifulSoup("", "html.parser")


def _text_tag(soup: BeautifulSoup, name: str, text: str, **attrs: str) -> Tag:
    tag = soup.new_tag(name, attrs=attrs)
    tag.string = text
    return tag


def _append_inlines(soup: BeautifulSoup, parent: Tag, spans: Iterable[Inline]) -> None:
    for span in spans:
        if isinstance(span, Text):
            parent.append(NavigableString(span.text))
        elif isinstance(span, LineBreak):
            parent.append(soup.new_tag("br"))
        elif isinstance(span, Code):
            parent.append(_text_tag(soup, "code", span.text))
        elif isinstance(span, Strong):
            tag = soup.new_tag("strong")
            _append_inlines(soup, tag, span.children)
            parent.append(tag)
        elif isinstance(span, Emphasis):
            tag = soup.new_tag("em")
            _append_inlines(soup, tag, span.children)
            parent.append(tag)
        elif isinstance(span, Link):
            tag = soup.new_tag("a", attrs={"href": span.url, "target": span.target, "rel": span.rel})
            _append_inlines(soup, tag, span.children)
            parent.append(tag)
        elif isinstance(span, Reference):
            parent.append(
                _text_tag(
                    soup,
                    "button",
                    span.label,
                    **{"type": "button", "class": "ref-chip", "data-ref": span.path},
                )
            )


def _block_tag(soup: BeautifulSoup, block: object) -> Tag:
    if isinstance(block, CodeBlock):
        attrs = {"class": "ai-code-block"}
        if block.language:
            attrs["data-lang"] = block.language
        pre = soup.new_tag("pre", attrs=attrs)
        pre.append(_text_tag(soup, "code", block.code))
        return pre
    if isinstance(block, Heading):
        level = min(block.level + HEADING_LEVEL_OFFSET, 6)
        tag = soup.new_tag(f"h{level}", attrs={"class": "ai-heading"})
        _append_inlines(soup, tag, block.children)
        return tag
    if isinstance(block, BulletList):
        tag = soup.new_tag("ul", attrs={"class": "ai-list"})
        for item in block.items:
            li = soup.new_tag("li")
            _append_inlines(soup, li, item)
            tag.append(li)
        return tag
    if isinstance(block, Paragraph):
        tag = soup.new_tag("p")
        _append_inlines(soup, tag, block.children)
        return tag
    raise TypeError(f"Unknown block type: {type(block).__name__}")


def document_to_html(document: Document) -> str:
    """Serialize a rendered commentary Document to an HTML fragment."""
    soup = _new_soup()
    for block in document.blocks:
        soup.append(_block_tag(soup, block))
    return str(soup)


def _add_item(soup: BeautifulSoup, container: Tag, label: str, value: str, path: str) -> None:
    attrs = {"class": "report__item"}
    if path:
        attrs["data-path"] = path
    item = soup.new_tag("div", attrs=attrs)
    item.append(_text_tag(soup, "span", label))
    value_span = soup.new_tag("span")
    if "\n" in value:
        value_span.append(_text_tag(soup, "pre", value, **{"class": "report__multiline"}))
    else:
        value_span.string = value
    item.append(value_span)
    container.append(item)


def _group(soup: BeautifulSoup, summary: str, *, css: str, path: str = "", open_: bool = False) -> tuple[Tag, Tag]:
    attrs = {"class": css}
    if path:
        attrs["data-path"] = path
    if open_:
        attrs["open"] = ""
    group = soup.new_tag("details", attrs=attrs)
    group.append(_text_tag(soup, "summary", summary))
    body = soup.new_tag("div", attrs={"class": "report__list"})
    group.append(body)
    return group, body


def _render_node(soup: BeautifulSoup, container: Tag, node: TreeNode, label: str) -> None:
    if node.kind is NodeKind.SEQUENCE:
        if not node.children:
            _add_item(soup, container, label or "list", "(empty)", node.path)
            return
        for child in node.children:
            if child.is_container:
                group, body = _group(
                    soup,
                    child.label,
                    css="report__group report__group--nested",
                    path=child.path,
                )
                _render_node(soup, body, child, "")
                container.append(group)
            else:
                _add_item(soup, container, child.label, display_value(child.value), child.path)
        return
    if node.kind is NodeKind.MAPPING:
        if not node.children:
            _add_item(soup, container, label or "object", "(empty)", node.path)
            return
        for child in node.children:
            _render_node(soup, container, child, child.label)
        return
    _add_item(soup, container, label or "value", display_value(node.value), node.path)


def report_to_html(bundle: Bundle, index: PathIndex | None = None) -> str:
    """
    Render a decoded bundle as collapsible report groups.

    Every leaf carries ``data-path`` (and so does every composite group) so a
    reference chip can find, reveal and highlight it.
    """
    index = index or build_path_index(bundle)
    soup = _new_soup()
    report = soup.new_tag("div", attrs={"class": "report"})
    root = index.root
    sections = root.children if root.kind is NodeKind.MAPPING else (root,)
    for section in sections:
        title = section.label or "value"
        group, body = _group(
            soup,
            title,
            css="report__group",
            path=section.path if section.is_container else "",
            open_=title in IMPORTANT_SECTIONS,
        )
        _render_node(soup, body, section, section.label)
        report.append(group)

    raw_group = soup.new_tag("details", attrs={"class": "report__group report__group--raw"})
    raw_group.append(_text_tag(soup, "summary", "raw"))
    raw_group.append(
        _text_tag(
            soup,
            "pre",
            json.dumps(bundle, indent=2, ensure_ascii=False),
            **{"class": "report__raw"},
        )
    )
    report.append(raw_group)
    soup.append(report)
    return str(soup)
