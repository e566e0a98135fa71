from __future__ import annotations

from typing import Iterable

from rich.console import Group, RenderableType
from rich.syntax import Syntax
from rich.text import Text as RichText
from rich.tree import Tree

from .bundle import NodeKind, display_value
from .pathindex import PathIndex, TreeNode
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

__all__ = ["bundle_tree", "document_renderables"]

_KIND_STYLES = {
    NodeKind.NULL: "dim italic",
    NodeKind.BOOL: "yellow",
    NodeKind.NUMBER: "green",
    NodeKind.STRING: "white",
}


def _node_label(node: TreeNode) -> RichText:
    label = RichText(node.label or "(root)", style="bold cyan" if node.is_container else "cyan")
    if node.is_container:
        if not node.children:
            label.append("  (empty)", style="dim")
    else:
        label.append(": ")
        label.append(display_value(node.value), style=_KIND_STYLES.get(node.kind, ""))
    if node.path:
        label.append(f"  {node.path}", style="dim")
    return label


def _add_children(branch: Tree, node: TreeNode) -> None:
    for child in node.children:
        sub = branch.add(_node_label(child))
        if child.is_container:
            _add_children(sub, child)


def bundle_tree(index: PathIndex, title: str = "TroubleCode") -> Tree:
    """Every node of the bundle with its label, value and path."""
    tree = Tree(RichText(title, style="bold"))
    root = index.root
    if root.is_container:
        _add_children(tree, root)
    else:
        tree.add(_node_label(root))
    return tree


def _join(style: str, extra: str) -> str:
    return f"{style} {extra}".strip()


def _append_spans(text: RichText, spans: Iterable[Inline], style: str = "") -> None:
    for span in spans:
        if isinstance(span, Text):
            text.append(span.text, style=style or None)
        elif isinstance(span, LineBreak):
            text.append("\n")
        elif isinstance(span, Code):
            text.append(span.text, style=_join(style, "bold magenta"))
        elif isinstance(span, Strong):
            _append_spans(text, span.children, _join(style, "bold"))
        elif isinstance(span, Emphasis):
            _append_spans(text, span.children, _join(style, "italic"))
        elif isinstance(span, Link):
            _append_spans(text, span.children, _join(style, f"underline link {span.url}"))
        elif isinstance(span, Reference):
            text.append(f"[{span.label}]", style=_join(style, "reverse cyan"))


def _block_renderable(block: object) -> RenderableType:
    if isinstance(block, CodeBlock):
        return Syntax(block.code, block.language or "text", word_wrap=True)
    if isinstance(block, Heading):
        text = RichText(style="bold underline")
        _append_spans(text, block.children)
        return text
    if isinstance(block, BulletList):
        text = RichText()
        for position, item in enumerate(block.items):
            if position:
                text.append("\n")
            text.append("  • ")
            _append_spans(text, item)
        return text
    if isinstance(block, Paragraph):
        text = RichText()
        _append_spans(text, block.children)
        return text
    raise TypeError(f"Unknown block type: {type(block).__name__}")


def document_renderables(document: Document) -> Group:
    """Rich renderables for commentary, one blank line between blocks."""
    renderables: list[RenderableType] = []
    for block in document.blocks:
        if renderables:
            renderables.append(RichText(""))
        renderables.append(_block_renderable(block))
    return Group(*renderables)
