from __future__ import annotations

import time

from troublecode.pathindex import build_path_index
from troublecode.render import (
    BulletList,
    Code,
    CodeBlock,
    Emphasis,
    Heading,
    LineBreak,
    MAX_REFERENCE_LENGTH,
    Link,
    Paragraph,
    Reference,
    Strong,
    Text,
    parse_inline,
    render_annotated_text,
)


class RecordingHost:
    def __init__(self) -> None:
        self.revealed: list[str] = []
        self.highlighted: list[str] = []

    def reveal(self, node) -> None:
        self.revealed.append(node.path)

    def highlight(self, node) -> None:
        self.highlighted.append(node.path)


def test_reference_and_bold_in_one_paragraph() -> None:
    index = build_path_index({"user": {"name": "Ada"}})
    document = render_annotated_text("See [[ref:user.name]] for **details**.", index)
    assert document.blocks == (
        Paragraph(
            (
                Text("See "),
                Reference(label="user.name", path="user.name"),
                Text(" for "),
                Strong((Text("details"),)),
                Text("."),
            )
        ),
    )


def test_unmatched_bold_stays_literal() -> None:
    document = render_annotated_text("**oops")
    assert document.blocks == (Paragraph((Text("**oops"),)),)


def test_fenced_block_keeps_reference_text_verbatim() -> None:
    document = render_annotated_text("```js\nconst a = [[ref:x]];\n```")
    assert document.blocks == (CodeBlock(code="const a = [[ref:x]];", language="js"),)
    assert document.references() == []


def test_unclosed_fence_runs_to_end() -> None:
    document = render_annotated_text("Intro\n```\nline one\n\nline two")
    assert document.blocks == (
        Paragraph((Text("Intro"),)),
        CodeBlock(code="line one\n\nline two"),
    )


def test_text_after_fence_is_a_new_block() -> None:
    document = render_annotated_text("```\ncode\n```\nAfter **it**")
    assert document.blocks == (
        CodeBlock(code="code"),
        Paragraph((Text("After "), Strong((Text("it"),)))),
    )


def test_blank_lines_split_paragraphs_and_newlines_break_lines() -> None:
    document = render_annotated_text("one\ntwo\n\nthree")
    assert document.blocks == (
        Paragraph((Text("one"), LineBreak(), Text("two"))),
        Paragraph((Text("three"),)),
    )


def test_headings_are_clamped() -> None:
    document = render_annotated_text("# Summary\nBody\n\n###### Deep")
    assert document.blocks == (
        Heading(level=1, children=(Text("Summary"),)),
        Paragraph((Text("Body"),)),
        Heading(level=4, children=(Text("Deep"),)),
    )


def test_hash_without_space_is_not_a_heading() -> None:
    document = render_annotated_text("#notheading")
    assert document.blocks == (Paragraph((Text("#notheading"),)),)


def test_bullet_list_with_references() -> None:
    document = render_annotated_text("- first\n* second [[ref:logs[0].message]]")
    assert document.blocks == (
        BulletList(
            (
                (Text("first"),),
                (Text("second "), Reference(label="logs[0].message", path="logs[0].message")),
            )
        ),
    )


def test_partial_list_is_a_paragraph() -> None:
    document = render_annotated_text("- first\nnot a bullet")
    assert isinstance(document.blocks[0], Paragraph)


def test_emphasis_and_code_spans() -> None:
    assert parse_inline("an *important* `value`") == (
        Text("an "),
        Emphasis((Text("important"),)),
        Text(" "),
        Code("value"),
    )


def test_bold_may_contain_a_lone_asterisk() -> None:
    assert parse_inline("**a * b**") == (Strong((Text("a * b"),)),)


def test_spaced_asterisks_are_literal() -> None:
    assert parse_inline("2 * 3 * 4") == (Text("2 * 3 * 4"),)


def test_reference_inside_code_span_is_not_bound() -> None:
    assert parse_inline("`[[ref:x]]`") == (Code("[[ref:x]]"),)


def test_bold_cannot_split_a_reference() -> None:
    spans = parse_inline("**see [[ref:a**b]]** now")
    assert spans == (
        Strong((Text("see "), Reference(label="a**b", path="a**b"))),
        Text(" now"),
    )


def test_reference_inside_bold_is_found() -> None:
    document = render_annotated_text("**Check [[ref:screen.width]]**")
    assert [ref.path for ref in document.references()] == ["screen.width"]


def test_empty_reference_is_literal() -> None:
    assert parse_inline("[[ref:]]") == (Text("[[ref:]]"),)


def test_reference_identifier_is_trimmed() -> None:
    assert parse_inline("[[ref: user.name ]]") == (Reference(label="user.name", path="user.name"),)


def test_safe_link() -> None:
    spans = parse_inline("read [the docs](https://example.test/docs)")
    assert spans == (
        Text("read "),
        Link(children=(Text("the docs"),), url="https://example.test/docs"),
    )
    assert spans[1].target == "_blank"
    assert spans[1].rel == "noopener noreferrer"


def test_unsafe_link_degrades_to_label() -> None:
    assert parse_inline("[click](javascript:void)") == (Text("click"),)


def test_unresolved_reference_is_still_bound() -> None:
    index = build_path_index({"a": 1})
    document = render_annotated_text("[[ref:missing.path]]", index)
    assert document.references() == [Reference(label="missing.path", path="missing.path")]
    host = RecordingHost()
    assert document.activate(document.references()[0], host) is False
    assert host.highlighted == []


def test_activation_through_document() -> None:
    index = build_path_index({"logs": [{"message": "boom"}]})
    document = render_annotated_text("Look at [[ref:logs[0].message]]", index)
    host = RecordingHost()
    assert document.activate("logs[0].message", host) is True
    assert host.revealed == ["", "logs", "logs[0]"]
    assert host.highlighted == ["logs[0].message"]


def test_document_without_index_never_activates() -> None:
    document = render_annotated_text("[[ref:a]]")
    assert document.activate("a", RecordingHost()) is False


def test_renderer_never_raises_on_odd_input() -> None:
    samples = [
        "",
        None,
        "```",
        "``` ```",
        "[[ref:",
        "[[ref:a]",
        "***",
        "*a **b* c**",
        "[x](",
        "`",
        "# ",
        "-",
        "\r\n\r\n- a\r\n",
    ]
    for sample in samples:
        render_annotated_text(sample)


def _elapsed(fn, *args) -> float:
    started = time.perf_counter()
    fn(*args)
    return time.perf_counter() - started


def test_unclosed_emphasis_runs_render_in_linear_time() -> None:
    text = "*a " * 5000
    document = render_annotated_text(text)
    assert document.blocks == (Paragraph((Text(text),)),)
    assert _elapsed(render_annotated_text, text) < 1.0


def test_unclosed_reference_openers_render_in_linear_time() -> None:
    text = "[[ref:" * 3000
    assert render_annotated_text(text).blocks == (Paragraph((Text(text),)),)
    assert _elapsed(render_annotated_text, text) < 1.0


def test_many_brackets_without_links_render_in_linear_time() -> None:
    text = "[" * 5000 + "a](" + "x" * 5000 + " `" * 2000
    render_annotated_text(text)
    assert _elapsed(render_annotated_text, text) < 1.0


def test_overlong_reference_identifier_stays_literal() -> None:
    identifier = "a" * (MAX_REFERENCE_LENGTH + 1)
    assert parse_inline(f"[[ref:{identifier}]]") == (Text(f"[[ref:{identifier}]]"),)
    assert parse_inline(f"[[ref:{identifier[:-1]}]]") == (
        Reference(label=identifier[:-1], path=identifier[:-1]),
    )


def test_asterisk_inside_link_label_stays_with_the_label() -> None:
    assert parse_inline("*see [a*](https://x.test) b*") == (
        Emphasis(
            (
                Text("see "),
                Link(children=(Text("a*"),), url="https://x.test"),
                Text(" b"),
            )
        ),
    )


def test_emphasis_inside_bold() -> None:
    assert parse_inline("**a *b* c**") == (
        Strong((Text("a "), Emphasis((Text("b"),)), Text(" c"))),
    )


def test_empty_delimiter_pair_is_literal() -> None:
    assert parse_inline("****") == (Text("****"),)
