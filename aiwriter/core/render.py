"""Markdown to HTML preview renderer and table-of-contents extraction.

The renderer is a fixed sequence of regex passes. Order matters: tables
first, then headings in document order, bold-italic before bold before
italic, images before links. Text is HTML-escaped before any markup is
inserted.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aiwriter.core.slugs import slug_base

if TYPE_CHECKING:
    from aiwriter.core.models import Article

FAQ_TOC_TEXT = "FAQ"
FAQ_ANCHOR = "faq"

TABLE_BLOCK_RE = re.compile(r"((?:^\|.+\|[ \t]*(?:\n|$))+)", re.MULTILINE)
TABLE_SEPARATOR_RE = re.compile(r"^\|[\s\-:|]+\|$")

_HEADING_RE = re.compile(r"^(#{1,3}) (.+)$", re.MULTILINE)
_BOLD_ITALIC_RE = re.compile(r"\*\*\*(.+?)\*\*\*")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_QUOTE_RE = re.compile(r"^&gt; (.+)$", re.MULTILINE)
_LIST_RE = re.compile(r"^- (.+)$", re.MULTILINE)
_HR_RE = re.compile(r"^---$", re.MULTILINE)

BLOCK_PREFIXES = (
    "<h",
    "<img",
    "<blockquote",
    "<hr",
    '<div class="table-wrapper"',
    "<table",
    "<li",
    "<ul",
)


@dataclass(frozen=True)
class TocEntry:
    level: int
    text: str
    anchor: str

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "text": self.text, "anchor": self.anchor}


def heading_anchor(text: str) -> str:
    return slug_base(html.unescape(text).replace("*", "")) or "section"


class AnchorCounter:
    """Unique heading anchors for one document; repeats get -2, -3 and so on."""

    def __init__(self):
        self._used: set[str] = set()

    def __call__(self, text: str) -> str:
        base = heading_anchor(text)
        anchor, n = base, 1
        while anchor in self._used:
            n += 1
            anchor = f"{base}-{n}"
        self._used.add(anchor)
        return anchor


def split_table_row(row: str) -> list[str]:
    """Cells of a pipe row, without the outer pipes."""
    return [cell.strip() for cell in row.strip().split("|")[1:-1]]


def is_table_separator(line: str) -> bool:
    return bool(TABLE_SEPARATOR_RE.match(line.strip()))


def _render_table(match: re.Match) -> str:
    block = match.group(0)
    rows = [r for r in block.strip().split("\n") if r.strip()]
    if len(rows) < 2 or not is_table_separator(rows[1]):
        return block

    trailing = "\n" if block.endswith("\n") else ""
    parts = ['<div class="table-wrapper"><table class="preview-table"><thead><tr>']
    parts.extend(f"<th>{h}</th>" for h in split_table_row(rows[0]))
    parts.append("</tr></thead><tbody>")
    for row in rows[2:]:
        parts.append("<tr>")
        parts.extend(f"<td>{c}</td>" for c in split_table_row(row))
        parts.append("</tr>")
    parts.append("</tbody></table></div>")
    return "".join(parts) + trailing


def _heading(anchors: AnchorCounter):
    def repl(match: re.Match) -> str:
        level = len(match.group(1))
        text = match.group(2).strip()
        return f'<h{level} id="{anchors(text)}" class="preview-h{level}">{text}</h{level}>'

    return repl


def _wrap_list_items(block: str) -> str:
    """Wrap each run of consecutive <li> lines in a single <ul>."""
    out: list[str] = []
    run: list[str] = []
    for line in block.split("\n"):
        if line.startswith("<li"):
            run.append(line)
            continue
        if run:
            out.append(f'<ul class="preview-ul">{"".join(run)}</ul>')
            run = []
        out.append(line)
    if run:
        out.append(f'<ul class="preview-ul">{"".join(run)}</ul>')
    return "\n".join(out)


def markdown_to_html(md: str) -> str:
    text = html.escape((md or "").replace("\r\n", "\n"))

    text = TABLE_BLOCK_RE.sub(_render_table, text)

    text = _HEADING_RE.sub(_heading(AnchorCounter()), text)

    text = _BOLD_ITALIC_RE.sub(r"<strong><em>\1</em></strong>", text)
    text = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    text = _ITALIC_RE.sub(r"<em>\1</em>", text)

    text = _IMAGE_RE.sub(r'<img src="\2" alt="\1" class="preview-img" />', text)
    text = _LINK_RE.sub(r'<a href="\2" target="_blank" rel="noopener">\1</a>', text)

    text = _QUOTE_RE.sub(r'<blockquote class="preview-quote">\1</blockquote>', text)
    text = _LIST_RE.sub(r'<li class="preview-li">\1</li>', text)
    text = _HR_RE.sub("<hr />", text)

    blocks = []
    for block in re.split(r"\n\n+", text):
        trimmed = block.strip()
        if not trimmed:
            continue
        if "<li" in trimmed:
            trimmed = _wrap_list_items(trimmed)
        if trimmed.startswith(BLOCK_PREFIXES):
            blocks.append(trimmed)
        else:
            blocks.append(f"<p>{trimmed.replace(chr(10), '<br />')}</p>")
    return "\n".join(blocks)


def extract_toc(md: str, has_faq: bool = False) -> list[TocEntry]:
    """H2 and H3 headings in document order, plus an FAQ entry when present.

    Anchors match the ids markdown_to_html gives the same headings.
    """
    anchors = AnchorCounter()
    toc = []
    for line in (md or "").split("\n"):
        match = _HEADING_RE.match(line)
        if not match:
            continue
        level = len(match.group(1))
        text = match.group(2).strip()
        # H1 takes an anchor too so later suffixes line up
        anchor = anchors(html.escape(text))
        if level > 1:
            toc.append(TocEntry(level=level, text=text, anchor=anchor))
    if has_faq:
        toc.append(TocEntry(level=2, text=FAQ_TOC_TEXT, anchor=FAQ_ANCHOR))
    return toc


def render_preview(article: Article) -> dict[str, Any]:
    """HTML body, TOC and FAQ for the review page."""
    return {
        "html": markdown_to_html(article.content),
        "toc": [entry.to_dict() for entry in extract_toc(article.content, has_faq=bool(article.faq))],
        "faq": [item.to_dict() for item in article.faq],
    }
