"""Article exporters: Markdown with frontmatter, and Word (.docx).

The Word exporter is a line-oriented state machine over the Markdown body.
Per line, in priority order: table block, heading 1-3, blockquote, bullet,
image (placeholder caption), horizontal rule (spacer), blank (skipped),
otherwise a paragraph with inline runs.
"""

from __future__ import annotations

import io
import re
from datetime import date
from typing import TYPE_CHECKING
from urllib.parse import quote

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import RGBColor, Twips

from aiwriter.core.models import SECTION_IMAGE_POSITIONS
from aiwriter.core.render import is_table_separator, split_table_row
from aiwriter.core.sites import get_site_profile

if TYPE_CHECKING:
    from docx.document import Document as DocxDocument
    from docx.table import Table
    from docx.text.paragraph import Paragraph

    from aiwriter.core.models import Article

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

TABLE_WIDTH = 9000  # twips
HEADER_FILL = "F0E8E0"
BORDER_COLOR = "CCCCCC"
LINK_COLOR = "0066CC"
PLACEHOLDER_COLOR = "888888"

FRONTMATTER_RE = re.compile(r"^---\n[\s\S]*?\n---\n")
SECTION_H2_RE = re.compile(r"^## [一二三四五六七八九十]", re.MULTILINE)
IMAGE_LINE_RE = re.compile(r"^!\[([^\]]*)\]\(([^)]+)\)")
INLINE_RE = re.compile(
    r"(\*\*\*(.+?)\*\*\*|\*\*(.+?)\*\*|\*(.+?)\*|\[([^\]]+)\]\(([^)]+)\))"
)


def _yaml_str(value: str | None) -> str:
    return '"' + (value or "").replace("\\", "\\\\").replace('"', '\\"') + '"'


def insert_section_images(article: Article) -> str:
    """Append image1..image3 at the end of the first three numbered H2 sections."""
    content = article.content
    starts = [m.start() for m in SECTION_H2_RE.finditer(content)]

    inserts = []
    for idx, position in enumerate(SECTION_IMAGE_POSITIONS[: len(starts)]):
        slot = article.images.get(position)
        if slot is None or slot.selected is None or not slot.selected.url:
            continue
        end = starts[idx + 1] if idx + 1 < len(starts) else len(content)
        inserts.append((end, f"\n\n![{slot.selected.alt}]({slot.selected.url})\n"))

    for end, snippet in reversed(inserts):
        content = content[:end].rstrip("\n") + snippet + ("\n" if end < len(content) else "") + content[end:]
    return content


def compose_markdown(article: Article) -> str:
    """Full Markdown file with frontmatter, as pushed to the site repository."""
    publish_date = article.scheduled_date or date.today().isoformat()
    cover = article.images.get("cover")
    cover_url = cover.selected.url if cover and cover.selected else ""
    cover_alt = (cover.selected.alt if cover and cover.selected else "") or article.title
    author = get_site_profile(article.site_slug).author

    lines = [
        "---",
        f"title: {_yaml_str(article.title)}",
        f"description: {_yaml_str(article.description or article.title)}",
        f"publishDate: {publish_date}",
        f"category: {_yaml_str(article.category)}",
        "tags: [" + ", ".join(_yaml_str(t) for t in article.tags) + "]",
        f"image: {_yaml_str(cover_url)}",
        f"imageAlt: {_yaml_str(cover_alt)}",
    ]
    if article.faq:
        lines.append("faq:")
        for item in article.faq:
            lines.append(f"  - q: {_yaml_str(item.q)}")
            lines.append(f"    a: {_yaml_str(item.a)}")
    else:
        lines.append("faq: []")
    lines.append(f"author: {_yaml_str(author)}")
    lines.append("---")

    return "\n".join(lines) + "\n\n" + insert_section_images(article)


def strip_frontmatter(markdown: str) -> str:
    return FRONTMATTER_RE.sub("", markdown.replace("\r\n", "\n"), count=1)


def docx_filename(title: str) -> str:
    """Percent-encoded file name for Content-Disposition."""
    return quote(f"{title or 'article'}.docx")


def _spacing(paragraph: Paragraph, before: int, after: int) -> None:
    paragraph.paragraph_format.space_before = Twips(before)
    paragraph.paragraph_format.space_after = Twips(after)


def add_inline_runs(paragraph: Paragraph, text: str) -> None:
    """Single left-to-right scan; the first matching marker wins."""
    last = 0
    for match in INLINE_RE.finditer(text):
        if match.start() > last:
            paragraph.add_run(text[last:match.start()])

        bold_italic, bold, italic, link_text, link_url = match.group(2, 3, 4, 5, 6)
        if bold_italic:
            run = paragraph.add_run(bold_italic)
            run.bold = True
            run.italic = True
        elif bold:
            paragraph.add_run(bold).bold = True
        elif italic:
            paragraph.add_run(italic).italic = True
        elif link_text and link_url:
            run = paragraph.add_run(f"{link_text} ({link_url})")
            run.font.color.rgb = RGBColor.from_string(LINK_COLOR)
        last = match.end()

    if last < len(text):
        paragraph.add_run(text[last:])


def _shade(cell, fill: str) -> None:
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    cell._tc.get_or_add_tcPr().append(shd)


def _set_borders(table: Table, color: str) -> None:
    tbl_pr = table._tbl.tblPr
    borders = OxmlElement("w:tblBorders")
    for edge in ("top", "left", "bottom", "right", "insideH", "insideV"):
        el = OxmlElement(f"w:{edge}")
        el.set(qn("w:val"), "single")
        el.set(qn("w:sz"), "4")
        el.set(qn("w:space"), "0")
        el.set(qn("w:color"), color)
        borders.append(el)
    tbl_pr.append(borders)


def add_table(doc: DocxDocument, table_lines: list[str]) -> Table | None:
    """Grid table with a shaded bold header row and even column widths."""
    if len(table_lines) < 3:
        return None

    headers = split_table_row(table_lines[0])
    rows = [split_table_row(line) for line in table_lines[2:]]
    ncols = max(len(headers), 1)
    col_width = Twips(TABLE_WIDTH // ncols)

    table = doc.add_table(rows=1 + len(rows), cols=ncols)
    table.autofit = False
    _set_borders(table, BORDER_COLOR)

    for ci, header in enumerate(headers):
        cell = table.rows[0].cells[ci]
        cell.width = col_width
        cell.paragraphs[0].add_run(header).bold = True
        _shade(cell, HEADER_FILL)

    for ri, row in enumerate(rows, start=1):
        for ci in range(ncols):
            cell = table.rows[ri].cells[ci]
            cell.width = col_width
            # Short rows are padded to the header width
            cell.paragraphs[0].add_run(row[ci] if ci < len(row) else "")

    for column in table.columns:
        column.width = col_width
    return table


def markdown_to_docx(title: str, markdown: str) -> bytes:
    doc = Document()
    heading = doc.add_heading(title, level=0)
    _spacing(heading, 0, 300)

    lines = strip_frontmatter(markdown).split("\n")
    i = 0
    while i < len(lines):
        line = lines[i]

        if line.startswith("|") and i + 1 < len(lines) and is_table_separator(lines[i + 1]):
            table_lines = []
            while i < len(lines) and lines[i].startswith("|"):
                table_lines.append(lines[i])
                i += 1
            add_table(doc, table_lines)
            continue

        if line.startswith("# "):
            _spacing(doc.add_heading(line[2:].strip(), level=1), 400, 200)
        elif line.startswith("## "):
            _spacing(doc.add_heading(line[3:].strip(), level=2), 350, 180)
        elif line.startswith("### "):
            _spacing(doc.add_heading(line[4:].strip(), level=3), 250, 150)
        elif line.startswith("> "):
            p = doc.add_paragraph()
            add_inline_runs(p, line[2:])
            p.paragraph_format.left_indent = Twips(720)
            _spacing(p, 100, 100)
        elif line.startswith("- "):
            p = doc.add_paragraph(style="List Bullet")
            add_inline_runs(p, line[2:])
            _spacing(p, 50, 50)
        elif IMAGE_LINE_RE.match(line):
            alt = IMAGE_LINE_RE.match(line).group(1)
            if alt:
                p = doc.add_paragraph()
                run = p.add_run(f"[圖片: {alt}]")
                run.italic = True
                run.font.color.rgb = RGBColor.from_string(PLACEHOLDER_COLOR)
                p.alignment = WD_ALIGN_PARAGRAPH.CENTER
                _spacing(p, 100, 100)
        elif line.strip() == "---":
            _spacing(doc.add_paragraph(), 200, 200)
        elif line.strip():
            p = doc.add_paragraph()
            add_inline_runs(p, line)
            _spacing(p, 80, 80)
        i += 1

    bio = io.BytesIO()
    doc.save(bio)
    return bio.getvalue()
