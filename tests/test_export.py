"""Tests for export.py"""

import io
from datetime import date

from docx import Document

from aiwriter.core.export import (
    compose_markdown,
    docx_filename,
    insert_section_images,
    markdown_to_docx,
    strip_frontmatter,
)
from aiwriter.core.models import Article, FaqItem, ImageCandidate, ImageSlot

BODY = "開頭故事。\n\n## 一、第一段\n\n內容一。\n\n## 二、第二段\n\n內容二。\n\n## 三、第三段\n\n內容三。"


def slot(url, alt="alt"):
    candidate = ImageCandidate(url=url, thumbnail=url, alt=alt, photographer="")
    return ImageSlot(selected=candidate, candidates=[candidate], source="pexels")


def make_article(**kwargs):
    values = dict(
        title='媽媽說"好"',
        slug="mama-1",
        content=BODY,
        category="生活實用",
        description="描述",
        tags=["繪本", "育兒"],
        scheduled_date="2025-03-01",
        faq=[FaqItem(q="問題", a="答案")],
        site_slug="chparenting",
    )
    values.update(kwargs)
    return Article(**values)


def open_docx(data):
    return Document(io.BytesIO(data))


class TestInsertSectionImages:
    """Tests for section image placement."""

    def test_images_at_end_of_each_section(self):
        article = make_article(images={
            "image1": slot("https://img/1.jpg", "一"),
            "image2": slot("https://img/2.jpg", "二"),
            "image3": slot("https://img/3.jpg", "三"),
        })
        content = insert_section_images(article)

        first = content.index("![一](https://img/1.jpg)")
        assert content.index("內容一。") < first < content.index("## 二、")
        second = content.index("![二](https://img/2.jpg)")
        assert content.index("內容二。") < second < content.index("## 三、")
        assert content.rstrip().endswith("![三](https://img/3.jpg)")

    def test_empty_slots_are_skipped(self):
        article = make_article(images={"image1": ImageSlot.empty(), "image2": slot("https://img/2.jpg")})
        content = insert_section_images(article)
        assert "https://img/2.jpg" in content
        assert content.count("![") == 1

    def test_fewer_sections_than_images(self):
        article = make_article(content="## 一、唯一\n\n內容", images={
            "image1": slot("https://img/1.jpg"),
            "image2": slot("https://img/2.jpg"),
        })
        content = insert_section_images(article)
        assert "https://img/1.jpg" in content
        assert "https://img/2.jpg" not in content


class TestComposeMarkdown:
    def test_frontmatter(self):
        article = make_article(images={"cover": slot("https://img/c.jpg", "封面")})
        md = compose_markdown(article)

        assert md.startswith("---\n")
        assert 'title: "媽媽說\\"好\\""' in md
        assert "publishDate: 2025-03-01" in md
        assert 'tags: ["繪本", "育兒"]' in md
        assert 'image: "https://img/c.jpg"' in md
        assert 'imageAlt: "封面"' in md
        assert '  - q: "問題"' in md
        assert 'author: "薇佳媽咪"' in md
        assert strip_frontmatter(md).lstrip().startswith("開頭故事。")

    def test_defaults_without_cover_faq_or_date(self):
        md = compose_markdown(make_article(faq=[], scheduled_date=None, description=""))
        assert "faq: []" in md
        assert 'image: ""' in md
        assert f"publishDate: {date.today().isoformat()}" in md
        # description and alt fall back to the title
        assert 'description: "媽媽說\\"好\\""' in md
        assert 'imageAlt: "媽媽說\\"好\\""' in md


class TestMarkdownToDocx:
    """Tests for the Word exporter."""

    def test_table_two_by_two(self):
        data = markdown_to_docx("標題", "| 名稱 | 價格 |\n|---|---|\n| 繪本 | 300 |")
        doc = open_docx(data)

        assert len(doc.tables) == 1
        table = doc.tables[0]
        assert len(table.rows) == 2
        assert len(table.columns) == 2
        assert table.cell(0, 0).text == "名稱"
        assert table.cell(1, 1).text == "300"
        assert table.cell(0, 0).paragraphs[0].runs[0].bold

    def test_short_rows_padded(self):
        doc = open_docx(markdown_to_docx("t", "| a | b | c |\n|---|---|---|\n| 1 |"))
        assert doc.tables[0].cell(1, 2).text == ""

    def test_structure(self):
        md = "---\ntitle: x\n---\n# 大標\n## 一、段落\n### 1. 小節\n> 引言\n- 項目\n![封面圖](https://img/a.jpg)\n一般 **粗體** 文字"
        doc = open_docx(markdown_to_docx("文章", md))
        paragraphs = [(p.style.name, p.text) for p in doc.paragraphs if p.text]

        assert paragraphs[0] == ("Title", "文章")
        assert ("Heading 1", "大標") in paragraphs
        assert ("Heading 2", "一、段落") in paragraphs
        assert ("Heading 3", "1. 小節") in paragraphs
        assert ("List Bullet", "項目") in paragraphs
        assert any(text == "[圖片: 封面圖]" for _, text in paragraphs)
        assert any(text == "一般 粗體 文字" for _, text in paragraphs)
        assert not any("title: x" in text for _, text in paragraphs)

    def test_inline_runs(self):
        doc = open_docx(markdown_to_docx("t", "前 **粗** 中 *斜* [連結](https://x.org)"))
        runs = [p for p in doc.paragraphs if p.text.startswith("前")][0].runs
        assert [r.text for r in runs] == ["前 ", "粗", " 中 ", "斜", " ", "連結 (https://x.org)"]
        assert runs[1].bold
        assert runs[3].italic


def test_docx_filename_is_quoted():
    assert docx_filename("繪本 指南") == "%E7%B9%AA%E6%9C%AC%20%E6%8C%87%E5%8D%97.docx"
    assert docx_filename("") == "article.docx"
