"""Tests for render.py"""

from aiwriter.core.models import Article, FaqItem
from aiwriter.core.render import extract_toc, heading_anchor, markdown_to_html, render_preview


class TestMarkdownToHtml:
    """Tests for the preview renderer."""

    def test_table(self):
        html = markdown_to_html("| 名稱 | 價格 |\n|---|---|\n| 繪本 | 300 |")
        assert html.count("<th>") == 2
        assert html.count("<td>") == 2
        assert html.count("<tr>") == 2
        assert "<th>名稱</th><th>價格</th>" in html
        assert html.startswith('<div class="table-wrapper">')

    def test_pipe_lines_without_separator_are_not_a_table(self):
        html = markdown_to_html("| a | b |\n| c | d |")
        assert "<table" not in html

    def test_headings_get_anchors(self):
        html = markdown_to_html("## 一、挑選原則\n\n### 1. 看圖畫")
        assert '<h2 id="一挑選原則" class="preview-h2">一、挑選原則</h2>' in html
        assert '<h3 id="1-看圖畫" class="preview-h3">1. 看圖畫</h3>' in html

    def test_inline_marks(self):
        html = markdown_to_html("***重點*** **粗體** *斜體*")
        assert "<strong><em>重點</em></strong>" in html
        assert "<strong>粗體</strong>" in html
        assert "<em>斜體</em>" in html

    def test_image_before_link(self):
        html = markdown_to_html("![圖](https://img/a.jpg) [連結](https://x.org)")
        assert '<img src="https://img/a.jpg" alt="圖" class="preview-img" />' in html
        assert '<a href="https://x.org" target="_blank" rel="noopener">連結</a>' in html

    def test_list_items_wrapped_once(self):
        html = markdown_to_html("- 一\n- 二\n- 三")
        assert html.count('<ul class="preview-ul">') == 1
        assert html.count("<li") == 3

    def test_blockquote_and_rule(self):
        html = markdown_to_html("> 經文\n\n---")
        assert '<blockquote class="preview-quote">經文</blockquote>' in html
        assert "<hr />" in html

    def test_paragraphs_and_line_breaks(self):
        html = markdown_to_html("第一行\n第二行\n\n第二段")
        assert "<p>第一行<br />第二行</p>" in html
        assert "<p>第二段</p>" in html

    def test_html_is_escaped(self):
        html = markdown_to_html("<script>alert(1)</script>")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestToc:
    def test_headings_and_faq(self):
        md = "# 標題\n\n## 一、開始\n\n### 1. 細節\n\n## 二、結束"
        toc = extract_toc(md, has_faq=True)
        assert [(e.level, e.text) for e in toc] == [(2, "一、開始"), (3, "1. 細節"), (2, "二、結束"), (2, "FAQ")]
        assert toc[-1].anchor == "faq"

    def test_anchor_matches_rendered_heading(self):
        md = "## A & B"
        toc = extract_toc(md)
        assert f'id="{toc[0].anchor}"' in markdown_to_html(md)

    def test_repeated_headings_get_unique_anchors(self):
        md = "## 小結\n\n### 小結\n\n## 小結"
        toc = extract_toc(md)
        assert [e.anchor for e in toc] == ["小結", "小結-2", "小結-3"]
        html = markdown_to_html(md)
        for entry in toc:
            assert html.count(f'id="{entry.anchor}"') == 1

    def test_h1_counts_toward_repeats(self):
        md = "# 繪本\n\n## 繪本"
        assert extract_toc(md)[0].anchor == "繪本-2"
        assert '<h2 id="繪本-2"' in markdown_to_html(md)

    def test_anchor_fallback(self):
        assert heading_anchor("？？") == "section"


def test_render_preview():
    article = Article(title="t", slug="t-1", content="## 一、開始", faq=[FaqItem(q="q", a="a")])
    preview = render_preview(article)
    assert "preview-h2" in preview["html"]
    assert preview["toc"][-1]["anchor"] == "faq"
    assert preview["faq"] == [{"q": "q", "a": "a"}]
