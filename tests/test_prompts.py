"""Tests for prompts.py and sites.py"""

import pytest

from aiwriter.core.prompts import (
    DEFAULT_PROMPTS,
    PromptTemplateError,
    check_template,
    get_default_prompt,
    get_prompt,
    list_prompts,
    reset_prompt,
    save_prompt,
)
from aiwriter.core.sites import get_site_profile, is_devotional, list_categories


class TestPromptRegistry:
    """Tests for default and custom prompts."""

    @pytest.mark.parametrize("key", list(DEFAULT_PROMPTS))
    def test_defaults_render_with_declared_variables(self, key):
        prompt = get_default_prompt(key)
        rendered = prompt.render(**{name: f"<{name}>" for name in prompt.variables})
        for name in prompt.variables:
            assert f"<{name}>" in rendered

    def test_article_user_declares_all_sidecars(self):
        template = get_default_prompt("article_user").template
        for tag in ("FAQ", "IMAGE_KEYWORDS", "TAGS", "DESCRIPTION"):
            assert f"---{tag}_START---" in template
            assert f"---{tag}_END---" in template

    def test_unknown_key(self):
        assert get_default_prompt("nope") is None
        assert get_prompt("nope") is None

    def test_custom_overrides_default(self, db):
        assert save_prompt("titles", "自訂 {keyword_lines}{exclusion}", 0.2, 300, db)
        prompt = get_prompt("titles", db)
        assert prompt.is_custom
        assert prompt.template.startswith("自訂")
        assert prompt.temperature == 0.2
        assert prompt.variables == DEFAULT_PROMPTS["titles"]["variables"]

    def test_reset(self, db):
        save_prompt("titles", "x", 0.2, 300, db)
        assert reset_prompt("titles", db)
        assert not get_prompt("titles", db).is_custom

    def test_save_unknown_key(self, db):
        assert not save_prompt("nope", "x", 0.2, 10, db)
        assert not reset_prompt("nope", db)

    def test_save_rejects_unknown_placeholder(self, db):
        with pytest.raises(PromptTemplateError, match="未知的變數：keywords"):
            save_prompt("titles", "列出 {keywords}", 0.2, 300, db)
        assert not get_prompt("titles", db).is_custom

    @pytest.mark.parametrize("template", ["{", "x }", "{keyword_lines", "{0}", "{exclusion.x}"])
    def test_broken_braces_rejected(self, template):
        with pytest.raises(PromptTemplateError):
            check_template(template, ["keyword_lines", "exclusion"])

    def test_literal_braces_allowed(self):
        check_template('回傳 {{"title": "..."}} {keyword_lines}', ["keyword_lines", "exclusion"])

    def test_list_prompts(self, db):
        save_prompt("keywords", "k {category}{count}{audience}{examples}", 0.5, 10, db)
        prompts = {p.key: p for p in list_prompts(db)}
        assert set(prompts) == set(DEFAULT_PROMPTS)
        assert prompts["keywords"].is_custom
        assert not prompts["titles"].is_custom


class TestSiteProfiles:
    def test_known_and_default(self):
        assert get_site_profile("chparenting").image_qualifier == "asian"
        assert get_site_profile("unknown-site").slug == "default"
        assert get_site_profile(None).slug == "default"

    def test_devotional(self):
        assert is_devotional("bible")
        assert is_devotional("veganote", "信仰")
        assert not is_devotional("veganote", "AI")

    def test_categories(self):
        values = [c["value"] for c in list_categories("chparenting")]
        assert "生活實用" in values
        assert list_categories(None) == []
