"""Per-site writing profiles.

Static mapping from site slug to audience, prompt examples, category list,
frontmatter author and image qualifier. Unknown slugs use the default profile.
"""

from __future__ import annotations

from dataclasses import dataclass, field

STYLE_GENERAL = "general"
STYLE_DEVOTIONAL = "devotional"

# Categories that force the devotional style regardless of site
DEVOTIONAL_CATEGORIES = {"信仰"}

DEFAULT_GITHUB_PATH = "src/content/posts/"


@dataclass(frozen=True)
class SiteProfile:
    slug: str
    audience: str
    keyword_examples: str
    author: str = "編輯部"
    style: str = STYLE_GENERAL
    image_qualifier: str | None = None
    needs_alternate_imagery: bool = False
    categories: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def is_devotional(self) -> bool:
        return self.style == STYLE_DEVOTIONAL


DEFAULT_PROFILE = SiteProfile(
    slug="default",
    audience="台灣的一般讀者",
    keyword_examples="""[
  {"keyword": "如何提升工作效率？", "difficulty": "簡單"},
  {"keyword": "遠端工作必備的 5 個工具推薦", "difficulty": "中等"}
]""",
)

SITE_PROFILES: dict[str, SiteProfile] = {
    "bible": SiteProfile(
        slug="bible",
        audience="華人基督徒、對信仰有興趣的慕道友",
        keyword_examples="""[
  {"keyword": "基督徒如何面對焦慮與不安？", "difficulty": "簡單"},
  {"keyword": "聖經中關於饒恕的教導是什麼？", "difficulty": "中等"}
]""",
        author="恩典小編",
        style=STYLE_DEVOTIONAL,
        image_qualifier="christian",
        categories=(
            ("每日靈修", "🕊️ 每日靈修"),
            ("經文解釋", "📖 經文解釋"),
            ("信仰問答", "❓ 信仰問答"),
        ),
    ),
    "chparenting": SiteProfile(
        slug="chparenting",
        audience="台灣的媽媽族群，包含新手媽媽、職業婦女、全職媽媽",
        keyword_examples="""[
  {"keyword": "寶寶半夜一直哭怎麼辦？", "difficulty": "簡單"},
  {"keyword": "兩歲孩子情緒爆發的 5 個應對方法", "difficulty": "中等"}
]""",
        author="薇佳媽咪",
        image_qualifier="asian",
        needs_alternate_imagery=True,
        categories=(
            ("育兒崩潰", "🔥 育兒崩潰"),
            ("媽媽情緒", "💛 媽媽情緒"),
            ("親子關係", "👩‍👧 親子關係"),
            ("生活實用", "✨ 生活實用"),
        ),
    ),
    "mommystartup": SiteProfile(
        slug="mommystartup",
        audience="台灣的媽媽族群，包含新手媽媽、職業婦女、全職媽媽",
        keyword_examples="""[
  {"keyword": "如何開始團購事業？", "difficulty": "簡單"},
  {"keyword": "團購新手常犯的 5 個錯誤", "difficulty": "中等"}
]""",
        author="媽咪小編",
        image_qualifier="asian",
        needs_alternate_imagery=True,
        categories=(
            ("marketing", "📣 行銷"),
            ("group-buying", "🛒 團購"),
            ("parenting", "👶 育兒"),
        ),
    ),
    "veganote": SiteProfile(
        slug="veganote",
        audience="對 AI、行銷與開發有興趣的台灣讀者",
        keyword_examples=DEFAULT_PROFILE.keyword_examples,
        author="Vega",
        categories=(
            ("AI", "🤖 AI"),
            ("行銷", "📈 行銷"),
            ("開發", "💻 開發"),
            ("生活", "🌱 生活"),
        ),
    ),
}


def get_site_profile(slug: str | None) -> SiteProfile:
    """Return the profile for a site slug, or the default profile."""
    if not slug:
        return DEFAULT_PROFILE
    return SITE_PROFILES.get(slug.strip().lower(), DEFAULT_PROFILE)


def is_devotional(slug: str | None, category: str | None = None) -> bool:
    if category and category.strip() in DEVOTIONAL_CATEGORIES:
        return True
    return get_site_profile(slug).is_devotional


def list_categories(slug: str | None) -> list[dict[str, str]]:
    return [
        {"value": value, "label": label}
        for value, label in get_site_profile(slug).categories
    ]
