"""Prompt registry for LLM calls.

Central management of every prompt template the generators use. Templates
can be overridden through the API and are stored in the database; when no
custom version exists the default from this file is used. Templates are
``str.format`` strings, so literal braces are doubled.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiwriter.core.storage import DB


@dataclass
class PromptTemplate:
    """A prompt template with metadata."""

    key: str
    category: str
    name: str
    description: str
    template: str
    variables: list[str]
    temperature: float
    max_tokens: int
    is_custom: bool = False

    def render(self, **values: object) -> str:
        return self.template.format(**values)


class PromptTemplateError(ValueError):
    """A custom template that cannot be rendered."""


def check_template(template: str, variables: list[str]) -> None:
    """Render the template with blank values for its variables.

    Raises:
        PromptTemplateError: On an unknown placeholder or unbalanced braces.
    """
    try:
        template.format(**{name: "" for name in variables})
    except KeyError as e:
        raise PromptTemplateError(f"未知的變數：{e.args[0]}") from e
    except (IndexError, ValueError, AttributeError) as e:
        raise PromptTemplateError(f"模板格式錯誤（大括號需成對，字面括號請寫成 {{{{ }}}}）：{e}") from e


_NAME_RULES = """人名規則：
- 故事主角請使用「{protagonist}」這個名字
- 禁止使用「小明」「小華」「雅婷」「瑪莉亞」「約翰」「大衛」等常見或外國名字
- 如果需要第二個角色，請自行從台灣常見名字中選擇（不要與主角重複）"""

_STRUCTURE_RULES = """文章結構（嚴格遵守）：
- H2 大標用中文數字：## 一、標題  ## 二、標題  ## 三、標題
- H3 小標用阿拉伯數字：### 1. 標題  ### 2. 標題
- 每個 H2 底下有 2-3 個 H3 小標"""

DEFAULT_PROMPTS: dict[str, dict] = {
    "keywords": {
        "category": "planning",
        "name": "關鍵字規劃",
        "description": "依分類與網站讀者產生部落格關鍵字，回傳 JSON 陣列。",
        "template": """你是 SEO 專家，請為「{category}」主題規劃 {count} 個適合撰寫部落格文章的關鍵字。

目標讀者：{audience}
分類主題：{category}

要求：
1. 每個關鍵字都是「問句形式」或「How-to 形式」
2. 關鍵字要具體、有搜尋意圖
3. 涵蓋初學者到進階者的不同需求
4. 關鍵字必須與「{category}」分類高度相關，不要偏離主題

請用 JSON 陣列格式回覆：
{examples}

difficulty 選項：簡單、中等、進階
直接輸出 JSON，不要有其他說明。""",
        "variables": ["category", "count", "audience", "examples"],
        "temperature": 0.8,
        "max_tokens": 2000,
    },
    "titles": {
        "category": "planning",
        "name": "標題產生",
        "description": "把勾選的關鍵字轉成文章標題，可附上既有標題作為排除清單。",
        "template": """你是內容行銷專家，請把以下關鍵字轉換成吸引人的文章標題。

關鍵字：
{keyword_lines}

要求：
1. 標題要吸引點擊，但不要標題黨
2. 可以加入數字、問句、對比等技巧
3. 標題長度 15-30 字
4. 保留關鍵字的核心意思
{exclusion}
請用 JSON 陣列格式回覆：
[
  {{"keyword": "原關鍵字", "title": "生成的標題"}},
  ...
]

直接輸出 JSON，不要有其他說明。""",
        "variables": ["keyword_lines", "exclusion"],
        "temperature": 0.7,
        "max_tokens": 2000,
    },
    "article_system_general": {
        "category": "article",
        "name": "文章角色（一般）",
        "description": "一般網站的寫作角色、語氣與結構規則。",
        "template": """你是一位專業的內容寫手，專門為{audience}撰寫實用文章。

寫作風格：
- 親切友善，像閨蜜聊天
- 使用繁體中文
- 段落分明，好閱讀
- 包含實際案例或故事
- 提供可行動的建議

"""
        + _NAME_RULES
        + "\n\n"
        + _STRUCTURE_RULES
        + """
- 開頭用故事或情境帶入（100-150字）
- 3-5 個 H2 重點段落
- 每個重點有實用建議
- 結尾有行動呼籲
- 結尾不要加 FAQ（FAQ 會另外輸出）""",
        "variables": ["audience", "protagonist"],
        "temperature": 0.7,
        "max_tokens": 4000,
    },
    "article_system_devotional": {
        "category": "article",
        "name": "文章角色（信仰）",
        "description": "信仰類網站的寫作角色，包含經文引用與實際應用區塊。",
        "template": """你是一位專業的基督教內容作者，擅長用故事性的方式撰寫聖經靈修與信仰文章。

寫作風格：
- 溫暖親切，帶有屬靈深度
- 使用繁體中文
- 用故事或情境開頭，讓讀者產生共鳴
- 包含聖經經文引用
- 提供實際應用建議

"""
        + _NAME_RULES
        + "\n\n"
        + _STRUCTURE_RULES
        + """
- 開頭用故事帶入（100-150字）
- 故事後一段精簡回答（粗體，50-80字）
- 3 個 H2 重點段落
- 「相關經文」區塊（引用 1-2 段經文）
- 「實際應用」區塊
- 結尾不要加 FAQ（FAQ 會另外輸出）""",
        "variables": ["protagonist"],
        "temperature": 0.7,
        "max_tokens": 4000,
    },
    "article_user": {
        "category": "article",
        "name": "文章內容",
        "description": "單篇文章的內容要求與附加資料（FAQ、圖片關鍵字、標籤、摘要）格式。",
        "template": """請撰寫一篇關於「{title}」的文章。

分類：{category}
字數：{length}
故事主角名字：{protagonist}

請用 Markdown 格式輸出文章內容（不含 frontmatter），包含：
1. 直接用故事開頭（100-150字），不要加「開頭故事」或任何標題，主角用「{protagonist}」
2. 故事後精簡回答（粗體），也不要加標題
3. 3 個 H2 段落（用 ## 一、 ## 二、 ## 三、格式）
4. 每個 H2 底下 2-3 個 H3 段落（用 ### 1. ### 2. 格式）
{closing_sections}
{internal_links}{sources}
文章結束後，請依序輸出以下四個區塊，標記必須完全一致：

---FAQ_START---
[
  {{"q": "問題1", "a": "答案1（50-80字）"}},
  {{"q": "問題2", "a": "答案2（50-80字）"}},
  {{"q": "問題3", "a": "答案3（50-80字）"}}
]
---FAQ_END---
---IMAGE_KEYWORDS_START---
{{
  "cover": "3-5個英文單字，適合當封面的圖",
  "image1": "3-5個英文單字，第一個H2段落的配圖",
  "image2": "3-5個英文單字，第二個H2段落的配圖",
  "image3": "3-5個英文單字，第三個H2段落的配圖"
}}
---IMAGE_KEYWORDS_END---
---TAGS_START---
["標籤1", "標籤2", "標籤3"]
---TAGS_END---
---DESCRIPTION_START---
"80-120字的文章摘要，用於 SEO description"
---DESCRIPTION_END---

FAQ 要求：3-5 題，每題答案 50-80 字。
圖片關鍵字要求：
- 每組 3-5 個英文單字
- 4 組不能重複
- 要具體可視覺化，適合在圖庫搜到高品質圖片
- 避免太抽象的詞
{image_rule}
直接輸出 Markdown 與上述區塊，不要有其他說明。""",
        "variables": [
            "title",
            "category",
            "length",
            "protagonist",
            "closing_sections",
            "internal_links",
            "sources",
            "image_rule",
        ],
        "temperature": 0.7,
        "max_tokens": 4000,
    },
}

PROMPT_CATEGORIES: dict[str, dict] = {
    "planning": {
        "name": "關鍵字與標題",
        "description": "批次規劃階段使用的提示詞",
    },
    "article": {
        "name": "文章產生",
        "description": "單篇文章內容與附加資料",
    },
}


def get_default_prompt(key: str) -> PromptTemplate | None:
    """Get a default prompt template by key."""
    if key not in DEFAULT_PROMPTS:
        return None

    data = DEFAULT_PROMPTS[key]
    return PromptTemplate(
        key=key,
        category=data["category"],
        name=data["name"],
        description=data["description"],
        template=data["template"],
        variables=data["variables"],
        temperature=data["temperature"],
        max_tokens=data["max_tokens"],
        is_custom=False,
    )


def get_prompt(key: str, store: DB | None = None) -> PromptTemplate | None:
    """Get a prompt template, checking for a custom version first.

    Args:
        key: The prompt key (e.g., 'keywords')
        store: DB instance to check for custom prompts; None uses defaults

    Returns:
        PromptTemplate with either custom or default values,
        or None if the key doesn't exist.
    """
    default = get_default_prompt(key)
    if default is None or store is None:
        return default

    custom = store.get_custom_prompt(key)
    if custom is None:
        return default

    # Custom overrides template and settings, variables are fixed
    return PromptTemplate(
        key=key,
        category=default.category,
        name=default.name,
        description=default.description,
        template=custom.get("template") or default.template,
        variables=default.variables,
        temperature=custom.get("temperature", default.temperature),
        max_tokens=custom.get("max_tokens", default.max_tokens),
        is_custom=True,
    )


def list_prompts(store: DB | None = None) -> list[PromptTemplate]:
    """List all prompts with their current values (custom or default)."""
    prompts = []
    for key in DEFAULT_PROMPTS:
        prompt = get_prompt(key, store)
        if prompt:
            prompts.append(prompt)
    return prompts


def save_prompt(
    key: str,
    template: str,
    temperature: float,
    max_tokens: int,
    store: DB,
) -> bool:
    """Save a custom prompt. Returns False if the key doesn't exist.

    Raises:
        PromptTemplateError: If the template does not render with the
            prompt's variables (unknown placeholder or stray brace).
    """
    if key not in DEFAULT_PROMPTS:
        return False

    check_template(template, DEFAULT_PROMPTS[key]["variables"])
    store.save_custom_prompt(key, template, temperature, max_tokens)
    return True


def reset_prompt(key: str, store: DB) -> bool:
    """Remove the custom version of a prompt. Returns False for unknown keys."""
    if key not in DEFAULT_PROMPTS:
        return False

    store.delete_custom_prompt(key)
    return True
