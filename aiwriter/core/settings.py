from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_env: str
    db_path: str
    log_level: str
    llm_provider: str
    openai_api_key: str
    openai_model: str
    pexels_api_key: str
    unsplash_access_key: str
    github_token: str
    batch_concurrency: int
    batch_pause_seconds: float
    single_delay_seconds: float
    request_timeout: float
    item_timeout: float
    image_page_size: int
    random_image_pick: bool

    @staticmethod
    def from_env() -> "Settings":
        def _b(name: str, default: str) -> bool:
            return os.getenv(name, default).strip() in ("1", "true", "True", "yes", "YES")

        def _i(name: str, default: str) -> int:
            return int(os.getenv(name, default).strip())

        def _f(name: str, default: str) -> float:
            return float(os.getenv(name, default).strip())

        return Settings(
            app_env=os.getenv("APP_ENV", "dev").strip(),
            db_path=os.getenv("DB_PATH", "./_local/data/aiwriter.db").strip(),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
            llm_provider=os.getenv("LLM_PROVIDER", "openai").strip(),
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip(),
            pexels_api_key=os.getenv("PEXELS_API_KEY", "").strip(),
            unsplash_access_key=os.getenv("UNSPLASH_ACCESS_KEY", "").strip(),
            github_token=os.getenv("GITHUB_TOKEN", "").strip(),
            batch_concurrency=_i("BATCH_CONCURRENCY", "3"),
            batch_pause_seconds=_f("BATCH_PAUSE_SECONDS", "5"),
            single_delay_seconds=_f("SINGLE_DELAY_SECONDS", "30"),
            request_timeout=_f("REQUEST_TIMEOUT", "120"),
            item_timeout=_f("ITEM_TIMEOUT", "300"),
            image_page_size=_i("IMAGE_PAGE_SIZE", "20"),
            random_image_pick=_b("RANDOM_IMAGE_PICK", "1"),
        )
