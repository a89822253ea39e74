"""Configuration management for Clipscout."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

# ── Hardcoded defaults ─────────────────────────────────────────────────────
TEMPERATURE = 0.4
MAX_TOKENS = 2000
LLM_TIMEOUT = 60
NAV_TIMEOUT_MS = 20_000
SEARCH_TIMEOUT_MS = 15_000
DOWNLOAD_PAGE_TIMEOUT_MS = 25_000
DOWNLOAD_EVENT_TIMEOUT_S = 15.0
LIBRARY_DOWNLOAD_TIMEOUT_S = 60.0
LOGIN_POLL_INTERVAL = 3.0
LOGIN_TIMEOUT = 300.0
MIN_DOWNLOAD_BYTES = 1000
MAX_VISION_ERRORS = 5
SEARCH_RESULT_LIMIT = 20
EXPANSION_TARGET = 12
SETTINGS_FILE = "settings.yaml"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _default_profile_dir() -> Path:
    return Path.home() / ".clipscout"


class LLMConfig(BaseModel):
    """LLM provider configuration, separate credentials per model."""

    model: str = "gemini/gemini-2.5-flash"
    api_key: Optional[str] = None
    api_base: Optional[str] = None

    vision_model: str = "gemini/gemini-2.5-flash"
    vision_api_key: Optional[str] = None
    vision_api_base: Optional[str] = None


class PlatformConfig(BaseModel):
    """Licensing platform access and browser settings."""

    base_url: str = "https://www.viory.video"
    cookies_path: Path = Field(
        default_factory=lambda: _default_profile_dir() / "viory-cookies.json"
    )
    downloads_dir: Path = Field(
        default_factory=lambda: _default_profile_dir() / "downloads"
    )
    history_path: Path = Field(
        default_factory=lambda: _default_profile_dir() / "history.json"
    )
    headless: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def search_url(self) -> str:
        return f"{self.base_url}/en/videos"

    @property
    def library_url(self) -> str:
        return f"{self.base_url}/en/user"


class SearchConfig(BaseModel):
    """Candidate search, scoring and visual validation limits."""

    max_queries: int = 5
    max_candidates: int = 5
    results_per_query: int = SEARCH_RESULT_LIMIT
    top_n_visual: int = 3
    vision_delay: float = 1.5
    retries: int = 3
    cache_ttl_minutes: float = 30.0


class RetrievalConfig(BaseModel):
    """Download, library polling and fallback policy."""

    max_wait_minutes: float = 4.0
    poll_interval: float = 5.0
    max_candidates_to_try: int = 12
    min_score: int = 15
    wait_for_primary: bool = True
    repeat_window: int = 6


class Config(BaseModel):
    """Top-level application configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)

    @classmethod
    def load_from_file(cls, path: str | Path) -> Config:
        """Load config from a YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def load_default(cls) -> Config:
        """Load config from settings.yaml in CWD, or return defaults."""
        path = Path(SETTINGS_FILE)
        if path.exists():
            return cls.load_from_file(path)
        return cls()

    def save_to_file(self, path: str | Path) -> None:
        """Save config to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
