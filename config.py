"""
Runtime settings resolved from environment variables.
CLI flags may override any value through load_settings(**overrides).
"""

import os
from typing import Any, Dict, Optional

# defaults can be driven by environment variables so the sync job can be configured in CI/containers
DEFAULT_REPO = os.getenv("TARGET_REPO", "Yellow-Dog-Man/Resonite-Issues")
DEFAULT_DB_PATH = os.getenv("ISSUE_DB_PATH", os.path.join("data", "issues.db"))
DEFAULT_CACHE_PATH = os.getenv("ISSUE_CACHE_PATH", os.path.join("data", "enrichment_cache.db"))
DEFAULT_SNAPSHOT_PATH = os.getenv("ISSUE_SNAPSHOT_PATH", os.path.join("data", "exports", "issues.json"))
DEFAULT_OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
DEFAULT_PAGE_SIZE = int(os.getenv("ISSUE_PAGE_SIZE", "100"))
DEFAULT_PAGE_DELAY = float(os.getenv("ISSUE_PAGE_DELAY", "1.0"))
DEFAULT_COMMENT_PAGE_DELAY = float(os.getenv("ISSUE_COMMENT_PAGE_DELAY", "0.05"))
DEFAULT_COMMENT_WORKERS = int(os.getenv("ISSUE_COMMENT_WORKERS", "4"))
DEFAULT_MAX_RATE_LIMIT_ATTEMPTS = int(os.getenv("ISSUE_MAX_RATE_LIMIT_ATTEMPTS", "5"))
DEFAULT_STORAGE_RETRY_DELAY = float(os.getenv("ISSUE_STORAGE_RETRY_DELAY", "5.0"))
DEFAULT_STORAGE_RETRY_ATTEMPTS = int(os.getenv("ISSUE_STORAGE_RETRY_ATTEMPTS", "3"))
DEFAULT_LOG_LEVEL = os.getenv("ISSUE_LOG_LEVEL", "INFO")
DEFAULT_PORT = int(os.getenv("PORT", "3001"))


class Settings:
    """Resolved settings for one process."""

    def __init__(
        self,
        github_token: str = '',
        repo: str = DEFAULT_REPO,
        db_path: str = DEFAULT_DB_PATH,
        cache_path: str = DEFAULT_CACHE_PATH,
        snapshot_path: str = DEFAULT_SNAPSHOT_PATH,
        openai_api_key: str = '',
        openai_model: str = DEFAULT_OPENAI_MODEL,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_delay: float = DEFAULT_PAGE_DELAY,
        comment_page_delay: float = DEFAULT_COMMENT_PAGE_DELAY,
        comment_workers: int = DEFAULT_COMMENT_WORKERS,
        max_rate_limit_attempts: int = DEFAULT_MAX_RATE_LIMIT_ATTEMPTS,
        storage_retry_delay: float = DEFAULT_STORAGE_RETRY_DELAY,
        storage_retry_attempts: int = DEFAULT_STORAGE_RETRY_ATTEMPTS,
        log_level: str = DEFAULT_LOG_LEVEL,
        port: int = DEFAULT_PORT,
    ):
        self.github_token = github_token
        self.repo = repo
        self.db_path = db_path
        self.cache_path = cache_path
        self.snapshot_path = snapshot_path
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model
        self.page_size = int(page_size)
        self.page_delay = float(page_delay)
        self.comment_page_delay = float(comment_page_delay)
        self.comment_workers = max(1, int(comment_workers))
        self.max_rate_limit_attempts = max(1, int(max_rate_limit_attempts))
        self.storage_retry_delay = float(storage_retry_delay)
        self.storage_retry_attempts = max(1, int(storage_retry_attempts))
        self.log_level = log_level
        self.port = int(port)

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.openai_api_key)

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.__dict__)
        # never echo secrets back to the console
        d['github_token'] = '***' if self.github_token else ''
        d['openai_api_key'] = '***' if self.openai_api_key else ''
        return d


def load_settings(**overrides: Optional[Any]) -> Settings:
    """Build Settings from the environment, then apply non-None overrides (e.g. CLI flags)."""
    settings = Settings(
        github_token=os.getenv("GH_TOKEN", "") or os.getenv("GITHUB_TOKEN", ""),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
    )
    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(settings, key):
            raise ValueError(f"Unknown setting: {key}")
        setattr(settings, key, value)
    return settings


__all__ = ["Settings", "load_settings"]
