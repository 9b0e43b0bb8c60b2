from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


# =============================================================================
# Main Application Config
# =============================================================================


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JOBHARVEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    # =========================================================================
    # Storage locations
    # =========================================================================

    data_dir: Path = Field(
        default=Path.cwd() / "data",
        description="Directory holding the database and the session file.",
    )
    database_path: Optional[Path] = Field(
        default=None,
        description="SQLite database file. Defaults to <data_dir>/linkedin-jobs.db.",
    )
    session_path: Optional[Path] = Field(
        default=None,
        description="Saved browser session. Defaults to <data_dir>/linkedin-session.json.",
    )
    logs_dir: Path = Field(
        default=Path.cwd() / "logs",
        description="Directory for debug screenshots and page dumps.",
    )

    # =========================================================================
    # Session / login
    # =========================================================================

    session_max_age_hours: float = Field(
        default=24.0,
        description="Age after which a saved session is treated as expired.",
    )
    require_session: bool = Field(
        default=False,
        description="Fail scrapes when no valid saved session is available.",
    )
    login_timeout_ms: int = 300_000
    login_poll_interval_ms: int = 2_000

    # =========================================================================
    # Browser
    # =========================================================================

    headless: bool = True
    stealth: bool = True
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    navigation_timeout_ms: int = 30_000
    page_timeout_ms: int = Field(
        default=10_000,
        description="How long to wait for the results list to render.",
    )
    block_resources: bool = Field(
        default=False,
        description="Abort media, font and analytics requests while scraping.",
    )
    action_delay_ms: int = Field(default=0, ge=0, description="Pause before each click.")

    # =========================================================================
    # Scraping pace and limits
    # =========================================================================

    request_delay_min_ms: int = 3_000
    request_delay_max_ms: int = 7_000
    detail_delay_min_ms: int = 1_500
    detail_delay_max_ms: int = 3_000
    max_pages_per_search: int = 10
    max_retries: int = 3
    capture_page_html: bool = False
    save_debug_artifacts: bool = True

    # =========================================================================
    # Browsing API (served by a separate process)
    # =========================================================================

    port: int = 3000
    environment: Literal["development", "production"] = "development"

    @model_validator(mode="after")
    def resolve_paths(self):
        if self.database_path is None:
            self.database_path = self.data_dir / "linkedin-jobs.db"
        if self.session_path is None:
            self.session_path = self.data_dir / "linkedin-session.json"
        if self.request_delay_max_ms < self.request_delay_min_ms:
            self.request_delay_max_ms = self.request_delay_min_ms
        if self.detail_delay_max_ms < self.detail_delay_min_ms:
            self.detail_delay_max_ms = self.detail_delay_min_ms

        dirs_to_create: list[Path] = [
            self.data_dir,
            self.database_path.parent,
            self.session_path.parent,
            self.logs_dir,
        ]
        for dir_path in dirs_to_create:
            dir_path.mkdir(parents=True, exist_ok=True)
        return self


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get the process-wide configuration, loaded on first use."""
    return Config()
