"""Persisted LinkedIn login session.

The session file holds the Playwright storage state (cookies plus per-origin
localStorage) captured after a manual login, and is restored into new browser
contexts on later runs.
"""

import json
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import structlog
from playwright.async_api import BrowserContext, Page
from pydantic import BaseModel, Field, ValidationError

from jobharvest.errors import SessionCorruptError, SessionNotFoundError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_AGE_HOURS = 24.0


class SessionStatus(str, Enum):
    MISSING = "missing"
    CORRUPT = "corrupt"
    ACTIVE = "active"
    EXPIRED = "expired"


class SessionData(BaseModel):
    """On-disk session format."""

    storage_state: dict[str, Any] = Field(
        default_factory=lambda: {"cookies": [], "origins": []}
    )
    timestamp: int = Field(description="Capture time, epoch milliseconds")
    user_agent: str | None = None
    viewport: dict[str, int] | None = None


@dataclass
class SessionInfo:
    status: SessionStatus
    age: timedelta | None
    path: Path


class SessionStore:
    """Reads, writes and ages the session file."""

    def __init__(
        self,
        path: Path | str,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.max_age = timedelta(hours=max_age_hours)
        self._clock = clock

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> SessionData:
        """Read the session file.

        Raises:
            SessionNotFoundError: no session file.
            SessionCorruptError: the file is not a valid session.
        """
        if not self.exists():
            raise SessionNotFoundError(f"No session found at {self.path}")
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            return SessionData.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise SessionCorruptError(f"Session file {self.path} is unreadable: {e}") from e

    def age(self) -> timedelta | None:
        """Age of the stored session, None when missing or unreadable."""
        try:
            data = self.load()
        except (SessionNotFoundError, SessionCorruptError):
            return None
        return self._age_of(data)

    def _age_of(self, data: SessionData) -> timedelta:
        return timedelta(milliseconds=self._clock() * 1000 - data.timestamp)

    def is_expired(self, age: timedelta) -> bool:
        return age > self.max_age

    def status(self) -> SessionInfo:
        """Classify the session file as missing, corrupt, active or expired."""
        if not self.exists():
            return SessionInfo(SessionStatus.MISSING, None, self.path)
        try:
            data = self.load()
        except SessionCorruptError as e:
            logger.warning("Session file is corrupt", path=str(self.path), error=str(e))
            return SessionInfo(SessionStatus.CORRUPT, None, self.path)

        age = self._age_of(data)
        status = SessionStatus.EXPIRED if self.is_expired(age) else SessionStatus.ACTIVE
        return SessionInfo(status, age, self.path)

    async def save(self, context: BrowserContext, page: Page | None = None) -> SessionData:
        """Capture the context's storage state and write it to disk."""
        state = await context.storage_state()
        user_agent = None
        viewport = None
        if page is not None:
            user_agent = await page.evaluate("() => navigator.userAgent")
            viewport = page.viewport_size

        data = SessionData(
            storage_state=state,
            timestamp=int(self._clock() * 1000),
            user_agent=user_agent,
            viewport=dict(viewport) if viewport else None,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            f.write(data.model_dump_json(indent=2))

        logger.info(
            "Session saved",
            path=str(self.path),
            cookies=len(state.get("cookies", [])),
        )
        return data

    def clear(self) -> bool:
        """Remove the session file. Returns whether a file was removed."""
        if not self.exists():
            return False
        self.path.unlink()
        logger.info("Session cleared", path=str(self.path))
        return True
