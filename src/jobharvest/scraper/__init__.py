"""LinkedIn scraping components.

- session / auth: persisted login state and login detection
- browser: Playwright lifecycle with stealth and session restore
- query / parser: search URL construction and page extraction
- pipeline / dedup / orchestrator: the page loop and one full scrape run
"""

from .auth import LoginDetector
from .browser import BrowserConfig, BrowserController
from .dedup import Deduplicator
from .orchestrator import ScrapeOrchestrator
from .parser import Parser
from .pipeline import ExtractionPipeline, PipelineOutcome, PipelineState
from .query import build_search_url
from .session import SessionData, SessionInfo, SessionStatus, SessionStore

__all__ = [
    "BrowserConfig",
    "BrowserController",
    "Deduplicator",
    "ExtractionPipeline",
    "LoginDetector",
    "Parser",
    "PipelineOutcome",
    "PipelineState",
    "ScrapeOrchestrator",
    "SessionData",
    "SessionInfo",
    "SessionStatus",
    "SessionStore",
    "build_search_url",
]
