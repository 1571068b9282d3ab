"""Centralised settings for mailsift.

Runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

There is no module-level ``settings`` instance: callers build a
:class:`Settings` and thread it through the pipeline context, and each run gets
its own frozen :class:`AnalysisConfig`.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from mailsift.models import Criteria

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


class RetrievalStrategy(str, enum.Enum):
    """How a prioritized link is turned into retrieved content."""

    DIRECT_FETCH = "direct_fetch"
    SEARCH_DISCOVERY = "search_discovery"
    HYBRID = "hybrid"


def _optional_path(var: str) -> Optional[Path]:
    value = os.environ.get(var, "").strip()
    return Path(value) if value else None


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("MAILSIFT_WORKSPACE", Path.home() / ".mailsift")
        )
    )
    debug_dir: Optional[Path] = field(
        default_factory=lambda: _optional_path("MAILSIFT_DEBUG_DIR")
    )
    documents_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("MAILSIFT_DOCUMENTS", Path.home() / ".mailsift" / "documents")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite results database."""
        return self.workspace_dir / "results.db"

    # ------------------------------------------------------------------
    # Classifier model
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "openai")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "ministral-3:8b")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    fetch_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_MAX_ATTEMPTS", "3"))
    )
    fetch_backoff_base: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_BACKOFF_BASE", "1.0"))
    )
    fetch_settle_seconds: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_SETTLE_SECONDS", "3.0"))
    )
    use_browser_fallback: bool = field(
        default_factory=lambda: os.environ.get("USE_BROWSER_FALLBACK", "true").lower()
        in ("1", "true", "yes")
    )

    # ------------------------------------------------------------------
    # Concurrency
    # ------------------------------------------------------------------
    max_concurrent_retrievals: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_RETRIEVALS", "5"))
    )
    max_concurrent_classifications: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_CLASSIFICATIONS", "4"))
    )

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------
    chunk_size: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_SIZE", "3000"))
    )
    chunk_min_size: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_MIN_SIZE", "500"))
    )

    # ------------------------------------------------------------------
    # Web search
    # ------------------------------------------------------------------
    tavily_api_key: str = field(
        default_factory=lambda: os.environ.get("TAVILY_API_KEY", "")
    )
    brave_api_key: str = field(
        default_factory=lambda: os.environ.get("BRAVE_API_KEY", "")
    )
    searxng_base_url: str = field(
        default_factory=lambda: os.environ.get("SEARXNG_BASE_URL", "https://searx.be")
    )
    search_provider_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_PROVIDER_TIMEOUT", "15.0"))
    )
    searxng_instance_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SEARXNG_INSTANCE_TIMEOUT", "5.0"))
    )
    search_retry_max: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_RETRY_MAX", "2"))
    )
    search_retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_RETRY_BASE_DELAY", "2.0"))
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class AnalysisConfig:
    """User-owned configuration for a single analysis run."""

    match_criteria: str
    extraction_fields: str
    boost_pattern: Optional[str] = None
    follow_links: bool = True
    retrieval_strategy: RetrievalStrategy = RetrievalStrategy.DIRECT_FETCH
    link_guidance: Optional[str] = None
    max_links: Optional[int] = None
    user_intent: Optional[str] = None
    extraction_examples: Optional[str] = None
    analysis_feedback: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept the plain string form ("hybrid") as well as the enum.
        if not isinstance(self.retrieval_strategy, RetrievalStrategy):
            object.__setattr__(
                self, "retrieval_strategy", RetrievalStrategy(self.retrieval_strategy)
            )
        if self.max_links is not None and self.max_links < 1:
            raise ValueError("max_links must be a positive integer when set")

    def to_criteria(self) -> Criteria:
        """The classifier-facing view of this configuration."""
        return Criteria(
            match_criteria=self.match_criteria,
            extraction_fields=self.extraction_fields,
            boost_pattern=self.boost_pattern,
            guidance=self.link_guidance,
            user_intent=self.user_intent,
            extraction_examples=self.extraction_examples,
            analysis_feedback=self.analysis_feedback,
        )
