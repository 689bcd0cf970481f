"""Configuration and environment handling."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Skill library shipped inside the package
BUNDLED_SKILLS_DIR = Path(__file__).resolve().parent.parent / "library"

SUPPORTED_CONTENT_BACKENDS = ("filesystem", "redis")


@dataclass
class Config:
    """Configuration for skill-router.

    Attributes:
        skills_dir: Directory holding the SKILL.md tree
        taxonomy_file: Optional YAML taxonomy file (takes precedence over skills_dir)
        max_response_chars: Default size budget for assembled responses
        ambiguity_threshold: Relative score gap below which the top two matches are ambiguous
        max_candidates: Number of candidates listed in a disambiguation response
        cache_max_entries: Content cache bound on number of units
        cache_max_chars: Content cache bound on total cached characters
        fetch_timeout: Seconds allowed for a single backing-store fetch
        content_backend: Where content is fetched from (filesystem or redis)
        redis_url: Redis connection string for the redis backend
        log_level: Root log level for the CLI and API
    """

    skills_dir: Path = BUNDLED_SKILLS_DIR
    taxonomy_file: Path | None = None
    max_response_chars: int = 8000
    ambiguity_threshold: float = 0.10
    max_candidates: int = 5
    cache_max_entries: int = 128
    cache_max_chars: int = 2_000_000
    fetch_timeout: float = 5.0
    content_backend: str = "filesystem"
    redis_url: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Create Config from environment variables.

        Returns:
            Config instance with values from environment or defaults
        """
        skills_dir = os.getenv("SKILLS_DIR")
        taxonomy_file = os.getenv("SKILLS_TAXONOMY_FILE")
        backend = os.getenv("CONTENT_BACKEND", "filesystem").lower()
        if backend not in SUPPORTED_CONTENT_BACKENDS:
            raise ValueError(
                f"Unknown CONTENT_BACKEND '{backend}'. "
                f"Valid backends are: {', '.join(SUPPORTED_CONTENT_BACKENDS)}"
            )

        return cls(
            skills_dir=Path(skills_dir) if skills_dir else BUNDLED_SKILLS_DIR,
            taxonomy_file=Path(taxonomy_file) if taxonomy_file else None,
            max_response_chars=int(os.getenv("MAX_RESPONSE_CHARS", "8000")),
            ambiguity_threshold=float(os.getenv("AMBIGUITY_THRESHOLD", "0.10")),
            max_candidates=int(os.getenv("MAX_CANDIDATES", "5")),
            cache_max_entries=int(os.getenv("CONTENT_CACHE_MAX_ENTRIES", "128")),
            cache_max_chars=int(os.getenv("CONTENT_CACHE_MAX_CHARS", "2000000")),
            fetch_timeout=float(os.getenv("CONTENT_FETCH_TIMEOUT", "5.0")),
            content_backend=backend,
            redis_url=os.getenv("REDIS_URL") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def load_environment() -> None:
    """Load environment variables from .env file.

    Looks for .env file in current directory and parent directories.
    Silently succeeds if .env file is not found.
    """
    env_path = Path(".env")

    if env_path.exists():
        load_dotenv(env_path, override=True)
    else:
        # Try to find .env in parent directories
        load_dotenv(override=True)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the CLI and API entry points.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
