"""Core modules for skill-router."""

from skill_router.core.config import Config, configure_logging, load_environment

__all__ = [
    "Config",
    "configure_logging",
    "load_environment",
]
