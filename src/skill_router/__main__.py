"""CLI entry point for skill-router.

Allows running the package as a module:
    python -m skill_router
"""

from skill_router.cli import main

if __name__ == "__main__":
    main()
