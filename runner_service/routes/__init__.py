"""
Runner service route modules.

Each module handles a specific area of functionality.
"""

from .research import router as research_router

__all__ = [
    "research_router",
]
