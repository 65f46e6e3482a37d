"""Package marker for the runner service.

Exposes the research orchestrator over HTTP.
"""

from version import __version__  # noqa: F401
