"""
Version information for the automation research service.

This file is the single source of truth for version numbers.
The runner service and the status query import from here.
"""

__version__ = "2.0.0"
__version_info__ = (2, 0, 0)
