"""
Root fixtures shared by every test directory.

Makes tests/fixtures importable as `fixtures.*` from any test module.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))
