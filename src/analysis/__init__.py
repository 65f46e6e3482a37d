"""
Analysis: five-stage pipeline from evidence bundle to scored findings.

Contains:
- heuristics: deterministic keyword and threshold rules
- capability: optional LLM-backed analysis
- stages: the five stages, each with a capability and a deterministic variant
- pipeline: stage ordering, fallback and scoring
"""

from src.analysis.pipeline import AnalysisPipeline
from src.analysis.stages import StageStrategy, default_stages

__all__ = ["AnalysisPipeline", "StageStrategy", "default_stages"]
