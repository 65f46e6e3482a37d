"""
Services module for the research operations.

The orchestrator composes admission control, the result cache, evidence
collection and the analysis pipeline into the two caller-facing operations.
"""

from src.services.cache_service import CacheNamespace, CacheService, SingleFlight
from src.services.evidence_collector import (
    EvidenceCollector,
    FacetEvidenceCollector,
    JobBoardAggregator,
    JobBoardSource,
    StaticEvidenceCollector,
)
from src.services.research_orchestrator import (
    CompanyOpportunity,
    CompanyResearchResult,
    OpportunitySearchResult,
    ResearchOrchestrator,
)

__all__ = [
    # Cache
    "CacheNamespace",
    "CacheService",
    "SingleFlight",
    # Evidence
    "EvidenceCollector",
    "FacetEvidenceCollector",
    "JobBoardAggregator",
    "JobBoardSource",
    "StaticEvidenceCollector",
    # Orchestration
    "CompanyOpportunity",
    "CompanyResearchResult",
    "OpportunitySearchResult",
    "ResearchOrchestrator",
]
