"""
Evidence collection contract.

The orchestrator only needs two things from the outside world:
- collect(identity) -> EvidenceBundle for one company
- search_jobs(keywords, location, limit) -> List[JobPosting]

How evidence is scraped, and from which providers, is not this package's
concern. This module provides the abstract interface plus three
compositions of it:
- FacetEvidenceCollector: fans out to independent per-facet fetchers
- JobBoardAggregator: merges several job boards into one ranked list
- StaticEvidenceCollector: serves pre-built bundles (fixtures, local runs)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from src.common.errors import EvidenceCollectionError
from src.common.types import CompanyIdentity, EvidenceBundle, JobPosting

logger = logging.getLogger(__name__)

FacetFetcher = Callable[[CompanyIdentity], Awaitable[Any]]


class EvidenceCollector(ABC):
    """Abstract base class for evidence collectors."""

    @abstractmethod
    async def collect(self, identity: CompanyIdentity) -> EvidenceBundle:
        """
        Gather every available evidence facet for one company.

        Raises:
            EvidenceCollectionError: If no evidence could be collected at all
        """
        pass

    @abstractmethod
    async def search_jobs(
        self, keywords: str, location: Optional[str] = None, limit: int = 100
    ) -> List[JobPosting]:
        """
        Find job postings matching the keywords.

        Raises:
            EvidenceCollectionError: If the search could not be performed
        """
        pass

    async def close(self) -> None:
        return None


class JobBoardSource(ABC):
    """Abstract base class for one job board."""

    @abstractmethod
    async def search(
        self, keywords: str, location: Optional[str], limit: int
    ) -> List[JobPosting]:
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Unique identifier for this board (e.g., "indeed")."""
        pass


def dedupe_key(posting: JobPosting) -> str:
    """Format: title|company (lowercase, trimmed)."""
    return f"{posting.title.lower().strip()}|{posting.company.lower().strip()}"


def relevance(posting: JobPosting, keywords: str) -> int:
    """Keyword hits, title matches counting double."""
    terms = [t for t in keywords.lower().split() if t]
    title = posting.title.lower()
    text = (posting.text or "").lower()
    return sum(2 * (term in title) + (term in text) for term in terms)


class JobBoardAggregator:
    """Queries several boards concurrently and merges their results."""

    def __init__(self, sources: Iterable[JobBoardSource]):
        self.sources = list(sources)

    async def search(
        self, keywords: str, location: Optional[str] = None, limit: int = 100
    ) -> List[JobPosting]:
        """
        Search every board, skip failing ones, dedupe, rank and truncate.

        Raises:
            EvidenceCollectionError: If every board failed
        """
        if not self.sources:
            return []

        per_board = max(1, -(-limit // len(self.sources)))
        results = await asyncio.gather(
            *(source.search(keywords, location, per_board) for source in self.sources),
            return_exceptions=True,
        )

        postings: List[JobPosting] = []
        failures = 0
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                failures += 1
                logger.warning(f"Job board {source.get_source_name()} failed: {result}")
                continue
            for posting in result:
                posting.source = posting.source or source.get_source_name()
            postings.extend(result)

        if failures == len(self.sources):
            raise EvidenceCollectionError("job boards", "every job board failed")

        unique: Dict[str, JobPosting] = {}
        for posting in postings:
            unique.setdefault(dedupe_key(posting), posting)

        # Most relevant first, newest first among equals
        ranked = sorted(unique.values(), key=lambda p: p.date or "", reverse=True)
        ranked.sort(key=lambda p: relevance(p, keywords), reverse=True)
        logger.info(
            f"Job search '{keywords}': {len(postings)} raw, {len(ranked)} unique "
            f"from {len(self.sources) - failures}/{len(self.sources)} boards"
        )
        return ranked[:limit]


class FacetEvidenceCollector(EvidenceCollector):
    """
    Collects each evidence facet with an independent fetcher.

    Facet fetchers run concurrently; a failing fetcher leaves its facet
    empty instead of failing the bundle.
    """

    def __init__(
        self,
        fetchers: Dict[str, FacetFetcher],
        job_boards: Optional[JobBoardAggregator] = None,
    ):
        """
        Args:
            fetchers: Facet name (see EvidenceBundle.facet_names()) -> async fetcher
            job_boards: Aggregator used by search_jobs

        Raises:
            ValueError: If a fetcher is registered for an unknown facet
        """
        unknown = set(fetchers) - set(EvidenceBundle.facet_names())
        if unknown:
            raise ValueError(f"Unknown evidence facets: {', '.join(sorted(unknown))}")
        self.fetchers = dict(fetchers)
        self.job_boards = job_boards

    async def collect(self, identity: CompanyIdentity) -> EvidenceBundle:
        bundle = EvidenceBundle(identity=identity)
        if not self.fetchers:
            return bundle.derive_evidence()

        names = list(self.fetchers)
        results = await asyncio.gather(
            *(self.fetchers[name](identity) for name in names),
            return_exceptions=True,
        )

        failed = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                failed.append(name)
                logger.warning(f"Facet {name} failed for {identity.display_name}: {result}")
                continue
            if result is not None:
                setattr(bundle, name, result)

        if len(failed) == len(names):
            raise EvidenceCollectionError(
                identity.display_name, f"all facets failed: {', '.join(failed)}"
            )

        return bundle.derive_evidence()

    async def search_jobs(
        self, keywords: str, location: Optional[str] = None, limit: int = 100
    ) -> List[JobPosting]:
        if self.job_boards is None:
            raise EvidenceCollectionError("job boards", "no job boards configured")
        return await self.job_boards.search(keywords, location, limit)


class StaticEvidenceCollector(EvidenceCollector):
    """
    Serves pre-built evidence.

    Bundles are matched by lower-cased company name; unknown companies get
    an empty bundle. Names in `failing` raise EvidenceCollectionError.
    """

    def __init__(
        self,
        bundles: Optional[Iterable[EvidenceBundle]] = None,
        postings: Optional[Iterable[JobPosting]] = None,
        failing: Iterable[str] = (),
    ):
        self.bundles = {
            b.identity.display_name.lower(): b for b in (bundles or [])
        }
        self.postings = list(postings or [])
        self.failing = {name.lower() for name in failing}
        self.collect_calls: List[str] = []

    async def collect(self, identity: CompanyIdentity) -> EvidenceBundle:
        name = identity.display_name.lower()
        self.collect_calls.append(identity.display_name)
        if name in self.failing:
            raise EvidenceCollectionError(identity.display_name, "configured to fail")

        template = self.bundles.get(name)
        if template is None:
            return EvidenceBundle(identity=identity).derive_evidence()

        # Fresh copy so each pipeline run owns its bundle
        bundle = EvidenceBundle.from_dict(template.to_dict())
        bundle.identity = CompanyIdentity(
            name=identity.name or template.identity.name,
            domain=identity.domain or template.identity.domain,
            url=identity.url or template.identity.url,
        )
        return bundle.derive_evidence()

    async def search_jobs(
        self, keywords: str, location: Optional[str] = None, limit: int = 100
    ) -> List[JobPosting]:
        return [JobPosting.from_dict(p.to_dict()) for p in self.postings[:limit]]
