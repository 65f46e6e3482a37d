"""
Research Orchestrator.

Entry point for the two user-facing operations:
- search_opportunities: keywords -> job postings -> top companies -> deep
  research per company (individual failures tolerated)
- run_deep_research: one company -> evidence -> five-stage pipeline

Every request follows the same path:

    validate -> try_admit -> [concurrency slot] cache check -> single-flight
             -> bounded compute -> cache write -> [slot released]

The slot is released on every exit path, including timeouts and errors.

Usage:
    orchestrator = ResearchOrchestrator.from_config(Config.from_env(), collector)
    result = await orchestrator.run_deep_research(
        ResearchRequest(company_name="Acme Logistics", tenant_id="client-1")
    )
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from urllib.parse import urlparse

from src.analysis.capability import AnalysisCapability, create_capability
from src.analysis.heuristics import TAG_AUTOMATION, TAG_HIGH_IMPACT
from src.analysis.pipeline import AnalysisPipeline
from src.common.cache_store import create_cache_store
from src.common.config import Config
from src.common.counter_store import create_counter_store
from src.common.errors import (
    AdmissionDenied,
    EvidenceCollectionError,
    ResearchTimeoutError,
    ValidationError,
)
from src.common.logger import get_logger
from src.common.rate_limiter import AdmissionController
from src.common.types import (
    CompanyIdentity,
    EvidenceBundle,
    Finding,
    JobPosting,
    PipelineRun,
    ResearchRequest,
)
from src.services.cache_service import CacheNamespace, CacheService, SingleFlight
from src.services.evidence_collector import EvidenceCollector
from src.services.operation_base import create_run_id, timed_execution
from version import __version__

logger = logging.getLogger(__name__)

T = TypeVar("T")

HIGH_CONFIDENCE = 0.8
# Findings kept per company in opportunity-search results
TOP_FINDINGS_PER_COMPANY = 5


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def summarize_findings(findings: List[Finding]) -> str:
    high_confidence = sum(1 for f in findings if f.confidence >= HIGH_CONFIDENCE)
    opportunities = sum(
        1 for f in findings if f.has_tag(TAG_AUTOMATION) or f.has_tag(TAG_HIGH_IMPACT)
    )
    return (
        f"Analysis complete: {len(findings)} findings ({high_confidence} high confidence). "
        f"{opportunities} automation opportunities identified."
    )


# ===== RESULTS =====

@dataclass
class CompanyResearchResult:
    """Deep-research outcome for one company."""

    identity: CompanyIdentity
    automation_score: float
    confidence: float
    level: str
    findings: List[Finding]
    summary: str
    run_id: str
    strategies: Dict[str, str] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: int = 0
    tenant_id: str = "anonymous"
    notes: Optional[str] = None
    cached: bool = False

    @classmethod
    def from_run(cls, run: PipelineRun, duration_ms: int) -> "CompanyResearchResult":
        return cls(
            identity=run.identity,
            automation_score=run.automation_score,
            confidence=run.confidence,
            level=run.level,
            findings=list(run.findings),
            summary=summarize_findings(run.findings),
            run_id=run.run_id,
            strategies=dict(run.strategies),
            errors=run.errors.to_list(),
            duration_ms=duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": "deep-research",
            "jobId": self.tenant_id,
            "runId": self.run_id,
            "company": self.identity.to_dict(),
            "automationScore": self.automation_score,
            "confidence": self.confidence,
            "level": self.level,
            "summary": self.summary,
            "findings": [f.to_dict() for f in self.findings],
            "strategies": dict(self.strategies),
            "errors": list(self.errors),
            "durationMs": self.duration_ms,
            "meta": {"notes": self.notes},
            "cached": self.cached,
        }

    def to_cache_dict(self) -> Dict[str, Any]:
        """Serialized form without the requesting tenant's id and notes."""
        data = self.to_dict()
        del data["jobId"]
        del data["meta"]
        return data

    def for_request(self, tenant_id: str, notes: Optional[str]) -> "CompanyResearchResult":
        return replace(self, tenant_id=tenant_id, notes=notes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], cached: bool = False) -> "CompanyResearchResult":
        return cls(
            identity=CompanyIdentity.from_dict(data.get("company") or {}),
            automation_score=float(data.get("automationScore", 0.0)),
            confidence=float(data.get("confidence", 0.0)),
            level=data.get("level", "low-potential"),
            findings=[Finding.from_dict(f) for f in data.get("findings") or []],
            summary=data.get("summary", ""),
            run_id=data.get("runId", ""),
            strategies=dict(data.get("strategies") or {}),
            errors=list(data.get("errors") or []),
            duration_ms=int(data.get("durationMs", 0)),
            tenant_id=data.get("jobId", "anonymous"),
            notes=(data.get("meta") or {}).get("notes"),
            cached=cached,
        )


@dataclass
class CompanyOpportunity:
    """One analyzed company inside an opportunity-search result."""

    company: str
    jobs: List[JobPosting]
    automation_score: float
    confidence: float
    level: str
    findings: List[Finding]

    @classmethod
    def from_research(
        cls, company: str, jobs: List[JobPosting], research: CompanyResearchResult
    ) -> "CompanyOpportunity":
        return cls(
            company=company,
            jobs=jobs,
            automation_score=research.automation_score,
            confidence=research.confidence,
            level=research.level,
            findings=research.findings[:TOP_FINDINGS_PER_COMPANY],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company": self.company,
            "jobCount": len(self.jobs),
            "jobs": [j.to_dict() for j in self.jobs],
            "automationScore": self.automation_score,
            "confidence": self.confidence,
            "level": self.level,
            "findings": [f.to_dict() for f in self.findings],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompanyOpportunity":
        return cls(
            company=data["company"],
            jobs=[JobPosting.from_dict(j) for j in data.get("jobs") or []],
            automation_score=float(data.get("automationScore", 0.0)),
            confidence=float(data.get("confidence", 0.0)),
            level=data.get("level", "low-potential"),
            findings=[Finding.from_dict(f) for f in data.get("findings") or []],
        )


@dataclass
class OpportunitySearchResult:
    """Keyword search outcome across the top hiring companies."""

    keywords: str
    location: Optional[str]
    total_jobs_found: int
    companies_found: int
    companies_analyzed: int
    opportunities: List[CompanyOpportunity]
    run_id: str
    duration_ms: int = 0
    tenant_id: str = "anonymous"
    notes: Optional[str] = None
    cached: bool = False

    @property
    def summary(self) -> str:
        return (
            f"Found {self.total_jobs_found} job postings across {self.companies_found} "
            f"companies. Top {self.companies_analyzed} companies analyzed."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": "opportunity-search",
            "jobId": self.tenant_id,
            "runId": self.run_id,
            "summary": self.summary,
            "totalJobsFound": self.total_jobs_found,
            "companiesFound": self.companies_found,
            "companiesAnalyzed": self.companies_analyzed,
            "opportunities": [o.to_dict() for o in self.opportunities],
            "durationMs": self.duration_ms,
            "meta": {"keywords": self.keywords, "location": self.location, "notes": self.notes},
            "cached": self.cached,
        }

    def to_cache_dict(self) -> Dict[str, Any]:
        """Serialized form without the requesting tenant's id and notes."""
        data = self.to_dict()
        del data["jobId"]
        del data["meta"]["notes"]
        return data

    def for_request(self, tenant_id: str, notes: Optional[str]) -> "OpportunitySearchResult":
        return replace(self, tenant_id=tenant_id, notes=notes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], cached: bool = False) -> "OpportunitySearchResult":
        meta = data.get("meta") or {}
        return cls(
            keywords=meta.get("keywords", ""),
            location=meta.get("location"),
            total_jobs_found=int(data.get("totalJobsFound", 0)),
            companies_found=int(data.get("companiesFound", 0)),
            companies_analyzed=int(data.get("companiesAnalyzed", 0)),
            opportunities=[CompanyOpportunity.from_dict(o) for o in data.get("opportunities") or []],
            run_id=data.get("runId", ""),
            duration_ms=int(data.get("durationMs", 0)),
            tenant_id=data.get("jobId", "anonymous"),
            notes=meta.get("notes"),
            cached=cached,
        )


# ===== VALIDATION =====

def validate_company_url(url: str) -> str:
    """
    Return the URL's host (without "www.").

    Raises:
        ValidationError: If the URL is not an absolute http(s) URL
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in parsed.netloc:
        raise ValidationError(f"Invalid company URL: {url}")
    host = parsed.hostname or ""
    if not host or "." not in host:
        raise ValidationError(f"Invalid company URL: {url}")
    return host[4:] if host.startswith("www.") else host


def company_identity(request: ResearchRequest) -> CompanyIdentity:
    """
    Validated identity for a deep-research request.

    Raises:
        ValidationError: On missing/blank company name and URL, or a malformed URL
    """
    name = request.company_name.strip() if request.company_name is not None else None
    url = request.company_url.strip() if request.company_url is not None else None

    if request.company_name is not None and not name and not url:
        raise ValidationError("Company name must not be empty")
    if not name and not url:
        raise ValidationError("Either companyName or companyUrl is required")

    domain = validate_company_url(url) if url else None
    return CompanyIdentity(name=name or None, domain=domain, url=url or None)


def group_by_company(postings: List[JobPosting]) -> "OrderedDict[str, List[JobPosting]]":
    """Postings per company name, in first-seen order. Nameless postings are skipped."""
    groups: "OrderedDict[str, List[JobPosting]]" = OrderedDict()
    for posting in postings:
        company = (posting.company or "").strip()
        if company:
            groups.setdefault(company, []).append(posting)
    return groups


def _identity_for_postings(company: str, jobs: List[JobPosting]) -> CompanyIdentity:
    url = next((j.company_url for j in jobs if j.company_url), None)
    domain = None
    if url:
        try:
            domain = validate_company_url(url)
        except ValidationError:
            url = None
    return CompanyIdentity(name=company, domain=domain, url=url)


# ===== ORCHESTRATOR =====

class ResearchOrchestrator:
    """Ties admission, cache, evidence collection and the pipeline together."""

    def __init__(
        self,
        admission: AdmissionController,
        cache: CacheService,
        collector: EvidenceCollector,
        pipeline: AnalysisPipeline,
        config: Config,
    ):
        self.admission = admission
        self.cache = cache
        self.collector = collector
        self.pipeline = pipeline
        self.config = config
        self.inflight = SingleFlight()

    @classmethod
    def from_config(
        cls,
        config: Config,
        collector: EvidenceCollector,
        capability: Optional[AnalysisCapability] = None,
    ) -> "ResearchOrchestrator":
        """
        Build every collaborator from configuration.

        Backends are chosen once here; nothing reads the environment later.
        """
        config.validate()
        if capability is None:
            capability = create_capability(config.capability)

        admission = AdmissionController(
            create_counter_store(config.cache.redis_url), config.admission
        )
        cache = CacheService(create_cache_store(config.cache.redis_url), config.cache)
        # Capability stages make two sequential calls at most
        pipeline = AnalysisPipeline(
            capability, stage_timeout_seconds=config.capability.timeout_seconds * 2
        )
        logger.info(config.summary())
        return cls(admission, cache, collector, pipeline, config)

    # ===== ADMISSION & BOUNDS =====

    async def _admitted(self, tenant_id: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run work inside the tenant's concurrency slot, or raise AdmissionDenied."""
        if not await self.admission.try_admit(tenant_id):
            raise AdmissionDenied(tenant_id)
        async with self.admission.slot(tenant_id):
            return await work()

    async def _bounded(self, operation: str, work: Awaitable[T]) -> T:
        """Apply the per-request time budget; in-flight work is abandoned on timeout."""
        timeout = self.config.request_timeout_seconds
        try:
            return await asyncio.wait_for(work, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{operation} exceeded {timeout}s, abandoning")
            raise ResearchTimeoutError(operation, timeout) from e

    # ===== EVIDENCE & RESEARCH =====

    async def _collect_evidence(
        self, identity: CompanyIdentity, force_refresh: bool
    ) -> EvidenceBundle:
        params = identity.cache_params()
        if not force_refresh:
            cached = await self.cache.get(CacheNamespace.OSINT, params)
            if cached is not None:
                try:
                    return EvidenceBundle.from_dict(cached)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Discarding malformed cached evidence: {e}")

        try:
            bundle = await self.collector.collect(identity)
        except EvidenceCollectionError:
            raise
        except Exception as e:
            raise EvidenceCollectionError(identity.display_name, str(e)) from e

        await self.cache.set(CacheNamespace.OSINT, params, bundle.to_dict())
        return bundle

    async def _research_company(
        self, identity: CompanyIdentity, force_refresh: bool
    ) -> CompanyResearchResult:
        """
        Cache-aside deep research for one company.

        The result carries no tenant fields; callers attach their own with
        for_request().
        """
        params = identity.cache_params()
        if not force_refresh:
            cached = await self.cache.get(CacheNamespace.RESEARCH, params)
            if cached is not None:
                return CompanyResearchResult.from_dict(cached, cached=True)

        run_id = create_run_id("research")
        log = get_logger(__name__, run_id=run_id)
        with timed_execution() as timer:
            bundle = await self._collect_evidence(identity, force_refresh)
            run = await self.pipeline.run(bundle, run_id=run_id)

        result = CompanyResearchResult.from_run(run, timer.duration_ms)
        await self.cache.set(CacheNamespace.RESEARCH, params, result.to_cache_dict())
        log.info(f"Researched {identity.display_name} in {timer.duration_ms}ms")
        return result

    def _flight_key(
        self, namespace: CacheNamespace, params: Dict[str, Any], force_refresh: bool
    ) -> str:
        # Forced refreshes never join a computation that may answer from cache
        key = self.cache.key_for(namespace, params)
        return f"{key}:refresh" if force_refresh else key

    async def _shared_research(
        self, identity: CompanyIdentity, force_refresh: bool
    ) -> CompanyResearchResult:
        key = self._flight_key(CacheNamespace.RESEARCH, identity.cache_params(), force_refresh)
        return await self.inflight.run(
            key, lambda: self._research_company(identity, force_refresh)
        )

    # ===== OPERATIONS =====

    async def run_deep_research(self, request: ResearchRequest) -> CompanyResearchResult:
        """
        Deep-analyze one company.

        Raises:
            ValidationError: Missing/blank name and URL, or malformed URL
            AdmissionDenied: Tenant quota exhausted
            EvidenceCollectionError: Evidence for the company could not be collected
            ResearchTimeoutError: The request exceeded its time budget
        """
        identity = company_identity(request)
        logger.info(
            f"Deep research for {identity.display_name} "
            f"(tenant={request.tenant_id}, force_refresh={request.force_refresh})"
        )

        async def work() -> CompanyResearchResult:
            result = await self._bounded(
                "deep_research", self._shared_research(identity, request.force_refresh)
            )
            return result.for_request(request.tenant_id, request.notes)

        return await self._admitted(request.tenant_id, work)

    async def search_opportunities(self, request: ResearchRequest) -> OpportunitySearchResult:
        """
        Find companies hiring for automatable roles and research the top ones.

        Raises:
            ValidationError: Missing keywords
            AdmissionDenied: Tenant quota exhausted
            EvidenceCollectionError: The job search itself failed
            ResearchTimeoutError: The request exceeded its time budget
        """
        keywords = (request.keywords or "").strip()
        if not keywords:
            raise ValidationError("Keywords are required for opportunity search")
        location = request.location.strip() if request.location else None
        params = {"keywords": keywords, "location": location}

        logger.info(
            f"Opportunity search '{keywords}' in {location or 'any location'} "
            f"(tenant={request.tenant_id}, force_refresh={request.force_refresh})"
        )

        async def work() -> OpportunitySearchResult:
            if not request.force_refresh:
                cached = await self.cache.get(CacheNamespace.JOB_SEARCH, params)
                if cached is not None:
                    return OpportunitySearchResult.from_dict(cached, cached=True).for_request(
                        request.tenant_id, request.notes
                    )

            key = self._flight_key(CacheNamespace.JOB_SEARCH, params, request.force_refresh)
            result = await self.inflight.run(
                key,
                lambda: self._bounded(
                    "opportunity_search",
                    self._compute_search(keywords, location, params, request.force_refresh),
                ),
            )
            return result.for_request(request.tenant_id, request.notes)

        return await self._admitted(request.tenant_id, work)

    async def _compute_search(
        self,
        keywords: str,
        location: Optional[str],
        params: Dict[str, Any],
        force_refresh: bool,
    ) -> OpportunitySearchResult:
        run_id = create_run_id("search")
        log = get_logger(__name__, run_id=run_id)

        with timed_execution() as timer:
            try:
                postings = await self.collector.search_jobs(
                    keywords, location, limit=self.config.job_search_limit
                )
            except EvidenceCollectionError:
                raise
            except Exception as e:
                raise EvidenceCollectionError("job boards", str(e)) from e

            groups = group_by_company(postings)
            top = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)
            top = top[: self.config.top_companies]
            log.info(
                f"{len(postings)} postings across {len(groups)} companies; "
                f"analyzing top {len(top)}"
            )

            semaphore = asyncio.Semaphore(self.config.max_parallel_companies)

            async def analyze(company: str, jobs: List[JobPosting]) -> CompanyResearchResult:
                async with semaphore:
                    return await self._shared_research(
                        _identity_for_postings(company, jobs), force_refresh
                    )

            outcomes = await asyncio.gather(
                *(analyze(company, jobs) for company, jobs in top),
                return_exceptions=True,
            )

            opportunities: List[CompanyOpportunity] = []
            for (company, jobs), outcome in zip(top, outcomes):
                if isinstance(outcome, Exception):
                    log.warning(f"Skipping {company}: {outcome}")
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                opportunities.append(CompanyOpportunity.from_research(company, jobs, outcome))

        result = OpportunitySearchResult(
            keywords=keywords,
            location=location,
            total_jobs_found=len(postings),
            companies_found=len(groups),
            companies_analyzed=len(opportunities),
            opportunities=opportunities,
            run_id=run_id,
            duration_ms=timer.duration_ms,
        )
        await self.cache.set(CacheNamespace.JOB_SEARCH, params, result.to_cache_dict())
        log.info(result.summary)
        return result

    async def get_status(self, tenant_id: str) -> Dict[str, Any]:
        """
        Quota and cache status for a tenant. Never raises: failures are
        reported as a "degraded" status.
        """
        try:
            quota = await self.admission.get_status(tenant_id)
            stats = await self.cache.stats()
        except Exception as e:
            logger.error(f"Status check failed for {tenant_id}: {e}")
            return {
                "status": "degraded",
                "timestamp": _utcnow_iso(),
                "version": __version__,
                "error": "Unable to retrieve full status",
                "health": {"api": "degraded", "cache": self.cache.backend},
            }

        return {
            "status": "operational",
            "timestamp": _utcnow_iso(),
            "version": __version__,
            "rateLimit": quota.to_dict(),
            "cache": stats.to_dict(),
            "health": {"api": "healthy", "cache": self.cache.backend},
        }

    async def close(self) -> None:
        """Release backend connections."""
        await self.admission.store.close()
        await self.cache.close()
        if self.pipeline.capability is not None:
            await self.pipeline.capability.close()
        await self.collector.close()
