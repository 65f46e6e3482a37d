"""
Canonical types for the automation research service.

Defines the evidence bundle that collectors hand to the analysis pipeline,
the immutable Finding that every stage produces, and the request/run
records the orchestrator passes around.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from src.common.error_handling import ErrorCollector


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


# ===== FINDINGS =====

@dataclass(frozen=True)
class Source:
    """Citation backing a finding."""

    title: str
    url: Optional[str] = None
    date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title}
        if self.url:
            data["url"] = self.url
        if self.date:
            data["date"] = self.date
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        return cls(
            title=str(data.get("title") or data.get("url") or "Unknown source"),
            url=data.get("url"),
            date=data.get("date"),
        )


@dataclass(frozen=True)
class Finding:
    """
    One confidence-scored observation produced by a pipeline stage.

    Findings are immutable: later stages filter them, re-weight confidence
    through with_confidence(), or append new ones.
    """

    title: str
    detail: str
    confidence: float
    tags: Tuple[str, ...] = ()
    sources: Tuple[Source, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))
        object.__setattr__(self, "tags", tuple(dict.fromkeys(self.tags)))
        object.__setattr__(self, "sources", tuple(self.sources))

    def with_confidence(self, confidence: float) -> "Finding":
        return replace(self, confidence=confidence)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    @property
    def identity(self) -> Tuple[str, Tuple[str, ...]]:
        """Deduplication identity: title plus sorted tags."""
        return self.title, tuple(sorted(self.tags))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "detail": self.detail,
            "confidence": self.confidence,
            "tags": list(self.tags),
            "sources": [s.to_dict() for s in self.sources],
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        return cls(
            title=str(data["title"]),
            detail=str(data.get("detail", "")),
            confidence=float(data.get("confidence", 0.0)),
            tags=tuple(data.get("tags") or ()),
            sources=tuple(Source.from_dict(s) for s in data.get("sources") or ()),
            metadata=dict(data.get("metadata") or {}),
        )


# ===== EVIDENCE =====

@dataclass(frozen=True)
class CompanyIdentity:
    """Who a research run is about. At least one of name/url is set."""

    name: Optional[str] = None
    domain: Optional[str] = None
    url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.domain or self.url or "Unknown company"

    def cache_params(self) -> Dict[str, Any]:
        return {
            "companyName": self.name.strip().lower() if self.name else None,
            "companyUrl": self.url.strip().lower() if self.url else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "domain": self.domain, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompanyIdentity":
        return cls(name=data.get("name"), domain=data.get("domain"), url=data.get("url"))


@dataclass
class JobPosting:
    """A job posting as returned by a job board."""

    title: str
    company: str
    url: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    source: Optional[str] = None
    text: str = ""
    company_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "company": self.company,
            "url": self.url,
            "location": self.location,
            "date": self.date,
            "source": self.source,
            "text": self.text,
            "company_url": self.company_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobPosting":
        return cls(
            title=data.get("title", ""),
            company=data.get("company", ""),
            url=data.get("url"),
            location=data.get("location"),
            date=data.get("date"),
            source=data.get("source"),
            text=data.get("text") or "",
            company_url=data.get("company_url"),
        )


@dataclass
class CorporateProfile:
    description: str = ""
    industry: Optional[str] = None
    employee_count: Optional[str] = None
    founded: Optional[str] = None
    url: Optional[str] = None


@dataclass
class NewsItem:
    title: str
    url: Optional[str] = None
    date: Optional[str] = None
    summary: str = ""


@dataclass
class Technology:
    name: str
    category: Optional[str] = None
    version: Optional[str] = None


@dataclass
class SocialProfile:
    platform: str
    url: Optional[str] = None
    followers: Optional[int] = None
    description: str = ""


@dataclass
class ProcurementRecord:
    title: str
    agency: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    url: Optional[str] = None


@dataclass
class ArchivedSnapshot:
    url: str
    timestamp: str  # ISO date of the capture


_FACET_FIELDS = (
    "profile",
    "news",
    "job_postings",
    "technologies",
    "social_profiles",
    "procurement",
    "snapshots",
)


@dataclass
class EvidenceBundle:
    """
    Aggregated raw data about one company.

    Every facet is independently optional; consumers must tolerate any
    subset being empty. A bundle is owned by exactly one pipeline run.
    """

    identity: CompanyIdentity
    profile: Optional[CorporateProfile] = None
    news: List[NewsItem] = field(default_factory=list)
    job_postings: List[JobPosting] = field(default_factory=list)
    technologies: List[Technology] = field(default_factory=list)
    social_profiles: List[SocialProfile] = field(default_factory=list)
    procurement: List[ProcurementRecord] = field(default_factory=list)
    snapshots: List[ArchivedSnapshot] = field(default_factory=list)
    evidence: List[str] = field(default_factory=list)

    @staticmethod
    def facet_names() -> Tuple[str, ...]:
        return _FACET_FIELDS

    def referenced_urls(self) -> List[str]:
        """Every URL referenced by any facet, first occurrence order, no duplicates."""
        candidates: List[Optional[str]] = [self.identity.url]
        if self.profile:
            candidates.append(self.profile.url)
        candidates.extend(item.url for item in self.news)
        candidates.extend(posting.url for posting in self.job_postings)
        candidates.extend(profile.url for profile in self.social_profiles)
        candidates.extend(record.url for record in self.procurement)
        candidates.extend(snapshot.url for snapshot in self.snapshots)
        return list(dict.fromkeys(url for url in candidates if url))

    def derive_evidence(self) -> "EvidenceBundle":
        self.evidence = self.referenced_urls()
        return self

    def populated_facets(self) -> List[str]:
        return [name for name in _FACET_FIELDS if getattr(self, name)]

    def data_points(self) -> int:
        """Number of facets carrying data. Drives score confidence."""
        return len(self.populated_facets())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvidenceBundle":
        profile = data.get("profile")
        return cls(
            identity=CompanyIdentity.from_dict(data.get("identity") or {}),
            profile=CorporateProfile(**profile) if profile else None,
            news=[NewsItem(**n) for n in data.get("news") or []],
            job_postings=[JobPosting.from_dict(j) for j in data.get("job_postings") or []],
            technologies=[Technology(**t) for t in data.get("technologies") or []],
            social_profiles=[SocialProfile(**s) for s in data.get("social_profiles") or []],
            procurement=[ProcurementRecord(**p) for p in data.get("procurement") or []],
            snapshots=[ArchivedSnapshot(**s) for s in data.get("snapshots") or []],
            evidence=list(data.get("evidence") or []),
        )


# ===== REQUESTS & RUNS =====

@dataclass
class ResearchRequest:
    """
    Inbound request for either mode.

    keywords selects opportunity search; company_name/company_url select
    deep research of one company.
    """

    keywords: Optional[str] = None
    location: Optional[str] = None
    company_name: Optional[str] = None
    company_url: Optional[str] = None
    notes: Optional[str] = None
    tenant_id: str = "anonymous"
    force_refresh: bool = False

    @property
    def identity(self) -> CompanyIdentity:
        return CompanyIdentity(name=self.company_name, url=self.company_url)


@dataclass
class PipelineRun:
    """Accumulated output of the five analysis stages for one company."""

    identity: CompanyIdentity
    run_id: str
    stage_findings: Dict[str, List[Finding]] = field(default_factory=dict)
    strategies: Dict[str, str] = field(default_factory=dict)
    findings: List[Finding] = field(default_factory=list)
    automation_score: float = 0.0
    confidence: float = 0.0
    level: str = "low-potential"
    errors: ErrorCollector = field(default_factory=ErrorCollector)

    def record(self, stage: str, findings: Iterable[Finding], strategy: str) -> None:
        self.stage_findings[stage] = list(findings)
        self.strategies[stage] = strategy
