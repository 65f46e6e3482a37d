"""
Deterministic analyzers.

Keyword and threshold heuristics over an EvidenceBundle. These back the
deterministic variant of every pipeline stage, so they must never need an
external service and must tolerate any facet being empty.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from src.common.types import EvidenceBundle, Finding, JobPosting, Source

# ===== TAGS =====

TAG_AUTOMATION = "automation-opportunity"
TAG_HIGH_IMPACT = "high-impact"
TAG_QUICK_WIN = "quick-win"
TAG_GROWTH = "growth"
TAG_SYNTHESIS = "synthesis"

HIGH_IMPACT_MULTIPLIER = 1.5
QUICK_WIN_MULTIPLIER = 1.3

# ===== KEYWORD TABLES =====

LEGACY_INDICATORS = [
    "excel", "access", "vba", "sharepoint", "on-premise", "legacy",
    "manual", "paper-based", "fax", "phone-based",
]

MODERN_INDICATORS = [
    "cloud", "saas", "api", "automation", "ai", "machine learning",
    "analytics", "dashboard", "real-time", "integration",
]

TECH_CATEGORIES: Dict[str, List[str]] = {
    "Analytics": ["analytics", "tableau", "powerbi", "looker", "datadog"],
    "Cloud": ["aws", "azure", "gcp", "cloud"],
    "Communication": ["slack", "teams", "zoom", "email"],
    "CRM": ["salesforce", "hubspot", "pipedrive", "zoho"],
    "Development": ["github", "gitlab", "jira", "jenkins"],
    "Marketing": ["marketo", "mailchimp", "hootsuite", "buffer"],
    "Productivity": ["office", "gsuite", "notion", "asana", "monday"],
}

# Capabilities whose absence is reported as a gap
EXPECTED_CAPABILITIES = ["Analytics", "Automation", "Integration"]

AUTOMATION_KEYWORDS = [
    "data entry", "manual process", "repetitive", "excel", "spreadsheet",
    "coordinate", "schedule", "track", "monitor", "report", "analyze",
    "customer service", "support tickets", "inventory", "compliance",
    "documentation", "filing", "processing", "reconciliation",
]

HIGH_VOLUME_INDICATORS = [
    "high volume", "fast-paced", "multiple", "numerous", "heavy",
    "extensive", "large amount", "significant",
]

ROLE_CATEGORIES: Dict[str, List[str]] = {
    "Operations": ["operations", "coordinator", "specialist", "analyst", "manager"],
    "Customer Service": ["customer", "support", "service", "success", "representative"],
    "Data/Analytics": ["data", "analyst", "analytics", "reporting", "insights"],
    "Administrative": ["admin", "assistant", "clerk", "office", "receptionist"],
    "Sales": ["sales", "account", "business development", "bd ", "bdr", "sdr"],
    "Technical": ["engineer", "developer", "technical", "it ", "software"],
    "Finance": ["finance", "accounting", "bookkeeper", "controller", "payroll"],
    "HR": ["hr ", "human resources", "recruiter", "talent", "people"],
}

DEPARTMENTS: Dict[str, List[str]] = {
    "Engineering": ["engineer", "developer", "architect", "devops"],
    "Sales": ["sales", "account executive", "bdr", "sdr"],
    "Marketing": ["marketing", "content", "seo", "growth"],
    "Operations": ["operations", "ops ", "coordinator"],
    "Customer Success": ["customer success", "support", "service"],
    "Product": ["product manager", "product owner", "pm "],
    "Finance": ["finance", "accounting", "controller"],
    "HR": ["human resources", "hr ", "recruiter", "talent"],
}

B2B_TECH = {"salesforce", "hubspot", "dynamics"}
B2C_TECH = {"shopify", "woocommerce", "magento"}

SERVICE_ROLE_TERMS = ["consultant", "service", "support", "success", "account"]
PRODUCT_ROLE_TERMS = ["product", "engineer", "developer", "designer"]

GROWTH_NEWS_KEYWORDS = [
    "funding", "investment", "acquisition", "expansion", "partnership",
    "launch", "new market",
]

RECENT_NEWS_WINDOW = timedelta(days=182)
SOCIAL_REACH_THRESHOLD = 50000
CONSUMER_FOLLOWER_THRESHOLD = 10000
HIGH_VALUE_CONTRACT = 100000


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _analysis_source(title: str) -> Source:
    return Source(title=title, date=_today())


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _stackshare_url(bundle: EvidenceBundle) -> str:
    return f"https://stackshare.io/companies/{bundle.identity.display_name}"


def _posting_sources(postings: List[JobPosting], limit: int) -> List[Source]:
    return [Source(title=p.title, url=p.url) for p in postings[:limit]]


# ===== TECHNICAL SIGNALS =====

def analyze_tech_stack(bundle: EvidenceBundle) -> List[Finding]:
    """Legacy vs. modern tooling, capability gaps and breadth of adoption."""
    technologies = bundle.technologies
    if not technologies:
        return [
            Finding(
                title="Limited Technology Visibility",
                detail=(
                    "No modern tech stack detected. May indicate reliance on "
                    "legacy systems or manual processes."
                ),
                confidence=0.6,
                tags=("tech-gap", TAG_AUTOMATION),
                sources=(_analysis_source("Tech Stack Analysis"),),
            )
        ]

    findings: List[Finding] = []
    names = [t.name.lower() for t in technologies]

    by_category: Dict[str, List[str]] = {}
    for tech, name in zip(technologies, names):
        for category, keywords in TECH_CATEGORIES.items():
            if _contains_any(name, keywords):
                by_category.setdefault(category, []).append(tech.name)
                break

    has_modern = any(_contains_any(name, MODERN_INDICATORS) for name in names)
    has_legacy = any(_contains_any(name, LEGACY_INDICATORS) for name in names)
    stack_source = Source(title="Technology Stack", url=_stackshare_url(bundle))

    if has_legacy:
        findings.append(Finding(
            title="Legacy Systems Detected",
            detail="Presence of legacy tools indicates opportunities for modernization and automation.",
            confidence=0.8,
            tags=("legacy-tech", TAG_AUTOMATION, TAG_HIGH_IMPACT),
            sources=(stack_source,),
        ))

    if has_modern and not has_legacy:
        findings.append(Finding(
            title="Modern Tech Stack",
            detail="Company uses modern tools, indicating openness to technology adoption and integration.",
            confidence=0.85,
            tags=("modern-tech", "tech-forward"),
            sources=(stack_source,),
        ))

    missing = [cap for cap in EXPECTED_CAPABILITIES if cap not in by_category]
    if missing:
        findings.append(Finding(
            title="Technology Gaps Identified",
            detail=(
                f"Missing capabilities in: {', '.join(missing)}. "
                "These represent automation opportunities."
            ),
            confidence=0.75,
            tags=("tech-gap", TAG_AUTOMATION),
            sources=(_analysis_source("Gap Analysis"),),
        ))

    if len(by_category) >= 4:
        findings.append(Finding(
            title="Diverse Technology Adoption",
            detail=f"Uses tools across {len(by_category)} categories: {', '.join(by_category)}",
            confidence=0.9,
            tags=("tech-adoption", "tech-forward"),
            sources=tuple(Source(title=t.name) for t in technologies[:5]),
        ))

    return findings


def categorize_role(title: str) -> str:
    """Bucket a lower-cased job title into a coarse role family."""
    for category, keywords in ROLE_CATEGORIES.items():
        if _contains_any(title, keywords):
            return category
    return "Other"


def analyze_job_postings(bundle: EvidenceBundle) -> List[Finding]:
    """Manual, repetitive and high-volume work advertised in postings."""
    postings = bundle.job_postings
    if not postings:
        return []

    findings: List[Finding] = []
    opportunities: List[str] = []
    roles: Counter = Counter()

    for job in postings:
        title = job.title.lower()
        combined = f"{title} {(job.text or '').lower()}"
        role = categorize_role(title)
        roles[role] += 1

        matched = [k for k in AUTOMATION_KEYWORDS if k in combined]
        if matched:
            opportunities.append(f"{job.title}: {', '.join(matched)}")

        if matched and _contains_any(combined, HIGH_VOLUME_INDICATORS):
            findings.append(Finding(
                title=f"High-Volume {role} Role Identified",
                detail=(
                    f"{job.title} indicates high-volume {', '.join(matched)} tasks. "
                    "Prime candidate for automation."
                ),
                confidence=0.85,
                tags=(TAG_AUTOMATION, TAG_HIGH_IMPACT, "job-posting"),
                sources=(Source(title=job.title, url=job.url),),
            ))

    if opportunities:
        more = "..." if len(opportunities) > 3 else ""
        findings.append(Finding(
            title="Multiple Automation Opportunities in Job Postings",
            detail=(
                f"Found {len(opportunities)} roles with automation potential: "
                f"{'; '.join(opportunities[:3])}{more}"
            ),
            confidence=0.8,
            tags=(TAG_AUTOMATION, "job-analysis"),
            sources=tuple(_posting_sources(postings, 5)),
        ))

    top_roles = roles.most_common(3)
    findings.append(Finding(
        title="Hiring Pattern Analysis",
        detail=(
            f"Primary hiring focus: {', '.join(f'{r} ({c})' for r, c in top_roles)}. "
            f"Total open positions: {len(postings)}"
        ),
        confidence=0.9,
        tags=("hiring-patterns", TAG_GROWTH),
        sources=(_analysis_source("Job Postings Analysis"),),
    ))

    return findings


# ===== BUSINESS CONTEXT =====

def analyze_business_model(bundle: EvidenceBundle) -> List[Finding]:
    """Enterprise- vs. consumer-facing signals, contractor status, service mix."""
    findings: List[Finding] = []
    titles = [j.title.lower() for j in bundle.job_postings]
    tech_names = {t.name.lower() for t in bundle.technologies}

    b2b = sum([
        bool(bundle.procurement),
        any("enterprise" in t for t in titles),
        any("b2b" in t for t in titles),
        bool(tech_names & B2B_TECH),
    ])
    b2c = sum([
        any((s.followers or 0) > CONSUMER_FOLLOWER_THRESHOLD for s in bundle.social_profiles),
        any("consumer" in t for t in titles),
        any("retail" in t for t in titles),
        bool(tech_names & B2C_TECH),
    ])

    if b2b > b2c:
        findings.append(Finding(
            title="B2B Business Model Detected",
            detail=(
                "Company appears to focus on business customers. B2B companies often "
                "have complex processes ripe for automation."
            ),
            confidence=min(0.6 + b2b * 0.1, 0.9),
            tags=("b2b", "business-model"),
            sources=(_analysis_source("Business Model Analysis"),),
        ))
    elif b2c > b2b:
        findings.append(Finding(
            title="B2C Business Model Detected",
            detail=(
                "Company appears to focus on consumers. B2C companies often need "
                "automation for scale and customer service."
            ),
            confidence=min(0.6 + b2c * 0.1, 0.9),
            tags=("b2c", "business-model"),
            sources=(_analysis_source("Business Model Analysis"),),
        ))

    if bundle.procurement:
        total_value = sum(p.amount or 0 for p in bundle.procurement)
        findings.append(Finding(
            title="Government Contractor",
            detail=(
                f"Active government contractor with {len(bundle.procurement)} contracts "
                f"totaling ${total_value:,.0f}. Indicates established processes and "
                "compliance needs."
            ),
            confidence=0.95,
            tags=("government", "enterprise", "compliance", "high-value"),
            sources=tuple(
                Source(title=f"{p.agency or 'Agency'} Contract", url=p.url, date=p.date)
                for p in bundle.procurement[:3]
            ),
        ))

    service_roles = sum(1 for t in titles if _contains_any(t, SERVICE_ROLE_TERMS))
    product_roles = sum(1 for t in titles if _contains_any(t, PRODUCT_ROLE_TERMS))
    if service_roles > product_roles and service_roles > 2:
        findings.append(Finding(
            title="Service-Based Business Model",
            detail=(
                f"Heavy focus on service roles ({service_roles} positions). Service "
                "businesses benefit from automation for consistency and scale."
            ),
            confidence=0.8,
            tags=("services", "business-model", TAG_AUTOMATION),
            sources=tuple(_posting_sources(bundle.job_postings, 3)),
        ))

    return findings


def extract_department(title: str) -> Optional[str]:
    title = title.lower()
    for department, keywords in DEPARTMENTS.items():
        if _contains_any(title, keywords):
            return department
    return None


def analyze_growth_signals(
    bundle: EvidenceBundle, now: Optional[datetime] = None
) -> List[Finding]:
    """Hiring velocity, department spread, growth news, reach and site history."""
    now = now or datetime.now(timezone.utc)
    findings: List[Finding] = []
    postings = bundle.job_postings

    if postings:
        count = len(postings)
        if count >= 20:
            level, confidence = "Rapid Growth", 0.95
        elif count >= 10:
            level, confidence = "Strong Growth", 0.9
        elif count >= 5:
            level, confidence = "Moderate Growth", 0.85
        else:
            level, confidence = "Steady Growth", 0.8

        findings.append(Finding(
            title=f"{level} Indicated by Hiring",
            detail=(
                f"{count} open positions indicate {level.lower()}. Growing companies "
                "need scalable processes and automation."
            ),
            confidence=confidence,
            tags=(TAG_GROWTH, "hiring", "scaling"),
            sources=(_analysis_source("Job Postings Analysis"),),
        ))

        departments = list(dict.fromkeys(
            d for d in (extract_department(p.title) for p in postings) if d
        ))
        if len(departments) >= 4:
            findings.append(Finding(
                title="Multi-Department Expansion",
                detail=(
                    f"Hiring across {len(departments)} departments: "
                    f"{', '.join(departments)}. Indicates company-wide growth."
                ),
                confidence=0.85,
                tags=(TAG_GROWTH, "expansion", "scaling"),
                sources=tuple(_posting_sources(postings, 5)),
            ))

    if bundle.news:
        cutoff = now - RECENT_NEWS_WINDOW
        recent = []
        for item in bundle.news:
            if not item.date:
                recent.append(item)
                continue
            published = _parse_date(item.date)
            if published is not None and published > cutoff:
                recent.append(item)

        growth_news = [n for n in recent if _contains_any(n.title.lower(), GROWTH_NEWS_KEYWORDS)]
        if growth_news:
            findings.append(Finding(
                title="Recent Growth Activity in News",
                detail=f"{len(growth_news)} recent news items about growth: {growth_news[0].title}",
                confidence=0.9,
                tags=(TAG_GROWTH, "news", "expansion"),
                sources=tuple(Source(title=n.title, url=n.url, date=n.date) for n in growth_news[:3]),
            ))

    if bundle.social_profiles:
        followers = sum(s.followers or 0 for s in bundle.social_profiles)
        if followers > SOCIAL_REACH_THRESHOLD:
            findings.append(Finding(
                title="Strong Social Media Presence",
                detail=(
                    f"{followers:,} total followers across {len(bundle.social_profiles)} "
                    "platforms. Indicates brand strength and growth."
                ),
                confidence=0.8,
                tags=(TAG_GROWTH, "social-media", "brand"),
                sources=tuple(
                    Source(title=f"{s.platform} Profile", url=s.url) for s in bundle.social_profiles
                ),
            ))

    dated = sorted(
        (
            (captured, snapshot)
            for captured, snapshot in ((_parse_date(s.timestamp), s) for s in bundle.snapshots)
            if captured is not None
        ),
        key=lambda pair: pair[0],
    )
    if len(dated) > 1:
        (oldest_date, oldest), (newest_date, newest) = dated[0], dated[-1]
        years = (newest_date - oldest_date).days / 365
        if years > 1:
            findings.append(Finding(
                title="Website Evolution Tracked",
                detail=(
                    f"Website has evolved over {round(years)} years. Regular updates "
                    "indicate active business growth."
                ),
                confidence=0.75,
                tags=(TAG_GROWTH, "digital-presence"),
                sources=(
                    Source(title="Latest Website", url=newest.url, date=newest.timestamp),
                    Source(title="Historical Website", url=oldest.url, date=oldest.timestamp),
                ),
            ))

    return findings


# ===== INFRASTRUCTURE DEPTH =====

def analyze_infrastructure(bundle: EvidenceBundle) -> List[Finding]:
    """Stack breadth and procurement history as process-maturity signals."""
    findings: List[Finding] = []

    if bundle.technologies:
        findings.append(Finding(
            title="Technical Infrastructure Assessment",
            detail=(
                f"Current stack includes {', '.join(t.name for t in bundle.technologies)}. "
                "Opportunities for automation and optimization identified."
            ),
            confidence=0.75,
            tags=("tech-stack", "infrastructure"),
            sources=tuple(Source(title=f"Tech: {t.name}") for t in bundle.technologies),
        ))

    if bundle.procurement:
        total_value = sum(p.amount or 0 for p in bundle.procurement)
        findings.append(Finding(
            title="Government Contract Holder",
            detail=(
                f"Active in government procurement with {len(bundle.procurement)} contracts "
                f"worth ${total_value:,.0f}. Strong indicator of process maturity and "
                "of compliance reporting that can be automated."
            ),
            confidence=0.9,
            tags=("procurement", "enterprise", "high-value", "compliance"),
            sources=tuple(
                Source(title=f"{p.agency or 'Agency'} Contract", url=p.url, date=p.date)
                for p in bundle.procurement
            ),
        ))

    return findings


def limited_visibility(area: str, facets: str) -> Finding:
    """Placeholder finding for a stage whose evidence was entirely absent."""
    return Finding(
        title=f"Limited {area} Visibility",
        detail=f"No {facets} evidence was available; this area could not be assessed.",
        confidence=0.4,
        tags=("data-gap",),
        sources=(_analysis_source(f"{area} Analysis"),),
    )


# ===== VERIFICATION =====

MIN_CONFIDENCE = 0.5
MIN_CORROBORATING_SOURCES = 2
BOOST_SOURCE_COUNT = 3
BOOST_FACTOR = 1.2


def verify_findings(preliminary: List[Finding]) -> List[Finding]:
    """
    Filter, re-weight and deduplicate preliminary findings.

    - drop findings under MIN_CONFIDENCE that have fewer than two sources
    - boost findings with three or more sources (capped at 1.0)
    - keep the higher-confidence instance per (title, sorted tags)
    """
    unique: Dict[tuple, Finding] = {}
    for finding in preliminary:
        if finding.confidence < MIN_CONFIDENCE and len(finding.sources) < MIN_CORROBORATING_SOURCES:
            continue
        if len(finding.sources) >= BOOST_SOURCE_COUNT:
            finding = finding.with_confidence(min(finding.confidence * BOOST_FACTOR, 1.0))

        existing = unique.get(finding.identity)
        if existing is None or finding.confidence > existing.confidence:
            unique[finding.identity] = finding

    return list(unique.values())


# ===== SYNTHESIS =====

@dataclass
class AutomationScore:
    score: float         # 0-10
    confidence: float    # 0-1
    level: str           # high-potential | moderate-potential | low-potential


def level_for_score(score: float) -> str:
    if score >= 7:
        return "high-potential"
    if score >= 4:
        return "moderate-potential"
    return "low-potential"


def priority(finding: Finding, quick_win_bonus: bool = False) -> float:
    """confidence x impact multiplier (x quick-win multiplier when enabled)."""
    value = finding.confidence
    if finding.has_tag(TAG_HIGH_IMPACT):
        value *= HIGH_IMPACT_MULTIPLIER
    if quick_win_bonus and finding.has_tag(TAG_QUICK_WIN):
        value *= QUICK_WIN_MULTIPLIER
    return value


def score_automation_potential(bundle: EvidenceBundle, findings: List[Finding]) -> AutomationScore:
    """
    Combine up to five factors (each worth 0-2 points) into a 0-10 score.

    Only factors with supporting evidence count; the average is scaled to
    ten. Confidence grows with the number of populated evidence areas.
    """
    score = 0.0
    factors = 0

    # Factor 1: automation opportunities, weighted by confidence and impact
    opportunities = [f for f in findings if f.has_tag(TAG_AUTOMATION)]
    if opportunities:
        weight = sum(0.5 * priority(f) for f in opportunities)
        score += min(weight, 2.0)
        factors += 1

    # Factor 2: growth
    if any(f.has_tag(TAG_GROWTH) for f in findings) or len(bundle.job_postings) >= 5:
        score += 1.5
        factors += 1

    # Factor 3: repetitive work
    if any(_contains_any(f.detail.lower(), ("repetitive", "manual", "high volume", "high-volume"))
           for f in findings):
        score += 2.0
        factors += 1

    # Factor 4: technology adoption
    if bundle.technologies:
        modern = any(
            _contains_any(t.name.lower(), ("cloud", "saas", "api", "automation"))
            for t in bundle.technologies
        )
        score += 2.0 if modern else 1.0
        factors += 1

    # Factor 5: contract value
    if bundle.procurement:
        high_value = any((p.amount or 0) > HIGH_VALUE_CONTRACT for p in bundle.procurement)
        score += 2.0 if high_value else 1.0
        factors += 1

    final = (score / factors) * 5 if factors else 0.0
    final = round(min(final, 10.0), 1)

    data_points = sum([
        bool(bundle.job_postings),
        bool(bundle.technologies),
        bool(bundle.news),
        bool(bundle.procurement),
        len(findings) > 5,
    ])
    confidence = min(0.5 + data_points * 0.1, 0.95)

    return AutomationScore(score=final, confidence=confidence, level=level_for_score(final))


RECOMMENDATIONS = {
    "high-potential": "Prioritize outreach: strong, evidenced automation needs.",
    "moderate-potential": "Qualify further: some automation needs with partial evidence.",
    "low-potential": "Monitor: little evidence of automation needs so far.",
}


def synthesis_detail(bundle: EvidenceBundle, findings: List[Finding], result: AutomationScore) -> str:
    opportunities = sum(
        1 for f in findings if f.has_tag(TAG_AUTOMATION) or f.has_tag(TAG_HIGH_IMPACT)
    )
    parts = [
        f"{bundle.identity.display_name} shows {result.level} for AI automation "
        f"(score: {result.score}/10)."
    ]
    if opportunities:
        parts.append(f"Identified {opportunities} specific automation opportunities.")
    if bundle.job_postings:
        parts.append("Active hiring indicates growth and potential for process optimization.")
    if bundle.technologies:
        parts.append("Existing tech stack suggests openness to technology adoption.")
    if any(f.has_tag(TAG_GROWTH) for f in findings):
        parts.append("Growth signals indicate scaling challenges that AI could address.")
    parts.append(RECOMMENDATIONS[result.level])
    return " ".join(parts)


def summary_finding(
    bundle: EvidenceBundle,
    findings: List[Finding],
    result: AutomationScore,
    title: str = "Overall Automation Opportunity Assessment",
    detail: Optional[str] = None,
    extra_tags: Iterable[str] = (),
) -> Finding:
    """The synthesis finding carrying the score and recommendation."""
    return Finding(
        title=title,
        detail=detail or synthesis_detail(bundle, findings, result),
        confidence=result.confidence,
        tags=(TAG_SYNTHESIS, "recommendation", result.level, *extra_tags),
        sources=(_analysis_source("Comprehensive Analysis"),),
        metadata={
            "automation_score": result.score,
            "level": result.level,
            "recommendation": RECOMMENDATIONS[result.level],
        },
    )


def prioritize(summary: Finding, findings: List[Finding], quick_win_bonus: bool = False) -> List[Finding]:
    """Summary first, then the rest by descending priority (stable for ties)."""
    ranked = sorted(findings, key=lambda f: priority(f, quick_win_bonus), reverse=True)
    return [summary, *ranked]
