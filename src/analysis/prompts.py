"""
Prompt templates for the capability-backed stage variants.

Templates are filled with str.format(); company context is rendered once
per call by format_company_context().
"""

from collections import Counter
from typing import List

from src.common.types import EvidenceBundle, Finding

SYSTEM_PROMPT_ANALYST = """You are a senior automation consultant who assesses companies for AI and workflow automation opportunities.
Ground every observation in the evidence provided. Prefer concrete, verifiable signals over speculation.
When evidence is thin, say so rather than inventing facts."""

COMPANY_CONTEXT_TEMPLATE = """Company: {name}
Domain: {domain}
Industry: {industry}
Employees: {employees}
Open positions: {job_count}
Tech stack: {tech}
News items: {news_count}"""

# ===== STAGE 1: TECHNICAL SIGNALS =====

USER_PROMPT_TECH_TEMPLATE = """Analyze this company's technical profile for automation opportunities:

{context}
Job titles: {job_titles}

Focus on:
1. Technology gaps that could benefit from AI/automation
2. Manual processes evident in job postings
3. Legacy systems that need modernization
4. Integration opportunities

Provide specific, actionable findings."""

USER_PROMPT_JOBS_TEMPLATE = """Analyze these job postings to identify automation opportunities:

{postings}

Identify:
1. Repetitive tasks mentioned across multiple roles
2. Manual processes that could be automated
3. High-volume operations
4. Data entry or processing roles
5. Coordination/scheduling tasks

For each pattern found, estimate the potential impact and feasibility of automation."""

# ===== STAGE 2: BUSINESS CONTEXT =====

USER_PROMPT_BUSINESS_TEMPLATE = """Analyze this company's business model and market position:

{context}
News headlines: {headlines}
Social presence: {social}

Analyze:
1. Business model type (B2B, B2C, marketplace, etc.)
2. Competitive pressures requiring efficiency
3. Customer service or operational bottlenecks
4. Market opportunities for AI differentiation"""

USER_PROMPT_GROWTH_TEMPLATE = """Based on this company's profile, analyze growth and scaling opportunities:

Recent news:
{news}

Job growth: {job_count} open positions
High-demand roles: {common_roles}

Identify:
1. Growth trajectory and scaling challenges
2. Operational bottlenecks from rapid growth
3. Process standardization opportunities
4. Customer experience improvement areas"""

# ===== STAGE 3: INFRASTRUCTURE DEPTH =====

USER_PROMPT_INFRASTRUCTURE_TEMPLATE = """Perform deep technical and infrastructure analysis:

{context}
Tech stack details:
{tech_details}

Archive history: {snapshot_count} snapshots
Procurement: {procurement}

Analyze:
1. Infrastructure modernization needs
2. Data management and analytics gaps
3. Security and compliance automation opportunities
4. Integration and API opportunities
5. DevOps and deployment automation needs

Focus on high-impact, high-ROI opportunities."""

# ===== STAGE 4: CROSS-VERIFICATION =====

USER_PROMPT_VERIFY_TEMPLATE = """Review these preliminary findings against the company profile:

{context}

{findings}

For each finding, assess whether the evidence supports it and how confident we should be.
Return ONLY JSON in this shape:
{{"adjustments": [{{"title": "<finding title exactly as given>", "confidence": <0.0-1.0>}}]}}"""

# ===== STAGE 5: SYNTHESIS =====

USER_PROMPT_SYNTHESIS_TEMPLATE = """Create an automation strategy based on these verified findings:

Company: {name}
Verified opportunities: {count}
Top findings:
{findings}

Write:
1. An executive summary of automation potential, including a line "Score: N" with N from 1 to 10
2. Top 3 quick wins (low effort, high impact)
3. Strategic initiatives (high effort, transformational impact)

Be specific and actionable. Focus on realistic outcomes."""

# ===== FINDINGS EXTRACTION =====

USER_PROMPT_EXTRACT_TEMPLATE = """Extract automation opportunities from the following analysis.

Return ONLY a JSON array. Each item must have:
- "title": short headline
- "detail": one or two sentences
- "confidence": number between 0 and 1
- "tags": list of lowercase tags; use "automation-opportunity", "high-impact" and "quick-win" where they apply
- "sources": list of {{"title": ..., "url": ...}} citations (may be empty)

Analysis:
{analysis}

JSON:"""


def format_company_context(bundle: EvidenceBundle) -> str:
    profile = bundle.profile
    return COMPANY_CONTEXT_TEMPLATE.format(
        name=bundle.identity.display_name,
        domain=bundle.identity.domain or bundle.identity.url or "Unknown",
        industry=(profile.industry if profile and profile.industry else "Unknown"),
        employees=(profile.employee_count if profile and profile.employee_count else "Unknown"),
        job_count=len(bundle.job_postings),
        tech=", ".join(t.name for t in bundle.technologies) or "None detected",
        news_count=len(bundle.news),
    )


def format_postings(bundle: EvidenceBundle, limit: int = 20) -> str:
    lines = []
    for i, job in enumerate(bundle.job_postings[:limit], start=1):
        lines.append(f"{i}. {job.title} at {job.company}")
        lines.append(f"   Location: {job.location or 'Unknown'}")
        if job.text:
            lines.append(f"   Description excerpt: {job.text[:200]}...")
    return "\n".join(lines) or "No job postings available."


def most_common_roles(bundle: EvidenceBundle, limit: int = 5) -> List[str]:
    """Role names with seniority/location suffixes ("Clerk - Remote") stripped."""
    roles = Counter(
        job.title.replace("–", "-").split("-")[0].strip() for job in bundle.job_postings
    )
    return [role for role, _ in roles.most_common(limit)]


def format_findings(findings: List[Finding], limit: int = 15) -> str:
    blocks = []
    for i, finding in enumerate(findings[:limit], start=1):
        blocks.append(
            f"Finding {i}: {finding.title}\n"
            f"Detail: {finding.detail}\n"
            f"Confidence: {finding.confidence:.2f}\n"
            f"Tags: {', '.join(finding.tags)}"
        )
    return "\n\n".join(blocks)
