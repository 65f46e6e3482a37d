"""
The five analysis stages.

Each stage has two interchangeable implementations with the same signature
(bundle, findings) -> List[Finding]:
- run_with_capability: delegates to the AnalysisCapability
- run_deterministic: keyword/heuristic scoring, always available

Stages 1-3 read only the evidence bundle; stage 4 consumes their combined
output and stage 5 consumes stage 4's.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import List

from src.analysis import heuristics
from src.analysis.capability import AnalysisCapability
from src.analysis.prompts import (
    USER_PROMPT_BUSINESS_TEMPLATE,
    USER_PROMPT_GROWTH_TEMPLATE,
    USER_PROMPT_INFRASTRUCTURE_TEMPLATE,
    USER_PROMPT_JOBS_TEMPLATE,
    USER_PROMPT_SYNTHESIS_TEMPLATE,
    USER_PROMPT_TECH_TEMPLATE,
    USER_PROMPT_VERIFY_TEMPLATE,
    format_company_context,
    format_findings,
    format_postings,
    most_common_roles,
)
from src.common.json_utils import parse_llm_json
from src.common.types import EvidenceBundle, Finding, Source

SCORE_PATTERN = re.compile(r"score[:\s]+(\d+(?:\.\d+)?)", re.IGNORECASE)


class StageStrategy(str, Enum):
    CAPABILITY = "capability"
    DETERMINISTIC = "deterministic"


def _tagged(findings: List[Finding], *tags: str) -> List[Finding]:
    """Copies of findings with extra tags appended."""
    return [
        Finding(
            title=f.title,
            detail=f.detail,
            confidence=f.confidence,
            tags=(*f.tags, *tags),
            sources=f.sources,
            metadata=f.metadata,
        )
        for f in findings
    ]


class AnalysisStage(ABC):
    """One pipeline stage."""

    name: str = "stage"
    # An empty capability answer from an evidence stage counts as a failure
    requires_findings: bool = True

    @abstractmethod
    async def run_with_capability(
        self, capability: AnalysisCapability, bundle: EvidenceBundle, findings: List[Finding]
    ) -> List[Finding]:
        pass

    @abstractmethod
    def run_deterministic(self, bundle: EvidenceBundle, findings: List[Finding]) -> List[Finding]:
        pass

    def on_failure(self, findings: List[Finding]) -> List[Finding]:
        """Output when both implementations failed."""
        return []


class TechnicalSignalsStage(AnalysisStage):
    """Job postings and technologies: manual-process and legacy-tech indicators."""

    name = "technical_signals"

    async def run_with_capability(self, capability, bundle, findings):
        context = format_company_context(bundle)
        job_titles = ", ".join(j.title for j in bundle.job_postings[:10]) or "None"
        tech_analysis, job_analysis = await asyncio.gather(
            capability.analyze(
                bundle, USER_PROMPT_TECH_TEMPLATE.format(context=context, job_titles=job_titles)
            ),
            capability.analyze(
                bundle, USER_PROMPT_JOBS_TEMPLATE.format(postings=format_postings(bundle))
            ),
        )
        tech_findings, job_findings = await asyncio.gather(
            capability.extract_findings(tech_analysis),
            capability.extract_findings(job_analysis),
        )
        return _tagged(tech_findings, "tech-analysis") + _tagged(job_findings, "job-analysis")

    def run_deterministic(self, bundle, findings):
        return heuristics.analyze_tech_stack(bundle) + heuristics.analyze_job_postings(bundle)


class BusinessContextStage(AnalysisStage):
    """Profile, news and social signals: business model and growth velocity."""

    name = "business_context"

    async def run_with_capability(self, capability, bundle, findings):
        context = format_company_context(bundle)
        business_prompt = USER_PROMPT_BUSINESS_TEMPLATE.format(
            context=context,
            headlines="; ".join(n.title for n in bundle.news[:5]) or "None",
            social=", ".join(
                f"{s.platform}: {s.followers if s.followers is not None else 'N/A'} followers"
                for s in bundle.social_profiles
            ) or "None",
        )
        growth_prompt = USER_PROMPT_GROWTH_TEMPLATE.format(
            news="\n".join(f"- {n.title}" for n in bundle.news[:10]) or "- None",
            job_count=len(bundle.job_postings),
            common_roles=", ".join(most_common_roles(bundle)) or "None",
        )
        analyses = await asyncio.gather(
            capability.analyze(bundle, business_prompt),
            capability.analyze(bundle, growth_prompt),
        )
        extracted = await asyncio.gather(*(capability.extract_findings(a) for a in analyses))
        return _tagged([f for batch in extracted for f in batch], "business-analysis")

    def run_deterministic(self, bundle, findings):
        results = heuristics.analyze_business_model(bundle) + heuristics.analyze_growth_signals(bundle)
        if not results:
            results.append(heuristics.limited_visibility("Business Context", "profile, news or social"))
        return results


class InfrastructureDepthStage(AnalysisStage):
    """Stack breadth and procurement history: maturity and compliance automation."""

    name = "infrastructure_depth"

    async def run_with_capability(self, capability, bundle, findings):
        tech_details = "\n".join(
            f"- {t.name}: {t.category or 'uncategorized'}" for t in bundle.technologies
        ) or "- None detected"
        prompt = USER_PROMPT_INFRASTRUCTURE_TEMPLATE.format(
            context=format_company_context(bundle),
            tech_details=tech_details,
            snapshot_count=len(bundle.snapshots),
            procurement="Government contractor" if bundle.procurement else "No government contracts",
        )
        analysis = await capability.analyze(bundle, prompt)
        results = await capability.extract_findings(analysis)

        if bundle.procurement:
            results.append(Finding(
                title="Government Contractor Status",
                detail=(
                    f"Company has {len(bundle.procurement)} government contracts, indicating "
                    "mature processes and compliance needs. Strong opportunity for compliance "
                    "automation and reporting systems."
                ),
                confidence=0.9,
                tags=("procurement", "compliance", "high-value"),
                sources=tuple(
                    Source(title=f"{p.agency or 'Agency'} Contract", url=p.url, date=p.date)
                    for p in bundle.procurement
                ),
            ))
        return _tagged(results, "infrastructure")

    def run_deterministic(self, bundle, findings):
        results = heuristics.analyze_infrastructure(bundle)
        if not results:
            results.append(heuristics.limited_visibility("Infrastructure", "technology or procurement"))
        return results


class CrossVerificationStage(AnalysisStage):
    """Filter, re-weight and deduplicate the union of stages 1-3."""

    name = "cross_verification"
    requires_findings = False

    async def run_with_capability(self, capability, bundle, findings):
        prompt = USER_PROMPT_VERIFY_TEMPLATE.format(
            context=format_company_context(bundle),
            findings=format_findings(findings),
        )
        response = await capability.complete(prompt)
        # ValueError from unparsable output propagates and triggers fallback
        adjustments = parse_llm_json(response).get("adjustments") or []

        by_title = {}
        for item in adjustments:
            if not isinstance(item, dict) or "title" not in item:
                continue
            try:
                by_title[str(item["title"]).strip()] = float(item["confidence"])
            except (KeyError, TypeError, ValueError):
                continue

        adjusted = [
            f.with_confidence(by_title[f.title]) if f.title in by_title else f
            for f in findings
        ]
        return heuristics.verify_findings(adjusted)

    def run_deterministic(self, bundle, findings):
        return heuristics.verify_findings(findings)

    def on_failure(self, findings):
        return list(findings)


class SynthesisStage(AnalysisStage):
    """Score the verified findings and put the summary finding first."""

    name = "synthesis"
    requires_findings = False

    async def run_with_capability(self, capability, bundle, findings):
        prompt = USER_PROMPT_SYNTHESIS_TEMPLATE.format(
            name=bundle.identity.display_name,
            count=len(findings),
            findings="\n".join(f"- {f.title}: {f.detail}" for f in findings[:10]) or "- None",
        )
        text = await capability.complete(prompt)

        baseline = heuristics.score_automation_potential(bundle, findings)
        match = SCORE_PATTERN.search(text)
        if match:
            score = round(max(0.0, min(10.0, float(match.group(1)))), 1)
            result = heuristics.AutomationScore(
                score=score,
                confidence=baseline.confidence,
                level=heuristics.level_for_score(score),
            )
        else:
            result = baseline

        summary = heuristics.summary_finding(
            bundle,
            findings,
            result,
            title="Comprehensive Automation Strategy",
            detail=text,
            extra_tags=("executive-summary",),
        )
        return heuristics.prioritize(summary, findings, quick_win_bonus=True)

    def run_deterministic(self, bundle, findings):
        result = heuristics.score_automation_potential(bundle, findings)
        summary = heuristics.summary_finding(bundle, findings, result)
        return heuristics.prioritize(summary, findings)

    def on_failure(self, findings):
        return list(findings)


def default_stages():
    """(evidence stages run concurrently, verification stage, synthesis stage)."""
    return (
        [TechnicalSignalsStage(), BusinessContextStage(), InfrastructureDepthStage()],
        CrossVerificationStage(),
        SynthesisStage(),
    )
