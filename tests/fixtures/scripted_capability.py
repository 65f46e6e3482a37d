"""
Scripted analysis capability for pipeline and orchestrator tests.

Answers each prompt kind with a canned response instead of calling a model:
- findings extraction -> FINDINGS_JSON
- cross-verification  -> VERIFY_JSON
- synthesis           -> SYNTHESIS_TEXT
- anything else       -> a short free-text analysis

Prompts containing any of `fail_on` raise CapabilityUnavailable, so a test
can break exactly one stage.
"""

import asyncio
import json
from typing import Iterable, List, Optional

from src.analysis.capability import AnalysisCapability
from src.common.errors import CapabilityUnavailable

# Marker substrings of each stage's prompt
TECH_PROMPT = "technical profile for automation opportunities"
JOBS_PROMPT = "Analyze these job postings"
BUSINESS_PROMPT = "business model and market position"
GROWTH_PROMPT = "growth and scaling opportunities"
INFRASTRUCTURE_PROMPT = "deep technical and infrastructure analysis"
VERIFY_PROMPT = "Review these preliminary findings"
SYNTHESIS_PROMPT = "Create an automation strategy"
EXTRACT_PROMPT = "Extract automation opportunities from the following analysis"

MODEL_FINDING_TITLE = "Invoice Processing Automation"

FINDINGS_JSON = json.dumps([
    {
        "title": MODEL_FINDING_TITLE,
        "detail": "Billing clerks key invoices by hand; OCR plus rules would remove most of it.",
        "confidence": 0.8,
        "tags": ["automation-opportunity", "quick-win"],
        "sources": [{"title": "Billing Clerk posting", "url": "https://jobs.example.com/acme/4"}],
    },
    {"title": "", "detail": "invalid: empty title"},
])

VERIFY_JSON = json.dumps({"adjustments": [{"title": MODEL_FINDING_TITLE, "confidence": 0.9}]})

SYNTHESIS_TEXT = (
    "Executive summary: strong candidate for back-office automation.\n"
    "Score: 8.5\n"
    "Quick wins: invoice OCR, shipment status notifications, report generation."
)


class ScriptedCapability(AnalysisCapability):
    name = "scripted"

    def __init__(
        self,
        fail_on: Iterable[str] = (),
        available: bool = True,
        delay_seconds: float = 0.0,
        synthesis_text: str = SYNTHESIS_TEXT,
    ):
        self.fail_on = list(fail_on)
        self.available = available
        self.delay_seconds = delay_seconds
        self.synthesis_text = synthesis_text
        self.prompts: List[str] = []
        self.closed = False

    async def is_available(self) -> bool:
        return self.available

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if any(marker in prompt for marker in self.fail_on):
            raise CapabilityUnavailable("scripted failure")
        if prompt.startswith(EXTRACT_PROMPT):
            return FINDINGS_JSON
        if prompt.startswith(VERIFY_PROMPT):
            return VERIFY_JSON
        if prompt.startswith(SYNTHESIS_PROMPT):
            return self.synthesis_text
        return "The company relies on manual, repetitive back-office work."

    async def close(self) -> None:
        self.closed = True
