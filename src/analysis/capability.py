"""
Natural-language analysis capability.

The pipeline only depends on AnalysisCapability: "given evidence and an
instruction, return free text" plus "turn free text into Findings". The
concrete LangChainCapability talks to any OpenAI-compatible endpoint
(OpenAI, OpenRouter or a local inference server) through ChatOpenAI.

Every failure surfaces as CapabilityUnavailable so the pipeline can fall
back to the deterministic stage implementation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, ValidationError
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from src.analysis.prompts import (
    SYSTEM_PROMPT_ANALYST,
    USER_PROMPT_EXTRACT_TEMPLATE,
    format_company_context,
)
from src.common.config import CapabilityConfig
from src.common.errors import CapabilityUnavailable
from src.common.json_utils import parse_llm_json_list
from src.common.types import EvidenceBundle, Finding, Source

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "openrouter", "local")


# ===== PYDANTIC MODELS FOR OUTPUT VALIDATION =====

class SourceModel(BaseModel):
    title: str = Field(default="Model analysis", min_length=1)
    url: Optional[str] = None
    date: Optional[str] = None


class FindingModel(BaseModel):
    """One finding as returned by the model."""

    title: str = Field(..., min_length=1)
    detail: str = Field(default="")
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    sources: List[SourceModel] = Field(default_factory=list)

    def to_finding(self) -> Finding:
        return Finding(
            title=self.title.strip(),
            detail=self.detail.strip(),
            confidence=self.confidence,
            tags=tuple(tag.strip().lower() for tag in self.tags if tag.strip()),
            sources=tuple(Source(title=s.title, url=s.url, date=s.date) for s in self.sources),
        )


class AnalysisCapability(ABC):
    """Interface the capability-backed stage variants depend on."""

    name: str = "capability"

    @abstractmethod
    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        """
        Return the model's free-text answer.

        Raises:
            CapabilityUnavailable: On any error, timeout or empty answer
        """
        pass

    async def is_available(self) -> bool:
        return True

    async def analyze(self, bundle: EvidenceBundle, instruction: str) -> str:
        """Run a task-specific instruction against the company's evidence."""
        prompt = f"{format_company_context(bundle)}\n\n{instruction}"
        return await self.complete(prompt, system=SYSTEM_PROMPT_ANALYST)

    async def extract_findings(self, analysis: str) -> List[Finding]:
        """
        Parse free-text analysis into Findings.

        Items that fail validation are skipped; a response with no usable
        item at all raises CapabilityUnavailable.
        """
        response = await self.complete(USER_PROMPT_EXTRACT_TEMPLATE.format(analysis=analysis))
        try:
            items = parse_llm_json_list(response)
        except ValueError as e:
            raise CapabilityUnavailable(f"Unparsable findings from {self.name}: {e}") from e

        findings: List[Finding] = []
        for item in items:
            try:
                findings.append(FindingModel.model_validate(item).to_finding())
            except ValidationError as e:
                logger.debug(f"Skipping invalid finding from {self.name}: {e}")

        if not findings:
            raise CapabilityUnavailable(f"No valid findings in {self.name} response")
        return findings

    async def close(self) -> None:
        return None


class LangChainCapability(AnalysisCapability):
    """ChatOpenAI-backed capability with retry and a per-call timeout."""

    def __init__(
        self,
        config: CapabilityConfig,
        llm=None,
        max_attempts: int = 2,
    ):
        """
        Args:
            config: Provider, model and timeout settings
            llm: Pre-built chat model (tests inject a mock)
            max_attempts: Attempts per call before giving up
        """
        self.config = config
        self.name = f"{config.provider}:{config.model}"
        self.max_attempts = max_attempts
        self.llm = llm if llm is not None else ChatOpenAI(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            # Local inference servers accept any key
            api_key=config.api_key or "not-needed",
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )

    async def is_available(self) -> bool:
        return self.config.enabled and bool(self.config.api_key or self.config.base_url)

    async def _invoke(self, messages) -> str:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=5),
            reraise=True,
        ):
            with attempt:
                response = await self.llm.ainvoke(messages)
        return response.content if isinstance(response.content, str) else str(response.content)

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        try:
            text = await asyncio.wait_for(
                self._invoke(messages), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise CapabilityUnavailable(
                f"{self.name} timed out after {self.config.timeout_seconds}s"
            ) from e
        except CapabilityUnavailable:
            raise
        except Exception as e:
            raise CapabilityUnavailable(f"{self.name} call failed: {e}") from e

        if not text or not text.strip():
            raise CapabilityUnavailable(f"{self.name} returned an empty response")
        return text.strip()


def create_capability(config: CapabilityConfig) -> Optional[AnalysisCapability]:
    """
    Build the configured capability, or None when no provider is set.

    Raises:
        ValueError: If the provider is not OpenAI-compatible
    """
    if not config.enabled:
        logger.info("Analysis capability disabled; deterministic stages only")
        return None

    provider = config.provider.lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unknown LLM provider: {config.provider}. "
            f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    logger.info(f"Analysis capability: {provider} ({config.model})")
    return LangChainCapability(config)
