"""
Unit tests for src/analysis/capability.py

Tests the LangChain-backed capability with a mocked chat model:
- Successful completions and system prompts
- Failure, empty answer and timeout all surface as CapabilityUnavailable
- Retry on transient errors
- Findings extraction and validation
- Provider factory
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from fixtures.sample_companies import acme_bundle
from src.analysis.capability import LangChainCapability, create_capability
from src.analysis.prompts import SYSTEM_PROMPT_ANALYST
from src.common.config import CapabilityConfig
from src.common.errors import CapabilityUnavailable


# ===== FIXTURES =====

def make_config(**overrides):
    defaults = dict(provider="openai", api_key="sk-test", model="gpt-4o-mini", timeout_seconds=2)
    defaults.update(overrides)
    return CapabilityConfig(**defaults)


def make_llm(*contents):
    """Mock chat model returning the given contents in order."""
    llm = MagicMock()
    llm.ainvoke = AsyncMock(side_effect=[MagicMock(content=c) for c in contents])
    return llm


def make_capability(llm, **config_overrides):
    return LangChainCapability(make_config(**config_overrides), llm=llm, max_attempts=1)


# ===== TESTS: complete() =====

@pytest.mark.asyncio
class TestComplete:
    """Tests for free-text completion."""

    async def test_returns_stripped_text(self):
        capability = make_capability(make_llm("  Manual invoicing dominates.  "))
        assert await capability.complete("Analyze") == "Manual invoicing dominates."

    async def test_sends_system_and_human_messages(self):
        """The system prompt precedes the user prompt."""
        llm = make_llm("ok")
        capability = make_capability(llm)

        await capability.complete("Analyze", system="You are an analyst")

        messages = llm.ainvoke.call_args[0][0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "Analyze"

    async def test_analyze_prefixes_company_context(self):
        """analyze() sends the company context and the analyst system prompt."""
        llm = make_llm("ok")
        capability = make_capability(llm)

        await capability.analyze(acme_bundle(), "Find manual work")

        system, human = llm.ainvoke.call_args[0][0]
        assert system.content == SYSTEM_PROMPT_ANALYST
        assert "Acme Logistics" in human.content
        assert human.content.endswith("Find manual work")

    async def test_error_becomes_unavailable(self):
        """Provider errors surface as CapabilityUnavailable."""
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("502 bad gateway"))
        capability = make_capability(llm)

        with pytest.raises(CapabilityUnavailable, match="502 bad gateway"):
            await capability.complete("Analyze")

    async def test_empty_answer_is_unavailable(self):
        """A blank answer counts as a failure."""
        capability = make_capability(make_llm("   "))

        with pytest.raises(CapabilityUnavailable, match="empty response"):
            await capability.complete("Analyze")

    async def test_timeout_is_unavailable(self):
        """Calls slower than the configured timeout are abandoned."""
        async def slow(messages):
            await asyncio.sleep(1)
            return MagicMock(content="too late")

        llm = MagicMock()
        llm.ainvoke = slow
        capability = make_capability(llm, timeout_seconds=0.05)

        with pytest.raises(CapabilityUnavailable, match="timed out"):
            await capability.complete("Analyze")

    async def test_retries_transient_error(self):
        """A failed attempt is retried before giving up."""
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=[RuntimeError("flaky"), MagicMock(content="recovered")])
        capability = LangChainCapability(make_config(timeout_seconds=10), llm=llm, max_attempts=2)

        assert await capability.complete("Analyze") == "recovered"
        assert llm.ainvoke.call_count == 2


@pytest.mark.asyncio
class TestIsAvailable:
    """Tests for availability."""

    async def test_available_with_key(self):
        assert await make_capability(make_llm()).is_available() is True

    async def test_local_server_without_key(self):
        """A base URL is enough for a local inference server."""
        capability = make_capability(
            make_llm(), provider="local", api_key=None, base_url="http://localhost:8080/v1"
        )
        assert await capability.is_available() is True

    async def test_unavailable_without_key_or_url(self):
        capability = make_capability(make_llm(), api_key=None)
        assert await capability.is_available() is False


# ===== TESTS: extract_findings() =====

@pytest.mark.asyncio
class TestExtractFindings:
    """Tests for turning free text into validated findings."""

    async def test_valid_items_become_findings(self):
        """Items are validated; tags are normalized to lower case."""
        response = (
            '```json\n[{"title": "Invoice OCR", "detail": "Manual keying", '
            '"confidence": 0.85, "tags": ["Quick-Win "], '
            '"sources": [{"title": "Billing Clerk posting"}]}]\n```'
        )
        capability = make_capability(make_llm(response))

        findings = await capability.extract_findings("analysis text")

        assert len(findings) == 1
        assert findings[0].title == "Invoice OCR"
        assert findings[0].confidence == 0.85
        assert findings[0].tags == ("quick-win",)
        assert findings[0].sources[0].title == "Billing Clerk posting"

    async def test_invalid_items_skipped(self):
        """Items failing validation are dropped, valid ones kept."""
        response = (
            '[{"title": "Good", "confidence": 0.7}, '
            '{"title": "", "confidence": 0.7}, '
            '{"title": "Out of range", "confidence": 4}]'
        )
        capability = make_capability(make_llm(response))

        findings = await capability.extract_findings("analysis text")

        assert [f.title for f in findings] == ["Good"]

    async def test_defaults_applied(self):
        """Missing confidence defaults to 0.7."""
        capability = make_capability(make_llm('{"findings": [{"title": "Bare"}]}'))
        findings = await capability.extract_findings("analysis text")
        assert findings[0].confidence == 0.7

    async def test_no_valid_items_raises(self):
        capability = make_capability(make_llm('[{"title": ""}]'))
        with pytest.raises(CapabilityUnavailable, match="No valid findings"):
            await capability.extract_findings("analysis text")

    async def test_unparsable_raises(self):
        capability = make_capability(make_llm("I could not find anything useful."))
        with pytest.raises(CapabilityUnavailable, match="Unparsable"):
            await capability.extract_findings("analysis text")


# ===== TESTS: create_capability() =====

class TestCreateCapability:
    """Tests for the provider factory."""

    def test_disabled_returns_none(self):
        assert create_capability(CapabilityConfig()) is None

    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_capability(make_config(provider="carrier-pigeon"))

    @pytest.mark.parametrize("provider", ["openai", "OpenRouter", "local"])
    def test_supported_providers(self, provider):
        capability = create_capability(
            make_config(provider=provider, base_url="http://localhost:8080/v1")
        )
        assert isinstance(capability, LangChainCapability)
        assert capability.name.endswith("gpt-4o-mini")
