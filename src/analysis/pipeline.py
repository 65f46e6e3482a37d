"""
Five-stage analysis pipeline.

Turns one EvidenceBundle into a ranked, confidence-scored list of Findings:

    technical_signals ┐
    business_context  ├─> cross_verification ─> synthesis
    infrastructure    ┘

Stages 1-3 run concurrently; stage 4 waits for all three and stage 5 for
stage 4. Capability availability is checked once per run. When it is
available each stage tries the capability-backed implementation first and,
on any error or timeout, falls back to its deterministic implementation for
that stage only. The pipeline never aborts because of one stage.
"""

import asyncio
import uuid
from typing import List, Optional, Sequence

from src.analysis.capability import AnalysisCapability
from src.analysis.heuristics import TAG_SYNTHESIS
from src.analysis.stages import AnalysisStage, StageStrategy, default_stages
from src.common.errors import CapabilityUnavailable
from src.common.logger import PipelineLogger, get_logger
from src.common.types import EvidenceBundle, Finding, PipelineRun


class AnalysisPipeline:
    """Runs the stages for one company at a time; safe to share across runs."""

    def __init__(
        self,
        capability: Optional[AnalysisCapability] = None,
        stage_timeout_seconds: float = 60.0,
        evidence_stages: Optional[Sequence[AnalysisStage]] = None,
        verification_stage: Optional[AnalysisStage] = None,
        synthesis_stage: Optional[AnalysisStage] = None,
    ):
        """
        Args:
            capability: Optional analysis capability; None means deterministic only
            stage_timeout_seconds: Bound on each capability-backed stage call
            evidence_stages / verification_stage / synthesis_stage: Overrides
                for the default stages (tests)
        """
        defaults = default_stages()
        self.capability = capability
        self.stage_timeout_seconds = stage_timeout_seconds
        self.evidence_stages = list(evidence_stages) if evidence_stages is not None else defaults[0]
        self.verification_stage = verification_stage or defaults[1]
        self.synthesis_stage = synthesis_stage or defaults[2]

    async def _capability_available(self, log: PipelineLogger) -> bool:
        if self.capability is None:
            return False
        try:
            available = await self.capability.is_available()
        except Exception as e:
            log.warning(f"Capability availability check failed: {e}")
            return False
        if not available:
            log.info("Capability configured but unavailable; using deterministic stages")
        return available

    async def _run_stage(
        self,
        stage: AnalysisStage,
        bundle: EvidenceBundle,
        findings: List[Finding],
        use_capability: bool,
        run: PipelineRun,
    ) -> List[Finding]:
        log = get_logger(__name__, run_id=run.run_id, stage=stage.name)

        if use_capability:
            try:
                results = await asyncio.wait_for(
                    stage.run_with_capability(self.capability, bundle, findings),
                    timeout=self.stage_timeout_seconds,
                )
                if stage.requires_findings and not results:
                    raise CapabilityUnavailable("capability returned no findings")
                run.record(stage.name, results, StageStrategy.CAPABILITY.value)
                log.info(f"{len(results)} findings (capability)")
                return results
            except asyncio.TimeoutError as e:
                log.warning(f"Capability timed out after {self.stage_timeout_seconds}s, falling back")
                run.errors.add_error(
                    stage.name, "capability_analysis",
                    f"timed out after {self.stage_timeout_seconds}s",
                    severity="low", exception=e,
                )
            except Exception as e:
                log.warning(f"Capability failed, falling back to deterministic: {e}")
                run.errors.add_error(
                    stage.name, "capability_analysis", str(e), severity="low", exception=e
                )

        try:
            results = stage.run_deterministic(bundle, findings)
        except Exception as e:
            log.exception(f"Deterministic analysis failed: {e}")
            run.errors.add_error(
                stage.name, "deterministic_analysis", str(e), severity="high", exception=e
            )
            results = stage.on_failure(findings)

        run.record(stage.name, results, StageStrategy.DETERMINISTIC.value)
        log.info(f"{len(results)} findings (deterministic)")
        return results

    async def run(self, bundle: EvidenceBundle, run_id: Optional[str] = None) -> PipelineRun:
        run = PipelineRun(identity=bundle.identity, run_id=run_id or uuid.uuid4().hex)
        log = get_logger(__name__, run_id=run.run_id)
        log.info(f"Analyzing {bundle.identity.display_name} ({bundle.data_points()} evidence facets)")

        use_capability = await self._capability_available(log)

        evidence_results = await asyncio.gather(*(
            self._run_stage(stage, bundle, [], use_capability, run)
            for stage in self.evidence_stages
        ))
        preliminary = [f for batch in evidence_results for f in batch]

        verified = await self._run_stage(
            self.verification_stage, bundle, preliminary, use_capability, run
        )
        final = await self._run_stage(
            self.synthesis_stage, bundle, verified, use_capability, run
        )

        run.findings = final
        summary = final[0] if final and final[0].has_tag(TAG_SYNTHESIS) else None
        if summary is not None:
            run.automation_score = float(summary.metadata.get("automation_score", 0.0))
            run.level = summary.metadata.get("level", "low-potential")
            run.confidence = summary.confidence
        else:
            run.level = "low-potential"

        log.info(
            f"Analysis complete: score {run.automation_score}/10 ({run.level}), "
            f"{len(final)} findings, {len(run.errors)} stage fallbacks"
        )
        return run
