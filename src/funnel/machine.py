"""Funnel state machine

Runs Personal Info, then repeatedly detects the next showing stage and
dispatches its handler until ThankYou, a handler failure, or no further stage
shows up.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional
from loguru import logger

from src.analytics.metrics import MetricsTracker
from src.browser.interaction import InteractionEngine
from src.funnel.detection import StageDetector, build_signatures
from src.funnel.errors import StageDetectionTimeout
from src.funnel.models import (
    ApplicantProfile,
    DriverRecord,
    FunnelStage,
    PolicyPreferences,
    RunResult,
    StageResult,
    STAGE_ORDER,
    VehicleRecord,
)
from src.funnel.quotes import extract_quotes
from src.stages.base import StageContext
from src.stages.registry import StageRegistry


# Handling either of these means a results page should follow
QUOTE_TRIGGER_STAGES = frozenset({FunnelStage.COVERAGE_OPTIONS, FunnelStage.PROPERTY_INFO})


class FunnelStateMachine:
    """Drives one funnel run over an already-open page"""

    def __init__(
        self,
        driver,
        config,
        correlation_id: str = "N/A",
        registry: Optional[StageRegistry] = None,
        metrics: Optional[MetricsTracker] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Args:
            driver: PageDriver for the run's page
            config: FunnelConfig
            correlation_id: Unique ID for logging/tracing
            registry: Stage handlers (defaults to the built-in set)
            metrics: Metrics tracker for this run
            sleep: Suspension used for pacing and polling
        """
        self.driver = driver
        self.config = config
        self.correlation_id = correlation_id
        self.registry = registry or StageRegistry()
        self.metrics = metrics or MetricsTracker()
        self.engine = InteractionEngine(
            driver,
            correlation_id=correlation_id,
            jitter_ms=(config.pacing.jitter_min_ms, config.pacing.jitter_max_ms),
            typing_delay_ms=config.pacing.typing_delay_ms,
            poll_interval_ms=config.timeouts.poll_interval_ms,
            click_timeout_ms=config.timeouts.click_ms,
            sleep=sleep,
        )
        self.detector = StageDetector(
            self.engine,
            build_signatures(config.stages),
            config.timeouts.stage_probe_ms,
        )

    async def run(
        self,
        applicant: ApplicantProfile,
        vehicles: List[VehicleRecord],
        drivers: List[DriverRecord],
        policy: PolicyPreferences,
        first_step_only: bool = False
    ) -> RunResult:
        """
        Execute the funnel.

        Args:
            first_step_only: Stop after Personal Info has been submitted

        Returns:
            RunResult: failure with the failing stage's context, or success
            with any quotes collected
        """
        ctx = StageContext(
            driver=self.driver,
            engine=self.engine,
            config=self.config,
            applicant=applicant,
            vehicles=list(vehicles),
            drivers=list(drivers),
            policy=policy,
            correlation_id=self.correlation_id,
            supports_multiple=self.config.supports_multiple,
        )
        logger.info(
            f"[{self.correlation_id}] Starting funnel run: {len(ctx.vehicles)} vehicle(s), "
            f"{len(ctx.drivers)} driver(s), multi-entity={ctx.supports_multiple}"
        )

        results: List[StageResult] = []
        first = await self._dispatch(FunnelStage.PERSONAL_INFO, ctx)
        results.append(first)
        if not first.success:
            return self._failed(first, results, ctx)
        if first_step_only:
            logger.success(f"[{self.correlation_id}] First step only: {first.message}")
            return RunResult(
                success=True,
                message=first.message,
                current_stage=first.location,
                stage=first.stage,
                stage_results=results,
            )

        last = FunnelStage.PERSONAL_INFO
        fallback_tried = False
        while last is not FunnelStage.THANK_YOU:
            candidates = STAGE_ORDER[last.order + 1:]
            stage = await self.detector.detect(candidates)

            if stage is None and self._quotes_expected(last) and not fallback_tried:
                fallback_tried = True
                logger.info(f"[{self.correlation_id}] Waiting longer for quote results after {last.value}")
                stage = await self.detector.detect(candidates, self.config.timeouts.quote_fallback_ms)
                if stage is None:
                    logger.warning(f"[{self.correlation_id}] Quote results never showed; extracting from current page")
                    ctx.quotes = await extract_quotes(self.driver, self.config.premium_window, self.correlation_id)

            if stage is None:
                break

            result = await self._dispatch(stage, ctx)
            results.append(result)
            if not result.success:
                return self._failed(result, results, ctx)
            last = stage

        if last is FunnelStage.PERSONAL_INFO and not await self._shows_completion():
            error = StageDetectionTimeout([s.value for s in STAGE_ORDER[1:]], self.config.timeouts.stage_probe_ms)
            logger.error(f"[{self.correlation_id}] {error}")
            screenshot = await ctx.capture("stage_detection_failed")
            return RunResult(
                success=False,
                message=str(error),
                current_stage=self.driver.url,
                stage=last,
                error_kind=error.kind,
                errors=[str(error)],
                stage_results=results,
                step=f"screenshot:{screenshot}" if screenshot else None,
            )

        return self._completed(last, results, ctx)

    async def _dispatch(self, stage: FunnelStage, ctx: StageContext) -> StageResult:
        handler = self.registry.get_handler(stage)
        started = time.monotonic()
        result = await handler.execute(ctx)
        self.metrics.record_stage(stage.value, result.success, result.message, time.monotonic() - started)
        if not result.success:
            self.metrics.record_failure(
                failure_type=result.error_kind or "StageFailure",
                component=stage.value,
                reason=result.message,
                context={"location": result.location, "screenshot": result.screenshot}
            )
        return result

    @staticmethod
    def _quotes_expected(last: FunnelStage) -> bool:
        return last in QUOTE_TRIGGER_STAGES

    async def _shows_completion(self) -> bool:
        try:
            text = (await self.driver.body_text()).lower()
        except Exception as e:
            logger.debug(f"[{self.correlation_id}] Could not read page text: {e}")
            return False
        return any(word in text for word in self.config.selectors.completion_indicators)

    def _failed(self, result: StageResult, results: List[StageResult], ctx: StageContext) -> RunResult:
        logger.error(f"[{self.correlation_id}] Run stopped at {result.stage.value}: {result.message}")
        return RunResult(
            success=False,
            message=result.message,
            current_stage=result.location,
            stage=result.stage,
            error_kind=result.error_kind,
            errors=result.errors or [result.error or result.message],
            quotes=ctx.quotes,
            stage_results=results,
        )

    def _completed(self, last: FunnelStage, results: List[StageResult], ctx: StageContext) -> RunResult:
        self.metrics.record_quotes(len(ctx.quotes))
        if last is FunnelStage.THANK_YOU:
            message = results[-1].message
        else:
            message = f"Funnel completed through {last.value}"
        if ctx.quotes:
            message = f"{message}; {len(ctx.quotes)} quote(s) found"
        else:
            message = f"{message}; no quotes found"

        logger.success(f"[{self.correlation_id}] {message}")
        return RunResult(
            success=True,
            message=message,
            current_stage=self.driver.url,
            stage=last,
            quotes=ctx.quotes,
            stage_results=results,
        )
