"""Base stage handler abstraction

Each funnel page has one handler. Handlers raise FunnelError subclasses when
something goes wrong; execute() turns any failure into a StageResult with a
screenshot so the state machine can stop with full context.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional
from loguru import logger

from src.browser.session import screenshot_path
from src.funnel.errors import FunnelError, error_kind
from src.funnel.models import (
    ApplicantProfile,
    DriverRecord,
    FunnelStage,
    PolicyPreferences,
    QuoteRecord,
    StageResult,
    VehicleRecord,
)


@dataclass
class StageContext:
    """Everything a handler may read or use during one run"""
    driver: Any
    engine: Any
    config: Any
    applicant: ApplicantProfile
    vehicles: List[VehicleRecord]
    drivers: List[DriverRecord]
    policy: PolicyPreferences
    correlation_id: str = "N/A"
    supports_multiple: bool = True
    quotes: List[QuoteRecord] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)

    @property
    def primary_vehicle(self) -> Optional[VehicleRecord]:
        return self.vehicles[0] if self.vehicles else None

    @property
    def primary_driver(self) -> Optional[DriverRecord]:
        return self.drivers[0] if self.drivers else None

    @property
    def timeouts(self):
        return self.config.timeouts

    async def capture(self, name: str) -> Optional[str]:
        """Full-viewport screenshot named by stage and timestamp; never raises"""
        try:
            path = screenshot_path(self.config.screenshots_dir, name)
            await self.driver.screenshot(str(path))
        except Exception as e:
            logger.warning(f"[{self.correlation_id}] Failed to save screenshot {name}: {e}")
            return None
        self.screenshots.append(str(path))
        logger.debug(f"[{self.correlation_id}] Screenshot saved: {path}")
        return str(path)


class BaseStage(ABC):
    """Abstract base class for funnel stage handlers"""

    stage: FunnelStage
    continue_selector: Optional[str] = None

    def __init__(self):
        self.name = self.stage.value
        logger.debug(f"Initialized {self.name} stage handler")

    @abstractmethod
    async def handle(self, ctx: StageContext) -> StageResult:
        """
        Populate and submit the page

        Args:
            ctx: Run context (data model slice, engine, config)

        Returns:
            StageResult; failures may also be raised as FunnelError
        """
        pass

    async def execute(self, ctx: StageContext) -> StageResult:
        """Run the handler and fold any failure into a StageResult"""
        logger.info(f"[{ctx.correlation_id}] Handling {self.name} stage")
        try:
            result = await self.handle(ctx)
        except FunnelError as e:
            logger.error(f"[{ctx.correlation_id}] {self.name} failed ({e.kind}): {e}")
            result = self.failure(str(e), error=e)
        except Exception as e:
            logger.exception(f"[{ctx.correlation_id}] Unexpected error in {self.name}: {e}")
            result = self.failure(f"Unexpected error in {self.name}: {e}", error=e)

        result.location = ctx.driver.url
        if result.success:
            logger.success(f"[{ctx.correlation_id}] {self.name}: {result.message}")
            if ctx.config.debug:
                result.screenshot = await ctx.capture(f"{self.name}_debug")
        else:
            result.screenshot = await ctx.capture(f"{self.name}_failed")
        return result

    def success(self, message: str, **payload) -> StageResult:
        return StageResult(success=True, message=message, stage=self.stage, payload=payload)

    def failure(
        self,
        message: str,
        error: Optional[BaseException] = None,
        errors: Optional[List[str]] = None
    ) -> StageResult:
        return StageResult(
            success=False,
            message=message,
            stage=self.stage,
            error=str(error) if error else message,
            error_kind=error_kind(error),
            errors=list(errors or []),
        )

    async def advance(self, ctx: StageContext, selector: Optional[str] = None) -> str:
        """Invoke the page's continue control"""
        return await ctx.engine.robust_click(selector or self.continue_selector)
