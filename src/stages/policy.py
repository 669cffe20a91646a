"""Policy stages: prior insurance, coverage package, property interest"""

from datetime import date
from typing import Dict, Optional
from loguru import logger

from src.funnel.models import FunnelStage, StageResult
from src.stages.base import BaseStage, StageContext
from src.stages.driver import yes_no
from src.stages.lookups import coverage_package


# =============================================================================
# POLICY SELECTORS
# =============================================================================

POLICY_CONTAINER = "#pg6"
INSURED_PANEL = "#InsuredPan"
INSURED_SELECTOR = "#Insured"
PRIOR_CARRIER_SELECTOR = "#PriorCarrier"
PRIOR_YEARS_SELECTOR = "#PriorInsYears"
PRIOR_MONTHS_SELECTOR = "#PriorInsMonths"
PRIOR_EXPIRY_SELECTOR = "#PriorInsExpiry"
PRIOR_PAYMENT_SELECTOR = "#PriorMonthlyPayment"
REASON_NO_INSURANCE_SELECTOR = "#ReasonNoInsurance"
START_DATE_SELECTOR = "#startDate"
POLICY_CONTINUE = "#pg6btn"

PACKAGE_BUTTONS = 'input[type="button"].pkgSelect[data-pkg][value="Select"]'
ANY_PACKAGE_BUTTON = 'input[type="button"].pkgSelect'
COVERAGE_CONTINUE = "#pg7btn"

PROPERTY_QUOTE_SELECTOR = "#PropQuote"
RESIDENCE_STATUS_PANEL = "#ResidenceStatusPan"
RESIDENCE_STATUS_SELECTOR = "#ResidenceStatus"
RESIDENCE_TYPE_PANEL = "#SelectedResidenceTypePan"
RESIDENCE_TYPE_SELECTOR = "#ResidenceType"
PROPERTY_CONTINUE = "#pg8btn"


def _bound(value: Optional[str]) -> Optional[date]:
    try:
        return date.fromisoformat(value) if value else None
    except ValueError:
        return None


def clamp_date(target: str, bounds: Dict[str, str]) -> str:
    """
    Keep an ISO date inside the field's min/max.

    Unreadable bounds are ignored; an unreadable target is returned unchanged
    and left for set_date to reject.
    """
    try:
        value = date.fromisoformat(target)
    except ValueError:
        return target

    minimum = _bound(bounds.get("min"))
    maximum = _bound(bounds.get("max"))
    if minimum and value < minimum:
        value = minimum
    elif maximum and value > maximum:
        value = maximum
    return value.isoformat()


class PolicyInfoStage(BaseStage):
    """Prior insurance (or reason for none) and policy start date"""

    stage = FunnelStage.POLICY_INFO
    continue_selector = POLICY_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        policy = ctx.policy
        engine = ctx.engine

        insured = await engine.select_if_visible(INSURED_PANEL, INSURED_SELECTOR, yes_no(policy.currently_insured))
        if insured is not None and policy.currently_insured:
            await engine.select_if_present(PRIOR_CARRIER_SELECTOR, policy.prior_carrier)
            for selector, value in (
                (PRIOR_YEARS_SELECTOR, policy.prior_insurance_years),
                (PRIOR_MONTHS_SELECTOR, policy.prior_insurance_months),
                (PRIOR_EXPIRY_SELECTOR, policy.prior_insurance_expiry),
                (PRIOR_PAYMENT_SELECTOR, policy.prior_monthly_payment),
            ):
                if value:
                    await engine.set_text(selector, value)
        elif insured is not None:
            await engine.select_if_present(REASON_NO_INSURANCE_SELECTOR, policy.reason_no_insurance)

        await self._set_start_date(ctx)

        await self.advance(ctx)
        await engine.wait_for_ready(
            lambda: self._policy_hidden(ctx),
            ctx.timeouts.page_transition_ms,
            "policy page to close",
            required=False
        )
        return self.success("Policy information entered")

    async def _policy_hidden(self, ctx: StageContext) -> bool:
        return not await ctx.engine.is_visible(POLICY_CONTAINER)

    async def _set_start_date(self, ctx: StageContext) -> Optional[str]:
        if not (await ctx.engine.probe(START_DATE_SELECTOR)).exists:
            return None
        target = ctx.policy.start_date or date.today().isoformat()
        bounds = await ctx.driver.date_bounds(START_DATE_SELECTOR)
        clamped = clamp_date(target, bounds)
        if clamped != target:
            logger.info(f"[{ctx.correlation_id}] Start date {target} adjusted to {clamped} (allowed {bounds})")
        if await ctx.engine.set_date(START_DATE_SELECTOR, clamped) is None:
            logger.warning(f"[{ctx.correlation_id}] Policy start date could not be set")
            return None
        return clamped


class CoverageOptionsStage(BaseStage):
    """Pick a coverage package by its data-pkg identifier"""

    stage = FunnelStage.COVERAGE_OPTIONS
    continue_selector = COVERAGE_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        engine = ctx.engine
        wanted = coverage_package(ctx.policy.coverage_level)

        await engine.wait_for_ready(
            lambda: self._has_buttons(ctx, ANY_PACKAGE_BUTTON),
            ctx.timeouts.page_transition_ms,
            "coverage package buttons",
            required=False
        )

        packages = await ctx.driver.attribute_values(PACKAGE_BUTTONS, "data-pkg")
        if packages:
            index = packages.index(wanted) if wanted in packages else min(1, len(packages) - 1)
            selector = PACKAGE_BUTTONS
            chosen = packages[index]
        else:
            count = await ctx.driver.count(ANY_PACKAGE_BUTTON)
            if count == 0:
                return self.failure("No coverage selection buttons found")
            index = min(1, count - 1)
            selector = ANY_PACKAGE_BUTTON
            chosen = f"button {index}"

        logger.info(f"[{ctx.correlation_id}] Selecting coverage package {chosen} (wanted {wanted})")
        await ctx.driver.click_nth(selector, index, ctx.timeouts.click_ms)
        await engine.jitter()

        await engine.click_if_present(COVERAGE_CONTINUE)
        return self.success(f"Coverage package selected: {chosen}", package=chosen)

    async def _has_buttons(self, ctx: StageContext, selector: str) -> bool:
        return await ctx.driver.count(selector) > 0


class PropertyInfoStage(BaseStage):
    """Property quote interest and residence panels"""

    stage = FunnelStage.PROPERTY_INFO
    continue_selector = PROPERTY_CONTINUE

    async def handle(self, ctx: StageContext) -> StageResult:
        policy = ctx.policy
        engine = ctx.engine

        await engine.select_option(PROPERTY_QUOTE_SELECTOR, "Y" if policy.property_quote else "N")
        await engine.select_if_visible(RESIDENCE_STATUS_PANEL, RESIDENCE_STATUS_SELECTOR, policy.residence_status)
        await engine.select_if_visible(RESIDENCE_TYPE_PANEL, RESIDENCE_TYPE_SELECTOR, policy.residence_type)

        await ctx.capture("property_info_filled")
        await self.advance(ctx)
        return self.success("Property information entered")
