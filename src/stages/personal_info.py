"""Personal Info stage: the funnel's entry page

Fills applicant identity/contact/address fields, accepts the disclosure,
submits, and classifies the outcome as validation error, address
confirmation interstitial, or advanced.
"""

from typing import List, Optional, Tuple
from loguru import logger

from src.browser.dialogs import dismiss_funnel_dialogs
from src.browser.interaction import race_first
from src.funnel.errors import AmbiguousOptionError, ElementNotInteractable, UnknownPageLayout
from src.funnel.models import FunnelStage, StageResult
from src.stages.base import BaseStage, StageContext
from src.stages.lookups import state_option


# =============================================================================
# PERSONAL INFO SELECTORS
# =============================================================================

FIRST_NAME_SELECTORS = ["#FirstName", "#firstName", 'input[placeholder="First Name"]']
LAST_NAME_SELECTORS = ["#LastName", "#lastName", 'input[placeholder="Last Name"]']
ADDRESS_SELECTORS = ["#InsuredAddress"]
APARTMENT_SELECTORS = ["#InsuredAddress2"]
CITY_SELECTORS = ["#InsuredCity"]
ZIP_SELECTORS = ["#ZIPCode"]
EMAIL_SELECTORS = ["#EmailAddress"]
PHONE_SELECTORS = ["#Phone"]

STATE_SELECTOR = "#InsuredState"
LEAD_SOURCE_SELECTOR = "#LeadSource"
TIME_AT_RESIDENCE_SELECTOR = "#TimeAtResidence"
DISCLOSURE_SELECTOR = "#verifyDisclosure"
SUBMIT_SELECTOR = "#pg0btn"

ADDRESS_CONFIRM_SECTION = "#addressConfirmsection"
# Containers of the pages that can follow Personal Info
NEXT_STAGE_MARKERS = ["#pgPrefill", "#pg1", "#pgVinEnty"]


class PersonalInfoStage(BaseStage):
    """Entry page; always runs first"""

    stage = FunnelStage.PERSONAL_INFO
    continue_selector = SUBMIT_SELECTOR

    async def handle(self, ctx: StageContext) -> StageResult:
        engine = ctx.engine
        await ctx.driver.goto(ctx.config.url, ctx.timeouts.navigation_ms)

        ready = await engine.wait_for_any(ctx.config.selectors.form_ready, ctx.timeouts.form_ready_ms)
        if not ready:
            raise UnknownPageLayout("personal info page", ctx.config.selectors.form_ready)
        logger.debug(f"[{ctx.correlation_id}] Personal info form ready ({ready})")

        await dismiss_funnel_dialogs(engine)

        missed = await self._fill_fields(ctx)
        if missed:
            logger.warning(f"[{ctx.correlation_id}] Fields not verified after typing: {missed}")

        await engine.select_option(STATE_SELECTOR, state_option(ctx.applicant.state))
        for selector, value in (
            (LEAD_SOURCE_SELECTOR, ctx.applicant.lead_source),
            (TIME_AT_RESIDENCE_SELECTOR, ctx.applicant.time_at_residence),
        ):
            try:
                await engine.select_if_present(selector, value)
            except AmbiguousOptionError as e:
                logger.warning(f"[{ctx.correlation_id}] Skipping optional {selector}: {e}")

        if not await engine.check_box(DISCLOSURE_SELECTOR):
            raise ElementNotInteractable(DISCLOSURE_SELECTOR, "disclosure agreement could not be checked")

        await ctx.capture("personal_info_filled")
        await self.advance(ctx)
        return await self._classify_outcome(ctx)

    async def _fill_fields(self, ctx: StageContext) -> List[str]:
        """Type every supplied field; returns labels of fields that did not verify"""
        applicant = ctx.applicant
        fields: List[Tuple[str, List[str], Optional[str]]] = [
            ("first name", FIRST_NAME_SELECTORS, applicant.first_name),
            ("last name", LAST_NAME_SELECTORS, applicant.last_name),
            ("address", ADDRESS_SELECTORS, applicant.address),
            ("apartment", APARTMENT_SELECTORS, applicant.apartment),
            ("city", CITY_SELECTORS, applicant.city),
            ("zip code", ZIP_SELECTORS, applicant.zip_code),
            ("email", EMAIL_SELECTORS, applicant.email),
            ("phone", PHONE_SELECTORS, applicant.phone),
        ]

        missed = []
        for label, selectors, value in fields:
            if not value:
                continue
            selector = await ctx.engine.first_existing(selectors)
            if not selector or not await ctx.engine.set_text(selector, value):
                missed.append(label)
        return missed

    async def _error_messages(self, ctx: StageContext) -> List[str]:
        messages: List[str] = []
        for selector in ctx.config.selectors.error_messages:
            try:
                texts = await ctx.driver.texts(selector, visible_only=True)
            except Exception as e:
                logger.debug(f"[{ctx.correlation_id}] Error selector {selector} unreadable: {e}")
                continue
            for text in texts:
                if text not in messages:
                    messages.append(text)
        return messages

    async def _next_stage_visible(self, ctx: StageContext) -> bool:
        for marker in NEXT_STAGE_MARKERS:
            if await ctx.engine.is_visible(marker):
                return True
        return False

    async def _classify_outcome(self, ctx: StageContext) -> StageResult:
        engine = ctx.engine
        timeout_ms = ctx.timeouts.page_transition_ms

        async def has_errors() -> bool:
            return await engine.poll_until(lambda: self._has_error_messages(ctx), timeout_ms)

        outcome = await race_first(
            {
                "advanced": lambda: engine.poll_until(lambda: self._next_stage_visible(ctx), timeout_ms),
                "address_confirmation": lambda: engine.poll_until(
                    lambda: engine.is_visible(ADDRESS_CONFIRM_SECTION), timeout_ms
                ),
                "validation_error": has_errors,
            },
            timeout_ms,
            ctx.correlation_id
        )

        if outcome == "advanced":
            return self.success("Personal information submitted")

        if outcome == "address_confirmation":
            return await self._confirm_address(ctx)

        if outcome == "validation_error":
            errors = await self._error_messages(ctx)
            return self.failure(f"Form validation errors: {'; '.join(errors)}", errors=errors)

        # Nothing recognizable: still on the form means the submit did not take
        if await engine.is_visible(FIRST_NAME_SELECTORS[0]):
            empty = await ctx.driver.empty_required_fields()
            if empty:
                message = f"Missing required fields: {', '.join(empty)}"
                return self.failure(message, errors=[message])
            return self.failure("Form submission did not advance past personal info")

        return self.success("Personal information submitted (next page not recognized yet)")

    async def _has_error_messages(self, ctx: StageContext) -> bool:
        return bool(await self._error_messages(ctx))

    async def _confirm_address(self, ctx: StageContext) -> StageResult:
        logger.info(f"[{ctx.correlation_id}] Address confirmation shown, continuing with suggested address")
        for selector in ctx.config.selectors.address_confirm:
            if await ctx.engine.click_if_present(selector):
                break
        else:
            raise UnknownPageLayout("address confirmation", ctx.config.selectors.address_confirm)

        await ctx.engine.wait_for_ready(
            lambda: self._next_stage_visible(ctx),
            ctx.timeouts.page_transition_ms,
            "page after address confirmation",
            required=False
        )
        return self.success("Personal information submitted (suggested address confirmed)")
