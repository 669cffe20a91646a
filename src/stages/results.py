"""Closing stages: quote results, contact method, add-on offers, thank you"""

from typing import List, Optional, Sequence
from loguru import logger

from src.browser.driver import Clickable
from src.funnel.models import FunnelStage, StageResult
from src.funnel.quotes import CARRIER_BUTTON_SELECTOR, extract_quotes, has_priced_panel
from src.stages.base import BaseStage, StageContext
from src.stages.lookups import QUOTE_SORT_KEYS


# =============================================================================
# RESULTS SELECTORS
# =============================================================================

SORT_SELECTOR = "#ComparisonSortList"
MAX_COMPARED_QUOTES = 3

PHONE_WORDS = ("phone", "call")
EMAIL_WORDS = ("email", "mail")

DECLINE_ADDONS = "#moreLob"


def choose_contact(clickables: Sequence[Clickable], preference: str) -> Optional[Clickable]:
    """
    Choose the control for a phone/email preference.

    Text match first, then position (first = phone, second = email), then the
    only or first control.
    """
    if not clickables:
        return None

    wants_email = (preference or "phone").strip().lower() in EMAIL_WORDS
    words = EMAIL_WORDS if wants_email else PHONE_WORDS

    for item in clickables:
        label = f"{item.text} {item.value}".lower()
        if any(word in label for word in words):
            return item

    position = 1 if wants_email else 0
    if len(clickables) > position:
        return clickables[position]
    return clickables[0]


class QuoteResultsStage(BaseStage):
    """Wait for priced quotes, optionally sort and select one, then extract"""

    stage = FunnelStage.QUOTE_RESULTS

    async def handle(self, ctx: StageContext) -> StageResult:
        engine = ctx.engine
        policy = ctx.policy

        priced = await engine.wait_for_ready(
            lambda: has_priced_panel(ctx.driver),
            ctx.timeouts.quote_results_ms,
            "a priced quote panel",
            required=False
        )
        if priced:
            await ctx.capture("quote_results")

        if priced and policy.sort_by:
            await self._sort(ctx, policy.sort_by)

        quotes = await extract_quotes(ctx.driver, ctx.config.premium_window, ctx.correlation_id)
        ctx.quotes = quotes

        selected = None
        if policy.select_quote_index is not None:
            selected = await self._select_quote(ctx, policy.select_quote_index)

        if not quotes:
            return self.success("Reached quote results; no quotes found", quotes_found=0)
        return self.success(
            f"Found {len(quotes)} quote(s)",
            quotes_found=len(quotes),
            selected_index=selected,
        )

    async def _sort(self, ctx: StageContext, sort_by: str):
        key = QUOTE_SORT_KEYS.get(sort_by)
        if key is None:
            logger.warning(f"[{ctx.correlation_id}] Unknown sort key '{sort_by}', keeping site order")
            return
        if await ctx.engine.select_if_present(SORT_SELECTOR, key):
            logger.info(f"[{ctx.correlation_id}] Quotes sorted by {key}")
            await ctx.engine.wait_for_ready(
                lambda: has_priced_panel(ctx.driver),
                ctx.timeouts.page_transition_ms,
                "quotes to re-render after sorting",
                required=False
            )

    async def _select_quote(self, ctx: StageContext, index: int) -> Optional[int]:
        """Hover a few competing quotes before clicking the chosen one's select button"""
        quotes = ctx.quotes
        if not 0 <= index < len(quotes):
            logger.warning(f"[{ctx.correlation_id}] Quote index {index} out of range ({len(quotes)} quotes)")
            return None

        button = quotes[index].button_index
        buttons = await ctx.driver.count(CARRIER_BUTTON_SELECTOR)
        if button is None or button >= buttons:
            logger.warning(f"[{ctx.correlation_id}] No select button for quote {index}")
            return None

        competitors: List[int] = [
            q.button_index for q in quotes
            if q.button_index is not None and q.button_index != button and q.button_index < buttons
        ][:MAX_COMPARED_QUOTES]
        for other in competitors:
            try:
                await ctx.driver.hover_nth(CARRIER_BUTTON_SELECTOR, other)
                await ctx.engine.jitter()
            except Exception as e:
                logger.debug(f"[{ctx.correlation_id}] Hover on select button {other} failed: {e}")

        await ctx.driver.click_nth(CARRIER_BUTTON_SELECTOR, button, ctx.timeouts.click_ms)
        await ctx.engine.jitter()
        logger.info(
            f"[{ctx.correlation_id}] Selected quote {index} ({quotes[index].carrier or 'unknown carrier'}) "
            f"after comparing buttons {competitors}"
        )
        return index


class ContactMethodStage(BaseStage):
    """Pick phone or email follow-up"""

    stage = FunnelStage.CONTACT_METHOD

    async def handle(self, ctx: StageContext) -> StageResult:
        selector = ctx.config.selectors.contact_clickables
        clickables = await ctx.driver.clickables(selector)
        choice = choose_contact(clickables, ctx.policy.contact_method)
        if choice is None:
            return self.failure("No clickable contact options found")

        label = choice.text or choice.value or choice.element_id or f"control {choice.index}"
        await ctx.driver.click_clickable(selector, choice.index)
        await ctx.engine.jitter()
        return self.success(f"Contact method chosen: {label}", contact=label)


class AlsoInterestedStage(BaseStage):
    """Decline add-on product offers"""

    stage = FunnelStage.ALSO_INTERESTED
    continue_selector = DECLINE_ADDONS

    async def handle(self, ctx: StageContext) -> StageResult:
        await self.advance(ctx)
        return self.success("Declined additional offers")


class ThankYouStage(BaseStage):
    """Terminal page"""

    stage = FunnelStage.THANK_YOU

    async def handle(self, ctx: StageContext) -> StageResult:
        text = (await ctx.driver.body_text()).lower()
        found = [word for word in ctx.config.selectors.completion_indicators if word in text]
        await ctx.capture("thank_you")
        if found:
            return self.success("Quote request completed", indicators=found)
        logger.warning(f"[{ctx.correlation_id}] Thank-you page shows no completion text")
        return self.success("Reached thank-you page", indicators=[])
