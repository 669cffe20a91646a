"""Resilient interaction primitives over a page driver.

Knows nothing about the funnel: it types, selects, clicks and waits, and
reports what happened. Fallback chains are ordered strategy lists evaluated by
first_success(), which keeps every individual failure reason.
"""

import re
import asyncio
import random
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Sequence, Tuple
from loguru import logger

from src.browser.driver import ElementProbe, SelectOption
from src.funnel.errors import (
    AllClickStrategiesFailed,
    AmbiguousOptionError,
    ElementNotFound,
    ElementNotInteractable,
    ReadinessTimeout,
    StrategiesExhausted,
)


Strategy = Tuple[str, Callable[[], Awaitable[Any]]]
Predicate = Callable[[], Awaitable[bool]]

# Value some date widgets fall back to when an assignment did not take
UNSET_DATE_SENTINEL = "1753"


# =============================================================================
# COMBINATORS
# =============================================================================

async def first_success(
    strategies: Sequence[Strategy],
    description: str,
    correlation_id: str = "N/A"
) -> Tuple[str, Any]:
    """
    Run strategies in order until one succeeds.

    A strategy fails by raising or by returning False. Any other return value
    counts as success.

    Returns:
        (strategy name, strategy result)

    Raises:
        StrategiesExhausted: with the (name, reason) of every failed attempt
    """
    failures: List[Tuple[str, str]] = []
    for name, attempt in strategies:
        try:
            result = await attempt()
        except Exception as e:
            reason = str(e).splitlines()[0] if str(e) else type(e).__name__
            failures.append((name, reason))
            logger.debug(f"[{correlation_id}] {description}: strategy '{name}' failed - {reason}")
            continue
        if result is False:
            failures.append((name, "verification failed"))
            logger.debug(f"[{correlation_id}] {description}: strategy '{name}' did not verify")
            continue
        return name, result
    raise StrategiesExhausted(description, failures)


async def race_first(
    probes: Dict[Hashable, Predicate],
    timeout_ms: int,
    correlation_id: str = "N/A"
) -> Optional[Hashable]:
    """
    Race independent readiness probes.

    The first probe to return True wins and the rest are cancelled. Probes that
    raise or return False simply drop out of the race.

    Returns:
        Key of the winning probe, or None if none fired within timeout_ms
    """
    if not probes:
        return None

    loop = asyncio.get_running_loop()
    tasks = {asyncio.ensure_future(probe()): key for key, probe in probes.items()}
    deadline = loop.time() + timeout_ms / 1000
    pending = set(tasks)
    try:
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            # Keep insertion order so simultaneous winners resolve deterministically
            for task in [t for t in tasks if t in done]:
                if task.cancelled():
                    continue
                error = task.exception()
                if error is not None:
                    logger.debug(f"[{correlation_id}] Probe {tasks[task]} raised: {error}")
                    continue
                if task.result():
                    return tasks[task]
        return None
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


# =============================================================================
# MATCHING
# =============================================================================

def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def choose_option(options: Sequence[SelectOption], desired: str) -> Optional[SelectOption]:
    """
    Pick the option for a desired value.

    Exact case-insensitive match on text or value wins. Otherwise the first
    option whose text contains the desired value, or is contained in it.
    Blank options never take part in substring matching.
    """
    target = _normalize(desired)
    if not target:
        return None

    for option in options:
        if _normalize(option.text) == target or _normalize(option.value) == target:
            return option

    for option in options:
        text = _normalize(option.text)
        if not text or not option.value:
            continue
        if target in text or text in target:
            return option

    return None


def values_match(expected: str, actual: Optional[str]) -> bool:
    """Compare a typed value with what the field holds, ignoring input-mask punctuation"""
    if actual is None:
        return False
    if actual == expected:
        return True
    expected_core = re.sub(r'[^0-9a-z]', '', expected.lower())
    return bool(expected_core) and re.sub(r'[^0-9a-z]', '', actual.lower()) == expected_core


def to_locale_date(iso_date: str) -> str:
    """YYYY-MM-DD -> MM/DD/YYYY"""
    return datetime.strptime(iso_date, "%Y-%m-%d").strftime("%m/%d/%Y")


class InteractionEngine:
    """Typing, selecting, clicking and waiting with verification and fallbacks"""

    def __init__(
        self,
        driver,
        correlation_id: str = "N/A",
        jitter_ms: Tuple[int, int] = (800, 2000),
        typing_delay_ms: int = 50,
        poll_interval_ms: int = 250,
        click_timeout_ms: int = 5000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        """
        Args:
            driver: PageDriver (or any object with the same named operations)
            correlation_id: Run ID for logging
            jitter_ms: (min, max) pause after each successful interaction
            typing_delay_ms: Per-character delay when typing
            poll_interval_ms: Readiness poll period
            click_timeout_ms: Timeout for a native click attempt
            sleep: Suspension used for jitter and polling
            rng: Random source for jitter
        """
        self.driver = driver
        self.correlation_id = correlation_id
        self.jitter_ms = jitter_ms
        self.typing_delay_ms = typing_delay_ms
        self.poll_interval_ms = poll_interval_ms
        self.click_timeout_ms = click_timeout_ms
        self._sleep = sleep
        self._rng = rng or random.Random()

    # -------------------------------------------------------------------------
    # Pacing
    # -------------------------------------------------------------------------

    async def jitter(self):
        """Randomized pause after an interaction"""
        low, high = self.jitter_ms
        if high <= 0:
            await self._sleep(0)
            return
        delay_ms = self._rng.uniform(low, high)
        await self._sleep(delay_ms / 1000)

    # -------------------------------------------------------------------------
    # Probing and waiting
    # -------------------------------------------------------------------------

    async def probe(self, selector: str) -> ElementProbe:
        try:
            return await self.driver.probe(selector)
        except Exception as e:
            logger.debug(f"[{self.correlation_id}] Probe failed for {selector}: {e}")
            return ElementProbe()

    async def is_visible(self, selector: str) -> bool:
        return (await self.probe(selector)).visible

    async def poll_until(self, predicate: Predicate, timeout_ms: int) -> bool:
        """Poll a predicate until it holds or timeout_ms elapses; predicate errors count as False"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while True:
            try:
                if await predicate():
                    return True
            except Exception as e:
                logger.debug(f"[{self.correlation_id}] Readiness predicate raised: {e}")
            if loop.time() >= deadline:
                return False
            await self._sleep(self.poll_interval_ms / 1000)

    async def wait_for_ready(
        self,
        predicate: Predicate,
        timeout_ms: int,
        description: str,
        required: bool = True
    ) -> bool:
        """
        Wait for the page's own scripts to finish populating a control.

        Raises:
            ReadinessTimeout: if the predicate never held and required is True
        """
        if await self.poll_until(predicate, timeout_ms):
            logger.debug(f"[{self.correlation_id}] Ready: {description}")
            return True
        if required:
            raise ReadinessTimeout(description, timeout_ms)
        logger.warning(f"[{self.correlation_id}] Not ready after {timeout_ms}ms (continuing): {description}")
        return False

    async def wait_for_visible(self, selector: str, timeout_ms: int, required: bool = True) -> bool:
        return await self.wait_for_ready(
            lambda: self.is_visible(selector), timeout_ms, f"{selector} to be visible", required
        )

    async def wait_for_any(self, selectors: Sequence[str], timeout_ms: int) -> Optional[str]:
        """Race visibility of alternative selectors; returns the first one that showed up"""
        probes = {
            selector: (lambda s=selector: self.poll_until(lambda: self.is_visible(s), timeout_ms))
            for selector in selectors
        }
        return await race_first(probes, timeout_ms, self.correlation_id)

    async def first_existing(self, selectors: Sequence[str]) -> Optional[str]:
        for selector in selectors:
            if (await self.probe(selector)).exists:
                return selector
        return None

    async def dropdown_populated(self, selector: str, panel: Optional[str] = None) -> bool:
        """More than a placeholder option and, if given, the wrapping panel not disabled"""
        options = await self.driver.list_options(selector)
        if len(options) <= 1:
            return False
        if panel and await self.driver.has_class(panel, "disabled"):
            return False
        return True

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    async def set_text(self, selector: str, value: str) -> bool:
        """
        Clear a field, type the value character by character, and verify.

        Returns:
            True if the field holds the value afterward. Never raises.
        """
        value = str(value)
        probe = await self.probe(selector)
        if not probe.exists:
            logger.warning(f"[{self.correlation_id}] Text field not found: {selector}")
            return False

        try:
            await self.driver.clear_value(selector)
            await self.driver.type_text(selector, value, self.typing_delay_ms)
            actual = await self.driver.read_value(selector)
        except Exception as e:
            logger.warning(f"[{self.correlation_id}] Typing into {selector} failed: {e}")
            return False

        if not values_match(value, actual):
            logger.warning(f"[{self.correlation_id}] {selector} holds '{actual}' after typing (expected '{value}')")
            return False

        await self.jitter()
        return True

    async def set_date(self, selector: str, iso_date: str) -> Optional[str]:
        """
        Set a date field through the fixed fallback ladder:
        ISO assignment, MM/DD/YYYY assignment, then typed digits.

        Returns:
            Name of the strategy that stuck, or None if every step failed
        """
        try:
            locale_date = to_locale_date(iso_date)
        except ValueError as e:
            logger.error(f"[{self.correlation_id}] Date {selector} not set, '{iso_date}' is not YYYY-MM-DD: {e}")
            return None

        async def verified() -> bool:
            value = await self.driver.read_value(selector)
            return bool(value) and UNSET_DATE_SENTINEL not in value

        async def assign_iso():
            await self.driver.assign_value(selector, iso_date)
            return await verified()

        async def assign_locale():
            await self.driver.assign_value(selector, locale_date)
            return await verified()

        async def typed():
            await self.driver.clear_value(selector)
            await self.driver.type_text(selector, locale_date.replace("/", ""), self.typing_delay_ms)
            return await verified()

        try:
            method, _ = await first_success(
                [("iso", assign_iso), ("locale", assign_locale), ("typed", typed)],
                f"date {selector}",
                self.correlation_id
            )
        except StrategiesExhausted as e:
            logger.error(f"[{self.correlation_id}] {e}")
            return None

        logger.debug(f"[{self.correlation_id}] Date {selector} set via {method}")
        await self.jitter()
        return method

    # -------------------------------------------------------------------------
    # Dropdowns
    # -------------------------------------------------------------------------

    async def select_option(self, selector: str, desired: str) -> SelectOption:
        """
        Select the option matching desired (exact first, then substring).

        Raises:
            ElementNotFound: the dropdown does not exist
            AmbiguousOptionError: nothing matched; lists every option text
        """
        desired = str(desired)
        if not (await self.probe(selector)).exists:
            raise ElementNotFound(selector)

        options = await self.driver.list_options(selector)
        option = choose_option(options, desired)
        if option is None:
            raise AmbiguousOptionError(selector, desired, [o.text for o in options])

        await self.driver.select_value(selector, option.value)
        logger.debug(f"[{self.correlation_id}] Selected '{option.text}' in {selector} for '{desired}'")
        await self.jitter()
        return option

    async def select_if_visible(
        self,
        panel_selector: str,
        selector: str,
        desired: Optional[str]
    ) -> Optional[SelectOption]:
        """Select only when data was supplied and the panel is currently showing"""
        if desired is None or str(desired) == "":
            return None
        if not await self.is_visible(panel_selector):
            logger.debug(f"[{self.correlation_id}] Panel {panel_selector} hidden, skipping {selector}")
            return None
        return await self.select_option(selector, desired)

    async def select_if_present(self, selector: str, desired: Optional[str]) -> Optional[SelectOption]:
        if desired is None or str(desired) == "":
            return None
        if not (await self.probe(selector)).exists:
            logger.debug(f"[{self.correlation_id}] Optional dropdown {selector} not on page")
            return None
        return await self.select_option(selector, desired)

    # -------------------------------------------------------------------------
    # Clicks
    # -------------------------------------------------------------------------

    async def robust_click(self, selector: str) -> str:
        """
        Click with fallbacks: native, script, mouse at center, and form
        submission for submit controls.

        Returns:
            Name of the strategy that worked

        Raises:
            ElementNotFound: nothing matches the selector
            ElementNotInteractable: hidden or disabled
            AllClickStrategiesFailed: every strategy failed
        """
        probe = await self.probe(selector)
        if not probe.exists:
            raise ElementNotFound(selector)
        if not probe.visible:
            raise ElementNotInteractable(selector, "not visible")
        if not probe.enabled:
            raise ElementNotInteractable(selector, "disabled")

        if not probe.in_viewport:
            try:
                await self.driver.scroll_into_view(selector)
            except Exception as e:
                logger.debug(f"[{self.correlation_id}] Scroll into view failed for {selector}: {e}")

        strategies: List[Strategy] = [
            ("native", lambda: self.driver.click_native(selector, self.click_timeout_ms)),
            ("script", lambda: self.driver.click_script(selector)),
            ("mouse", lambda: self.driver.click_at_center(selector)),
        ]
        if probe.is_submit:
            strategies.append(("form_submit", lambda: self.driver.submit_form(selector)))

        try:
            method, _ = await first_success(strategies, f"click {selector}", self.correlation_id)
        except StrategiesExhausted as e:
            raise AllClickStrategiesFailed(selector, e.failures) from e

        logger.debug(f"[{self.correlation_id}] Clicked {selector} via {method}")
        await self.jitter()
        return method

    async def click_if_present(self, selector: str) -> bool:
        """Click an optional control; False when it is absent, hidden or disabled"""
        probe = await self.probe(selector)
        if not (probe.exists and probe.visible and probe.enabled):
            return False
        await self.robust_click(selector)
        return True

    async def check_box(self, selector: str) -> bool:
        """
        Make sure a checkbox ends up checked: direct toggle, then its label,
        then scripted state assignment with a change event.
        """
        if await self.driver.is_checked(selector):
            return True

        element_id = selector[1:] if selector.startswith("#") else None

        async def toggle():
            await self.driver.click_script(selector)
            return await self.driver.is_checked(selector)

        async def label():
            if not element_id:
                return False
            await self.driver.click_native(f'label[for="{element_id}"]', self.click_timeout_ms)
            return await self.driver.is_checked(selector)

        async def scripted():
            await self.driver.set_checked(selector)
            return await self.driver.is_checked(selector)

        try:
            method, _ = await first_success(
                [("toggle", toggle), ("label", label), ("scripted", scripted)],
                f"check {selector}",
                self.correlation_id
            )
        except StrategiesExhausted as e:
            logger.error(f"[{self.correlation_id}] {e}")
            return False

        logger.debug(f"[{self.correlation_id}] Checked {selector} via {method}")
        await self.jitter()
        return True
