"""Playwright page driver.

Every call that waits on the live page goes through this class, so the rest
of the engine (and its tests) only depend on these named operations.
"""

from typing import Dict, Any, List, Optional
from loguru import logger
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from playwright.async_api import Page, Error as PlaywrightError


class ElementProbe(BaseModel):
    """What is known about an element before acting on it"""
    exists: bool = False
    visible: bool = False
    enabled: bool = False
    in_viewport: bool = False
    tag: str = ""
    input_type: str = ""

    @property
    def is_submit(self) -> bool:
        return self.input_type == "submit"


class SelectOption(BaseModel):
    value: str
    text: str


class Clickable(BaseModel):
    """A visible clickable control, addressed by its position in the match list"""
    index: int
    tag: str = ""
    text: str = ""
    value: str = ""
    element_id: str = ""
    class_name: str = ""


# =============================================================================
# PAGE SCRIPTS
# =============================================================================

PROBE_SCRIPT = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return {exists: false};
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const visible = style.display !== 'none' && style.visibility !== 'hidden'
        && (rect.width > 0 || rect.height > 0);
    const inViewport = rect.top >= 0 && rect.left >= 0
        && rect.bottom <= (window.innerHeight || document.documentElement.clientHeight)
        && rect.right <= (window.innerWidth || document.documentElement.clientWidth);
    return {
        exists: true,
        visible: visible,
        enabled: !el.disabled && !el.classList.contains('disabled'),
        in_viewport: inViewport,
        tag: el.tagName.toLowerCase(),
        input_type: (el.type || '').toLowerCase()
    };
}
"""

ASSIGN_VALUE_SCRIPT = """
([selector, value]) => {
    const el = document.querySelector(selector);
    if (!el) throw new Error('missing ' + selector);
    el.value = value;
    el.dispatchEvent(new Event('input', {bubbles: true}));
    el.dispatchEvent(new Event('change', {bubbles: true}));
}
"""

SET_CHECKED_SCRIPT = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) throw new Error('missing ' + selector);
    el.checked = true;
    el.dispatchEvent(new Event('change', {bubbles: true}));
}
"""

SUBMIT_FORM_SCRIPT = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el || !el.form) throw new Error('no enclosing form for ' + selector);
    if (el.form.requestSubmit) { el.form.requestSubmit(el); } else { el.form.submit(); }
}
"""

TEXTS_SCRIPT = """
([selector, visibleOnly]) => Array.from(document.querySelectorAll(selector))
    .filter(el => {
        if (!visibleOnly) return true;
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' && el.offsetParent !== null;
    })
    .map(el => (el.innerText || el.textContent || '').trim())
    .filter(text => text.length > 0)
"""

EMPTY_REQUIRED_SCRIPT = """
() => Array.from(document.querySelectorAll('input[required], select[required]'))
    .filter(el => el.offsetParent !== null && !el.value)
    .map(el => el.name || el.id || el.placeholder || el.tagName.toLowerCase())
"""

CLICKABLES_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector))
    .filter(el => el.offsetParent !== null)
    .map((el, index) => ({
        index: index,
        tag: el.tagName.toLowerCase(),
        text: (el.innerText || el.textContent || '').trim(),
        value: el.value || '',
        element_id: el.id || '',
        class_name: typeof el.className === 'string' ? el.className : ''
    }))
"""

CLICK_CLICKABLE_SCRIPT = """
([selector, index]) => {
    const visible = Array.from(document.querySelectorAll(selector)).filter(el => el.offsetParent !== null);
    if (!visible[index]) throw new Error('no clickable at ' + index);
    visible[index].click();
}
"""


class PageDriver:
    """Named page operations over a Playwright Page"""

    def __init__(self, page: Page, correlation_id: str = "N/A"):
        self.page = page
        self.correlation_id = correlation_id

    @property
    def url(self) -> str:
        return self.page.url

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(PlaywrightError),
        reraise=True
    )
    async def goto(self, url: str, timeout_ms: int):
        """Navigate, retrying transient network failures"""
        logger.info(f"[{self.correlation_id}] Navigating to {url}")
        await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    async def probe(self, selector: str) -> ElementProbe:
        data: Dict[str, Any] = await self.page.evaluate(PROBE_SCRIPT, selector)
        return ElementProbe(**data)

    async def count(self, selector: str) -> int:
        return await self.page.locator(selector).count()

    async def read_value(self, selector: str) -> Optional[str]:
        element = await self.page.query_selector(selector)
        if not element:
            return None
        return await element.input_value()

    async def clear_value(self, selector: str):
        await self.page.fill(selector, "")

    async def type_text(self, selector: str, text: str, delay_ms: int = 0):
        await self.page.locator(selector).first.press_sequentially(text, delay=delay_ms)

    async def assign_value(self, selector: str, value: str):
        """Script assignment with input/change events"""
        await self.page.evaluate(ASSIGN_VALUE_SCRIPT, [selector, value])

    async def list_options(self, selector: str) -> List[SelectOption]:
        options = await self.page.eval_on_selector_all(
            f"{selector} option",
            "opts => opts.map(o => ({value: o.value, text: (o.text || '').trim()}))"
        )
        return [SelectOption(**option) for option in options]

    async def select_value(self, selector: str, value: str):
        await self.page.select_option(selector, value=value)

    async def has_class(self, selector: str, class_name: str) -> bool:
        element = await self.page.query_selector(selector)
        if not element:
            return False
        return await element.evaluate("(el, name) => el.classList.contains(name)", class_name)

    async def attribute_values(self, selector: str, attribute: str) -> List[Optional[str]]:
        return await self.page.eval_on_selector_all(
            selector, "(els, attr) => els.map(el => el.getAttribute(attr))", attribute
        )

    async def scroll_into_view(self, selector: str):
        await self.page.locator(selector).first.scroll_into_view_if_needed()

    async def click_native(self, selector: str, timeout_ms: int = 5000):
        await self.page.click(selector, timeout=timeout_ms)

    async def click_script(self, selector: str):
        await self.page.eval_on_selector(selector, "el => el.click()")

    async def click_at_center(self, selector: str):
        box = await self.page.locator(selector).first.bounding_box()
        if not box:
            raise PlaywrightError(f"No bounding box for {selector}")
        await self.page.mouse.click(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)

    async def submit_form(self, selector: str):
        await self.page.evaluate(SUBMIT_FORM_SCRIPT, selector)

    async def hover_nth(self, selector: str, index: int):
        await self.page.locator(selector).nth(index).hover()

    async def click_nth(self, selector: str, index: int, timeout_ms: int = 5000):
        await self.page.locator(selector).nth(index).click(timeout=timeout_ms)

    async def is_checked(self, selector: str) -> bool:
        element = await self.page.query_selector(selector)
        if not element:
            return False
        return await element.is_checked()

    async def set_checked(self, selector: str):
        await self.page.evaluate(SET_CHECKED_SCRIPT, selector)

    async def date_bounds(self, selector: str) -> Dict[str, str]:
        element = await self.page.query_selector(selector)
        if not element:
            return {}
        return await element.evaluate("el => ({min: el.min || '', max: el.max || ''})")

    async def texts(self, selector: str, visible_only: bool = False) -> List[str]:
        return await self.page.evaluate(TEXTS_SCRIPT, [selector, visible_only])

    async def empty_required_fields(self) -> List[str]:
        return await self.page.evaluate(EMPTY_REQUIRED_SCRIPT)

    async def clickables(self, selector: str) -> List[Clickable]:
        items = await self.page.evaluate(CLICKABLES_SCRIPT, selector)
        return [Clickable(**item) for item in items]

    async def click_clickable(self, selector: str, index: int):
        await self.page.evaluate(CLICK_CLICKABLE_SCRIPT, [selector, index])

    async def body_text(self) -> str:
        return await self.page.evaluate("() => document.body ? document.body.innerText : ''")

    async def content(self) -> str:
        return await self.page.content()

    async def screenshot(self, path: str):
        await self.page.screenshot(path=path, full_page=False)
