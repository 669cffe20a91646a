"""Quote extraction from the rendered results page"""

import re
from typing import List, Optional, Tuple
from bs4 import BeautifulSoup
from loguru import logger

from src.funnel.models import QuoteRecord


# =============================================================================
# RESULTS PAGE MARKUP
# =============================================================================

PANEL_SELECTOR = ".resultsPanel"
PRICE_SELECTOR = ".dollar"
TERM_SELECTOR = ".term"
VEHICLE_SELECTOR = ".resultTextSeparator"
CARRIER_BUTTON_SELECTOR = ".carrierSelectAu"
COVERAGE_ROW_SELECTOR = ".resultDetails li"
COVERAGE_TITLE_SELECTOR = ".covTitle"

# onclick="setSelCarrier("Progressive|123|...")"
CARRIER_HANDLER_PATTERN = re.compile(r'setSelCarrier\(\s*["\']([^|"\']+)')

CURRENCY_PATTERN = re.compile(r'\$\s?(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)')

PREMIUM = "premium"
LIKELY_COVERAGE_LIMIT = "likely_coverage_limit"


def _text(node) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def parse_carrier(onclick: Optional[str]) -> str:
    if not onclick:
        return ""
    match = CARRIER_HANDLER_PATTERN.search(onclick)
    return match.group(1).strip() if match else ""


def _coverage_rows(panel) -> List[Tuple[str, str]]:
    rows = []
    for item in panel.select(COVERAGE_ROW_SELECTOR):
        title = _text(item.select_one(COVERAGE_TITLE_SELECTOR))
        spans = item.find_all("span")
        value = _text(spans[-1]) if spans else ""
        if title or value:
            rows.append((title, value))
    return rows


def parse_quote_panels(html: str) -> Optional[List[QuoteRecord]]:
    """
    Parse the dedicated quote panels.

    Returns:
        Quotes in panel order, or None when the page has no quote panels at all.
        Unpriced panels are skipped, but their select buttons still count
        toward each quote's button_index.
    """
    soup = BeautifulSoup(html, "html.parser")
    panels = soup.select(PANEL_SELECTOR)
    if not panels:
        return None

    quotes: List[QuoteRecord] = []
    buttons_before = 0
    for position, panel in enumerate(panels):
        panel_buttons = panel.select(CARRIER_BUTTON_SELECTOR)
        button_index = buttons_before if panel_buttons else None
        buttons_before += len(panel_buttons)

        price = _text(panel.select_one(PRICE_SELECTOR))
        if not price:
            logger.debug(f"Skipping results panel {position}: no price")
            continue

        carrier_button = panel_buttons[0] if panel_buttons else None
        quotes.append(QuoteRecord(
            price=price,
            term=_text(panel.select_one(TERM_SELECTOR)),
            carrier=parse_carrier(carrier_button.get("onclick") if carrier_button else None),
            vehicle=_text(panel.select_one(VEHICLE_SELECTOR)),
            coverages=_coverage_rows(panel),
            selection_index=len(quotes),
            button_index=button_index,
        ))
    return quotes


def scan_currency_tokens(text: str, premium_window) -> List[QuoteRecord]:
    """
    Fallback when no panels exist: every currency token in the page text.

    Values inside the premium window are tagged as premiums; the rest as
    likely coverage limits.
    """
    quotes: List[QuoteRecord] = []
    for match in CURRENCY_PATTERN.finditer(text or ""):
        amount = float(match.group(1).replace(",", ""))
        classification = PREMIUM if premium_window.contains(amount) else LIKELY_COVERAGE_LIMIT
        quotes.append(QuoteRecord(
            price=match.group(0).replace(" ", ""),
            selection_index=len(quotes),
            classification=classification,
        ))
    return quotes


async def has_priced_panel(driver) -> bool:
    """Readiness check: at least one quote panel shows a dollar amount"""
    prices = await driver.texts(f"{PANEL_SELECTOR} {PRICE_SELECTOR}")
    return any("$" in price for price in prices)


async def extract_quotes(driver, premium_window, correlation_id: str = "N/A") -> List[QuoteRecord]:
    """
    Extract quotes from whatever page the driver shows.

    Never raises for "no quotes yet": an empty list is returned instead.
    """
    try:
        html = await driver.content()
    except Exception as e:
        logger.warning(f"[{correlation_id}] Could not read page content for quotes: {e}")
        return []

    quotes = parse_quote_panels(html)
    if quotes is not None:
        logger.info(f"[{correlation_id}] Extracted {len(quotes)} quotes from results panels")
        return quotes

    try:
        text = await driver.body_text()
    except Exception as e:
        logger.warning(f"[{correlation_id}] Could not read page text for quotes: {e}")
        return []

    quotes = scan_currency_tokens(text, premium_window)
    premiums = sum(1 for q in quotes if q.classification == PREMIUM)
    logger.info(
        f"[{correlation_id}] No results panels; text scan found {len(quotes)} amounts "
        f"({premiums} plausible premiums)"
    )
    return quotes
