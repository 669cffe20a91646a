"""Overlay dialog detection and dismissal for the quote funnel"""

from typing import List, Dict, Any
from loguru import logger


# =============================================================================
# FUNNEL DIALOGS
# =============================================================================

# Each entry: selectors that reveal the dialog, and the controls that close it
FUNNEL_DIALOGS: List[Dict[str, Any]] = [
    {
        "description": "access control popup",
        "dialog_selectors": ["#getAccessControl"],
        "dismiss_selectors": ["#AllowAccess"],
    },
]

# Shown on some mobile user agents; informational only
IOS_WARNING_SELECTOR = "#iOSWarining"


async def dismiss_dialog_by_selectors(
    engine,
    dialog_selectors: List[str],
    dismiss_selectors: List[str],
    description: str = "dialog"
) -> bool:
    """
    Dismiss a specific dialog using provided selectors.

    Args:
        engine: InteractionEngine bound to the current page
        dialog_selectors: Selectors to detect if dialog is present
        dismiss_selectors: Selectors for buttons to dismiss the dialog
        description: Human-readable description for logging

    Returns:
        True if dialog was found and dismissed, False otherwise
    """
    dialog_found = False
    for selector in dialog_selectors:
        if await engine.is_visible(selector):
            dialog_found = True
            break

    if not dialog_found:
        return False

    for selector in dismiss_selectors:
        if await engine.click_if_present(selector):
            logger.info(f"[{engine.correlation_id}] Dismissed {description}")
            return True

    logger.warning(f"[{engine.correlation_id}] {description} is showing but no dismiss control worked")
    return False


async def dismiss_funnel_dialogs(engine) -> List[str]:
    """
    Dismiss every known funnel dialog that is currently showing.

    Returns:
        Descriptions of the dialogs that were dismissed
    """
    dismissed = []
    for dialog in FUNNEL_DIALOGS:
        if await dismiss_dialog_by_selectors(
            engine,
            dialog["dialog_selectors"],
            dialog["dismiss_selectors"],
            dialog["description"]
        ):
            dismissed.append(dialog["description"])

    if await engine.is_visible(IOS_WARNING_SELECTOR):
        logger.info(f"[{engine.correlation_id}] iOS warning banner detected")

    return dismissed
