"""Funnel configuration loaded from config/config.yaml"""

import os
from typing import Dict, Any, List, Optional
from loguru import logger
from pydantic import BaseModel, Field
import yaml


DEFAULT_FUNNEL_URL = "https://2a02e4bb-946b-477d-ba1f-fdba752637be.quotes.iwantinsurance.com/auto"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TimeoutConfig(BaseModel):
    """Per-wait bounds in milliseconds"""
    navigation_ms: int = 60000
    form_ready_ms: int = 15000
    stage_probe_ms: int = 10000
    dropdown_ms: int = 15000
    continue_enabled_ms: int = 20000
    garaging_dialog_ms: int = 5000
    page_transition_ms: int = 10000
    quote_results_ms: int = 120000
    quote_fallback_ms: int = 30000
    click_ms: int = 5000
    poll_interval_ms: int = 250


class PacingConfig(BaseModel):
    jitter_min_ms: int = 800
    jitter_max_ms: int = 2000
    typing_delay_ms: int = 50


class PremiumWindow(BaseModel):
    """Currency values strictly inside (minimum, maximum) are treated as premiums"""
    minimum: float = 50.0
    maximum: float = 2000.0

    def contains(self, value: float) -> bool:
        return self.minimum < value < self.maximum


class SelectorConfig(BaseModel):
    """Selector fallback lists tuned to the current site markup"""
    form_ready: List[str] = Field(default_factory=lambda: [
        "#FirstName", "#residence", 'input[type="text"]', "#container",
    ])
    error_messages: List[str] = Field(default_factory=lambda: [
        ".errMsg", ".error", ".validation-error", ".field-error",
        '[class*="error"]', '[id*="error"]',
    ])
    address_confirm: List[str] = Field(default_factory=lambda: [
        '#addressConfirmsection input[value="Continue"]', "#useSuggestedAddress",
        'button[type="submit"]', ".pageButton", "#pg0btn",
    ])
    contact_clickables: str = (
        'button, input[type="button"], input[type="submit"], a, [onclick], .btn, [class*="button"]'
    )
    add_vehicle: List[str] = Field(default_factory=lambda: [
        'button[onclick*="addVehicle"]', 'a[onclick*="addVehicle"]', "#addVehicleBtn",
        ".add-vehicle-btn", 'input[value*="Add Vehicle"]',
    ])
    add_driver: List[str] = Field(default_factory=lambda: [
        'button[onclick*="addDriver"]', 'a[onclick*="addDriver"]', "#addDriverBtn",
        ".add-driver-btn", 'input[value*="Add Driver"]',
    ])
    completion_indicators: List[str] = Field(default_factory=lambda: [
        "thank you", "confirmation", "complete", "submitted", "success",
    ])


class StageSignatureOverride(BaseModel):
    fragments: Optional[List[str]] = None
    marker: Optional[str] = None


class FunnelConfig(BaseModel):
    """Everything a run needs besides the applicant data"""
    url: str = DEFAULT_FUNNEL_URL
    viewport_width: int = 1366
    viewport_height: int = 768
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = False
    debug: bool = False  # screenshot after every successful stage
    screenshots_dir: str = "screenshots"
    history_file: str = "submissions.json"
    supports_multiple: bool = True
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    premium_window: PremiumWindow = Field(default_factory=PremiumWindow)
    selectors: SelectorConfig = Field(default_factory=SelectorConfig)
    stages: Dict[str, StageSignatureOverride] = Field(default_factory=dict)


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.lower() in ('true', '1', 'yes')


def _load_yaml_section(config_path: str) -> Dict[str, Any]:
    """Read the `funnel:` section of config.yaml (empty when the file is absent)"""
    if not os.path.exists(config_path):
        logger.warning(f"Config file {config_path} not found, using defaults")
        return {}
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}
    return config.get('funnel', {}) or {}


def load_funnel_config(config_path: str = 'config/config.yaml') -> FunnelConfig:
    """
    Load funnel configuration

    Values come from config.yaml, then environment overrides
    (QUOTE_FUNNEL_URL, HEADLESS, DEBUG) are applied on top.

    Args:
        config_path: Path to config.yaml

    Returns:
        Validated FunnelConfig
    """
    data = _load_yaml_section(config_path)

    url = os.getenv('QUOTE_FUNNEL_URL')
    if url:
        data['url'] = url

    headless = _env_flag('HEADLESS')
    if headless is not None:
        data['headless'] = headless

    debug = _env_flag('DEBUG')
    if debug is not None:
        data['debug'] = debug

    config = FunnelConfig(**data)
    logger.info(f"Funnel config loaded (url={config.url}, multi-entity={config.supports_multiple})")
    return config
